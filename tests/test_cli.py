"""Tests for the command-line interface."""

from datetime import date
from decimal import Decimal
import logging

import pytest
from click.testing import CliRunner

from statement_recon import cli as cli_module
from statement_recon.cli import main
from statement_recon.config import DatabaseConfig
from statement_recon.models.reconciliation import CandidateKind
from statement_recon.storage import (
    StatementRepository,
    create_engine_from_config,
    make_session_factory,
    session_scope,
)


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    # Tables must not wrap record references onto several lines
    monkeypatch.setattr(cli_module.console, "width", 200)
    yield
    logging.getLogger("statement_recon").handlers = []


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def cli(db_url):
    runner = CliRunner()

    def invoke(*args, **kwargs):
        return runner.invoke(main, ["--db", db_url, *args], catch_exceptions=False, **kwargs)

    return invoke


@pytest.fixture
def statement_file(tmp_path, bca_csv):
    path = tmp_path / "januari.csv"
    path.write_bytes(bca_csv)
    return path


@pytest.fixture
def with_account(cli):
    result = cli(
        "add-account", "BCA Operasional", "--id", "BCA-001",
        "--opening-balance", "10,000,000", "--opening-date", "2025-01-01",
    )
    assert result.exit_code == 0, result.output
    return "BCA-001"


def add_receipt(db_url):
    engine = create_engine_from_config(DatabaseConfig(url=db_url))
    with session_scope(make_session_factory(engine)) as session:
        StatementRepository(session).add_candidate(
            CandidateKind.RECEIPT, Decimal("1500000"), date(2025, 1, 2),
            account_id="BCA-001", candidate_id="RCV-001",
        )
    engine.dispose()


def test_init_db(cli):
    result = cli("init-db")
    assert result.exit_code == 0
    assert "Database ready" in result.output


def test_parse_displays_lines(cli, statement_file):
    result = cli("parse", str(statement_file))
    assert result.exit_code == 0, result.output
    assert "Total lines: 4" in result.output
    assert "JANUARI 2025" in result.output


def test_parse_reports_missing_year(cli, tmp_path, split_csv):
    path = tmp_path / "feb.csv"
    path.write_bytes(split_csv)
    result = cli("parse", str(path))
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_import_then_reimport(cli, with_account, statement_file):
    first = cli("import", with_account, str(statement_file), "--duplicates", "skip")
    assert first.exit_code == 0, first.output
    assert "Lines Inserted" in first.output

    second = cli("import", with_account, str(statement_file), "--duplicates", "skip")
    assert second.exit_code == 0, second.output
    assert "Zero new rows" in second.output


def test_import_asks_about_duplicates(cli, with_account, statement_file):
    cli("import", with_account, str(statement_file), "--no-match")
    result = cli("import", with_account, str(statement_file), "--no-match", input="y\n")
    assert result.exit_code == 0, result.output
    assert "already stored" in result.output

    lines = cli("lines", with_account)
    assert "Total 8" in lines.output


def test_import_into_unknown_account(cli, statement_file):
    result = cli("import", "NOPE", str(statement_file))
    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_match_confirm_and_ledger(cli, with_account, statement_file, db_url, tmp_path):
    add_receipt(db_url)
    cli("import", with_account, str(statement_file), "--duplicates", "skip")

    matched = cli("lines", with_account, "--status", "matched")
    assert "receipt:RCV-001" in matched.output

    rerun = cli("auto-match", with_account)
    assert rerun.exit_code == 0
    assert "Already Resolved" in rerun.output

    output = tmp_path / "ledger.xlsx"
    ledger = cli(
        "ledger", with_account, "--start", "2025-01-01", "--end", "2025-01-31",
        "-o", str(output),
    )
    assert ledger.exit_code == 0, ledger.output
    assert "13,240,000.00" in ledger.output
    assert output.exists()


def test_line_actions(cli, with_account, statement_file):
    cli("import", with_account, str(statement_file), "--no-match")

    recorded = cli("record", "1", "--description", "Pelunasan")
    assert recorded.exit_code == 0, recorded.output
    assert "recorded as receipt:" in recorded.output

    blocked = cli("delete-line", "1")
    assert blocked.exit_code == 1
    assert "cannot be deleted" in blocked.output

    assert cli("unlink", "1").exit_code == 0
    assert cli("delete-line", "1").exit_code == 0

    bad_ref = cli("link", "2", "invoice:9")
    assert bad_ref.exit_code == 1
    assert "Unknown candidate kind" in bad_ref.output

    not_suggested = cli("confirm", "2")
    assert not_suggested.exit_code == 1
    assert "Cannot confirm" in not_suggested.output


def test_clear(cli, with_account, statement_file):
    cli("import", with_account, str(statement_file), "--no-match")
    cli("record", "2")

    result = cli("clear", with_account, "--start", "2025-01-01", "--end", "2025-01-31", "-y")
    assert result.exit_code == 0, result.output
    assert "3 deletable, 1 reconciled" in result.output
    assert "Deleted 3 line(s)" in result.output

    lines = cli("lines", with_account)
    assert "Total 1" in lines.output


def test_clear_can_be_declined(cli, with_account, statement_file):
    cli("import", with_account, str(statement_file), "--no-match")
    result = cli(
        "clear", with_account, "--start", "2025-01-01", "--end", "2025-01-31", input="n\n"
    )
    assert "Cancelled" in result.output
    assert "Total 4" in cli("lines", with_account).output


def test_init_config(tmp_path):
    output = tmp_path / "config.yaml"
    result = CliRunner().invoke(main, ["init-config", "-o", str(output)])
    assert result.exit_code == 0
    assert output.exists()

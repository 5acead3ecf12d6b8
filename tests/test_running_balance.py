"""Tests for the running-balance ledger."""

from datetime import date
from decimal import Decimal

import pytest

from statement_recon.ledger import (
    BalanceSide,
    DateWindow,
    LedgerEntry,
    compute_running_balance,
    effective_opening,
)
from statement_recon.models.statement import ParsedLine
from statement_recon.services import LedgerService
from statement_recon.storage import StatementRepository, session_scope
from statement_recon.utils.exceptions import NotFoundError, ValidationError

FEBRUARY = DateWindow(date(2025, 2, 1), date(2025, 2, 28))


def entry(day, debit="0", credit="0", month=2, description=""):
    return LedgerEntry(
        transaction_date=date(2025, month, day),
        debit=Decimal(debit),
        credit=Decimal(credit),
        description=description,
    )


def february_entries():
    # Debit listed first on the shared date to show the credit-first ordering
    return [
        entry(10, debit="200000", description="debit"),
        entry(15, debit="100000"),
        entry(10, credit="500000", description="credit"),
    ]


def test_worked_example():
    report = compute_running_balance(
        february_entries(),
        FEBRUARY,
        stored_opening=Decimal("1000000"),
        anchor=date(2025, 1, 1),
    )

    assert report.opening_balance == Decimal("1000000")
    assert [row.balance for row in report.rows] == [
        Decimal("1500000"),
        Decimal("1300000"),
        Decimal("1200000"),
    ]
    assert report.closing_balance == Decimal("1200000")
    assert report.rows[0].entry.description == "credit"
    assert report.total_debits == Decimal("300000")
    assert report.total_credits == Decimal("500000")


def test_opening_rolls_forward_from_anchor():
    entries = february_entries() + [
        entry(20, credit="50000", month=1),
        entry(31, debit="10000", month=1),
        entry(5, debit="1", month=1),
    ]
    report = compute_running_balance(
        entries, FEBRUARY, stored_opening=Decimal("1000000"), anchor=date(2025, 1, 1)
    )
    assert report.opening_balance == Decimal("1039999")
    assert report.closing_balance == Decimal("1239999")


def test_entries_before_anchor_are_ignored():
    old = LedgerEntry(transaction_date=date(2024, 12, 31), credit=Decimal("777"))
    opening = effective_opening(Decimal("100"), date(2025, 1, 1), [old], FEBRUARY)
    assert opening == Decimal("100")


def test_anchor_on_window_start_uses_stored_opening():
    opening = effective_opening(
        Decimal("100"), date(2025, 2, 1), [entry(1, credit="5")], FEBRUARY
    )
    assert opening == Decimal("100")


def test_empty_window_closes_at_opening():
    report = compute_running_balance(
        february_entries(),
        DateWindow(date(2025, 3, 1), date(2025, 3, 31)),
        stored_opening=Decimal("1000000"),
        anchor=date(2025, 1, 1),
    )
    assert report.rows == []
    assert report.opening_balance == Decimal("1200000")
    assert report.closing_balance == Decimal("1200000")


def test_debit_normal_flips_the_sign():
    report = compute_running_balance(
        february_entries(),
        FEBRUARY,
        stored_opening=Decimal("1000000"),
        side=BalanceSide.DEBIT_NORMAL,
    )
    assert [row.balance for row in report.rows] == [
        Decimal("500000"),
        Decimal("700000"),
        Decimal("800000"),
    ]


def test_same_date_same_side_keeps_input_order():
    entries = [entry(3, debit="1", description="a"), entry(3, debit="2", description="b")]
    report = compute_running_balance(entries, FEBRUARY)
    assert [row.entry.description for row in report.rows] == ["a", "b"]


def test_window_bounds_are_inclusive():
    window = DateWindow(date(2025, 2, 10), date(2025, 2, 15))
    report = compute_running_balance(february_entries(), window)
    assert len(report.rows) == 3
    assert date(2025, 2, 15) in window
    assert date(2025, 2, 16) not in window


def test_inverted_window_is_rejected():
    with pytest.raises(ValidationError):
        DateWindow(date(2025, 2, 28), date(2025, 2, 1))


class TestLedgerService:
    @pytest.fixture
    def stored(self, session_factory, account):
        lines = [
            ParsedLine(date(2025, 1, 20), "Januari masuk", "", Decimal("0"), Decimal("300000")),
            ParsedLine(date(2025, 2, 10), "Biaya", "", Decimal("200000"), Decimal("0")),
            ParsedLine(date(2025, 2, 10), "Transfer masuk", "", Decimal("0"), Decimal("500000")),
            ParsedLine(date(2025, 2, 15), "Tarik tunai", "", Decimal("100000"), Decimal("0")),
        ]
        with session_scope(session_factory) as session:
            StatementRepository(session).insert_lines(account.id, None, lines)
        return account

    def test_bank_view(self, session_factory, stored):
        account, report = LedgerService(session_factory).ledger(stored.id, FEBRUARY)

        assert account.id == stored.id
        # 10,000,000 stored at 2025-01-01 plus January's 300,000
        assert report.opening_balance == Decimal("10300000")
        assert [row.entry.description for row in report.rows] == [
            "Transfer masuk",
            "Biaya",
            "Tarik tunai",
        ]
        assert report.closing_balance == Decimal("10500000")
        assert all(row.entry.line_id is not None for row in report.rows)

    def test_debit_normal_view(self, session_factory, stored):
        _, report = LedgerService(session_factory).ledger(
            stored.id, FEBRUARY, BalanceSide.DEBIT_NORMAL
        )
        assert report.opening_balance == Decimal("9700000")
        assert report.closing_balance == Decimal("9500000")

    def test_empty_window(self, session_factory, stored):
        _, report = LedgerService(session_factory).ledger(
            stored.id, DateWindow(date(2025, 6, 1), date(2025, 6, 30))
        )
        assert report.rows == []
        assert report.closing_balance == report.opening_balance == Decimal("10500000")

    def test_unknown_account(self, session_factory):
        with pytest.raises(NotFoundError):
            LedgerService(session_factory).ledger("missing", FEBRUARY)

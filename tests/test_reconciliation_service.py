"""Tests for reconciliation operations against a real database."""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from threading import Barrier

import pytest

from statement_recon.ledger import DateWindow
from statement_recon.models.reconciliation import (
    CandidateKind,
    CandidateRef,
    ReconciliationStatus,
)
from statement_recon.models.statement import ParsedLine
from statement_recon.services import IngestionService, ReconciliationService
from statement_recon.services.reconciliation import flush_links
from statement_recon.storage import StatementRepository, session_scope
from statement_recon.utils.exceptions import (
    DeleteBlocked,
    InvalidTransition,
    MatchCandidateConflict,
    NotFoundError,
    ValidationError,
)

UNMATCHED = ReconciliationStatus.UNMATCHED
SUGGESTED = ReconciliationStatus.SUGGESTED
MATCHED = ReconciliationStatus.MATCHED
RECORDED = ReconciliationStatus.RECORDED

JANUARY = DateWindow(date(2025, 1, 1), date(2025, 1, 31))


@pytest.fixture
def service(config, session_factory, locks):
    return ReconciliationService(config, session_factory, locks)


@pytest.fixture
def imported(config, session_factory, locks, account, candidates, bca_csv):
    """The BCA sample imported and auto-matched; lines keyed by a short name."""
    IngestionService(config, session_factory, locks=locks).ingest(account.id, bca_csv, "jan.csv")
    lines = ReconciliationService(config, session_factory, locks).list_lines(account.id)
    by_text = {
        "transfer": "TRSF E-BANKING",
        "invoice": "BYR VIA E-BANKING",
        "admin": "BIAYA ADM",
        "deposit": "SETORAN TUNAI",
    }
    return {
        name: next(line for line in lines if line.description.startswith(prefix))
        for name, prefix in by_text.items()
    }


def add_line(session_factory, account_id, day, debit="0", credit="0", description="EXTRA"):
    with session_scope(session_factory) as session:
        repo = StatementRepository(session)
        repo.insert_lines(
            account_id,
            None,
            [
                ParsedLine(
                    transaction_date=date(2025, 1, day),
                    description=description,
                    reference="",
                    debit=Decimal(debit),
                    credit=Decimal(credit),
                )
            ],
        )
        return max(record.id for record in repo.lines(account_id))


def get_line(service, line_id, account_id="BCA-001"):
    return next(line for line in service.list_lines(account_id) if line.id == line_id)


class TestAutoMatch:
    def test_import_leaves_expected_states(self, imported):
        assert imported["transfer"].status is MATCHED
        assert imported["transfer"].matched == CandidateRef(CandidateKind.RECEIPT, "RCV-001")
        assert imported["transfer"].notes == "Auto-matched (confidence: 90%)"
        assert imported["transfer"].matched_by == "auto-match"
        assert imported["transfer"].matched_at is not None

        assert imported["invoice"].status is MATCHED
        assert imported["invoice"].matched == CandidateRef(CandidateKind.EXPENSE, "EXP-001")

        assert imported["admin"].status is SUGGESTED
        assert imported["admin"].matched is None
        assert imported["admin"].suggested == CandidateRef(CandidateKind.EXPENSE, "EXP-002")
        assert imported["admin"].match_confidence == 75
        assert imported["admin"].notes == "Suggested match (confidence: 75%)"

        # The only same-amount record is an expense; a deposit cannot settle it
        assert imported["deposit"].status is UNMATCHED

    def test_second_run_changes_nothing(self, service, imported, account):
        result = service.auto_match(account.id)
        assert result.as_dict() == {"matched_count": 0, "suggested_count": 0, "skipped_count": 2}

    def test_unknown_account(self, service):
        with pytest.raises(NotFoundError):
            service.auto_match("missing")

    def test_concurrent_runs_consume_each_candidate_once(
        self, config, session_factory, locks, account, candidates, bca_csv
    ):
        config.matching.run_after_ingest = False
        IngestionService(config, session_factory, locks=locks).ingest(account.id, bca_csv, "jan.csv")

        workers = 4
        barrier = Barrier(workers)

        def run():
            barrier.wait(10)
            return ReconciliationService(config, session_factory, locks).auto_match(account.id)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = [f.result(30) for f in [pool.submit(run) for _ in range(workers)]]

        assert sum(r.matched_count for r in results) == 2
        assert sum(r.suggested_count for r in results) == 1

        lines = ReconciliationService(config, session_factory, locks).list_lines(account.id)
        held = [line.matched or line.suggested for line in lines]
        held = [ref for ref in held if ref is not None]
        assert len(held) == 3
        assert len(set(held)) == len(held)

    def test_stats(self, service, imported, account):
        stats = service.stats(account.id)
        assert (stats.total, stats.matched, stats.suggested, stats.unmatched) == (4, 2, 1, 1)

    def test_list_by_status(self, service, imported, account):
        found = service.list_lines(account.id, [SUGGESTED])
        assert [line.id for line in found] == [imported["admin"].id]

    def test_lines_come_back_in_date_order(self, service, imported, account):
        dates = [line.transaction_date for line in service.list_lines(account.id)]
        assert dates == sorted(dates)


class TestManualActions:
    def test_confirm(self, service, imported):
        line = service.confirm(imported["admin"].id, actor="budi")
        assert line.status is MATCHED
        assert line.matched == CandidateRef(CandidateKind.EXPENSE, "EXP-002")
        assert line.suggested is None
        assert line.notes == "Confirmed suggestion (confidence: 75%)"
        assert line.matched_by == "budi"
        assert get_line(service, line.id).status is MATCHED

    def test_confirm_requires_a_suggestion(self, service, imported):
        with pytest.raises(InvalidTransition):
            service.confirm(imported["deposit"].id)

    def test_reject_frees_the_record(self, service, imported, account):
        line = service.reject(imported["admin"].id)
        assert line.status is UNMATCHED
        assert line.suggested is None
        assert line.match_confidence is None
        assert line.notes is None

        # Rejection is not remembered; the next pass may suggest it again
        result = service.auto_match(account.id)
        assert result.suggested_count == 1

    def test_link(self, service, imported, session_factory, account):
        with session_scope(session_factory) as session:
            ref = StatementRepository(session).add_candidate(
                CandidateKind.RECEIPT, Decimal("2000000"), date(2025, 1, 25), account_id=account.id
            )
        line = service.link(imported["deposit"].id, ref, actor="budi")

        assert line.status is MATCHED
        assert line.matched == ref
        assert line.match_confidence == 100
        assert line.notes == "Linked manually"

    def test_link_overrides_own_suggestion(self, service, imported):
        ref = CandidateRef(CandidateKind.EXPENSE, "EXP-002")
        line = service.link(imported["admin"].id, ref)
        assert line.status is MATCHED
        assert line.matched == ref
        assert line.suggested is None

    def test_link_rejects_amount_mismatch(self, service, imported):
        with pytest.raises(ValidationError, match="amounts must be equal"):
            service.link(imported["deposit"].id, CandidateRef(CandidateKind.RECEIPT, "RCV-001"))

    def test_link_rejects_wrong_direction(self, service, imported):
        with pytest.raises(ValidationError):
            service.link(imported["deposit"].id, CandidateRef(CandidateKind.EXPENSE, "EXP-003"))

    def test_link_unknown_record(self, service, imported):
        with pytest.raises(NotFoundError):
            service.link(imported["deposit"].id, CandidateRef(CandidateKind.EXPENSE, "NOPE"))

    def test_link_to_a_matched_record_conflicts(self, service, imported, session_factory, account):
        other = add_line(session_factory, account.id, 3, credit="1500000", description="DUPLICATE CR")
        with pytest.raises(MatchCandidateConflict, match="unlink line"):
            service.link(other, CandidateRef(CandidateKind.RECEIPT, "RCV-001"))
        assert get_line(service, other).status is UNMATCHED

    def test_link_to_a_suggested_record_conflicts(self, service, imported, session_factory, account):
        other = add_line(session_factory, account.id, 11, debit="10000", description="BIAYA ADM 2")
        with pytest.raises(MatchCandidateConflict, match="reject the suggestion"):
            service.link(other, CandidateRef(CandidateKind.EXPENSE, "EXP-002"))

    def test_record_creates_a_receipt(self, service, imported, session_factory, account):
        line = service.record(imported["deposit"].id, actor="budi")

        assert line.status is RECORDED
        assert line.matched.kind is CandidateKind.RECEIPT
        assert line.notes == "receipt: SETORAN TUNAI"
        with session_scope(session_factory) as session:
            candidate = StatementRepository(session).get_candidate(line.matched, account.id)
        assert candidate.amount == Decimal("2000000")
        assert candidate.candidate_date == date(2025, 1, 15)

    def test_record_with_description_creates_an_expense(self, service, imported, session_factory, account):
        other = add_line(session_factory, account.id, 20, debit="75000", description="QRIS")
        line = service.record(other, description="Konsumsi rapat")
        assert line.matched.kind is CandidateKind.EXPENSE
        assert line.notes == "expense: Konsumsi rapat"

    def test_record_requires_unmatched(self, service, imported):
        with pytest.raises(InvalidTransition, match="unlink it first"):
            service.record(imported["transfer"].id)

    def test_unlink_then_rematch(self, service, imported, account):
        line = service.unlink(imported["transfer"].id)
        assert line.status is UNMATCHED
        assert line.matched is None
        assert line.notes is None
        assert line.matched_at is None

        result = service.auto_match(account.id)
        assert result.matched_count == 1
        assert get_line(service, line.id).matched == CandidateRef(CandidateKind.RECEIPT, "RCV-001")

    def test_unlink_recorded(self, service, imported):
        service.record(imported["deposit"].id)
        assert service.unlink(imported["deposit"].id).status is UNMATCHED

    def test_unknown_line(self, service, imported):
        with pytest.raises(NotFoundError):
            service.confirm(99999)


class TestEditAndDelete:
    def test_description_edit_keeps_the_match(self, service, imported):
        line = service.edit_line(imported["transfer"].id, description="Pelunasan invoice 17")
        assert line.description == "Pelunasan invoice 17"
        assert line.status is MATCHED

    def test_amount_edit_on_matched_line_is_refused(self, service, imported):
        with pytest.raises(InvalidTransition, match="unlink it first"):
            service.edit_line(imported["transfer"].id, credit=Decimal("1"))

    def test_amount_edit_on_unmatched_line(self, service, imported):
        line = service.edit_line(imported["deposit"].id, credit=Decimal("2100000"))
        assert line.credit == Decimal("2100000")
        assert get_line(service, line.id).credit == Decimal("2100000")

    def test_amount_edit_keeps_one_side(self, service, imported):
        with pytest.raises(ValidationError):
            service.edit_line(imported["deposit"].id, debit=Decimal("5"))

    def test_delete_unmatched_line(self, service, imported, account):
        service.delete_line(imported["deposit"].id)
        assert service.stats(account.id).total == 3

    @pytest.mark.parametrize("name", ["transfer", "admin"])
    def test_delete_reconciled_line_is_blocked(self, service, imported, name):
        with pytest.raises(DeleteBlocked):
            service.delete_line(imported[name].id)


class TestBulkClear:
    def test_preview(self, service, imported, account):
        preview = service.preview_clear(account.id, JANUARY)
        assert (preview.total_count, preview.reconciled_count, preview.deletable_count) == (4, 3, 1)

    def test_clear_keeps_reconciled_lines(self, service, imported, account):
        result = service.clear_unmatched(account.id, JANUARY)
        assert (result.deleted_count, result.blocked_count) == (1, 3)

        remaining = service.list_lines(account.id)
        assert {line.status for line in remaining} == {MATCHED, SUGGESTED}

    def test_rejected_suggestion_can_be_cleared(self, service, imported, account):
        service.reject(imported["admin"].id)
        result = service.clear_unmatched(account.id, JANUARY)
        assert result.deleted_count == 2

    def test_recorded_line_survives_clear(self, service, imported, account):
        service.record(imported["deposit"].id)
        result = service.clear_unmatched(account.id, JANUARY)
        assert result.deleted_count == 0
        assert get_line(service, imported["deposit"].id).status is RECORDED

    def test_strict_clear_refuses_everything(self, service, imported, account):
        with pytest.raises(DeleteBlocked):
            service.clear_unmatched(account.id, JANUARY, strict=True)
        assert service.stats(account.id).total == 4

    def test_clear_outside_window(self, service, imported, account):
        result = service.clear_unmatched(account.id, DateWindow(date(2025, 2, 1), date(2025, 2, 28)))
        assert (result.deleted_count, result.blocked_count) == (0, 0)


def test_database_refuses_double_links(session_factory, imported):
    with pytest.raises(MatchCandidateConflict):
        with session_scope(session_factory) as session:
            repo = StatementRepository(session)
            record = repo.get_line_record(imported["deposit"].id)
            record.matched_receipt_id = "RCV-001"
            flush_links(session)

"""
Reconciliation service: auto-match, manual actions, deletion and listings.
"""

from decimal import Decimal
from typing import Callable, Optional, Sequence
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..config import ReconConfig
from ..ledger.running_balance import DateWindow
from ..matching.engine import AutoMatcher
from ..models.reconciliation import (
    AutoMatchResult,
    CandidateKind,
    CandidateRef,
    ClearPreview,
    ClearResult,
    LineStats,
    ReconciliationStatus,
    StatementLine,
)
from ..models.statement import TransactionType
from ..reconciliation.state_machine import Action, ReconciliationStateMachine
from ..storage.database import session_scope
from ..storage.locks import AccountLockRegistry, account_locks
from ..storage.repository import StatementRepository, apply_line, to_line
from ..utils.exceptions import DeleteBlocked, MatchCandidateConflict, ValidationError

logger = logging.getLogger(__name__)

AUTO_MATCH_ACTOR = "auto-match"


def flush_links(session: Session) -> None:
    """Flush pending link writes, turning a uniqueness clash into a conflict."""
    try:
        session.flush()
    except IntegrityError as e:
        raise MatchCandidateConflict(
            "An accounting record is already linked to another statement line"
        ) from e


class ReconciliationService:
    """
    Operations that move statement lines through their reconciliation states.

    Each operation is one transaction, serialized with other work on the
    same account.
    """

    def __init__(
        self,
        config: ReconConfig,
        session_factory: sessionmaker,
        locks: AccountLockRegistry = account_locks,
    ):
        """
        Initialize the service.

        Args:
            config: Application configuration
            session_factory: Factory for database sessions
            locks: Per-account lock registry
        """
        self.config = config
        self.session_factory = session_factory
        self.locks = locks
        self.matcher = AutoMatcher(config.matching)
        self.state_machine = ReconciliationStateMachine()

    # -- auto-match -------------------------------------------------------

    def auto_match(self, account_id: str) -> AutoMatchResult:
        """
        Run the Auto-Matcher over every unmatched line of an account.

        Args:
            account_id: Bank account to reconcile

        Returns:
            Counts of newly matched, newly suggested and already resolved lines
        """
        with self.locks.hold(account_id), session_scope(self.session_factory) as session:
            repo = StatementRepository(session)
            repo.get_account(account_id, for_update=True)
            return self._auto_match(repo, account_id)

    def _auto_match(self, repo: StatementRepository, account_id: str) -> AutoMatchResult:
        """Auto-match inside an open transaction; the caller holds the account lock."""
        records = {record.id: record for record in repo.lines(account_id)}
        lines = {line_id: to_line(record) for line_id, record in records.items()}

        unmatched_dates = [
            line.transaction_date
            for line in lines.values()
            if line.status is ReconciliationStatus.UNMATCHED
        ]
        candidates = []
        if unmatched_dates:
            candidates = repo.candidates(
                account_id,
                min(unmatched_dates),
                max(unmatched_dates),
                self.config.matching.date_window_days,
            )

        result = self.matcher.run(list(lines.values()), candidates, repo.consumed_refs())

        for decision in result.decisions:
            line = lines[decision.line_id]
            action = (
                Action.AUTO_MATCH
                if decision.status is ReconciliationStatus.MATCHED
                else Action.AUTO_SUGGEST
            )
            self.state_machine.apply(
                line,
                action,
                candidate=decision.candidate,
                confidence=decision.confidence,
                notes=decision.note,
                actor=AUTO_MATCH_ACTOR,
            )
            apply_line(records[decision.line_id], line)

        flush_links(repo.session)
        return result

    # -- manual actions ---------------------------------------------------

    def confirm(self, line_id: int, actor: Optional[str] = None) -> StatementLine:
        """Accept a suggestion: suggested -> matched."""

        def mutate(repo: StatementRepository, line: StatementLine) -> None:
            note = f"Confirmed suggestion (confidence: {line.match_confidence}%)"
            self.state_machine.apply(line, Action.CONFIRM, notes=note, actor=actor)

        return self._mutate_line(line_id, mutate)

    def reject(self, line_id: int) -> StatementLine:
        """Turn down a suggestion: suggested -> unmatched, suggestion cleared."""

        def mutate(repo: StatementRepository, line: StatementLine) -> None:
            self.state_machine.apply(line, Action.REJECT)

        return self._mutate_line(line_id, mutate)

    def link(
        self,
        line_id: int,
        ref: CandidateRef,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> StatementLine:
        """
        Link an existing accounting record to a line by hand.

        Raises:
            NotFoundError: If the record does not exist
            MatchCandidateConflict: If the record is linked to or suggested for another line
            ValidationError: If amount or direction differ from the line's
        """

        def mutate(repo: StatementRepository, line: StatementLine) -> None:
            candidate = repo.get_candidate(ref, line.bank_account_id)
            if candidate.amount != line.amount:
                raise ValidationError(
                    f"{ref} is for {candidate.amount}, line {line.id} is for {line.amount}; "
                    "amounts must be equal"
                )
            if candidate.direction is not None and candidate.direction is not line.type:
                raise ValidationError(
                    f"{ref} settles a {candidate.direction.value}, "
                    f"line {line.id} is a {line.type.value}"
                )
            self._ensure_free(repo, ref, line.id)
            self.state_machine.apply(
                line, Action.MANUAL_LINK, candidate=ref, confidence=100,
                notes=notes or "Linked manually", actor=actor,
            )

        return self._mutate_line(line_id, mutate)

    def record(
        self,
        line_id: int,
        description: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> StatementLine:
        """
        Create a new accounting record from a line and link it: unmatched -> recorded.

        Money out becomes an expense, money in a receipt.
        """

        def mutate(repo: StatementRepository, line: StatementLine) -> None:
            if not self.state_machine.can_apply(line, Action.RECORD):
                # Raises with the remedy before anything is created
                self.state_machine.apply(line, Action.RECORD)
            kind = (
                CandidateKind.EXPENSE
                if line.type is TransactionType.DEBIT
                else CandidateKind.RECEIPT
            )
            text = description or line.description
            ref = repo.add_candidate(
                kind,
                amount=line.amount,
                txn_date=line.transaction_date,
                description=text,
                reference=line.reference,
                account_id=line.bank_account_id,
            )
            label = kind.value.replace("_", " ")
            self.state_machine.apply(
                line, Action.RECORD, candidate=ref, notes=f"{label}: {text}", actor=actor
            )

        return self._mutate_line(line_id, mutate)

    def unlink(self, line_id: int) -> StatementLine:
        """Undo a match: matched/recorded -> unmatched, links and notes cleared."""

        def mutate(repo: StatementRepository, line: StatementLine) -> None:
            self.state_machine.apply(line, Action.UNLINK)

        return self._mutate_line(line_id, mutate)

    def edit_line(
        self,
        line_id: int,
        debit: Optional[Decimal] = None,
        credit: Optional[Decimal] = None,
        description: Optional[str] = None,
    ) -> StatementLine:
        """
        Edit a line's amounts or description.

        Raises:
            InvalidTransition: If amounts change on a matched or recorded line
            ValidationError: If the result would not have exactly one non-zero side
        """

        def mutate(repo: StatementRepository, line: StatementLine) -> None:
            new_debit = line.debit if debit is None else abs(debit)
            new_credit = line.credit if credit is None else abs(credit)
            if (new_debit, new_credit) != (line.debit, line.credit):
                self.state_machine.ensure_amount_editable(line)
                if bool(new_debit) == bool(new_credit):
                    raise ValidationError(
                        "A statement line needs exactly one of debit or credit to be non-zero"
                    )
                line.debit, line.credit = new_debit, new_credit
            if description is not None:
                line.description = description

        return self._mutate_line(line_id, mutate)

    def delete_line(self, line_id: int) -> None:
        """
        Delete a single unmatched line.

        Raises:
            DeleteBlocked: If the line is not unmatched
        """
        account_id = self._account_of(line_id)
        with self.locks.hold(account_id), session_scope(self.session_factory) as session:
            repo = StatementRepository(session)
            line = to_line(repo.get_line_record(line_id))
            self.state_machine.ensure_deletable(line)
            repo.delete_lines([line_id])
            logger.info(f"Deleted statement line {line_id}")

    # -- bulk clear -------------------------------------------------------

    def preview_clear(self, account_id: str, window: DateWindow) -> ClearPreview:
        """Counts a bulk clear over the window would see."""
        with session_scope(self.session_factory) as session:
            repo = StatementRepository(session)
            repo.get_account(account_id)
            records = repo.lines(account_id, start=window.start, end=window.end)
            reconciled = sum(1 for r in records if r.status != ReconciliationStatus.UNMATCHED.value)
            return ClearPreview(total_count=len(records), reconciled_count=reconciled)

    def clear_unmatched(
        self, account_id: str, window: DateWindow, strict: bool = False
    ) -> ClearResult:
        """
        Delete unmatched lines dated inside the window.

        Suggested, matched and recorded lines are never deleted.

        Args:
            account_id: Bank account
            window: Inclusive date range
            strict: Refuse the whole clear if any reconciled line is in range

        Raises:
            DeleteBlocked: In strict mode, when reconciled lines are in range
        """
        with self.locks.hold(account_id), session_scope(self.session_factory) as session:
            repo = StatementRepository(session)
            repo.get_account(account_id, for_update=True)
            records = repo.lines(account_id, start=window.start, end=window.end)

            deletable = [r.id for r in records if r.status == ReconciliationStatus.UNMATCHED.value]
            blocked = len(records) - len(deletable)
            if blocked and strict:
                raise DeleteBlocked(
                    f"{blocked} reconciled line(s) between {window.start} and {window.end} "
                    "cannot be deleted: unlink or reject them first"
                )

            deleted = repo.delete_lines(deletable)
            logger.info(
                f"Cleared {deleted} unmatched line(s) for {account_id} "
                f"({window.start} to {window.end}); {blocked} reconciled line(s) kept"
            )
            return ClearResult(deleted_count=deleted, blocked_count=blocked)

    # -- queries ----------------------------------------------------------

    def list_lines(
        self,
        account_id: str,
        statuses: Optional[Sequence[ReconciliationStatus]] = None,
        window: Optional[DateWindow] = None,
    ) -> list[StatementLine]:
        with session_scope(self.session_factory) as session:
            repo = StatementRepository(session)
            repo.get_account(account_id)
            records = repo.lines(
                account_id,
                statuses=statuses,
                start=window.start if window else None,
                end=window.end if window else None,
            )
            return [to_line(r) for r in records]

    def stats(self, account_id: str) -> LineStats:
        """Reconciliation progress; matched includes recorded lines."""
        with session_scope(self.session_factory) as session:
            repo = StatementRepository(session)
            repo.get_account(account_id)
            counts = repo.status_counts(account_id)
        return LineStats(
            total=sum(counts.values()),
            matched=counts.get(ReconciliationStatus.MATCHED, 0)
            + counts.get(ReconciliationStatus.RECORDED, 0),
            suggested=counts.get(ReconciliationStatus.SUGGESTED, 0),
            unmatched=counts.get(ReconciliationStatus.UNMATCHED, 0),
        )

    # -- helpers ----------------------------------------------------------

    def _account_of(self, line_id: int) -> str:
        with session_scope(self.session_factory) as session:
            return StatementRepository(session).get_line_record(line_id).bank_account_id

    def _mutate_line(
        self,
        line_id: int,
        mutate: Callable[[StatementRepository, StatementLine], None],
    ) -> StatementLine:
        """Load a line under its account lock, change it and write it back."""
        account_id = self._account_of(line_id)
        with self.locks.hold(account_id), session_scope(self.session_factory) as session:
            repo = StatementRepository(session)
            repo.get_account(account_id, for_update=True)
            record = repo.get_line_record(line_id)
            line = to_line(record)
            mutate(repo, line)
            apply_line(record, line)
            flush_links(session)
            return line

    @staticmethod
    def _ensure_free(repo: StatementRepository, ref: CandidateRef, line_id: int) -> None:
        holder = repo.line_holding(ref)
        if holder is None or holder.id == line_id:
            return
        if holder.status == ReconciliationStatus.SUGGESTED.value:
            remedy = f"reject the suggestion on line {holder.id} first"
        else:
            remedy = f"unlink line {holder.id} first"
        raise MatchCandidateConflict(f"{ref} is already taken by line {holder.id}: {remedy}")

"""
Queries over the reconciliation schema and conversion to domain objects.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence
import logging

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from ..models.reconciliation import (
    BankAccount,
    CandidateKind,
    CandidateRef,
    MatchCandidate,
    ReconciliationStatus,
    StatementLine,
)
from ..models.statement import ParsedLine, ParseResult, TransactionType, ZERO
from ..utils.exceptions import NotFoundError
from .database import (
    BankAccountRecord,
    CandidateColumns,
    ExpenseRecord,
    FundTransferRecord,
    JournalEntryRecord,
    ReceiptRecord,
    StatementLineRecord,
    StatementUploadRecord,
)

logger = logging.getLogger(__name__)

CANDIDATE_MODELS = {
    CandidateKind.EXPENSE: ExpenseRecord,
    CandidateKind.RECEIPT: ReceiptRecord,
    CandidateKind.FUND_TRANSFER: FundTransferRecord,
    CandidateKind.JOURNAL_ENTRY: JournalEntryRecord,
}

MATCHED_COLUMNS = {
    CandidateKind.EXPENSE: "matched_expense_id",
    CandidateKind.RECEIPT: "matched_receipt_id",
    CandidateKind.FUND_TRANSFER: "matched_fund_transfer_id",
    CandidateKind.JOURNAL_ENTRY: "matched_entry_id",
}


def matched_ref(record: StatementLineRecord) -> Optional[CandidateRef]:
    """The candidate a stored line is linked to, if any."""
    for kind, column in MATCHED_COLUMNS.items():
        value = getattr(record, column)
        if value is not None:
            return CandidateRef(kind, value)
    return None


def to_line(record: StatementLineRecord) -> StatementLine:
    suggested = None
    if record.suggested_kind and record.suggested_id:
        suggested = CandidateRef(CandidateKind(record.suggested_kind), record.suggested_id)
    return StatementLine(
        id=record.id,
        bank_account_id=record.bank_account_id,
        transaction_date=record.transaction_date,
        description=record.description or "",
        reference=record.reference or "",
        debit=record.debit or ZERO,
        credit=record.credit or ZERO,
        balance=record.balance or ZERO,
        currency=record.currency,
        status=ReconciliationStatus(record.status),
        upload_id=record.upload_id,
        matched=matched_ref(record),
        suggested=suggested,
        match_confidence=record.match_confidence,
        notes=record.notes,
        matched_at=record.matched_at,
        matched_by=record.matched_by,
        created_at=record.created_at,
    )


def apply_line(record: StatementLineRecord, line: StatementLine) -> None:
    """Write a line's editable and reconciliation fields back to its row."""
    record.description = line.description
    record.debit = line.debit
    record.credit = line.credit
    record.status = line.status.value
    for kind, column in MATCHED_COLUMNS.items():
        linked = line.matched is not None and line.matched.kind is kind
        setattr(record, column, line.matched.id if linked else None)
    record.suggested_kind = line.suggested.kind.value if line.suggested else None
    record.suggested_id = line.suggested.id if line.suggested else None
    record.match_confidence = line.match_confidence
    record.notes = line.notes
    record.matched_at = line.matched_at
    record.matched_by = line.matched_by


def to_account(record: BankAccountRecord) -> BankAccount:
    return BankAccount(
        id=record.id,
        name=record.name,
        currency=record.currency,
        opening_balance=record.opening_balance or ZERO,
        opening_balance_date=record.opening_balance_date,
        account_number=record.account_number,
    )


def to_candidate(
    kind: CandidateKind, record: CandidateColumns, direction: Optional[TransactionType]
) -> MatchCandidate:
    return MatchCandidate(
        ref=CandidateRef(kind, record.id),
        amount=record.amount,
        candidate_date=record.txn_date,
        description=record.description or "",
        reference=record.reference or "",
        created_at=record.created_at,
        direction=direction,
    )


class StatementRepository:
    """
    Data access for one unit of work.

    All methods run inside the caller's session; committing is left to
    session_scope.
    """

    def __init__(self, session: Session):
        self.session = session

    # -- accounts ---------------------------------------------------------

    def add_account(
        self,
        name: str,
        currency: str = "IDR",
        opening_balance: Decimal = ZERO,
        opening_balance_date: Optional[date] = None,
        account_number: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> BankAccount:
        record = BankAccountRecord(
            name=name,
            currency=currency.upper(),
            opening_balance=opening_balance,
            opening_balance_date=opening_balance_date,
            account_number=account_number,
        )
        if account_id:
            record.id = account_id
        self.session.add(record)
        self.session.flush()
        logger.info(f"Created bank account {record.id} ({name})")
        return to_account(record)

    def get_account(self, account_id: str, for_update: bool = False) -> BankAccount:
        """
        Load a bank account.

        Args:
            account_id: Account identifier
            for_update: Lock the account row until the transaction ends

        Raises:
            NotFoundError: If the account does not exist
        """
        stmt = select(BankAccountRecord).where(BankAccountRecord.id == account_id)
        if for_update:
            stmt = stmt.with_for_update()
        record = self.session.scalars(stmt).first()
        if record is None:
            raise NotFoundError(f"Bank account '{account_id}' does not exist")
        return to_account(record)

    def list_accounts(self) -> list[BankAccount]:
        records = self.session.scalars(select(BankAccountRecord).order_by(BankAccountRecord.name))
        return [to_account(r) for r in records]

    # -- uploads and lines ------------------------------------------------

    def existing_keys(self, account_id: str, dates: Iterable[date]) -> set[tuple]:
        """
        Dedup keys of stored lines on the given dates, across the account's history.

        Only the candidate dates are fetched; the composite
        (account, date) index keeps this lookup cheap as history grows.
        """
        dates = sorted(set(dates))
        if not dates:
            return set()
        keys: set[tuple] = set()
        for chunk_start in range(0, len(dates), 500):
            chunk = dates[chunk_start:chunk_start + 500]
            rows = self.session.execute(
                select(
                    StatementLineRecord.transaction_date,
                    StatementLineRecord.description,
                    StatementLineRecord.debit,
                    StatementLineRecord.credit,
                    StatementLineRecord.balance,
                ).where(
                    StatementLineRecord.bank_account_id == account_id,
                    StatementLineRecord.transaction_date.in_(chunk),
                )
            )
            keys.update(tuple(row) for row in rows)
        return keys

    def create_upload(
        self,
        account_id: str,
        filename: str,
        result: ParseResult,
        transaction_count: int,
        file_url: Optional[str] = None,
    ) -> StatementUploadRecord:
        """
        Record an ingestion batch with its statement metadata.

        Missing closing balance falls back to the last parsed balance and
        missing totals fall back to the parsed sums.
        """
        metadata = result.metadata
        closing = metadata.closing_balance
        if closing is None:
            closing = result.last_balance
        record = StatementUploadRecord(
            bank_account_id=account_id,
            filename=filename,
            file_url=file_url,
            source_format=result.source_format.value,
            period=metadata.period or None,
            start_date=metadata.start_date,
            end_date=metadata.end_date,
            opening_balance=metadata.opening_balance,
            closing_balance=closing,
            total_debits=(
                metadata.total_debits if metadata.total_debits is not None else result.total_debits
            ),
            total_credits=(
                metadata.total_credits if metadata.total_credits is not None else result.total_credits
            ),
            transaction_count=transaction_count,
            status="completed",
        )
        self.session.add(record)
        self.session.flush()
        return record

    def insert_lines(
        self, account_id: str, upload_id: Optional[str], lines: Sequence[ParsedLine]
    ) -> int:
        self.session.add_all(
            StatementLineRecord(
                bank_account_id=account_id,
                upload_id=upload_id,
                transaction_date=line.transaction_date,
                description=line.description,
                reference=line.reference,
                debit=line.debit,
                credit=line.credit,
                balance=line.balance,
                currency=line.currency,
                status=ReconciliationStatus.UNMATCHED.value,
            )
            for line in lines
        )
        self.session.flush()
        return len(lines)

    def get_line_record(self, line_id: int) -> StatementLineRecord:
        record = self.session.get(StatementLineRecord, line_id)
        if record is None:
            raise NotFoundError(f"Statement line {line_id} does not exist")
        return record

    def lines(
        self,
        account_id: str,
        statuses: Optional[Sequence[ReconciliationStatus]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[StatementLineRecord]:
        """Stored lines of an account in date order, then insertion order."""
        stmt = select(StatementLineRecord).where(StatementLineRecord.bank_account_id == account_id)
        if statuses:
            stmt = stmt.where(StatementLineRecord.status.in_([s.value for s in statuses]))
        if start is not None:
            stmt = stmt.where(StatementLineRecord.transaction_date >= start)
        if end is not None:
            stmt = stmt.where(StatementLineRecord.transaction_date <= end)
        stmt = stmt.order_by(StatementLineRecord.transaction_date, StatementLineRecord.id)
        return list(self.session.scalars(stmt))

    def status_counts(self, account_id: str) -> dict[ReconciliationStatus, int]:
        rows = self.session.execute(
            select(StatementLineRecord.status, func.count())
            .where(StatementLineRecord.bank_account_id == account_id)
            .group_by(StatementLineRecord.status)
        )
        return {ReconciliationStatus(status): count for status, count in rows}

    def delete_lines(self, line_ids: Sequence[int]) -> int:
        if not line_ids:
            return 0
        result = self.session.execute(
            delete(StatementLineRecord).where(StatementLineRecord.id.in_(line_ids))
        )
        return result.rowcount or 0

    def net_movement(self, account_id: str, start: Optional[date], end: date) -> Decimal:
        """Sum of credit - debit for lines dated start <= d < end."""
        stmt = select(StatementLineRecord.credit, StatementLineRecord.debit).where(
            StatementLineRecord.bank_account_id == account_id,
            StatementLineRecord.transaction_date < end,
        )
        if start is not None:
            stmt = stmt.where(StatementLineRecord.transaction_date >= start)
        # Summed here rather than in SQL so amounts stay exact Decimals
        return sum((credit - debit for credit, debit in self.session.execute(stmt)), ZERO)

    # -- candidates -------------------------------------------------------

    def consumed_refs(self) -> set[CandidateRef]:
        """Every candidate already linked to, or suggested for, some line."""
        refs: set[CandidateRef] = set()
        for kind, column in MATCHED_COLUMNS.items():
            col = getattr(StatementLineRecord, column)
            refs.update(
                CandidateRef(kind, value)
                for value in self.session.scalars(select(col).where(col.is_not(None)))
            )
        rows = self.session.execute(
            select(StatementLineRecord.suggested_kind, StatementLineRecord.suggested_id).where(
                StatementLineRecord.suggested_id.is_not(None)
            )
        )
        refs.update(CandidateRef(CandidateKind(kind), ident) for kind, ident in rows)
        return refs

    def line_holding(self, ref: CandidateRef) -> Optional[StatementLineRecord]:
        """The line a candidate is linked to or suggested for, if any."""
        column = getattr(StatementLineRecord, MATCHED_COLUMNS[ref.kind])
        return self.session.scalars(
            select(StatementLineRecord).where(
                or_(
                    column == ref.id,
                    (StatementLineRecord.suggested_kind == ref.kind.value)
                    & (StatementLineRecord.suggested_id == ref.id),
                )
            )
        ).first()

    def get_candidate(self, ref: CandidateRef, account_id: str) -> MatchCandidate:
        """
        Load one candidate record.

        Raises:
            NotFoundError: If the record does not exist
        """
        record = self.session.get(CANDIDATE_MODELS[ref.kind], ref.id)
        if record is None:
            raise NotFoundError(f"{ref.kind.value.replace('_', ' ').title()} '{ref.id}' does not exist")
        return to_candidate(ref.kind, record, self._direction(ref.kind, record, account_id))

    def candidates(
        self, account_id: str, start: date, end: date, window_days: int
    ) -> list[MatchCandidate]:
        """
        Candidate records of all four kinds dated around [start, end].

        Expenses, receipts and journal entries without an account apply to
        any account; fund transfers must name this account on one side.
        """
        low = start - timedelta(days=window_days)
        high = end + timedelta(days=window_days)
        found: list[MatchCandidate] = []

        for kind, model in CANDIDATE_MODELS.items():
            stmt = select(model).where(model.txn_date >= low, model.txn_date <= high)
            if kind is CandidateKind.FUND_TRANSFER:
                stmt = stmt.where(
                    or_(model.from_account_id == account_id, model.to_account_id == account_id)
                )
            else:
                stmt = stmt.where(
                    or_(model.bank_account_id.is_(None), model.bank_account_id == account_id)
                )
            for record in self.session.scalars(stmt.order_by(model.created_at, model.id)):
                found.append(to_candidate(kind, record, self._direction(kind, record, account_id)))

        logger.debug(f"Loaded {len(found)} candidates between {low} and {high}")
        return found

    @staticmethod
    def _direction(
        kind: CandidateKind, record: CandidateColumns, account_id: str
    ) -> Optional[TransactionType]:
        """Which side of the bank statement a candidate record settles."""
        if kind is CandidateKind.EXPENSE:
            return TransactionType.DEBIT
        if kind is CandidateKind.RECEIPT:
            return TransactionType.CREDIT
        if kind is CandidateKind.FUND_TRANSFER:
            outgoing = record.from_account_id == account_id
            incoming = record.to_account_id == account_id
            if outgoing and not incoming:
                return TransactionType.DEBIT
            if incoming and not outgoing:
                return TransactionType.CREDIT
        return None

    def add_candidate(
        self,
        kind: CandidateKind,
        amount: Decimal,
        txn_date: date,
        description: str = "",
        reference: str = "",
        account_id: Optional[str] = None,
        counter_account_id: Optional[str] = None,
        candidate_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> CandidateRef:
        """
        Create an accounting record a line can be linked to.

        For fund transfers, account_id is the source account and
        counter_account_id the destination.
        """
        model = CANDIDATE_MODELS[kind]
        record = model(amount=amount, txn_date=txn_date, description=description, reference=reference)
        if kind is CandidateKind.FUND_TRANSFER:
            record.from_account_id = account_id
            record.to_account_id = counter_account_id
        else:
            record.bank_account_id = account_id
        if candidate_id:
            record.id = candidate_id
        if created_at:
            record.created_at = created_at
        self.session.add(record)
        self.session.flush()
        return CandidateRef(kind, record.id)

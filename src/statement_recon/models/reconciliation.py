"""Data models for matching, reconciliation state and ingestion outcomes."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .statement import ParsedLine, ParseResult, TransactionType, ZERO
from ..utils.exceptions import ValidationError


class ReconciliationStatus(Enum):
    """Per-line reconciliation state."""

    UNMATCHED = "unmatched"
    SUGGESTED = "suggested"
    MATCHED = "matched"
    RECORDED = "recorded"

    @property
    def is_resolved(self) -> bool:
        """Resolved lines carry a matched reference and are never re-matched."""
        return self in (ReconciliationStatus.MATCHED, ReconciliationStatus.RECORDED)


class CandidateKind(Enum):
    """Accounting modules whose records can be linked to a statement line."""

    EXPENSE = "expense"
    RECEIPT = "receipt"
    FUND_TRANSFER = "fund_transfer"
    JOURNAL_ENTRY = "journal_entry"


class DuplicatePolicy(Enum):
    """Operator decision when an import contains already-stored lines."""

    SKIP = "skip"
    INSERT = "insert"


@dataclass(frozen=True)
class CandidateRef:
    """Reference to one accounting record of a given kind."""

    kind: CandidateKind
    id: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"

    @classmethod
    def parse(cls, value: str) -> "CandidateRef":
        """Build a reference from the "kind:id" form."""
        kind, sep, ident = value.partition(":")
        if not sep or not ident:
            raise ValidationError(f"Candidate reference must look like 'expense:<id>', got '{value}'")
        try:
            return cls(CandidateKind(kind), ident)
        except ValueError as e:
            kinds = ", ".join(k.value for k in CandidateKind)
            raise ValidationError(f"Unknown candidate kind '{kind}' (expected one of {kinds})") from e


@dataclass
class BankAccount:
    """Bank account as seen by the reconciliation core (read-only)."""

    id: str
    name: str
    currency: str
    opening_balance: Decimal = ZERO
    opening_balance_date: Optional[date] = None
    account_number: Optional[str] = None


@dataclass
class StatementLine:
    """A persisted statement line together with its reconciliation state."""

    id: int
    bank_account_id: str
    transaction_date: date
    description: str
    reference: str
    debit: Decimal
    credit: Decimal
    balance: Decimal
    currency: str
    status: ReconciliationStatus = ReconciliationStatus.UNMATCHED
    upload_id: Optional[str] = None
    matched: Optional[CandidateRef] = None
    suggested: Optional[CandidateRef] = None
    match_confidence: Optional[int] = None
    notes: Optional[str] = None
    matched_at: Optional[datetime] = None
    matched_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def amount(self) -> Decimal:
        return self.debit if self.debit else self.credit

    @property
    def type(self) -> TransactionType:
        return TransactionType.DEBIT if self.debit else TransactionType.CREDIT


@dataclass
class MatchCandidate:
    """An accounting record eligible to be linked to a statement line."""

    ref: CandidateRef
    amount: Decimal
    candidate_date: date
    description: str = ""
    reference: str = ""
    created_at: Optional[datetime] = None

    # None means the record can settle money in either direction
    direction: Optional[TransactionType] = None


@dataclass
class MatchDecision:
    """Auto-Matcher verdict for one statement line."""

    line_id: int
    candidate: CandidateRef
    confidence: int
    status: ReconciliationStatus
    reason: str
    date_variance_days: int = 0

    @property
    def note(self) -> str:
        if self.status is ReconciliationStatus.SUGGESTED:
            return f"Suggested match (confidence: {self.confidence}%)"
        return f"Auto-matched (confidence: {self.confidence}%)"


@dataclass
class AutoMatchResult:
    """Counts reported by one Auto-Matcher pass."""

    matched_count: int = 0
    suggested_count: int = 0
    skipped_count: int = 0
    unmatched_count: int = 0
    decisions: list[MatchDecision] = field(default_factory=list)

    def as_dict(self) -> dict[str, int]:
        return {
            "matched_count": self.matched_count,
            "suggested_count": self.suggested_count,
            "skipped_count": self.skipped_count,
        }


@dataclass
class DuplicateReport:
    """Result of comparing parsed lines against stored history."""

    candidates: list[ParsedLine]
    duplicates: list[ParsedLine]

    @property
    def has_duplicates(self) -> bool:
        return bool(self.duplicates)

    def resolve(self, policy: DuplicatePolicy) -> list[ParsedLine]:
        """Return the lines to insert under the given policy."""
        if policy is DuplicatePolicy.INSERT or not self.duplicates:
            return list(self.candidates)
        duplicate_ids = {id(line) for line in self.duplicates}
        return [line for line in self.candidates if id(line) not in duplicate_ids]


@dataclass
class IngestionResult:
    """Outcome of one ingestion batch."""

    parse_result: ParseResult
    duplicate_report: DuplicateReport
    duplicate_policy: DuplicatePolicy
    upload_id: Optional[str] = None
    inserted_count: int = 0
    file_url: Optional[str] = None
    match_result: Optional[AutoMatchResult] = None

    @property
    def parsed_count(self) -> int:
        return len(self.parse_result.lines)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicate_report.duplicates)

    @property
    def skipped_duplicates(self) -> int:
        return self.parsed_count - self.inserted_count


@dataclass
class ClearPreview:
    """What a bulk clear over a date range would do."""

    total_count: int
    reconciled_count: int

    @property
    def deletable_count(self) -> int:
        return self.total_count - self.reconciled_count


@dataclass
class ClearResult:
    """What a bulk clear actually did."""

    deleted_count: int
    blocked_count: int


@dataclass
class LineStats:
    """Reconciliation progress for one account."""

    total: int = 0
    matched: int = 0
    suggested: int = 0
    unmatched: int = 0

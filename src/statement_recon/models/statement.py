"""Data models for parsed bank statements."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import PurePath
from typing import Optional

from ..utils.exceptions import InputFormatError

ZERO = Decimal("0")


class SourceFormat(Enum):
    """Kind of file a statement arrives in."""

    DELIMITED = "delimited"
    SPREADSHEET = "spreadsheet"
    OCR = "ocr"

    @classmethod
    def from_filename(cls, filename: str) -> "SourceFormat":
        """
        Detect the source format from a file name.

        Args:
            filename: Name or path of the uploaded file

        Returns:
            Detected source format

        Raises:
            InputFormatError: If the extension is not supported
        """
        suffix = PurePath(filename).suffix.lower()
        for fmt, suffixes in _SUFFIXES.items():
            if suffix in suffixes:
                return fmt
        raise InputFormatError(
            f"Unsupported statement file type '{suffix or filename}'. "
            "Use CSV/TXT, XLSX or a PDF/image scan."
        )

    @property
    def carries_year(self) -> bool:
        """Whether dates in this format normally include the year."""
        return self is SourceFormat.SPREADSHEET


_SUFFIXES: dict[SourceFormat, tuple[str, ...]] = {
    SourceFormat.DELIMITED: (".csv", ".txt"),
    SourceFormat.SPREADSHEET: (".xlsx", ".xlsm"),
    SourceFormat.OCR: (".pdf", ".png", ".jpg", ".jpeg"),
}


class TransactionType(Enum):
    """Transaction direction from the bank's perspective."""

    CREDIT = "credit"  # Money in
    DEBIT = "debit"  # Money out


class RowIssue(Enum):
    """Row-level problems that are counted but never abort a batch."""

    DATE_UNPARSABLE = "date_unparsable"
    AMOUNT_UNPARSABLE = "amount_unparsable"
    BLANK_ROW = "blank_row"
    BALANCE_MARKER = "balance_marker"
    ZERO_AMOUNT = "zero_amount"
    CONFLICTING_AMOUNTS = "conflicting_amounts"


@dataclass
class ParsedLine:
    """
    Canonical transaction record produced by the row normalizer.

    At most one of debit/credit is non-zero. Amounts are always positive;
    the side they sit on gives the direction.
    """

    transaction_date: date
    description: str
    reference: str
    debit: Decimal
    credit: Decimal
    balance: Decimal = ZERO
    currency: str = "IDR"

    # Index of the source row, for diagnostics
    source_row: Optional[int] = None

    @property
    def amount(self) -> Decimal:
        """The non-zero side of the line."""
        return self.debit if self.debit else self.credit

    @property
    def type(self) -> TransactionType:
        return TransactionType.DEBIT if self.debit else TransactionType.CREDIT

    @property
    def dedup_key(self) -> tuple:
        """Identity used to recognise a re-imported transaction."""
        return (self.transaction_date, self.description, self.debit, self.credit, self.balance)


@dataclass
class StatementMetadata:
    """Values extracted from the statement's own header and footer rows."""

    period: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    opening_balance: Optional[Decimal] = None
    closing_balance: Optional[Decimal] = None
    total_debits: Optional[Decimal] = None
    total_credits: Optional[Decimal] = None

    @property
    def year(self) -> Optional[int]:
        """Working year implied by the statement period, if any."""
        return self.start_date.year if self.start_date else None


@dataclass
class ParseStats:
    """Counters for rows that were looked at but produced no line."""

    rows_seen: int = 0
    issues: Counter = field(default_factory=Counter)

    def record(self, issue: RowIssue) -> None:
        self.issues[issue] += 1

    def count(self, issue: RowIssue) -> int:
        return self.issues.get(issue, 0)

    @property
    def skipped_rows(self) -> int:
        """Rows dropped from output, excluding amount fallbacks to zero."""
        return sum(
            n for issue, n in self.issues.items() if issue is not RowIssue.AMOUNT_UNPARSABLE
        )


@dataclass
class ParseResult:
    """Outcome of parsing one statement file."""

    lines: list[ParsedLine]
    metadata: StatementMetadata
    stats: ParseStats
    source_format: SourceFormat
    header_row_index: int
    discrepancies: list[str] = field(default_factory=list)

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def last_balance(self) -> Optional[Decimal]:
        return self.lines[-1].balance if self.lines else None

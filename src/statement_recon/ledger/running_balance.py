"""
Running-balance ledger over an explicit date window.

The same computation serves a bank account (balance grows with credits on
the statement) and a debit-normal ledger account (asset/expense, balance
grows with debits).
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from ..models.reconciliation import ReconciliationStatus
from ..models.statement import ZERO
from ..utils.exceptions import ValidationError


class BalanceSide(Enum):
    """Which side increases an account's balance."""

    CREDIT_NORMAL = "credit_normal"
    DEBIT_NORMAL = "debit_normal"

    def signed(self, debit: Decimal, credit: Decimal) -> Decimal:
        if self is BalanceSide.DEBIT_NORMAL:
            return debit - credit
        return credit - debit


@dataclass(frozen=True)
class DateWindow:
    """Inclusive date range passed explicitly to every ledger query."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValidationError(
                f"Window start {self.start} is after its end {self.end}"
            )

    def __contains__(self, value: date) -> bool:
        return self.start <= value <= self.end


@dataclass
class LedgerEntry:
    """One movement on the account."""

    transaction_date: date
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str = ""
    reference: str = ""
    status: Optional[ReconciliationStatus] = None
    line_id: Optional[int] = None

    @property
    def is_credit_side(self) -> bool:
        return self.credit > 0 and not self.debit


@dataclass
class LedgerRow:
    entry: LedgerEntry
    balance: Decimal


@dataclass
class LedgerReport:
    """Opening balance, ordered rows with running balances and closing balance."""

    window: DateWindow
    side: BalanceSide
    opening_balance: Decimal
    rows: list[LedgerRow] = field(default_factory=list)

    @property
    def closing_balance(self) -> Decimal:
        return self.rows[-1].balance if self.rows else self.opening_balance

    @property
    def total_debits(self) -> Decimal:
        return sum((row.entry.debit for row in self.rows), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((row.entry.credit for row in self.rows), ZERO)


def ledger_order(entry: LedgerEntry) -> tuple:
    """Date ascending; on the same date credits come before debits."""
    return (entry.transaction_date, 0 if entry.is_credit_side else 1)


def effective_opening(
    stored_opening: Decimal,
    anchor: Optional[date],
    entries: Iterable[LedgerEntry],
    window: DateWindow,
    side: BalanceSide = BalanceSide.CREDIT_NORMAL,
) -> Decimal:
    """
    Roll the stored opening balance forward to the window start.

    Entries dated from the anchor (inclusive) to the window start
    (exclusive) are added; the anchor itself is never moved.
    """
    opening = stored_opening
    for entry in entries:
        if entry.transaction_date >= window.start:
            continue
        if anchor is not None and entry.transaction_date < anchor:
            continue
        opening += side.signed(entry.debit, entry.credit)
    return opening


def compute_running_balance(
    entries: Iterable[LedgerEntry],
    window: DateWindow,
    stored_opening: Decimal = ZERO,
    anchor: Optional[date] = None,
    side: BalanceSide = BalanceSide.CREDIT_NORMAL,
) -> LedgerReport:
    """
    Compute the ledger for a window.

    Args:
        entries: Movements of the account, in any order and any date
        window: Date window to report
        stored_opening: Opening balance as stored on the account
        anchor: Date the stored opening balance applies from
        side: Normal balance side of the account

    Returns:
        Ledger report; closing equals opening when the window is empty
    """
    entries = list(entries)
    opening = effective_opening(stored_opening, anchor, entries, window, side)

    report = LedgerReport(window=window, side=side, opening_balance=opening)
    balance = opening
    # sorted() is stable, so same-date same-side entries keep their input order
    for entry in sorted((e for e in entries if e.transaction_date in window), key=ledger_order):
        balance += side.signed(entry.debit, entry.credit)
        report.rows.append(LedgerRow(entry=entry, balance=balance))
    return report

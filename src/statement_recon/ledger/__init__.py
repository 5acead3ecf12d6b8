"""Running-balance ledger."""

from .running_balance import (
    BalanceSide,
    DateWindow,
    LedgerEntry,
    LedgerReport,
    LedgerRow,
    compute_running_balance,
    effective_opening,
)

__all__ = [
    "BalanceSide",
    "DateWindow",
    "LedgerEntry",
    "LedgerReport",
    "LedgerRow",
    "compute_running_balance",
    "effective_opening",
]

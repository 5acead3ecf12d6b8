"""
Ledger service: running balances of stored statement lines.
"""

import logging

from sqlalchemy.orm import sessionmaker

from ..ledger.running_balance import (
    BalanceSide,
    DateWindow,
    LedgerEntry,
    LedgerReport,
    compute_running_balance,
)
from ..models.reconciliation import BankAccount, ReconciliationStatus
from ..storage.database import session_scope
from ..storage.repository import StatementRepository

logger = logging.getLogger(__name__)


class LedgerService:
    """Builds ledger reports for a bank account over an explicit window."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def ledger(
        self,
        account_id: str,
        window: DateWindow,
        side: BalanceSide = BalanceSide.CREDIT_NORMAL,
    ) -> tuple[BankAccount, LedgerReport]:
        """
        Compute the running-balance ledger of an account.

        Every stored line counts, whatever its reconciliation status.

        Args:
            account_id: Bank account
            window: Inclusive date range to report
            side: Normal balance side used for accumulation

        Returns:
            Tuple of (account, ledger report)
        """
        with session_scope(self.session_factory) as session:
            repo = StatementRepository(session)
            account = repo.get_account(account_id)

            # Movements from the anchor up to the window start roll into the opening
            net = repo.net_movement(account_id, account.opening_balance_date, window.start)
            if side is BalanceSide.DEBIT_NORMAL:
                net = -net
            opening = account.opening_balance + net

            entries = [
                LedgerEntry(
                    transaction_date=r.transaction_date,
                    debit=r.debit,
                    credit=r.credit,
                    description=r.description,
                    reference=r.reference,
                    status=ReconciliationStatus(r.status),
                    line_id=r.id,
                )
                for r in repo.lines(account_id, start=window.start, end=window.end)
            ]

        report = compute_running_balance(
            entries, window, stored_opening=opening, anchor=window.start, side=side
        )
        logger.info(
            f"Ledger {account_id} {window.start}..{window.end}: opening {report.opening_balance}, "
            f"{len(report.rows)} rows, closing {report.closing_balance}"
        )
        return account, report

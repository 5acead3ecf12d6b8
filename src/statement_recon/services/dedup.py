"""
Deduplication filter against the account's stored history.
"""

from typing import Sequence
import logging

from ..models.reconciliation import DuplicateReport
from ..models.statement import ParsedLine
from ..storage.repository import StatementRepository

logger = logging.getLogger(__name__)


class DeduplicationFilter:
    """
    Flags parsed lines that already exist for the account.

    Identity is exact equality on (date, description, debit, credit,
    balance), compared with every stored line of the account regardless
    of which upload it came from. Identical lines inside one file are
    not flagged against each other: recurring transactions are legitimate.
    """

    def __init__(self, repository: StatementRepository):
        self.repository = repository

    def check(self, account_id: str, lines: Sequence[ParsedLine]) -> DuplicateReport:
        """
        Compare parsed lines with stored history.

        Args:
            account_id: Bank account the lines belong to
            lines: Parsed candidate lines

        Returns:
            Report listing the candidates and which of them are duplicates
        """
        existing = self.repository.existing_keys(
            account_id, (line.transaction_date for line in lines)
        )
        duplicates = [line for line in lines if line.dedup_key in existing]

        if duplicates:
            logger.info(f"{len(duplicates)} of {len(lines)} lines already exist for {account_id}")
        else:
            logger.debug(f"No duplicates among {len(lines)} lines for {account_id}")
        return DuplicateReport(candidates=list(lines), duplicates=duplicates)

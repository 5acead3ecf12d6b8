"""
Statement metadata extraction: period, opening/closing balance and totals.
"""

from datetime import date
from typing import Any, Optional, Sequence
import logging
import re

from ..models.statement import StatementMetadata
from .row_normalizer import cell_str, lead_text
from .rules import INDONESIAN_MONTH_NAMES, find_first_amount

logger = logging.getLogger(__name__)

PERIOD_PATTERN = re.compile(
    r"(\d{2})/(\d{2})/(\d{4})\s*-\s*(\d{2})/(\d{2})/(\d{4})"
)

# Field name -> markers looked for in a row's first two cells
BALANCE_MARKERS: dict[str, tuple[str, ...]] = {
    "opening_balance": ("SALDO AWAL", "OPENING BALANCE"),
    "total_debits": ("MUTASI DEBET", "MUTASI DB", "TOTAL DEBIT"),
    "total_credits": ("MUTASI KREDIT", "MUTASI CR", "TOTAL CREDIT"),
    "closing_balance": ("SALDO AKHIR", "CLOSING BALANCE"),
}


class MetadataExtractor:
    """
    Scans every row of a statement for summary markers.

    Unlike header detection this is not limited to the first rows: the
    summary block usually sits below the transaction table.
    """

    def extract(self, rows: Sequence[Sequence[Any]]) -> StatementMetadata:
        """
        Extract statement metadata.

        Args:
            rows: All tokenized rows of the statement

        Returns:
            Extracted metadata; fields stay None when their marker is absent
        """
        metadata = StatementMetadata()

        for row in rows:
            if not row:
                continue

            if not metadata.start_date:
                self._extract_period(row, metadata)

            lead = lead_text(row)
            for field_name, markers in BALANCE_MARKERS.items():
                if getattr(metadata, field_name) is not None:
                    continue
                if any(marker in lead for marker in markers):
                    value = find_first_amount(row, skip_text=markers)
                    if value is not None:
                        setattr(metadata, field_name, value)

        logger.info(
            f"Statement metadata: period={metadata.period or '-'}, "
            f"opening={metadata.opening_balance}, closing={metadata.closing_balance}, "
            f"debits={metadata.total_debits}, credits={metadata.total_credits}"
        )
        return metadata

    def _extract_period(self, row: Sequence[Any], metadata: StatementMetadata) -> None:
        """Read a "Periode : dd/mm/yyyy - dd/mm/yyyy" row."""
        text = " ".join(cell_str(c) for c in row)
        if "periode" not in text.lower() and "period" not in text.lower():
            return

        match = PERIOD_PATTERN.search(text)
        if not match:
            return

        d1, m1, y1, d2, m2, y2 = (int(g) for g in match.groups())
        try:
            metadata.start_date = date(y1, m1, d1)
            metadata.end_date = date(y2, m2, d2)
        except ValueError:
            logger.warning(f"Ignoring invalid statement period: {match.group(0)}")
            metadata.start_date = metadata.end_date = None
            return

        metadata.period = period_label(metadata.start_date)


def period_label(start: Optional[date]) -> str:
    """Human label for a statement period, e.g. "JANUARI 2025"."""
    if start is None:
        return ""
    return f"{INDONESIAN_MONTH_NAMES[start.month]} {start.year}"

"""
Row normalizer: converts data rows below the header into statement lines.
"""

from decimal import Decimal
from threading import Event
from typing import Any, Optional, Sequence
import logging

from ..config import NormalizerConfig
from ..models.statement import ParsedLine, ParseStats, RowIssue, ZERO
from ..utils.exceptions import ParseCancelled
from .header_locator import ColumnMap
from .rules import (
    DEFAULT_DATE_RULES,
    DateRule,
    YearHint,
    indicator_of,
    is_number,
    parse_date,
    try_parse_amount,
)

logger = logging.getLogger(__name__)


def cell_at(row: Sequence[Any], idx: Optional[int]) -> Any:
    """Cell at an index, or "" when the column is absent or the row is short."""
    if idx is None or idx < 0 or idx >= len(row):
        return ""
    return row[idx]


def cell_str(value: Any) -> str:
    """Render a cell as text; whole floats lose their ".0"."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value if value is not None else "").strip()


def lead_text(row: Sequence[Any], width: int = 2) -> str:
    """Upper-cased text of the first cells, where summary markers appear."""
    return " ".join(cell_str(c) for c in row[:width]).upper()


class RowNormalizer:
    """
    Walks data rows after the header until the statement footer.

    Rows that cannot be read are counted in ParseStats and skipped; they
    never abort the batch.
    """

    def __init__(
        self,
        config: NormalizerConfig,
        date_rules: Sequence[DateRule] = DEFAULT_DATE_RULES,
    ):
        """
        Initialize the normalizer.

        Args:
            config: Normalizer configuration (footer/opening markers)
            date_rules: Ordered date parsing rules
        """
        self.config = config
        self.date_rules = date_rules
        self.footer_markers = [m.upper() for m in config.footer_markers]
        self.opening_markers = [m.upper() for m in config.opening_markers]

    def normalize(
        self,
        rows: Sequence[Sequence[Any]],
        column_map: ColumnMap,
        year: Optional[YearHint],
        currency: str,
        stats: ParseStats,
        cancel_event: Optional[Event] = None,
    ) -> list[ParsedLine]:
        """
        Convert all data rows to statement lines.

        Args:
            rows: All tokenized rows of the statement
            column_map: Located columns
            year: Statement year or period for year-less dates
            currency: Currency of the bank account
            stats: Counters updated in place
            cancel_event: Set to abort the parse between rows

        Returns:
            Parsed lines in statement order

        Raises:
            ParseCancelled: If cancel_event is set while rows remain
        """
        lines: list[ParsedLine] = []

        for idx in range(column_map.header_row_index + 1, len(rows)):
            if cancel_event is not None and cancel_event.is_set():
                raise ParseCancelled(f"Parsing cancelled at row {idx}")

            row = rows[idx]
            stats.rows_seen += 1

            if not row or not any(cell_str(c) for c in row):
                stats.record(RowIssue.BLANK_ROW)
                continue

            lead = lead_text(row)
            if self.is_footer(lead):
                logger.debug(f"Stopped at footer row {idx}: {lead}")
                break
            if any(marker in lead for marker in self.opening_markers):
                stats.record(RowIssue.BALANCE_MARKER)
                continue

            line = self.normalize_row(row, idx, column_map, year, currency, stats)
            if line is not None:
                lines.append(line)

        logger.info(
            f"Normalized {len(lines)} lines, {stats.skipped_rows} rows skipped "
            f"({stats.count(RowIssue.DATE_UNPARSABLE)} with unreadable dates)"
        )
        return lines

    def is_footer(self, lead: str) -> bool:
        return any(marker in lead for marker in self.footer_markers)

    def normalize_row(
        self,
        row: Sequence[Any],
        idx: int,
        column_map: ColumnMap,
        year: Optional[YearHint],
        currency: str,
        stats: ParseStats,
    ) -> Optional[ParsedLine]:
        """
        Convert one data row to a statement line.

        Args:
            row: Row cells
            idx: Row index, for diagnostics
            column_map: Located columns
            year: Statement year or period for year-less dates
            currency: Currency of the bank account
            stats: Counters updated in place

        Returns:
            The parsed line, or None if the row was skipped
        """
        raw_date = cell_at(row, column_map.date)
        txn_date = parse_date(raw_date, year, self.date_rules)
        if txn_date is None:
            stats.record(RowIssue.DATE_UNPARSABLE)
            logger.debug(f"Row {idx}: unreadable date {raw_date!r}, skipping")
            return None

        if column_map.split_amounts:
            debit = self._amount(cell_at(row, column_map.debit), stats)
            credit = self._amount(cell_at(row, column_map.credit), stats)
        else:
            debit, credit = self._combined_amount(row, column_map, stats)

        if debit and credit:
            stats.record(RowIssue.CONFLICTING_AMOUNTS)
            logger.warning(f"Row {idx}: both debit {debit} and credit {credit} set, skipping")
            return None
        if not debit and not credit:
            stats.record(RowIssue.ZERO_AMOUNT)
            logger.debug(f"Row {idx}: no amount, skipping")
            return None

        balance = ZERO
        if column_map.balance is not None:
            balance = self._amount(cell_at(row, column_map.balance), stats)

        return ParsedLine(
            transaction_date=txn_date,
            description=self._description(row, column_map),
            reference=cell_str(cell_at(row, column_map.reference)),
            debit=debit,
            credit=credit,
            balance=balance,
            currency=currency,
            source_row=idx,
        )

    def _amount(self, value: Any, stats: ParseStats) -> Decimal:
        parsed = try_parse_amount(value)
        if parsed is None:
            stats.record(RowIssue.AMOUNT_UNPARSABLE)
            logger.debug(f"Unparsable amount {value!r}, using 0")
            return ZERO
        return parsed

    def _combined_amount(
        self, row: Sequence[Any], column_map: ColumnMap, stats: ParseStats
    ) -> tuple[Decimal, Decimal]:
        """
        Split a single amount column into debit and credit.

        The indicator cell wins over an inline CR/DB token; with neither,
        the amount is a debit.
        """
        raw = cell_at(row, column_map.amount)
        amount = self._amount(raw, stats)

        indicator = None
        if column_map.indicator is not None:
            indicator = indicator_of(cell_at(row, column_map.indicator))
        if indicator is None and not is_number(raw):
            indicator = indicator_of(raw)

        if indicator == "CR":
            return ZERO, amount
        return amount, ZERO

    def _description(self, row: Sequence[Any], column_map: ColumnMap) -> str:
        """Transaction type plus its detail cell when the statement splits them."""
        if column_map.description is None:
            return ""
        kind = cell_str(cell_at(row, column_map.description))
        detail_idx = column_map.description + 1
        detail = ""
        if detail_idx not in column_map.assigned():
            detail = cell_str(cell_at(row, detail_idx))
        if kind and detail:
            return f"{kind}; {detail}"
        return kind or detail

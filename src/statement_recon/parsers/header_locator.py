"""
Header row detection and column role assignment.
"""

from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence
import logging
import re

from ..config import HeaderConfig
from ..utils.exceptions import HeaderNotFound

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[a-z]+")


@dataclass
class ColumnMap:
    """Column index for every role found in the header row."""

    header_row_index: int
    date: int
    description: Optional[int] = None
    reference: Optional[int] = None
    amount: Optional[int] = None
    indicator: Optional[int] = None
    debit: Optional[int] = None
    credit: Optional[int] = None
    balance: Optional[int] = None

    @property
    def split_amounts(self) -> bool:
        """Whether debits and credits live in separate columns."""
        return self.amount is None

    def assigned(self) -> set[int]:
        """Indices that carry a role."""
        return {
            idx
            for idx in (
                self.date,
                self.description,
                self.reference,
                self.amount,
                self.indicator,
                self.debit,
                self.credit,
                self.balance,
            )
            if idx is not None
        }


def cell_text(cell: Any) -> str:
    return str(cell if cell is not None else "").strip().lower()


def matches_keyword(text: str, keyword: str) -> bool:
    """
    Whether a header cell mentions a keyword.

    Short keywords ("db", "tgl") must be whole words; longer ones may
    appear inside a word ("valuedate").
    """
    if keyword in _WORD.findall(text):
        return True
    return len(keyword) >= 4 and keyword in text


class HeaderLocator:
    """
    Finds the header row in the first rows of a statement and maps columns.
    """

    def __init__(self, config: HeaderConfig):
        """
        Initialize the locator.

        Args:
            config: Header keyword configuration
        """
        self.config = config

        # First matching rule wins for each cell. Debit/credit come before
        # the combined amount so "Mutasi Debet" is a debit column.
        self.role_rules: list[tuple[str, Sequence[str]]] = [
            ("date", config.date_keywords),
            ("debit", config.debit_keywords),
            ("credit", config.credit_keywords),
            ("balance", config.balance_keywords),
            ("amount", config.amount_keywords),
            ("description", config.description_keywords),
            ("reference", config.reference_keywords),
        ]

    def header_candidates(self, rows: Sequence[Sequence[Any]]) -> Iterator[int]:
        """
        Yield indices of rows in the scan window that look like a column header.

        A header row has a cell naming a date keyword and a cell naming a
        description or money keyword.
        """
        for idx, row in enumerate(rows[: self.config.scan_rows]):
            if not row:
                continue
            texts = [cell_text(c) for c in row]
            has_date = any(
                matches_keyword(t, k) for t in texts for k in self.config.date_keywords
            )
            has_marker = any(
                matches_keyword(t, k) for t in texts for k in self.config.marker_keywords
            )
            if has_date and has_marker:
                yield idx

    def locate(self, rows: Sequence[Sequence[Any]]) -> ColumnMap:
        """
        Find the header row and assign column roles.

        A row that looks like a header but lacks a date or amount column
        (e.g. "Last update: ..., Balance") is passed over for the next one.

        Args:
            rows: Tokenized statement rows

        Returns:
            Column map for the statement

        Raises:
            HeaderNotFound: If the header or its essential columns are missing
        """
        rejected: list[str] = []
        for header_idx in self.header_candidates(rows):
            try:
                column_map = self.map_columns(header_idx, rows[header_idx])
            except HeaderNotFound as e:
                logger.debug(f"Skipping header-like row {header_idx}: {e}")
                rejected.append(str(e))
                continue
            logger.info(f"Column positions: {column_map}")
            return column_map

        if rejected:
            raise HeaderNotFound("; ".join(rejected))
        raise HeaderNotFound(
            f"Could not find the column header in the first {self.config.scan_rows} rows. "
            "Expected a row naming a date column (Tanggal/Date/Tgl) and a description "
            "or amount column (Keterangan/Description/Mutasi/Amount/Saldo/Balance)."
        )

    def map_columns(self, header_idx: int, header_row: Sequence[Any]) -> ColumnMap:
        """
        Build the column map for one header row.

        Raises:
            HeaderNotFound: If the row has no date column or no amount columns
        """
        roles = self.assign_roles(header_row)

        if "date" not in roles:
            raise HeaderNotFound(f"Header row {header_idx} has no recognisable date column")

        column_map = ColumnMap(header_row_index=header_idx, **roles)

        if column_map.debit is not None and column_map.credit is not None:
            column_map.amount = None
        elif column_map.amount is not None:
            # One-sided split columns are read as the combined amount instead
            column_map.debit = column_map.credit = None
        elif column_map.debit is None and column_map.credit is None:
            raise HeaderNotFound(
                f"Header row {header_idx} has no debit/credit or amount column"
            )

        if column_map.amount is not None and column_map.indicator is None:
            neighbour = column_map.amount + 1
            if neighbour not in column_map.assigned():
                column_map.indicator = neighbour

        return column_map

    def assign_roles(self, header_row: Sequence[Any]) -> dict[str, int]:
        """
        Assign at most one role per cell, keeping the first column for each role.

        Args:
            header_row: Cells of the header row

        Returns:
            Mapping of role name to column index
        """
        roles: dict[str, int] = {}
        for idx, cell in enumerate(header_row):
            text = cell_text(cell)
            if not text:
                continue
            role = self._indicator_role(text) or self._role_for(text)
            if role and role not in roles:
                roles[role] = idx
        return roles

    def _indicator_role(self, text: str) -> Optional[str]:
        """A "DB/CR" style column names both sides and only flags direction."""
        words = _WORD.findall(text)
        has_debit = any(k in words for k in self.config.debit_keywords)
        has_credit = any(k in words for k in self.config.credit_keywords)
        return "indicator" if has_debit and has_credit else None

    def _role_for(self, text: str) -> Optional[str]:
        for role, keywords in self.role_rules:
            if any(matches_keyword(text, k) for k in keywords):
                return role
        return None

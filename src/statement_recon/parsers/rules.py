"""
Value parsing rules for statement cells.

Dates are parsed by an ordered list of independent rules where the first
rule that produces a date wins. Amounts resolve ambiguous grouping and
decimal separators the way Indonesian and English exports mix them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence, Union
import math
import numbers
import re

from ..utils.exceptions import YearRequired

# Spreadsheet serial dates count from 1900-01-01 as day 1 but include a
# 29 February 1900 that never existed, so day 0 lands on 1899-12-30.
SPREADSHEET_EPOCH = date(1900, 1, 1)
SERIAL_OFFSET_DAYS = 2
MAX_SERIAL = 2958465  # 9999-12-31

MONTHS: dict[str, int] = {
    "jan": 1, "january": 1, "januari": 1,
    "feb": 2, "february": 2, "februari": 2, "peb": 2, "pebruari": 2,
    "mar": 3, "march": 3, "maret": 3,
    "apr": 4, "april": 4,
    "may": 5, "mei": 5,
    "jun": 6, "june": 6, "juni": 6,
    "jul": 7, "july": 7, "juli": 7,
    "aug": 8, "august": 8, "agu": 8, "agt": 8, "agustus": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10, "okt": 10, "oktober": 10,
    "nov": 11, "november": 11, "nop": 11, "nopember": 11,
    "dec": 12, "december": 12, "des": 12, "desember": 12,
}

INDONESIAN_MONTH_NAMES = (
    "", "JANUARI", "FEBRUARI", "MARET", "APRIL", "MEI", "JUNI", "JULI",
    "AGUSTUS", "SEPTEMBER", "OKTOBER", "NOVEMBER", "DESEMBER",
)


def serial_to_date(serial: float) -> date:
    """Convert a spreadsheet day-count to a calendar date (time of day dropped)."""
    return SPREADSHEET_EPOCH + timedelta(days=math.floor(serial) - SERIAL_OFFSET_DAYS)


def date_to_serial(value: date) -> int:
    """Convert a calendar date back to its spreadsheet day-count."""
    return (value - SPREADSHEET_EPOCH).days + SERIAL_OFFSET_DAYS


@dataclass(frozen=True)
class StatementPeriod:
    """Statement date range that completes year-less dates."""

    start: date
    end: date

    def distance(self, value: date) -> int:
        """Days between a date and the period, 0 when inside it."""
        if value < self.start:
            return (self.start - value).days
        if value > self.end:
            return (value - self.end).days
        return 0

    def date_for(self, month: int, day: int) -> date:
        """
        Pick the year that puts day/month inside the period.

        A period spanning December to January reads 28/12 in the start year
        and 05/01 in the end year. Dates outside the period take the year
        that lands closest to it.

        Raises:
            ValueError: If day/month exists in none of the period's years
        """
        candidates = []
        for year in range(self.start.year, self.end.year + 1):
            try:
                candidates.append(date(year, month, day))
            except ValueError:
                continue
        if not candidates:
            raise ValueError(f"{day:02d}/{month:02d} is not a date in {self.start.year}-{self.end.year}")
        return min(candidates, key=self.distance)


# A bare year, or the statement period when the file declares one
YearHint = Union[int, StatementPeriod]


def complete_date(year: YearHint, month: int, day: int) -> date:
    if isinstance(year, StatementPeriod):
        return year.date_for(month, day)
    return date(year, month, day)


def is_number(value: Any) -> bool:
    return isinstance(value, (numbers.Real, Decimal)) and not isinstance(value, bool)


class DateRule(ABC):
    """One way of reading a transaction date out of a cell."""

    name: str = ""

    @abstractmethod
    def parse(self, value: Any, year: Optional[YearHint]) -> Optional[date]:
        """
        Try to read a date from a cell value.

        Args:
            value: Raw cell value
            year: Statement year or period, if known

        Returns:
            The date, or None when this rule does not apply
        """
        pass

    def needs_year(self, value: Any) -> bool:
        """Whether this rule would read the value but needs a year to do so."""
        return False


class NativeDateRule(DateRule):
    """Cells the reader already typed as dates."""

    name = "native"

    def parse(self, value: Any, year: Optional[YearHint]) -> Optional[date]:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return None


class SerialDateRule(DateRule):
    """Numeric cells holding a spreadsheet day-count."""

    name = "serial"

    def parse(self, value: Any, year: Optional[YearHint]) -> Optional[date]:
        if not is_number(value) or isinstance(value, Decimal):
            return None
        if math.isnan(value) or not 0 < value <= MAX_SERIAL:
            return None
        return serial_to_date(value)


class FullDateRule(DateRule):
    """dd/mm/yyyy or dd-mm-yyyy strings."""

    name = "full"
    pattern = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")

    def parse(self, value: Any, year: Optional[YearHint]) -> Optional[date]:
        match = self.pattern.match(str(value).strip())
        if not match:
            return None
        day, month, full_year = (int(g) for g in match.groups())
        return date(full_year, month, day)


class PartialDateRule(DateRule):
    """dd/mm strings, completed with the working statement year."""

    name = "partial"
    pattern = re.compile(r"^(\d{1,2})/(\d{1,2})$")

    def parse(self, value: Any, year: Optional[YearHint]) -> Optional[date]:
        match = self.pattern.match(str(value).strip())
        if not match:
            return None
        if year is None:
            raise YearRequired(
                f"Date '{value}' has no year; supply the statement year to import this file"
            )
        day, month = (int(g) for g in match.groups())
        return complete_date(year, month, day)

    def needs_year(self, value: Any) -> bool:
        return bool(self.pattern.match(str(value).strip()))


class MonthNameRule(DateRule):
    """dd <month-name> [yyyy] strings with English or Indonesian month names."""

    name = "month_name"
    pattern = re.compile(r"^(\d{1,2})[\s/-]+([A-Za-z]+)\.?(?:[\s/-]+(\d{4}))?$")

    def parse(self, value: Any, year: Optional[YearHint]) -> Optional[date]:
        match = self.pattern.match(str(value).strip())
        if not match:
            return None
        month = lookup_month(match.group(2))
        if month is None:
            return None
        explicit_year = match.group(3)
        if explicit_year:
            year = int(explicit_year)
        elif year is None:
            raise YearRequired(
                f"Date '{value}' has no year; supply the statement year to import this file"
            )
        return complete_date(year, month, int(match.group(1)))

    def needs_year(self, value: Any) -> bool:
        match = self.pattern.match(str(value).strip())
        return bool(match and not match.group(3) and lookup_month(match.group(2)))


DEFAULT_DATE_RULES: tuple[DateRule, ...] = (
    NativeDateRule(),
    SerialDateRule(),
    FullDateRule(),
    PartialDateRule(),
    MonthNameRule(),
)


def _strip_text_marker(value: Any) -> Any:
    # Exports prefix date text with an apostrophe to stop spreadsheets converting it
    if isinstance(value, str):
        return value.strip().lstrip("'")
    return value


def lookup_month(name: str) -> Optional[int]:
    """Resolve an English or Indonesian month name or abbreviation."""
    key = name.lower()
    return MONTHS.get(key) or MONTHS.get(key[:3])


def parse_date(
    value: Any,
    year: Optional[YearHint] = None,
    rules: Sequence[DateRule] = DEFAULT_DATE_RULES,
) -> Optional[date]:
    """
    Parse a cell as a date using the first rule that succeeds.

    Args:
        value: Raw cell value
        year: Statement year or period for year-less formats
        rules: Ordered date rules

    Returns:
        The parsed date or None if no rule applies

    Raises:
        YearRequired: If the value is year-less and no year is known
    """
    value = _strip_text_marker(value)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None

    for rule in rules:
        try:
            parsed = rule.parse(value, year)
        except (ValueError, OverflowError):
            # Shape matched but the calendar did not (e.g. 31/02)
            continue
        if parsed is not None:
            return parsed
    return None


def needs_year(value: Any, rules: Sequence[DateRule] = DEFAULT_DATE_RULES) -> bool:
    """Whether a date cell can only be read once a statement year is known."""
    value = _strip_text_marker(value)
    if value is None or is_number(value) or isinstance(value, (date, datetime)):
        return False
    return any(rule.needs_year(value) for rule in rules)


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

_NON_NUMERIC = re.compile(r"[^\d,.]")
_INDICATOR = re.compile(r"\b(CR|DB|DR)\b")
_EMPTY_AMOUNTS = {"", "-", "--"}
_AMOUNT_TOKEN = re.compile(r"(?<![\d/.,])-?\d[\d.,]*(?![\d/])")


def _resolve_both(text: str) -> Optional[str]:
    """Both separators present: the later one is the decimal point."""
    if "," not in text or "." not in text:
        return None
    if text.rfind(",") > text.rfind("."):
        return text.replace(".", "").replace(",", ".")
    return text.replace(",", "")


def _resolve_comma_only(text: str) -> Optional[str]:
    """Only commas: a single comma is the decimal point, several are grouping."""
    if "," not in text:
        return None
    if text.count(",") == 1:
        return text.replace(",", ".")
    return text.replace(",", "")


def _resolve_dots(text: str) -> Optional[str]:
    """No comma: dots are grouping separators."""
    return text.replace(".", "")


SEPARATOR_RULES = (_resolve_both, _resolve_comma_only, _resolve_dots)


def try_parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse an amount cell, telling unparsable input apart from empty input.

    Signs and indicator tokens are ignored; direction is decided by the
    column layout, not by the number.

    Args:
        value: Raw cell value

    Returns:
        Non-negative Decimal, zero for empty cells, or None if unparsable
    """
    if value is None:
        return Decimal("0")
    if is_number(value):
        if isinstance(value, float) and math.isnan(value):
            return Decimal("0")
        return abs(Decimal(str(value)))

    text = str(value).strip()
    if text in _EMPTY_AMOUNTS:
        return Decimal("0")

    cleaned = _NON_NUMERIC.sub("", text)
    if not any(ch.isdigit() for ch in cleaned):
        return None

    for rule in SEPARATOR_RULES:
        resolved = rule(cleaned)
        if resolved is not None:
            break
    try:
        return Decimal(resolved)
    except InvalidOperation:
        return None


def parse_amount(value: Any) -> Decimal:
    """Parse an amount cell; anything unparsable becomes zero."""
    parsed = try_parse_amount(value)
    return parsed if parsed is not None else Decimal("0")


def indicator_of(value: Any) -> Optional[str]:
    """
    Read a debit/credit indicator from a cell.

    Returns:
        "CR", "DB" or None
    """
    if value is None or is_number(value):
        return None
    match = _INDICATOR.search(str(value).upper())
    if not match:
        return None
    return "CR" if match.group(1) == "CR" else "DB"


def find_first_amount(cells: Sequence[Any], skip_text: Sequence[str] = ()) -> Optional[Decimal]:
    """
    Take the first numeric-looking token from a row of cells.

    Args:
        cells: Row cells to scan, left to right
        skip_text: Marker texts removed from a cell before looking for digits

    Returns:
        Parsed amount or None if no cell holds a number
    """
    for cell in cells:
        if is_number(cell):
            return abs(Decimal(str(cell)))
        text = str(cell or "")
        for marker in skip_text:
            text = re.sub(re.escape(marker), " ", text, flags=re.IGNORECASE)
        # Date fragments such as "01/01" are not amounts
        match = _AMOUNT_TOKEN.search(text)
        if match:
            parsed = try_parse_amount(match.group(0).rstrip(".,"))
            if parsed is not None:
                return parsed
    return None

"""Tests for date and amount parsing rules."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from statement_recon.parsers.rules import (
    StatementPeriod,
    date_to_serial,
    find_first_amount,
    indicator_of,
    needs_year,
    parse_amount,
    parse_date,
    serial_to_date,
    try_parse_amount,
)
from statement_recon.utils.exceptions import YearRequired


class TestAmounts:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("1.234,56", "1234.56"),
            ("1,234.56", "1234.56"),
            ("1.234", "1234"),
            ("1.234.567", "1234567"),
            ("1,234,567", "1234567"),
            ("12,5", "12.5"),
            ("Rp 2.500.000,00", "2500000.00"),
            ("-750.000,00", "750000.00"),
            ("1,500,000.00 CR", "1500000.00"),
        ],
    )
    def test_separator_resolution(self, raw, expected):
        assert parse_amount(raw) == Decimal(expected)

    @pytest.mark.parametrize("raw", ["", "-", "--", None])
    def test_empty_is_zero(self, raw):
        assert parse_amount(raw) == Decimal("0")

    def test_numbers_are_kept_exact(self):
        assert parse_amount(1500000) == Decimal("1500000")
        assert parse_amount(12.5) == Decimal("12.5")
        assert parse_amount(Decimal("-3.10")) == Decimal("3.10")

    def test_unparsable_is_distinguished_from_empty(self):
        assert try_parse_amount("n/a") is None
        assert try_parse_amount("") == Decimal("0")
        assert parse_amount("n/a") == Decimal("0")

    def test_first_amount_skips_markers_and_dates(self):
        cells = ["Saldo Awal : 01/01", "10.000.000,00"]
        assert find_first_amount(cells, skip_text=["SALDO AWAL"]) == Decimal("10000000.00")

    def test_first_amount_none_without_numbers(self):
        assert find_first_amount(["Mutasi Kredit :", ""]) is None

    @pytest.mark.parametrize(
        "raw, expected",
        [("CR", "CR"), ("db", "DB"), ("DR", "DB"), ("1,000.00 CR", "CR"), ("", None), (100, None)],
    )
    def test_indicator(self, raw, expected):
        assert indicator_of(raw) == expected


class TestDates:
    def test_serial_round_trip(self):
        day = date(2025, 1, 1)
        assert date_to_serial(day) == 45658
        assert serial_to_date(45658) == day
        assert serial_to_date(45658.75) == day

    def test_serial_cell(self):
        assert parse_date(45717) == date(2025, 3, 1)

    def test_native_dates(self):
        assert parse_date(datetime(2025, 2, 3, 10, 30)) == date(2025, 2, 3)
        assert parse_date(date(2025, 2, 3)) == date(2025, 2, 3)

    @pytest.mark.parametrize("raw", ["15/01/2025", "15-01-2025", "15/1/2025"])
    def test_full_dates_are_day_first(self, raw):
        assert parse_date(raw) == date(2025, 1, 15)

    def test_partial_date_uses_year(self):
        assert parse_date("15/01", year=2024) == date(2024, 1, 15)

    def test_partial_date_without_year_raises(self):
        with pytest.raises(YearRequired):
            parse_date("15/01")

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("28/12", date(2024, 12, 28)),
            ("05/01", date(2025, 1, 5)),
            ("10 Jan", date(2025, 1, 10)),
            # Outside the period: the year landing closest to it wins
            ("25/01", date(2025, 1, 25)),
            ("01/12", date(2024, 12, 1)),
        ],
    )
    def test_period_spanning_new_year(self, raw, expected):
        period = StatementPeriod(date(2024, 12, 20), date(2025, 1, 19))
        assert parse_date(raw, year=period) == expected

    def test_leap_day_takes_the_leap_year(self):
        period = StatementPeriod(date(2023, 12, 15), date(2024, 3, 14))
        assert parse_date("29/02", year=period) == date(2024, 2, 29)

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("05 Jan 2025", date(2025, 1, 5)),
            ("05-Agustus-2024", date(2024, 8, 5)),
            ("17 Mei", date(2023, 5, 17)),
            ("1 Des.", date(2023, 12, 1)),
        ],
    )
    def test_month_names(self, raw, expected):
        assert parse_date(raw, year=2023) == expected

    def test_impossible_date_is_skipped(self):
        assert parse_date("31/02/2025") is None
        assert parse_date("31/02", year=2025) is None

    def test_apostrophe_prefix_is_ignored(self):
        assert parse_date("'02/01", year=2025) == date(2025, 1, 2)
        assert needs_year("'02/01")

    @pytest.mark.parametrize("raw", ["", "   ", None, "PEND", "Saldo Awal"])
    def test_non_dates(self, raw):
        assert parse_date(raw, year=2025) is None

    def test_needs_year(self):
        assert needs_year("02/01")
        assert needs_year("17 Mei")
        assert not needs_year("02/01/2025")
        assert not needs_year("17 Mei 2025")
        assert not needs_year(45658)
        assert not needs_year("PEND")

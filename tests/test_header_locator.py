"""Tests for header row detection and column role assignment."""

import pytest

from statement_recon.config import HeaderConfig
from statement_recon.parsers import HeaderLocator
from statement_recon.utils.exceptions import HeaderNotFound


@pytest.fixture
def locator():
    return HeaderLocator(HeaderConfig())


def test_combined_amount_with_unlabelled_indicator(locator):
    rows = [
        ["Informasi Rekening - Mutasi Rekening"],
        ["Periode :", "01/01/2025 - 31/01/2025"],
        ["Tanggal Transaksi", "Keterangan", "Cabang", "Jumlah", "", "Saldo"],
    ]
    column_map = locator.locate(rows)

    assert column_map.header_row_index == 2
    assert column_map.date == 0
    assert column_map.description == 1
    assert column_map.reference == 2
    assert column_map.amount == 3
    assert column_map.indicator == 4
    assert column_map.balance == 5
    assert not column_map.split_amounts


def test_split_debit_credit_columns(locator):
    column_map = locator.locate([["Tanggal", "Keterangan", "Debet", "Kredit", "Saldo"]])

    assert column_map.split_amounts
    assert (column_map.debit, column_map.credit, column_map.balance) == (2, 3, 4)
    assert column_map.indicator is None


def test_mutasi_debet_is_a_debit_column(locator):
    column_map = locator.locate(
        [["Tgl", "Uraian", "Mutasi Debet", "Mutasi Kredit", "Saldo"]]
    )
    assert (column_map.debit, column_map.credit) == (2, 3)


def test_db_cr_column_is_an_indicator(locator):
    column_map = locator.locate(
        [["Tanggal", "Keterangan", "Cabang", "Mutasi", "DB/CR", "Saldo"]]
    )
    assert column_map.amount == 3
    assert column_map.indicator == 4


def test_english_headers(locator):
    column_map = locator.locate(
        [["Value Date", "Description", "Reference", "Withdrawal", "Deposit", "Balance"]]
    )
    assert column_map.date == 0
    assert column_map.reference == 2
    assert (column_map.debit, column_map.credit) == (3, 4)


def test_one_sided_split_column_reads_as_amount(locator):
    column_map = locator.locate([["Tanggal", "Keterangan", "Debit", "Amount"]])
    assert column_map.amount == 3
    assert column_map.debit is None and column_map.credit is None


def test_first_column_wins_for_a_role(locator):
    roles = locator.assign_roles(["Tanggal", "Tanggal Valuta", "Keterangan", "Saldo"])
    assert roles["date"] == 0


def test_header_beyond_scan_window_is_not_found():
    locator = HeaderLocator(HeaderConfig(scan_rows=2))
    rows = [["x"], ["y"], ["Tanggal", "Keterangan", "Jumlah"]]
    with pytest.raises(HeaderNotFound):
        locator.locate(rows)


def test_header_like_metadata_row_is_passed_over(locator):
    rows = [
        ["Last update: 01/02/2025", "Balance", "x"],
        ["Date", "Description", "Amount"],
        ["01/02/2025", "Coffee", "5.00"],
    ]
    column_map = locator.locate(rows)
    assert column_map.header_row_index == 1
    assert (column_map.date, column_map.description, column_map.amount) == (0, 1, 2)


def test_short_keywords_must_be_whole_words(locator):
    # "tgl" and "db" hidden inside longer words do not make a header
    rows = [["Status: KTGLX", "Saldo"], ["Tgl.", "Keterangan", "Mutasi", "DB/CR"]]
    assert locator.locate(rows).header_row_index == 1


def test_missing_amount_columns(locator):
    with pytest.raises(HeaderNotFound):
        locator.locate([["Tanggal", "Keterangan", "Cabang"]])


def test_no_header_at_all(locator):
    with pytest.raises(HeaderNotFound):
        locator.locate([["foo", "bar"], ["1", "2"]])

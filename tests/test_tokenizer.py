"""Tests for the delimited-text tokenizer."""

import pytest

from statement_recon.config import ReconConfig
from statement_recon.parsers import DelimitedTextTokenizer
from statement_recon.utils.exceptions import EmptyDocument


@pytest.fixture
def tokenizer():
    return DelimitedTextTokenizer(ReconConfig())


def test_detects_comma_delimiter(tokenizer, bca_csv):
    rows = tokenizer.tokenize(bca_csv)
    assert rows[3] == ["Periode :", "01/01/2025 - 31/01/2025"]


def test_detects_semicolon_delimiter(tokenizer, split_csv):
    rows = tokenizer.tokenize(split_csv)
    assert rows[0] == ["Tanggal", "Keterangan", "Debet", "Kredit", "Saldo"]
    assert rows[1] == ["03/02", "Transfer masuk", "", "1.000.000,00", "6.000.000,00"]


def test_tie_falls_back_to_default_delimiter(tokenizer):
    assert tokenizer.detect_delimiter("no separators here") == ";"


def test_quoted_delimiter_does_not_split(tokenizer):
    rows = tokenizer.tokenize(b'Tanggal,Jumlah\n01/01,"1,500.00"\n')
    assert rows[1] == ["01/01", "1,500.00"]


def test_quoted_newline_stays_in_one_record(tokenizer):
    rows = tokenizer.tokenize(b'a,b\n"line one\nline two",c\n')
    assert len(rows) == 2
    assert rows[1] == ["line one\nline two", "c"]


def test_blank_lines_and_carriage_returns_are_dropped(tokenizer):
    rows = tokenizer.tokenize(b"a;b\r\n\r\n;\r\nc;d\r\n")
    assert rows == [["a", "b"], ["", ""], ["c", "d"]]


def test_cells_are_trimmed(tokenizer):
    assert tokenizer.split_cells("  x ; y  ", ";") == ["x", "y"]


def test_latin1_fallback(tokenizer):
    rows = tokenizer.tokenize("Tanggal;Caf\xe9\n".encode("latin-1"))
    assert rows[0][1] == "Caf\xe9"


def test_empty_file_raises(tokenizer):
    with pytest.raises(EmptyDocument):
        tokenizer.tokenize(b"\n\n  \n")

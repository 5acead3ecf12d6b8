"""Parsers for delimited, spreadsheet and OCR bank statements."""

from .header_locator import ColumnMap, HeaderLocator
from .metadata_extractor import MetadataExtractor
from .ocr_adapter import OcrEngine, OcrOutput, OcrTransaction
from .row_normalizer import RowNormalizer
from .spreadsheet_reader import SpreadsheetReader
from .statement_parser import StatementParser, check_totals
from .tokenizer import DelimitedTextTokenizer

__all__ = [
    "ColumnMap",
    "HeaderLocator",
    "MetadataExtractor",
    "OcrEngine",
    "OcrOutput",
    "OcrTransaction",
    "RowNormalizer",
    "SpreadsheetReader",
    "StatementParser",
    "check_totals",
    "DelimitedTextTokenizer",
]

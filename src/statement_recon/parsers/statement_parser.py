"""
Statement parser: turns an uploaded file into normalized statement lines.

Pipeline: tokenize (or read the workbook, or take OCR rows) -> extract
metadata -> locate the header -> normalize rows -> check totals.
"""

from decimal import Decimal
from threading import Event
from typing import Any, Optional, Sequence
import logging

from ..config import ReconConfig
from ..models.statement import ParseResult, ParseStats, SourceFormat, StatementMetadata
from ..utils.exceptions import EmptyDocument, InputFormatError, TotalsMismatch, YearRequired
from .header_locator import ColumnMap, HeaderLocator
from .metadata_extractor import MetadataExtractor
from .ocr_adapter import OcrEngine, rows_from_ocr
from .row_normalizer import RowNormalizer, cell_at
from .rules import DEFAULT_DATE_RULES, StatementPeriod, YearHint, needs_year
from .spreadsheet_reader import SpreadsheetReader
from .tokenizer import DelimitedTextTokenizer

logger = logging.getLogger(__name__)


class StatementParser:
    """
    Parser for exported bank statements in any supported source format.

    A file-level problem (unreadable bytes, no header, missing year,
    cancellation) raises and nothing is returned; row-level problems are
    counted in the result's ParseStats.
    """

    def __init__(self, config: ReconConfig):
        """
        Initialize the parser with configuration.

        Args:
            config: Application configuration object
        """
        self.config = config
        self.tokenizer = DelimitedTextTokenizer(config)
        self.spreadsheet_reader = SpreadsheetReader()
        self.header_locator = HeaderLocator(config.header)
        self.metadata_extractor = MetadataExtractor()
        self.normalizer = RowNormalizer(config.normalizer, DEFAULT_DATE_RULES)

    def parse(
        self,
        content: bytes,
        source_format: SourceFormat,
        currency: Optional[str] = None,
        year: Optional[int] = None,
        cancel_event: Optional[Event] = None,
        ocr_engine: Optional[OcrEngine] = None,
        filename: str = "",
    ) -> ParseResult:
        """
        Parse raw statement content.

        Args:
            content: Raw file bytes
            source_format: Format of the file
            currency: Currency of the bank account
            year: Statement year for sources whose dates omit it
            cancel_event: Set to abort the parse
            ocr_engine: Recognition engine, required for OCR sources
            filename: Original file name, passed to the OCR engine

        Returns:
            Parse result with lines, metadata and row statistics

        Raises:
            InputFormatError: On any file-level problem
        """
        logger.info(f"Parsing {source_format.value} statement ({len(content)} bytes)")

        if source_format is SourceFormat.DELIMITED:
            rows: list[list[Any]] = self.tokenizer.tokenize(content)
        elif source_format is SourceFormat.SPREADSHEET:
            rows = self.spreadsheet_reader.read(content)
        else:
            if ocr_engine is None:
                raise InputFormatError(
                    "Scanned statements need an OCR engine; none is configured"
                )
            rows = rows_from_ocr(ocr_engine.extract(content, filename))

        return self.parse_rows(rows, source_format, currency, year, cancel_event)

    def parse_rows(
        self,
        rows: Sequence[Sequence[Any]],
        source_format: SourceFormat,
        currency: Optional[str] = None,
        year: Optional[int] = None,
        cancel_event: Optional[Event] = None,
    ) -> ParseResult:
        """
        Parse statement rows that are already split into cells.

        Args:
            rows: Ordered rows of cells
            source_format: Format the rows came from
            currency: Currency of the bank account
            year: Statement year for year-less dates
            cancel_event: Set to abort the parse

        Returns:
            Parse result

        Raises:
            EmptyDocument: If there are no rows
            HeaderNotFound: If no header row is found
            YearRequired: If year-less dates occur and no year is known
            TotalsMismatch: If strict totals checking is on and totals disagree
        """
        if not rows:
            raise EmptyDocument("The statement contains no rows")

        currency = currency or self.config.normalizer.default_currency
        metadata = self.metadata_extractor.extract(rows)
        column_map = self.header_locator.locate(rows)

        working_year = self.resolve_year(metadata, year)
        if working_year is None:
            self._require_year(rows, column_map)

        stats = ParseStats()
        lines = self.normalizer.normalize(
            rows, column_map, working_year, currency, stats, cancel_event
        )

        result = ParseResult(
            lines=lines,
            metadata=metadata,
            stats=stats,
            source_format=source_format,
            header_row_index=column_map.header_row_index,
        )
        result.discrepancies = check_totals(result)

        if result.discrepancies:
            for message in result.discrepancies:
                logger.warning(f"Totals check: {message}")
            if self.config.ingestion.strict_totals:
                raise TotalsMismatch("; ".join(result.discrepancies))

        logger.info(
            f"Parsed {len(lines)} lines from {stats.rows_seen} data rows "
            f"(header at row {column_map.header_row_index})"
        )
        return result

    @staticmethod
    def resolve_year(metadata: StatementMetadata, year: Optional[int]) -> Optional[YearHint]:
        """
        The statement period fixes the working year; the caller's year is a fallback.

        A complete period is returned as a StatementPeriod so that year-less
        dates in a December-January statement land in the right year.
        """
        if metadata.year is None:
            return year
        if year is not None and year != metadata.year:
            logger.warning(
                f"Statement period says {metadata.year}, ignoring supplied year {year}"
            )
        if metadata.end_date is not None and metadata.end_date >= metadata.start_date:
            return StatementPeriod(metadata.start_date, metadata.end_date)
        return metadata.year

    def _require_year(self, rows: Sequence[Sequence[Any]], column_map: ColumnMap) -> None:
        """Reject the file before any row is normalized if a date lacks its year."""
        for idx in range(column_map.header_row_index + 1, len(rows)):
            value = cell_at(rows[idx], column_map.date)
            if needs_year(value, self.normalizer.date_rules):
                raise YearRequired(
                    f"Row {idx} has date '{value}' without a year and the statement "
                    "has no period line; supply the statement year (--year)"
                )


def check_totals(result: ParseResult) -> list[str]:
    """
    Compare parsed lines with the statement's own summary figures.

    Args:
        result: Parse result to check

    Returns:
        Human-readable discrepancies, empty when everything agrees
    """
    metadata = result.metadata
    discrepancies: list[str] = []

    if metadata.total_debits is not None and metadata.total_debits != result.total_debits:
        discrepancies.append(
            f"debit total {result.total_debits} differs from statement {metadata.total_debits}"
        )
    if metadata.total_credits is not None and metadata.total_credits != result.total_credits:
        discrepancies.append(
            f"credit total {result.total_credits} differs from statement {metadata.total_credits}"
        )

    if metadata.opening_balance is not None and metadata.closing_balance is not None:
        expected: Decimal = (
            metadata.opening_balance + result.total_credits - result.total_debits
        )
        if expected != metadata.closing_balance:
            discrepancies.append(
                f"opening {metadata.opening_balance} + credits - debits = {expected}, "
                f"statement closing balance is {metadata.closing_balance}"
            )

    return discrepancies

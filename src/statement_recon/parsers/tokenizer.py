"""
Delimited-text tokenizer for exported bank statements.
Splits raw bytes into rows of cells, sniffing the delimiter.
"""

from typing import Optional
import logging

from ..config import ReconConfig
from ..utils.exceptions import EmptyDocument, InputFormatError

logger = logging.getLogger(__name__)

QUOTE = '"'
CANDIDATE_DELIMITERS = (",", ";")


class DelimitedTextTokenizer:
    """
    Tokenizer for comma- or semicolon-separated statement exports.

    Bank CSV exports mix metadata rows of different widths with the
    transaction table, so a strict CSV reader is not used: a quote
    character simply toggles an in-quote state in which neither the
    delimiter nor a newline splits.
    """

    def __init__(self, config: ReconConfig):
        """
        Initialize the tokenizer with configuration.

        Args:
            config: Application configuration object
        """
        self.config = config

    def tokenize(self, content: bytes, delimiter: Optional[str] = None) -> list[list[str]]:
        """
        Split raw file content into rows of trimmed cell strings.

        Args:
            content: Raw file bytes
            delimiter: Force a delimiter instead of sniffing one

        Returns:
            Ordered rows, blank lines removed

        Raises:
            InputFormatError: If the bytes cannot be decoded
            EmptyDocument: If no rows remain
        """
        text = self.decode(content)
        delimiter = delimiter or self.detect_delimiter(text)
        logger.debug(f"Using delimiter {delimiter!r}")

        rows = [self.split_cells(record, delimiter) for record in self.split_records(text)]
        if not rows:
            raise EmptyDocument("The statement file contains no rows")

        logger.info(f"Tokenized {len(rows)} rows")
        return rows

    def decode(self, content: bytes) -> str:
        """Decode bytes with the configured encoding, falling back once."""
        input_config = self.config.input
        try:
            return content.decode(input_config.encoding)
        except UnicodeDecodeError:
            logger.warning(
                f"File is not valid {input_config.encoding}, retrying as {input_config.fallback_encoding}"
            )
        try:
            return content.decode(input_config.fallback_encoding)
        except UnicodeDecodeError as e:
            raise InputFormatError(f"Unable to decode statement file: {e}") from e

    def detect_delimiter(self, text: str) -> str:
        """
        Choose between comma and semicolon by counting both in the first lines.

        Args:
            text: Decoded file content

        Returns:
            The delimiter that occurs more often; the configured default on a tie
        """
        head = "\n".join(text.splitlines()[: self.config.input.sniff_lines])
        counts = {d: head.count(d) for d in CANDIDATE_DELIMITERS}
        logger.debug(f"Delimiter counts: {counts}")

        commas, semicolons = counts[","], counts[";"]
        if commas > semicolons:
            return ","
        if semicolons > commas:
            return ";"
        return self.config.input.default_delimiter

    @staticmethod
    def split_records(text: str) -> list[str]:
        """
        Split text into records on newlines that are outside quotes.

        Carriage returns are dropped and blank records discarded.
        """
        records: list[str] = []
        current: list[str] = []
        in_quotes = False

        for char in text:
            if char == QUOTE:
                in_quotes = not in_quotes
                current.append(char)
            elif char == "\n" and not in_quotes:
                record = "".join(current)
                if record.strip():
                    records.append(record)
                current = []
            elif char != "\r":
                current.append(char)

        record = "".join(current)
        if record.strip():
            records.append(record)

        return records

    @staticmethod
    def split_cells(record: str, delimiter: str) -> list[str]:
        """Split one record into cells, honouring quoted segments."""
        cells: list[str] = []
        current: list[str] = []
        in_quotes = False

        for char in record:
            if char == QUOTE:
                in_quotes = not in_quotes
            elif char == delimiter and not in_quotes:
                cells.append("".join(current).strip())
                current = []
            else:
                current.append(char)

        cells.append("".join(current).strip())
        return cells

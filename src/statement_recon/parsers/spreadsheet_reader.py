"""
Spreadsheet statement reader.
Loads the first worksheet of an XLSX export as rows of raw cell values.
"""

from io import BytesIO
from typing import Any
import logging

import pandas as pd

from ..utils.exceptions import EmptyDocument, InputFormatError

logger = logging.getLogger(__name__)


class SpreadsheetReader:
    """
    Reader for XLSX statement exports.

    Cells keep their native type: numbers stay numbers so that
    serial-number dates can be recognised, and date-formatted cells
    arrive as datetimes.
    """

    def read(self, content: bytes, sheet: Any = 0) -> list[list[Any]]:
        """
        Read a workbook into rows of cells.

        Args:
            content: Raw workbook bytes
            sheet: Sheet name or index (first sheet by default)

        Returns:
            Ordered rows; empty cells become empty strings

        Raises:
            InputFormatError: If the workbook cannot be read
            EmptyDocument: If the sheet has no rows
        """
        try:
            df = pd.read_excel(
                BytesIO(content),
                sheet_name=sheet,
                header=None,
                dtype=object,
                engine="openpyxl",
            )
        except Exception as e:
            logger.error(f"Failed to read spreadsheet: {e}")
            raise InputFormatError(f"Failed to read spreadsheet: {e}") from e

        rows = self._rows_from_dataframe(df)
        if not rows:
            raise EmptyDocument("The spreadsheet contains no rows")

        logger.info(f"Read {len(rows)} rows from spreadsheet")
        return rows

    def _rows_from_dataframe(self, df: pd.DataFrame) -> list[list[Any]]:
        """
        Convert a DataFrame to a list of rows, dropping fully empty ones.

        Args:
            df: DataFrame read without header inference

        Returns:
            List of rows with NaN replaced by ""
        """
        rows: list[list[Any]] = []
        for _, series in df.iterrows():
            row = ["" if pd.isna(value) else value for value in series.tolist()]
            while row and row[-1] == "":
                row.pop()
            if any(str(cell).strip() for cell in row):
                rows.append(row)
        return rows

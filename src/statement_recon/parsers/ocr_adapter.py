"""
Adapter for the external OCR collaborator.

The recognition engine itself is not part of this package. It hands back
either raw rows of cells or a list of pre-parsed transactions; the latter
are rendered under a synthetic header so the regular pipeline applies.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol
import logging

from ..utils.exceptions import EmptyDocument

logger = logging.getLogger(__name__)

OCR_HEADER = ["Tanggal", "Keterangan", "Cabang", "Mutasi", "DB/CR", "Saldo"]


@dataclass
class OcrTransaction:
    """One transaction as recognised by the OCR engine."""

    date: str
    description: str
    amount: Any
    indicator: Optional[str] = None
    balance: Any = None
    reference: str = ""


@dataclass
class OcrOutput:
    """What an OCR engine returns: rows of cells, pre-parsed transactions, or both."""

    rows: list[list[Any]] = field(default_factory=list)
    transactions: list[OcrTransaction] = field(default_factory=list)


class OcrEngine(Protocol):
    """Interface of the external OCR collaborator."""

    def extract(self, content: bytes, filename: str) -> OcrOutput:
        ...


def transactions_to_rows(transactions: list[OcrTransaction]) -> list[list[Any]]:
    """Render pre-parsed transactions as a table with a recognisable header."""
    rows: list[list[Any]] = [list(OCR_HEADER)]
    for txn in transactions:
        rows.append(
            [
                txn.date,
                txn.description,
                txn.reference,
                txn.amount,
                txn.indicator or "",
                txn.balance if txn.balance is not None else "",
            ]
        )
    return rows


def rows_from_ocr(output: OcrOutput) -> list[list[Any]]:
    """
    Turn OCR output into rows for the statement parser.

    Raw rows take precedence because they keep the statement's own
    header and summary block.

    Raises:
        EmptyDocument: If the engine recognised nothing
    """
    if output.rows:
        logger.info(f"OCR returned {len(output.rows)} rows")
        return output.rows
    if output.transactions:
        logger.info(f"OCR returned {len(output.transactions)} pre-parsed transactions")
        return transactions_to_rows(output.transactions)
    raise EmptyDocument("OCR did not recognise any rows in the document")

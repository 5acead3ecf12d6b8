"""
Excel report generator for statement ledgers.
Creates a workbook with a summary, the running-balance ledger and the
statement lines with their reconciliation status.
"""

from datetime import datetime
from pathlib import Path
import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..config import ReconConfig
from ..ledger.running_balance import BalanceSide, LedgerReport
from ..models.reconciliation import BankAccount, LineStats, ReconciliationStatus, StatementLine
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
MATCH_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
VARIANCE_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
UNMATCHED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
MONEY_FORMAT = "#,##0.00"

STATUS_FILLS = {
    ReconciliationStatus.MATCHED: MATCH_FILL,
    ReconciliationStatus.RECORDED: MATCH_FILL,
    ReconciliationStatus.SUGGESTED: VARIANCE_FILL,
    ReconciliationStatus.UNMATCHED: UNMATCHED_FILL,
}


class ExcelReportGenerator:
    """Generates Excel ledger reports with multiple sheets."""

    def __init__(self, config: ReconConfig):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.config = config

    def generate_report(
        self,
        account: BankAccount,
        ledger: LedgerReport,
        lines: list[StatementLine],
        stats: LineStats,
        output_path: Path,
    ) -> Path:
        """
        Generate the complete ledger report.

        Args:
            account: Bank account reported on
            ledger: Running-balance ledger for the window
            lines: Statement lines in the window
            stats: Reconciliation progress of the account
            output_path: Path for output file

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()

        # Remove default sheet
        if wb.active:
            wb.remove(wb.active)

        self._create_summary_sheet(wb, account, ledger, stats)
        self._create_ledger_sheet(wb, ledger)
        self._create_lines_sheet(wb, lines)

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Could not write report {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def _create_summary_sheet(
        self, wb: Workbook, account: BankAccount, ledger: LedgerReport, stats: LineStats
    ) -> None:
        """Create the summary sheet with key figures."""
        ws = wb.create_sheet("Summary")

        # Title
        ws["A1"] = f"Bank Ledger - {account.name}"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        ws["A3"] = "Account"
        ws["A3"].font = Font(bold=True)
        info = [
            ("Account ID:", account.id),
            ("Account Number:", account.account_number or ""),
            ("Currency:", account.currency),
            ("Period:", f"{ledger.window.start} to {ledger.window.end}"),
            (
                "Balance Side:",
                "Debit-normal" if ledger.side is BalanceSide.DEBIT_NORMAL else "Credit-normal (bank)",
            ),
            ("Generated At:", datetime.now().strftime("%Y-%m-%d %H:%M:%S")),
        ]
        row = 4
        for label, value in info:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = str(value)
            row += 1

        row += 1
        ws[f"A{row}"] = "Balances"
        ws[f"A{row}"].font = Font(bold=True)
        row += 1
        for label, amount in (
            ("Opening Balance:", ledger.opening_balance),
            ("Total Debits:", ledger.total_debits),
            ("Total Credits:", ledger.total_credits),
            ("Closing Balance:", ledger.closing_balance),
        ):
            ws[f"A{row}"] = label
            ws[f"B{row}"] = float(amount)
            ws[f"B{row}"].number_format = MONEY_FORMAT
            row += 1

        row += 1
        ws[f"A{row}"] = "Reconciliation"
        ws[f"A{row}"].font = Font(bold=True)
        row += 1
        for label, count in (
            ("Total Lines:", stats.total),
            ("Matched / Recorded:", stats.matched),
            ("Suggested:", stats.suggested),
            ("Unmatched:", stats.unmatched),
        ):
            ws[f"A{row}"] = label
            ws[f"B{row}"] = count
            row += 1

        # Adjust column widths
        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 40

    def _create_ledger_sheet(self, wb: Workbook, ledger: LedgerReport) -> None:
        """Create the running-balance sheet."""
        ws = wb.create_sheet("Ledger")
        self._write_headers(ws, ["Date", "Description", "Reference", "Debit", "Credit", "Balance"])

        ws.cell(row=2, column=2, value="Opening balance").font = Font(italic=True)
        opening = ws.cell(row=2, column=6, value=float(ledger.opening_balance))
        opening.number_format = MONEY_FORMAT

        for row_num, row in enumerate(ledger.rows, start=3):
            entry = row.entry
            row_data = [
                entry.transaction_date,
                entry.description,
                entry.reference,
                float(entry.debit) if entry.debit else None,
                float(entry.credit) if entry.credit else None,
                float(row.balance),
            ]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                if col >= 4:
                    cell.number_format = MONEY_FORMAT

        closing_row = len(ledger.rows) + 3
        ws.cell(row=closing_row, column=2, value="Closing balance").font = Font(bold=True)
        closing = ws.cell(row=closing_row, column=6, value=float(ledger.closing_balance))
        closing.number_format = MONEY_FORMAT
        closing.font = Font(bold=True)

        self._auto_fit_columns(ws)

    def _create_lines_sheet(self, wb: Workbook, lines: list[StatementLine]) -> None:
        """Create the statement lines sheet with status colour coding."""
        ws = wb.create_sheet("Statement Lines")
        self._write_headers(
            ws,
            [
                "Line ID",
                "Date",
                "Description",
                "Reference",
                "Debit",
                "Credit",
                "Status",
                "Linked Record",
                "Confidence",
                "Notes",
            ],
        )

        for row_num, line in enumerate(lines, start=2):
            linked = line.matched or line.suggested
            row_data = [
                line.id,
                line.transaction_date,
                line.description,
                line.reference,
                float(line.debit) if line.debit else None,
                float(line.credit) if line.credit else None,
                line.status.value,
                str(linked) if linked else "",
                f"{line.match_confidence}%" if line.match_confidence is not None else "",
                line.notes or "",
            ]
            fill = STATUS_FILLS[line.status]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                if col == 7:
                    cell.fill = fill
                    cell.alignment = Alignment(horizontal="center")
                elif col in (5, 6):
                    cell.number_format = MONEY_FORMAT

        self._auto_fit_columns(ws)

    @staticmethod
    def _write_headers(ws: Worksheet, headers: list[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            max_length = 0
            column = column_cells[0].column_letter

            for cell in column_cells:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))

            adjusted_width = min(max_length + 2, 50)
            ws.column_dimensions[column].width = adjusted_width

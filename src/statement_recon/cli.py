"""
Command-line interface for the bank statement reconciliation tool.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterator, Optional
import logging
import sys

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from sqlalchemy.orm import sessionmaker

from . import __version__
from .config import ReconConfig, generate_default_config, load_config
from .ledger.running_balance import BalanceSide, DateWindow
from .models.reconciliation import (
    CandidateRef,
    DuplicatePolicy,
    DuplicateReport,
    ReconciliationStatus,
    StatementLine,
)
from .models.statement import ParseResult, RowIssue, SourceFormat
from .reports.excel_generator import ExcelReportGenerator
from .services.ingestion import IngestionService
from .services.ledger import LedgerService
from .services.reconciliation import ReconciliationService
from .storage.database import (
    create_engine_from_config,
    init_schema,
    make_session_factory,
    session_scope,
)
from .storage.repository import StatementRepository
from .utils.exceptions import ReconciliationError
from .utils.logging_config import setup_logging

console = Console()

DATE_TYPE = click.DateTime(formats=["%Y-%m-%d"])
STATUS_STYLES = {
    ReconciliationStatus.MATCHED: "green",
    ReconciliationStatus.RECORDED: "green",
    ReconciliationStatus.SUGGESTED: "yellow",
    ReconciliationStatus.UNMATCHED: "red",
}


@dataclass
class AppContext:
    config: ReconConfig
    verbose: bool
    _session_factory: Optional[sessionmaker] = None

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            engine = create_engine_from_config(self.config.database)
            init_schema(engine)
            self._session_factory = make_session_factory(engine)
        return self._session_factory


@contextmanager
def _handle_errors(app: AppContext) -> Iterator[None]:
    """Report application errors in red and exit with status 1."""
    try:
        yield
    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        if app.verbose:
            console.print_exception()
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option("--db", "database_url", help="Override the database URL")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, config: Optional[Path], database_url: Optional[str], verbose: bool):
    """Bank statement import and reconciliation tool."""
    try:
        recon_config = load_config(config)
    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if database_url:
        recon_config.database.url = database_url

    log_file = Path(recon_config.logging.file) if recon_config.logging.file else None
    setup_logging(
        logging.DEBUG if verbose else recon_config.logging.level,
        log_file,
        recon_config.logging.format,
    )
    ctx.obj = AppContext(config=recon_config, verbose=verbose)


@main.command("init-db")
@click.pass_obj
def init_db(app: AppContext):
    """Create the database tables."""
    with _handle_errors(app):
        app.session_factory
        console.print(f"[green]Database ready: {app.config.database.url}[/green]")


@main.command("add-account")
@click.argument("name")
@click.option("--id", "account_id", help="Account identifier (generated if omitted)")
@click.option("--currency", default="IDR", show_default=True)
@click.option("--number", "account_number", help="Bank account number")
@click.option("--opening-balance", default="0", help="Opening balance amount")
@click.option("--opening-date", type=DATE_TYPE, help="Date the opening balance applies from")
@click.pass_obj
def add_account(
    app: AppContext,
    name: str,
    account_id: Optional[str],
    currency: str,
    account_number: Optional[str],
    opening_balance: str,
    opening_date: Optional[datetime],
):
    """Register a bank account."""
    with _handle_errors(app):
        with session_scope(app.session_factory) as session:
            account = StatementRepository(session).add_account(
                name,
                currency=currency,
                opening_balance=_decimal(opening_balance),
                opening_balance_date=opening_date.date() if opening_date else None,
                account_number=account_number,
                account_id=account_id,
            )
        console.print(f"[green]Created account {account.id} ({account.name})[/green]")


@main.command("parse")
@click.argument("statement_file", type=click.Path(exists=True, path_type=Path))
@click.option("--year", type=int, help="Statement year for files whose dates omit it")
@click.option("--currency", help="Currency of the account")
@click.option(
    "--format",
    "source_format",
    type=click.Choice([f.value for f in SourceFormat]),
    help="Override format detection",
)
@click.pass_obj
def parse(
    app: AppContext,
    statement_file: Path,
    year: Optional[int],
    currency: Optional[str],
    source_format: Optional[str],
):
    """
    Parse a statement file and display its lines without storing anything.

    STATEMENT_FILE: Path to the CSV, XLSX or scanned statement
    """
    with _handle_errors(app):
        service = IngestionService(app.config, app.session_factory)
        result = service.parse_file(
            statement_file.read_bytes(),
            statement_file.name,
            currency=currency,
            year=year,
            source_format=SourceFormat(source_format) if source_format else None,
        )
        _display_parse_result(statement_file.name, result)


@main.command("import")
@click.argument("account_id")
@click.argument("statement_file", type=click.Path(exists=True, path_type=Path))
@click.option("--year", type=int, help="Statement year for files whose dates omit it")
@click.option(
    "--format",
    "source_format",
    type=click.Choice([f.value for f in SourceFormat]),
    help="Override format detection",
)
@click.option(
    "--duplicates",
    type=click.Choice(["ask", "skip", "insert"]),
    default="ask",
    show_default=True,
    help="What to do with lines that are already stored",
)
@click.option("--no-match", is_flag=True, help="Do not run auto-match after importing")
@click.pass_obj
def import_statement(
    app: AppContext,
    account_id: str,
    statement_file: Path,
    year: Optional[int],
    source_format: Optional[str],
    duplicates: str,
    no_match: bool,
):
    """
    Import a statement file into a bank account.

    ACCOUNT_ID: Bank account to import into
    STATEMENT_FILE: Path to the CSV, XLSX or scanned statement
    """
    if no_match:
        app.config.matching.run_after_ingest = False

    with _handle_errors(app):
        service = IngestionService(app.config, app.session_factory)
        policy = None if duplicates == "ask" else DuplicatePolicy(duplicates)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(f"Importing {statement_file.name}...", total=None)
            result = service.ingest(
                account_id,
                statement_file.read_bytes(),
                statement_file.name,
                year=year,
                source_format=SourceFormat(source_format) if source_format else None,
                duplicate_policy=policy,
                decide_duplicates=lambda report: _ask_duplicates(report, progress),
            )

        table = Table(title=f"Import: {statement_file.name}")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Lines Parsed", str(result.parsed_count))
        table.add_row("Rows Skipped", str(result.parse_result.stats.skipped_rows))
        table.add_row("Duplicates Found", str(result.duplicate_count))
        table.add_row("Lines Inserted", str(result.inserted_count))
        if result.match_result:
            table.add_row("Auto-matched", str(result.match_result.matched_count))
            table.add_row("Suggested", str(result.match_result.suggested_count))
        console.print(table)

        for message in result.parse_result.discrepancies:
            console.print(f"[yellow]Totals check: {message}[/yellow]")
        if not result.inserted_count:
            console.print("[yellow]Zero new rows.[/yellow]")


@main.command("auto-match")
@click.argument("account_id")
@click.pass_obj
def auto_match(app: AppContext, account_id: str):
    """Match unmatched lines of an account to accounting records."""
    with _handle_errors(app):
        result = ReconciliationService(app.config, app.session_factory).auto_match(account_id)
        table = Table(title="Auto-match")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Matched", str(result.matched_count))
        table.add_row("Suggested", str(result.suggested_count))
        table.add_row("Already Resolved", str(result.skipped_count))
        table.add_row("Still Unmatched", str(result.unmatched_count))
        console.print(table)


@main.command("lines")
@click.argument("account_id")
@click.option(
    "--status",
    "statuses",
    multiple=True,
    type=click.Choice([s.value for s in ReconciliationStatus]),
    help="Only show lines with this status (repeatable)",
)
@click.option("--start", type=DATE_TYPE, help="First date to show")
@click.option("--end", type=DATE_TYPE, help="Last date to show")
@click.pass_obj
def lines(
    app: AppContext,
    account_id: str,
    statuses: tuple,
    start: Optional[datetime],
    end: Optional[datetime],
):
    """List statement lines of an account with reconciliation progress."""
    with _handle_errors(app):
        service = ReconciliationService(app.config, app.session_factory)
        window = None
        if start or end:
            window = DateWindow(
                start.date() if start else date.min,
                end.date() if end else date.max,
            )
        found = service.list_lines(
            account_id, [ReconciliationStatus(s) for s in statuses] or None, window
        )
        _display_lines(found)

        stats = service.stats(account_id)
        console.print(
            f"\nTotal {stats.total} | [green]matched {stats.matched}[/green] | "
            f"[yellow]suggested {stats.suggested}[/yellow] | [red]unmatched {stats.unmatched}[/red]"
        )


@main.command("confirm")
@click.argument("line_id", type=int)
@click.pass_obj
def confirm(app: AppContext, line_id: int):
    """Accept the suggested match of a line."""
    with _handle_errors(app):
        line = ReconciliationService(app.config, app.session_factory).confirm(line_id)
        console.print(f"[green]Line {line.id} matched to {line.matched}[/green]")


@main.command("reject")
@click.argument("line_id", type=int)
@click.pass_obj
def reject(app: AppContext, line_id: int):
    """Reject the suggested match of a line."""
    with _handle_errors(app):
        line = ReconciliationService(app.config, app.session_factory).reject(line_id)
        console.print(f"[green]Suggestion rejected; line {line.id} is unmatched[/green]")


@main.command("link")
@click.argument("line_id", type=int)
@click.argument("record")
@click.pass_obj
def link(app: AppContext, line_id: int, record: str):
    """
    Link a line to an existing accounting record.

    RECORD: kind:id, e.g. expense:EXP-001 or fund_transfer:FT-9
    """
    with _handle_errors(app):
        ref = CandidateRef.parse(record)
        line = ReconciliationService(app.config, app.session_factory).link(line_id, ref)
        console.print(f"[green]Line {line.id} matched to {line.matched}[/green]")


@main.command("record")
@click.argument("line_id", type=int)
@click.option("--description", help="Description for the new record")
@click.pass_obj
def record(app: AppContext, line_id: int, description: Optional[str]):
    """Create an expense or receipt from a line and link it."""
    with _handle_errors(app):
        line = ReconciliationService(app.config, app.session_factory).record(
            line_id, description=description
        )
        console.print(f"[green]Line {line.id} recorded as {line.matched}[/green]")


@main.command("unlink")
@click.argument("line_id", type=int)
@click.pass_obj
def unlink(app: AppContext, line_id: int):
    """Remove the match of a line."""
    with _handle_errors(app):
        line = ReconciliationService(app.config, app.session_factory).unlink(line_id)
        console.print(f"[green]Line {line.id} is unmatched[/green]")


@main.command("delete-line")
@click.argument("line_id", type=int)
@click.pass_obj
def delete_line(app: AppContext, line_id: int):
    """Delete one unmatched line."""
    with _handle_errors(app):
        ReconciliationService(app.config, app.session_factory).delete_line(line_id)
        console.print(f"[green]Line {line_id} deleted[/green]")


@main.command("clear")
@click.argument("account_id")
@click.option("--start", type=DATE_TYPE, required=True, help="First date to clear")
@click.option("--end", type=DATE_TYPE, required=True, help="Last date to clear")
@click.option("--strict", is_flag=True, help="Refuse if any reconciled line is in range")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def clear(
    app: AppContext,
    account_id: str,
    start: datetime,
    end: datetime,
    strict: bool,
    yes: bool,
):
    """Delete unmatched lines of an account in a date range."""
    with _handle_errors(app):
        service = ReconciliationService(app.config, app.session_factory)
        window = DateWindow(start.date(), end.date())
        preview = service.preview_clear(account_id, window)

        console.print(
            f"{preview.total_count} line(s) between {window.start} and {window.end}: "
            f"{preview.deletable_count} deletable, {preview.reconciled_count} reconciled (kept)"
        )
        if not preview.deletable_count:
            console.print("[yellow]Nothing to delete[/yellow]")
            return
        if not yes and not click.confirm("Delete the unmatched lines?", default=False):
            console.print("[yellow]Cancelled[/yellow]")
            return

        result = service.clear_unmatched(account_id, window, strict=strict)
        console.print(f"[green]Deleted {result.deleted_count} line(s)[/green]")


@main.command("ledger")
@click.argument("account_id")
@click.option("--start", type=DATE_TYPE, required=True, help="First date of the window")
@click.option("--end", type=DATE_TYPE, required=True, help="Last date of the window")
@click.option("--debit-normal", is_flag=True, help="Accumulate debit - credit")
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Write an Excel report")
@click.pass_obj
def ledger(
    app: AppContext,
    account_id: str,
    start: datetime,
    end: datetime,
    debit_normal: bool,
    output: Optional[Path],
):
    """Show the running-balance ledger of an account."""
    with _handle_errors(app):
        window = DateWindow(start.date(), end.date())
        side = BalanceSide.DEBIT_NORMAL if debit_normal else BalanceSide.CREDIT_NORMAL
        account, report = LedgerService(app.session_factory).ledger(account_id, window, side)

        table = Table(title=f"Ledger: {account.name} ({window.start} to {window.end})")
        table.add_column("Date")
        table.add_column("Description")
        table.add_column("Debit", justify="right")
        table.add_column("Credit", justify="right")
        table.add_column("Balance", justify="right")
        table.add_row("", "[italic]Opening balance[/italic]", "", "", f"{report.opening_balance:,.2f}")
        for row in report.rows:
            entry = row.entry
            table.add_row(
                str(entry.transaction_date),
                _truncate(entry.description),
                f"{entry.debit:,.2f}" if entry.debit else "",
                f"{entry.credit:,.2f}" if entry.credit else "",
                f"{row.balance:,.2f}",
            )
        table.add_row("", "[bold]Closing balance[/bold]", "", "", f"{report.closing_balance:,.2f}")
        console.print(table)

        if output:
            service = ReconciliationService(app.config, app.session_factory)
            report_path = ExcelReportGenerator(app.config).generate_report(
                account=account,
                ledger=report,
                lines=service.list_lines(account_id, window=window),
                stats=service.stats(account_id),
                output_path=output,
            )
            console.print(f"\n[green]Report generated: {report_path}[/green]")


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _ask_duplicates(report: DuplicateReport, progress: Progress) -> DuplicatePolicy:
    """Ask the operator what to do with already-stored lines."""
    progress.stop()
    table = Table(title=f"{len(report.duplicates)} line(s) already stored")
    table.add_column("Date")
    table.add_column("Description")
    table.add_column("Debit", justify="right")
    table.add_column("Credit", justify="right")
    for line in report.duplicates[:20]:
        table.add_row(
            str(line.transaction_date),
            _truncate(line.description),
            f"{line.debit:,.2f}" if line.debit else "",
            f"{line.credit:,.2f}" if line.credit else "",
        )
    console.print(table)
    insert = click.confirm("Insert the duplicates anyway?", default=False)
    return DuplicatePolicy.INSERT if insert else DuplicatePolicy.SKIP


def _display_parse_result(filename: str, result: ParseResult) -> None:
    """Display parsed lines and statement metadata in console."""
    table = Table(title=f"Statement Lines: {filename}")
    table.add_column("Date")
    table.add_column("Description")
    table.add_column("Reference")
    table.add_column("Debit", justify="right")
    table.add_column("Credit", justify="right")
    table.add_column("Balance", justify="right")

    for line in result.lines[:20]:  # Show first 20
        table.add_row(
            str(line.transaction_date),
            _truncate(line.description),
            line.reference or "-",
            f"{line.debit:,.2f}" if line.debit else "",
            f"{line.credit:,.2f}" if line.credit else "",
            f"{line.balance:,.2f}",
        )
    console.print(table)

    if len(result.lines) > 20:
        console.print(f"\n... and {len(result.lines) - 20} more lines")

    metadata = result.metadata
    console.print(f"\nTotal lines: {len(result.lines)}")
    console.print(f"Period: {metadata.period or '-'}")
    console.print(f"Opening balance: {metadata.opening_balance if metadata.opening_balance is not None else '-'}")
    console.print(f"Closing balance: {metadata.closing_balance if metadata.closing_balance is not None else '-'}")
    console.print(f"Debits: {result.total_debits:,.2f}  Credits: {result.total_credits:,.2f}")

    skipped = {issue.value: result.stats.count(issue) for issue in RowIssue if result.stats.count(issue)}
    if skipped:
        console.print(f"Row issues: {skipped}")
    for message in result.discrepancies:
        console.print(f"[yellow]Totals check: {message}[/yellow]")


def _display_lines(found: list[StatementLine]) -> None:
    table = Table(title="Statement Lines")
    table.add_column("ID", justify="right")
    table.add_column("Date")
    table.add_column("Description")
    table.add_column("Debit", justify="right")
    table.add_column("Credit", justify="right")
    table.add_column("Status")
    table.add_column("Record")
    table.add_column("Notes")

    for line in found:
        style = STATUS_STYLES[line.status]
        linked = line.matched or line.suggested
        table.add_row(
            str(line.id),
            str(line.transaction_date),
            _truncate(line.description),
            f"{line.debit:,.2f}" if line.debit else "",
            f"{line.credit:,.2f}" if line.credit else "",
            f"[{style}]{line.status.value}[/{style}]",
            str(linked) if linked else "-",
            line.notes or "",
        )
    console.print(table)


def _truncate(text: str, width: int = 40) -> str:
    return text[:width] + "..." if len(text) > width else text


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value.replace(",", ""))
    except InvalidOperation:
        raise click.BadParameter(f"'{value}' is not a number")


if __name__ == "__main__":
    main()

"""
Command-line interface for the ready-mix bank reconciliation engine.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import sys

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import load_config, generate_default_config, ReconConfig
from .models.transaction import ReconciliationStats, ReconciliationStatus
from .reconciliation.ingestion import parse_ledger
from .reconciliation.service import ReconciliationService
from .reports.excel_generator import ExcelReportGenerator
from .storage import create_store
from .utils.exceptions import ReconciliationError
from .utils.logging_config import setup_logging

console = Console()


class _Context:
    def __init__(self, config: ReconConfig, verbose: bool):
        self.config = config
        self.verbose = verbose
        self._service: Optional[ReconciliationService] = None

    @property
    def service(self) -> ReconciliationService:
        if self._service is None:
            store = create_store(self.config)
            self._service = ReconciliationService(store, store, self.config)
        return self._service


pass_context = click.make_pass_decorator(_Context)


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option("--database", help="Override the database URL")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, config: Optional[Path], database: Optional[str], verbose: bool):
    """Ready-mix concrete bank reconciliation tool."""
    try:
        recon_config = load_config(config)
    except ReconciliationError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    level = logging.DEBUG if verbose else recon_config.logging.level
    log_file = Path(recon_config.logging.file) if recon_config.logging.file else None
    setup_logging(
        level,
        log_file=log_file,
        log_format=recon_config.logging.format,
        sql_echo=recon_config.storage.echo,
    )

    if database:
        recon_config.storage.database_url = database
        recon_config.storage.backend = "sql"

    ctx.obj = _Context(recon_config, verbose)


def _fail(ctx: _Context, error: Exception) -> None:
    console.print(f"[red]Error: {escape(str(error))}[/red]")
    if ctx.verbose:
        console.print_exception()
    sys.exit(1)


def _read_yaml(path: Path):
    with open(path, "r") as f:
        return yaml.safe_load(f)


@main.command("import")
@click.argument("transactions_file", type=click.Path(exists=True, path_type=Path))
@pass_context
def import_transactions(ctx: _Context, transactions_file: Path):
    """
    Import structured bank transactions from a YAML file.

    TRANSACTIONS_FILE: YAML list of rows (or a mapping with a `transactions` key)
    """
    try:
        document = _read_yaml(transactions_file) or []
        rows = document.get("transactions", []) if isinstance(document, dict) else document
        imported = ctx.service.ingest(rows)
    except (ReconciliationError, yaml.YAMLError) as e:
        _fail(ctx, e)
        return

    console.print(f"[green]Imported {len(imported)} transaction(s)[/green]")


@main.command("seed-ledger")
@click.argument("ledger_file", type=click.Path(exists=True, path_type=Path))
@pass_context
def seed_ledger(ctx: _Context, ledger_file: Path):
    """
    Load clients, invoices and delivery notes from a YAML file.

    LEDGER_FILE: YAML mapping with `clients`, `invoices` and `deliveries`
    """
    try:
        clients, invoices, deliveries = parse_ledger(_read_yaml(ledger_file) or {})
        store = ctx.service.store
        store.add_clients(clients)
        store.add_invoices(invoices)
        store.add_deliveries(deliveries)
    except (ReconciliationError, yaml.YAMLError) as e:
        _fail(ctx, e)
        return

    console.print(
        f"[green]Loaded {len(clients)} client(s), {len(invoices)} invoice(s), "
        f"{len(deliveries)} delivery note(s)[/green]"
    )


@main.command("list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in ReconciliationStatus]),
    help="Only show transactions in this status",
)
@click.option("--search", help="Filter on label, bank reference or amount")
@click.option("--limit", type=int, default=50, show_default=True)
@pass_context
def list_transactions(
    ctx: _Context, status: Optional[str], search: Optional[str], limit: int
):
    """List bank transactions, newest first."""
    try:
        txns = ctx.service.list_transactions(
            ReconciliationStatus(status) if status else None, search
        )
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    table = Table(title="Bank Transactions")
    table.add_column("ID")
    table.add_column("Date")
    table.add_column("Amount", justify="right")
    table.add_column("Status")
    table.add_column("Label")
    table.add_column("Matched To")

    for txn in txns[:limit]:
        table.add_row(
            txn.id,
            str(txn.date),
            f"{txn.amount:,.2f} {txn.currency}",
            txn.status.value,
            txn.label[:40] + "..." if len(txn.label) > 40 else txn.label,
            txn.receivable_id or "-",
        )

    console.print(table)
    if len(txns) > limit:
        console.print(f"\n... and {len(txns) - limit} more transactions")


@main.command()
@click.argument("transaction_id")
@pass_context
def suggest(ctx: _Context, transaction_id: str):
    """
    Show ranked match suggestions for a transaction.

    TRANSACTION_ID: ID of the bank transaction
    """
    try:
        suggestions = ctx.service.suggest(transaction_id)
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    if not suggestions:
        console.print("[yellow]No match suggestions[/yellow]")
        return

    table = Table(title=f"Suggestions for {transaction_id}")
    table.add_column("#", justify="right")
    table.add_column("Receivable")
    table.add_column("Client")
    table.add_column("Amount", justify="right")
    table.add_column("Date")
    table.add_column("Score", justify="right")
    table.add_column("Reasons")

    for rank, s in enumerate(suggestions, start=1):
        table.add_row(
            str(rank),
            f"{s.receivable_id} ({s.kind.value})",
            s.client_name,
            f"{s.receivable_amount:,.2f}",
            str(s.receivable_date),
            f"{s.score:.0%}",
            s.reason_text,
        )

    console.print(table)


@main.command()
@click.argument("transaction_id")
@click.option("--rank", type=int, default=1, show_default=True, help="Suggestion to confirm")
@click.option("--by", "reconciled_by", help="Operator identity recorded on the match")
@pass_context
def confirm(ctx: _Context, transaction_id: str, rank: int, reconciled_by: Optional[str]):
    """
    Confirm a suggested match for a transaction.

    TRANSACTION_ID: ID of the bank transaction
    """
    try:
        suggestions = ctx.service.suggest(transaction_id)
        if not 1 <= rank <= len(suggestions):
            console.print(f"[red]No suggestion #{rank} for {transaction_id}[/red]")
            sys.exit(1)
        record = ctx.service.confirm(
            transaction_id, suggestions[rank - 1], reconciled_by=reconciled_by
        )
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    console.print(
        f"[green]Reconciled {transaction_id} with {record.receivable_id} "
        f"(variance {record.variance:,.2f})[/green]"
    )


@main.command()
@click.argument("transaction_id")
@click.option("--reason", help="Note stored on the transaction")
@pass_context
def ignore(ctx: _Context, transaction_id: str, reason: Optional[str]):
    """
    Exclude a transaction from reconciliation.

    TRANSACTION_ID: ID of the bank transaction
    """
    try:
        ctx.service.ignore(transaction_id, reason)
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    console.print(f"[green]Transaction {transaction_id} ignored[/green]")


@main.command()
@click.option("--min-score", type=click.FloatRange(0.0, 1.0), default=None)
@pass_context
def auto(ctx: _Context, min_score: Optional[float]):
    """Automatically reconcile high-confidence matches."""
    try:
        result = ctx.service.auto_reconcile(min_score)
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    console.print(
        f"[green]{result.reconciled_count} transaction(s) reconciled automatically[/green]"
    )
    if result.failed_ids:
        console.print(f"[yellow]{len(result.failed_ids)} conflict(s) skipped[/yellow]")


@main.command()
@pass_context
def stats(ctx: _Context):
    """Show reconciliation statistics."""
    try:
        current = ctx.service.stats()
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    _display_stats(current)


@main.command()
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output Excel file path")
@pass_context
def report(ctx: _Context, output: Optional[Path]):
    """Export the reconciliation audit trail to Excel."""
    service = ctx.service
    if output is None:
        now = datetime.now()
        output = Path(
            ctx.config.output.excel.filename_template.format(
                date=now.strftime("%Y%m%d"), time=now.strftime("%H%M%S")
            )
        )

    try:
        report_path = ExcelReportGenerator(ctx.config).generate_report(
            stats=service.stats(),
            records=service.store.list_records(),
            unmatched=service.list_transactions(ReconciliationStatus.UNMATCHED),
            output_path=output,
        )
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    console.print(f"[green]Report generated: {report_path}[/green]")


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _display_stats(current: ReconciliationStats) -> None:
    """Display reconciliation stats in console."""
    table = Table(title="Reconciliation Stats")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Total Transactions", str(current.total_transactions))
    table.add_row("Reconciled", str(current.reconciled_count))
    table.add_row("Reconciled Amount", f"{current.reconciled_amount:,.2f}")
    table.add_row("Unmatched", str(current.unmatched_count))
    table.add_row("Pending Amount", f"{current.unmatched_amount:,.2f}")
    table.add_row("Ignored", str(current.ignored_count))
    table.add_row("Reconciliation Rate", f"{current.reconciliation_rate:.1f}%")

    console.print(table)


if __name__ == "__main__":
    main()

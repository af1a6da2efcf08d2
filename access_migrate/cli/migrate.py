import asyncio
import signal
from typing import List, Optional

import typer
from rich.table import Table

from access_migrate.models.table_metadata import (
    EventKind,
    MigrationEvent,
    MigrationReport,
    MigrationSummary,
    Stage,
)
from access_migrate.services.migration_service import MigrationService
from access_migrate.utils.logger import mask_connection_string
from access_migrate.cli.constants import console, logger
from access_migrate.cli.options import (
    build_clients,
    get_batch_size_option,
    get_force_option,
    get_tables_option,
    load_config,
    normalize_tables,
)

STAGE_TITLES = {
    Stage.CONNECTIVITY_CHECK: "Connectivity Check",
    Stage.SCHEMA_ANALYSIS: "Stage 1: Schema Analysis",
    Stage.TABLE_CREATION: "Stage 2: Table Creation",
    Stage.DATA_MIGRATION: "Stage 3: Data Migration",
    Stage.INDEX_CREATION: "Stage 4: Index Creation",
    Stage.FOREIGN_KEY_CREATION: "Stage 5: Relationship Establishment",
}


class ConsoleReporter:
    """Prints migration events to the rich console."""

    def __call__(self, event: MigrationEvent) -> None:
        data = event.data
        if event.kind is EventKind.STAGE_STARTED and event.stage in STAGE_TITLES:
            console.rule(f"[bold cyan]{STAGE_TITLES[event.stage]}[/bold cyan]")
        elif event.kind is EventKind.STAGE_SKIPPED and event.stage in STAGE_TITLES:
            console.rule(f"[dim]{STAGE_TITLES[event.stage]} (Skipped)[/dim]")
        elif event.kind is EventKind.TABLE_ANALYZED:
            console.print(
                f"[cyan]{event.table}[/cyan]: {data['columns']} columns, "
                f"{data['indexes']} indexes, {data['rows']:,} records"
            )
        elif event.kind is EventKind.TABLE_DROPPED:
            console.print(f"[yellow]Dropped existing table: {event.table}[/yellow]")
        elif event.kind is EventKind.TABLE_CREATED:
            console.print(f"[green]Created table: {event.table}[/green]")
        elif event.kind is EventKind.BATCH_COMMITTED:
            console.print(
                f"  Inserted {data['processed']:,}/{data['total']:,} rows into {event.table}"
            )
        elif event.kind is EventKind.TABLE_MIGRATED:
            if data["success"]:
                console.print(
                    f"[green]✓ {event.table}: {data['rows']:,} rows in {data['duration']:.2f}s[/green]"
                )
            else:
                console.print(f"[red]✗ {event.table}: {data['rows']:,} rows with errors[/red]")
        elif event.kind is EventKind.INDEX_CREATED:
            console.print(f"[green]Created index: {data['index']} on {event.table}[/green]")
        elif event.kind is EventKind.FOREIGN_KEY_CREATED:
            console.print(f"[green]Created foreign key: {data['name']}[/green]")
        elif event.kind is EventKind.WARNING:
            console.print(f"[yellow]Warning: {event.message}[/yellow]")


def print_summary(summary: MigrationSummary) -> None:
    """Render the final summary table."""
    console.rule("[bold cyan]Migration Summary[/bold cyan]")
    console.print(f"Tables migrated: {summary.tables_migrated}")
    console.print(f"Total records migrated: {summary.total_rows:,}")
    console.print(f"Indexes created: {summary.indexes_created}")
    console.print(
        f"Foreign keys: {'Enabled' if summary.foreign_keys_enabled else 'Disabled'}"
        + (f" ({summary.foreign_keys_created} created)" if summary.foreign_keys_enabled else "")
    )

    table = Table(title="Migrated Tables", show_header=True, header_style="bold cyan")
    table.add_column("Table", style="cyan")
    table.add_column("Records", style="yellow", justify="right")
    table.add_column("Columns", justify="right")
    table.add_column("Indexes", justify="right")
    for item in summary.tables:
        table.add_row(item.name, f"{item.rows:,}", str(item.columns), str(item.indexes))
    console.print(table)


def print_report(report: MigrationReport) -> None:
    failed = [r for r in report.results if not r.success]
    for result in failed:
        for error in result.errors:
            console.print(f"  [red]- {error}[/red]")

    if report.success:
        if report.summary is not None:
            print_summary(report.summary)
        console.rule(
            f"[bold green]Migration completed successfully in {report.duration:.2f}s![/bold green]"
        )
    else:
        console.print(f"[bold red]Migration failed: {report.error}[/bold red]")
        console.rule(f"[bold red]Migration failed after {report.duration:.2f}s[/bold red]")


def _install_cancel_handlers(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _cancel() -> None:
        if not cancel_event.is_set():
            console.print("[yellow]Cancellation requested, stopping after current batch...[/yellow]")
            cancel_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _cancel)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers
            pass


def register_migrate_commands(app: typer.Typer) -> None:
    """Register migration commands."""

    @app.command("migrate")
    def migrate(
        tables: Optional[List[str]] = get_tables_option(),
        batch_size: Optional[int] = get_batch_size_option(),
        no_indexes: bool = typer.Option(False, "--no-indexes", help="Skip index creation"),
        no_foreign_keys: bool = typer.Option(
            False, "--no-foreign-keys", help="Skip foreign key creation"
        ),
        keep_existing: bool = typer.Option(
            False,
            "--keep-existing",
            help="Fail instead of dropping tables that already exist in SQL Server",
        ),
        force: bool = get_force_option(),
    ):
        """Migrate schema and data from Access to SQL Server.

        Stages:
        1. Schema analysis of the Access tables
        2. Table creation in SQL Server (existing tables are dropped)
        3. Batched data migration
        4. Index creation
        5. Foreign key creation
        """
        cfg = load_config()
        config = cfg.migration_config(
            tables=normalize_tables(tables),
            batch_size=batch_size,
            create_indexes=False if no_indexes else None,
            create_foreign_keys=False if no_foreign_keys else None,
            drop_existing_tables=False if keep_existing else None,
        )

        console.rule("[bold cyan]Access to SQL Server Migration[/bold cyan]")
        console.print(f"  Access DB: {mask_connection_string(cfg.access_connection_string)}")
        console.print(
            f"  SQL Server DB: {mask_connection_string(cfg.sqlserver_connection_string)}"
        )
        console.print(
            f"  Tables to migrate: {', '.join(config.tables_to_migrate) or 'All tables'}"
        )
        console.print(f"  Batch size: {config.batch_size}")
        console.print(f"  Create indexes: {config.create_indexes}")
        console.print(f"  Create foreign keys: {config.create_foreign_keys}")

        if config.drop_existing_tables and not force:
            if not typer.confirm("Existing target tables will be dropped and recreated. Continue?"):
                console.print("[yellow]Cancelled.[/yellow]")
                return

        access_client, sqlserver_client = build_clients(cfg)

        async def _run() -> MigrationReport:
            cancel_event = asyncio.Event()
            _install_cancel_handlers(cancel_event)
            service = MigrationService(
                access_client,
                sqlserver_client,
                config,
                logger,
                on_event=ConsoleReporter(),
                cancel_event=cancel_event,
            )
            return await service.migrate()

        report = asyncio.run(_run())
        print_report(report)
        raise typer.Exit(0 if report.success else 1)

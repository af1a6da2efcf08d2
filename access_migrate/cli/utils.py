import asyncio
from typing import List, Optional

import typer
from rich.table import Table

from access_migrate.services.validation_service import ValidationService
from access_migrate.cli.constants import console, logger
from access_migrate.cli.options import (
    build_clients,
    get_tables_option,
    load_config,
    normalize_tables,
)


def register_utils_commands(app: typer.Typer) -> None:
    """Register utility commands."""

    @app.command()
    def check():
        """Test connectivity to both Access and SQL Server databases.

        Exits with error code 1 if any connection fails.
        """
        cfg = load_config()
        access_client, sqlserver_client = build_clients(cfg)
        console.rule("[bold cyan]DB CONNECTION CHECK[/bold cyan]")

        async def _run() -> bool:
            ok = True
            try:
                tables = await access_client.list_tables()
                console.print(f"[green]Access OK[/green] ({len(tables)} tables)")
            except Exception as e:
                console.print(f"[red]Access error:[/red] {e}")
                ok = False

            if await sqlserver_client.test_connection():
                console.print("[green]SQL Server OK[/green]")
            else:
                console.print("[red]SQL Server error:[/red] connection failed")
                ok = False
            return ok

        if not asyncio.run(_run()):
            raise typer.Exit(1)
        console.print("[bold green]All connections OK[/bold green]")

    @app.command()
    def tables():
        """List the Access tables that can be migrated."""
        cfg = load_config()
        access_client, _ = build_clients(cfg)

        async def _run():
            names = await access_client.list_tables()
            return [await access_client.describe_table(name) for name in names]

        schemas = asyncio.run(_run())

        table_display = Table(title="Access Tables", show_header=True, header_style="bold cyan")
        table_display.add_column("Name", style="cyan")
        table_display.add_column("Columns", justify="right")
        table_display.add_column("Indexes", justify="right")
        table_display.add_column("Records", style="yellow", justify="right")
        for schema in schemas:
            table_display.add_row(
                schema.name,
                str(len(schema.columns)),
                str(len(schema.indexes)),
                f"{schema.row_count:,}",
            )
        console.print(table_display)

    @app.command()
    def status(tables: Optional[List[str]] = get_tables_option()):
        """Compare row counts between Access and SQL Server."""
        cfg = load_config()
        access_client, sqlserver_client = build_clients(cfg)
        selected = normalize_tables(tables) or cfg.tables_to_migrate

        async def _run():
            names = selected or await access_client.list_tables()
            validation_service = ValidationService(access_client, sqlserver_client, logger)
            return await validation_service.validate_all_tables(names)

        console.rule("[bold cyan]STATUS COMPARISON[/bold cyan]")
        results = asyncio.run(_run())

        status_table = Table(title="Migration Status", show_header=True, header_style="bold cyan")
        status_table.add_column("Table", style="cyan")
        status_table.add_column("Access Rows", style="yellow", justify="right")
        status_table.add_column("SQL Server Rows", style="yellow", justify="right")
        status_table.add_column("Status", style="green")

        all_match = True
        for result in results:
            if result.all_match:
                state = "✓ Match"
            elif result.errors:
                state = f"✗ Error: {result.errors[0]}"
            else:
                state = "✗ Mismatch"
            all_match = all_match and result.all_match
            status_table.add_row(
                result.table, f"{result.source_count:,}", f"{result.target_count:,}", state
            )

        console.print(status_table)

        if all_match:
            console.print("[bold green]All tables match![/bold green]")
        else:
            console.print("[bold yellow]Some tables have row count mismatches.[/bold yellow]")
            raise typer.Exit(1)

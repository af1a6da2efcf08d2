import asyncio
from typing import List, Optional

import typer
from rich.syntax import Syntax

from access_migrate.database import ddl
from access_migrate.cli.constants import console
from access_migrate.cli.options import build_clients, load_config, normalize_tables


def register_schema_commands(app: typer.Typer) -> None:
    """Register schema inspection commands."""

    @app.command("schema")
    def schema_show(
        tables: Optional[List[str]] = typer.Argument(
            None, help="Tables to show (default: all Access tables)"
        ),
        relationships: bool = typer.Option(
            True, "--relationships/--no-relationships", help="Include foreign keys"
        ),
    ):
        """Print the SQL Server DDL generated for the Access tables without applying it."""
        cfg = load_config()
        access_client, _ = build_clients(cfg)
        wanted = {name.lower() for name in normalize_tables(tables)}

        async def _run():
            names = await access_client.list_tables()
            if wanted:
                names = [n for n in names if n.lower() in wanted]
            schemas = [await access_client.describe_table(name) for name in names]
            rels = await access_client.list_relationships() if relationships else []
            return schemas, rels

        schemas, rels = asyncio.run(_run())
        if not schemas:
            console.print("[yellow]No tables match.[/yellow]")
            raise typer.Exit(1)

        statements: List[str] = []
        for schema in schemas:
            statements.append(ddl.create_table_sql(schema))
            statements.extend(
                sql for sql in (ddl.create_index_sql(i) for i in schema.indexes) if sql
            )
        statements.extend(ddl.foreign_key_sql(rel) for rel in rels)

        console.print(Syntax(";\n\n".join(statements) + ";", "sql", word_wrap=True))

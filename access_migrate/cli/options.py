from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import typer

from access_migrate.config import ConfigError, DBConfig
from access_migrate.database.access_client import AccessClient
from access_migrate.database.sqlserver_client import SQLServerClient
from access_migrate.cli.constants import console, logger


def get_batch_size_option() -> typer.Option:
    """Get batch size option factory."""
    return typer.Option(
        None,
        "--batch-size",
        callback=validate_batch_size,
        help="Number of rows per batch (default: BATCH_SIZE env var or 1000)",
    )


def get_tables_option() -> typer.Option:
    """Get table allow-list option factory."""
    return typer.Option(
        None,
        "--table",
        "-t",
        help="Table to migrate; repeat for several (default: TABLES_TO_MIGRATE env var or all)",
    )


def get_force_option() -> typer.Option:
    """Get force option factory."""
    return typer.Option(
        False, "--force", "-f", help="Skip confirmation prompts before dropping tables"
    )


def validate_batch_size(value: Optional[int]) -> Optional[int]:
    """Validate batch size is positive."""
    if value is not None and value <= 0:
        raise typer.BadParameter("--batch-size must be greater than 0")
    return value


def load_config() -> DBConfig:
    """Load configuration, exiting with a readable message when it is invalid."""
    try:
        cfg = DBConfig()
    except ConfigError as e:
        console.print(f"[red]Configuration Error: {e}[/red]")
        console.print("Please ensure your .env file is properly configured.")
        raise typer.Exit(1)
    logger.set_level(getattr(logging, cfg.log_level, logging.INFO))
    return cfg


def build_clients(cfg: DBConfig) -> Tuple[AccessClient, SQLServerClient]:
    """Create source and target clients sharing the CLI logger."""
    return (
        AccessClient(cfg.access_connection_string, logger=logger),
        SQLServerClient(cfg.sqlserver_connection_string, logger=logger),
    )


def normalize_tables(tables: Optional[List[str]]) -> List[str]:
    """Split comma-separated --table values."""
    names: List[str] = []
    for value in tables or []:
        names.extend(part.strip() for part in value.split(",") if part.strip())
    return names

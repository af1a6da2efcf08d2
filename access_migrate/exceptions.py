"""Custom exceptions for migration tool."""

from __future__ import annotations

from typing import Optional


class MigrationError(Exception):
    """Base exception for migration errors."""

    pass


class DatabaseConnectionError(MigrationError):
    """Error connecting to database."""

    pass


class SchemaError(MigrationError):
    """Error with database schema."""

    pass


class DataTransferError(MigrationError):
    """Error inserting a batch of rows into the target table."""

    def __init__(
        self,
        message: str,
        table: str,
        batch_number: int,
        rows_committed: int = 0,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.table = table
        self.batch_number = batch_number
        self.rows_committed = rows_committed
        self.cause = cause


class MigrationCancelled(MigrationError):
    """Migration was stopped by a cancellation request."""

    pass

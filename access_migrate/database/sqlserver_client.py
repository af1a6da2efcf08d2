"""SQL Server database client."""

from __future__ import annotations

import asyncio
import math
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, List, Optional

import aioodbc

from access_migrate.database import ddl
from access_migrate.exceptions import DataTransferError, MigrationCancelled
from access_migrate.models.table_metadata import (
    ColumnInfo,
    IndexInfo,
    ItemOutcome,
    RelationshipInfo,
    TableData,
    TableSchema,
)
from access_migrate.utils.data_cleaner import clean_batch_values
from access_migrate.utils.logger import StructuredLogger

TABLE_EXISTS_QUERY = """
    SELECT COUNT(*)
    FROM INFORMATION_SCHEMA.TABLES
    WHERE TABLE_NAME = ? AND TABLE_TYPE = 'BASE TABLE'
"""

BatchCallback = Callable[[int, int, int], None]


class SQLServerClient:
    """SQL Server database client for writing schema and data."""

    def __init__(
        self,
        connection_string: str,
        logger: Optional[StructuredLogger] = None,
        connector: Callable[..., Any] = aioodbc.connect,
    ):
        """
        Initialize SQL Server client.

        Args:
            connection_string: ODBC connection string for SQL Server
            logger: Logger instance
            connector: Coroutine factory opening an ODBC connection
        """
        self.connection_string = connection_string
        self.logger = logger or StructuredLogger("sqlserver_client")
        self._connect = connector

    @asynccontextmanager
    async def _connection(self, autocommit: bool = True) -> AsyncIterator[Any]:
        """Open a connection for a single operation."""
        conn = await self._connect(dsn=self.connection_string, autocommit=autocommit)
        try:
            yield conn
        finally:
            await conn.close()

    async def _execute(self, sql: str, *params: Any) -> None:
        async with self._connection() as conn:
            cursor = await conn.cursor()
            try:
                await cursor.execute(sql, *params)
            finally:
                await cursor.close()

    async def test_connection(self) -> bool:
        """
        Check that SQL Server is reachable.

        Returns:
            True if a connection could be opened and queried
        """
        try:
            async with self._connection() as conn:
                cursor = await conn.cursor()
                try:
                    await cursor.execute("SELECT 1")
                    await cursor.fetchone()
                finally:
                    await cursor.close()
            return True
        except Exception as e:
            self.logger.error(f"SQL Server connection failed: {e}")
            return False

    async def table_exists(self, table: str) -> bool:
        """Check whether a base table with this name exists."""
        async with self._connection() as conn:
            cursor = await conn.cursor()
            try:
                await cursor.execute(TABLE_EXISTS_QUERY, table)
                row = await cursor.fetchone()
            finally:
                await cursor.close()
        return bool(row and row[0])

    async def drop_table(self, table: str) -> None:
        await self._execute(f"DROP TABLE IF EXISTS {ddl.quote_identifier(table)}")
        self.logger.info(f"Dropped table: {table}")

    async def create_table(self, schema: TableSchema) -> None:
        """Create a table from its schema, including the primary key constraint."""
        sql = ddl.create_table_sql(schema)
        self.logger.debug(f"Creating table {schema.name}", sql=sql)
        await self._execute(sql)
        self.logger.info(f"Created table: {schema.name}")

    async def count_rows(self, table: str) -> int:
        """
        Count rows in a table.

        Args:
            table: Table name

        Returns:
            Number of rows
        """
        async with self._connection() as conn:
            cursor = await conn.cursor()
            try:
                await cursor.execute(f"SELECT COUNT(*) FROM {ddl.quote_identifier(table)}")
                row = await cursor.fetchone()
            finally:
                await cursor.close()
        return int(row[0]) if row else 0

    async def insert_batch(
        self,
        table: str,
        data: TableData,
        columns: List[ColumnInfo],
        batch_size: int = 1000,
        on_batch: Optional[BatchCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> int:
        """
        Insert rows in consecutive batches, one transaction per batch.

        A failing batch is rolled back and raised as DataTransferError;
        batches committed before it stay committed.

        Args:
            table: Target table name
            data: Source rows
            columns: Column metadata of the table
            batch_size: Maximum rows per batch
            on_batch: Called with (batch_number, rows_committed, total_rows)
                after each commit
            cancel_event: Checked before each batch

        Returns:
            Number of inserted rows
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be a positive integer, got {batch_size}")

        total = len(data.rows)
        if total == 0:
            return 0

        bound = ddl.insertable_columns(columns)
        lookup = {name.lower(): i for i, name in enumerate(data.columns)}
        try:
            positions = [lookup[c.name.lower()] for c in bound]
        except KeyError as e:
            raise DataTransferError(
                f"Column {e.args[0]!r} missing from source data for {table}",
                table=table,
                batch_number=1,
            ) from e

        sql = ddl.insert_sql(table, columns)
        batch_count = math.ceil(total / batch_size)
        committed = 0

        for batch_number, start in enumerate(range(0, total, batch_size), start=1):
            if cancel_event is not None and cancel_event.is_set():
                raise MigrationCancelled(
                    f"Cancelled while migrating {table} after {committed} rows"
                )

            rows = data.rows[start:start + batch_size]
            params = clean_batch_values(bound, positions, rows)

            async with self._connection(autocommit=False) as conn:
                cursor = await conn.cursor()
                try:
                    if bound:
                        await cursor.executemany(sql, params)
                    else:
                        for _ in params:
                            await cursor.execute(sql)
                    await conn.commit()
                except Exception as e:
                    await conn.rollback()
                    raise DataTransferError(
                        f"Error inserting batch {batch_number}/{batch_count} for {table}: {e}",
                        table=table,
                        batch_number=batch_number,
                        rows_committed=committed,
                        cause=e,
                    ) from e
                finally:
                    await cursor.close()

            committed += len(rows)
            self.logger.debug(f"Inserted {committed}/{total} rows into {table}")
            if on_batch is not None:
                on_batch(batch_number, committed, total)

        return committed

    async def create_indexes(self, table: str, indexes: List[IndexInfo]) -> List[ItemOutcome]:
        """
        Create every non primary-key index; a failing index does not stop the rest.

        Returns:
            One outcome per attempted index
        """
        outcomes: List[ItemOutcome] = []
        pending = [i for i in indexes if not i.is_primary_key]
        if not pending:
            return outcomes

        async with self._connection() as conn:
            for index in pending:
                sql = ddl.create_index_sql(index)
                cursor = await conn.cursor()
                try:
                    await cursor.execute(sql)
                    self.logger.info(f"Created index: {index.name} on table {table}")
                    outcomes.append(ItemOutcome(name=index.name))
                except Exception as e:
                    self.logger.warning(
                        f"Could not create index {index.name} on table {table}: {e}"
                    )
                    outcomes.append(ItemOutcome.skipped(index.name, str(e)))
                finally:
                    await cursor.close()
        return outcomes

    async def create_foreign_keys(
        self, relationships: List[RelationshipInfo]
    ) -> List[ItemOutcome]:
        """
        Create a foreign key per relationship; failures are logged and skipped.

        Returns:
            One outcome per relationship
        """
        outcomes: List[ItemOutcome] = []
        if not relationships:
            return outcomes

        async with self._connection() as conn:
            for relationship in relationships:
                name = relationship.constraint_name
                cursor = await conn.cursor()
                try:
                    await cursor.execute(ddl.foreign_key_sql(relationship))
                    self.logger.info(f"Created foreign key: {name}")
                    outcomes.append(ItemOutcome(name=name))
                except Exception as e:
                    self.logger.warning(f"Could not create foreign key {name}: {e}")
                    outcomes.append(ItemOutcome.skipped(name, str(e)))
                finally:
                    await cursor.close()
        return outcomes

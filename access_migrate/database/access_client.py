"""Microsoft Access database client."""

from __future__ import annotations

from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set, Tuple

import aioodbc

from access_migrate.database.ddl import quote_identifier
from access_migrate.models.table_metadata import (
    ColumnInfo,
    IndexInfo,
    RelationshipInfo,
    TableData,
    TableSchema,
)
from access_migrate.utils.logger import StructuredLogger
from access_migrate.utils.type_mapper import DEFAULT_TEXT_TYPE, map_type, to_sqlserver_type

SYSTEM_TABLE_PREFIXES = ("msys", "~")

# SQLStatistics index type for clustered indexes; 0 marks the table statistics row
SQL_TABLE_STAT = 0
SQL_INDEX_CLUSTERED = 1

RELATIONSHIPS_QUERY = """
    SELECT szRelationship, szReferencedObject, szReferencedColumn, szObject, szColumn
    FROM MSysRelationships
    ORDER BY szRelationship, icolumn
"""


def is_primary_key_index(index_name: str) -> bool:
    """Access names the primary key index ``PrimaryKey``; upsized databases use ``PK_*``."""
    return index_name.lower() == "primarykey" or index_name.upper().startswith("PK_")


def _text(value: Any) -> str:
    return "" if value is None else str(value)


class AccessClient:
    """Access database client for reading schema and data."""

    def __init__(
        self,
        connection_string: str,
        logger: Optional[StructuredLogger] = None,
        connector: Callable[..., Any] = aioodbc.connect,
    ):
        """
        Initialize Access client.

        Args:
            connection_string: ODBC connection string for the Access file
            logger: Logger instance
            connector: Coroutine factory opening an ODBC connection
        """
        self.connection_string = connection_string
        self.logger = logger or StructuredLogger("access_client")
        self._connect = connector

    @asynccontextmanager
    async def _cursor(self) -> AsyncIterator[Any]:
        """Open a connection for a single operation and yield a cursor."""
        conn = await self._connect(dsn=self.connection_string, autocommit=True)
        try:
            cursor = await conn.cursor()
            try:
                yield cursor
            finally:
                await cursor.close()
        finally:
            await conn.close()

    async def list_tables(self) -> List[str]:
        """
        List user tables, excluding Access system tables.

        Returns:
            Table names sorted lexicographically
        """
        async with self._cursor() as cursor:
            await cursor.tables(tableType="TABLE")
            rows = await cursor.fetchall()

        names = {_text(row.table_name) for row in rows}
        return sorted(
            name
            for name in names
            if name and not name.lower().startswith(SYSTEM_TABLE_PREFIXES)
        )

    async def describe_table(self, table: str) -> TableSchema:
        """
        Read columns, indexes and row count of a table.

        Column metadata failures propagate; index, primary key and row count
        failures are logged and treated as empty.

        Args:
            table: Table name

        Returns:
            Table schema
        """
        async with self._cursor() as cursor:
            columns = await self._read_columns(cursor, table)
            indexes = await self._read_indexes(cursor, table)
            pk_columns = await self._read_primary_key_columns(cursor, table)
            row_count = await self._read_row_count(cursor, table)

        columns = [
            ColumnInfo(
                name=c.name,
                access_type=c.access_type,
                sql_type=c.sql_type,
                ordinal_position=c.ordinal_position,
                max_length=c.max_length,
                is_nullable=c.is_nullable,
                is_auto_increment=c.is_auto_increment,
                is_primary_key=c.name.lower() in pk_columns,
                default_value=c.default_value,
            )
            for c in sorted(columns, key=lambda c: c.ordinal_position)
        ]

        return TableSchema(
            name=table,
            columns=columns,
            indexes=indexes,
            row_count=row_count,
        )

    async def _read_columns(self, cursor: Any, table: str) -> List[ColumnInfo]:
        await cursor.columns(table=table)
        rows = await cursor.fetchall()

        columns: List[ColumnInfo] = []
        for row in rows:
            access_type = _text(getattr(row, "type_name", None))
            max_length = None
            if to_sqlserver_type(access_type) == DEFAULT_TEXT_TYPE:
                max_length = getattr(row, "column_size", None)
            mapping = map_type(access_type, max_length)

            is_nullable_text = getattr(row, "is_nullable", None)
            if is_nullable_text:
                is_nullable = str(is_nullable_text).upper() == "YES"
            else:
                is_nullable = bool(getattr(row, "nullable", 1))

            columns.append(
                ColumnInfo(
                    name=_text(row.column_name),
                    access_type=access_type,
                    sql_type=mapping.target_type,
                    ordinal_position=int(getattr(row, "ordinal_position", 0) or 0),
                    max_length=max_length,
                    is_nullable=is_nullable,
                    is_auto_increment=mapping.is_auto_increment,
                    default_value=getattr(row, "column_def", None),
                )
            )
        return columns

    async def _read_statistics(self, cursor: Any, table: str) -> List[Any]:
        # aioodbc's Cursor.statistics() does not accept the table name, so the
        # pyodbc call is dispatched through the cursor's executor directly
        await cursor._run_operation(cursor._impl.statistics, table)
        rows = await cursor.fetchall()
        return [
            row
            for row in rows
            if getattr(row, "type", None) != SQL_TABLE_STAT and getattr(row, "index_name", None)
        ]

    async def _read_indexes(self, cursor: Any, table: str) -> List[IndexInfo]:
        try:
            rows = await self._read_statistics(cursor, table)
        except Exception as e:
            self.logger.warning(f"Could not read indexes for table {table}: {e}")
            return []

        groups: "OrderedDict[str, List[Any]]" = OrderedDict()
        for row in rows:
            groups.setdefault(_text(row.index_name), []).append(row)

        indexes: List[IndexInfo] = []
        for name, group in groups.items():
            first = group[0]
            indexes.append(
                IndexInfo(
                    name=name,
                    table_name=table,
                    column_names=[
                        _text(r.column_name) for r in group if getattr(r, "column_name", None)
                    ],
                    is_unique=not bool(getattr(first, "non_unique", True)),
                    is_clustered=getattr(first, "type", None) == SQL_INDEX_CLUSTERED,
                    is_primary_key=is_primary_key_index(name),
                )
            )
        return indexes

    async def _read_primary_key_columns(self, cursor: Any, table: str) -> Set[str]:
        try:
            rows = await self._read_statistics(cursor, table)
        except Exception as e:
            self.logger.warning(f"Could not determine primary key for table {table}: {e}")
            return set()
        return {
            _text(row.column_name).lower()
            for row in rows
            if is_primary_key_index(_text(row.index_name)) and getattr(row, "column_name", None)
        }

    async def _read_row_count(self, cursor: Any, table: str) -> int:
        try:
            await cursor.execute(f"SELECT COUNT(*) FROM {quote_identifier(table)}")
            row = await cursor.fetchone()
            return int(row[0]) if row else 0
        except Exception as e:
            self.logger.warning(f"Could not get record count for table {table}: {e}")
            return 0

    async def count_rows(self, table: str) -> int:
        """
        Count rows in a table.

        Args:
            table: Table name

        Returns:
            Number of rows
        """
        async with self._cursor() as cursor:
            await cursor.execute(f"SELECT COUNT(*) FROM {quote_identifier(table)}")
            row = await cursor.fetchone()
            return int(row[0]) if row else 0

    async def list_relationships(self) -> List[RelationshipInfo]:
        """
        Read relationships from the MSysRelationships system table.

        Reading system tables needs permissions the database may not grant,
        so any failure yields an empty list.

        Returns:
            Relationships with both parent and child table set
        """
        try:
            async with self._cursor() as cursor:
                await cursor.execute(RELATIONSHIPS_QUERY)
                rows = await cursor.fetchall()
        except Exception as e:
            self.logger.warning(f"Could not read relationships from Access database: {e}")
            return []

        # One row per column; rows of a composite relationship share a name.
        # Unnamed rows cannot be matched up and stay single-column.
        groups: List[Tuple[str, str, str, List[Tuple[str, str]]]] = []
        by_name: Dict[Tuple[str, str, str], int] = {}
        for name, parent_table, parent_column, child_table, child_column in rows:
            name, parent, child = _text(name), _text(parent_table), _text(child_table)
            if not parent or not child:
                continue
            pair = (_text(child_column), _text(parent_column))
            key = (name, parent, child)
            if name and key in by_name:
                groups[by_name[key]][3].append(pair)
                continue
            if name:
                by_name[key] = len(groups)
            groups.append((name, parent, child, [pair]))

        relationships: List[RelationshipInfo] = []
        for name, parent, child, pairs in groups:
            (first_child, first_parent), rest = pairs[0], pairs[1:]
            relationships.append(
                RelationshipInfo(
                    name=name,
                    parent_table=parent,
                    parent_column=first_parent,
                    child_table=child,
                    child_column=first_child,
                    additional_columns=tuple(rest),
                )
            )
        return relationships

    async def read_table(self, table: str) -> TableData:
        """
        Read every row of a table.

        Access has no OFFSET/LIMIT paging, so the whole table is fetched and
        batching happens on the target side.

        Args:
            table: Table name

        Returns:
            Column names and rows
        """
        async with self._cursor() as cursor:
            await cursor.execute(f"SELECT * FROM {quote_identifier(table)}")
            columns = [d[0] for d in cursor.description or []]
            rows = await cursor.fetchall()
        return TableData(columns=columns, rows=[tuple(r) for r in rows])

"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import os
import re
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
from unittest.mock import MagicMock, patch

import pytest
from aioodbc.cursor import Cursor

from access_migrate.models.table_metadata import (
    ColumnInfo,
    IndexInfo,
    RelationshipInfo,
    TableSchema,
)

_BRACKETED = re.compile(r"\[((?:[^\]]|\]\])*)\]")


def bracketed_names(sql: str) -> List[str]:
    return [m.replace("]]", "]") for m in _BRACKETED.findall(sql)]


class FakePyodbcCursor:
    """Synchronous cursor with pyodbc's signatures, wrapped by aioodbc.Cursor."""

    def __init__(self, connection: FakeConnection) -> None:
        self.connection = connection
        self.db = connection.db
        self._result: List[Any] = []
        self.description: Optional[List[Tuple[Any, ...]]] = None
        self.closed = False

    def tables(
        self,
        table: Optional[str] = None,
        catalog: Optional[str] = None,
        schema: Optional[str] = None,
        tableType: Optional[str] = None,
    ) -> FakePyodbcCursor:
        self._result = self.db.catalog("tables", table=table, tableType=tableType)
        return self

    def columns(
        self,
        table: Optional[str] = None,
        catalog: Optional[str] = None,
        schema: Optional[str] = None,
        column: Optional[str] = None,
    ) -> FakePyodbcCursor:
        self._result = self.db.catalog("columns", table=table)
        return self

    def statistics(
        self,
        table: str,
        catalog: Optional[str] = None,
        schema: Optional[str] = None,
        unique: bool = False,
        quick: bool = True,
    ) -> FakePyodbcCursor:
        self._result = self.db.catalog("statistics", table=table)
        return self

    def execute(self, sql: str, *params: Any) -> FakePyodbcCursor:
        self.db.executed.append((sql, params))
        self._result, self.description = self.db.run(self.connection, sql, params)
        return self

    def executemany(self, sql: str, params: Sequence[Sequence[Any]]) -> None:
        self.db.run_many(self.connection, sql, [list(p) for p in params])

    def fetchall(self) -> List[Any]:
        return list(self._result)

    def fetchone(self) -> Any:
        return self._result[0] if self._result else None

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, db: Any, autocommit: bool) -> None:
        self.db = db
        self.autocommit = autocommit
        self.pending: Dict[str, List[List[Any]]] = {}
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return asyncio.get_running_loop()

    async def _execute(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        return func(*args, **kwargs)

    async def cursor(self) -> Cursor:
        return Cursor(FakePyodbcCursor(self), self)

    async def commit(self) -> None:
        self.commits += 1
        self.db.commit(self)

    async def rollback(self) -> None:
        self.rollbacks += 1
        self.pending.clear()

    async def close(self) -> None:
        self.closed = True


class FakeODBC:
    """Callable standing in for aioodbc.connect."""

    def __init__(self) -> None:
        self.connections: List[FakeConnection] = []
        self.executed: List[Tuple[str, Tuple[Any, ...]]] = []
        self.fail_connect: Optional[Exception] = None

    async def __call__(self, dsn: str, autocommit: bool = False, **kw: Any) -> FakeConnection:
        if self.fail_connect is not None:
            raise self.fail_connect
        conn = FakeConnection(self, autocommit)
        self.connections.append(conn)
        return conn

    def catalog(self, name: str, **kw: Any) -> List[Any]:
        raise NotImplementedError(name)

    def run(self, conn: FakeConnection, sql: str, params: Tuple[Any, ...]):
        raise NotImplementedError(sql)

    def run_many(self, conn: FakeConnection, sql: str, params: List[List[Any]]) -> None:
        raise NotImplementedError(sql)

    def commit(self, conn: FakeConnection) -> None:
        pass


class FakeAccessDatabase(FakeODBC):
    """In-memory Access catalog and data."""

    def __init__(self) -> None:
        super().__init__()
        self.table_rows: List[SimpleNamespace] = []
        self.column_rows: Dict[str, List[SimpleNamespace]] = {}
        self.statistics_rows: Dict[str, List[SimpleNamespace]] = {}
        self.data: Dict[str, Tuple[List[str], List[Tuple[Any, ...]]]] = {}
        self.relationship_rows: List[Tuple[Any, ...]] = []
        self.failing: Dict[str, Exception] = {}

    def add_table(
        self,
        name: str,
        columns: List[Tuple[str, str, Optional[int], bool]],
        rows: Optional[List[Tuple[Any, ...]]] = None,
        indexes: Optional[List[Tuple[str, str, bool]]] = None,
    ) -> None:
        """Register a table: columns as (name, type, size, nullable), indexes as (index, column, unique)."""
        self.table_rows.append(SimpleNamespace(table_name=name, table_type="TABLE"))
        self.column_rows[name] = [
            SimpleNamespace(
                column_name=col,
                type_name=type_name,
                column_size=size,
                is_nullable="YES" if nullable else "NO",
                nullable=1 if nullable else 0,
                ordinal_position=pos,
                column_def=None,
            )
            for pos, (col, type_name, size, nullable) in enumerate(columns, start=1)
        ]
        stats = [SimpleNamespace(type=0, index_name=None, column_name=None, non_unique=None)]
        for index_name, column, unique in indexes or []:
            stats.append(
                SimpleNamespace(
                    type=3, index_name=index_name, column_name=column, non_unique=0 if unique else 1
                )
            )
        self.statistics_rows[name] = stats
        self.data[name] = ([c[0] for c in columns], list(rows or []))

    def catalog(self, name: str, **kw: Any) -> List[Any]:
        table = kw.get("table")
        key = f"{name}:{table}" if table else name
        if key in self.failing:
            raise self.failing[key]
        if name == "tables":
            return list(self.table_rows)
        if name == "columns":
            return list(self.column_rows.get(table, []))
        if name == "statistics":
            return list(self.statistics_rows.get(table, []))
        raise NotImplementedError(name)

    def run(self, conn: FakeConnection, sql: str, params: Tuple[Any, ...]):
        if "MSysRelationships" in sql:
            if "relationships" in self.failing:
                raise self.failing["relationships"]
            return list(self.relationship_rows), None
        table = bracketed_names(sql)[0]
        if f"read:{table}" in self.failing and sql.startswith("SELECT *"):
            raise self.failing[f"read:{table}"]
        if f"count:{table}" in self.failing and "COUNT(*)" in sql:
            raise self.failing[f"count:{table}"]
        columns, rows = self.data[table]
        if "COUNT(*)" in sql:
            return [(len(rows),)], None
        return list(rows), [(c, None) for c in columns]


class FakeSqlServerDatabase(FakeODBC):
    """In-memory SQL Server target with per-connection transactions."""

    def __init__(self) -> None:
        super().__init__()
        self.tables: Dict[str, List[List[Any]]] = {}
        self.indexes: List[str] = []
        self.foreign_keys: List[str] = []
        self.fail_statements: Set[str] = set()
        self.fail_batch: Dict[str, int] = {}
        self.batch_calls: Dict[str, int] = {}
        self.unavailable = False

    def run(self, conn: FakeConnection, sql: str, params: Tuple[Any, ...]):
        if self.unavailable:
            raise ConnectionError("server unavailable")
        names = bracketed_names(sql)
        for name in names:
            if name in self.fail_statements:
                raise RuntimeError(f"statement failed for {name}")
        text = sql.strip()
        if text == "SELECT 1":
            return [(1,)], None
        if "INFORMATION_SCHEMA.TABLES" in text:
            return [(1 if params[0] in self.tables else 0,)], None
        if text.startswith("DROP TABLE"):
            self.tables.pop(names[0], None)
            return [], None
        if text.startswith("CREATE TABLE"):
            if names[0] in self.tables:
                raise RuntimeError(f"There is already an object named '{names[0]}'")
            self.tables[names[0]] = []
            return [], None
        if text.startswith("CREATE") and " INDEX " in text:
            if names[0] in self.indexes:
                raise RuntimeError(f"duplicate index {names[0]}")
            self.indexes.append(names[0])
            return [], None
        if text.startswith("ALTER TABLE"):
            self.foreign_keys.append(names[1])
            return [], None
        if "COUNT(*)" in text:
            return [(len(self.tables[names[0]]),)], None
        if text.startswith("INSERT"):
            conn.pending.setdefault(names[0], []).append([])
            return [], None
        raise NotImplementedError(sql)

    def run_many(self, conn: FakeConnection, sql: str, params: List[List[Any]]) -> None:
        table = bracketed_names(sql)[0]
        self.batch_calls[table] = self.batch_calls.get(table, 0) + 1
        if self.fail_batch.get(table) == self.batch_calls[table]:
            raise RuntimeError(f"constraint violation in {table}")
        conn.pending.setdefault(table, []).extend(params)

    def commit(self, conn: FakeConnection) -> None:
        for table, rows in conn.pending.items():
            self.tables[table].extend(rows)
        conn.pending.clear()


@pytest.fixture
def access_db() -> FakeAccessDatabase:
    return FakeAccessDatabase()


@pytest.fixture
def sqlserver_db() -> FakeSqlServerDatabase:
    return FakeSqlServerDatabase()


@pytest.fixture
def logger() -> MagicMock:
    return MagicMock()


def make_column(
    name: str,
    sql_type: str = "INT",
    position: int = 1,
    access_type: str = "Integer",
    **kwargs: Any,
) -> ColumnInfo:
    return ColumnInfo(
        name=name,
        access_type=access_type,
        sql_type=sql_type,
        ordinal_position=position,
        **kwargs,
    )


@pytest.fixture
def column():
    """Factory for ColumnInfo with sensible defaults."""
    return make_column


@pytest.fixture
def customers_schema() -> TableSchema:
    return TableSchema(
        name="Customers",
        columns=[
            make_column(
                "ID",
                "INT IDENTITY(1,1)",
                1,
                access_type="AutoNumber",
                is_nullable=False,
                is_auto_increment=True,
                is_primary_key=True,
            ),
            make_column("Name", "NVARCHAR(50)", 2, access_type="Text", max_length=50, is_nullable=False),
            make_column("Active", "BIT", 3, access_type="Yes/No"),
        ],
        indexes=[
            IndexInfo(name="PrimaryKey", table_name="Customers", column_names=["ID"], is_unique=True, is_primary_key=True),
            IndexInfo(name="IX_Name", table_name="Customers", column_names=["Name"]),
        ],
        row_count=3,
    )


@pytest.fixture
def orders_relationship() -> RelationshipInfo:
    return RelationshipInfo(
        name="",
        parent_table="Customers",
        parent_column="ID",
        child_table="Orders",
        child_column="CustomerID",
    )


@pytest.fixture
def mock_env_vars():
    """Fixture to provide mock environment variables for testing."""
    env_vars = {
        "ACCESS_DB_PATH": r"C:\data\legacy.accdb",
        "SQLSERVER_HOST": "localhost",
        "SQLSERVER_PORT": "1433",
        "SQLSERVER_DB": "legacy",
        "SQLSERVER_USER": "test_user",
        "SQLSERVER_PASSWORD": "test_password",
    }
    with patch.dict(os.environ, env_vars, clear=True):
        yield env_vars


@pytest.fixture
def mock_empty_env():
    """Fixture to provide empty environment variables for testing."""
    with patch.dict(os.environ, {}, clear=True):
        yield

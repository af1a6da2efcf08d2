"""Unit tests for AccessClient."""

from __future__ import annotations

import pytest
from aioodbc.cursor import Cursor

from access_migrate.database.access_client import AccessClient, is_primary_key_index


@pytest.fixture
def client(access_db, logger):
    return AccessClient("DRIVER={Access};DBQ=test.accdb;", logger=logger, connector=access_db)


def _add_customers(access_db):
    access_db.add_table(
        "Customers",
        columns=[
            ("ID", "COUNTER", 10, False),
            ("Name", "VARCHAR", 50, False),
            ("Notes", "LONGCHAR", 1073741823, True),
            ("Balance", "CURRENCY", 19, True),
        ],
        rows=[(1, "Ann", None, 10), (2, "Bob", "vip", 0)],
        indexes=[
            ("PrimaryKey", "ID", True),
            ("IX_Name", "Name", False),
        ],
    )


@pytest.mark.asyncio
async def test_list_tables_sorted_and_without_system_tables(client, access_db):
    for name in ["Orders", "MSysObjects", "~TMPCLP1234", "Customers", "msysACEs"]:
        access_db.add_table(name, columns=[("ID", "INTEGER", 10, False)])

    assert await client.list_tables() == ["Customers", "Orders"]


@pytest.mark.asyncio
async def test_list_tables_propagates_errors(client, access_db):
    access_db.failing["tables"] = RuntimeError("cannot open database")

    with pytest.raises(RuntimeError):
        await client.list_tables()


@pytest.mark.asyncio
async def test_list_tables_fails_on_connection_error(client, access_db):
    access_db.fail_connect = ConnectionError("file not found")

    with pytest.raises(ConnectionError):
        await client.list_tables()


@pytest.mark.asyncio
async def test_describe_table_maps_columns(client, access_db):
    _add_customers(access_db)

    schema = await client.describe_table("Customers")

    assert schema.name == "Customers"
    assert schema.row_count == 2
    assert [c.name for c in schema.columns] == ["ID", "Name", "Notes", "Balance"]
    id_col, name_col, notes_col, balance_col = schema.columns
    assert id_col.sql_type == "INT IDENTITY(1,1)"
    assert id_col.is_auto_increment is True
    assert id_col.is_primary_key is True
    assert name_col.sql_type == "NVARCHAR(50)"
    assert name_col.max_length == 50
    assert name_col.is_nullable is False
    assert name_col.is_primary_key is False
    assert notes_col.sql_type == "NTEXT"
    assert notes_col.max_length is None
    assert balance_col.sql_type == "MONEY"


@pytest.mark.asyncio
async def test_describe_table_groups_index_columns(client, access_db):
    access_db.add_table(
        "People",
        columns=[("Last", "VARCHAR", 30, False), ("First", "VARCHAR", 30, False)],
        indexes=[("UX_FullName", "Last", True), ("UX_FullName", "First", True)],
    )

    schema = await client.describe_table("People")

    assert len(schema.indexes) == 1
    index = schema.indexes[0]
    assert index.column_names == ["Last", "First"]
    assert index.is_unique is True
    assert index.is_primary_key is False
    assert index.is_clustered is False
    assert schema.primary_key_columns == []


@pytest.mark.asyncio
async def test_describe_table_flags_primary_key_index(client, access_db):
    _add_customers(access_db)

    schema = await client.describe_table("Customers")

    by_name = {i.name: i for i in schema.indexes}
    assert by_name["PrimaryKey"].is_primary_key is True
    assert by_name["PrimaryKey"].is_unique is True
    assert by_name["IX_Name"].is_primary_key is False
    assert by_name["IX_Name"].is_unique is False


@pytest.mark.asyncio
async def test_describe_table_degrades_when_indexes_unreadable(client, access_db, logger):
    _add_customers(access_db)
    access_db.failing["statistics:Customers"] = RuntimeError("no permission")

    schema = await client.describe_table("Customers")

    assert schema.indexes == []
    assert schema.primary_key_columns == []
    assert len(schema.columns) == 4
    assert logger.warning.called


@pytest.mark.asyncio
async def test_describe_table_reads_statistics_through_aioodbc_cursor(client, access_db):
    _add_customers(access_db)
    conn = await access_db(dsn="access", autocommit=True)
    cursor = await conn.cursor()
    assert isinstance(cursor, Cursor)
    # aioodbc's wrapper has no table argument for statistics()
    with pytest.raises(TypeError):
        await cursor.statistics(table="Customers")

    schema = await client.describe_table("Customers")

    assert [i.name for i in schema.indexes] == ["PrimaryKey", "IX_Name"]
    assert [c.name for c in schema.primary_key_columns] == ["ID"]


@pytest.mark.asyncio
async def test_describe_table_degrades_when_count_fails(client, access_db, logger):
    _add_customers(access_db)
    access_db.failing["count:Customers"] = RuntimeError("locked")

    schema = await client.describe_table("Customers")

    assert schema.row_count == 0
    logger.warning.assert_called_once()


@pytest.mark.asyncio
async def test_describe_table_propagates_column_errors(client, access_db):
    _add_customers(access_db)
    access_db.failing["columns:Customers"] = RuntimeError("corrupt table")

    with pytest.raises(RuntimeError, match="corrupt table"):
        await client.describe_table("Customers")


@pytest.mark.asyncio
async def test_list_relationships(client, access_db):
    access_db.relationship_rows = [
        ("CustomersOrders", "Customers", "ID", "Orders", "CustomerID"),
        ("Broken", "", "ID", "Orders", "CustomerID"),
        (None, "Products", "ID", "OrderLines", "ProductID"),
    ]

    relationships = await client.list_relationships()

    assert [(r.parent_table, r.child_table) for r in relationships] == [
        ("Customers", "Orders"),
        ("Products", "OrderLines"),
    ]
    assert relationships[0].constraint_name == "CustomersOrders"
    assert relationships[1].constraint_name == "FK_OrderLines_Products"
    assert relationships[0].delete_rule == "NO ACTION"


@pytest.mark.asyncio
async def test_list_relationships_groups_composite_keys(client, access_db):
    access_db.relationship_rows = [
        ("OrdersLines", "Orders", "OrderID", "OrderLines", "OrderID"),
        ("OrdersLines", "Orders", "Version", "OrderLines", "OrderVersion"),
        ("ProductsLines", "Products", "ID", "OrderLines", "ProductID"),
    ]

    relationships = await client.list_relationships()

    assert [r.constraint_name for r in relationships] == [
        "OrdersLines",
        "ProductsLines",
    ]
    composite = relationships[0]
    assert composite.column_pairs == [("OrderID", "OrderID"), ("OrderVersion", "Version")]
    assert relationships[1].additional_columns == ()


@pytest.mark.asyncio
async def test_list_relationships_returns_empty_on_failure(client, access_db, logger):
    access_db.failing["relationships"] = RuntimeError("no read permission on MSysRelationships")

    assert await client.list_relationships() == []
    logger.warning.assert_called_once()


@pytest.mark.asyncio
async def test_read_table_and_count_rows(client, access_db):
    _add_customers(access_db)

    data = await client.read_table("Customers")

    assert data.columns == ["ID", "Name", "Notes", "Balance"]
    assert data.rows == [(1, "Ann", None, 10), (2, "Bob", "vip", 0)]
    assert len(data) == 2
    assert await client.count_rows("Customers") == 2


@pytest.mark.asyncio
async def test_connections_are_closed(client, access_db):
    _add_customers(access_db)

    await client.describe_table("Customers")
    await client.read_table("Customers")

    assert access_db.connections
    assert all(conn.closed for conn in access_db.connections)


@pytest.mark.parametrize(
    "name, expected",
    [("PrimaryKey", True), ("primarykey", True), ("PK_Orders", True), ("IX_Name", False)],
)
def test_is_primary_key_index(name, expected):
    assert is_primary_key_index(name) is expected

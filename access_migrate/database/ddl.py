"""SQL Server DDL/DML statement generation."""

from __future__ import annotations

from typing import Any, List, Optional

from access_migrate.models.table_metadata import (
    ColumnInfo,
    IndexInfo,
    RelationshipInfo,
    TableSchema,
)
from access_migrate.utils.data_cleaner import parse_datetime, to_bool
from access_migrate.utils.type_mapper import is_text_type

NOW_SENTINELS = frozenset({"NOW()", "DATE()"})


def quote_identifier(identifier: str) -> str:
    """Quote an identifier for use in SQL Server statements."""
    if "\x00" in identifier:
        raise ValueError(f"Invalid identifier: {identifier!r}")
    return "[" + identifier.replace("]", "]]") + "]"


def _strip_access_default(value: Any) -> str:
    # Access stores expressions as e.g. =Now() or "text"
    text = str(value).strip()
    if text.startswith("="):
        text = text[1:].strip()
    if len(text) >= 2 and text[0] == text[-1] == '"':
        text = text[1:-1]
    return text


def format_default(default_value: Any, sql_type: str) -> str:
    """
    Render a column default as a SQL Server literal.

    Args:
        default_value: Default as reported by the source catalog
        sql_type: Target column type

    Returns:
        SQL literal or expression
    """
    if default_value is None:
        return "NULL"

    text = _strip_access_default(default_value)
    upper = sql_type.upper()

    if is_text_type(sql_type):
        return "'" + text.replace("'", "''") + "'"

    if upper.startswith("BIT"):
        return "1" if to_bool(text) else "0"

    if upper.startswith("DATETIME"):
        if text.upper() in NOW_SENTINELS:
            return "GETDATE()"
        parsed = parse_datetime(text)
        if parsed is not None:
            return f"'{parsed:%Y-%m-%d %H:%M:%S}'"

    return text or "NULL"


def column_definition(column: ColumnInfo) -> str:
    definition = f"{quote_identifier(column.name)} {column.sql_type}"
    if not column.is_nullable and not column.is_auto_increment:
        definition += " NOT NULL"
    if column.default_value is not None and not column.is_auto_increment:
        definition += f" DEFAULT {format_default(column.default_value, column.sql_type)}"
    return definition


def create_table_sql(table: TableSchema) -> str:
    """
    Generate CREATE TABLE for a table schema.

    Columns are emitted in ordinal order. When any column belongs to the
    primary key a single clustered ``PK_<table>`` constraint is appended.
    """
    definitions = [f"    {column_definition(c)}" for c in table.ordered_columns]

    pk_columns = table.primary_key_columns
    if pk_columns:
        pk_list = ", ".join(quote_identifier(c.name) for c in pk_columns)
        definitions.append(
            f"    CONSTRAINT {quote_identifier(f'PK_{table.name}')} "
            f"PRIMARY KEY CLUSTERED ({pk_list})"
        )

    body = ",\n".join(definitions)
    return f"CREATE TABLE {quote_identifier(table.name)} (\n{body}\n)"


def create_index_sql(index: IndexInfo) -> Optional[str]:
    """Generate CREATE INDEX, or None for primary-key indexes."""
    if index.is_primary_key:
        return None
    unique = "UNIQUE " if index.is_unique else ""
    clustered = "CLUSTERED" if index.is_clustered else "NONCLUSTERED"
    columns = ", ".join(quote_identifier(c) for c in index.column_names)
    return (
        f"CREATE {unique}{clustered} INDEX {quote_identifier(index.name)} "
        f"ON {quote_identifier(index.table_name)} ({columns})"
    )


def foreign_key_sql(relationship: RelationshipInfo) -> str:
    """Generate ALTER TABLE ... ADD CONSTRAINT ... FOREIGN KEY."""
    pairs = relationship.column_pairs
    child_columns = ", ".join(quote_identifier(child) for child, _ in pairs)
    parent_columns = ", ".join(quote_identifier(parent) for _, parent in pairs)
    return (
        f"ALTER TABLE {quote_identifier(relationship.child_table)} "
        f"ADD CONSTRAINT {quote_identifier(relationship.constraint_name)} "
        f"FOREIGN KEY ({child_columns}) "
        f"REFERENCES {quote_identifier(relationship.parent_table)} "
        f"({parent_columns}) "
        f"ON DELETE {relationship.delete_rule} "
        f"ON UPDATE {relationship.update_rule}"
    )


def insertable_columns(columns: List[ColumnInfo]) -> List[ColumnInfo]:
    """Columns bound on INSERT; auto-increment columns are left to IDENTITY."""
    ordered = sorted(columns, key=lambda c: c.ordinal_position)
    return [c for c in ordered if not c.is_auto_increment]


def insert_sql(table: str, columns: List[ColumnInfo]) -> str:
    """Generate a parameterized INSERT for the insertable columns."""
    bound = insertable_columns(columns)
    if not bound:
        return f"INSERT INTO {quote_identifier(table)} DEFAULT VALUES"
    column_list = ", ".join(quote_identifier(c.name) for c in bound)
    placeholders = ", ".join("?" for _ in bound)
    return f"INSERT INTO {quote_identifier(table)} ({column_list}) VALUES ({placeholders})"

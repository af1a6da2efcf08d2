"""Access to SQL Server column type mapping."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, NamedTuple, Optional

DEFAULT_TEXT_TYPE = "NVARCHAR"
DEFAULT_TEXT_LENGTH = 255
MAX_SIZED_TEXT_LENGTH = 4000

# Keys are lower-cased; lookups go through _lookup()
_ACCESS_TO_SQLSERVER: Mapping[str, str] = MappingProxyType(
    {
        # Text
        "text": "NVARCHAR",
        "memo": "NTEXT",
        # Numbers
        "number": "INT",
        "integer": "INT",
        "long": "BIGINT",
        "single": "REAL",
        "double": "FLOAT",
        "decimal": "DECIMAL",
        "currency": "MONEY",
        # Date/time
        "date/time": "DATETIME2",
        "datetime": "DATETIME2",
        # Boolean
        "yes/no": "BIT",
        "boolean": "BIT",
        # Binary
        "ole object": "VARBINARY(MAX)",
        "binary": "VARBINARY(MAX)",
        # Auto number
        "autonumber": "INT IDENTITY(1,1)",
        "counter": "INT IDENTITY(1,1)",
        # Names reported by the Access ODBC driver
        "varchar": "NVARCHAR",
        "char": "NVARCHAR",
        "longchar": "NTEXT",
        "smallint": "SMALLINT",
        "byte": "TINYINT",
        "real": "REAL",
        "bit": "BIT",
        "longbinary": "VARBINARY(MAX)",
        "varbinary": "VARBINARY(MAX)",
        "guid": "UNIQUEIDENTIFIER",
    }
)

AUTO_INCREMENT_TYPES = frozenset({"autonumber", "counter"})

NUMERIC_TYPES = (
    "INT",
    "BIGINT",
    "SMALLINT",
    "TINYINT",
    "DECIMAL",
    "NUMERIC",
    "FLOAT",
    "REAL",
    "MONEY",
    "SMALLMONEY",
)


class TypeMapping(NamedTuple):
    """Resolved SQL Server type for one Access column."""

    target_type: str
    is_auto_increment: bool
    is_numeric: bool
    is_text: bool


def _lookup(name: str) -> Optional[str]:
    return _ACCESS_TO_SQLSERVER.get(name.strip().lower())


def to_sqlserver_type(access_type: Optional[str]) -> str:
    """
    Map an Access type name to its SQL Server base type.

    A size suffix such as ``Text(50)`` is kept for text types. Unknown or
    blank names map to ``NVARCHAR(255)``.

    Args:
        access_type: Access type name as reported by the catalog

    Returns:
        SQL Server type, without a length for plain text types
    """
    if not access_type or not access_type.strip():
        return f"{DEFAULT_TEXT_TYPE}({DEFAULT_TEXT_LENGTH})"

    clean_type = access_type.strip()
    if "(" in clean_type:
        paren = clean_type.index("(")
        base_type = _lookup(clean_type[:paren])
        if base_type is not None:
            if base_type == DEFAULT_TEXT_TYPE:
                return f"{DEFAULT_TEXT_TYPE}{clean_type[paren:]}"
            return base_type

    mapped = _lookup(clean_type)
    if mapped is not None:
        return mapped

    return f"{DEFAULT_TEXT_TYPE}({DEFAULT_TEXT_LENGTH})"


def to_sqlserver_type_with_length(
    access_type: Optional[str], max_length: Optional[int] = None
) -> str:
    """Map an Access type and apply a length to variable-length text types."""
    sql_type = to_sqlserver_type(access_type)
    if sql_type != DEFAULT_TEXT_TYPE:
        return sql_type

    if max_length is not None and max_length > 0:
        if max_length > MAX_SIZED_TEXT_LENGTH:
            return f"{DEFAULT_TEXT_TYPE}(MAX)"
        return f"{DEFAULT_TEXT_TYPE}({max_length})"
    return f"{DEFAULT_TEXT_TYPE}({DEFAULT_TEXT_LENGTH})"


def is_auto_increment(access_type: Optional[str]) -> bool:
    return bool(access_type) and access_type.strip().lower() in AUTO_INCREMENT_TYPES


def is_numeric_type(sql_type: str) -> bool:
    upper = sql_type.upper()
    return any(upper.startswith(t) for t in NUMERIC_TYPES)


def is_text_type(sql_type: str) -> bool:
    upper = sql_type.upper()
    return (
        upper.startswith("NVARCHAR")
        or upper.startswith("VARCHAR")
        or upper in ("NTEXT", "TEXT")
    )


def map_type(access_type: Optional[str], max_length: Optional[int] = None) -> TypeMapping:
    """
    Resolve an Access column type.

    Args:
        access_type: Access type name, optionally with a size suffix
        max_length: Character length read separately from the catalog

    Returns:
        TypeMapping with the SQL Server type and derived flags
    """
    target_type = to_sqlserver_type_with_length(access_type, max_length)
    return TypeMapping(
        target_type=target_type,
        is_auto_increment=is_auto_increment(access_type),
        is_numeric=is_numeric_type(target_type),
        is_text=is_text_type(target_type),
    )

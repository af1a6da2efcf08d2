"""Value coercion for rows bound into SQL Server parameters."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, List, Optional, Sequence

from access_migrate.models.table_metadata import ColumnInfo
from access_migrate.utils.logger import StructuredLogger
from access_migrate.utils.type_mapper import is_numeric_type

logger = StructuredLogger("data_cleaner")

TRUTHY_STRINGS = frozenset({"true", "yes", "1", "-1"})

# Access exports dates in US order; ISO forms come from the ODBC driver
DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y",
)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a textual date/time value.

    Args:
        value: Value to parse; surrounding ``#`` delimiters are accepted

    Returns:
        Parsed datetime, or None if no known format matches
    """
    text = str(value).strip().strip("#").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def to_bool(value: Any) -> bool:
    """Normalize Access boolean representations (True, Yes, 1, -1)."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY_STRINGS


def clean_value(column: ColumnInfo, value: Any) -> Any:
    """
    Coerce a source value for binding into the column's SQL Server type.

    Data transformation rules:

    1. NULL remains NULL
    2. BIT columns: bool kept, textual/numeric forms normalized via to_bool
    3. DATETIME columns: datetime kept, text parsed, raw value kept if unparsable
    4. Numeric columns: blank text becomes NULL
    5. Other values returned as-is

    Args:
        column: Target column metadata
        value: Source value

    Returns:
        Value to bind
    """
    if value is None:
        return None

    sql_type = column.sql_type.upper()

    if sql_type.startswith("BIT"):
        return to_bool(value)

    if sql_type.startswith("DATETIME"):
        if isinstance(value, (datetime, date)):
            return value
        parsed = parse_datetime(value)
        if parsed is None:
            logger.debug(
                f"Could not parse {column.name} value {value!r} as datetime, binding raw value"
            )
            return value
        return parsed

    if is_numeric_type(sql_type):
        if isinstance(value, str) and not value.strip():
            return None

    return value


def clean_batch_values(
    columns: List[ColumnInfo], positions: List[int], rows: Sequence[Sequence[Any]]
) -> List[List[Any]]:
    """
    Build parameter rows for a batch.

    Args:
        columns: Columns being bound, in INSERT order
        positions: Index of each bound column within a source row
        rows: Source rows

    Returns:
        List of parameter lists
    """
    return [
        [clean_value(column, row[pos]) for column, pos in zip(columns, positions)]
        for row in rows
    ]

"""Table metadata models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class ColumnInfo:
    """Column metadata read from the source catalog."""

    name: str
    access_type: str
    sql_type: str
    ordinal_position: int
    max_length: Optional[int] = None
    is_nullable: bool = True
    is_auto_increment: bool = False
    is_primary_key: bool = False
    default_value: Any = None


@dataclass(frozen=True)
class IndexInfo:
    """Index metadata; column order is the composite key order."""

    name: str
    table_name: str
    column_names: List[str] = field(default_factory=list)
    is_unique: bool = False
    is_clustered: bool = False
    is_primary_key: bool = False


@dataclass(frozen=True)
class RelationshipInfo:
    """Parent/child column linkage between two source tables."""

    name: str
    parent_table: str
    parent_column: str
    child_table: str
    child_column: str
    delete_rule: str = "NO ACTION"
    update_rule: str = "NO ACTION"
    # (child, parent) pairs after the first one, for composite keys
    additional_columns: Tuple[Tuple[str, str], ...] = ()

    @property
    def column_pairs(self) -> List[Tuple[str, str]]:
        """(child, parent) column pairs in key order."""
        return [(self.child_column, self.parent_column), *self.additional_columns]

    @property
    def constraint_name(self) -> str:
        """Relationship name, or FK_<child>_<parent> when the source has none."""
        if self.name:
            return self.name
        return f"FK_{self.child_table}_{self.parent_table}"


@dataclass(frozen=True)
class TableSchema:
    """Complete description of one source table."""

    name: str
    columns: List[ColumnInfo] = field(default_factory=list)
    indexes: List[IndexInfo] = field(default_factory=list)
    relationships: List[RelationshipInfo] = field(default_factory=list)
    row_count: int = 0

    @property
    def ordered_columns(self) -> List[ColumnInfo]:
        return sorted(self.columns, key=lambda c: c.ordinal_position)

    @property
    def primary_key_columns(self) -> List[ColumnInfo]:
        return [c for c in self.ordered_columns if c.is_primary_key]


@dataclass
class TableData:
    """Rows of a full source table scan."""

    columns: List[str]
    rows: List[Sequence[Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class MigrationConfig:
    """Migration configuration."""

    tables_to_migrate: List[str] = field(default_factory=list)
    create_indexes: bool = True
    create_foreign_keys: bool = True
    batch_size: int = 1000
    drop_existing_tables: bool = True

    def __post_init__(self):
        """Validate batch size."""
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be a positive integer, got {self.batch_size}")


class Stage(str, Enum):
    """Sequential phases of a migration run."""

    CONNECTIVITY_CHECK = "connectivity_check"
    SCHEMA_ANALYSIS = "schema_analysis"
    TABLE_CREATION = "table_creation"
    DATA_MIGRATION = "data_migration"
    INDEX_CREATION = "index_creation"
    FOREIGN_KEY_CREATION = "foreign_key_creation"
    SUMMARY = "summary"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"


@dataclass
class ItemOutcome:
    """Outcome of one table, index or foreign key within a stage."""

    name: str
    status: OutcomeStatus = OutcomeStatus.SUCCESS
    reason: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @classmethod
    def skipped(cls, name: str, reason: str) -> ItemOutcome:
        return cls(name=name, status=OutcomeStatus.SKIPPED, reason=reason)


@dataclass
class StageResult:
    """Aggregated outcomes of a single stage."""

    stage: Stage
    outcomes: List[ItemOutcome] = field(default_factory=list)
    skipped: bool = False
    duration: float = 0.0

    @property
    def succeeded(self) -> List[ItemOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[ItemOutcome]:
        return [o for o in self.outcomes if not o.success]


@dataclass
class MigrationResult:
    """Result of a migration operation."""

    table: str
    rows_migrated: int
    success: bool
    duration: float
    errors: List[str] = None

    def __post_init__(self):
        """Initialize default values."""
        if self.errors is None:
            self.errors = []


@dataclass
class TableSummary:
    """Per-table line of the final summary."""

    name: str
    columns: int
    rows: int
    indexes: int


@dataclass
class MigrationSummary:
    """Totals reported at the end of a run."""

    tables_migrated: int = 0
    total_rows: int = 0
    indexes_created: int = 0
    foreign_keys_enabled: bool = False
    foreign_keys_created: int = 0
    tables: List[TableSummary] = field(default_factory=list)


@dataclass
class MigrationReport:
    """Overall outcome of a migration run."""

    success: bool
    stages: List[StageResult] = field(default_factory=list)
    results: List[MigrationResult] = field(default_factory=list)
    summary: Optional[MigrationSummary] = None
    error: Optional[str] = None
    duration: float = 0.0

    def stage(self, stage: Stage) -> Optional[StageResult]:
        """Return the result recorded for a stage, if it ran."""
        return next((s for s in self.stages if s.stage is stage), None)


class EventKind(str, Enum):
    STAGE_STARTED = "stage_started"
    STAGE_FINISHED = "stage_finished"
    STAGE_SKIPPED = "stage_skipped"
    TABLE_ANALYZED = "table_analyzed"
    TABLE_DROPPED = "table_dropped"
    TABLE_CREATED = "table_created"
    BATCH_COMMITTED = "batch_committed"
    TABLE_MIGRATED = "table_migrated"
    INDEX_CREATED = "index_created"
    FOREIGN_KEY_CREATED = "foreign_key_created"
    WARNING = "warning"
    SUMMARY = "summary"


@dataclass
class MigrationEvent:
    """Structured progress notification emitted by the migration service."""

    kind: EventKind
    stage: Optional[Stage] = None
    table: Optional[str] = None
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)


EventCallback = Callable[[MigrationEvent], None]


@dataclass
class ValidationResult:
    """Result of a validation operation."""

    table: str
    row_count_match: bool
    source_count: int
    target_count: int
    errors: List[str] = None

    def __post_init__(self):
        """Initialize default values."""
        if self.errors is None:
            self.errors = []

    @property
    def all_match(self) -> bool:
        """Check if all validations passed."""
        return self.row_count_match and not self.errors

"""Migration service for orchestrating an Access to SQL Server migration."""

from __future__ import annotations

import asyncio
import time
import traceback
from typing import Any, Dict, List, Optional

from access_migrate.database.access_client import AccessClient
from access_migrate.database.sqlserver_client import SQLServerClient
from access_migrate.exceptions import (
    DatabaseConnectionError,
    DataTransferError,
    MigrationCancelled,
    SchemaError,
)
from access_migrate.models.table_metadata import (
    EventCallback,
    EventKind,
    ItemOutcome,
    MigrationConfig,
    MigrationEvent,
    MigrationReport,
    MigrationResult,
    MigrationSummary,
    Stage,
    StageResult,
    TableSchema,
    TableSummary,
)
from access_migrate.utils.logger import StructuredLogger


class MigrationService:
    """
    Run the migration stages in order.

    ConnectivityCheck, SchemaAnalysis and TableCreation abort the run on
    failure. DataMigration skips failing tables; IndexCreation and
    ForeignKeyCreation skip failing items. Each stage records its outcomes in
    a StageResult.
    """

    def __init__(
        self,
        access_client: AccessClient,
        sqlserver_client: SQLServerClient,
        config: MigrationConfig,
        logger: StructuredLogger,
        on_event: Optional[EventCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        """
        Initialize migration service.

        Args:
            access_client: Source database client
            sqlserver_client: Target database client
            config: Migration configuration
            logger: Logger instance
            on_event: Receives progress events
            cancel_event: When set, the run stops between tables and batches
        """
        self.access_client = access_client
        self.sqlserver_client = sqlserver_client
        self.config = config
        self.logger = logger
        self.on_event = on_event
        self.cancel_event = cancel_event
        self.schemas: List[TableSchema] = []
        self.results: List[MigrationResult] = []
        self.stages: List[StageResult] = []
        self.index_counts: Dict[str, int] = {}

    def _emit(
        self,
        kind: EventKind,
        stage: Optional[Stage] = None,
        table: Optional[str] = None,
        message: str = "",
        **data: Any,
    ) -> None:
        if self.on_event is not None:
            self.on_event(
                MigrationEvent(kind=kind, stage=stage, table=table, message=message, data=data)
            )

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise MigrationCancelled("Migration cancelled")

    def _start_stage(self, stage: Stage) -> StageResult:
        self._check_cancelled()
        self.logger.info(f"Stage started: {stage.value}")
        self._emit(EventKind.STAGE_STARTED, stage=stage)
        result = StageResult(stage=stage)
        self.stages.append(result)
        return result

    def _finish_stage(self, result: StageResult, started: float) -> None:
        result.duration = time.time() - started
        self.logger.info(
            f"Stage finished: {result.stage.value}",
            succeeded=len(result.succeeded),
            skipped=len(result.failed),
        )
        self._emit(
            EventKind.STAGE_FINISHED,
            stage=result.stage,
            succeeded=len(result.succeeded),
            skipped=len(result.failed),
            duration=result.duration,
        )

    def _skip_stage(self, stage: Stage) -> None:
        self.logger.info(f"Stage skipped: {stage.value}")
        self.stages.append(StageResult(stage=stage, skipped=True))
        self._emit(EventKind.STAGE_SKIPPED, stage=stage)

    def _warn(self, stage: Stage, message: str, table: Optional[str] = None) -> None:
        self.logger.warning(message)
        self._emit(EventKind.WARNING, stage=stage, table=table, message=message)

    async def check_connectivity(self) -> StageResult:
        """Verify both databases are reachable; any failure is fatal."""
        started = time.time()
        stage = self._start_stage(Stage.CONNECTIVITY_CHECK)

        try:
            tables = await self.access_client.list_tables()
        except Exception as e:
            raise DatabaseConnectionError(f"Failed to connect to Access database: {e}") from e
        self.logger.info(f"Access database connected. Found {len(tables)} tables.")
        stage.outcomes.append(ItemOutcome(name="access"))

        try:
            connected = await self.sqlserver_client.test_connection()
        except Exception as e:
            raise DatabaseConnectionError(f"Failed to connect to SQL Server database: {e}") from e
        if not connected:
            raise DatabaseConnectionError("Failed to connect to SQL Server database")
        self.logger.info("SQL Server database connected.")
        stage.outcomes.append(ItemOutcome(name="sqlserver"))

        self._finish_stage(stage, started)
        return stage

    def resolve_tables(self, available: List[str]) -> List[str]:
        """
        Apply the configured allow-list, case-insensitively.

        Args:
            available: Tables found in the source database

        Returns:
            Tables to migrate, in source order
        """
        if not self.config.tables_to_migrate:
            return list(available)
        wanted = {name.lower() for name in self.config.tables_to_migrate}
        return [name for name in available if name.lower() in wanted]

    async def analyze_schema(self) -> List[TableSchema]:
        """Describe every selected table; tables that cannot be described are dropped."""
        started = time.time()
        stage = self._start_stage(Stage.SCHEMA_ANALYSIS)

        tables = self.resolve_tables(await self.access_client.list_tables())
        if not tables:
            raise SchemaError("No tables match the migration criteria.")
        self.logger.info(f"Found {len(tables)} tables to migrate: {', '.join(tables)}")

        schemas: List[TableSchema] = []
        for table in tables:
            self._check_cancelled()
            try:
                schema = await self.access_client.describe_table(table)
            except Exception as e:
                self._warn(Stage.SCHEMA_ANALYSIS, f"Could not analyze table {table}: {e}", table)
                stage.outcomes.append(ItemOutcome.skipped(table, str(e)))
                continue

            schemas.append(schema)
            stage.outcomes.append(ItemOutcome(name=table))
            self._emit(
                EventKind.TABLE_ANALYZED,
                stage=Stage.SCHEMA_ANALYSIS,
                table=table,
                columns=len(schema.columns),
                indexes=len(schema.indexes),
                rows=schema.row_count,
            )

        if not schemas:
            raise SchemaError("No tables could be analyzed.")

        self.schemas = schemas
        self._finish_stage(stage, started)
        return schemas

    async def create_tables(self, schemas: List[TableSchema]) -> StageResult:
        """Create target tables, dropping existing ones; any failure is fatal."""
        started = time.time()
        stage = self._start_stage(Stage.TABLE_CREATION)

        for schema in schemas:
            self._check_cancelled()
            try:
                if await self.sqlserver_client.table_exists(schema.name):
                    if not self.config.drop_existing_tables:
                        raise SchemaError(
                            f"Table {schema.name} already exists and dropping existing tables is disabled"
                        )
                    self.logger.info(
                        f"Table {schema.name} already exists. Dropping and recreating..."
                    )
                    await self.sqlserver_client.drop_table(schema.name)
                    self._emit(EventKind.TABLE_DROPPED, stage=Stage.TABLE_CREATION, table=schema.name)

                await self.sqlserver_client.create_table(schema)
            except SchemaError:
                raise
            except Exception as e:
                raise SchemaError(f"Error creating table {schema.name}: {e}") from e

            stage.outcomes.append(ItemOutcome(name=schema.name))
            self._emit(EventKind.TABLE_CREATED, stage=Stage.TABLE_CREATION, table=schema.name)

        self._finish_stage(stage, started)
        return stage

    async def migrate_table(self, schema: TableSchema) -> MigrationResult:
        """
        Copy the rows of one table.

        Args:
            schema: Table schema

        Returns:
            Migration result; errors are recorded rather than raised
        """
        start_time = time.time()
        table = schema.name

        if schema.row_count == 0:
            self.logger.info(f"No records to migrate for {table}")
            return MigrationResult(table=table, rows_migrated=0, success=True, duration=0.0)

        def on_batch(batch_number: int, committed: int, total: int) -> None:
            self._emit(
                EventKind.BATCH_COMMITTED,
                stage=Stage.DATA_MIGRATION,
                table=table,
                batch=batch_number,
                processed=committed,
                total=total,
            )

        try:
            data = await self.access_client.read_table(table)
            rows_migrated = await self.sqlserver_client.insert_batch(
                table,
                data,
                schema.columns,
                batch_size=self.config.batch_size,
                on_batch=on_batch,
                cancel_event=self.cancel_event,
            )
        except MigrationCancelled:
            raise
        except DataTransferError as e:
            error_msg = f"Error migrating data for table {table}: {e}"
            self.logger.error(error_msg)
            return MigrationResult(
                table=table,
                rows_migrated=e.rows_committed,
                success=False,
                duration=time.time() - start_time,
                errors=[error_msg],
            )
        except Exception as e:
            error_msg = f"Error migrating data for table {table}: {e}"
            self.logger.error(error_msg)
            return MigrationResult(
                table=table,
                rows_migrated=0,
                success=False,
                duration=time.time() - start_time,
                errors=[error_msg],
            )

        duration = time.time() - start_time
        self.logger.log_migration_event(
            "migration_complete",
            table,
            rows_migrated=rows_migrated,
            duration=duration,
        )
        return MigrationResult(
            table=table, rows_migrated=rows_migrated, success=True, duration=duration
        )

    async def migrate_data(self, schemas: List[TableSchema]) -> List[MigrationResult]:
        """Migrate tables one at a time; a failing table is skipped."""
        started = time.time()
        stage = self._start_stage(Stage.DATA_MIGRATION)

        self.results = []
        for schema in schemas:
            self._check_cancelled()
            result = await self.migrate_table(schema)
            self.results.append(result)
            if result.success:
                stage.outcomes.append(ItemOutcome(name=schema.name))
            else:
                stage.outcomes.append(ItemOutcome.skipped(schema.name, "; ".join(result.errors)))
                self._warn(
                    Stage.DATA_MIGRATION,
                    f"Continuing with next table after failure in {schema.name}",
                    schema.name,
                )
            self._emit(
                EventKind.TABLE_MIGRATED,
                stage=Stage.DATA_MIGRATION,
                table=schema.name,
                rows=result.rows_migrated,
                success=result.success,
                duration=result.duration,
            )

        self._finish_stage(stage, started)
        return self.results

    async def create_indexes(self, schemas: List[TableSchema]) -> StageResult:
        """Create indexes table by table; failures never abort the stage."""
        started = time.time()
        stage = self._start_stage(Stage.INDEX_CREATION)

        for schema in schemas:
            self._check_cancelled()
            if not schema.indexes:
                self.logger.info(f"No indexes to create for table: {schema.name}")
                continue
            try:
                outcomes = await self.sqlserver_client.create_indexes(schema.name, schema.indexes)
            except Exception as e:
                self._warn(
                    Stage.INDEX_CREATION,
                    f"Error creating indexes for table {schema.name}: {e}",
                    schema.name,
                )
                stage.outcomes.append(ItemOutcome.skipped(schema.name, str(e)))
                continue

            self.index_counts[schema.name] = sum(1 for o in outcomes if o.success)
            for outcome in outcomes:
                stage.outcomes.append(outcome)
                if outcome.success:
                    self._emit(
                        EventKind.INDEX_CREATED,
                        stage=Stage.INDEX_CREATION,
                        table=schema.name,
                        index=outcome.name,
                    )
                else:
                    self._emit(
                        EventKind.WARNING,
                        stage=Stage.INDEX_CREATION,
                        table=schema.name,
                        message=f"Could not create index {outcome.name}: {outcome.reason}",
                    )

        self._finish_stage(stage, started)
        return stage

    async def create_foreign_keys(self) -> StageResult:
        """Create foreign keys for every discovered relationship; failures never abort."""
        started = time.time()
        stage = self._start_stage(Stage.FOREIGN_KEY_CREATION)

        try:
            relationships = await self.access_client.list_relationships()
            if relationships:
                self.logger.info(f"Found {len(relationships)} relationships to create")
                for rel in relationships:
                    self.logger.info(
                        f"  {rel.child_table}.{rel.child_column} -> {rel.parent_table}.{rel.parent_column}"
                    )
                outcomes = await self.sqlserver_client.create_foreign_keys(relationships)
            else:
                self.logger.info("No relationships found in the Access database.")
                outcomes = []
        except Exception as e:
            self._warn(Stage.FOREIGN_KEY_CREATION, f"Error creating foreign keys: {e}")
            stage.outcomes.append(ItemOutcome.skipped("foreign_keys", str(e)))
            outcomes = []

        for outcome in outcomes:
            stage.outcomes.append(outcome)
            if outcome.success:
                self._emit(
                    EventKind.FOREIGN_KEY_CREATED,
                    stage=Stage.FOREIGN_KEY_CREATION,
                    name=outcome.name,
                )
            else:
                self._emit(
                    EventKind.WARNING,
                    stage=Stage.FOREIGN_KEY_CREATION,
                    message=f"Could not create foreign key {outcome.name}: {outcome.reason}",
                )

        self._finish_stage(stage, started)
        return stage

    def build_summary(self) -> MigrationSummary:
        """Aggregate collected state into the final summary."""
        rows_by_table: Dict[str, int] = {r.table: r.rows_migrated for r in self.results}

        index_stage = next(
            (s for s in self.stages if s.stage is Stage.INDEX_CREATION and not s.skipped), None
        )
        fk_stage = next(
            (s for s in self.stages if s.stage is Stage.FOREIGN_KEY_CREATION and not s.skipped),
            None,
        )

        tables = [
            TableSummary(
                name=schema.name,
                columns=len(schema.columns),
                rows=rows_by_table.get(schema.name, 0),
                indexes=self.index_counts.get(schema.name, 0),
            )
            for schema in sorted(self.schemas, key=lambda s: s.name)
        ]
        return MigrationSummary(
            tables_migrated=len(self.schemas),
            total_rows=sum(t.rows for t in tables),
            indexes_created=len(index_stage.succeeded) if index_stage else 0,
            foreign_keys_enabled=self.config.create_foreign_keys,
            foreign_keys_created=len(fk_stage.succeeded) if fk_stage else 0,
            tables=tables,
        )

    async def migrate(self) -> MigrationReport:
        """
        Run the full migration.

        Returns:
            Report with per-stage outcomes and summary; never raises
        """
        start_time = time.time()
        self.schemas, self.results, self.stages = [], [], []
        self.index_counts = {}
        self.logger.info(
            "Starting Access to SQL Server migration",
            batch_size=self.config.batch_size,
            create_indexes=self.config.create_indexes,
            create_foreign_keys=self.config.create_foreign_keys,
        )

        try:
            await self.check_connectivity()
            schemas = await self.analyze_schema()
            await self.create_tables(schemas)
            await self.migrate_data(schemas)

            if self.config.create_indexes:
                await self.create_indexes(schemas)
            else:
                self._skip_stage(Stage.INDEX_CREATION)

            if self.config.create_foreign_keys:
                await self.create_foreign_keys()
            else:
                self._skip_stage(Stage.FOREIGN_KEY_CREATION)

            summary = self.build_summary()
            self._emit(EventKind.SUMMARY, stage=Stage.SUMMARY, summary=summary)
        except MigrationCancelled as e:
            self.logger.warning(f"Migration cancelled: {e}")
            return MigrationReport(
                success=False,
                stages=self.stages,
                results=self.results,
                error="Migration cancelled",
                duration=time.time() - start_time,
            )
        except Exception as e:
            self.logger.error(f"Migration failed: {e}", error_type=type(e).__name__)
            self.logger.debug(traceback.format_exc())
            return MigrationReport(
                success=False,
                stages=self.stages,
                results=self.results,
                error=str(e),
                duration=time.time() - start_time,
            )

        duration = time.time() - start_time
        self.logger.log_migration_event(
            "migration_summary",
            "*",
            rows_migrated=summary.total_rows,
            duration=duration,
            tables=summary.tables_migrated,
            indexes=summary.indexes_created,
        )
        return MigrationReport(
            success=True,
            stages=self.stages,
            results=self.results,
            summary=summary,
            duration=duration,
        )

"""Post-migration row count comparison between Access and SQL Server."""

from __future__ import annotations

from typing import List

from access_migrate.database.access_client import AccessClient
from access_migrate.database.sqlserver_client import SQLServerClient
from access_migrate.models.table_metadata import ValidationResult
from access_migrate.utils.logger import StructuredLogger


class ValidationService:
    """Checks that every migrated table holds as many rows as its source."""

    def __init__(
        self,
        access_client: AccessClient,
        sqlserver_client: SQLServerClient,
        logger: StructuredLogger,
    ):
        self.access_client = access_client
        self.sqlserver_client = sqlserver_client
        self.logger = logger

    async def validate_table(self, table: str) -> ValidationResult:
        """
        Count rows on both sides for one table.

        Count failures propagate to the caller.
        """
        source_count = await self.access_client.count_rows(table)
        target_count = await self.sqlserver_client.count_rows(table)
        return ValidationResult(
            table=table,
            row_count_match=source_count == target_count,
            source_count=source_count,
            target_count=target_count,
        )

    async def validate_all_tables(self, table_names: List[str]) -> List[ValidationResult]:
        """
        Validate each table in turn.

        A table whose count cannot be read (for example because it was never
        created in SQL Server) is reported as a mismatch carrying the error;
        the remaining tables are still checked.

        Args:
            table_names: Tables to compare

        Returns:
            One result per table, in the given order
        """
        results: List[ValidationResult] = []
        for table in table_names:
            try:
                result = await self.validate_table(table)
            except Exception as e:
                self.logger.error(f"Could not validate table {table}: {e}")
                result = ValidationResult(
                    table=table,
                    row_count_match=False,
                    source_count=0,
                    target_count=0,
                    errors=[str(e)],
                )
            else:
                log = self.logger.info if result.all_match else self.logger.error
                log(
                    f"Row counts {'match' if result.all_match else 'differ'} for {table}",
                    source_count=result.source_count,
                    target_count=result.target_count,
                )
            results.append(result)

        mismatched = sum(1 for r in results if not r.all_match)
        self.logger.info(
            "Validation finished", tables=len(results), mismatched=mismatched
        )
        return results

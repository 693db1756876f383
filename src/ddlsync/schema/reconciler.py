"""
Schema reconciliation core logic for ddlsync.

Drives the column, constraint, index and seed stages for every declared
table, one table at a time, so that the live database converges to the
schema model without dropping data.
"""

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from ..database.connection import ConnectionSource
from ..database.introspection import CatalogIntrospector
from ..exceptions import DatabaseConnectionError
from .columns import ColumnReconciler
from .constraints import ConstraintReconciler
from .indexes import IndexReconciler, SeedLoader
from .model import SchemaModel, TableDefinition
from .operations import SchemaChange, StageResult, StatementExecutor


logger = logging.getLogger(__name__)


class ReconciliationStatus(str, Enum):
    """Status of a table's reconciliation pass."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    PLANNED = "planned"


@dataclass
class ReconciliationResult:
    """Outcome of one table's reconciliation pass."""

    table: str
    schema: str = "public"
    status: ReconciliationStatus = ReconciliationStatus.SUCCESS
    changes_applied: List[SchemaChange] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    execution_time_ms: float = 0.0

    @property
    def full_name(self) -> str:
        return f"{self.schema}.{self.table}"

    @property
    def successful_changes(self) -> int:
        """Statements that ran without error."""
        return sum(1 for c in self.changes_applied if c.executed)

    @property
    def failed_changes(self) -> int:
        """Statements the database rejected."""
        return sum(1 for c in self.changes_applied if c.error)

    def absorb(self, stage: StageResult) -> None:
        self.changes_applied.extend(stage.changes)
        self.warnings.extend(stage.warnings)
        self.errors.extend(stage.errors)


class SchemaReconciler:
    """
    Core schema reconciliation engine for ddlsync.

    For each table, in dependency order:
    - ensure the table shell and its columns (additive only)
    - apply constraints, optionally dropping foreign key and unique ones first
    - create secondary indexes
    - run seed statements

    A failure anywhere in one table's pipeline is logged and the next table
    is processed. Only a failure to obtain a connection at all aborts the run.
    """

    def __init__(
        self,
        source: ConnectionSource,
        model: SchemaModel,
        dry_run: bool = False,
    ):
        self.source = source
        self.model = model
        self.executor = StatementExecutor(dry_run=dry_run)

        introspector = CatalogIntrospector()
        self.columns = ColumnReconciler(source, self.executor, introspector)
        self.constraints = ConstraintReconciler(source, self.executor, model, introspector)
        self.indexes = IndexReconciler(source, self.executor)
        self.seeds = SeedLoader(source, self.executor)

    @property
    def dry_run(self) -> bool:
        return self.executor.dry_run

    async def reconcile_table(
        self, table: TableDefinition, fix_constraints: bool = False
    ) -> ReconciliationResult:
        """
        Reconcile a single table.

        Raises:
            DatabaseConnectionError: if no connection can be acquired.
        """
        started = time.perf_counter()
        result = ReconciliationResult(table=table.name, schema=table.schema)

        logger.info("=====================================================")
        logger.info(f"Generating Table: {table.qualified_name}")
        logger.info("=====================================================")

        try:
            result.absorb(await self.columns.reconcile(table))
            logger.info(f"Columns reconciled for {table.name}")

            result.absorb(await self.constraints.reconcile(table, fix_constraints))
            logger.info(f"Constraints reconciled for {table.name}")

            result.absorb(await self.indexes.reconcile(table))
            result.absorb(await self.seeds.load(table))

            result.status = self._status_for(result)

        except DatabaseConnectionError:
            raise
        except Exception as e:
            logger.error(
                f"Error while generating tables and relations for {table.name}: {e}"
            )
            result.errors.append(str(e))
            result.status = ReconciliationStatus.FAILED

        finally:
            result.execution_time_ms = (time.perf_counter() - started) * 1000

        logger.info(
            f"Finished processing table - {table.name}: "
            f"{result.status.value} ({result.execution_time_ms:.1f}ms)"
        )
        return result

    async def reconcile(self, fix_constraints: bool = False) -> List[ReconciliationResult]:
        """
        Reconcile every table in dependency order and return per-table results.

        Raises:
            SchemaDependencyError: if the model's references form a cycle.
            DatabaseConnectionError: if no connection can be acquired.
        """
        results = []
        for table in self.model.ordered_tables():
            results.append(await self.reconcile_table(table, fix_constraints))

        summary = self.get_reconciliation_summary(results)
        logger.info(
            f"All tables processed: {summary['successful']} succeeded, "
            f"{summary['partial']} partial, {summary['failed']} failed"
        )
        return results

    async def reconcile_all(self) -> bool:
        """
        Non-destructive pass over every table.

        Returns True once every table has been visited, even if individual
        statements failed; inspect the log or use ``reconcile`` for details.
        """
        await self.reconcile(fix_constraints=False)
        return True

    async def reconcile_all_fixing_constraints(self) -> bool:
        """Like ``reconcile_all``, dropping and re-creating foreign key and unique constraints."""
        await self.reconcile(fix_constraints=True)
        return True

    def _status_for(self, result: ReconciliationResult) -> ReconciliationStatus:
        if result.errors:
            if any(c.executed for c in result.changes_applied):
                return ReconciliationStatus.PARTIAL
            return ReconciliationStatus.FAILED
        if self.dry_run:
            return ReconciliationStatus.PLANNED
        return ReconciliationStatus.SUCCESS

    @staticmethod
    def get_reconciliation_summary(results: List[ReconciliationResult]) -> Dict[str, Any]:
        """Table counts per status plus change, warning and failure totals."""
        by_status = Counter(r.status for r in results)
        return {
            "total_tables": len(results),
            "successful": by_status[ReconciliationStatus.SUCCESS],
            "partial": by_status[ReconciliationStatus.PARTIAL],
            "failed": by_status[ReconciliationStatus.FAILED],
            "planned": by_status[ReconciliationStatus.PLANNED],
            "total_changes": sum(len(r.changes_applied) for r in results),
            "successful_changes": sum(r.successful_changes for r in results),
            "failed_changes": sum(r.failed_changes for r in results),
            "warnings": sum(len(r.warnings) for r in results),
            "failed_tables": [r.full_name for r in results if r.status == ReconciliationStatus.FAILED],
        }

"""
Column reconciliation for ddlsync.

Creates the table shell, adds missing columns and tightens nullability.
Existing column types are never altered; a mismatch is only reported.
"""

import logging
from typing import Dict, List, Optional

from ..database.connection import ConnectionSource
from ..database.introspection import CatalogIntrospector, ColumnInfo
from . import statements
from .model import ColumnDefinition, TableDefinition
from .operations import SchemaChange, StageResult, StatementExecutor


logger = logging.getLogger(__name__)


class ColumnReconciler:
    """Converges the columns of one table towards its definition."""

    def __init__(
        self,
        source: ConnectionSource,
        executor: StatementExecutor,
        introspector: Optional[CatalogIntrospector] = None,
    ):
        self.source = source
        self.executor = executor
        self.introspector = introspector or CatalogIntrospector()

    async def reconcile(self, table: TableDefinition) -> StageResult:
        """
        Run the column stage for a table on a single pooled connection.

        Raises:
            DatabaseConnectionError: if no connection can be acquired.
            IntrospectionError: if the column catalog cannot be read.
        """
        result = StageResult()

        async with self.source.acquire() as conn:
            shell = await self.executor.apply(conn, statements.create_table_shell(table))
            result.changes.append(shell)
            if shell.executed:
                logger.info(f"Empty table {table.qualified_name} ensured")

            existing = await self.introspector.snapshot_columns(conn, table.schema, table.name)
            logger.info(f"Existing columns are - {list(existing)}")

            for column in table.columns:
                change = self._plan_column(table, column, existing, result.warnings)
                if change is None:
                    logger.info(
                        f"Column {column.name} for '{table.name}' - nothing to change"
                    )
                    continue
                result.changes.append(await self.executor.apply(conn, change))

        return result

    def _plan_column(
        self,
        table: TableDefinition,
        column: ColumnDefinition,
        existing: Dict[str, ColumnInfo],
        warnings: List[str],
    ) -> Optional[SchemaChange]:
        info = existing.get(column.name)
        if info is None:
            return statements.add_column(table, column)

        expected_type = column.type.native_type
        if info.data_type.lower() != expected_type.lower():
            message = (
                f"Column {table.name}.{column.name} type mismatch: "
                f"declared {column.type.value} ({expected_type}) vs {info.live_type}"
            )
            logger.warning(message)
            warnings.append(message)
        elif column.type.is_bounded_text and info.max_length != column.effective_char_limit:
            message = (
                f"Column {table.name}.{column.name} length mismatch: "
                f"declared {column.effective_char_limit} vs {info.max_length}"
            )
            logger.warning(message)
            warnings.append(message)

        if not column.is_nullable and info.is_nullable:
            return statements.set_not_null(table, column)

        return None

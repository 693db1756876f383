"""
Constraint reconciliation for ddlsync.

Applies declared foreign key, unique, check, case-insensitive unique and
index constraints. In fix mode, foreign key and unique constraints found on
the table are dropped first so that changed definitions can be re-applied.
Primary key and check constraints are never dropped.
"""

import logging
from typing import Dict, List, Optional

from ..database.connection import ConnectionSource
from ..database.introspection import CatalogIntrospector, ConstraintInfo
from . import statements
from .model import (
    DEFAULT_REFERENCE_COLUMN,
    CheckConstraint,
    ConstraintDefinition,
    IndexConstraint,
    ReferenceConstraint,
    SchemaModel,
    TableDefinition,
    UniqueConstraint,
    UniqueLowerConstraint,
)
from .operations import SchemaChange, StageResult, StatementExecutor


logger = logging.getLogger(__name__)


class ConstraintReconciler:
    """Converges the constraints of one table towards its definition."""

    def __init__(
        self,
        source: ConnectionSource,
        executor: StatementExecutor,
        model: Optional[SchemaModel] = None,
        introspector: Optional[CatalogIntrospector] = None,
    ):
        self.source = source
        self.executor = executor
        self.model = model
        self.introspector = introspector or CatalogIntrospector()

    async def reconcile(self, table: TableDefinition, fix_constraints: bool = False) -> StageResult:
        """
        Run the constraint stage for a table on a single pooled connection.

        Raises:
            DatabaseConnectionError: if no connection can be acquired.
            IntrospectionError: if the constraint catalog cannot be read.
        """
        result = StageResult()

        async with self.source.acquire() as conn:
            existing = await self.introspector.snapshot_constraints(conn, table.schema, table.name)
            present: Dict[str, ConstraintInfo] = {c.name: c for c in existing}

            primary_keys = [c.name for c in existing if c.is_primary_key]
            if primary_keys:
                logger.debug(f"{table.name}: primary key constraints left untouched: {primary_keys}")

            if fix_constraints:
                for constraint in existing:
                    if not constraint.is_droppable:
                        continue
                    drop = await self.executor.apply(
                        conn, statements.drop_constraint(table, constraint.name)
                    )
                    result.changes.append(drop)
                    if drop.executed or drop.planned:
                        present.pop(constraint.name, None)
                    else:
                        logger.warning(f"Could not drop constraint {constraint.name}, keeping it")

            for declared in table.constraints:
                change = self._plan_constraint(table, declared, present, result.warnings)
                if change is None:
                    continue
                logger.info(f"Constraint to be added - {declared}")
                result.changes.append(await self.executor.apply(conn, change))

        return result

    def _plan_constraint(
        self,
        table: TableDefinition,
        declared: ConstraintDefinition,
        present: Dict[str, ConstraintInfo],
        warnings: List[str],
    ) -> Optional[SchemaChange]:
        if isinstance(declared, ReferenceConstraint):
            name = statements.foreign_key_name(table, declared)
            if name in present:
                self._check_cascade_drift(table, declared, present[name], warnings)
                return None
            return statements.add_foreign_key(
                table, declared, self._target_column(declared), self._target_table(table, declared)
            )

        if isinstance(declared, UniqueConstraint):
            name = statements.unique_name(table, declared.columns)
            if name in present:
                logger.info(f"Unique constraint {name} already present")
                return None
            return statements.add_unique(table, declared)

        if isinstance(declared, CheckConstraint):
            name = statements.check_name(table, declared)
            if name in present:
                logger.info(f"Check constraint {name} already present")
                return None
            return statements.add_check(table, declared)

        if isinstance(declared, UniqueLowerConstraint):
            return statements.create_unique_lower_index(table, declared)

        if isinstance(declared, IndexConstraint):
            return statements.create_index_constraint(table, declared)

        raise TypeError(f"Unsupported constraint definition: {declared!r}")

    def _target_column(self, declared: ReferenceConstraint) -> str:
        if self.model is not None:
            return self.model.resolve_reference_target(declared)
        return declared.target_column or DEFAULT_REFERENCE_COLUMN

    def _target_table(self, table: TableDefinition, declared: ReferenceConstraint) -> Optional[str]:
        if self.model is not None:
            return self.model.resolve_reference_table(table, declared)
        return None

    @staticmethod
    def _check_cascade_drift(
        table: TableDefinition,
        declared: ReferenceConstraint,
        info: ConstraintInfo,
        warnings: List[str],
    ) -> None:
        has_cascade = "ON DELETE CASCADE" in info.definition.upper()
        if has_cascade == declared.cascade:
            logger.info(f"Foreign key {info.name} already present")
            return
        message = (
            f"Foreign key {info.name} on {table.name} differs in delete behaviour "
            f"(declared cascade={declared.cascade}); re-run with fix constraints to recreate it"
        )
        logger.warning(message)
        warnings.append(message)

"""
Secondary index and seed statement stages for ddlsync.
"""

import logging

from ..database.connection import ConnectionSource
from . import statements
from .model import TableDefinition
from .operations import StageResult, StatementExecutor


logger = logging.getLogger(__name__)


class IndexReconciler:
    """Creates the table-level ``indexes`` with existence-guarded statements."""

    def __init__(self, source: ConnectionSource, executor: StatementExecutor):
        self.source = source
        self.executor = executor

    async def reconcile(self, table: TableDefinition) -> StageResult:
        result = StageResult()
        if not table.indexes:
            return result

        logger.info(f"Creating {len(table.indexes)} index(es) for {table.name}...")
        async with self.source.acquire() as conn:
            for columns in table.indexes:
                change = statements.create_index(table, columns)
                result.changes.append(await self.executor.apply(conn, change))

        return result


class SeedLoader:
    """
    Runs a table's raw seed statements in order.

    Seeds must be idempotent on their own (``ON CONFLICT DO NOTHING`` and the
    like); nothing here deduplicates them.
    """

    def __init__(self, source: ConnectionSource, executor: StatementExecutor):
        self.source = source
        self.executor = executor

    async def load(self, table: TableDefinition) -> StageResult:
        result = StageResult()
        if not table.seeds:
            return result

        async with self.source.acquire() as conn:
            for position, statement in enumerate(table.seeds, start=1):
                change = statements.seed(table, statement, position)
                result.changes.append(await self.executor.apply(conn, change))

        return result

"""
Schema change records and their execution for ddlsync.

Every corrective statement is wrapped in a ``SchemaChange``. The executor
runs one change at a time and isolates database-level failures so that a
bad statement never stops the statements after it.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import asyncpg

from ..database.connection import Connection


logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """Kind of statement a change carries, in the order stages emit them."""

    CREATE_TABLE = "create_table"
    ADD_COLUMN = "add_column"
    SET_NOT_NULL = "set_not_null"
    DROP_CONSTRAINT = "drop_constraint"
    ADD_CONSTRAINT = "add_constraint"
    CREATE_INDEX = "create_index"
    SEED = "seed"


@dataclass
class SchemaChange:
    """A single corrective statement and the outcome of running it."""

    change_type: ChangeType
    schema: str
    table: str
    description: str
    sql: str
    target_object: Optional[str] = None

    executed: bool = False
    planned: bool = False
    elapsed_ms: Optional[float] = None
    error: Optional[str] = None

    @property
    def full_table_name(self) -> str:
        return f"{self.schema}.{self.table}"

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @property
    def change_id(self) -> str:
        """``<type>:<schema>.<table>:<object>``, the object defaulting to the table."""
        return f"{self.change_type.value}:{self.full_table_name}:{self.target_object or self.table}"


@dataclass
class StageResult:
    """Changes attempted and warnings raised by one reconciliation stage."""

    changes: List[SchemaChange] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [f"{c.change_id}: {c.error}" for c in self.changes if c.has_error]


class StatementExecutor:
    """
    Runs schema changes one statement at a time.

    Database errors (``asyncpg.PostgresError``) are logged together with the
    statement text and recorded on the change; anything else, such as a lost
    connection, propagates to the caller.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    async def apply(self, conn: Connection, change: SchemaChange) -> SchemaChange:
        """Execute a change, recording success or failure on it."""
        if self.dry_run:
            change.planned = True
            logger.info(f"[dry run] {change.description}: {change.sql}")
            return change

        logger.info(f"Q: {change.sql}")
        started = time.perf_counter()
        try:
            await conn.execute(change.sql)
            change.executed = True
        except asyncpg.PostgresError as e:
            change.error = str(e)
            logger.error(f"{change.change_id} failed: {e}\n\t> {change.sql}")
        finally:
            change.elapsed_ms = (time.perf_counter() - started) * 1000

        if change.executed:
            logger.debug(f"{change.description} ({change.elapsed_ms:.1f}ms)")
        return change

    async def apply_all(self, conn: Connection, changes: List[SchemaChange]) -> List[SchemaChange]:
        """Apply changes in order; a failing change does not stop the rest."""
        for change in changes:
            await self.apply(conn, change)
        return changes

"""
Catalog introspection for ddlsync.

Reads the live column and constraint catalogs of one table into plain
snapshots. Snapshots are rebuilt on every call and never cached.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .connection import Connection
from ..exceptions import IntrospectionError


logger = logging.getLogger(__name__)


COLUMNS_QUERY = """
    SELECT
        c.column_name,
        c.data_type,
        c.character_maximum_length,
        c.is_nullable
    FROM information_schema.columns c
    WHERE c.table_schema = $1 AND c.table_name = $2
    ORDER BY c.ordinal_position
"""

CONSTRAINTS_QUERY = """
    SELECT
        con.conname,
        con.contype,
        pg_catalog.pg_get_constraintdef(con.oid) AS definition
    FROM pg_catalog.pg_constraint con
    INNER JOIN pg_catalog.pg_class rel ON rel.oid = con.conrelid
    INNER JOIN pg_catalog.pg_namespace nsp ON nsp.oid = rel.relnamespace
    WHERE nsp.nspname = $1 AND rel.relname = $2
    ORDER BY con.conname
"""


class ConstraintKind(str, Enum):
    """``pg_constraint.contype`` codes."""

    PRIMARY_KEY = "p"
    FOREIGN_KEY = "f"
    UNIQUE = "u"
    CHECK = "c"
    EXCLUSION = "x"
    TRIGGER = "t"
    NOT_NULL = "n"
    UNKNOWN = "?"

    @classmethod
    def from_code(cls, code) -> "ConstraintKind":
        if isinstance(code, bytes):
            code = code.decode("ascii", "replace")
        try:
            return cls(code)
        except ValueError:
            return cls.UNKNOWN


@dataclass
class ColumnInfo:
    """Introspected state of one column."""

    name: str
    data_type: str
    is_nullable: bool
    max_length: Optional[int] = None

    @property
    def live_type(self) -> str:
        """Catalog type name with its length, e.g. ``character varying(120)``."""
        return f"{self.data_type}({self.max_length})" if self.max_length else self.data_type


@dataclass
class ConstraintInfo:
    """Introspected state of one table constraint."""

    name: str
    kind: ConstraintKind
    definition: str = ""

    @property
    def is_primary_key(self) -> bool:
        return self.kind == ConstraintKind.PRIMARY_KEY

    @property
    def is_droppable(self) -> bool:
        """Foreign key and unique constraints may be dropped by fix mode."""
        return self.kind in (ConstraintKind.FOREIGN_KEY, ConstraintKind.UNIQUE)


class CatalogIntrospector:
    """Reads catalog snapshots over a caller-supplied connection."""

    async def snapshot_columns(
        self, conn: Connection, schema: str, table: str
    ) -> Dict[str, ColumnInfo]:
        """
        Map column name to its introspected state.

        A table with no columns, or no table at all, yields an empty mapping.

        Raises:
            IntrospectionError: if the catalog query fails.
        """
        try:
            rows = await conn.fetch(COLUMNS_QUERY, schema, table)
        except Exception as e:
            logger.error(f"Error reading columns for {schema}.{table}: {e}")
            raise IntrospectionError(f"{schema}.{table}", "columns", cause=e) from e

        columns: Dict[str, ColumnInfo] = {}
        for row in rows:
            info = ColumnInfo(
                name=row["column_name"],
                data_type=row["data_type"],
                is_nullable=row["is_nullable"] == "YES",
                max_length=row["character_maximum_length"],
            )
            columns[info.name] = info

        logger.debug(f"Existing columns for {schema}.{table}: {list(columns)}")
        return columns

    async def snapshot_constraints(
        self, conn: Connection, schema: str, table: str
    ) -> List[ConstraintInfo]:
        """
        List the constraints currently defined on a table.

        Raises:
            IntrospectionError: if the catalog query fails.
        """
        try:
            rows = await conn.fetch(CONSTRAINTS_QUERY, schema, table)
        except Exception as e:
            logger.error(f"Error reading constraints for {schema}.{table}: {e}")
            raise IntrospectionError(f"{schema}.{table}", "constraints", cause=e) from e

        constraints = [
            ConstraintInfo(
                name=row["conname"],
                kind=ConstraintKind.from_code(row["contype"]),
                definition=row["definition"] or "",
            )
            for row in rows
        ]

        for constraint in constraints:
            logger.debug(
                f"{schema}.{table} -> constraint {constraint.name} ({constraint.kind.name})"
            )
        return constraints

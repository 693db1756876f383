"""
Pytest configuration and shared fixtures for ddlsync tests.

Provides an in-memory stand-in for a PostgreSQL catalog that understands the
statements ddlsync emits and answers its two introspection queries, so the
reconciliation engine can be exercised end to end without a server.
"""

import re
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import asyncpg
import pytest

from ddlsync.exceptions import DatabaseConnectionError
from ddlsync.schema.model import (
    NOW,
    CheckConstraint,
    ColumnDefinition,
    ColumnType,
    ReferenceConstraint,
    SchemaModel,
    TableDefinition,
    UniqueConstraint,
)


CREATE_TABLE_RE = re.compile(r"^CREATE TABLE IF NOT EXISTS (\w+)\.(\w+) \(\)$")
ADD_COLUMN_RE = re.compile(
    r"^ALTER TABLE (\w+)\.(\w+) ADD COLUMN IF NOT EXISTS (\w+) (\w+)(?:\((\d+)\))?(.*)$"
)
SET_NOT_NULL_RE = re.compile(r"^ALTER TABLE (\w+)\.(\w+) ALTER COLUMN (\w+) SET NOT NULL$")
ADD_CONSTRAINT_RE = re.compile(
    r"^ALTER TABLE (\w+)\.(\w+) ADD CONSTRAINT (\w+) ((FOREIGN KEY|UNIQUE|CHECK).*)$"
)
DROP_CONSTRAINT_RE = re.compile(r"^ALTER TABLE (\w+)\.(\w+) DROP CONSTRAINT (\w+)$")
CREATE_INDEX_RE = re.compile(
    r"^CREATE (UNIQUE )?INDEX IF NOT EXISTS (\w+) ON (\w+)\.(\w+) \((.*)\)$"
)
REFERENCES_RE = re.compile(r"REFERENCES (\w+)\.(\w+)\((\w+)\)")

# PostgreSQL keeps only the first 63 bytes of an identifier.
IDENTIFIER_LIMIT = 63

CONTYPES = {"FOREIGN KEY": "f", "UNIQUE": "u", "CHECK": "c"}


@dataclass
class FakeColumn:
    data_type: str
    nullable: bool = True
    max_length: Optional[int] = None


@dataclass
class FakeTable:
    columns: Dict[str, FakeColumn] = field(default_factory=dict)
    constraints: Dict[str, Tuple[str, str]] = field(default_factory=dict)
    indexes: Dict[str, str] = field(default_factory=dict)


class FakeCatalog:
    """
    In-memory catalog state.

    ``failures`` maps a SQL substring to the exception raised by any
    statement containing it. ``fetch_failures`` maps a table name to the
    exception raised by introspection queries for that table; ``fetch_error``
    is raised by every introspection query when set.
    """

    def __init__(self):
        self.tables: Dict[Tuple[str, str], FakeTable] = {}
        self.statements: List[str] = []
        self.seeds: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self.fetch_error: Optional[Exception] = None
        self.fetch_failures: Dict[str, Exception] = {}

    # State helpers for test setup

    def add_table(self, name: str, schema: str = "public") -> FakeTable:
        return self.tables.setdefault((schema, name), FakeTable())

    def add_column(
        self,
        table: str,
        name: str,
        data_type: str,
        nullable: bool = True,
        max_length: Optional[int] = None,
        schema: str = "public",
    ) -> None:
        self.add_table(table, schema).columns[name] = FakeColumn(data_type, nullable, max_length)

    def add_constraint(
        self, table: str, name: str, contype: str, definition: str = "", schema: str = "public"
    ) -> None:
        self.add_table(table, schema).constraints[name] = (contype, definition)

    def table(self, name: str, schema: str = "public") -> Optional[FakeTable]:
        return self.tables.get((schema, name))

    # Statement handling

    def execute(self, sql: str) -> str:
        self.statements.append(sql)
        for pattern, error in self.failures.items():
            if pattern in sql:
                raise error

        match = CREATE_TABLE_RE.match(sql)
        if match:
            self.add_table(match.group(2), match.group(1))
            return "CREATE TABLE"

        match = ADD_COLUMN_RE.match(sql)
        if match:
            schema, name, column, type_name, length, rest = match.groups()
            table = self._require(schema, name)
            if column not in table.columns:
                table.columns[column] = FakeColumn(
                    data_type=ColumnType(type_name).native_type,
                    nullable="NOT NULL" not in rest and "PRIMARY KEY" not in rest,
                    max_length=int(length) if length else None,
                )
                if "PRIMARY KEY" in rest:
                    table.constraints[f"{name}_pkey"] = ("p", f"PRIMARY KEY ({column})")
            return "ALTER TABLE"

        match = SET_NOT_NULL_RE.match(sql)
        if match:
            schema, name, column = match.groups()
            table = self._require(schema, name)
            if column not in table.columns:
                raise asyncpg.exceptions.UndefinedColumnError(
                    f'column "{column}" of relation "{name}" does not exist'
                )
            table.columns[column].nullable = False
            return "ALTER TABLE"

        match = ADD_CONSTRAINT_RE.match(sql)
        if match:
            schema, name, constraint, definition, kind = match.groups()
            constraint = constraint[:IDENTIFIER_LIMIT]
            table = self._require(schema, name)
            if constraint in table.constraints:
                raise asyncpg.exceptions.DuplicateObjectError(
                    f'constraint "{constraint}" for relation "{name}" already exists'
                )
            reference = REFERENCES_RE.search(definition)
            if reference:
                target_schema, target, target_column = reference.groups()
                if target_column not in self._require(target_schema, target).columns:
                    raise asyncpg.exceptions.UndefinedColumnError(
                        f'column "{target_column}" referenced in foreign key constraint does not exist'
                    )
            table.constraints[constraint] = (CONTYPES[kind], definition)
            return "ALTER TABLE"

        match = DROP_CONSTRAINT_RE.match(sql)
        if match:
            schema, name, constraint = match.groups()
            table = self._require(schema, name)
            if constraint not in table.constraints:
                raise asyncpg.exceptions.UndefinedObjectError(
                    f'constraint "{constraint}" of relation "{name}" does not exist'
                )
            del table.constraints[constraint]
            return "ALTER TABLE"

        match = CREATE_INDEX_RE.match(sql)
        if match:
            _, index, schema, name, _ = match.groups()
            index = index[:IDENTIFIER_LIMIT]
            table = self._require(schema, name)
            table.indexes.setdefault(index, sql)
            return "CREATE INDEX"

        self.seeds.append(sql)
        return "INSERT 0 1"

    def fetch(self, query: str, schema: str, name: str) -> List[Dict[str, Any]]:
        if self.fetch_error is not None:
            raise self.fetch_error
        if name in self.fetch_failures:
            raise self.fetch_failures[name]

        table = self.tables.get((schema, name))
        if table is None:
            return []

        if "information_schema.columns" in query:
            return [
                {
                    "column_name": column,
                    "data_type": info.data_type,
                    "character_maximum_length": info.max_length,
                    "is_nullable": "YES" if info.nullable else "NO",
                }
                for column, info in table.columns.items()
            ]

        if "pg_constraint" in query:
            return [
                {"conname": constraint, "contype": contype, "definition": definition}
                for constraint, (contype, definition) in sorted(table.constraints.items())
            ]

        raise AssertionError(f"Unexpected query: {query}")

    def _require(self, schema: str, name: str) -> FakeTable:
        table = self.tables.get((schema, name))
        if table is None:
            raise asyncpg.exceptions.UndefinedTableError(
                f'relation "{schema}.{name}" does not exist'
            )
        return table


class FakeConnection:
    """Implements the ``Connection`` protocol against a ``FakeCatalog``."""

    def __init__(self, catalog: FakeCatalog):
        self.catalog = catalog

    async def execute(self, query: str, *args: Any) -> str:
        return self.catalog.execute(query)

    async def fetch(self, query: str, *args: Any) -> List[Dict[str, Any]]:
        return self.catalog.fetch(query, *args)


class FakeSource:
    """``ConnectionSource`` lending out connections to a ``FakeCatalog``."""

    def __init__(self, catalog: FakeCatalog):
        self.catalog = catalog
        self.acquired = 0
        self.released = 0
        self.unavailable = False

    @asynccontextmanager
    async def acquire(self):
        if self.unavailable:
            raise DatabaseConnectionError("Pool is not connected")
        self.acquired += 1
        try:
            yield FakeConnection(self.catalog)
        finally:
            self.released += 1


class FakePool(FakeSource):
    """Stands in for ``ConnectionPool`` in CLI tests."""

    def __init__(self, catalog: FakeCatalog):
        super().__init__(catalog)
        self.initialized = False
        self.closed = False
        self.initialize_error: Optional[Exception] = None
        self.version = "PostgreSQL 16.2"

    async def initialize(self) -> None:
        if self.initialize_error is not None:
            raise self.initialize_error
        self.initialized = True

    async def close(self) -> None:
        self.closed = True

    async def server_version(self) -> str:
        return self.version

    async def __aenter__(self) -> "FakePool":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


# ============================================================================
# Catalog Fixtures
# ============================================================================

@pytest.fixture
def catalog() -> FakeCatalog:
    """Empty in-memory catalog."""
    return FakeCatalog()


@pytest.fixture
def source(catalog) -> FakeSource:
    """Connection source backed by the in-memory catalog."""
    return FakeSource(catalog)


@pytest.fixture
def pool(catalog) -> FakePool:
    """Pool double backed by the in-memory catalog."""
    return FakePool(catalog)


# ============================================================================
# Schema Fixtures
# ============================================================================

@pytest.fixture
def users_table() -> TableDefinition:
    """users(id SERIAL primary, email VARCHAR(255) NOT NULL unique, created_at default NOW)."""
    return TableDefinition(
        name="users",
        columns=(
            ColumnDefinition("id", ColumnType.SERIAL, primary=True),
            ColumnDefinition("email", ColumnType.VARCHAR, char_limit=255, nullable=False),
            ColumnDefinition("created_at", ColumnType.TIMESTAMP, nullable=False, default=NOW),
        ),
        constraints=(UniqueConstraint(("email",)),),
        indexes=(("created_at",),),
    )


@pytest.fixture
def posts_table() -> TableDefinition:
    """posts referencing users with cascade, plus a check constraint."""
    return TableDefinition(
        name="posts",
        columns=(
            ColumnDefinition("id", ColumnType.SERIAL, primary=True),
            ColumnDefinition("user_id", ColumnType.INTEGER, nullable=False),
            ColumnDefinition("title", ColumnType.VARCHAR, char_limit=200, nullable=False),
            ColumnDefinition("views", ColumnType.INTEGER, nullable=False, default=0),
        ),
        constraints=(
            ReferenceConstraint("user_id", "users", cascade=True),
            CheckConstraint("views >= 0"),
        ),
        indexes=(("user_id",),),
    )


@pytest.fixture
def blog_model(users_table, posts_table) -> SchemaModel:
    """Two-table model declared in dependency order."""
    return SchemaModel([users_table, posts_table])

"""
Declarative schema model for ddlsync.

Pure data describing the tables a database should converge to: columns,
constraints, secondary indexes and seed statements. Nothing in this module
talks to a database.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..exceptions import SchemaDefinitionError, SchemaDependencyError


logger = logging.getLogger(__name__)

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DEFAULT_CHAR_LIMIT = 255
DEFAULT_SCHEMA = "public"
DEFAULT_REFERENCE_COLUMN = "id"


class ColumnType(str, Enum):
    """Logical column types understood by the reconciler."""

    SERIAL = "SERIAL"
    VARCHAR = "VARCHAR"
    CHARACTER = "CHARACTER"
    TEXT = "TEXT"
    INTEGER = "INTEGER"
    BIGINT = "BIGINT"
    BOOLEAN = "BOOLEAN"
    TIMESTAMP = "TIMESTAMP"
    TIMESTAMPTZ = "TIMESTAMPTZ"
    DATE = "DATE"
    INET = "INET"
    JSONB = "JSONB"
    UUID = "UUID"

    @property
    def is_bounded_text(self) -> bool:
        """Whether the type takes a length qualifier."""
        return self in (ColumnType.VARCHAR, ColumnType.CHARACTER)

    @property
    def native_type(self) -> str:
        """The ``information_schema.columns.data_type`` this type introspects as."""
        return _NATIVE_TYPES[self]


_NATIVE_TYPES = {
    ColumnType.SERIAL: "integer",
    ColumnType.VARCHAR: "character varying",
    ColumnType.CHARACTER: "character",
    ColumnType.TEXT: "text",
    ColumnType.INTEGER: "integer",
    ColumnType.BIGINT: "bigint",
    ColumnType.BOOLEAN: "boolean",
    ColumnType.TIMESTAMP: "timestamp without time zone",
    ColumnType.TIMESTAMPTZ: "timestamp with time zone",
    ColumnType.DATE: "date",
    ColumnType.INET: "inet",
    ColumnType.JSONB: "jsonb",
    ColumnType.UUID: "uuid",
}


class DefaultMarker(str, Enum):
    """Named defaults resolved by the database at insertion time."""

    NOW = "NOW()"


NOW = DefaultMarker.NOW

DefaultValue = Union[bool, int, float, str, DefaultMarker]


def render_default(value: DefaultValue) -> str:
    """Render a declared default as SQL text."""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, DefaultMarker):
        return value.value
    if isinstance(value, str) and value.strip().upper() == DefaultMarker.NOW.value:
        return DefaultMarker.NOW.value
    return str(value)


@dataclass(frozen=True)
class ColumnDefinition:
    """A declared column."""

    name: str
    type: ColumnType
    primary: bool = False
    unique: bool = False
    nullable: bool = True
    char_limit: Optional[int] = None
    default: Optional[DefaultValue] = None
    description: Optional[str] = None

    @property
    def is_nullable(self) -> bool:
        """Effective nullability; primary key columns are never nullable."""
        return self.nullable and not self.primary

    @property
    def effective_char_limit(self) -> Optional[int]:
        if not self.type.is_bounded_text:
            return None
        return self.char_limit or DEFAULT_CHAR_LIMIT


@dataclass(frozen=True)
class ReferenceConstraint:
    """Foreign key from ``column`` to ``table.target_column``."""

    kind: ClassVar[str] = "ref"

    column: str
    table: str
    target_column: Optional[str] = None
    cascade: bool = False

    @property
    def columns(self) -> Tuple[str, ...]:
        return (self.column,)


@dataclass(frozen=True)
class UniqueConstraint:
    """Composite unique key."""

    kind: ClassVar[str] = "unique"

    columns: Tuple[str, ...]


@dataclass(frozen=True)
class UniqueLowerConstraint:
    """Case-insensitive unique key, enforced by a unique expression index."""

    kind: ClassVar[str] = "unique_lower"

    columns: Tuple[str, ...]


@dataclass(frozen=True)
class CheckConstraint:
    """Opaque boolean predicate in the database's expression language."""

    kind: ClassVar[str] = "check"

    expression: str

    @property
    def columns(self) -> Tuple[str, ...]:
        return ()


@dataclass(frozen=True)
class IndexConstraint:
    """Plain secondary index declared alongside the constraints."""

    kind: ClassVar[str] = "index"

    columns: Tuple[str, ...]
    name: Optional[str] = None


ConstraintDefinition = Union[
    ReferenceConstraint,
    UniqueConstraint,
    UniqueLowerConstraint,
    CheckConstraint,
    IndexConstraint,
]


@dataclass(frozen=True)
class TableDefinition:
    """A declared table. Configuration, never runtime state."""

    name: str
    columns: Tuple[ColumnDefinition, ...]
    constraints: Tuple[ConstraintDefinition, ...] = ()
    indexes: Tuple[Tuple[str, ...], ...] = ()
    seeds: Tuple[str, ...] = ()
    schema: str = DEFAULT_SCHEMA

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}"

    @property
    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]

    @property
    def primary_key(self) -> Optional[str]:
        """Name of the first primary key column, if any."""
        for col in self.columns:
            if col.primary:
                return col.name
        return None

    @property
    def references(self) -> List[ReferenceConstraint]:
        return [c for c in self.constraints if isinstance(c, ReferenceConstraint)]

    def get_column(self, name: str) -> Optional[ColumnDefinition]:
        for col in self.columns:
            if col.name == name:
                return col
        return None


class SchemaModel:
    """
    An ordered, validated collection of table definitions.

    Construction checks identifiers, name uniqueness and column references.
    ``ordered_tables`` returns the processing order: every table after the
    tables it references, declaration order otherwise.
    """

    def __init__(self, tables: Iterable[TableDefinition]):
        self._tables: Tuple[TableDefinition, ...] = tuple(tables)
        self._by_name: Dict[str, TableDefinition] = {}
        for table in self._tables:
            self._validate_table(table)
            if table.name in self._by_name:
                raise SchemaDefinitionError(f"Duplicate table name '{table.name}'")
            self._by_name[table.name] = table

    def __iter__(self):
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def tables(self) -> Tuple[TableDefinition, ...]:
        """Tables in declaration order."""
        return self._tables

    def get_table(self, name: str) -> Optional[TableDefinition]:
        return self._by_name.get(name)

    def resolve_reference_target(self, constraint: ReferenceConstraint) -> str:
        """Target column of a reference, defaulting to the target's primary key."""
        if constraint.target_column:
            return constraint.target_column
        target = self._by_name.get(constraint.table)
        if target is not None and target.primary_key:
            return target.primary_key
        return DEFAULT_REFERENCE_COLUMN

    def resolve_reference_table(self, referring: TableDefinition, constraint: ReferenceConstraint) -> str:
        """Qualified name of a reference's target; undeclared targets share the referring schema."""
        target = self._by_name.get(constraint.table)
        if target is not None:
            return target.qualified_name
        return f"{referring.schema}.{constraint.table}"

    def dependencies(self, table: TableDefinition) -> List[str]:
        """Names of declared tables that ``table`` references, excluding itself."""
        deps: List[str] = []
        for ref in table.references:
            if ref.table == table.name:
                continue
            if ref.table not in self._by_name:
                logger.debug(
                    f"Table {table.name} references undeclared table {ref.table}"
                )
                continue
            if ref.table not in deps:
                deps.append(ref.table)
        return deps

    def ordered_tables(self) -> List[TableDefinition]:
        """
        Topologically sort tables over their reference constraints.

        Among tables whose dependencies are satisfied, the earliest declared
        one is emitted first, so an already well-ordered model keeps its
        declaration order.

        Raises:
            SchemaDependencyError: if the references contain a cycle.
        """
        remaining = {t.name: set(self.dependencies(t)) for t in self._tables}
        ordered: List[TableDefinition] = []

        while remaining:
            ready = next(
                (t for t in self._tables if t.name in remaining and not remaining[t.name]),
                None,
            )
            if ready is None:
                raise SchemaDependencyError(remaining.keys())
            ordered.append(ready)
            del remaining[ready.name]
            for deps in remaining.values():
                deps.discard(ready.name)

        return ordered

    def _validate_table(self, table: TableDefinition) -> None:
        _check_identifier(table.schema, "schema")
        _check_identifier(table.name, "table")

        if not table.columns:
            raise SchemaDefinitionError(f"Table '{table.name}' declares no columns")

        seen = set()
        for col in table.columns:
            _check_identifier(col.name, f"column in table '{table.name}'")
            if col.name in seen:
                raise SchemaDefinitionError(
                    f"Duplicate column '{col.name}' in table '{table.name}'"
                )
            seen.add(col.name)
            if col.char_limit is not None and col.char_limit <= 0:
                raise SchemaDefinitionError(
                    f"Column '{table.name}.{col.name}' has non-positive char_limit"
                )

        for constraint in table.constraints:
            if isinstance(constraint, CheckConstraint):
                if not constraint.expression.strip():
                    raise SchemaDefinitionError(
                        f"Empty check expression on table '{table.name}'"
                    )
                continue
            if isinstance(constraint, ReferenceConstraint):
                _check_identifier(constraint.table, "referenced table")
                if constraint.target_column:
                    _check_identifier(constraint.target_column, "referenced column")
            if isinstance(constraint, IndexConstraint) and constraint.name:
                _check_identifier(constraint.name, "index")
            if not constraint.columns:
                raise SchemaDefinitionError(
                    f"Constraint '{constraint.kind}' on table '{table.name}' has no columns"
                )
            _check_columns_declared(table, constraint.columns, constraint.kind)

        for index_columns in table.indexes:
            if not index_columns:
                raise SchemaDefinitionError(f"Empty index on table '{table.name}'")
            _check_columns_declared(table, index_columns, "index")


def _check_identifier(name: str, what: str) -> None:
    if not name or not IDENTIFIER_PATTERN.match(name):
        raise SchemaDefinitionError(f"Invalid {what} identifier: {name!r}")


def _check_columns_declared(
    table: TableDefinition, columns: Sequence[str], what: str
) -> None:
    declared = set(table.column_names)
    for name in columns:
        if name not in declared:
            raise SchemaDefinitionError(
                f"{what} on table '{table.name}' refers to undeclared column '{name}'"
            )

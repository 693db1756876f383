"""
DDL statement synthesis for ddlsync.

Pure functions turning schema model pieces into ``SchemaChange`` records.
Identifiers are interpolated directly (DDL cannot be parameterised), so every
name must come from the validated schema model.
"""

import hashlib
from typing import Optional, Sequence

from .model import (
    CheckConstraint,
    ColumnDefinition,
    IndexConstraint,
    ReferenceConstraint,
    TableDefinition,
    UniqueConstraint,
    UniqueLowerConstraint,
    render_default,
)
from .operations import ChangeType, SchemaChange


# Longer identifiers are silently truncated by PostgreSQL.
MAX_IDENTIFIER_LENGTH = 63


def _change(table: TableDefinition, change_type: ChangeType, target: str, description: str, sql: str) -> SchemaChange:
    return SchemaChange(
        change_type=change_type,
        schema=table.schema,
        table=table.name,
        description=description,
        sql=sql,
        target_object=target,
    )


def column_definition_sql(column: ColumnDefinition) -> str:
    """Column type plus its PRIMARY KEY / NOT NULL / DEFAULT clauses."""
    sql = f"{column.name} {column.type.value}"
    if column.type.is_bounded_text:
        sql += f"({column.effective_char_limit})"
    if column.primary:
        sql += " PRIMARY KEY"
    if not column.is_nullable:
        sql += " NOT NULL"
    if column.default is not None:
        sql += f" DEFAULT {render_default(column.default)}"
    return sql


def create_table_shell(table: TableDefinition) -> SchemaChange:
    return _change(
        table,
        ChangeType.CREATE_TABLE,
        table.name,
        f"Create table {table.qualified_name}",
        f"CREATE TABLE IF NOT EXISTS {table.qualified_name} ()",
    )


def add_column(table: TableDefinition, column: ColumnDefinition) -> SchemaChange:
    return _change(
        table,
        ChangeType.ADD_COLUMN,
        column.name,
        f"Add column {column.name} to {table.qualified_name}",
        f"ALTER TABLE {table.qualified_name} ADD COLUMN IF NOT EXISTS {column_definition_sql(column)}",
    )


def set_not_null(table: TableDefinition, column: ColumnDefinition) -> SchemaChange:
    return _change(
        table,
        ChangeType.SET_NOT_NULL,
        column.name,
        f"Set {table.name}.{column.name} NOT NULL",
        f"ALTER TABLE {table.qualified_name} ALTER COLUMN {column.name} SET NOT NULL",
    )


def drop_constraint(table: TableDefinition, constraint_name: str) -> SchemaChange:
    return _change(
        table,
        ChangeType.DROP_CONSTRAINT,
        constraint_name,
        f"Drop constraint {constraint_name} on {table.qualified_name}",
        f"ALTER TABLE {table.qualified_name} DROP CONSTRAINT {constraint_name}",
    )


def _digest(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:8]


def fit_identifier(name: str) -> str:
    """
    Keep a generated name within PostgreSQL's identifier limit.

    Over-long names are cut and suffixed with a hash of the full name, so the
    result is stable and matches what the catalog reports on the next run.
    """
    if len(name.encode("utf-8")) <= MAX_IDENTIFIER_LENGTH:
        return name
    suffix = "_" + _digest(name)
    return name[: MAX_IDENTIFIER_LENGTH - len(suffix)] + suffix


def foreign_key_name(table: TableDefinition, constraint: ReferenceConstraint) -> str:
    return fit_identifier(f"{table.name}_{constraint.column}_fkey")


def unique_name(table: TableDefinition, columns: Sequence[str]) -> str:
    return fit_identifier(f"{table.name}_{'_'.join(columns)}_unique")


def unique_lower_name(table: TableDefinition, columns: Sequence[str]) -> str:
    return fit_identifier(f"{table.name}_{'_'.join(columns)}_unique_lower")


def check_name(table: TableDefinition, constraint: CheckConstraint) -> str:
    """Stable name derived from the table and predicate text."""
    return fit_identifier(f"{table.name}_check_{_digest(f'{table.name}:{constraint.expression}')}")


def index_name(table: TableDefinition, columns: Sequence[str]) -> str:
    return fit_identifier(f"idx_{table.name}_{'_'.join(columns)}")


def add_foreign_key(
    table: TableDefinition,
    constraint: ReferenceConstraint,
    target_column: str,
    target_table: Optional[str] = None,
) -> SchemaChange:
    """
    ``target_table`` is the qualified name of the referenced table; without it
    the target is assumed to live in the referring table's schema.
    """
    name = foreign_key_name(table, constraint)
    target_table = target_table or f"{table.schema}.{constraint.table}"
    sql = (
        f"ALTER TABLE {table.qualified_name} ADD CONSTRAINT {name} "
        f"FOREIGN KEY ({constraint.column}) "
        f"REFERENCES {target_table}({target_column})"
    )
    if constraint.cascade:
        sql += " ON DELETE CASCADE"
    return _change(table, ChangeType.ADD_CONSTRAINT, name, f"Add foreign key {name}", sql)


def add_unique(table: TableDefinition, constraint: UniqueConstraint) -> SchemaChange:
    name = unique_name(table, constraint.columns)
    return _change(
        table,
        ChangeType.ADD_CONSTRAINT,
        name,
        f"Add unique constraint {name}",
        f"ALTER TABLE {table.qualified_name} ADD CONSTRAINT {name} "
        f"UNIQUE ({', '.join(constraint.columns)})",
    )


def add_check(table: TableDefinition, constraint: CheckConstraint) -> SchemaChange:
    name = check_name(table, constraint)
    return _change(
        table,
        ChangeType.ADD_CONSTRAINT,
        name,
        f"Add check constraint {name}",
        f"ALTER TABLE {table.qualified_name} ADD CONSTRAINT {name} CHECK ({constraint.expression})",
    )


def create_unique_lower_index(table: TableDefinition, constraint: UniqueLowerConstraint) -> SchemaChange:
    name = unique_lower_name(table, constraint.columns)
    expressions = ", ".join(f"LOWER({col})" for col in constraint.columns)
    return _change(
        table,
        ChangeType.CREATE_INDEX,
        name,
        f"Create case-insensitive unique index {name}",
        f"CREATE UNIQUE INDEX IF NOT EXISTS {name} ON {table.qualified_name} ({expressions})",
    )


def create_index(table: TableDefinition, columns: Sequence[str], name: Optional[str] = None) -> SchemaChange:
    name = name or index_name(table, columns)
    return _change(
        table,
        ChangeType.CREATE_INDEX,
        name,
        f"Create index {name}",
        f"CREATE INDEX IF NOT EXISTS {name} ON {table.qualified_name} ({', '.join(columns)})",
    )


def create_index_constraint(table: TableDefinition, constraint: IndexConstraint) -> SchemaChange:
    return create_index(table, constraint.columns, constraint.name)


def seed(table: TableDefinition, statement: str, position: int) -> SchemaChange:
    return _change(
        table,
        ChangeType.SEED,
        f"seed_{position}",
        f"Seed statement {position} for {table.qualified_name}",
        statement,
    )

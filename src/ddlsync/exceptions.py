"""
Exception classes for ddlsync.

Everything raised deliberately by the package derives from ``DdlsyncError``,
which the CLI turns into a one-line message and exit status 1.
"""

from typing import Any, Dict, Iterable, Optional


class DdlsyncError(Exception):
    """Base exception for all ddlsync errors.

    ``details`` holds structured context rendered as ``[key=value, ...]``;
    ``cause`` is the underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})
        self.cause = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.details:
            parts.append("[" + ", ".join(f"{key}={value}" for key, value in self.details.items()) + "]")
        if self.cause is not None:
            parts.append(f"(caused by: {self.cause})")
        return " ".join(parts)


class ConfigurationError(DdlsyncError):
    """Invalid or unreadable configuration file or settings."""


class DatabaseError(DdlsyncError):
    """Base for failures talking to the database."""


class DatabaseConnectionError(DatabaseError):
    """A connection could not be established or acquired. Aborts a run."""


class DatabaseConfigurationError(DatabaseError):
    """Connection settings that cannot describe a usable database."""


class SchemaError(DatabaseError):
    """Base for schema model and catalog errors."""


class IntrospectionError(SchemaError):
    """The live catalog could not be read for a table."""

    def __init__(self, table: str, what: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Failed to introspect {what} for table '{table}'", cause=cause)
        self.table = table
        self.what = what


class SchemaDefinitionError(SchemaError):
    """The declared schema model is inconsistent."""


class SchemaDependencyError(SchemaDefinitionError):
    """Reference constraints form a cycle between tables."""

    def __init__(self, tables: Iterable[str]) -> None:
        self.tables = sorted(tables)
        super().__init__("Circular reference between tables: " + ", ".join(self.tables))

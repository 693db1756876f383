"""
Database integration package for ddlsync.

This package provides:
- The ConnectionSource contract and an asyncpg connection pool
- Column and constraint catalog snapshots
"""

from .connection import Connection, ConnectionConfig, ConnectionPool, ConnectionSource
from .introspection import CatalogIntrospector, ColumnInfo, ConstraintInfo, ConstraintKind

__all__ = [
    "Connection",
    "ConnectionConfig",
    "ConnectionPool",
    "ConnectionSource",
    "CatalogIntrospector",
    "ColumnInfo",
    "ConstraintInfo",
    "ConstraintKind",
]

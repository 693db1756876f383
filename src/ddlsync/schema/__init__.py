"""
Schema management package for ddlsync.

This package provides:
- The declarative schema model
- DDL statement synthesis and isolated execution
- Column, constraint, index and seed reconciliation stages
- The per-table reconciliation orchestrator
"""

from .model import (
    NOW,
    CheckConstraint,
    ColumnDefinition,
    ColumnType,
    ConstraintDefinition,
    IndexConstraint,
    ReferenceConstraint,
    SchemaModel,
    TableDefinition,
    UniqueConstraint,
    UniqueLowerConstraint,
)
from .operations import ChangeType, SchemaChange, StatementExecutor
from .reconciler import ReconciliationResult, ReconciliationStatus, SchemaReconciler

__all__ = [
    "NOW",
    "CheckConstraint",
    "ColumnDefinition",
    "ColumnType",
    "ConstraintDefinition",
    "IndexConstraint",
    "ReferenceConstraint",
    "SchemaModel",
    "TableDefinition",
    "UniqueConstraint",
    "UniqueLowerConstraint",
    "ChangeType",
    "SchemaChange",
    "StatementExecutor",
    "ReconciliationResult",
    "ReconciliationStatus",
    "SchemaReconciler",
]

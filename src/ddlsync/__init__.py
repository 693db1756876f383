"""
ddlsync: idempotent, additive PostgreSQL schema reconciliation.

ddlsync converges a live database to a declarative description of its
tables, adding what is missing and never dropping data.
"""

__version__ = "0.1.0"
__author__ = "ddlsync Contributors"

from .config import DdlsyncConfig
from .exceptions import ConfigurationError, DatabaseError, DdlsyncError, SchemaError

__all__ = [
    "__version__",
    "DdlsyncConfig",
    "DdlsyncError",
    "ConfigurationError",
    "DatabaseError",
    "SchemaError",
]

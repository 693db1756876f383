"""
Test suite for ddlsync.

Unit tests run the reconciliation engine against an in-memory catalog
defined in conftest.py; no database server is required.
"""

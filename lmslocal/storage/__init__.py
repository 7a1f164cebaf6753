"""
Storage module for competition data.

Provides a unified interface over the relational store:
- SQLite (local development, self-hosted, single-node deployments)

Usage:
    from lmslocal.storage import get_database

    db = get_database()  # Uses DB_TYPE env var
    competition = db.get_competition(123)
"""

from .base import DatabaseInterface
from .factory import get_database, reset_database
from .exceptions import (
    DatabaseError,
    ConnectionError,
    ConfigurationError,
    SchemaError,
    QueryError
)

__all__ = [
    'DatabaseInterface',
    'get_database',
    'reset_database',
    'DatabaseError',
    'ConnectionError',
    'ConfigurationError',
    'SchemaError',
    'QueryError'
]

"""
Exceptions raised by the storage layer.

Route handlers never show these to callers; they are logged and reported
as INTERNAL.

- DatabaseError: Base exception for all database errors
- ConnectionError: The store could not be opened
- ConfigurationError: DB_TYPE or a path setting is unusable
- SchemaError: Creating tables or indexes failed
- QueryError: A statement failed to execute
"""


class DatabaseError(Exception):
    """Base exception for all database errors."""
    pass


class ConnectionError(DatabaseError):
    """Failed to open the competition store."""
    pass


class ConfigurationError(DatabaseError):
    """Missing or invalid database configuration."""
    pass


class SchemaError(DatabaseError):
    """Error creating the competition schema."""
    pass


class QueryError(DatabaseError):
    """Error executing a query."""

    def __init__(self, message: str, statement: str = ''):
        super().__init__(message)
        self.statement = statement

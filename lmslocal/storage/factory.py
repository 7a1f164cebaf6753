"""
Factory function to create the competition store.

Reads configuration from the environment to determine which database
backend to use.
"""

import logging
from typing import Optional

from .base import DatabaseInterface
from .exceptions import ConfigurationError
from ..config import get_settings

logger = logging.getLogger(__name__)


# Singleton instance
_db_instance: Optional[DatabaseInterface] = None


def get_database() -> DatabaseInterface:
    """
    Get or create the database instance.

    Uses the DB_TYPE environment variable to determine which implementation:
    - "sqlite" (default): Local SQLite database at DATA_DIR/DB_FILENAME

    Returns:
        DatabaseInterface implementation

    Raises:
        ConfigurationError: If DB_TYPE names an unsupported backend
    """
    global _db_instance

    if _db_instance is not None:
        return _db_instance

    # Environment may have changed since the last reset (tests do this)
    get_settings.cache_clear()
    settings = get_settings()
    logger.info(f"Database type: {settings.DB_TYPE}")

    if settings.DB_TYPE == 'sqlite':
        from .sqlite_db import SQLiteDatabase
        _db_instance = SQLiteDatabase(db_path=settings.db_path)
    else:
        raise ConfigurationError(
            f"Unknown DB_TYPE: {settings.DB_TYPE}. "
            f"Valid options: sqlite"
        )

    _db_instance.initialize()

    return _db_instance


def reset_database() -> None:
    """
    Reset the database singleton.

    Used for testing or when switching configurations.
    """
    global _db_instance
    if _db_instance is not None:
        _db_instance.close()
        _db_instance = None

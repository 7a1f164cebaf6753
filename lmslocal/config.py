"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

import os
from functools import lru_cache


def _get_int(key: str, default: int) -> int:
    """Get integer from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_bool(key: str, default: bool) -> bool:
    """Get boolean from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value.lower() in ('true', '1', 'yes')


def _get_str(key: str, default: str) -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default)


def _get_data_dir() -> str:
    """Resolve the data directory.

    Priority: DATA_DIR > RAILWAY_VOLUME_MOUNT_PATH > /app/cache (container) > cache (local)
    """
    return (
        os.environ.get('DATA_DIR') or
        os.environ.get('RAILWAY_VOLUME_MOUNT_PATH') or
        ('/app/cache' if os.path.exists('/app') else 'cache')
    )


# =============================================================================
# SERVER SETTINGS
# =============================================================================
PORT = _get_int('PORT', 8000)
HOST = _get_str('HOST', '0.0.0.0')

# =============================================================================
# LOGGING
# =============================================================================
LOG_LEVEL = _get_str('LOG_LEVEL', 'INFO')


class Settings:
    """Snapshot of the environment at construction time.

    Read through get_settings() so the values are computed once per process;
    tests clear the cache with get_settings.cache_clear().
    """

    def __init__(self) -> None:
        # Storage
        self.DB_TYPE = _get_str('DB_TYPE', 'sqlite').lower()
        self.DATA_DIR = _get_data_dir()
        self.DB_FILENAME = _get_str('DB_FILENAME', 'lmslocal.db')

        # Game rules
        self.DEFAULT_LIVES_PER_PLAYER = _get_int('DEFAULT_LIVES_PER_PLAYER', 0)
        self.MAX_LIVES_PER_PLAYER = _get_int('MAX_LIVES_PER_PLAYER', 2)

        # Standings cache (seconds)
        self.STANDINGS_CACHE_TTL = _get_int('STANDINGS_CACHE_TTL', 60)

        # Email delivery (Resend-compatible HTTP API)
        self.EMAIL_API_URL = _get_str('EMAIL_API_URL', 'https://api.resend.com/emails')
        self.EMAIL_API_KEY = _get_str('EMAIL_API_KEY', '')
        self.EMAIL_FROM = _get_str('EMAIL_FROM', 'LMS Local <noreply@lmslocal.co.uk>')

        # Push delivery
        self.PUSH_API_URL = _get_str('PUSH_API_URL', 'https://fcm.googleapis.com/fcm/send')
        self.PUSH_SERVER_KEY = _get_str('PUSH_SERVER_KEY', '')

        # Dispatch and reminders
        self.NOTIFICATIONS_ENABLED = _get_bool('NOTIFICATIONS_ENABLED', True)
        self.NOTIFICATION_WORKERS = _get_int('NOTIFICATION_WORKERS', 2)
        self.REMINDER_INTERVAL_MINUTES = _get_int('REMINDER_INTERVAL_MINUTES', 30)
        self.REMINDER_WINDOW_HOURS = _get_int('REMINDER_WINDOW_HOURS', 24)
        self.APP_BASE_URL = _get_str('APP_BASE_URL', 'https://lmslocal.co.uk')

    @property
    def db_path(self) -> str:
        """Full path of the SQLite database file."""
        return os.path.join(self.DATA_DIR, self.DB_FILENAME)


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings."""
    return Settings()

"""FastAPI dependencies for dependency injection."""

import threading
from typing import Optional, Dict, Any

from fastapi import Depends, Header

from lmslocal.notifications.service import NotificationService
from lmslocal.services.cache import CacheService, get_cache_service
from lmslocal.services.competitions import CompetitionService
from lmslocal.services.exceptions import Unauthorized
from lmslocal.services.picks import PickService
from lmslocal.services.results import ResultService
from lmslocal.services.rounds import RoundService
from lmslocal.services.standings import StandingsService
from lmslocal.storage import get_database, DatabaseInterface

_notifier: Optional[NotificationService] = None
_notifier_lock = threading.Lock()


def get_db() -> DatabaseInterface:
    """Get database dependency."""
    return get_database()


def get_cache() -> CacheService:
    """Get cache service dependency."""
    return get_cache_service()


def get_notifier() -> NotificationService:
    """Get the shared notification service."""
    global _notifier
    with _notifier_lock:
        if _notifier is None:
            _notifier = NotificationService(get_database())
        return _notifier


def reset_notifier() -> None:
    """Shut down the shared notification service (startup, shutdown and tests)."""
    global _notifier
    with _notifier_lock:
        if _notifier is not None:
            _notifier.shutdown(wait=False)
            _notifier = None


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: DatabaseInterface = Depends(get_db),
) -> Dict[str, Any]:
    """Resolve the bearer token to a user.

    Raises:
        Unauthorized: Missing, malformed or unknown token
    """
    if not authorization:
        raise Unauthorized("Authentication required")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Invalid authorization header")

    user = db.get_user_by_token(token.strip())
    if user is None:
        raise Unauthorized("Invalid or expired token")
    return user


def get_competition_service(
    db: DatabaseInterface = Depends(get_db),
    cache: CacheService = Depends(get_cache),
) -> CompetitionService:
    return CompetitionService(db, cache)


def get_round_service(
    db: DatabaseInterface = Depends(get_db),
    cache: CacheService = Depends(get_cache),
) -> RoundService:
    return RoundService(db, cache)


def get_pick_service(
    db: DatabaseInterface = Depends(get_db),
    cache: CacheService = Depends(get_cache),
) -> PickService:
    return PickService(db, cache)


def get_result_service(
    db: DatabaseInterface = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    notifier: NotificationService = Depends(get_notifier),
) -> ResultService:
    return ResultService(db, cache, notifier)


def get_standings_service(
    db: DatabaseInterface = Depends(get_db),
    cache: CacheService = Depends(get_cache),
) -> StandingsService:
    return StandingsService(db, cache)

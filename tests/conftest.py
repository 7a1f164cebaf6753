"""
Shared test fixtures and configuration.

Provides reusable fixtures for all test files: a throwaway database, a team
pool, a seeding helper for users, competitions and rounds, and fresh caches.
"""

import pytest
import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional, Tuple
from unittest.mock import patch

from lmslocal.api.dependencies import reset_notifier
from lmslocal.services.cache import CacheService, get_cache_service
from lmslocal.storage import get_database, reset_database, DatabaseInterface
from lmslocal.utils.clock import to_iso


# Fixed clock for service tests; rounds seeded with lock_at() lock an hour later
NOW = datetime(2026, 3, 7, 12, 0, 0, tzinfo=timezone.utc)

TEAM_POOL = [
    ('ARS', 'Arsenal'),
    ('AVL', 'Aston Villa'),
    ('BOU', 'Bournemouth'),
    ('BRE', 'Brentford'),
    ('BHA', 'Brighton'),
    ('CHE', 'Chelsea'),
    ('CRY', 'Crystal Palace'),
    ('EVE', 'Everton'),
    ('FUL', 'Fulham'),
    ('IPS', 'Ipswich Town'),
    ('LEI', 'Leicester City'),
    ('LIV', 'Liverpool'),
    ('MCI', 'Manchester City'),
    ('MUN', 'Manchester United'),
    ('NEW', 'Newcastle United'),
    ('NFO', "Nottingham Forest"),
    ('SOU', 'Southampton'),
    ('TOT', 'Tottenham Hotspur'),
    ('WHU', 'West Ham United'),
    ('WOL', 'Wolverhampton Wanderers'),
]


def lock_at(offset: timedelta = timedelta(hours=1)) -> datetime:
    return NOW + offset


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def test_data_dir():
    """Provide a temporary directory for test data."""
    temp_dir = tempfile.mkdtemp(prefix="lmslocal_test_")
    yield temp_dir

    # Cleanup
    if os.path.exists(temp_dir):
        try:
            shutil.rmtree(temp_dir)
        except PermissionError:
            pass  # Windows file locking, ignore


@pytest.fixture
def db_fixture(test_data_dir):
    """Provide a clean test database instance with the team pool loaded."""
    env = {
        'DB_TYPE': 'sqlite',
        'DATA_DIR': test_data_dir,
        'EMAIL_API_KEY': '',
        'PUSH_SERVER_KEY': '',
    }
    with patch.dict(os.environ, env, clear=False):
        reset_database()
        reset_notifier()
        get_cache_service().clear()
        db = get_database()
        db.save_teams([
            {'short_name': code, 'name': name, 'is_active': True}
            for code, name in TEAM_POOL
        ])
        yield db
        reset_notifier()
        get_cache_service().clear()
        reset_database()  # Close connection before cleanup


@pytest.fixture
def cache():
    """Provide an empty cache."""
    return CacheService(ttl=60)


# =============================================================================
# SEEDING
# =============================================================================

class Seeder:
    """Writes users, competitions and rounds straight into the store."""

    def __init__(self, db: DatabaseInterface):
        self.db = db
        self._codes = 0

    def user(self, name: str, is_admin: bool = False, email: Optional[str] = None) -> int:
        return self.db.create_user(
            name,
            email or f"{name.lower()}@example.com",
            f"token-{name.lower()}",
            is_admin
        )

    def competition(
        self,
        organiser_id: int,
        lives: int = 0,
        no_team_twice: bool = True,
        name: str = 'Test League'
    ) -> Dict[str, Any]:
        self._codes += 1
        competition_id = self.db.create_competition(
            name, organiser_id, lives, no_team_twice, f"{self._codes:04d}"
        )
        return self.db.get_competition(competition_id)

    def player(self, competition_id: int, user_id: int, lives: int = 0) -> None:
        self.db.add_player(competition_id, user_id, lives)

    def round(
        self,
        competition_id: int,
        pairs: List[Tuple[str, str]],
        lock_time: Optional[datetime] = None,
        round_number: Optional[int] = None
    ) -> Tuple[int, List[int]]:
        """Create a round with fixtures; returns (round_id, fixture_ids)."""
        lock_time = lock_time or lock_at()
        if round_number is None:
            latest = self.db.get_latest_round(competition_id)
            round_number = latest['round_number'] + 1 if latest else 1

        round_id = self.db.create_round(competition_id, round_number, to_iso(lock_time))
        fixture_ids = self.db.add_fixtures(round_id, competition_id, [
            {'home_team': home, 'away_team': away, 'kickoff_time': to_iso(lock_time)}
            for home, away in pairs
        ])
        self.db.update_competition_status(competition_id, 'active')
        return round_id, fixture_ids


@pytest.fixture
def seed(db_fixture) -> Seeder:
    """Provide a seeding helper bound to the test database."""
    return Seeder(db_fixture)


@pytest.fixture
def league(seed) -> Dict[str, Any]:
    """
    Organiser plus three players in a zero-lives competition.

    Keys: organiser, alice, bob, carol (user ids), competition (row).
    """
    organiser = seed.user('Olivia')
    competition = seed.competition(organiser, lives=0)
    players = {}
    for name in ('Alice', 'Bob', 'Carol'):
        user_id = seed.user(name)
        seed.player(competition['id'], user_id, lives=0)
        players[name.lower()] = user_id

    return {'organiser': organiser, 'competition': competition, **players}


def auth(name: str) -> Dict[str, str]:
    """Authorization header for a user seeded by Seeder.user()."""
    return {'Authorization': f"Bearer token-{name.lower()}"}

"""
Round and fixture management.

Rounds are created together with all of their fixtures. Once a round is
locked and somebody has picked in it, its fixtures can only be changed by a
site administrator passing override, and every such change is logged as an
exceptional operation.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from ..models.competition import Capability, CompetitionStatus
from ..models.round import FixtureInput, RoundState
from ..storage.base import DatabaseInterface
from ..utils.clock import utcnow, ensure_utc, to_iso
from .cache import CacheService
from .common import (
    require_competition,
    require_round,
    require_fixture,
    require_capability,
    require_member_or_organiser,
    normalize_team,
)
from .exceptions import ValidationError, Unauthorized, RoundLocked, Conflict
from .round_state import derive_round_state, is_locked

logger = logging.getLogger(__name__)


class RoundService:
    """Creates rounds and guards structural edits to their fixtures."""

    def __init__(self, db: DatabaseInterface, cache: CacheService) -> None:
        self.db = db
        self.cache = cache

    # =========================================================================
    # CREATION
    # =========================================================================

    def create_round(
        self,
        user_id: int,
        competition_id: int,
        fixtures: List[FixtureInput],
        lock_time: Optional[datetime] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Create the next round of a competition with its fixtures.

        Args:
            user_id: Caller (needs the fixtures capability)
            competition_id: Competition to add the round to
            fixtures: At least one fixture; teams must be in the pool
            lock_time: When picks close; defaults to the earliest kickoff
            now: Current time, for tests

        Returns:
            The created round with its fixtures

        Raises:
            NotFound, Unauthorized, Conflict, ValidationError
        """
        now = now or utcnow()
        competition = require_competition(self.db, competition_id)
        require_capability(self.db, user_id, competition_id, Capability.FIXTURES)

        if competition['status'] == CompetitionStatus.COMPLETE.value:
            raise Conflict("Competition has already finished")

        if not fixtures:
            raise ValidationError("A round needs at least one fixture")

        prepared = self._validate_fixtures(fixtures)

        if lock_time is None:
            lock_time = min(ensure_utc(f.kickoff_time) for f in fixtures)
        lock_time = ensure_utc(lock_time)
        if lock_time <= now:
            raise ValidationError("lock_time must be in the future")

        with self.db.transaction(immediate=True):
            latest = self.db.get_latest_round(competition_id)
            if latest is not None and not latest['completed_at']:
                raise Conflict(
                    f"Round {latest['round_number']} must be completed before adding a new round"
                )
            round_number = (latest['round_number'] + 1) if latest else 1

            round_id = self.db.create_round(competition_id, round_number, to_iso(lock_time))
            self.db.add_fixtures(round_id, competition_id, prepared)

            if competition['status'] == CompetitionStatus.SETUP.value:
                self.db.update_competition_status(competition_id, CompetitionStatus.ACTIVE.value)

            self.db.add_audit(
                competition_id,
                user_id,
                'Round Created',
                f"Round {round_number} with {len(prepared)} fixtures, locks {to_iso(lock_time)}"
            )

        self.cache.invalidate_competition(competition_id)
        logger.info(
            f"Created round {round_number} ({len(prepared)} fixtures) "
            f"for competition {competition_id}"
        )

        round_row = self.db.get_round(round_id)
        return {
            **round_row,
            'fixtures': self.db.get_fixtures(round_id),
            'state': RoundState.OPEN.value,
        }

    def _validate_fixtures(self, fixtures: List[FixtureInput]) -> List[Dict[str, Any]]:
        """Normalize team codes and check them against the pool and each other."""
        pool = {t['short_name'] for t in self.db.get_active_teams()}
        seen: set[str] = set()
        prepared = []

        for fixture in fixtures:
            home = normalize_team(fixture.home_team)
            away = normalize_team(fixture.away_team)
            self._check_teams(home, away, pool)

            for team in (home, away):
                if team in seen:
                    raise ValidationError(f"Team {team} appears in more than one fixture")
                seen.add(team)

            prepared.append({
                'home_team': home,
                'away_team': away,
                'kickoff_time': to_iso(fixture.kickoff_time),
            })

        return prepared

    @staticmethod
    def _check_teams(home: str, away: str, pool: set) -> None:
        if home == away:
            raise ValidationError(f"A fixture needs two different teams, got {home} twice")
        unknown = [t for t in (home, away) if t not in pool]
        if unknown:
            raise ValidationError(f"Unknown team(s): {', '.join(unknown)}")

    # =========================================================================
    # STRUCTURAL EDITS
    # =========================================================================

    def update_fixture(
        self,
        user_id: int,
        fixture_id: int,
        home_team: str,
        away_team: str,
        kickoff_time: datetime,
        override: bool = False,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Change the teams or kickoff of a fixture.

        Picks on a team that is no longer part of the fixture are removed and
        the team goes back into the player's allowed set.

        Returns:
            Updated fixture plus 'picks_removed'
        """
        now = now or utcnow()

        with self.db.transaction(immediate=True):
            fixture = require_fixture(self.db, fixture_id)
            round_row = require_round(self.db, fixture['round_id'])
            competition_id = fixture['competition_id']
            require_capability(self.db, user_id, competition_id, Capability.FIXTURES)
            self._ensure_editable(user_id, round_row, fixture, override, now, 'update')

            home = normalize_team(home_team)
            away = normalize_team(away_team)
            pool = {t['short_name'] for t in self.db.get_active_teams()}
            self._check_teams(home, away, pool)

            for other in self.db.get_fixtures(round_row['id']):
                if other['id'] == fixture_id:
                    continue
                clash = {home, away} & {other['home_team'], other['away_team']}
                if clash:
                    raise ValidationError(
                        f"Team {sorted(clash)[0]} already plays in another fixture this round"
                    )

            removed = self._drop_picks(fixture_id, keep={home, away})
            self.db.update_fixture(fixture_id, home, away, to_iso(kickoff_time))

        self.cache.invalidate_competition(competition_id)
        return {**self.db.get_fixture(fixture_id), 'picks_removed': removed}

    def remove_fixture(
        self,
        user_id: int,
        fixture_id: int,
        override: bool = False,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Delete a fixture and the picks made on it."""
        now = now or utcnow()

        with self.db.transaction(immediate=True):
            fixture = require_fixture(self.db, fixture_id)
            round_row = require_round(self.db, fixture['round_id'])
            competition_id = fixture['competition_id']
            require_capability(self.db, user_id, competition_id, Capability.FIXTURES)
            self._ensure_editable(user_id, round_row, fixture, override, now, 'remove')

            if len(self.db.get_fixtures(round_row['id'])) == 1:
                raise ValidationError("Cannot remove the only fixture of a round")

            removed = self._drop_picks(fixture_id, keep=set())
            self.db.delete_fixture(fixture_id)

        self.cache.invalidate_competition(competition_id)
        return {'fixture_id': fixture_id, 'picks_removed': removed}

    def _ensure_editable(
        self,
        user_id: int,
        round_row: Dict[str, Any],
        fixture: Dict[str, Any],
        override: bool,
        now: datetime,
        action: str
    ) -> None:
        """Refuse structural edits to a locked round that already has picks."""
        if round_row['completed_at'] or fixture['result'] is not None:
            raise Conflict("Fixtures with results cannot be changed")

        if override:
            user = self.db.get_user(user_id)
            if not user or not user['is_admin']:
                raise Unauthorized("Only administrators can override locked fixtures")

        if not is_locked(round_row, now) or self.db.count_picks(round_row['id']) == 0:
            return

        if not override:
            raise RoundLocked(
                f"Round {round_row['round_number']} is locked and has picks; fixtures cannot be changed"
            )

        logger.warning(
            f"Administrator {user_id} overrode lock to {action} fixture {fixture['id']} "
            f"in round {round_row['id']}"
        )
        self.db.add_audit(
            fixture['competition_id'],
            user_id,
            'Fixture Override',
            f"{action} fixture {fixture['id']} ({fixture['home_team']} v {fixture['away_team']}) "
            f"after lock in round {round_row['round_number']}"
        )

    def _drop_picks(self, fixture_id: int, keep: set) -> int:
        """Delete picks on a fixture whose team is not in keep; release their teams."""
        removed = 0
        for pick in self.db.get_fixture_picks(fixture_id):
            if pick['team'] in keep:
                continue
            self.db.remove_used_team(pick['competition_id'], pick['user_id'], pick['team'])
            self.db.delete_pick(pick['id'])
            removed += 1
        if removed:
            logger.info(f"Removed {removed} pick(s) from fixture {fixture_id}")
        return removed

    # =========================================================================
    # STATE
    # =========================================================================

    def get_round_state(
        self,
        user_id: int,
        round_id: int,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Round details with its derived state."""
        now = now or utcnow()
        round_row = require_round(self.db, round_id)
        competition = require_competition(self.db, round_row['competition_id'])
        require_member_or_organiser(self.db, user_id, competition)

        fixtures = self.db.get_fixtures(round_id)
        state = derive_round_state(round_row, fixtures, now)
        return {
            'round_id': round_id,
            'round_number': round_row['round_number'],
            'lock_time': round_row['lock_time'],
            'state': state.value,
            'picks_made': self.db.count_picks(round_id),
            'fixtures': fixtures,
        }

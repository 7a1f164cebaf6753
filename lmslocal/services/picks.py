"""
Pick submission.

A player gets one pick per round, made before the round locks, on a team
playing in that round. With the no-repeat rule on, a team goes into the
player's used set once picked; when the used set covers the whole team pool
it is cleared before the next pick is checked.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Set

from ..models.competition import Capability
from ..models.player import PlayerStatus
from ..storage.base import DatabaseInterface
from ..storage.exceptions import QueryError
from ..utils.clock import utcnow
from .cache import CacheService
from .common import (
    require_competition,
    require_round,
    require_player,
    require_capability,
    require_member_or_organiser,
    normalize_team,
)
from .exceptions import (
    ValidationError,
    NotFound,
    Conflict,
    RoundLocked,
    DuplicatePick,
    TeamAlreadyUsed,
)
from .round_state import is_locked

logger = logging.getLogger(__name__)


def pool_exhausted(used: Set[str], pool: Set[str]) -> bool:
    """True when every team in a non-empty pool has been used."""
    return bool(pool) and pool <= used


class PickService:
    """Submits, overrides and lists picks."""

    def __init__(self, db: DatabaseInterface, cache: CacheService) -> None:
        self.db = db
        self.cache = cache

    def _pool(self) -> Set[str]:
        return {t['short_name'] for t in self.db.get_active_teams()}

    def _find_fixture(self, round_id: int, team: str) -> Dict[str, Any]:
        for fixture in self.db.get_fixtures(round_id):
            if team in (fixture['home_team'], fixture['away_team']):
                return fixture
        raise ValidationError(f"{team} is not playing in this round")

    def _check_used(
        self,
        competition: Dict[str, Any],
        user_id: int,
        team: str
    ) -> None:
        """Apply the no-repeat rule, clearing an exhausted used set first."""
        if not competition['no_team_twice']:
            return

        used = self.db.get_used_teams(competition['id'], user_id)
        if pool_exhausted(used, self._pool()):
            self.db.clear_used_teams(competition['id'], user_id)
            logger.info(
                f"Used teams reset for player {user_id} in competition {competition['id']}"
            )
            return

        if team in used:
            raise TeamAlreadyUsed(f"You have already picked {team} in this competition")

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def submit_pick(
        self,
        user_id: int,
        round_id: int,
        team: str,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Record a player's pick for a round.

        Args:
            user_id: The picking player
            round_id: Round to pick in
            team: Team short name
            now: Current time, for tests

        Returns:
            The stored pick

        Raises:
            NotFound: Unknown round, or the user is not in the competition
            RoundLocked: now >= lock_time
            Conflict: Player has been eliminated
            ValidationError: Team not playing in the round
            DuplicatePick: Player already picked this round
            TeamAlreadyUsed: Team already in the player's used set
        """
        now = now or utcnow()
        team = normalize_team(team)

        with self.db.transaction(immediate=True):
            round_row = require_round(self.db, round_id)
            if is_locked(round_row, now):
                raise RoundLocked(
                    f"Round {round_row['round_number']} is locked; picks are closed"
                )

            competition = require_competition(self.db, round_row['competition_id'])
            player = require_player(self.db, competition['id'], user_id)
            if player['status'] != PlayerStatus.ACTIVE.value:
                raise Conflict("You have been eliminated from this competition")

            fixture = self._find_fixture(round_id, team)

            if self.db.get_pick(round_id, user_id) is not None:
                raise DuplicatePick("You have already made a pick for this round")

            self._check_used(competition, user_id, team)

            try:
                pick_id = self.db.create_pick(
                    round_id, competition['id'], user_id, team, fixture['id']
                )
            except QueryError as e:
                raise DuplicatePick("You have already made a pick for this round") from e

            if competition['no_team_twice']:
                self.db.add_used_team(competition['id'], user_id, team)

        self.cache.invalidate_competition(competition['id'])
        logger.debug(f"Player {user_id} picked {team} in round {round_id}")

        return {
            'pick_id': pick_id,
            'round_id': round_id,
            'team': team,
            'fixture_id': fixture['id'],
        }

    def override_pick(
        self,
        actor_id: int,
        round_id: int,
        player_id: int,
        team: str
    ) -> Dict[str, Any]:
        """
        Set or replace a player's pick on their behalf, ignoring the lock.

        The used set follows the change: the old team is released and the new
        one recorded. The no-repeat rule still applies to the new team.
        """
        team = normalize_team(team)

        with self.db.transaction(immediate=True):
            round_row = require_round(self.db, round_id)
            competition = require_competition(self.db, round_row['competition_id'])
            require_capability(self.db, actor_id, competition['id'], Capability.PLAYERS)

            if round_row['completed_at']:
                raise Conflict("Round has already been processed")

            player = require_player(self.db, competition['id'], player_id)
            if player['status'] != PlayerStatus.ACTIVE.value:
                raise Conflict("Player has been eliminated")

            fixture = self._find_fixture(round_id, team)
            if fixture['result'] is not None:
                raise Conflict(f"{team} already has a result this round")

            existing = self.db.get_pick(round_id, player_id)
            previous = existing['team'] if existing else None

            if previous == team:
                return {
                    'pick_id': existing['id'],
                    'round_id': round_id,
                    'team': team,
                    'fixture_id': fixture['id'],
                    'previous_team': previous,
                }

            if previous and competition['no_team_twice']:
                self.db.remove_used_team(competition['id'], player_id, previous)

            self._check_used(competition, player_id, team)

            if existing:
                self.db.replace_pick(existing['id'], team, fixture['id'])
                pick_id = existing['id']
            else:
                pick_id = self.db.create_pick(
                    round_id, competition['id'], player_id, team, fixture['id']
                )

            if competition['no_team_twice']:
                self.db.add_used_team(competition['id'], player_id, team)

            self.db.add_audit(
                competition['id'],
                actor_id,
                'Pick Override',
                f"Player {player_id} round {round_row['round_number']}: "
                f"{previous or 'no pick'} -> {team}"
            )

        self.cache.invalidate_competition(competition['id'])
        logger.info(
            f"User {actor_id} set pick {team} for player {player_id} in round {round_id}"
        )

        return {
            'pick_id': pick_id,
            'round_id': round_id,
            'team': team,
            'fixture_id': fixture['id'],
            'previous_team': previous,
        }

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_allowed_teams(
        self,
        user_id: int,
        competition_id: int,
        player_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Teams a player may still pick.

        Organisers and delegates may ask on behalf of another player.
        """
        competition = require_competition(self.db, competition_id)
        target = player_id if player_id is not None else user_id

        if target != user_id:
            require_capability(self.db, user_id, competition_id, Capability.PLAYERS)
        else:
            require_member_or_organiser(self.db, user_id, competition)

        if self.db.get_player(competition_id, target) is None:
            raise NotFound(f"Player {target} is not in competition {competition_id}")

        teams = self.db.get_active_teams()
        if not competition['no_team_twice']:
            return teams

        used = self.db.get_used_teams(competition_id, target)
        if pool_exhausted(used, {t['short_name'] for t in teams}):
            return teams
        return [t for t in teams if t['short_name'] not in used]

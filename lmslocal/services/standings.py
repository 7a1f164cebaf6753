"""
Read models: standings, stragglers, round statistics and player history.

Standings are rebuilt from the store at most once per cache TTL per
competition; writes that change them call CacheService.invalidate_competition.
Picks in a round that is still open are only ever shown to the player who
made them.
"""

import logging
import math
from datetime import datetime
from typing import Optional, List, Dict, Any

from ..models.player import PlayerStatus, NO_PICK
from ..storage.base import DatabaseInterface
from ..utils.clock import utcnow
from .cache import CacheService
from .common import (
    require_competition,
    require_round,
    require_player,
    require_member_or_organiser,
)
from .exceptions import NotFound
from .round_state import derive_round_state, is_locked

logger = logging.getLogger(__name__)

LIVES_FILTERS = ('0', '1', '2')


class StandingsService:
    """Computes the competition read models."""

    def __init__(self, db: DatabaseInterface, cache: CacheService) -> None:
        self.db = db
        self.cache = cache

    # =========================================================================
    # STANDINGS
    # =========================================================================

    def _load_standings(self, competition_id: int) -> Dict[str, Any]:
        """Players and latest-round picks, cached per competition."""
        key = self.cache.key(competition_id, "standings")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        latest = self.db.get_latest_round(competition_id)
        picks = {}
        if latest is not None:
            picks = {p['user_id']: p for p in self.db.get_picks(latest['id'])}

        data = {
            'players': self.db.get_players(competition_id),
            'round': latest,
            'picks': picks,
        }
        self.cache.set(key, data)
        logger.debug(f"Standings for competition {competition_id} rebuilt")
        return data

    def get_competition_standings(
        self,
        user_id: int,
        competition_id: int,
        page: int = 1,
        page_size: int = 50,
        filter_by_lives: str = 'all',
        search: str = '',
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Paginated standings with counts per lives bucket.

        Args:
            user_id: Viewer (organiser or player)
            competition_id: Competition to show
            page: 1-based page number
            page_size: Players per page (1..200)
            filter_by_lives: all, 0, 1, 2 or out
            search: Case-insensitive substring of display_name
            now: Current time, for tests

        Returns:
            Competition summary, counts, the page of players and pagination
        """
        now = now or utcnow()
        competition = require_competition(self.db, competition_id)
        require_member_or_organiser(self.db, user_id, competition)

        page = max(1, page)
        page_size = min(200, max(1, page_size))

        data = self._load_standings(competition_id)
        round_row = data['round']
        hide_picks = round_row is not None and not is_locked(round_row, now)
        active = PlayerStatus.ACTIVE.value

        counts = {'total': 0, 'lives_2': 0, 'lives_1': 0, 'lives_0': 0, 'out': 0}
        for player in data['players']:
            if player['hidden']:
                continue
            counts['total'] += 1
            if player['status'] != active:
                counts['out'] += 1
            elif player['lives_remaining'] in (0, 1, 2):
                counts[f"lives_{player['lives_remaining']}"] += 1

        def matches(player: Dict[str, Any]) -> bool:
            if player['hidden']:
                return False
            if filter_by_lives == 'out' and player['status'] == active:
                return False
            if filter_by_lives in LIVES_FILTERS and (
                player['status'] != active
                or player['lives_remaining'] != int(filter_by_lives)
            ):
                return False
            term = search.strip().lower()
            return not term or term in player['display_name'].lower()

        selected = sorted(
            (p for p in data['players'] if matches(p)),
            key=lambda p: (p['status'] != active, -p['lives_remaining'], p['display_name'].lower())
        )

        total_pages = max(1, math.ceil(len(selected) / page_size))
        start = (page - 1) * page_size

        rows = []
        for player in selected[start:start + page_size]:
            pick = data['picks'].get(player['user_id'])
            visible = pick is not None and (not hide_picks or player['user_id'] == user_id)
            rows.append({
                'id': player['user_id'],
                'display_name': player['display_name'],
                'lives_remaining': player['lives_remaining'],
                'status': player['status'],
                'current_pick': {
                    'team': pick['team'],
                    'outcome': pick['outcome'],
                } if visible else None,
                'has_picked': pick is not None,
            })

        return {
            'competition': {
                'id': competition['id'],
                'name': competition['name'],
                'status': competition['status'],
                'winner_id': competition['winner_id'],
                'current_round': round_row['round_number'] if round_row else None,
                'round_state': derive_round_state(
                    round_row, self.db.get_fixtures(round_row['id']), now
                ).value if round_row else None,
            },
            'counts': counts,
            'players': rows,
            'pagination': {
                'current_page': page,
                'page_size': page_size,
                'total_players': len(selected),
                'total_pages': total_pages,
            },
        }

    # =========================================================================
    # ROUND VIEWS
    # =========================================================================

    def get_unpicked_players(
        self,
        user_id: int,
        competition_id: int,
        round_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Active players without a pick for a round (latest by default)."""
        competition = require_competition(self.db, competition_id)
        require_member_or_organiser(self.db, user_id, competition)

        if round_id is None:
            round_row = self.db.get_latest_round(competition_id)
            if round_row is None:
                raise NotFound("No rounds exist for this competition")
        else:
            round_row = require_round(self.db, round_id)
            if round_row['competition_id'] != competition_id:
                raise NotFound(f"Round {round_id} not found")

        picked = {p['user_id'] for p in self.db.get_picks(round_row['id'])}
        unpicked = [
            {'user_id': p['user_id'], 'display_name': p['display_name']}
            for p in self.db.get_players(competition_id, status=PlayerStatus.ACTIVE.value)
            if p['user_id'] not in picked
        ]

        return {
            'round_id': round_row['id'],
            'round_number': round_row['round_number'],
            'unpicked_players': unpicked,
            'total_unpicked': len(unpicked),
        }

    def get_round_statistics(
        self,
        user_id: int,
        competition_id: int,
        round_id: int
    ) -> Dict[str, Any]:
        """Totals for a processed round: players, wins, losses and eliminations."""
        competition = require_competition(self.db, competition_id)
        require_member_or_organiser(self.db, user_id, competition)

        round_row = require_round(self.db, round_id)
        if round_row['competition_id'] != competition_id:
            raise NotFound(f"Round {round_id} not found")

        key = self.cache.key(competition_id, f"round-{round_id}")
        cached = self.cache.get(key, cache_type="statistics")
        if cached is not None:
            return cached

        progress = self.db.get_round_progress(round_id)
        if not progress:
            raise NotFound("No statistics available for this round")

        teams: Dict[str, int] = {}
        for entry in progress:
            teams[entry['chosen_team']] = teams.get(entry['chosen_team'], 0) + 1

        statistics = {
            'round_number': round_row['round_number'],
            'statistics': {
                'total_players': len(progress),
                'won': sum(1 for e in progress if e['outcome'] == 'WIN'),
                'lost': sum(1 for e in progress if e['outcome'] == 'LOSE'),
                'eliminated': sum(
                    1 for e in progress
                    if e['status_before'] != e['status_after']
                    and e['status_after'] == PlayerStatus.OUT.value
                ),
                'no_pick': teams.get(NO_PICK, 0),
            },
            'team_breakdown': [
                {'team': team, 'count': count}
                for team, count in sorted(teams.items(), key=lambda kv: (-kv[1], kv[0]))
            ],
        }

        self.cache.set(key, statistics, cache_type="statistics")
        return statistics

    # =========================================================================
    # PLAYER HISTORY
    # =========================================================================

    def get_player_history(
        self,
        user_id: int,
        competition_id: int,
        player_id: int,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Every round a player took part in, newest first."""
        now = now or utcnow()
        competition = require_competition(self.db, competition_id)
        require_member_or_organiser(self.db, user_id, competition)
        player = require_player(self.db, competition_id, player_id)

        teams = {t['short_name']: t['name'] for t in self.db.get_active_teams()}
        progress = {
            p['round_id']: p for p in self.db.get_player_progress(competition_id, player_id)
        }

        history = []
        for round_row in reversed(self.db.get_rounds(competition_id)):
            entry = progress.get(round_row['id'])
            pick = self.db.get_pick(round_row['id'], player_id)

            if entry is None and pick is None:
                continue
            if pick is not None and entry is None and player_id != user_id \
                    and not is_locked(round_row, now):
                continue

            team = entry['chosen_team'] if entry else pick['team']
            fixture = None
            fixture_id = entry['fixture_id'] if entry else pick['fixture_id']
            if fixture_id is not None:
                fixture = self.db.get_fixture(fixture_id)

            if entry is None:
                pick_result = 'pending'
            elif team == NO_PICK:
                pick_result = 'no_pick'
            else:
                pick_result = 'win' if entry['outcome'] == 'WIN' else 'loss'

            history.append({
                'round_id': round_row['id'],
                'round_number': round_row['round_number'],
                'pick_team': None if team == NO_PICK else team,
                'pick_team_full_name': teams.get(team),
                'fixture': f"{fixture['home_team']} vs {fixture['away_team']}" if fixture else None,
                'fixture_result': (
                    f"{fixture['home_score']}-{fixture['away_score']}"
                    if fixture and fixture['result'] is not None else None
                ),
                'pick_result': pick_result,
                'lives_after': entry['lives_after'] if entry else None,
                'lock_time': round_row['lock_time'],
            })

        return {
            'player': {
                'id': player_id,
                'display_name': player['display_name'],
                'lives_remaining': player['lives_remaining'],
                'status': player['status'],
            },
            'history': history,
        }

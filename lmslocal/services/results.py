"""
Result and elimination engine.

Results are entered one fixture at a time. When the last fixture of a round
gets its result the round is processed: every active player's pick is scored,
lives are taken, players are knocked out and the competition finishes when
one player (or nobody) is left standing.

Lives policy: lives_remaining never drops below zero. A loss with lives left
costs one life; a loss with no lives left eliminates the player. Each
processed (player, round) pair writes a player_progress row holding the
before and after state, which is what a result correction reverts from.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable

from ..models.competition import Capability, CompetitionStatus
from ..models.player import PickOutcome, PlayerStatus, NO_PICK
from ..models.round import DRAW, RoundState
from ..storage.base import DatabaseInterface
from ..utils.clock import utcnow, to_iso
from .cache import CacheService
from .common import (
    require_competition,
    require_round,
    require_fixture,
    require_capability,
)
from .exceptions import Conflict, Unauthorized
from .round_state import RoundStateMachine, derive_round_state, is_locked

logger = logging.getLogger(__name__)

WINNER = "WINNER"
NO_WINNER = "NO_WINNER"


def derive_result(home_team: str, away_team: str, home_score: int, away_score: int) -> str:
    """Winning team's short name, or DRAW."""
    if home_score > away_score:
        return home_team
    if away_score > home_score:
        return away_team
    return DRAW


def derive_outcome(team: str, fixture: Dict[str, Any]) -> PickOutcome:
    """Score a pick against its fixture's result; only an outright win counts."""
    if fixture['result'] == team:
        return PickOutcome.WIN
    return PickOutcome.LOSE


def apply_outcome(lives: int, outcome: PickOutcome) -> tuple[int, str]:
    """Lives and status after one outcome for an active player."""
    if outcome == PickOutcome.WIN:
        return lives, PlayerStatus.ACTIVE.value
    if lives > 0:
        return lives - 1, PlayerStatus.ACTIVE.value
    return 0, PlayerStatus.OUT.value


def process_round_outcomes(
    players: Iterable[Dict[str, Any]],
    picks: Iterable[Dict[str, Any]],
    fixtures: Iterable[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """
    Score one round for every active player.

    Pure computation: nothing is written. Players who are not active are
    skipped. An active player without a pick is scored as a loss with
    chosen_team NO_PICK.

    Args:
        players: competition_user rows
        picks: The round's picks
        fixtures: The round's fixtures, all with results

    Returns:
        One progress entry per active player (user_id, pick_id, fixture_id,
        chosen_team, outcome, lives_before/after, status_before/after)
    """
    fixtures_by_id = {f['id']: f for f in fixtures}
    picks_by_user = {p['user_id']: p for p in picks}
    entries = []

    for player in players:
        if player['status'] != PlayerStatus.ACTIVE.value:
            continue

        pick = picks_by_user.get(player['user_id'])
        fixture = fixtures_by_id.get(pick['fixture_id']) if pick else None

        if pick is None or fixture is None:
            outcome = PickOutcome.LOSE
            chosen_team = pick['team'] if pick else NO_PICK
        else:
            outcome = derive_outcome(pick['team'], fixture)
            chosen_team = pick['team']

        lives_after, status_after = apply_outcome(player['lives_remaining'], outcome)
        entries.append({
            'user_id': player['user_id'],
            'pick_id': pick['id'] if pick else None,
            'fixture_id': fixture['id'] if fixture else None,
            'chosen_team': chosen_team,
            'outcome': outcome.value,
            'lives_before': player['lives_remaining'],
            'lives_after': lives_after,
            'status_before': player['status'],
            'status_after': status_after,
        })

    return entries


class ResultService:
    """Applies fixture results and processes completed rounds."""

    def __init__(
        self,
        db: DatabaseInterface,
        cache: CacheService,
        notifier: Optional[Any] = None
    ) -> None:
        self.db = db
        self.cache = cache
        self.notifier = notifier

    def apply_result(
        self,
        user_id: int,
        fixture_id: int,
        home_score: int,
        away_score: int,
        override: bool = False,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Record a fixture's final score and process the round when complete.

        The whole call runs in one BEGIN IMMEDIATE transaction, so two
        concurrent submissions for the same round are serialized.

        Args:
            user_id: Caller (needs the results capability)
            fixture_id: Fixture the score belongs to
            home_score: Home goals
            away_score: Away goals
            override: Administrator correction of a processed round
            now: Current time, for tests

        Returns:
            Summary with already_applied, affected_picks, round_state and,
            once the round is processed, the competition outcome

        Raises:
            NotFound, Unauthorized, Conflict
        """
        now = now or utcnow()
        processed = None

        with self.db.transaction(immediate=True):
            fixture = require_fixture(self.db, fixture_id)
            round_row = require_round(self.db, fixture['round_id'])
            competition = require_competition(self.db, fixture['competition_id'])
            if override:
                user = self.db.get_user(user_id)
                if not user or not user['is_admin']:
                    raise Unauthorized("Only administrators can correct processed results")
            else:
                require_capability(self.db, user_id, competition['id'], Capability.RESULTS)

            if not is_locked(round_row, now):
                raise Conflict("Results cannot be entered before the round locks")

            if fixture['home_score'] == home_score and fixture['away_score'] == away_score:
                logger.info(f"Result for fixture {fixture_id} already applied, nothing to do")
                fixtures = self.db.get_fixtures(round_row['id'])
                return {
                    'fixture_id': fixture_id,
                    'result': fixture['result'],
                    'already_applied': True,
                    'affected_picks': [],
                    'round_state': derive_round_state(round_row, fixtures, now).value,
                    'round_processed': False,
                    'competition_status': competition['status'],
                }

            if round_row['completed_at']:
                if not override:
                    raise Conflict(
                        f"Round {round_row['round_number']} has already been processed; "
                        "results can only be corrected by an administrator override"
                    )
                self._reopen_round(user_id, competition, round_row, fixture)

            result = derive_result(
                fixture['home_team'], fixture['away_team'], home_score, away_score
            )
            self.db.set_fixture_result(fixture_id, home_score, away_score, result)
            fixture = self.db.get_fixture(fixture_id)

            affected = []
            for pick in self.db.get_fixture_picks(fixture_id):
                outcome = derive_outcome(pick['team'], fixture)
                self.db.set_pick_outcome(pick['id'], outcome.value)
                affected.append({
                    'pick_id': pick['id'],
                    'user_id': pick['user_id'],
                    'team': pick['team'],
                    'outcome': outcome.value,
                })

            fixtures = self.db.get_fixtures(round_row['id'])
            state = RoundState.RESULTS_PENDING
            if all(f['result'] is not None for f in fixtures):
                state = RoundStateMachine.transition(state, RoundState.COMPLETE)
                processed = self._process_round(competition, round_row, fixtures, now)

            competition = self.db.get_competition(competition['id'])

        self.cache.invalidate_competition(competition['id'])
        logger.info(
            f"Result {home_score}-{away_score} recorded for fixture {fixture_id} "
            f"({len(affected)} picks)"
        )

        response = {
            'fixture_id': fixture_id,
            'result': result,
            'already_applied': False,
            'affected_picks': affected,
            'round_state': state.value,
            'round_processed': processed is not None,
            'competition_status': competition['status'],
        }

        if processed is not None:
            response.update({
                'outcome': processed['outcome'],
                'winner_id': competition['winner_id'],
                'players_remaining': processed['players_remaining'],
                'eliminated': processed['eliminated'],
            })
            # Round already committed
            try:
                self._notify(competition, round_row, processed['entries'])
            except Exception as e:
                logger.error(
                    f"Result notifications failed for competition {competition['id']}: {e}"
                )

        return response

    # =========================================================================
    # ROUND PROCESSING
    # =========================================================================

    def _process_round(
        self,
        competition: Dict[str, Any],
        round_row: Dict[str, Any],
        fixtures: List[Dict[str, Any]],
        now: datetime
    ) -> Dict[str, Any]:
        """Write the outcome of a round whose fixtures all have results."""
        competition_id = competition['id']
        players = self.db.get_players(competition_id, status=PlayerStatus.ACTIVE.value)
        picks = self.db.get_picks(round_row['id'])
        entries = process_round_outcomes(players, picks, fixtures)

        for entry in entries:
            self.db.update_player(
                competition_id,
                entry['user_id'],
                lives_remaining=entry['lives_after'],
                status=entry['status_after']
            )
            self.db.add_progress({
                **entry,
                'competition_id': competition_id,
                'round_id': round_row['id'],
            })
            if entry['pick_id'] is not None:
                self.db.set_pick_outcome(entry['pick_id'], entry['outcome'])

        stamp = to_iso(now)
        self.db.set_fixtures_processed(round_row['id'], stamp)
        self.db.set_round_completed(round_row['id'], stamp)

        survivors = [e for e in entries if e['status_after'] == PlayerStatus.ACTIVE.value]
        eliminated = [
            e['user_id'] for e in entries
            if e['status_before'] == PlayerStatus.ACTIVE.value
            and e['status_after'] == PlayerStatus.OUT.value
        ]

        outcome = None
        if len(survivors) == 1:
            outcome = WINNER
            self.db.update_competition_status(
                competition_id, CompetitionStatus.COMPLETE.value, survivors[0]['user_id']
            )
        elif not survivors:
            # Everyone went out together; sharing or voiding is the organiser's call
            outcome = NO_WINNER
            self.db.update_competition_status(competition_id, CompetitionStatus.COMPLETE.value)

        self.db.add_audit(
            competition_id,
            None,
            'Round Processed',
            f"Round {round_row['round_number']}: {len(survivors)} remaining, "
            f"{len(eliminated)} eliminated"
        )
        logger.info(
            f"Processed round {round_row['round_number']} of competition {competition_id}: "
            f"{len(survivors)} remaining, {len(eliminated)} eliminated"
        )

        return {
            'entries': entries,
            'outcome': outcome,
            'players_remaining': len(survivors),
            'eliminated': eliminated,
        }

    def _reopen_round(
        self,
        user_id: int,
        competition: Dict[str, Any],
        round_row: Dict[str, Any],
        fixture: Dict[str, Any]
    ) -> None:
        """Undo a processed round so a corrected result can be recomputed."""
        latest = self.db.get_latest_round(competition['id'])
        if latest is None or latest['id'] != round_row['id']:
            raise Conflict("Only the latest round can be corrected")

        RoundStateMachine.transition(RoundState.COMPLETE, RoundState.RESULTS_PENDING)

        progress = self.db.get_round_progress(round_row['id'])
        for entry in progress:
            self.db.update_player(
                competition['id'],
                entry['user_id'],
                lives_remaining=entry['lives_before'],
                status=entry['status_before']
            )
        self.db.delete_round_progress(round_row['id'])
        self.db.set_round_completed(round_row['id'], None)
        self.db.set_fixtures_processed(round_row['id'], None)

        if competition['status'] == CompetitionStatus.COMPLETE.value:
            self.db.update_competition_status(competition['id'], CompetitionStatus.ACTIVE.value)

        logger.warning(
            f"Administrator {user_id} reopened round {round_row['round_number']} of "
            f"competition {competition['id']} to correct fixture {fixture['id']}"
        )
        self.db.add_audit(
            competition['id'],
            user_id,
            'Result Override',
            f"Reverted {len(progress)} player outcomes in round {round_row['round_number']} "
            f"to correct {fixture['home_team']} v {fixture['away_team']} "
            f"(was {fixture['home_score']}-{fixture['away_score']})"
        )

    def _notify(
        self,
        competition: Dict[str, Any],
        round_row: Dict[str, Any],
        entries: List[Dict[str, Any]]
    ) -> None:
        if self.notifier is None:
            return
        players = self.db.get_players(competition['id'])
        self.notifier.notify_results(competition, round_row['round_number'], players, entries)

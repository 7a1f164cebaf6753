"""
Round state machine.

A round's state is never stored; it is derived from the lock time, the
fixture results and the completion stamp, and every change of state goes
through RoundStateMachine.transition() so illegal jumps fail loudly.
"""

from datetime import datetime
from typing import Dict, Any, List, FrozenSet

from ..models.round import RoundState
from ..utils.clock import parse_iso
from .exceptions import InvalidStateTransition


class RoundStateMachine:
    """Allowed transitions between round states."""

    TRANSITIONS: Dict[RoundState, FrozenSet[RoundState]] = {
        RoundState.OPEN: frozenset({RoundState.LOCKED}),
        RoundState.LOCKED: frozenset({RoundState.RESULTS_PENDING}),
        RoundState.RESULTS_PENDING: frozenset({RoundState.COMPLETE}),
        # Administrative result correction re-opens a processed round
        RoundState.COMPLETE: frozenset({RoundState.RESULTS_PENDING}),
    }

    @classmethod
    def can_transition(cls, current: RoundState, target: RoundState) -> bool:
        return target in cls.TRANSITIONS[current]

    @classmethod
    def transition(cls, current: RoundState, target: RoundState) -> RoundState:
        """Validate a state change and return the new state.

        Raises:
            InvalidStateTransition: If the change is not allowed
        """
        if not cls.can_transition(current, target):
            raise InvalidStateTransition(
                f"Round cannot move from {current.value} to {target.value}"
            )
        return target


def is_locked(round_row: Dict[str, Any], now: datetime) -> bool:
    """Picks close the instant the lock time is reached."""
    return now >= parse_iso(round_row['lock_time'])


def derive_round_state(
    round_row: Dict[str, Any],
    fixtures: List[Dict[str, Any]],
    now: datetime
) -> RoundState:
    """Compute a round's current state.

    Args:
        round_row: Round as stored
        fixtures: The round's fixtures
        now: Current time (aware UTC)
    """
    if round_row['completed_at']:
        return RoundState.COMPLETE
    if not is_locked(round_row, now):
        return RoundState.OPEN
    if any(f['result'] is not None for f in fixtures):
        return RoundState.RESULTS_PENDING
    return RoundState.LOCKED

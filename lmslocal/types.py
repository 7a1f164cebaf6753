"""
Type definitions for LMSLocal.

TypedDict shapes of the rows the storage layer hands back. Timestamps are
ISO 8601 strings in UTC; flags come back as 0/1 integers from SQLite.
"""

from typing import TypedDict, Optional


class UserDict(TypedDict):
    """Registered user."""
    id: int
    display_name: str
    email: Optional[str]
    api_token: str
    is_admin: int
    email_opt_out: int


class TeamDict(TypedDict):
    """Entry in the available-teams pool."""
    id: int
    short_name: str
    name: str
    is_active: int


class CompetitionDict(TypedDict):
    """Competition row."""
    id: int
    name: str
    organiser_id: int
    status: str  # setup, active, COMPLETE
    lives_per_player: int
    no_team_twice: int
    invite_code: str
    winner_id: Optional[int]
    created_at: str


class PlayerDict(TypedDict, total=False):
    """
    A user's participation in a competition (competition_user row).

    display_name and email are joined from app_user.
    """
    id: int
    competition_id: int
    user_id: int
    status: str  # active, out
    lives_remaining: int
    manage_results: int
    manage_fixtures: int
    manage_players: int
    manage_promote: int
    hidden: int
    joined_at: str
    display_name: str
    email: Optional[str]
    email_opt_out: int


class PermissionRowDict(TypedDict):
    """Organiser id plus the caller's delegate flags (NULL when not a member)."""
    organiser_id: int
    manage_results: Optional[int]
    manage_fixtures: Optional[int]
    manage_players: Optional[int]
    manage_promote: Optional[int]


class RoundDict(TypedDict):
    """Round row."""
    id: int
    competition_id: int
    round_number: int
    lock_time: str
    completed_at: Optional[str]
    reminder_sent_at: Optional[str]
    created_at: str


class FixtureDict(TypedDict):
    """Fixture row."""
    id: int
    round_id: int
    competition_id: int
    home_team: str
    away_team: str
    kickoff_time: str
    home_score: Optional[int]
    away_score: Optional[int]
    result: Optional[str]  # winning team short name or DRAW
    processed: Optional[str]


class PickDict(TypedDict):
    """Pick row."""
    id: int
    round_id: int
    competition_id: int
    user_id: int
    team: str
    fixture_id: int
    outcome: Optional[str]  # WIN, LOSE
    created_at: str


class ProgressDict(TypedDict):
    """Applied outcome of one round for one player."""
    id: int
    competition_id: int
    user_id: int
    round_id: int
    fixture_id: Optional[int]
    chosen_team: str  # team short name or NO_PICK
    outcome: str  # WIN, LOSE
    lives_before: int
    lives_after: int
    status_before: str
    status_after: str
    created_at: str

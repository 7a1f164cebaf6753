"""
Abstract base class defining the competition store interface.

All database implementations must inherit from this class and implement
all abstract methods. Services only talk to the store through this
interface, so every rule about rounds, picks and eliminations lives in
the service layer and not in SQL.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Optional, List, Dict, Any, Iterable, Set

from ..types import (
    UserDict,
    TeamDict,
    CompetitionDict,
    PlayerDict,
    PermissionRowDict,
    RoundDict,
    FixtureDict,
    PickDict,
    ProgressDict,
)


class DatabaseInterface(ABC):
    """
    Abstract interface for competition data storage.

    All methods must be implemented by concrete database classes.
    Every method participates in an enclosing transaction() when one is
    open on the calling thread.
    """

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @abstractmethod
    def initialize(self) -> None:
        """
        Initialize the database connection and schema.

        Should create tables if they don't exist and be idempotent.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close database connections and clean up resources."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """
        Check if the database connection is healthy.

        Returns:
            True if database is accessible, False otherwise
        """
        pass

    @abstractmethod
    def transaction(self, immediate: bool = False) -> AbstractContextManager:
        """
        Open a transaction for the calling thread.

        Nested calls join the outermost transaction; only the outermost
        level commits or rolls back.

        Args:
            immediate: Take the write lock when the transaction begins
                       instead of at the first write. Used by operations
                       that read state and then write based on it.
        """
        pass

    # =========================================================================
    # USERS
    # =========================================================================

    @abstractmethod
    def create_user(
        self,
        display_name: str,
        email: Optional[str],
        api_token: str,
        is_admin: bool = False
    ) -> int:
        """Create a user and return its id."""
        pass

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[UserDict]:
        pass

    @abstractmethod
    def get_user_by_token(self, api_token: str) -> Optional[UserDict]:
        """Look up the user a bearer token belongs to."""
        pass

    @abstractmethod
    def save_device_token(self, user_id: int, token: str, platform: str) -> None:
        """Register (or re-assign) a push device token."""
        pass

    @abstractmethod
    def get_device_tokens(self, user_ids: Iterable[int]) -> List[Dict[str, Any]]:
        """Return device tokens for the given users as dicts with user_id and token."""
        pass

    @abstractmethod
    def set_email_opt_out(self, user_id: int, opt_out: bool) -> None:
        """Turn all email for a user off (True) or back on (False)."""
        pass

    # =========================================================================
    # TEAMS
    # =========================================================================

    @abstractmethod
    def save_teams(self, teams: List[Dict[str, Any]]) -> int:
        """
        Save or update teams in the pool.

        Args:
            teams: Dicts with 'short_name', 'name' and optionally 'is_active'

        Returns:
            Number of teams saved
        """
        pass

    @abstractmethod
    def get_active_teams(self) -> List[TeamDict]:
        """Return the available-teams pool ordered by short name."""
        pass

    # =========================================================================
    # COMPETITIONS
    # =========================================================================

    @abstractmethod
    def create_competition(
        self,
        name: str,
        organiser_id: int,
        lives_per_player: int,
        no_team_twice: bool,
        invite_code: str
    ) -> int:
        """Create a competition in 'setup' status and return its id."""
        pass

    @abstractmethod
    def get_competition(self, competition_id: int) -> Optional[CompetitionDict]:
        pass

    @abstractmethod
    def get_competition_by_invite_code(self, invite_code: str) -> Optional[CompetitionDict]:
        pass

    @abstractmethod
    def update_competition_status(
        self,
        competition_id: int,
        status: str,
        winner_id: Optional[int] = None
    ) -> None:
        """Set the competition status and winner (None clears the winner)."""
        pass

    @abstractmethod
    def reset_competition(self, competition_id: int, invite_code: str) -> int:
        """
        Delete all game data for a competition and restore its players.

        Removes rounds, fixtures, picks, progress and used teams; every
        player returns to 'active' with lives_per_player lives.

        Returns:
            Number of players reset
        """
        pass

    @abstractmethod
    def update_competition(self, competition_id: int, fields: Dict[str, Any]) -> None:
        """
        Update competition settings.

        Args:
            fields: Any of 'name', 'lives_per_player', 'no_team_twice'

        Raises:
            QueryError: If fields names any other column
        """
        pass

    @abstractmethod
    def delete_competition(self, competition_id: int) -> None:
        """Delete a competition with its members, rounds, picks and audit trail."""
        pass

    # =========================================================================
    # PLAYERS
    # =========================================================================

    @abstractmethod
    def add_player(self, competition_id: int, user_id: int, lives: int) -> int:
        """Add a user to a competition as an active player."""
        pass

    @abstractmethod
    def get_player(self, competition_id: int, user_id: int) -> Optional[PlayerDict]:
        pass

    @abstractmethod
    def get_players(
        self,
        competition_id: int,
        status: Optional[str] = None
    ) -> List[PlayerDict]:
        """Return players ordered by display name, optionally filtered by status."""
        pass

    @abstractmethod
    def update_player(
        self,
        competition_id: int,
        user_id: int,
        lives_remaining: Optional[int] = None,
        status: Optional[str] = None
    ) -> None:
        """Update lives and/or status; None leaves a field unchanged."""
        pass

    @abstractmethod
    def get_permission_row(
        self,
        competition_id: int,
        user_id: int
    ) -> Optional[PermissionRowDict]:
        """
        Return the organiser id and the user's delegate flags.

        Returns None when the competition does not exist. Flags are None
        when the user is not a member.
        """
        pass

    @abstractmethod
    def set_permissions(
        self,
        competition_id: int,
        user_id: int,
        flags: Dict[str, bool]
    ) -> None:
        """Set delegate flags (column name -> value) for a member."""
        pass

    @abstractmethod
    def set_player_hidden(self, competition_id: int, user_id: int, hidden: bool) -> None:
        pass

    @abstractmethod
    def remove_player(self, competition_id: int, user_id: int) -> None:
        """Remove a member along with their picks, progress and used teams."""
        pass

    # =========================================================================
    # USED TEAMS
    # =========================================================================

    @abstractmethod
    def get_used_teams(self, competition_id: int, user_id: int) -> Set[str]:
        pass

    @abstractmethod
    def add_used_team(self, competition_id: int, user_id: int, team: str) -> None:
        pass

    @abstractmethod
    def remove_used_team(self, competition_id: int, user_id: int, team: str) -> None:
        pass

    @abstractmethod
    def clear_used_teams(self, competition_id: int, user_id: int) -> None:
        pass

    # =========================================================================
    # ROUNDS
    # =========================================================================

    @abstractmethod
    def create_round(self, competition_id: int, round_number: int, lock_time: str) -> int:
        pass

    @abstractmethod
    def get_round(self, round_id: int) -> Optional[RoundDict]:
        pass

    @abstractmethod
    def get_latest_round(self, competition_id: int) -> Optional[RoundDict]:
        """Return the round with the highest round_number."""
        pass

    @abstractmethod
    def get_rounds(self, competition_id: int) -> List[RoundDict]:
        pass

    @abstractmethod
    def set_round_completed(self, round_id: int, completed_at: Optional[str]) -> None:
        """Mark a round complete (or re-open it with None)."""
        pass

    @abstractmethod
    def get_rounds_locking_between(self, start: str, end: str) -> List[RoundDict]:
        """Return unreminded rounds whose lock_time falls in [start, end)."""
        pass

    @abstractmethod
    def set_reminder_sent(self, round_id: int, sent_at: str) -> None:
        pass

    # =========================================================================
    # FIXTURES
    # =========================================================================

    @abstractmethod
    def add_fixtures(
        self,
        round_id: int,
        competition_id: int,
        fixtures: List[Dict[str, Any]]
    ) -> List[int]:
        """
        Insert fixtures for a round.

        Args:
            fixtures: Dicts with 'home_team', 'away_team', 'kickoff_time'

        Returns:
            New fixture ids in input order
        """
        pass

    @abstractmethod
    def get_fixture(self, fixture_id: int) -> Optional[FixtureDict]:
        pass

    @abstractmethod
    def get_fixtures(self, round_id: int) -> List[FixtureDict]:
        """Return a round's fixtures ordered by kickoff time."""
        pass

    @abstractmethod
    def update_fixture(
        self,
        fixture_id: int,
        home_team: str,
        away_team: str,
        kickoff_time: str
    ) -> None:
        pass

    @abstractmethod
    def delete_fixture(self, fixture_id: int) -> None:
        pass

    @abstractmethod
    def set_fixture_result(
        self,
        fixture_id: int,
        home_score: int,
        away_score: int,
        result: str
    ) -> None:
        pass

    @abstractmethod
    def set_fixtures_processed(self, round_id: int, processed_at: Optional[str]) -> None:
        """Stamp (or clear with None) the processed time of every fixture in a round."""
        pass

    # =========================================================================
    # PICKS
    # =========================================================================

    @abstractmethod
    def create_pick(
        self,
        round_id: int,
        competition_id: int,
        user_id: int,
        team: str,
        fixture_id: int
    ) -> int:
        """
        Insert a pick.

        Raises:
            QueryError: If the user already has a pick for the round
        """
        pass

    @abstractmethod
    def get_pick(self, round_id: int, user_id: int) -> Optional[PickDict]:
        pass

    @abstractmethod
    def get_picks(self, round_id: int) -> List[PickDict]:
        pass

    @abstractmethod
    def replace_pick(self, pick_id: int, team: str, fixture_id: int) -> None:
        pass

    @abstractmethod
    def delete_pick(self, pick_id: int) -> None:
        pass

    @abstractmethod
    def get_fixture_picks(self, fixture_id: int) -> List[PickDict]:
        pass

    @abstractmethod
    def set_pick_outcome(self, pick_id: int, outcome: Optional[str]) -> None:
        pass

    @abstractmethod
    def count_picks(self, round_id: int) -> int:
        pass

    # =========================================================================
    # PROGRESS / AUDIT
    # =========================================================================

    @abstractmethod
    def add_progress(self, entry: Dict[str, Any]) -> int:
        """Record the applied outcome of a round for one player."""
        pass

    @abstractmethod
    def get_round_progress(self, round_id: int) -> List[ProgressDict]:
        pass

    @abstractmethod
    def delete_round_progress(self, round_id: int) -> int:
        pass

    @abstractmethod
    def get_player_progress(self, competition_id: int, user_id: int) -> List[ProgressDict]:
        """Return a player's progress ordered by round number."""
        pass

    @abstractmethod
    def add_audit(
        self,
        competition_id: Optional[int],
        user_id: Optional[int],
        action: str,
        details: str
    ) -> None:
        pass

    @abstractmethod
    def get_audit_log(self, competition_id: int) -> List[Dict[str, Any]]:
        pass

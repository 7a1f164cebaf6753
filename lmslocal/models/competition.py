"""Competition and permission models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CompetitionStatus(str, Enum):
    """Lifecycle of a competition."""

    SETUP = "setup"
    ACTIVE = "active"
    COMPLETE = "COMPLETE"


class Capability(str, Enum):
    """A delegated organiser capability."""

    RESULTS = "results"
    FIXTURES = "fixtures"
    PLAYERS = "players"
    PROMOTE = "promote"

    @property
    def column(self) -> str:
        """competition_user flag column holding this capability."""
        return f"manage_{self.value}"


class CreateCompetitionRequest(BaseModel):
    """Body of /create-competition."""

    name: str = Field(..., min_length=1, max_length=100)
    lives_per_player: Optional[int] = Field(default=None, ge=0)
    no_team_twice: bool = True


class JoinCompetitionRequest(BaseModel):
    """Body of /join-competition."""

    invite_code: str = Field(..., min_length=1)


class CompetitionRequest(BaseModel):
    """Body of any endpoint that only needs a competition id."""

    competition_id: int


class UpdatePermissionsRequest(BaseModel):
    """Body of /update-player-permissions."""

    competition_id: int
    player_id: int
    manage_results: bool
    manage_fixtures: bool
    manage_players: bool
    manage_promote: bool = False


class UpdateCompetitionRequest(BaseModel):
    """Body of /update-competition.

    Omitted fields are left unchanged.
    """

    competition_id: int
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    lives_per_player: Optional[int] = Field(default=None, ge=0)
    no_team_twice: Optional[bool] = None

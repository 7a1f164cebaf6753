"""Player, pick and read-model request models."""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field


class PlayerStatus(str, Enum):
    """Player status within a competition."""

    ACTIVE = "active"
    OUT = "out"


class PickOutcome(str, Enum):
    """Outcome of a pick once its fixture has a result."""

    WIN = "WIN"
    LOSE = "LOSE"


# chosen_team recorded for an active player who made no pick
NO_PICK = "NO_PICK"


class SubmitPickRequest(BaseModel):
    """Body of /submit-pick."""

    round_id: int
    team: str = Field(..., min_length=1)


class OverridePickRequest(BaseModel):
    """Body of /override-pick."""

    round_id: int
    player_id: int
    team: str = Field(..., min_length=1)


class AllowedTeamsRequest(BaseModel):
    """Body of /get-allowed-teams.

    player_id defaults to the caller.
    """

    competition_id: int
    player_id: Optional[int] = None


class UpdateLivesRequest(BaseModel):
    """Body of /update-player-lives."""

    competition_id: int
    player_id: int
    operation: Literal["add", "subtract", "set"]
    amount: int = Field(..., ge=0)
    reason: Optional[str] = None


class UpdateStatusRequest(BaseModel):
    """Body of /update-player-status."""

    competition_id: int
    player_id: int
    status: PlayerStatus
    reason: Optional[str] = None


class StandingsRequest(BaseModel):
    """Body of /get-competition-standings."""

    competition_id: int
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=50, ge=1, le=200)
    filter_by_lives: Literal["all", "0", "1", "2", "out"] = "all"
    search: str = ""


class UnpickedPlayersRequest(BaseModel):
    """Body of /get-unpicked-players."""

    competition_id: int
    round_id: Optional[int] = None


class RoundStatisticsRequest(BaseModel):
    """Body of /get-round-statistics."""

    competition_id: int
    round_id: int


class PlayerHistoryRequest(BaseModel):
    """Body of /get-player-history."""

    competition_id: int
    player_id: int


class DeviceTokenRequest(BaseModel):
    """Body of /register-device-token."""

    token: str = Field(..., min_length=1)
    platform: Literal["android", "ios", "web"] = "android"


class PlayerRequest(BaseModel):
    """Body of endpoints acting on one member of a competition."""

    competition_id: int
    player_id: int


class EmailPreferencesRequest(BaseModel):
    """Body of /update-email-preferences."""

    enabled: bool

"""Round and fixture models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RoundState(str, Enum):
    """Lifecycle of a round.

    OPEN -> LOCKED -> RESULTS_PENDING -> COMPLETE
    """

    OPEN = "OPEN"
    LOCKED = "LOCKED"
    RESULTS_PENDING = "RESULTS_PENDING"
    COMPLETE = "COMPLETE"


DRAW = "DRAW"


class FixtureInput(BaseModel):
    """One fixture of a new round."""

    home_team: str = Field(..., min_length=1)
    away_team: str = Field(..., min_length=1)
    kickoff_time: datetime


class CreateRoundRequest(BaseModel):
    """Body of /create-round.

    lock_time defaults to the earliest kickoff when omitted.
    """

    competition_id: int
    lock_time: Optional[datetime] = None
    fixtures: list[FixtureInput] = Field(..., min_length=1)


class UpdateFixtureRequest(BaseModel):
    """Body of /update-fixture."""

    fixture_id: int
    home_team: str = Field(..., min_length=1)
    away_team: str = Field(..., min_length=1)
    kickoff_time: datetime
    override: bool = False


class RemoveFixtureRequest(BaseModel):
    """Body of /remove-fixture."""

    fixture_id: int
    override: bool = False


class RoundRequest(BaseModel):
    """Body of /get-round-state."""

    round_id: int


class SetResultRequest(BaseModel):
    """Body of /set-result."""

    fixture_id: int
    home_score: int = Field(..., ge=0)
    away_score: int = Field(..., ge=0)
    override: bool = False

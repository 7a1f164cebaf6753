"""Data models for the LMSLocal application."""

from lmslocal.models.competition import (
    Capability,
    CompetitionStatus,
    CreateCompetitionRequest,
    JoinCompetitionRequest,
    CompetitionRequest,
    UpdatePermissionsRequest,
    UpdateCompetitionRequest,
)
from lmslocal.models.round import (
    DRAW,
    RoundState,
    FixtureInput,
    CreateRoundRequest,
    UpdateFixtureRequest,
    RemoveFixtureRequest,
    RoundRequest,
    SetResultRequest,
)
from lmslocal.models.player import (
    NO_PICK,
    PlayerStatus,
    PickOutcome,
    SubmitPickRequest,
    OverridePickRequest,
    AllowedTeamsRequest,
    UpdateLivesRequest,
    UpdateStatusRequest,
    StandingsRequest,
    UnpickedPlayersRequest,
    RoundStatisticsRequest,
    PlayerHistoryRequest,
    DeviceTokenRequest,
    PlayerRequest,
    EmailPreferencesRequest,
)

__all__ = [
    "Capability",
    "CompetitionStatus",
    "CreateCompetitionRequest",
    "JoinCompetitionRequest",
    "CompetitionRequest",
    "UpdatePermissionsRequest",
    "UpdateCompetitionRequest",
    "DRAW",
    "RoundState",
    "FixtureInput",
    "CreateRoundRequest",
    "UpdateFixtureRequest",
    "RemoveFixtureRequest",
    "RoundRequest",
    "SetResultRequest",
    "NO_PICK",
    "PlayerStatus",
    "PickOutcome",
    "SubmitPickRequest",
    "OverridePickRequest",
    "AllowedTeamsRequest",
    "UpdateLivesRequest",
    "UpdateStatusRequest",
    "StandingsRequest",
    "UnpickedPlayersRequest",
    "RoundStatisticsRequest",
    "PlayerHistoryRequest",
    "DeviceTokenRequest",
    "PlayerRequest",
    "EmailPreferencesRequest",
]

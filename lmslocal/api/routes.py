"""API route definitions.

Every endpoint is a POST taking a JSON body and answering HTTP 200 with a
{"return_code", ...} envelope. Domain errors become their return code;
anything unexpected is logged and reported as INTERNAL.
"""

import logging
from typing import Any, Callable, Dict

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from lmslocal.api.dependencies import (
    get_db,
    get_current_user,
    get_notifier,
    get_competition_service,
    get_round_service,
    get_pick_service,
    get_result_service,
    get_standings_service,
)
from lmslocal.models import (
    CreateCompetitionRequest,
    JoinCompetitionRequest,
    CompetitionRequest,
    UpdatePermissionsRequest,
    UpdateCompetitionRequest,
    CreateRoundRequest,
    UpdateFixtureRequest,
    RemoveFixtureRequest,
    RoundRequest,
    SetResultRequest,
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
from lmslocal.notifications.service import NotificationService
from lmslocal.services.competitions import CompetitionService
from lmslocal.services.exceptions import LMSError
from lmslocal.services.picks import PickService
from lmslocal.services.results import ResultService
from lmslocal.services.rounds import RoundService
from lmslocal.services.standings import StandingsService
from lmslocal.storage import DatabaseInterface

logger = logging.getLogger(__name__)
router = APIRouter()


def envelope(return_code: str, **payload: Any) -> JSONResponse:
    """Build the response body every endpoint returns."""
    return JSONResponse(content=jsonable_encoder({"return_code": return_code, **payload}))


def respond(action: str, call: Callable[[], Dict[str, Any]]) -> JSONResponse:
    """Run a service call and wrap its result or error in the envelope."""
    try:
        payload = call()
    except LMSError as e:
        return envelope(e.return_code, message=e.message)
    except Exception as e:
        logger.exception(f"Error {action}: {e}")
        return envelope("INTERNAL", message=f"Failed {action}")
    return envelope("SUCCESS", **payload)


# =============================================================================
# COMPETITIONS
# =============================================================================

@router.post("/create-competition")
def create_competition(
    body: CreateCompetitionRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: CompetitionService = Depends(get_competition_service),
) -> JSONResponse:
    """Create a competition owned by the caller."""
    return respond("creating competition", lambda: {
        "competition": service.create_competition(
            user['id'], body.name, body.lives_per_player, body.no_team_twice
        )
    })


@router.post("/join-competition")
def join_competition(
    body: JoinCompetitionRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: CompetitionService = Depends(get_competition_service),
) -> JSONResponse:
    return respond("joining competition", lambda: service.join_competition(
        user['id'], body.invite_code
    ))


@router.post("/reset-competition")
def reset_competition(
    body: CompetitionRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: CompetitionService = Depends(get_competition_service),
) -> JSONResponse:
    """Wipe rounds and picks; main organiser only."""
    return respond("resetting competition", lambda: service.reset_competition(
        user['id'], body.competition_id
    ))


@router.post("/update-competition")
def update_competition(
    body: UpdateCompetitionRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: CompetitionService = Depends(get_competition_service),
) -> JSONResponse:
    return respond("updating competition", lambda: service.update_competition(
        user['id'],
        body.competition_id,
        name=body.name,
        lives_per_player=body.lives_per_player,
        no_team_twice=body.no_team_twice,
    ))


@router.post("/delete-competition")
def delete_competition(
    body: CompetitionRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: CompetitionService = Depends(get_competition_service),
) -> JSONResponse:
    """Delete a competition; main organiser only."""
    return respond("deleting competition", lambda: service.delete_competition(
        user['id'], body.competition_id
    ))


@router.post("/hide-competition")
def hide_competition(
    body: CompetitionRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: CompetitionService = Depends(get_competition_service),
) -> JSONResponse:
    """Leave before the start, hide afterwards."""
    return respond("hiding competition", lambda: service.hide_competition(
        user['id'], body.competition_id
    ))


@router.post("/update-player-permissions")
def update_player_permissions(
    body: UpdatePermissionsRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: CompetitionService = Depends(get_competition_service),
) -> JSONResponse:
    """Grant or revoke delegate capabilities; main organiser only."""
    flags = body.model_dump(exclude={"competition_id", "player_id"})
    return respond("updating permissions", lambda: {
        "player_id": body.player_id,
        "permissions": service.update_player_permissions(
            user['id'], body.competition_id, body.player_id, flags
        ),
    })


# =============================================================================
# ROUNDS AND FIXTURES
# =============================================================================

@router.post("/create-round")
def create_round(
    body: CreateRoundRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: RoundService = Depends(get_round_service),
) -> JSONResponse:
    """Create the next round with its fixtures."""
    return respond("creating round", lambda: {
        "round": service.create_round(
            user['id'], body.competition_id, body.fixtures, body.lock_time
        )
    })


@router.post("/update-fixture")
def update_fixture(
    body: UpdateFixtureRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: RoundService = Depends(get_round_service),
) -> JSONResponse:
    return respond("updating fixture", lambda: {
        "fixture": service.update_fixture(
            user['id'],
            body.fixture_id,
            body.home_team,
            body.away_team,
            body.kickoff_time,
            override=body.override,
        )
    })


@router.post("/remove-fixture")
def remove_fixture(
    body: RemoveFixtureRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: RoundService = Depends(get_round_service),
) -> JSONResponse:
    return respond("removing fixture", lambda: service.remove_fixture(
        user['id'], body.fixture_id, override=body.override
    ))


@router.post("/get-round-state")
def get_round_state(
    body: RoundRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: RoundService = Depends(get_round_service),
) -> JSONResponse:
    return respond("fetching round state", lambda: {
        "round": service.get_round_state(user['id'], body.round_id)
    })


# =============================================================================
# PICKS
# =============================================================================

@router.post("/submit-pick")
def submit_pick(
    body: SubmitPickRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: PickService = Depends(get_pick_service),
) -> JSONResponse:
    """Submit the caller's pick for a round."""
    return respond("submitting pick", lambda: {
        "pick": service.submit_pick(user['id'], body.round_id, body.team)
    })


@router.post("/override-pick")
def override_pick(
    body: OverridePickRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: PickService = Depends(get_pick_service),
) -> JSONResponse:
    """Set a player's pick on their behalf."""
    return respond("overriding pick", lambda: {
        "pick": service.override_pick(user['id'], body.round_id, body.player_id, body.team)
    })


@router.post("/get-allowed-teams")
def get_allowed_teams(
    body: AllowedTeamsRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: PickService = Depends(get_pick_service),
) -> JSONResponse:
    return respond("fetching allowed teams", lambda: {
        "allowed_teams": [
            {"short_name": t['short_name'], "name": t['name']}
            for t in service.get_allowed_teams(user['id'], body.competition_id, body.player_id)
        ]
    })


# =============================================================================
# RESULTS
# =============================================================================

@router.post("/set-result")
def set_result(
    body: SetResultRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: ResultService = Depends(get_result_service),
) -> JSONResponse:
    """Record a fixture result; the last result of a round processes it."""
    return respond("setting result", lambda: service.apply_result(
        user['id'],
        body.fixture_id,
        body.home_score,
        body.away_score,
        override=body.override,
    ))


# =============================================================================
# PLAYER ADMINISTRATION
# =============================================================================

@router.post("/update-player-lives")
def update_player_lives(
    body: UpdateLivesRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: CompetitionService = Depends(get_competition_service),
) -> JSONResponse:
    return respond("updating lives", lambda: service.update_player_lives(
        user['id'],
        body.competition_id,
        body.player_id,
        body.operation,
        body.amount,
        body.reason,
    ))


@router.post("/update-player-status")
def update_player_status(
    body: UpdateStatusRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: CompetitionService = Depends(get_competition_service),
) -> JSONResponse:
    return respond("updating status", lambda: service.update_player_status(
        user['id'],
        body.competition_id,
        body.player_id,
        body.status.value,
        body.reason,
    ))


@router.post("/unhide-player")
def unhide_player(
    body: PlayerRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: CompetitionService = Depends(get_competition_service),
) -> JSONResponse:
    return respond("unhiding player", lambda: service.unhide_player(
        user['id'], body.competition_id, body.player_id
    ))


@router.post("/get-competition-players")
def get_competition_players(
    body: CompetitionRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: CompetitionService = Depends(get_competition_service),
) -> JSONResponse:
    return respond("fetching competition players", lambda: service.get_competition_players(
        user['id'], body.competition_id
    ))


# =============================================================================
# READ MODELS
# =============================================================================

@router.post("/get-competition-standings")
def get_competition_standings(
    body: StandingsRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: StandingsService = Depends(get_standings_service),
) -> JSONResponse:
    return respond("fetching standings", lambda: service.get_competition_standings(
        user['id'],
        body.competition_id,
        page=body.page,
        page_size=body.page_size,
        filter_by_lives=body.filter_by_lives,
        search=body.search,
    ))


@router.post("/get-unpicked-players")
def get_unpicked_players(
    body: UnpickedPlayersRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: StandingsService = Depends(get_standings_service),
) -> JSONResponse:
    return respond("fetching unpicked players", lambda: service.get_unpicked_players(
        user['id'], body.competition_id, body.round_id
    ))


@router.post("/get-round-statistics")
def get_round_statistics(
    body: RoundStatisticsRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: StandingsService = Depends(get_standings_service),
) -> JSONResponse:
    return respond("fetching round statistics", lambda: service.get_round_statistics(
        user['id'], body.competition_id, body.round_id
    ))


@router.post("/get-player-history")
def get_player_history(
    body: PlayerHistoryRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: StandingsService = Depends(get_standings_service),
) -> JSONResponse:
    return respond("fetching player history", lambda: service.get_player_history(
        user['id'], body.competition_id, body.player_id
    ))


# =============================================================================
# NOTIFICATIONS
# =============================================================================

@router.post("/register-device-token")
def register_device_token(
    body: DeviceTokenRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: DatabaseInterface = Depends(get_db),
) -> JSONResponse:
    def call() -> Dict[str, Any]:
        db.save_device_token(user['id'], body.token.strip(), body.platform)
        return {"message": "Device token registered"}

    return respond("registering device token", call)


@router.post("/update-email-preferences")
def update_email_preferences(
    body: EmailPreferencesRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: CompetitionService = Depends(get_competition_service),
) -> JSONResponse:
    return respond("updating email preferences", lambda: service.update_email_preferences(
        user['id'], body.enabled
    ))


@router.post("/send-pick-reminder")
def send_pick_reminder(
    body: CompetitionRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    notifier: NotificationService = Depends(get_notifier),
) -> JSONResponse:
    """Remind players without a pick in the open round."""
    return respond("sending pick reminders", lambda: notifier.send_pick_reminders(
        user['id'], body.competition_id
    ))

"""Lookups shared by the services: load a row or raise the matching error."""

from typing import Dict, Any

from ..models.competition import Capability
from ..storage.base import DatabaseInterface
from .exceptions import NotFound, Unauthorized
from .permissions import check_permission, is_main_organiser


def require_competition(db: DatabaseInterface, competition_id: int) -> Dict[str, Any]:
    competition = db.get_competition(competition_id)
    if competition is None:
        raise NotFound(f"Competition {competition_id} not found")
    return competition


def require_round(db: DatabaseInterface, round_id: int) -> Dict[str, Any]:
    round_row = db.get_round(round_id)
    if round_row is None:
        raise NotFound(f"Round {round_id} not found")
    return round_row


def require_fixture(db: DatabaseInterface, fixture_id: int) -> Dict[str, Any]:
    fixture = db.get_fixture(fixture_id)
    if fixture is None:
        raise NotFound(f"Fixture {fixture_id} not found")
    return fixture


def require_player(db: DatabaseInterface, competition_id: int, user_id: int) -> Dict[str, Any]:
    player = db.get_player(competition_id, user_id)
    if player is None:
        raise NotFound(f"Player {user_id} is not in competition {competition_id}")
    return player


def require_capability(
    db: DatabaseInterface,
    user_id: int,
    competition_id: int,
    capability: Capability
) -> bool:
    """Raise Unauthorized unless the user holds the capability.

    Returns:
        Whether the user is the main organiser
    """
    permission = check_permission(db, user_id, competition_id, capability)
    if not permission.authorized:
        raise Unauthorized(
            f"You do not have permission to manage {capability.value} for this competition"
        )
    return permission.is_organiser


def require_main_organiser(db: DatabaseInterface, user_id: int, competition_id: int) -> None:
    if not is_main_organiser(db, user_id, competition_id):
        raise Unauthorized("Only the main organiser can perform this action")


def require_member_or_organiser(
    db: DatabaseInterface,
    user_id: int,
    competition: Dict[str, Any]
) -> None:
    """Read access: organisers and players of the competition."""
    if competition['organiser_id'] == user_id:
        return
    if db.get_player(competition['id'], user_id) is None:
        raise Unauthorized("You do not have access to this competition")


def normalize_team(team: str) -> str:
    """Team short names are stored upper-cased without surrounding spaces."""
    return team.strip().upper()

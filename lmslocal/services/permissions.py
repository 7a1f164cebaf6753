"""
Permission checks.

A user may act on a competition when they are its organiser, or when the
organiser has delegated the specific capability to them through their
competition_user flags. Granting capabilities stays with the organiser.
"""

from dataclasses import dataclass
from typing import FrozenSet, Union

from ..models.competition import Capability
from ..storage.base import DatabaseInterface


@dataclass(frozen=True)
class Grant:
    """What a user holds in one competition."""

    is_organiser: bool
    capabilities: FrozenSet[Capability]

    def allows(self, capability: Capability) -> bool:
        return self.is_organiser or capability in self.capabilities


@dataclass(frozen=True)
class PermissionResult:
    """Outcome of a permission check."""

    authorized: bool
    is_organiser: bool


NO_GRANT = Grant(is_organiser=False, capabilities=frozenset())


def get_grant(db: DatabaseInterface, user_id: int, competition_id: int) -> Grant:
    """Build the capability set a user holds in a competition.

    Returns NO_GRANT when the competition does not exist.
    """
    row = db.get_permission_row(competition_id, user_id)
    if row is None:
        return NO_GRANT

    capabilities = frozenset(
        capability for capability in Capability
        if row.get(capability.column)
    )
    return Grant(
        is_organiser=row['organiser_id'] == user_id,
        capabilities=capabilities,
    )


def check_permission(
    db: DatabaseInterface,
    user_id: int,
    competition_id: int,
    capability: Union[Capability, str]
) -> PermissionResult:
    """Check whether a user may use a capability in a competition.

    Args:
        db: Competition store
        user_id: User attempting the action
        competition_id: Competition the action targets
        capability: results, fixtures, players or promote

    Returns:
        PermissionResult; both fields are False for an unknown competition
    """
    grant = get_grant(db, user_id, competition_id)
    return PermissionResult(
        authorized=grant.allows(Capability(capability)),
        is_organiser=grant.is_organiser,
    )


def is_main_organiser(db: DatabaseInterface, user_id: int, competition_id: int) -> bool:
    """True only for the competition owner, never for a delegate."""
    return get_grant(db, user_id, competition_id).is_organiser

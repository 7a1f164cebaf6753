"""
Competition and player administration.
"""

import logging
import secrets
from datetime import datetime
from typing import Optional, Dict, Any

from ..config import get_settings
from ..models.competition import Capability, CompetitionStatus
from ..models.player import PlayerStatus
from ..storage.base import DatabaseInterface
from ..storage.exceptions import QueryError
from ..utils.clock import utcnow
from .cache import CacheService
from .common import (
    require_competition,
    require_player,
    require_capability,
    require_main_organiser,
)
from .exceptions import ValidationError, NotFound, Conflict
from .round_state import is_locked

logger = logging.getLogger(__name__)

INVITE_CODE_ATTEMPTS = 20


class CompetitionService:
    """Creates competitions, admits players and manages their standing."""

    def __init__(self, db: DatabaseInterface, cache: CacheService) -> None:
        self.db = db
        self.cache = cache
        self.settings = get_settings()

    def _new_invite_code(self) -> str:
        """Four digit code not used by any other competition."""
        for _ in range(INVITE_CODE_ATTEMPTS):
            code = f"{secrets.randbelow(10000):04d}"
            if self.db.get_competition_by_invite_code(code) is None:
                return code
        raise Conflict("Could not allocate an invite code, try again")

    def _has_started(self, competition_id: int, now: datetime) -> bool:
        """A competition starts when round 1 locks."""
        latest = self.db.get_latest_round(competition_id)
        return latest is not None and (latest['round_number'] > 1 or is_locked(latest, now))

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def create_competition(
        self,
        organiser_id: int,
        name: str,
        lives_per_player: Optional[int] = None,
        no_team_twice: bool = True
    ) -> Dict[str, Any]:
        """
        Create a competition in setup status.

        The organiser runs the competition and is not entered as a player.
        """
        if lives_per_player is None:
            lives_per_player = self.settings.DEFAULT_LIVES_PER_PLAYER

        max_lives = self.settings.MAX_LIVES_PER_PLAYER
        if not 0 <= lives_per_player <= max_lives:
            raise ValidationError(f"lives_per_player must be between 0 and {max_lives}")

        name = name.strip()
        if not name:
            raise ValidationError("Competition name is required")

        with self.db.transaction(immediate=True):
            invite_code = self._new_invite_code()
            competition_id = self.db.create_competition(
                name, organiser_id, lives_per_player, no_team_twice, invite_code
            )
            self.db.add_audit(competition_id, organiser_id, 'Competition Created', name)

        logger.info(f"Competition {competition_id} '{name}' created by user {organiser_id}")
        return self.db.get_competition(competition_id)

    def join_competition(
        self,
        user_id: int,
        invite_code: str,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Enter a competition while it is in setup or its first round is open."""
        now = now or utcnow()

        with self.db.transaction(immediate=True):
            competition = self.db.get_competition_by_invite_code(invite_code.strip())
            if competition is None:
                raise NotFound("Invalid invite code")

            if competition['status'] == CompetitionStatus.COMPLETE.value:
                raise Conflict("Competition has finished")

            if self._has_started(competition['id'], now):
                raise Conflict("Competition has already started; joining is closed")

            try:
                self.db.add_player(
                    competition['id'], user_id, competition['lives_per_player']
                )
            except QueryError as e:
                raise Conflict("You have already joined this competition") from e

        self.cache.invalidate_competition(competition['id'])
        logger.info(f"User {user_id} joined competition {competition['id']}")
        return {
            'competition_id': competition['id'],
            'name': competition['name'],
            'lives_remaining': competition['lives_per_player'],
        }

    def reset_competition(self, user_id: int, competition_id: int) -> Dict[str, Any]:
        """Wipe all rounds and restore every player to full lives."""
        require_competition(self.db, competition_id)
        require_main_organiser(self.db, user_id, competition_id)

        with self.db.transaction(immediate=True):
            invite_code = self._new_invite_code()
            players_reset = self.db.reset_competition(competition_id, invite_code)
            self.db.add_audit(
                competition_id,
                user_id,
                'Competition Reset',
                f"{players_reset} players restored, new invite code issued"
            )

        self.cache.invalidate_competition(competition_id)
        logger.warning(f"Competition {competition_id} reset by organiser {user_id}")
        return {
            'competition_id': competition_id,
            'players_reset': players_reset,
            'invite_code': invite_code,
        }

    def update_competition(
        self,
        user_id: int,
        competition_id: int,
        name: Optional[str] = None,
        lives_per_player: Optional[int] = None,
        no_team_twice: Optional[bool] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Change competition settings.

        The name can change at any time. Lives and the no-repeat rule are
        fixed once the competition has started; before that, changing lives
        also resets every player to the new count.
        """
        now = now or utcnow()
        require_competition(self.db, competition_id)
        require_main_organiser(self.db, user_id, competition_id)

        fields: Dict[str, Any] = {}
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Competition name cannot be empty")
            fields['name'] = name

        if lives_per_player is not None:
            max_lives = self.settings.MAX_LIVES_PER_PLAYER
            if not 0 <= lives_per_player <= max_lives:
                raise ValidationError(f"lives_per_player must be between 0 and {max_lives}")
            fields['lives_per_player'] = lives_per_player

        if no_team_twice is not None:
            fields['no_team_twice'] = no_team_twice

        if not fields:
            raise ValidationError("At least one field must be provided for update")

        with self.db.transaction(immediate=True):
            game_rules = {'lives_per_player', 'no_team_twice'} & set(fields)
            if game_rules and self._has_started(competition_id, now):
                raise Conflict(
                    f"Cannot change {', '.join(sorted(game_rules))} after the competition has started"
                )

            self.db.update_competition(competition_id, fields)
            if 'lives_per_player' in fields:
                for player in self.db.get_players(competition_id):
                    self.db.update_player(
                        competition_id, player['user_id'], lives_remaining=lives_per_player
                    )

            self.db.add_audit(
                competition_id,
                user_id,
                'Competition Updated',
                ', '.join(f"{k}={v}" for k, v in sorted(fields.items()))
            )

        self.cache.invalidate_competition(competition_id)
        logger.info(f"Competition {competition_id} updated: {sorted(fields)}")
        return {
            'competition': self.db.get_competition(competition_id),
            'has_started': self._has_started(competition_id, now),
        }

    def delete_competition(self, user_id: int, competition_id: int) -> Dict[str, Any]:
        """Permanently remove a competition and everything in it."""
        competition = require_competition(self.db, competition_id)
        require_main_organiser(self.db, user_id, competition_id)

        with self.db.transaction(immediate=True):
            players = len(self.db.get_players(competition_id))
            self.db.delete_competition(competition_id)

        self.cache.invalidate_competition(competition_id)
        logger.warning(
            f"Competition {competition_id} '{competition['name']}' deleted by organiser {user_id}"
        )
        return {
            'competition_id': competition_id,
            'name': competition['name'],
            'players_removed': players,
        }

    # =========================================================================
    # MEMBERSHIP
    # =========================================================================

    def hide_competition(
        self,
        user_id: int,
        competition_id: int,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Leave or hide a competition as a player.

        Before the competition starts the player is removed outright, with
        their picks and used teams. Afterwards they stay in the game but are
        hidden from the standings until an organiser unhides them.
        """
        now = now or utcnow()
        require_competition(self.db, competition_id)

        with self.db.transaction(immediate=True):
            player = self.db.get_player(competition_id, user_id)
            if player is None:
                raise NotFound("You are not a member of this competition")

            if not self._has_started(competition_id, now):
                self.db.remove_player(competition_id, user_id)
                self.db.add_audit(competition_id, user_id, 'Player Left', player['display_name'])
                action = 'left'
            else:
                if player['hidden']:
                    raise Conflict("Competition is already hidden")
                self.db.set_player_hidden(competition_id, user_id, True)
                action = 'hidden'

        self.cache.invalidate_competition(competition_id)
        logger.info(f"User {user_id} {action} competition {competition_id}")
        return {'competition_id': competition_id, 'action': action}

    def unhide_player(
        self,
        user_id: int,
        competition_id: int,
        player_id: int
    ) -> Dict[str, Any]:
        """Bring a hidden player back into the standings."""
        require_competition(self.db, competition_id)
        require_capability(self.db, user_id, competition_id, Capability.PLAYERS)

        with self.db.transaction():
            player = require_player(self.db, competition_id, player_id)
            if not player['hidden']:
                raise Conflict("Player is already visible")

            self.db.set_player_hidden(competition_id, player_id, False)
            self.db.add_audit(
                competition_id, user_id, 'Player Unhidden', f"Player {player_id}"
            )

        self.cache.invalidate_competition(competition_id)
        return {'player_id': player_id, 'player_name': player['display_name'], 'hidden': False}

    def get_competition_players(self, user_id: int, competition_id: int) -> Dict[str, Any]:
        """Full member list for organisers, hidden players included."""
        competition = require_competition(self.db, competition_id)
        require_capability(self.db, user_id, competition_id, Capability.PLAYERS)

        players = [
            {
                'id': p['user_id'],
                'display_name': p['display_name'],
                'email': p['email'],
                'status': p['status'],
                'lives_remaining': p['lives_remaining'],
                'hidden': bool(p['hidden']),
                'joined_at': p['joined_at'],
            }
            for p in self.db.get_players(competition_id)
        ]
        return {
            'competition': {
                'id': competition['id'],
                'name': competition['name'],
                'status': competition['status'],
                'invite_code': competition['invite_code'],
            },
            'players': players,
            'total_players': len(players),
        }

    def update_email_preferences(self, user_id: int, enabled: bool) -> Dict[str, Any]:
        """Turn reminder and result emails on or off for the caller."""
        self.db.set_email_opt_out(user_id, not enabled)
        logger.info(f"User {user_id} email {'enabled' if enabled else 'disabled'}")
        return {'email_enabled': enabled}

    # =========================================================================
    # DELEGATION
    # =========================================================================

    def update_player_permissions(
        self,
        user_id: int,
        competition_id: int,
        player_id: int,
        flags: Dict[str, bool]
    ) -> Dict[str, bool]:
        """
        Grant or revoke delegate capabilities.

        Args:
            user_id: Caller; must be the main organiser
            competition_id: Competition the grant applies to
            player_id: Member receiving the flags
            flags: manage_* column -> bool

        Returns:
            The member's flags after the update
        """
        require_competition(self.db, competition_id)
        require_main_organiser(self.db, user_id, competition_id)

        if player_id == user_id:
            raise ValidationError("You cannot change your own permissions")

        columns = {c.column for c in Capability}
        unknown = set(flags) - columns
        if unknown:
            raise ValidationError(f"Unknown permission(s): {', '.join(sorted(unknown))}")

        with self.db.transaction():
            require_player(self.db, competition_id, player_id)
            self.db.set_permissions(competition_id, player_id, flags)
            self.db.add_audit(
                competition_id,
                user_id,
                'Permissions Updated',
                f"Player {player_id}: " + ', '.join(
                    f"{k}={'on' if v else 'off'}" for k, v in sorted(flags.items())
                )
            )
            row = self.db.get_permission_row(competition_id, player_id)

        return {c.column: bool(row[c.column]) for c in Capability}

    # =========================================================================
    # PLAYER ADMINISTRATION
    # =========================================================================

    def update_player_lives(
        self,
        user_id: int,
        competition_id: int,
        player_id: int,
        operation: str,
        amount: int,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Add, subtract or set a player's lives.

        This is an organiser override: the result is bounded by
        MAX_LIVES_PER_PLAYER, not by the competition's lives_per_player, so a
        player may be given more lives than they started with. An update that
        leaves the count unchanged is a Conflict.
        """
        require_competition(self.db, competition_id)
        require_capability(self.db, user_id, competition_id, Capability.PLAYERS)

        if amount < 0:
            raise ValidationError("amount must not be negative")

        with self.db.transaction(immediate=True):
            player = require_player(self.db, competition_id, player_id)
            previous = player['lives_remaining']

            if operation == 'add':
                new_lives = previous + amount
            elif operation == 'subtract':
                new_lives = previous - amount
            elif operation == 'set':
                new_lives = amount
            else:
                raise ValidationError("operation must be add, subtract or set")

            max_lives = self.settings.MAX_LIVES_PER_PLAYER
            if not 0 <= new_lives <= max_lives:
                raise ValidationError(f"Lives must stay between 0 and {max_lives}")
            if new_lives == previous:
                raise Conflict(f"Player already has {previous} lives")

            self.db.update_player(competition_id, player_id, lives_remaining=new_lives)
            self.db.add_audit(
                competition_id,
                user_id,
                'Lives Updated',
                f"Player {player_id}: {previous} -> {new_lives} ({operation} {amount})"
                + (f" - {reason}" if reason else "")
            )

        self.cache.invalidate_competition(competition_id)
        return {
            'player_id': player_id,
            'player_name': player['display_name'],
            'previous_lives': previous,
            'lives_remaining': new_lives,
            'operation_performed': operation,
        }

    def update_player_status(
        self,
        user_id: int,
        competition_id: int,
        player_id: int,
        status: str,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """Manually knock a player out or bring them back."""
        require_competition(self.db, competition_id)
        require_capability(self.db, user_id, competition_id, Capability.PLAYERS)

        try:
            status = PlayerStatus(status).value
        except ValueError as e:
            raise ValidationError("status must be active or out") from e

        with self.db.transaction(immediate=True):
            player = require_player(self.db, competition_id, player_id)
            previous = player['status']
            if previous == status:
                raise Conflict(f"Player is already {status}")

            self.db.update_player(competition_id, player_id, status=status)
            self.db.add_audit(
                competition_id,
                user_id,
                'Status Updated',
                f"Player {player_id}: {previous} -> {status}"
                + (f" - {reason}" if reason else "")
            )

        self.cache.invalidate_competition(competition_id)
        logger.info(f"Player {player_id} in competition {competition_id} set to {status}")
        return {
            'player_id': player_id,
            'player_name': player['display_name'],
            'previous_status': previous,
            'new_status': status,
        }

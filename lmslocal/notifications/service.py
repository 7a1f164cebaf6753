"""
Notification service.

Email and push sends run on a small thread pool after the request's
transaction has committed. A failed send is logged and dropped; it never
reaches the caller or touches competition state.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, Future
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Callable

from ..config import get_settings
from ..models.competition import Capability
from ..models.player import PlayerStatus
from ..services.common import require_competition
from ..services.exceptions import Conflict, NotFound, Unauthorized
from ..services.permissions import get_grant
from ..services.round_state import is_locked
from ..storage.base import DatabaseInterface
from ..utils.clock import utcnow, to_iso
from .email import EmailDispatcher
from .push import PushDispatcher

logger = logging.getLogger(__name__)


class NotificationService:
    """Queues reminder and result notifications."""

    def __init__(
        self,
        db: DatabaseInterface,
        email: Optional[EmailDispatcher] = None,
        push: Optional[PushDispatcher] = None,
        max_workers: Optional[int] = None
    ):
        settings = get_settings()
        self.db = db
        self.email = email or EmailDispatcher()
        self.push = push or PushDispatcher()
        self.enabled = settings.NOTIFICATIONS_ENABLED
        self.base_url = settings.APP_BASE_URL.rstrip('/')
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.NOTIFICATION_WORKERS,
            thread_name_prefix="notify"
        )

    def _run(self, description: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception as e:
            logger.error(f"Notification failed ({description}): {e}")
            return None

    def submit(self, description: str, fn: Callable[..., Any], *args: Any) -> Optional[Future]:
        """Run fn(*args) in the background; errors are logged, not raised."""
        if not self.enabled:
            logger.debug(f"Notifications disabled, skipping {description}")
            return None
        return self._executor.submit(self._run, description, fn, *args)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _competition_link(self, competition_id: int) -> str:
        return f"{self.base_url}/game/{competition_id}"

    def _queue_push(self, user_ids: List[int], kind: str, competition_id: int) -> int:
        tokens = self.db.get_device_tokens(user_ids)
        for row in tokens:
            self.submit(
                f"push {kind} to user {row['user_id']}",
                self.push.send_preset,
                row['token'],
                kind,
                {'competition_id': competition_id},
            )
        return len(tokens)

    # =========================================================================
    # RESULTS
    # =========================================================================

    def notify_results(
        self,
        competition: Dict[str, Any],
        round_number: int,
        players: List[Dict[str, Any]],
        entries: List[Dict[str, Any]]
    ) -> int:
        """
        Queue result emails and pushes for everyone scored in a round.

        Returns:
            Number of emails queued
        """
        organiser = self.db.get_user(competition['organiser_id'])
        by_user = {p['user_id']: p for p in players}
        remaining = sum(1 for e in entries if e['status_after'] == PlayerStatus.ACTIVE.value)
        queued = 0

        for entry in entries:
            player = by_user.get(entry['user_id'])
            if not player or not player['email'] or player['email_opt_out']:
                continue
            self.submit(
                f"results email to user {entry['user_id']}",
                self.email.send,
                'results',
                player['email'],
                {
                    'display_name': player['display_name'],
                    'organiser_name': organiser['display_name'] if organiser else '',
                    'competition_name': competition['name'],
                    'round_number': round_number,
                    'chosen_team': entry['chosen_team'],
                    'outcome': entry['outcome'],
                    'status': entry['status_after'],
                    'lives_remaining': entry['lives_after'],
                    'players_remaining': remaining,
                    'link': self._competition_link(competition['id']),
                },
            )
            queued += 1

        self._queue_push([e['user_id'] for e in entries], 'results', competition['id'])
        logger.info(f"Queued {queued} results emails for competition {competition['id']}")
        return queued

    # =========================================================================
    # PICK REMINDERS
    # =========================================================================

    def remind_round(self, competition: Dict[str, Any], round_row: Dict[str, Any]) -> Dict[str, int]:
        """Queue reminders for active players with no pick in an open round."""
        organiser = self.db.get_user(competition['organiser_id'])
        picked = {p['user_id'] for p in self.db.get_picks(round_row['id'])}
        unpicked = [
            p for p in self.db.get_players(competition['id'], status=PlayerStatus.ACTIVE.value)
            if p['user_id'] not in picked
        ]

        emails = 0
        for player in unpicked:
            if not player['email'] or player['email_opt_out']:
                continue
            self.submit(
                f"pick reminder to user {player['user_id']}",
                self.email.send,
                'pick_reminder',
                player['email'],
                {
                    'display_name': player['display_name'],
                    'organiser_name': organiser['display_name'] if organiser else '',
                    'competition_name': competition['name'],
                    'round_number': round_row['round_number'],
                    'lock_time': round_row['lock_time'],
                    'link': self._competition_link(competition['id']),
                },
            )
            emails += 1

        pushes = self._queue_push(
            [p['user_id'] for p in unpicked], 'pick_reminder', competition['id']
        )
        return {'players': len(unpicked), 'emails': emails, 'pushes': pushes}

    def send_pick_reminders(
        self,
        user_id: int,
        competition_id: int,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Remind stragglers in the competition's open round."""
        now = now or utcnow()
        competition = require_competition(self.db, competition_id)

        grant = get_grant(self.db, user_id, competition_id)
        if not (grant.allows(Capability.RESULTS) or grant.allows(Capability.PLAYERS)):
            raise Unauthorized("You do not have permission to send reminders for this competition")

        round_row = self.db.get_latest_round(competition_id)
        if round_row is None:
            raise NotFound("No rounds exist for this competition")
        if round_row['completed_at'] or is_locked(round_row, now):
            raise Conflict("The current round is no longer open for picks")

        sent = self.remind_round(competition, round_row)
        self.db.set_reminder_sent(round_row['id'], to_iso(now))
        self.db.add_audit(
            competition_id,
            user_id,
            'Pick Reminder Sent',
            f"Round {round_row['round_number']}: {sent['emails']} emails, {sent['pushes']} pushes"
        )
        return {'round_number': round_row['round_number'], **sent}

    def send_due_reminders(self, now: Optional[datetime] = None, window_hours: Optional[int] = None) -> int:
        """
        Remind every open round locking within the window, once per round.

        Returns:
            Number of rounds reminded
        """
        now = now or utcnow()
        if window_hours is None:
            window_hours = get_settings().REMINDER_WINDOW_HOURS

        rounds = self.db.get_rounds_locking_between(
            to_iso(now), to_iso(now + timedelta(hours=window_hours))
        )

        for round_row in rounds:
            competition = self.db.get_competition(round_row['competition_id'])
            sent = self.remind_round(competition, round_row)
            self.db.set_reminder_sent(round_row['id'], to_iso(now))
            print(
                f"[+] Reminded round {round_row['round_number']} of '{competition['name']}': "
                f"{sent['emails']} emails, {sent['pushes']} pushes"
            )

        return len(rounds)

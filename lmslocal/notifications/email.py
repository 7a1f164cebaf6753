"""
Email dispatcher.

Sends transactional email through the Resend HTTP API. Each kind of email
has a template that turns a payload dict into a subject and an HTML body.
"""

import logging
from html import escape
from typing import Optional, Dict, Any, Callable, Tuple

import requests

from ..config import get_settings

logger = logging.getLogger(__name__)


def _pick_reminder(payload: Dict[str, Any]) -> Tuple[str, str]:
    subject = (
        f"{payload['organiser_name']} ({payload['competition_name']}): "
        f"Pick reminder for Round {payload['round_number']}"
    )
    body = (
        f"<p>Hi {escape(payload['display_name'])},</p>"
        f"<p>You haven't made your pick for Round {payload['round_number']} of "
        f"<strong>{escape(payload['competition_name'])}</strong> yet.</p>"
        f"<p>Picks lock at {escape(payload['lock_time'])}.</p>"
        f"<p><a href=\"{payload['link']}\">Make your pick</a></p>"
    )
    return subject, body


def _results(payload: Dict[str, Any]) -> Tuple[str, str]:
    subject = (
        f"{payload['organiser_name']} ({payload['competition_name']}): "
        f"Round {payload['round_number']} Results"
    )
    if payload['outcome'] == 'WIN':
        verdict = "Your pick won. You're through to the next round."
    elif payload['status'] == 'out':
        verdict = "Your pick didn't win and you're out of the competition."
    else:
        verdict = f"Your pick didn't win. Lives remaining: {payload['lives_remaining']}."
    body = (
        f"<p>Hi {escape(payload['display_name'])},</p>"
        f"<p>Round {payload['round_number']} of "
        f"<strong>{escape(payload['competition_name'])}</strong> is complete.</p>"
        f"<p>You picked {escape(payload['chosen_team'])}. {verdict}</p>"
        f"<p>{payload['players_remaining']} player(s) remain.</p>"
        f"<p><a href=\"{payload['link']}\">View standings</a></p>"
    )
    return subject, body


def _password_reset(payload: Dict[str, Any]) -> Tuple[str, str]:
    subject = "Reset your password - LMS Local"
    body = (
        f"<p>Hi {escape(payload['display_name'])},</p>"
        "<p>We received a request to reset your password.</p>"
        f"<p><a href=\"{payload['link']}\">Reset password</a></p>"
        "<p>If you didn't ask for this you can ignore this email.</p>"
    )
    return subject, body


def _payment_confirmation(payload: Dict[str, Any]) -> Tuple[str, str]:
    plan = payload['plan_name'].capitalize()
    subject = f"Payment confirmed - {plan} plan activated"
    body = (
        f"<p>Hi {escape(payload['display_name'])},</p>"
        f"<p>Thanks for your payment of {escape(str(payload['amount']))}.</p>"
        f"<p>Your {escape(plan)} plan is active until {escape(payload['expiry_date'])}.</p>"
    )
    return subject, body


TEMPLATES: Dict[str, Callable[[Dict[str, Any]], Tuple[str, str]]] = {
    'pick_reminder': _pick_reminder,
    'results': _results,
    'password_reset': _password_reset,
    'payment_confirmation': _payment_confirmation,
}


class EmailDispatcher:
    """
    Client for the transactional email API.

    Without an API key the dispatcher is disabled: send() logs what it would
    have sent and returns None.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: int = 15
    ):
        settings = get_settings()
        self.api_url = api_url or settings.EMAIL_API_URL
        self.api_key = api_key if api_key is not None else settings.EMAIL_API_KEY
        self.sender = sender or settings.EMAIL_FROM
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": "LMSLocal/1.0",
        })

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def render(self, kind: str, payload: Dict[str, Any]) -> Tuple[str, str]:
        """Subject and HTML body for an email kind.

        Raises:
            ValueError: Unknown kind
        """
        template = TEMPLATES.get(kind)
        if template is None:
            raise ValueError(f"Unknown email kind: {kind}")
        return template(payload)

    def send(self, kind: str, recipient: str, payload: Dict[str, Any]) -> Optional[str]:
        """
        Send one email.

        Args:
            kind: pick_reminder, results, password_reset or payment_confirmation
            recipient: Email address
            payload: Template fields

        Returns:
            Provider message id, or None when disabled

        Raises:
            ValueError: Unknown kind
            requests.RequestException: Transport or HTTP failure
        """
        subject, html = self.render(kind, payload)

        if not self.enabled:
            logger.info(f"Email disabled, not sending {kind} to {recipient}")
            return None

        response = self.session.post(
            self.api_url,
            json={
                "from": self.sender,
                "to": [recipient],
                "subject": subject,
                "html": html,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        message_id = response.json().get("id", "unknown")
        logger.debug(f"Sent {kind} email to {recipient} ({message_id})")
        return message_id

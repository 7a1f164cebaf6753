"""Push notification dispatcher (Firebase Cloud Messaging HTTP API)."""

import logging
from typing import Optional, Dict, Any

import requests

from ..config import get_settings

logger = logging.getLogger(__name__)

# Preset messages by notification type
MESSAGES: Dict[str, Dict[str, str]] = {
    'new_round': {
        'title': 'New Round Open',
        'body': 'Fixtures are ready - time to make your pick!',
    },
    'pick_reminder': {
        'title': 'Pick Reminder',
        'body': "Don't forget to make your pick before it locks!",
    },
    'results': {
        'title': 'Results Are In',
        'body': 'Results are in - see how you did!',
    },
}


class PushDispatcher:
    """Sends a notification to one device token."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        server_key: Optional[str] = None,
        timeout: int = 10
    ):
        settings = get_settings()
        self.api_url = api_url or settings.PUSH_API_URL
        self.server_key = server_key if server_key is not None else settings.PUSH_SERVER_KEY
        self.timeout = timeout
        self.session = requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.server_key)

    def send(
        self,
        device_token: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Deliver a notification.

        Returns:
            True when the provider accepted it, False when disabled or the
            token was rejected

        Raises:
            requests.RequestException: Transport or HTTP failure
        """
        if not self.enabled:
            logger.info("Push disabled, not sending notification")
            return False

        response = self.session.post(
            self.api_url,
            json={
                "to": device_token,
                "notification": {"title": title, "body": body},
                "data": {k: str(v) for k, v in (data or {}).items()},
            },
            headers={"Authorization": f"key={self.server_key}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        accepted = response.json().get("success", 0) > 0
        if not accepted:
            logger.info(f"Push token rejected: {device_token[:12]}...")
        return accepted

    def send_preset(self, device_token: str, kind: str, data: Optional[Dict[str, Any]] = None) -> bool:
        message = MESSAGES[kind]
        return self.send(device_token, message['title'], message['body'], data)

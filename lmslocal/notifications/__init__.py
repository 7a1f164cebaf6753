"""Email and push notification dispatch."""

from lmslocal.notifications.email import EmailDispatcher
from lmslocal.notifications.push import PushDispatcher
from lmslocal.notifications.service import NotificationService

__all__ = ["EmailDispatcher", "PushDispatcher", "NotificationService"]

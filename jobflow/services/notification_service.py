"""
Best-effort side channels: employee notifications and analytics events.

Everything here runs strictly after the owning transaction has committed.
Failures are logged and swallowed; they never roll back a job change and
never reach the caller as a domain error.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class NotificationDispatcher(ABC):
    """Delivers a notification to a user (push, email, in-app, ...)"""

    @abstractmethod
    def send(self, user_id: int, notification_type: str, payload: dict) -> None:
        """Deliver or enqueue; may raise on transport failure"""


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Default dispatcher that records notifications in the application log"""

    def send(self, user_id: int, notification_type: str, payload: dict) -> None:
        logger.info(f"🔔 {notification_type} → user {user_id}: {payload}")


class AnalyticsTracker(ABC):
    """Receives business analytics events"""

    @abstractmethod
    def track(self, event: str, properties: dict) -> None:
        """Record an event; may raise on transport failure"""


class LoggingAnalyticsTracker(AnalyticsTracker):
    def track(self, event: str, properties: dict) -> None:
        logger.info(f"📊 {event}: {properties}")


def send_notification(
    dispatcher: NotificationDispatcher,
    user_id: Optional[int],
    notification_type: str,
    payload: dict,
) -> dict:
    """
    Send a notification without ever raising

    Args:
        dispatcher: Delivery channel
        user_id: Recipient user ID (employees without an account are skipped)
        notification_type: Type of notification (for routing and logging)
        payload: Notification body

    Returns:
        Dict with sent flag and error text
    """
    result = {"sent": False, "error": None}

    if user_id is None:
        logger.debug(f"⚠️ No recipient for {notification_type} notification, skipping")
        result["error"] = "No recipient"
        return result

    try:
        dispatcher.send(user_id, notification_type, payload)
        result["sent"] = True
    except Exception as e:
        result["error"] = str(e)
        logger.warning(f"⚠️ Failed to send {notification_type} notification to user {user_id}: {e}")

    return result


def track_event(tracker: AnalyticsTracker, event: str, properties: dict) -> bool:
    """Record an analytics event without ever raising"""
    try:
        tracker.track(event, properties)
        return True
    except Exception as e:
        logger.warning(f"⚠️ Failed to track analytics event {event}: {e}")
        return False

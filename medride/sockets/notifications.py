"""
Offline Notification Capability
Delivery hook for recipients that have no live connection
"""

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Receives payloads for users who could not be reached in real time."""

    @abstractmethod
    async def notify_offline(self, user_id: str, payload: dict) -> None:
        ...


class LoggingNotificationSink(NotificationSink):
    """
    Default sink: no push provider is wired in, the condition is only logged.
    """

    async def notify_offline(self, user_id: str, payload: dict) -> None:
        logger.info(
            f"User {user_id} is offline; would need push for "
            f"{payload.get('event_type', 'unknown')}"
        )

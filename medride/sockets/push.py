"""
Server-originated pushes
Entry points the REST layer calls to reach a user in real time
"""

import logging
from typing import Any, Dict, Optional

from medride.sockets.hub import RealtimeHub
from medride.sockets.rooms import user_room

logger = logging.getLogger(__name__)


async def push_to_user(hub: RealtimeHub, user_id: str, message: dict) -> int:
    """Deliver to the user's personal room, falling back to the offline sink."""
    delivered = await hub.manager.broadcast(user_room(user_id), message)
    if delivered == 0:
        await hub.notifier.notify_offline(user_id, message)
    return delivered


async def notify_user(
    hub: RealtimeHub,
    user_id: str,
    notification_type: str,
    title: Optional[str] = None,
    body: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
) -> dict:
    """
    Store a notification and push it as new_notification

    Returns:
        The stored notification row plus the number of live deliveries
    """
    notification = await hub.store.create_notification(
        user_id, notification_type, title=title, body=body, data=data
    )
    delivered = await push_to_user(
        hub, user_id, {"event_type": "new_notification", **notification}
    )
    logger.info(
        f"Notification {notification['id']} for user {user_id} delivered live to {delivered} connection(s)"
    )
    return {"notification": notification, "delivered": delivered}


async def push_appointment_update(
    hub: RealtimeHub, user_id: str, appointment: Dict[str, Any]
) -> int:
    """Relay an appointment change that the REST layer already persisted."""
    return await push_to_user(
        hub, user_id, {"event_type": "appointment_updated", "appointment": appointment}
    )

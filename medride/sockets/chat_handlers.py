"""
Chat relay handlers
Presence for chat users, room membership, message delivery, typing and read receipts

Every handler authorizes against the durable chat row, persists its effect
(when it has one) and only then fans out through the chat room.
"""

import logging
from typing import Optional

from medride.exceptions import NotFound, PersistenceFailure, Unauthorized, ValidationFailure
from medride.models.events import (
    AvailabilityEvent,
    ChatEvent,
    SendMessageEvent,
    UserJoinEvent,
)
from medride.sockets.connection import ClientConnection
from medride.sockets.hub import RealtimeHub
from medride.sockets.rooms import chat_room, user_room
from medride.sockets.ws_auth import ensure_claim_matches

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================


async def authorize_chat(hub: RealtimeHub, chat_id: str, user_id: str) -> dict:
    """Return the chat row if user_id is its patient or doctor."""
    chat = await hub.store.get_chat(chat_id)
    if not chat:
        raise NotFound("Chat not found")

    if user_id not in (chat["patient_id"], chat["doctor_id"]):
        logger.warning(f"Unauthorized chat access: user {user_id} for chat {chat_id}")
        raise Unauthorized()

    return chat


def counterpart(chat: dict, user_id: str) -> str:
    return chat["doctor_id"] if user_id == chat["patient_id"] else chat["patient_id"]


def _acting_user(connection: ClientConnection, event: ChatEvent) -> str:
    user_id = event.user_id or connection.user_id
    if not user_id:
        raise ValidationFailure("Missing userId")
    return user_id


# =============================================================================
# EVENT HANDLERS
# =============================================================================


async def handle_user_join(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    """Handle user_join event - register presence and join the personal room."""
    event = UserJoinEvent.model_validate(data)
    ensure_claim_matches(connection, event.user_id)

    hub.manager.identify(connection, event.user_id, event.role, user_room(event.user_id))
    connection.user_id = event.user_id

    return {
        "event_type": "joined",
        "connectionId": connection.connection_id,
        "userId": event.user_id,
        "role": event.role,
    }


async def handle_join_chat(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    """Handle join_chat event - add connection to the chat room after authorization."""
    event = ChatEvent.model_validate(data)
    user_id = _acting_user(connection, event)
    ensure_claim_matches(connection, user_id)

    if not connection.is_identified:
        raise ValidationFailure("Send user_join before join_chat")

    await authorize_chat(hub, event.chat_id, user_id)
    hub.manager.join_room(connection, chat_room(event.chat_id))
    connection.update_heartbeat()

    return {"event_type": "chat_joined", "chatId": event.chat_id, "userId": user_id}


async def handle_leave_chat(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    event = ChatEvent.model_validate(data)
    hub.manager.leave_room(connection, chat_room(event.chat_id))
    return {"event_type": "chat_left", "chatId": event.chat_id}


async def handle_send_message(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    """
    Handle send_message event.

    The durable insert is the commit point: nothing is broadcast unless it
    succeeded. The broadcast includes the sender so every client renders the
    stored row.
    """
    event = SendMessageEvent.model_validate(data)
    ensure_claim_matches(connection, event.sender_id)
    chat = await authorize_chat(hub, event.chat_id, event.sender_id)

    message = await hub.store.insert_message(
        event.chat_id,
        event.sender_id,
        event.content,
        event.attachments,
        event.message_type,
    )

    try:
        await hub.store.touch_chat(event.chat_id)
    except PersistenceFailure as e:
        logger.warning(f"Chat {event.chat_id} watermark not refreshed: {e.message}")

    try:
        sender = await hub.store.get_user_display(event.sender_id)
    except PersistenceFailure as e:
        logger.warning(f"Sender display lookup failed for {event.sender_id}: {e.message}")
        sender = {"sender_first_name": None, "sender_last_name": None}

    payload = {"event_type": "new_message", "chatId": event.chat_id, **message, **sender}
    await hub.manager.broadcast(chat_room(event.chat_id), payload)

    recipient = counterpart(chat, event.sender_id)
    if hub.manager.presence.lookup(recipient) is None:
        await hub.notifier.notify_offline(recipient, payload)

    connection.update_heartbeat()
    return None


async def handle_typing(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    """Handle typing event - tell the rest of the chat room, nothing is stored."""
    return await _relay_typing(hub, connection, data, "user_typing")


async def handle_stop_typing(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    return await _relay_typing(hub, connection, data, "user_stop_typing")


async def _relay_typing(
    hub: RealtimeHub, connection: ClientConnection, data: dict, out_event: str
) -> Optional[dict]:
    event = ChatEvent.model_validate(data)
    user_id = _acting_user(connection, event)
    ensure_claim_matches(connection, user_id)
    await authorize_chat(hub, event.chat_id, user_id)

    await hub.manager.broadcast(
        chat_room(event.chat_id),
        {"event_type": out_event, "chatId": event.chat_id, "userId": user_id},
        exclude_connection_id=connection.connection_id,
    )
    return None


async def handle_mark_read(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    """Handle mark_read event - one bulk update for everything the counterpart sent."""
    event = ChatEvent.model_validate(data)
    user_id = _acting_user(connection, event)
    ensure_claim_matches(connection, user_id)
    await authorize_chat(hub, event.chat_id, user_id)

    count = await hub.store.mark_messages_read(event.chat_id, user_id)

    await hub.manager.broadcast(
        chat_room(event.chat_id),
        {
            "event_type": "messages_read",
            "chatId": event.chat_id,
            "userId": user_id,
            "count": count,
        },
    )
    return None


async def handle_update_availability(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    """Handle update_availability event - persist, then tell every connection."""
    event = AvailabilityEvent.model_validate(data)
    ensure_claim_matches(connection, event.doctor_id)

    if not await hub.store.set_doctor_availability(event.doctor_id, event.is_available):
        raise NotFound("Doctor not found")

    await hub.manager.broadcast_to_all(
        {
            "event_type": "doctor_availability_changed",
            "doctorId": event.doctor_id,
            "isAvailable": event.is_available,
        }
    )
    return None

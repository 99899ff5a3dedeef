"""
Realtime WebSocket endpoint and event dispatch

Frames are JSON objects naming their event in event_type (type is accepted
too). Handler failures are reported to the originating connection only, as
the error event registered for that handler.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from medride.exceptions import RealtimeError, ValidationFailure
from medride.sockets import chat_handlers, ride_handlers
from medride.sockets.connection import ClientConnection
from medride.sockets.hub import RealtimeHub
from medride.sockets.ws_auth import WebSocketAuthError, authenticate_websocket

logger = logging.getLogger(__name__)

router = APIRouter()

HEARTBEAT_INTERVAL_SECONDS = 15


# =============================================================================
# EVENT HANDLERS
# =============================================================================


async def handle_ping(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    """Handle ping event - respond with pong for heartbeat."""
    connection.update_heartbeat()
    return {"event_type": "pong", "timestamp": datetime.now(timezone.utc).isoformat()}


async def handle_pong(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    connection.update_heartbeat()
    return None


EVENT_HANDLERS = {
    "user_join": chat_handlers.handle_user_join,
    "join_chat": chat_handlers.handle_join_chat,
    "leave_chat": chat_handlers.handle_leave_chat,
    "send_message": chat_handlers.handle_send_message,
    "typing": chat_handlers.handle_typing,
    "stop_typing": chat_handlers.handle_stop_typing,
    "mark_read": chat_handlers.handle_mark_read,
    "update_availability": chat_handlers.handle_update_availability,
    "driver_join": ride_handlers.handle_driver_join,
    "passenger_join": ride_handlers.handle_passenger_join,
    "location_update": ride_handlers.handle_location_update,
    "booking_request": ride_handlers.handle_booking_request,
    "accept_booking": ride_handlers.handle_accept_booking,
    "update_booking_status": ride_handlers.handle_update_booking_status,
    "ping": handle_ping,
    "pong": handle_pong,
}

ERROR_EVENTS = {
    "join_chat": "message_error",
    "leave_chat": "message_error",
    "send_message": "message_error",
    "typing": "message_error",
    "stop_typing": "message_error",
    "mark_read": "message_error",
    "location_update": "booking_error",
    "booking_request": "booking_error",
    "accept_booking": "booking_error",
    "update_booking_status": "booking_error",
}


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "payload"
        problems.append(f"{location}: {error.get('msg')}")
    return "; ".join(problems)


async def dispatch(hub: RealtimeHub, connection: ClientConnection, data: dict) -> None:
    """Run the handler for one inbound frame and send its response or error."""
    event_type = data.get("event_type") or data.get("type")
    if not event_type:
        await hub.manager.send_to_connection(
            connection.connection_id,
            {"event_type": "error", "code": "validation_failure", "message": "Missing event_type"},
        )
        return

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        await hub.manager.send_to_connection(
            connection.connection_id,
            {
                "event_type": "error",
                "code": "validation_failure",
                "message": f"Unknown event type: {event_type}",
            },
        )
        return

    try:
        response = await handler(hub, connection, data)
    except ValidationError as e:
        error = ValidationFailure(_describe_validation_error(e))
    except RealtimeError as e:
        error = e
    except Exception:
        logger.exception(f"Unhandled error in {event_type} for {connection.connection_id}")
        error = RealtimeError()
    else:
        if response:
            await hub.manager.send_to_connection(connection.connection_id, response)
        return

    logger.info(
        f"{event_type} rejected for {connection.connection_id}: {error.code} ({error.message})"
    )
    await hub.manager.send_to_connection(
        connection.connection_id,
        {
            "event_type": ERROR_EVENTS.get(event_type, "error"),
            "event": event_type,
            **error.to_payload(),
        },
    )


# =============================================================================
# WEBSOCKET ENDPOINT
# =============================================================================


@router.websocket("/realtime")
async def websocket_endpoint(websocket: WebSocket):
    """Main WebSocket endpoint for real-time communication."""
    hub: RealtimeHub = websocket.app.state.hub
    connection: Optional[ClientConnection] = None

    try:
        claims = await authenticate_websocket(websocket, hub.settings)
    except WebSocketAuthError as e:
        logger.warning(f"WebSocket handshake rejected: {e}")
        return

    try:
        connection = await hub.manager.accept(websocket)
        if claims:
            connection.verified_user_id = claims["id"]

        await hub.manager.send_to_connection(
            connection.connection_id,
            {
                "event_type": "connected",
                "message": "Connected to MedRide real-time service",
                "connectionId": connection.connection_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

        # Message loop
        while True:
            try:
                raw_message = await asyncio.wait_for(
                    websocket.receive_text(), timeout=HEARTBEAT_INTERVAL_SECONDS
                )
            except asyncio.TimeoutError:
                if not connection.is_alive:
                    logger.info(f"Connection marked dead: {connection.connection_id}")
                    break
                continue
            except WebSocketDisconnect:
                logger.info(f"WebSocket disconnected normally: {connection.connection_id}")
                break

            connection.update_activity()

            try:
                data = json.loads(raw_message)
            except json.JSONDecodeError:
                await hub.manager.send_to_connection(
                    connection.connection_id,
                    {
                        "event_type": "error",
                        "code": "validation_failure",
                        "message": "Invalid JSON format",
                    },
                )
                continue

            if not isinstance(data, dict):
                await hub.manager.send_to_connection(
                    connection.connection_id,
                    {
                        "event_type": "error",
                        "code": "validation_failure",
                        "message": "Payload must be a JSON object",
                    },
                )
                continue

            await dispatch(hub, connection, data)

            if not connection.is_alive:
                break

    except Exception as e:
        logger.error(f"WebSocket connection error: {type(e).__name__}: {str(e)}")

    finally:
        if connection is not None:
            await hub.manager.disconnect(connection.connection_id, reason="Connection ended")

"""
Client Connection
One physical WebSocket session and its presence lifecycle state
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Set
from uuid import uuid4

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

HEARTBEAT_TIMEOUT_SECONDS = 45
PING_INTERVAL_SECONDS = 10
SEND_TIMEOUT_SECONDS = 5


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    IDENTIFIED = "identified"
    DISCONNECTED = "disconnected"


def _new_connection_id() -> str:
    return uuid4().hex


@dataclass
class ClientConnection:
    """Represents a single WebSocket client connection with metadata."""

    websocket: WebSocket
    connection_id: str = field(default_factory=_new_connection_id)
    state: ConnectionState = ConnectionState.CONNECTING
    user_id: Optional[str] = None
    role: Optional[str] = None
    identities: Set[str] = field(default_factory=set)
    connected_at: float = field(default_factory=time.time)
    last_heartbeat: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    verified_user_id: Optional[str] = None
    broken: bool = False

    @property
    def is_alive(self) -> bool:
        return self.state != ConnectionState.DISCONNECTED and not self.broken

    @property
    def is_identified(self) -> bool:
        return self.state == ConnectionState.IDENTIFIED

    def update_heartbeat(self) -> None:
        self.last_heartbeat = time.time()
        self.last_activity = time.time()

    def update_activity(self) -> None:
        self.last_activity = time.time()

    def is_stale(self, timeout: float = HEARTBEAT_TIMEOUT_SECONDS) -> bool:
        return (time.time() - self.last_heartbeat) > timeout

    def needs_ping(self, interval: float = PING_INTERVAL_SECONDS) -> bool:
        return (time.time() - self.last_activity) > interval

    async def send(self, message: dict, timeout: float = SEND_TIMEOUT_SECONDS) -> bool:
        """
        Send one JSON frame with timeout protection

        Returns:
            True when the frame was handed to the transport. Failures flag the
            connection as broken for the manager to purge and are never raised.
        """
        if not self.is_alive:
            return False

        if self.websocket.client_state != WebSocketState.CONNECTED:
            logger.debug(
                f"WebSocket not in CONNECTED state for {self.connection_id}: "
                f"{self.websocket.client_state.name}"
            )
            self.broken = True
            return False

        try:
            async with self.write_lock:
                await asyncio.wait_for(self.websocket.send_json(message), timeout=timeout)
            self.update_activity()
            return True

        except asyncio.TimeoutError:
            logger.warning(f"Send timeout for connection {self.connection_id}, marking as stale")
        except RuntimeError as e:
            logger.debug(f"WebSocket not connected for {self.connection_id}: {e}")
        except Exception as e:
            logger.error(
                f"Error sending to {self.connection_id}: {type(e).__name__}: {str(e)}"
            )

        self.broken = True
        return False

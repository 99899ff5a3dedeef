"""
WebSocket connection manager for the MedRide realtime layer.

This module provides:
- Connection table keyed by server-generated connection ids
- Presence registry (identity -> connection) and room membership ownership
- Presence lifecycle: accept, identify, disconnect with a full purge
- Room-scoped, targeted and global fan-out with per-connection write locks
- Server-initiated keepalive pings and stale connection cleanup
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import WebSocket, status

from medride.sockets.connection import (
    PING_INTERVAL_SECONDS,
    ClientConnection,
    ConnectionState,
)
from medride.sockets.registry import PresenceEntry, PresenceRegistry
from medride.sockets.rooms import RoomManager

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

CLEANUP_INTERVAL_SECONDS = 30


# =============================================================================
# CONNECTION MANAGER
# =============================================================================


class ConnectionManager:
    """Owns every piece of ephemeral realtime state for one server instance."""

    def __init__(self):
        self._connections: Dict[str, ClientConnection] = {}
        self.presence = PresenceRegistry()
        self.rooms = RoomManager()
        self._cleanup_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._is_running = False

    async def start(self) -> None:
        if self._is_running:
            return
        self._is_running = True
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        self._keepalive_task = asyncio.create_task(self._keepalive_loop())
        logger.info("ConnectionManager started with background cleanup and keepalive")

    async def stop(self) -> None:
        self._is_running = False
        for task in [self._cleanup_task, self._keepalive_task]:
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._cleanup_task = None
        self._keepalive_task = None

        for connection_id in list(self._connections):
            await self.disconnect(connection_id, reason="Server shutting down")
        logger.info("ConnectionManager stopped")

    async def _cleanup_loop(self) -> None:
        while self._is_running:
            try:
                await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
                await self.cleanup_dead_connections()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Cleanup loop error: {type(e).__name__}: {str(e)}")

    async def _keepalive_loop(self) -> None:
        while self._is_running:
            try:
                await asyncio.sleep(PING_INTERVAL_SECONDS)
                await self._send_keepalive_pings()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Keepalive loop error: {type(e).__name__}: {str(e)}")

    async def _send_keepalive_pings(self) -> None:
        targets = [
            connection_id
            for connection_id, conn in self._connections.items()
            if conn.is_alive and conn.needs_ping()
        ]
        message = {"event_type": "ping", "timestamp": _utcnow_iso()}
        for connection_id in targets:
            await self.send_to_connection(connection_id, message)

    async def cleanup_dead_connections(self) -> int:
        """Purge stale or broken connections. Returns how many were removed."""
        dead = [
            connection_id
            for connection_id, conn in self._connections.items()
            if conn.broken or conn.is_stale()
        ]
        for connection_id in dead:
            logger.warning(f"Removing dead connection: {connection_id}")
            await self.disconnect(connection_id, reason="Heartbeat timeout")
        return len(dead)

    # -------------------------------------------------------------------------
    # Presence Lifecycle
    # -------------------------------------------------------------------------

    async def accept(self, websocket: WebSocket) -> ClientConnection:
        """Accept the transport and create a connection in the CONNECTING state."""
        await websocket.accept()
        connection = ClientConnection(websocket=websocket)
        self._connections[connection.connection_id] = connection
        logger.info(f"WebSocket connected: connection_id={connection.connection_id}")
        return connection

    def identify(
        self,
        connection: ClientConnection,
        identity: str,
        role: str,
        personal_room: Optional[str] = None,
    ) -> Optional[PresenceEntry]:
        """
        Record who is speaking on a connection and join its personal room.

        Returns None when the connection has already been torn down.
        """
        if connection.state == ConnectionState.DISCONNECTED:
            logger.debug(f"Ignoring join on closed connection {connection.connection_id}")
            return None

        entry = self.presence.register(identity, connection.connection_id, role)
        connection.identities.add(identity)
        connection.role = role
        connection.state = ConnectionState.IDENTIFIED
        if personal_room:
            self.rooms.join(connection.connection_id, personal_room)

        connection.update_heartbeat()
        logger.info(
            f"Connection {connection.connection_id} identified as {identity} ({role})"
        )
        return entry

    async def disconnect(
        self, connection_id: str, reason: str = "Client disconnected"
    ) -> bool:
        """
        Purge a connection from the registry and every room, then close it.

        The purge itself has no suspension point, so no lookup can observe a
        half-removed connection. Safe to call more than once.
        """
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return False

        went_offline = self.presence.remove(connection_id)
        left_rooms = self.rooms.leave_all(connection_id)
        connection.state = ConnectionState.DISCONNECTED

        logger.info(
            f"WebSocket disconnected: connection_id={connection_id}, reason={reason}, "
            f"identities={sorted(went_offline)}, rooms={len(left_rooms)}"
        )

        try:
            await connection.websocket.close(
                code=status.WS_1000_NORMAL_CLOSURE, reason=reason
            )
        except Exception as e:
            logger.debug(f"Close after disconnect failed for {connection_id}: {e}")
        return True

    def get_connection(self, connection_id: str) -> Optional[ClientConnection]:
        return self._connections.get(connection_id)

    def is_online(self, identity: str) -> bool:
        connection_id = self.presence.lookup(identity)
        if connection_id is None:
            return False
        conn = self._connections.get(connection_id)
        return conn is not None and conn.is_alive

    # -------------------------------------------------------------------------
    # Room Management
    # -------------------------------------------------------------------------

    def join_room(self, connection: ClientConnection, room_id: str) -> bool:
        """Join a room on behalf of an identified, still-open connection."""
        if not connection.is_identified or connection.connection_id not in self._connections:
            return False
        return self.rooms.join(connection.connection_id, room_id)

    def leave_room(self, connection: ClientConnection, room_id: str) -> bool:
        return self.rooms.leave(connection.connection_id, room_id)

    # -------------------------------------------------------------------------
    # Messaging
    # -------------------------------------------------------------------------

    async def send_to_connection(self, connection_id: str, message: dict) -> bool:
        """Send a message to one connection; broken connections are purged."""
        connection = self._connections.get(connection_id)
        if not connection:
            return False

        sent = await connection.send(message)
        if sent:
            logger.debug(
                f"Message sent to {connection_id}: {message.get('event_type', 'unknown')}"
            )
        elif connection.broken:
            await self.disconnect(connection_id, reason="Send failed")
        return sent

    async def send_to_identity(self, identity: str, message: dict) -> bool:
        """Deliver to whichever connection currently holds identity, if any."""
        connection_id = self.presence.lookup(identity)
        if connection_id is None:
            return False
        return await self.send_to_connection(connection_id, message)

    async def broadcast(
        self,
        room_id: str,
        message: dict,
        exclude_connection_id: Optional[str] = None,
    ) -> int:
        """Broadcast a message to every current member of a room."""
        members = self.rooms.members(room_id)
        members.discard(exclude_connection_id)
        if not members:
            logger.debug(f"No recipients in room {room_id} for broadcast")
            return 0

        results = await asyncio.gather(
            *[self.send_to_connection(connection_id, message) for connection_id in members],
            return_exceptions=True,
        )
        success_count = sum(1 for r in results if r is True)

        logger.debug(
            f"Broadcast to room {room_id}: {success_count}/{len(members)} successful, "
            f"event={message.get('event_type', 'unknown')}"
        )
        return success_count

    async def broadcast_to_all(
        self, message: dict, exclude_connection_id: Optional[str] = None
    ) -> int:
        """Broadcast message to all connected clients."""
        targets = [
            connection_id
            for connection_id in list(self._connections)
            if connection_id != exclude_connection_id
        ]
        results = await asyncio.gather(
            *[self.send_to_connection(connection_id, message) for connection_id in targets],
            return_exceptions=True,
        )
        return sum(1 for r in results if r is True)

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def get_stats(self) -> dict:
        return {
            "active_connections": len(self._connections),
            "identified_connections": sum(
                1 for conn in self._connections.values() if conn.is_identified
            ),
            "presence_entries": len(self.presence),
            "active_rooms": self.rooms.room_count,
            "rooms": self.rooms.room_sizes(),
            "presence_by_role": self.presence.count_by_role(),
        }


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

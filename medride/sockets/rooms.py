"""
Room/Channel Manager
Named broadcast scopes that connections join and leave
"""

import logging
from collections import defaultdict
from typing import Dict, Set

logger = logging.getLogger(__name__)


def chat_room(chat_id: str) -> str:
    return f"chat_{chat_id}"


def user_room(user_id: str) -> str:
    return f"user_{user_id}"


def taxi_room(taxi_id: str) -> str:
    return f"taxi_{taxi_id}"


class RoomManager:
    """Many-to-many membership between connection ids and room ids."""

    def __init__(self):
        self._rooms: Dict[str, Set[str]] = {}
        self._memberships: Dict[str, Set[str]] = defaultdict(set)

    def join(self, connection_id: str, room_id: str) -> bool:
        """Add a connection to a room. Returns False if already joined."""
        members = self._rooms.setdefault(room_id, set())
        if connection_id in members:
            logger.debug(f"Connection {connection_id} already in room {room_id}")
            return False

        members.add(connection_id)
        self._memberships[connection_id].add(room_id)
        logger.debug(f"Connection {connection_id} joined room {room_id}")
        return True

    def leave(self, connection_id: str, room_id: str) -> bool:
        members = self._rooms.get(room_id)
        if not members or connection_id not in members:
            return False

        members.discard(connection_id)
        if not members:
            del self._rooms[room_id]

        rooms = self._memberships.get(connection_id)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                del self._memberships[connection_id]

        logger.debug(f"Connection {connection_id} left room {room_id}")
        return True

    def leave_all(self, connection_id: str) -> Set[str]:
        """Drop every membership of a connection; returns the rooms it was in."""
        rooms = self._memberships.pop(connection_id, set())
        for room_id in rooms:
            members = self._rooms.get(room_id)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._rooms[room_id]
        return rooms

    def members(self, room_id: str) -> Set[str]:
        return set(self._rooms.get(room_id, set()))

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self._memberships.get(connection_id, set()))

    def is_member(self, connection_id: str, room_id: str) -> bool:
        return connection_id in self._rooms.get(room_id, set())

    def room_sizes(self) -> Dict[str, int]:
        return {room_id: len(members) for room_id, members in self._rooms.items()}

    @property
    def room_count(self) -> int:
        return len(self._rooms)

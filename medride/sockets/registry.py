"""
Connection Registry
Maps durable identities to the live connection currently speaking for them
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

logger = logging.getLogger(__name__)


def taxi_key(taxi_id: str) -> str:
    """Presence key for a driver connection; user ids are used unprefixed."""
    return f"taxi:{taxi_id}"


@dataclass
class PresenceEntry:
    identity: str
    connection_id: str
    role: str
    joined_at: float = field(default_factory=time.time)


class PresenceRegistry:
    """
    Last-join-wins presence table.

    Every method runs without a suspension point, so on the event loop each
    call is atomic with respect to concurrent handlers.
    """

    def __init__(self):
        self._entries: Dict[str, PresenceEntry] = {}
        self._by_connection: Dict[str, Set[str]] = defaultdict(set)

    def register(self, identity: str, connection_id: str, role: str) -> PresenceEntry:
        """Insert or overwrite the entry for identity."""
        previous = self._entries.get(identity)
        if previous and previous.connection_id != connection_id:
            self._drop_index(previous.connection_id, identity)
            logger.info(
                f"Presence for {identity} moved from {previous.connection_id} to {connection_id}"
            )

        entry = PresenceEntry(identity=identity, connection_id=connection_id, role=role)
        self._entries[identity] = entry
        self._by_connection[connection_id].add(identity)
        return entry

    def lookup(self, identity: str) -> Optional[str]:
        entry = self._entries.get(identity)
        return entry.connection_id if entry else None

    def entry(self, identity: str) -> Optional[PresenceEntry]:
        return self._entries.get(identity)

    def remove(self, connection_id: str) -> List[str]:
        """
        Remove every entry still owned by connection_id.

        Entries already taken over by a newer connection are left alone.

        Returns:
            The identities that went offline
        """
        removed = []
        for identity in self._by_connection.pop(connection_id, set()):
            entry = self._entries.get(identity)
            if entry and entry.connection_id == connection_id:
                del self._entries[identity]
                removed.append(identity)
        return removed

    def identities_for(self, connection_id: str) -> Set[str]:
        return set(self._by_connection.get(connection_id, set()))

    def count_by_role(self) -> Dict[str, int]:
        counts: Dict[str, int] = defaultdict(int)
        for entry in self._entries.values():
            counts[entry.role] += 1
        return dict(counts)

    def _drop_index(self, connection_id: str, identity: str) -> None:
        identities = self._by_connection.get(connection_id)
        if identities is None:
            return
        identities.discard(identity)
        if not identities:
            del self._by_connection[connection_id]

    def __contains__(self, identity: str) -> bool:
        return identity in self._entries

    def __len__(self) -> int:
        return len(self._entries)

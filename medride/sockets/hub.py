"""
Realtime Hub
Everything an event handler needs, owned by one application instance
"""

from dataclasses import dataclass, field
from typing import Dict

from medride.config import Settings
from medride.sockets.manager import ConnectionManager
from medride.sockets.notifications import LoggingNotificationSink, NotificationSink
from medride.store.base import RealtimeStore


@dataclass
class RealtimeHub:
    store: RealtimeStore
    settings: Settings = field(default_factory=Settings)
    manager: ConnectionManager = field(default_factory=ConnectionManager)
    notifier: NotificationSink = field(default_factory=LoggingNotificationSink)
    # taxi_id -> latest {taxiId, lat, lng, timestamp}; written only after the durable update
    live_locations: Dict[str, dict] = field(default_factory=dict)

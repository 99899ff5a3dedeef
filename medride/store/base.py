"""
Durable Store Interface
Everything the realtime core reads from or writes to the system of record

Rows are plain dictionaries shaped like the relational tables they mirror.
Implementations raise PersistenceFailure for any read/write error.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional


class RealtimeStore(ABC):
    # -------------------------------------------------------------------------
    # Chats
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_chat(self, chat_id: str) -> Optional[Dict[str, Any]]:
        """Chat row with at least id, patient_id, doctor_id and status."""

    @abstractmethod
    async def insert_message(
        self,
        chat_id: str,
        sender_id: str,
        content: str,
        attachments: List[Dict[str, Any]],
        message_type: str,
    ) -> Dict[str, Any]:
        """Persist a message and return the stored row."""

    @abstractmethod
    async def touch_chat(self, chat_id: str) -> None:
        """Move the chat's updated_at watermark to now."""

    @abstractmethod
    async def get_user_display(self, user_id: str) -> Dict[str, Any]:
        """sender_first_name / sender_last_name for a user (None when unknown)."""

    @abstractmethod
    async def mark_messages_read(self, chat_id: str, reader_id: str) -> int:
        """Flip every unread message not sent by reader_id; returns the count."""

    @abstractmethod
    async def set_doctor_availability(self, doctor_id: str, is_available: bool) -> bool:
        """False when no doctor profile exists for doctor_id."""

    # -------------------------------------------------------------------------
    # Taxis and bookings
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_taxi(self, taxi_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def update_taxi_location(
        self, taxi_id: str, lat: float, lng: float, timestamp: datetime
    ) -> bool:
        """Upsert the current position; False when the taxi does not exist."""

    @abstractmethod
    async def append_taxi_location(
        self, taxi_id: str, lat: float, lng: float, timestamp: datetime
    ) -> None:
        ...

    @abstractmethod
    async def find_available_taxis(
        self, lat: float, lng: float, radius_km: float, limit: int
    ) -> List[Dict[str, Any]]:
        """
        Available taxis with a known position strictly inside radius_km of
        (lat, lng), nearest first, at most limit rows, each with a distance key.
        """

    @abstractmethod
    async def set_taxi_availability(self, taxi_id: str, is_available: bool) -> bool:
        ...

    @abstractmethod
    async def create_booking(
        self,
        passenger_id: str,
        taxi_id: str,
        status: str,
        estimated_arrival: Optional[int] = None,
        pickup_lat: Optional[float] = None,
        pickup_lng: Optional[float] = None,
        destination_lat: Optional[float] = None,
        destination_lng: Optional[float] = None,
    ) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def delete_booking(self, booking_id: str) -> None:
        ...

    @abstractmethod
    async def update_booking_status(
        self, booking_id: str, status: str
    ) -> Optional[Dict[str, Any]]:
        """Updated booking row, or None when it does not exist."""

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_notification(
        self,
        user_id: str,
        notification_type: str,
        title: Optional[str] = None,
        body: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        ...

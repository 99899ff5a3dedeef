"""
WebSocket Event Models
Inbound payloads of the realtime event surface

Field aliases carry the camelCase names clients send; snake_case names are
accepted as well. Numeric ids are coerced to strings.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class InboundEvent(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        coerce_numbers_to_str=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


# -----------------------------------------------------------------------------
# Presence
# -----------------------------------------------------------------------------


class UserJoinEvent(InboundEvent):
    """Chat participant announces itself"""

    user_id: str = Field(..., alias="userId", min_length=1)
    role: str = Field(default="patient", min_length=1)


class DriverJoinEvent(InboundEvent):
    taxi_id: str = Field(..., alias="taxiId", min_length=1)
    driver_id: Optional[str] = Field(default=None, alias="driverId")


class PassengerJoinEvent(InboundEvent):
    passenger_id: str = Field(..., alias="passengerId", min_length=1)


# -----------------------------------------------------------------------------
# Chat
# -----------------------------------------------------------------------------


class ChatEvent(InboundEvent):
    """join_chat, leave_chat, typing, stop_typing and mark_read"""

    chat_id: str = Field(..., alias="chatId", min_length=1)
    user_id: Optional[str] = Field(default=None, alias="userId")


class SendMessageEvent(InboundEvent):
    chat_id: str = Field(..., alias="chatId", min_length=1)
    sender_id: str = Field(..., alias="senderId", min_length=1)
    content: str = Field(..., min_length=1, max_length=5000)
    attachments: List[Dict[str, Any]] = Field(default_factory=list)
    message_type: str = Field(
        default="text", alias="messageType", pattern="^(text|image|file|voice)$"
    )


class AvailabilityEvent(InboundEvent):
    doctor_id: str = Field(..., alias="doctorId", min_length=1)
    is_available: bool = Field(..., alias="isAvailable")


# -----------------------------------------------------------------------------
# Ride booking
# -----------------------------------------------------------------------------


class LocationUpdateEvent(InboundEvent):
    """Driver location tick"""

    taxi_id: str = Field(..., alias="taxiId", min_length=1)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    # epoch seconds/milliseconds or ISO-8601; server time when omitted
    timestamp: Optional[datetime] = None


class BookingRequestEvent(InboundEvent):
    passenger_id: str = Field(..., alias="passengerId", min_length=1)
    pickup_lat: float = Field(..., alias="pickupLat", ge=-90, le=90)
    pickup_lng: float = Field(..., alias="pickupLng", ge=-180, le=180)
    destination_lat: Optional[float] = Field(
        default=None, alias="destinationLat", ge=-90, le=90
    )
    destination_lng: Optional[float] = Field(
        default=None, alias="destinationLng", ge=-180, le=180
    )


class AcceptBookingEvent(InboundEvent):
    taxi_id: str = Field(..., alias="taxiId", min_length=1)
    passenger_id: str = Field(..., alias="passengerId", min_length=1)
    estimated_arrival: Optional[int] = Field(default=None, alias="estimatedArrival", ge=0)
    pickup_lat: Optional[float] = Field(default=None, alias="pickupLat", ge=-90, le=90)
    pickup_lng: Optional[float] = Field(default=None, alias="pickupLng", ge=-180, le=180)
    destination_lat: Optional[float] = Field(
        default=None, alias="destinationLat", ge=-90, le=90
    )
    destination_lng: Optional[float] = Field(
        default=None, alias="destinationLng", ge=-180, le=180
    )


class BookingStatusEvent(InboundEvent):
    booking_id: str = Field(..., alias="bookingId", min_length=1)
    status: str = Field(..., pattern="^(in_progress|completed|cancelled)$")

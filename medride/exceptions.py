"""
Realtime Errors
Failure taxonomy raised by relay handlers and the durable store
"""

from typing import Optional


class RealtimeError(Exception):
    """Base class for failures reported back to the originating connection."""

    code = "server_error"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"code": self.code, "message": self.message}


class Unauthorized(RealtimeError):
    """Actor is not a party to the chat or booking."""

    code = "unauthorized"
    default_message = "You are not a participant in this conversation"


class NotFound(RealtimeError):
    """Referenced chat, taxi, booking or user does not exist."""

    code = "not_found"
    default_message = "Resource not found"


class PersistenceFailure(RealtimeError):
    """Durable read or write failed."""

    code = "persistence_failure"
    default_message = "Failed to reach the data store"


class ValidationFailure(RealtimeError):
    """Malformed inbound payload."""

    code = "validation_failure"
    default_message = "Invalid payload"

"""
User Model - Represents patients, doctors, drivers and passengers
Only the fields the realtime layer reads are declared; the REST layer owns the rest
"""

from datetime import datetime, timezone
from uuid import uuid4

from mongoengine import (
    Document,
    StringField,
    BooleanField,
    DateTimeField,
)


def _new_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Document):
    """
    Platform user
    Role determines access level: 'patient', 'doctor', 'driver', 'passenger', 'admin'
    """

    meta = {
        "collection": "users",
        "indexes": ["role"],
        "strict": False,
    }

    id = StringField(primary_key=True, default=_new_id)
    first_name = StringField(required=True, max_length=100)
    last_name = StringField(max_length=100)
    phone = StringField(max_length=20)
    role = StringField(
        required=True,
        choices=["patient", "doctor", "driver", "passenger", "admin"],
        default="patient",
    )
    is_active = BooleanField(default=True)

    created_at = DateTimeField(default=_utcnow)

    def display_fields(self) -> dict:
        """Sender fields attached to relayed chat messages"""
        return {
            "sender_first_name": self.first_name,
            "sender_last_name": self.last_name,
        }

    def __str__(self):
        return f"User({self.first_name} {self.last_name}, {self.role})"


class Doctor(Document):
    """Doctor profile keyed by the owning user id"""

    meta = {
        "collection": "doctors",
        "indexes": ["is_available"],
        "strict": False,
    }

    user_id = StringField(primary_key=True)
    specialties = StringField(max_length=200)
    is_available = BooleanField(default=False)
    updated_at = DateTimeField(default=_utcnow)

    def __str__(self):
        return f"Doctor({self.user_id}, available={self.is_available})"

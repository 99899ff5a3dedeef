"""
Taxi Models - Vehicles, their position history and passenger bookings
Booking status flow: accepted → in_progress → completed/cancelled
"""

from mongoengine import (
    Document,
    StringField,
    BooleanField,
    DateTimeField,
    FloatField,
    IntField,
)

from medride.models.user_model import _new_id, _utcnow


class Taxi(Document):
    """Taxi with its latest known position"""

    meta = {
        "collection": "taxis",
        "indexes": ["driver_id", "is_available"],
    }

    id = StringField(primary_key=True, default=_new_id)
    driver_id = StringField(required=True)
    vehicle_type = StringField(max_length=50)
    plate_number = StringField(max_length=20)
    is_available = BooleanField(default=True)

    current_lat = FloatField()
    current_lng = FloatField()
    last_location_update = DateTimeField()

    def __str__(self):
        return f"Taxi({self.id}, {self.plate_number})"


class TaxiLocation(Document):
    """Append-only position history row"""

    meta = {
        "collection": "taxi_locations",
        "indexes": [("taxi_id", "-timestamp")],
    }

    taxi_id = StringField(required=True)
    lat = FloatField(required=True)
    lng = FloatField(required=True)
    timestamp = DateTimeField(default=_utcnow)


class Booking(Document):
    """Passenger booking accepted by a taxi"""

    meta = {
        "collection": "bookings",
        "indexes": ["passenger_id", "taxi_id", "status"],
    }

    id = StringField(primary_key=True, default=_new_id)
    passenger_id = StringField(required=True)
    taxi_id = StringField(required=True)

    pickup_lat = FloatField()
    pickup_lng = FloatField()
    destination_lat = FloatField()
    destination_lng = FloatField()

    status = StringField(
        required=True,
        choices=["pending", "accepted", "in_progress", "completed", "cancelled"],
        default="pending",
    )
    estimated_arrival = IntField()  # minutes

    created_at = DateTimeField(default=_utcnow)
    updated_at = DateTimeField(default=_utcnow)

    def to_dict(self):
        """Convert booking to dictionary"""
        return {
            "id": self.id,
            "passenger_id": self.passenger_id,
            "taxi_id": self.taxi_id,
            "pickup": {"lat": self.pickup_lat, "lng": self.pickup_lng},
            "destination": {"lat": self.destination_lat, "lng": self.destination_lng},
            "status": self.status,
            "estimated_arrival": self.estimated_arrival,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __str__(self):
        return f"Booking({self.id}, {self.status})"

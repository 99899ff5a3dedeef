"""
Ride-booking relay handlers
Driver and passenger presence, location ticks, booking offers and acceptance
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from medride.exceptions import NotFound, PersistenceFailure, Unauthorized, ValidationFailure
from medride.models.events import (
    AcceptBookingEvent,
    BookingRequestEvent,
    BookingStatusEvent,
    DriverJoinEvent,
    LocationUpdateEvent,
    PassengerJoinEvent,
)
from medride.sockets.connection import ClientConnection
from medride.sockets.hub import RealtimeHub
from medride.sockets.registry import taxi_key
from medride.sockets.rooms import taxi_room, user_room
from medride.sockets.ws_auth import ensure_claim_matches, ensure_holds_identity
from medride.utils.geo import calculate_eta, haversine_km

logger = logging.getLogger(__name__)

RELEASING_STATUSES = ("completed", "cancelled")


# =============================================================================
# PRESENCE
# =============================================================================


async def handle_driver_join(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    """Handle driver_join event - presence is keyed by taxi, not by driver."""
    event = DriverJoinEvent.model_validate(data)
    if connection.verified_user_id is not None:
        await _verify_taxi_driver(hub, connection, event)

    hub.manager.identify(
        connection, taxi_key(event.taxi_id), "driver", taxi_room(event.taxi_id)
    )
    if event.driver_id:
        hub.manager.join_room(connection, user_room(event.driver_id))
    connection.user_id = event.driver_id

    logger.info(f"Driver {event.driver_id} joined with taxi {event.taxi_id}")
    return {
        "event_type": "joined",
        "connectionId": connection.connection_id,
        "taxiId": event.taxi_id,
        "driverId": event.driver_id,
        "role": "driver",
    }


async def _verify_taxi_driver(
    hub: RealtimeHub, connection: ClientConnection, event: DriverJoinEvent
) -> None:
    """A token holder may only join as the registered driver of the taxi."""
    if not event.driver_id:
        raise ValidationFailure("Missing driverId")
    ensure_claim_matches(connection, event.driver_id)

    taxi = await hub.store.get_taxi(event.taxi_id)
    if not taxi:
        raise NotFound("Taxi not found")
    if taxi["driver_id"] != event.driver_id:
        raise Unauthorized("Driver is not assigned to this taxi")


async def handle_passenger_join(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    event = PassengerJoinEvent.model_validate(data)
    ensure_claim_matches(connection, event.passenger_id)

    hub.manager.identify(
        connection, event.passenger_id, "passenger", user_room(event.passenger_id)
    )
    connection.user_id = event.passenger_id

    return {
        "event_type": "joined",
        "connectionId": connection.connection_id,
        "passengerId": event.passenger_id,
        "role": "passenger",
    }


# =============================================================================
# LOCATION
# =============================================================================


async def handle_location_update(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    """
    Handle location_update event from drivers.

    Current position and history are written before anything is cached or
    broadcast. The broadcast goes to every other connection, not to a
    geographic subset.
    """
    event = LocationUpdateEvent.model_validate(data)
    ensure_holds_identity(connection, taxi_key(event.taxi_id))
    timestamp = event.timestamp or datetime.now(timezone.utc)

    if not await hub.store.update_taxi_location(event.taxi_id, event.lat, event.lng, timestamp):
        raise NotFound("Taxi not found")
    await hub.store.append_taxi_location(event.taxi_id, event.lat, event.lng, timestamp)

    location = {
        "taxiId": event.taxi_id,
        "lat": event.lat,
        "lng": event.lng,
        "timestamp": timestamp.isoformat(),
    }
    hub.live_locations[event.taxi_id] = location
    connection.update_heartbeat()

    await hub.manager.broadcast_to_all(
        {"event_type": "taxi_location_update", **location},
        exclude_connection_id=connection.connection_id,
    )

    logger.debug(f"Location updated for taxi {event.taxi_id}: {event.lat}, {event.lng}")
    return None


# =============================================================================
# BOOKINGS
# =============================================================================


async def handle_booking_request(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    """Handle booking_request event - offer the ride to nearby connected drivers."""
    event = BookingRequestEvent.model_validate(data)
    ensure_holds_identity(connection, event.passenger_id)

    candidates = await hub.store.find_available_taxis(
        event.pickup_lat,
        event.pickup_lng,
        hub.settings.booking_radius_km,
        hub.settings.booking_max_candidates,
    )

    offered = 0
    for taxi in candidates:
        connection_id = hub.manager.presence.lookup(taxi_key(taxi["id"]))
        if connection_id is None:
            continue
        delivered = await hub.manager.send_to_connection(
            connection_id,
            {
                "event_type": "booking_request",
                "passengerId": event.passenger_id,
                "pickupLat": event.pickup_lat,
                "pickupLng": event.pickup_lng,
                "destinationLat": event.destination_lat,
                "destinationLng": event.destination_lng,
                "distance": round(taxi["distance"], 2),
            },
        )
        if delivered:
            offered += 1

    logger.info(
        f"Booking request from passenger {event.passenger_id}: "
        f"{len(candidates)} nearby taxis, {offered} offers delivered"
    )
    return {"event_type": "booking_request_sent", "nearbyTaxisCount": len(candidates)}


async def _estimate_arrival(hub: RealtimeHub, event: AcceptBookingEvent) -> Optional[int]:
    if event.estimated_arrival is not None:
        return event.estimated_arrival
    if event.pickup_lat is None or event.pickup_lng is None:
        return None

    taxi = await hub.store.get_taxi(event.taxi_id)
    if not taxi or taxi["current_lat"] is None or taxi["current_lng"] is None:
        return None

    distance = haversine_km(
        taxi["current_lat"], taxi["current_lng"], event.pickup_lat, event.pickup_lng
    )
    return calculate_eta(distance)


async def handle_accept_booking(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    """
    Handle accept_booking event.

    The booking insert and the availability flip are two writes; when the
    second one fails the booking is deleted again before the error is reported.
    """
    event = AcceptBookingEvent.model_validate(data)
    ensure_holds_identity(connection, taxi_key(event.taxi_id))
    estimated_arrival = await _estimate_arrival(hub, event)

    booking = await hub.store.create_booking(
        passenger_id=event.passenger_id,
        taxi_id=event.taxi_id,
        status="accepted",
        estimated_arrival=estimated_arrival,
        pickup_lat=event.pickup_lat,
        pickup_lng=event.pickup_lng,
        destination_lat=event.destination_lat,
        destination_lng=event.destination_lng,
    )

    try:
        if not await hub.store.set_taxi_availability(event.taxi_id, False):
            raise NotFound("Taxi not found")
    except (NotFound, PersistenceFailure):
        await _compensate_booking(hub, booking["id"])
        raise

    await hub.manager.send_to_identity(
        event.passenger_id,
        {
            "event_type": "booking_accepted",
            "bookingId": booking["id"],
            "taxiId": event.taxi_id,
            "estimatedArrival": estimated_arrival,
        },
    )

    logger.info(f"Booking {booking['id']} accepted by taxi {event.taxi_id}")
    return {
        "event_type": "booking_accepted_confirmation",
        "bookingId": booking["id"],
        "taxiId": event.taxi_id,
        "passengerId": event.passenger_id,
    }


async def _compensate_booking(hub: RealtimeHub, booking_id: str) -> None:
    try:
        await hub.store.delete_booking(booking_id)
        logger.warning(f"Booking {booking_id} rolled back after taxi update failure")
    except PersistenceFailure as e:
        logger.error(f"Booking {booking_id} left behind, rollback failed: {e.message}")


async def handle_update_booking_status(
    hub: RealtimeHub, connection: ClientConnection, data: dict
) -> Optional[dict]:
    """Handle update_booking_status event - finishing a ride frees the taxi."""
    event = BookingStatusEvent.model_validate(data)

    booking = await hub.store.get_booking(event.booking_id)
    if not booking:
        raise NotFound("Booking not found")

    allowed = {taxi_key(booking["taxi_id"]), booking["passenger_id"]}
    if not allowed & connection.identities:
        raise Unauthorized("Only the booking's driver or passenger can update it")

    booking = await hub.store.update_booking_status(event.booking_id, event.status)
    if not booking:
        raise NotFound("Booking not found")

    if event.status in RELEASING_STATUSES:
        await hub.store.set_taxi_availability(booking["taxi_id"], True)

    update = {
        "event_type": "booking_status_updated",
        "bookingId": booking["id"],
        "taxiId": booking["taxi_id"],
        "status": booking["status"],
    }
    await hub.manager.send_to_identity(booking["passenger_id"], update)
    await hub.manager.send_to_identity(taxi_key(booking["taxi_id"]), update)
    return None

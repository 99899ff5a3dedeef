"""
MongoEngine-backed durable store
Runs the synchronous document operations in the threadpool so the event loop
keeps serving other connections while a write is in flight.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from medride.exceptions import PersistenceFailure
from medride.models.chat_model import Chat, Message
from medride.models.notification_model import Notification
from medride.models.taxi_model import Booking, Taxi, TaxiLocation
from medride.models.user_model import Doctor, User
from medride.store.base import RealtimeStore
from medride.utils.geo import nearest_within

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MongoRealtimeStore(RealtimeStore):
    async def _run(self, operation: str, fn, *args, **kwargs):
        try:
            return await run_in_threadpool(fn, *args, **kwargs)
        except Exception as e:
            logger.error(f"Store operation '{operation}' failed: {type(e).__name__}: {str(e)}")
            raise PersistenceFailure(f"Failed to {operation.replace('_', ' ')}") from e

    # -------------------------------------------------------------------------
    # Chats
    # -------------------------------------------------------------------------

    async def get_chat(self, chat_id: str) -> Optional[Dict[str, Any]]:
        def _get():
            chat = Chat.objects(id=chat_id).first()
            if not chat:
                return None
            return {
                "id": chat.id,
                "status": chat.status,
                "updated_at": chat.updated_at,
                **chat.parties(),
            }

        return await self._run("get_chat", _get)

    async def insert_message(
        self,
        chat_id: str,
        sender_id: str,
        content: str,
        attachments: List[Dict[str, Any]],
        message_type: str,
    ) -> Dict[str, Any]:
        def _insert():
            message = Message(
                chat_id=chat_id,
                sender_id=sender_id,
                content=content,
                attachments=attachments,
                message_type=message_type,
            )
            message.save()
            return message.to_dict()

        return await self._run("insert_message", _insert)

    async def touch_chat(self, chat_id: str) -> None:
        await self._run(
            "touch_chat", lambda: Chat.objects(id=chat_id).update(set__updated_at=_utcnow())
        )

    async def get_user_display(self, user_id: str) -> Dict[str, Any]:
        def _get():
            user = User.objects(id=user_id).only("first_name", "last_name").first()
            if not user:
                return {"sender_first_name": None, "sender_last_name": None}
            return user.display_fields()

        return await self._run("get_user_display", _get)

    async def mark_messages_read(self, chat_id: str, reader_id: str) -> int:
        return await self._run(
            "mark_messages_read",
            lambda: Message.objects(
                chat_id=chat_id, sender_id__ne=reader_id, read_flag=False
            ).update(set__read_flag=True),
        )

    async def set_doctor_availability(self, doctor_id: str, is_available: bool) -> bool:
        updated = await self._run(
            "set_doctor_availability",
            lambda: Doctor.objects(user_id=doctor_id).update(
                set__is_available=is_available, set__updated_at=_utcnow()
            ),
        )
        return updated > 0

    # -------------------------------------------------------------------------
    # Taxis and bookings
    # -------------------------------------------------------------------------

    async def get_taxi(self, taxi_id: str) -> Optional[Dict[str, Any]]:
        def _get():
            taxi = Taxi.objects(id=taxi_id).first()
            if not taxi:
                return None
            return {
                "id": taxi.id,
                "driver_id": taxi.driver_id,
                "is_available": taxi.is_available,
                "current_lat": taxi.current_lat,
                "current_lng": taxi.current_lng,
            }

        return await self._run("get_taxi", _get)

    async def update_taxi_location(
        self, taxi_id: str, lat: float, lng: float, timestamp: datetime
    ) -> bool:
        updated = await self._run(
            "update_taxi_location",
            lambda: Taxi.objects(id=taxi_id).update(
                set__current_lat=lat,
                set__current_lng=lng,
                set__last_location_update=timestamp,
            ),
        )
        return updated > 0

    async def append_taxi_location(
        self, taxi_id: str, lat: float, lng: float, timestamp: datetime
    ) -> None:
        await self._run(
            "append_taxi_location",
            lambda: TaxiLocation(taxi_id=taxi_id, lat=lat, lng=lng, timestamp=timestamp).save(),
        )

    async def find_available_taxis(
        self, lat: float, lng: float, radius_km: float, limit: int
    ) -> List[Dict[str, Any]]:
        def _find():
            taxis = Taxi.objects(
                is_available=True, current_lat__ne=None, current_lng__ne=None
            )
            ranked = nearest_within(
                (lat, lng),
                ((taxi, taxi.current_lat, taxi.current_lng) for taxi in taxis),
                radius_km,
                limit,
            )
            drivers = {
                user.id: user
                for user in User.objects(id__in=[taxi.driver_id for taxi, _ in ranked])
            }

            rows = []
            for taxi, distance in ranked:
                driver = drivers.get(taxi.driver_id)
                rows.append(
                    {
                        "id": taxi.id,
                        "driver_id": taxi.driver_id,
                        "vehicle_type": taxi.vehicle_type,
                        "plate_number": taxi.plate_number,
                        "current_lat": taxi.current_lat,
                        "current_lng": taxi.current_lng,
                        "first_name": driver.first_name if driver else None,
                        "last_name": driver.last_name if driver else None,
                        "distance": distance,
                    }
                )
            return rows

        return await self._run("find_available_taxis", _find)

    async def set_taxi_availability(self, taxi_id: str, is_available: bool) -> bool:
        updated = await self._run(
            "set_taxi_availability",
            lambda: Taxi.objects(id=taxi_id).update(set__is_available=is_available),
        )
        return updated > 0

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
        def _create():
            booking = Booking(
                passenger_id=passenger_id,
                taxi_id=taxi_id,
                status=status,
                estimated_arrival=estimated_arrival,
                pickup_lat=pickup_lat,
                pickup_lng=pickup_lng,
                destination_lat=destination_lat,
                destination_lng=destination_lng,
            )
            booking.save()
            return booking.to_dict()

        return await self._run("create_booking", _create)

    async def get_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        def _get():
            booking = Booking.objects(id=booking_id).first()
            return booking.to_dict() if booking else None

        return await self._run("get_booking", _get)

    async def delete_booking(self, booking_id: str) -> None:
        await self._run("delete_booking", lambda: Booking.objects(id=booking_id).delete())

    async def update_booking_status(
        self, booking_id: str, status: str
    ) -> Optional[Dict[str, Any]]:
        def _update():
            booking = Booking.objects(id=booking_id).first()
            if not booking:
                return None
            booking.status = status
            booking.updated_at = _utcnow()
            booking.save()
            return booking.to_dict()

        return await self._run("update_booking_status", _update)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def create_notification(
        self,
        user_id: str,
        notification_type: str,
        title: Optional[str] = None,
        body: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        def _create():
            notification = Notification(
                user_id=user_id,
                notification_type=notification_type,
                title=title,
                body=body,
                data=data or {},
            )
            notification.save()
            return notification.to_dict()

        return await self._run("create_notification", _create)

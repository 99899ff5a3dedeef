"""
Realtime Routes
Operator statistics and the push entry points used by REST collaborators
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from medride.sockets.push import notify_user, push_appointment_update
from medride.utils.jwt_utils import require_admin, require_service

router = APIRouter()
logger = logging.getLogger(__name__)


class NotificationRequest(BaseModel):
    notification_type: str = Field(..., min_length=1, max_length=50)
    title: Optional[str] = Field(default=None, max_length=200)
    body: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class AppointmentUpdate(BaseModel):
    appointment: Dict[str, Any]


@router.get("/stats")
async def get_realtime_stats(request: Request, identity: dict = Depends(require_admin)):
    """Get WebSocket statistics for monitoring."""
    stats = request.app.state.hub.manager.get_stats()
    return {"success": True, "data": stats}


@router.post("/users/{user_id}/notifications", status_code=status.HTTP_201_CREATED)
async def create_user_notification(
    user_id: str,
    payload: NotificationRequest,
    request: Request,
    identity: dict = Depends(require_service),
):
    """Store a notification for user_id and push it if the user is connected."""
    result = await notify_user(
        request.app.state.hub,
        user_id,
        payload.notification_type,
        title=payload.title,
        body=payload.body,
        data=payload.data,
    )
    return {
        "success": True,
        "notification": result["notification"],
        "delivered": result["delivered"],
    }


@router.post("/users/{user_id}/appointments")
async def relay_appointment_update(
    user_id: str,
    payload: AppointmentUpdate,
    request: Request,
    identity: dict = Depends(require_service),
):
    """Push an appointment_updated event to user_id."""
    delivered = await push_appointment_update(
        request.app.state.hub, user_id, payload.appointment
    )
    return {"success": True, "delivered": delivered}

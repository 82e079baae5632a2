from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from rolevault.auth.dependencies import get_principal
from rolevault.auth.models import Principal
from rolevault.services.notification_service import NotificationService
from rolevault.utils.response import success

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _service(request: Request) -> NotificationService:
    return request.app.state.notification_service


@router.get("")
async def unread_notifications(
    request: Request,
    limit: int = Query(default=5, ge=1, le=50),
    principal: Principal = Depends(get_principal),
) -> dict:
    return success(await _service(request).list_unread(principal.user_id, limit=limit))


@router.patch("/{notification_id}/read")
async def mark_notification_read(
    request: Request,
    notification_id: str,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).mark_read(notification_id, principal.user_id)
    return success(data, message="Notification marked as read")

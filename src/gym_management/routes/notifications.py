"""Notification and statistics API Routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends

from gym_management.routes.dependencies import get_notification_service, get_statistics_service, raise_for_result

router = APIRouter(tags=["Notifications"])


@router.get("/notifications/user/{user_id}", summary="List a user's notifications")
async def list_notifications(
    user_id: str,
    unread_only: bool = False,
    limit: int = 20,
    skip: int = 0,
    service=Depends(get_notification_service),
):
    return await service.list_for_user(user_id, unread_only=unread_only, limit=limit, skip=skip)


@router.patch("/notifications/{notification_id}/read", summary="Mark a notification as read")
async def mark_read(notification_id: str, service=Depends(get_notification_service)):
    return {"message": raise_for_result(await service.mark_as_read(notification_id)).message}


@router.get("/statistics/payments", tags=["Statistics"], summary="Revenue overview and breakdown by payment type")
async def payment_statistics(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service=Depends(get_statistics_service),
):
    return {
        "overview": await service.payment_overview(start, end),
        "by_type": await service.revenue_by_payment_type(start, end),
    }

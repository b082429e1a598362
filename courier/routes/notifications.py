"""Notification routes: enqueue, inspect and retry deliveries."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from courier.database import get_db
from courier.dependencies import get_notification_service
from courier.handlers.notification_service import NotificationService
from courier.models.enums import NotificationChannel, NotificationStatus
from courier.models.notification_log import NotificationLog
from courier.schemas.notifications import (
    EnqueueResult,
    NotificationLogOut,
    NotificationPage,
    RetryFailedRequest,
    RetryResponse,
    SendNotificationRequest,
)

router = APIRouter(tags=["notifications"])


@router.post("/notifications", response_model=EnqueueResult)
async def enqueue_notification(
    request: SendNotificationRequest,
    service: NotificationService = Depends(get_notification_service),
) -> EnqueueResult:
    """Enqueue one notification. Idempotent on its identity fields."""
    return await service.send(request)


@router.get("/notifications", response_model=NotificationPage)
async def list_notifications(
    status: Optional[NotificationStatus] = None,
    channel: Optional[NotificationChannel] = None,
    recipient_id: Optional[str] = None,
    event_name: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> NotificationPage:
    filters = []
    if status is not None:
        filters.append(NotificationLog.status == status.value)
    if channel is not None:
        filters.append(NotificationLog.channel == channel.value)
    if recipient_id:
        filters.append(NotificationLog.recipient_id == recipient_id)
    if event_name:
        filters.append(NotificationLog.event_name == event_name)

    total = await db.scalar(select(func.count()).select_from(NotificationLog).where(*filters))
    result = await db.execute(
        select(NotificationLog)
        .where(*filters)
        .order_by(NotificationLog.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [NotificationLogOut.model_validate(row) for row in result.scalars().all()]
    return NotificationPage(items=items, total=total or 0, page=page, limit=limit)


@router.get("/notifications/{notification_id}", response_model=NotificationLogOut)
async def get_notification(
    notification_id: str,
    db: AsyncSession = Depends(get_db),
) -> NotificationLogOut:
    log = await db.get(NotificationLog, notification_id)
    if log is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationLogOut.model_validate(log)


@router.post("/notifications/retry-failed", response_model=RetryResponse)
async def retry_failed_notifications(
    body: RetryFailedRequest,
    service: NotificationService = Depends(get_notification_service),
) -> RetryResponse:
    count = await service.requeue_failed(body.limit)
    return RetryResponse(requeued=count > 0, requeued_count=count)


@router.post("/notifications/{notification_id}/retry", response_model=RetryResponse)
async def retry_notification(
    notification_id: str,
    service: NotificationService = Depends(get_notification_service),
) -> RetryResponse:
    if not await service.requeue(notification_id):
        raise HTTPException(
            status_code=409,
            detail="Cannot retry: notification not found, already SENT or SKIPPED",
        )
    return RetryResponse(id=notification_id, requeued=True)



"""Enqueue through delivery with the in-process queue."""

from unittest.mock import AsyncMock

from courier.database import async_session
from courier.handlers.delivery import DeliveryWorker
from courier.handlers.notification_service import NotificationService
from courier.models.enums import NotificationChannel, NotificationStatus
from courier.models.notification_log import NotificationLog
from courier.queue import InlineDeliveryQueue
from courier.schemas.notifications import SendNotificationRequest, SendResult
from courier.templates.engine import NotificationTemplate


class RecordingProvider:
    channel = NotificationChannel.TELEGRAM

    def __init__(self) -> None:
        self.send = AsyncMock(return_value=SendResult(success=True, provider_message_id="9001"))


async def test_booking_created_is_delivered_once(template_resolver, preference_resolver):
    template_resolver.engine.register(
        NotificationTemplate(key="t1", body="Your trip to {{city}} is booked")
    )
    provider = RecordingProvider()
    worker = DeliveryWorker(async_session, template_resolver, [provider])
    queue = InlineDeliveryQueue(worker, concurrency=1)
    service = NotificationService(async_session, template_resolver, preference_resolver, queue)
    request = SendNotificationRequest(
        event_name="booking.created",
        recipient_id="user-1",
        recipient_chat_id=1001,
        channel=NotificationChannel.TELEGRAM,
        template_key="t1",
        variables={"city": "Yerevan"},
    )

    first = await service.send(request)
    second = await service.send(request)
    await queue.drain()

    assert second.deduplicated is True
    assert second.notification_id == first.notification_id
    provider.send.assert_awaited_once_with(1001, "Your trip to Yerevan is booked", None)

    async with async_session() as db:
        log = await db.get(NotificationLog, first.notification_id)
    assert log.status == NotificationStatus.SENT
    assert log.attempt_count == 1
    assert log.provider_message_id == "9001"
    assert log.template_version is None
    assert log.template_snapshot == "Your trip to Yerevan is booked"

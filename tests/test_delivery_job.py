"""Tests for the arq job entry point and queue adapters."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
from arq import Retry

from courier.constants import DELIVERY_JOB_NAME, MAX_DELIVERY_ATTEMPTS
from courier.database import async_session
from courier.handlers.delivery import DeliveryOutcome, DeliveryWorker, FailureKind, OutcomeKind
from courier.models.enums import NotificationChannel, NotificationStatus
from courier.models.notification_log import NotificationLog
from courier.queue import ArqDeliveryQueue, InlineDeliveryQueue, delivery_job_id
from courier.workers.delivery_worker import WorkerSettings, deliver_notification


async def test_transient_outcome_raises_arq_retry():
    worker = AsyncMock()
    worker.execute.return_value = DeliveryOutcome.failed_transient(30, "Too Many Requests")
    ctx = {"delivery_worker": worker, "job_id": "notif-1", "job_try": 1}

    with pytest.raises(Retry) as exc_info:
        await deliver_notification(ctx, {"notification_id": "1"})

    assert exc_info.value.defer_score == 30_000
    worker.execute.assert_awaited_once_with("1")


async def test_final_outcomes_complete_the_job():
    worker = AsyncMock()
    worker.execute.return_value = DeliveryOutcome.failed_permanently(
        FailureKind.CHANNEL_PERMANENT, "Permanent: chat not found"
    )

    result = await deliver_notification({"delivery_worker": worker}, {"notification_id": "1"})

    assert result == OutcomeKind.FAILED_PERMANENTLY.value


def test_worker_settings_allow_guard_run():
    assert WorkerSettings.max_tries == MAX_DELIVERY_ATTEMPTS + 1
    assert deliver_notification in WorkerSettings.functions


async def test_arq_queue_enqueues_with_job_id():
    redis = AsyncMock()
    queue = ArqDeliveryQueue(redis, "notification-delivery")

    await queue.submit("abc", job_id=delivery_job_id("abc"))

    redis.enqueue_job.assert_awaited_once_with(
        DELIVERY_JOB_NAME,
        {"notification_id": "abc"},
        _job_id="notif-abc",
        _queue_name="notification-delivery",
    )


async def test_inline_queue_retries_transient_outcomes():
    worker = AsyncMock()
    worker.execute.side_effect = [
        DeliveryOutcome.failed_transient(0, "timeout"),
        DeliveryOutcome.sent(),
    ]
    queue = InlineDeliveryQueue(worker, concurrency=2)

    await queue.submit("abc", job_id="notif-abc")
    await queue.drain()

    assert worker.execute.await_count == 2


async def test_inline_queue_coalesces_running_job_ids():
    release = asyncio.Event()

    async def slow_execute(notification_id):
        await release.wait()
        return DeliveryOutcome.sent()

    worker = AsyncMock()
    worker.execute.side_effect = slow_execute
    queue = InlineDeliveryQueue(worker, concurrency=2)

    await queue.submit("abc", job_id="notif-abc")
    await queue.submit("abc", job_id="notif-abc")
    release.set()
    await queue.drain()

    assert worker.execute.await_count == 1


class RaisingProvider:
    channel = NotificationChannel.TELEGRAM

    def __init__(self, error: Exception) -> None:
        self.send = AsyncMock(side_effect=error)


async def test_unexpected_error_is_retried_not_dropped(template_resolver):
    async with async_session() as db:
        log = NotificationLog(
            idempotency_key="c" * 64,
            event_name="booking.created",
            recipient_id="user-1",
            recipient_chat_id=1001,
            channel="TELEGRAM",
            template_key="booking.created.traveler",
            payload={"destination": "Yerevan"},
            status=NotificationStatus.PENDING.value,
            attempt_count=0,
        )
        db.add(log)
        await db.commit()
        notification_id = log.id
    worker = DeliveryWorker(
        async_session, template_resolver, [RaisingProvider(httpx.ReadTimeout("read timed out"))]
    )
    ctx = {"delivery_worker": worker, "job_id": f"notif-{notification_id}", "job_try": 2}

    with pytest.raises(Retry) as exc_info:
        await deliver_notification(ctx, {"notification_id": notification_id})

    # Second-try backoff is 120s +/- 20%.
    assert 96_000 <= exc_info.value.defer_score <= 144_000
    async with async_session() as db:
        stored = await db.get(NotificationLog, notification_id)
    assert stored.attempt_count == 1
    assert stored.status == NotificationStatus.PENDING


async def test_inline_queue_retries_after_crash(monkeypatch):
    monkeypatch.setattr("courier.queue.compute_retry_delay", lambda attempt: 0)
    worker = AsyncMock()
    worker.execute.side_effect = [RuntimeError("database is locked"), DeliveryOutcome.sent()]
    queue = InlineDeliveryQueue(worker, concurrency=1)

    await queue.submit("abc", job_id="notif-abc")
    await queue.drain()

    assert worker.execute.await_count == 2

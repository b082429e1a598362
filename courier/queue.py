"""Delivery job submission: arq/Redis in production, in-process for local runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from courier.config import settings
from courier.constants import DELIVERY_JOB_NAME, MAX_DELIVERY_ATTEMPTS
from courier.handlers.delivery import DeliveryWorker, OutcomeKind, compute_retry_delay
from courier.schemas.notifications import DeliveryJobPayload

logger = logging.getLogger(__name__)


def delivery_job_id(notification_id: str) -> str:
    return f"notif-{notification_id}"


def retry_job_id(notification_id: str, stamp_ms: int) -> str:
    return f"notif-retry-{notification_id}-{stamp_ms}"


class DeliveryQueue(Protocol):
    async def submit(self, notification_id: str, *, job_id: str) -> None:
        ...

    async def close(self) -> None:
        ...


class ArqDeliveryQueue:
    """Submit delivery jobs to an arq queue.

    arq refuses a second job with an id that is queued or still has a stored
    result, so re-submitting ``notif-<id>`` is a no-op.
    """

    def __init__(self, redis: ArqRedis, queue_name: str | None = None) -> None:
        self._redis = redis
        self._queue_name = queue_name or settings.queue_name

    async def submit(self, notification_id: str, *, job_id: str) -> None:
        payload = DeliveryJobPayload(notification_id=notification_id)
        job = await self._redis.enqueue_job(
            DELIVERY_JOB_NAME,
            payload.model_dump(),
            _job_id=job_id,
            _queue_name=self._queue_name,
        )
        if job is None:
            logger.info("Delivery job %s already queued — coalesced", job_id)

    async def close(self) -> None:
        await self._redis.aclose()


class InlineDeliveryQueue:
    """Run delivery jobs as background tasks of the current event loop.

    Concurrency is bounded by a semaphore and transient failures are retried
    after the delay the worker asked for, mirroring the arq worker settings.
    Nothing survives a process restart; use arq for durability.
    """

    def __init__(
        self,
        worker: DeliveryWorker,
        concurrency: int | None = None,
        max_tries: int = MAX_DELIVERY_ATTEMPTS + 1,
    ) -> None:
        self._worker = worker
        self._semaphore = asyncio.Semaphore(concurrency or settings.worker_concurrency)
        self._max_tries = max_tries
        self._active_job_ids: set[str] = set()
        self._tasks: set[asyncio.Task] = set()

    async def submit(self, notification_id: str, *, job_id: str) -> None:
        if job_id in self._active_job_ids:
            logger.info("Delivery job %s already running — coalesced", job_id)
            return
        self._active_job_ids.add(job_id)
        task = asyncio.create_task(self._run(notification_id, job_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, notification_id: str, job_id: str) -> None:
        try:
            for job_try in range(1, self._max_tries + 1):
                try:
                    async with self._semaphore:
                        outcome = await self._worker.execute(notification_id)
                except Exception:
                    delay = compute_retry_delay(job_try)
                    logger.exception(
                        "Inline delivery job %s try %d crashed, retrying in %ss", job_id, job_try, delay
                    )
                else:
                    if outcome.kind is not OutcomeKind.FAILED_TRANSIENT:
                        return
                    delay = outcome.retry_after or 0
                    logger.info(
                        "Job %s try %d failed transiently, retrying in %ss", job_id, job_try, delay
                    )
                if job_try < self._max_tries:
                    await asyncio.sleep(delay)
            logger.error("Inline delivery job %s gave up after %d tries", job_id, self._max_tries)
        finally:
            self._active_job_ids.discard(job_id)

    async def drain(self) -> None:
        """Wait for every submitted job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)


async def create_arq_queue() -> ArqDeliveryQueue:
    redis = await create_pool(
        RedisSettings.from_dsn(settings.redis_url),
        default_queue_name=settings.queue_name,
    )
    return ArqDeliveryQueue(redis, settings.queue_name)

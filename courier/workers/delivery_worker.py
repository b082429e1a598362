"""arq worker that executes notification delivery jobs.

Run with ``arq courier.workers.delivery_worker.WorkerSettings``.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from arq import Retry
from arq.connections import RedisSettings

from courier.config import settings
from courier.constants import MAX_DELIVERY_ATTEMPTS
from courier.database import close_db
from courier.dependencies import (
    build_channel_providers,
    build_delivery_worker,
    build_template_resolver,
)
from courier.handlers.delivery import OutcomeKind, compute_retry_delay
from courier.schemas.notifications import DeliveryJobPayload

logger = logging.getLogger(__name__)


async def deliver_notification(ctx, payload: dict) -> str:
    # Translate the worker's transient outcome into arq's deferred retry.
    job = DeliveryJobPayload.model_validate(payload)
    worker = ctx["delivery_worker"]
    job_try = ctx.get("job_try") or 1
    try:
        outcome = await worker.execute(job.notification_id)
    except Exception:
        # Bounded by max_tries and the max-attempts guard.
        delay = compute_retry_delay(job_try)
        logger.exception(
            "Job %s try %s crashed for notification %s, retrying in %ss",
            ctx.get("job_id"),
            job_try,
            job.notification_id,
            delay,
        )
        raise Retry(defer=timedelta(seconds=delay)) from None

    if outcome.kind is OutcomeKind.FAILED_TRANSIENT:
        logger.info(
            "Job %s try %s: retrying notification %s in %ss",
            ctx.get("job_id"),
            job_try,
            job.notification_id,
            outcome.retry_after,
        )
        raise Retry(defer=timedelta(seconds=outcome.retry_after or 0))
    return outcome.kind.value


async def _startup(ctx) -> None:
    providers = build_channel_providers()
    ctx["providers"] = providers
    ctx["delivery_worker"] = build_delivery_worker(build_template_resolver(), providers)
    logger.info(
        "Notification worker started — queue=%s, concurrency=%d",
        settings.queue_name,
        settings.worker_concurrency,
    )


async def _shutdown(ctx) -> None:
    for provider in ctx.get("providers", []):
        close = getattr(provider, "close", None)
        if close is not None:
            await close()
    await close_db()


class WorkerSettings:
    # Class attributes are read by the arq CLI.
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.queue_name
    max_jobs = settings.worker_concurrency
    # One extra try lets the max-attempts guard close out the row.
    max_tries = MAX_DELIVERY_ATTEMPTS + 1
    functions = [deliver_notification]
    on_startup = _startup
    on_shutdown = _shutdown

"""Executes one delivery attempt for a queued notification.

The per-job flow never raises for delivery outcomes. Every outcome is
persisted on the ``NotificationLog`` row and reported as a
``DeliveryOutcome``; only ``FAILED_TRANSIENT`` asks the caller to run the job
again after ``retry_after`` seconds.
"""

from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from courier.channels.base import ChannelProvider
from courier.constants import (
    BACKOFF_DELAYS_SEC,
    JITTER_RATIO,
    MAX_DELIVERY_ATTEMPTS,
    MIN_RETRY_DELAY_SEC,
)
from courier.errors import TemplateError
from courier.models.enums import NotificationChannel, NotificationStatus
from courier.models.notification_log import NotificationLog
from courier.templates.resolver import TemplateResolver

logger = logging.getLogger(__name__)


class OutcomeKind(str, enum.Enum):
    SENT = "sent"
    FAILED_PERMANENTLY = "failed_permanently"
    FAILED_TRANSIENT = "failed_transient"
    # Row missing, already SENT, or SKIPPED: nothing to do.
    IGNORED = "ignored"


class FailureKind(str, enum.Enum):
    TEMPLATE_NOT_FOUND = "template_not_found"
    NO_CHANNEL_PROVIDER = "no_channel_provider"
    CHANNEL_PERMANENT = "channel_permanent"
    CHANNEL_TRANSIENT = "channel_transient"
    MAX_ATTEMPTS_EXCEEDED = "max_attempts_exceeded"


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    kind: OutcomeKind
    failure: FailureKind | None = None
    retry_after: int | None = None
    detail: str | None = None

    @classmethod
    def sent(cls) -> DeliveryOutcome:
        return cls(OutcomeKind.SENT)

    @classmethod
    def ignored(cls, detail: str) -> DeliveryOutcome:
        return cls(OutcomeKind.IGNORED, detail=detail)

    @classmethod
    def failed_permanently(cls, failure: FailureKind, detail: str) -> DeliveryOutcome:
        return cls(OutcomeKind.FAILED_PERMANENTLY, failure=failure, detail=detail)

    @classmethod
    def failed_transient(cls, retry_after: int, detail: str) -> DeliveryOutcome:
        return cls(
            OutcomeKind.FAILED_TRANSIENT,
            failure=FailureKind.CHANNEL_TRANSIENT,
            retry_after=retry_after,
            detail=detail,
        )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def compute_retry_delay(attempt: int, rng: random.Random | None = None) -> int:
    """Backoff for a 1-based attempt number with +/-20% jitter, never below 1s."""
    rng = rng or random
    index = min(max(attempt - 1, 0), len(BACKOFF_DELAYS_SEC) - 1)
    base = BACKOFF_DELAYS_SEC[index]
    jitter = base * JITTER_RATIO * rng.uniform(-1.0, 1.0)
    return max(MIN_RETRY_DELAY_SEC, round(base + jitter))


class DeliveryWorker:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        template_resolver: TemplateResolver,
        providers: Iterable[ChannelProvider],
        *,
        clock: Callable[[], datetime] = _utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._templates = template_resolver
        self._clock = clock
        self._rng = rng
        self._providers: dict[NotificationChannel, ChannelProvider] = {}
        for provider in providers:
            if provider.channel in self._providers:
                raise ValueError(f"Duplicate provider for channel {provider.channel.value}")
            self._providers[provider.channel] = provider

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._providers)

    async def execute(self, notification_id: str) -> DeliveryOutcome:
        async with self._session_factory() as db:
            return await self._execute(db, notification_id)

    async def _execute(self, db: AsyncSession, notification_id: str) -> DeliveryOutcome:
        log = await db.get(NotificationLog, notification_id)
        if log is None:
            logger.warning("Notification %s not found, skipping", notification_id)
            return DeliveryOutcome.ignored("not found")

        if log.status == NotificationStatus.SENT:
            logger.debug("Notification %s already SENT, skipping", notification_id)
            return DeliveryOutcome.ignored("already sent")
        if log.status == NotificationStatus.SKIPPED:
            logger.debug("Notification %s was SKIPPED, not delivering", notification_id)
            return DeliveryOutcome.ignored("skipped")

        if log.attempt_count >= MAX_DELIVERY_ATTEMPTS:
            logger.warning(
                "Notification %s exceeded max attempts (%d), marking permanently FAILED",
                notification_id,
                MAX_DELIVERY_ATTEMPTS,
            )
            message = f"Exceeded max delivery attempts ({MAX_DELIVERY_ATTEMPTS})"
            await self._mark_failed(db, log, message)
            return DeliveryOutcome.failed_permanently(FailureKind.MAX_ATTEMPTS_EXCEEDED, message)

        # Persist the attempt before rendering or sending so it survives a crash mid-send.
        attempt = log.attempt_count + 1
        log.attempt_count = attempt
        log.last_attempt_at = self._clock()
        await db.commit()

        try:
            resolved = await self._templates.resolve(
                db, log.template_key, log.channel, log.payload or {}
            )
        except TemplateError as exc:
            message = f"Template render failed: {exc}"
            logger.error("Template render failed for %s: %s", notification_id, exc)
            await self._mark_failed(db, log, message)
            return DeliveryOutcome.failed_permanently(FailureKind.TEMPLATE_NOT_FOUND, message)

        provider = self._providers.get(NotificationChannel(log.channel))
        if provider is None:
            message = f'No provider for channel "{log.channel}"'
            logger.error("%s (notification %s)", message, notification_id)
            await self._mark_failed(db, log, message)
            return DeliveryOutcome.failed_permanently(FailureKind.NO_CHANNEL_PROVIDER, message)

        result = await provider.send(
            log.recipient_chat_id, resolved.rendered.text, resolved.rendered.buttons
        )
        logger.info(
            "notification_id=%s attempt=%d success=%s permanent=%s",
            notification_id,
            attempt,
            result.success,
            result.permanent,
        )

        if result.success:
            log.status = NotificationStatus.SENT.value
            log.sent_at = self._clock()
            log.provider_message_id = result.provider_message_id
            log.error_message = None
            log.next_retry_at = None
            await db.commit()
            return DeliveryOutcome.sent()

        if result.permanent:
            message = f"Permanent: {result.error_message}"
            await self._mark_failed(db, log, message)
            return DeliveryOutcome.failed_permanently(FailureKind.CHANNEL_PERMANENT, message)

        delay = compute_retry_delay(attempt, self._rng)
        message = result.error_message or "Unknown transient error"
        log.status = NotificationStatus.FAILED.value
        log.error_message = message
        log.next_retry_at = self._clock() + timedelta(seconds=delay)
        await db.commit()
        logger.info(
            "Transient failure for notification %s: %s. Retry in %ds",
            notification_id,
            message,
            delay,
        )
        return DeliveryOutcome.failed_transient(delay, message)

    async def _mark_failed(self, db: AsyncSession, log: NotificationLog, message: str) -> None:
        log.status = NotificationStatus.FAILED.value
        log.error_message = message
        # No further automatic retries.
        log.next_retry_at = None
        log.last_attempt_at = self._clock()
        await db.commit()

"""Enqueue-side coordinator for notifications.

Idempotent: identical identity fields map to one ``NotificationLog`` row and
at most one delivery job. Preference-aware: blocked notifications are
recorded as SKIPPED and never queued.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from courier.config import settings
from courier.errors import TemplateError
from courier.models.enums import NotificationChannel, NotificationStatus
from courier.models.notification_log import NotificationLog
from courier.preferences.resolver import PreferenceResolver
from courier.queue import DeliveryQueue, delivery_job_id, retry_job_id
from courier.schemas.notifications import (
    EnqueueResult,
    SendNotificationRequest,
    TemplateVariables,
)
from courier.templates.resolver import TemplateResolver

logger = logging.getLogger(__name__)


def compute_idempotency_key(
    event_name: str,
    recipient_id: str,
    channel: NotificationChannel | str,
    template_key: str,
    variables: TemplateVariables,
) -> str:
    """Stable sha256 over the identity fields of a notification."""
    identity = json.dumps(
        {
            "eventName": event_name,
            "recipientId": recipient_id,
            "channel": NotificationChannel(channel).value,
            "templateKey": template_key,
            "payload": variables,
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(identity.encode("utf-8")).hexdigest()


class NotificationService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        template_resolver: TemplateResolver,
        preference_resolver: PreferenceResolver,
        queue: DeliveryQueue,
        *,
        strict_template_check: bool | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._templates = template_resolver
        self._preferences = preference_resolver
        self._queue = queue
        self._strict_template_check = (
            settings.strict_template_check if strict_template_check is None else strict_template_check
        )

    async def send(self, request: SendNotificationRequest) -> EnqueueResult:
        """Enqueue a notification for asynchronous delivery.

        1. Return the existing row if the idempotency key is known (any status).
        2. Record a SKIPPED row if preferences block the channel.
        3. Snapshot the template, create a PENDING row, submit one job.
        """
        idem_key = compute_idempotency_key(
            request.event_name,
            request.recipient_id,
            request.channel,
            request.template_key,
            request.variables,
        )

        async with self._session_factory() as db:
            existing = await self._find_by_key(db, idem_key)
            if existing is not None:
                logger.debug(
                    "Deduplicated: idempotency_key=%s..., status=%s", idem_key[:12], existing.status
                )
                return EnqueueResult(notification_id=existing.id, deduplicated=True)

            decision = await self._preferences.is_channel_enabled(
                db,
                request.recipient_id,
                request.recipient_role,
                request.template_key,
                request.channel,
            )

            if not decision.enabled:
                log = self._new_log(request, idem_key, NotificationStatus.SKIPPED)
                log.skip_reason = decision.reason.value
                winner = await self._insert(db, log)
                if winner is not log:
                    return EnqueueResult(notification_id=winner.id, deduplicated=True)
                logger.info(
                    "Skipped: id=%s, template_key=%s, recipient_id=%s, reason=%s",
                    log.id,
                    request.template_key,
                    request.recipient_id,
                    decision.reason.value,
                )
                return EnqueueResult(notification_id=log.id, deduplicated=False, skipped=True)

            log = self._new_log(request, idem_key, NotificationStatus.PENDING)
            try:
                resolved = await self._templates.resolve(
                    db, request.template_key, request.channel, request.variables
                )
            except TemplateError:
                if self._strict_template_check:
                    raise
                # The delivery worker fails the row cleanly at send time.
                logger.warning(
                    'Template resolution failed at enqueue for "%s", will fail at delivery',
                    request.template_key,
                )
            else:
                log.template_version = resolved.version
                log.template_snapshot = resolved.snapshot
                log.policy_version = resolved.policy_version

            winner = await self._insert(db, log)
            if winner is not log:
                return EnqueueResult(notification_id=winner.id, deduplicated=True)

        await self._queue.submit(log.id, job_id=delivery_job_id(log.id))
        logger.info(
            "Enqueued: id=%s, template_key=%s, recipient_id=%s",
            log.id,
            request.template_key,
            request.recipient_id,
        )
        return EnqueueResult(notification_id=log.id, deduplicated=False)

    async def send_all(self, requests: list[SendNotificationRequest]) -> list[EnqueueResult]:
        """Enqueue each request independently; failures are logged and left out."""
        results: list[EnqueueResult] = []
        for request in requests:
            try:
                results.append(await self.send(request))
            except Exception:
                logger.exception(
                    "Failed to enqueue notification %s for %s",
                    request.template_key,
                    request.recipient_id,
                )
        return results

    async def requeue(self, notification_id: str) -> bool:
        """Reset a FAILED (or stuck PENDING) row and submit a fresh job."""
        async with self._session_factory() as db:
            log = await db.get(NotificationLog, notification_id)
            if log is None:
                return False
            if log.status in (NotificationStatus.SENT, NotificationStatus.SKIPPED):
                return False

            log.status = NotificationStatus.PENDING.value
            log.error_message = None
            log.next_retry_at = None
            await db.commit()

        await self._queue.submit(
            notification_id,
            job_id=retry_job_id(notification_id, int(time.time() * 1000)),
        )
        logger.info("Requeued: id=%s", notification_id)
        return True

    async def requeue_failed(self, limit: int = 100) -> int:
        """Requeue up to ``limit`` FAILED rows, oldest first. Returns the count."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(NotificationLog.id)
                .where(NotificationLog.status == NotificationStatus.FAILED.value)
                .order_by(NotificationLog.created_at.asc())
                .limit(limit)
            )
            failed_ids = list(result.scalars().all())

        count = 0
        for notification_id in failed_ids:
            if await self.requeue(notification_id):
                count += 1

        logger.info("Bulk requeued: %d/%d", count, len(failed_ids))
        return count

    @staticmethod
    def _new_log(
        request: SendNotificationRequest,
        idem_key: str,
        status: NotificationStatus,
    ) -> NotificationLog:
        return NotificationLog(
            idempotency_key=idem_key,
            event_name=request.event_name,
            recipient_id=request.recipient_id,
            recipient_chat_id=request.recipient_chat_id,
            channel=request.channel.value,
            template_key=request.template_key,
            payload=dict(request.variables),
            status=status.value,
            attempt_count=0,
        )

    @staticmethod
    async def _find_by_key(db: AsyncSession, idem_key: str) -> NotificationLog | None:
        result = await db.execute(
            select(NotificationLog).where(NotificationLog.idempotency_key == idem_key)
        )
        return result.scalar_one_or_none()

    async def _insert(self, db: AsyncSession, log: NotificationLog) -> NotificationLog:
        """Insert ``log``; if a concurrent enqueue won the unique key, return its row."""
        db.add(log)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            winner = await self._find_by_key(db, log.idempotency_key)
            if winner is None:
                raise
            logger.info(
                "Lost idempotency race for key %s..., using id=%s",
                log.idempotency_key[:12],
                winner.id,
            )
            return winner
        return log

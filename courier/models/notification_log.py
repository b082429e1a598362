"""One row per logical notification and its delivery attempts."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, JSON, String, Text

from courier.database import Base
from courier.models.enums import NotificationStatus


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    idempotency_key = Column(String(64), unique=True, nullable=False, index=True)

    event_name = Column(String, nullable=False)
    recipient_id = Column(String, nullable=False, index=True)
    recipient_chat_id = Column(BigInteger, nullable=False)
    channel = Column(String(32), nullable=False)
    template_key = Column(String, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)

    status = Column(String(16), nullable=False, default=NotificationStatus.PENDING.value)
    attempt_count = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    next_retry_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    provider_message_id = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    skip_reason = Column(String(64), nullable=True)

    # Captured at enqueue time for audit, even if the template changes later.
    template_version = Column(String, nullable=True)
    template_snapshot = Column(Text, nullable=True)
    policy_version = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False
    )

    __table_args__ = (
        Index("ix_notification_logs_status_created", "status", "created_at"),
    )

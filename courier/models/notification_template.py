"""Versioned, store-managed notification templates."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, JSON, String, Text, UniqueConstraint

from courier.database import Base


class NotificationTemplate(Base):
    __tablename__ = "notification_templates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    template_key = Column(String, nullable=False, index=True)
    version = Column(String, nullable=False)
    channel = Column(String(32), nullable=False)
    body = Column(Text, nullable=False)
    # [{"label": ..., "callbackData": ...}]
    buttons = Column(JSON, nullable=True)
    variables = Column(JSON, nullable=True)
    policy_version = Column(String, nullable=True)
    is_active = Column(Boolean, default=False, nullable=False)
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("template_key", "version", "channel", name="uq_template_key_version_channel"),
    )

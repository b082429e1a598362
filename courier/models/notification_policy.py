"""Policy and preference rows consulted before a notification is enqueued."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text, UniqueConstraint

from courier.database import Base
from courier.models.enums import NotificationCategory


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SystemNotificationPolicy(Base):
    __tablename__ = "system_notification_policies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    template_key = Column(String, unique=True, nullable=False, index=True)
    category = Column(String(32), nullable=False, default=NotificationCategory.TRANSACTIONAL.value)
    allowed_channels = Column(JSON, nullable=False, default=list)
    force_deliver = Column(Boolean, default=False, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False)


class UserNotificationPreference(Base):
    __tablename__ = "user_notification_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    category = Column(String(32), nullable=False)
    channel = Column(String(32), nullable=False)
    enabled = Column(Boolean, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "category", "channel", name="uq_user_pref_user_category_channel"),
    )


class RoleNotificationDefault(Base):
    __tablename__ = "role_notification_defaults"

    id = Column(Integer, primary_key=True, autoincrement=True)
    role = Column(String(32), nullable=False)
    category = Column(String(32), nullable=False)
    channel = Column(String(32), nullable=False)
    enabled = Column(Boolean, nullable=False)

    __table_args__ = (
        UniqueConstraint("role", "category", "channel", name="uq_role_default_role_category_channel"),
    )

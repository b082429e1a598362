"""Store-side management of delivery policies, role defaults and user preferences.

Every change to a policy or a role default clears the resolver caches so the
next decision reads the new rows. User preferences are never cached.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from courier.errors import InvalidPreferenceError
from courier.models.enums import NotificationCategory, UserRole
from courier.models.notification_policy import (
    RoleNotificationDefault,
    SystemNotificationPolicy,
    UserNotificationPreference,
)
from courier.preferences.resolver import PreferenceResolver
from courier.schemas.admin import PolicyUpdate, PreferenceItem, RoleDefaultUpdate

logger = logging.getLogger(__name__)


async def list_policies(
    db: AsyncSession,
    *,
    category: Optional[NotificationCategory] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[SystemNotificationPolicy], int]:
    filters = []
    if category is not None:
        filters.append(SystemNotificationPolicy.category == category.value)

    total = await db.scalar(
        select(func.count()).select_from(SystemNotificationPolicy).where(*filters)
    )
    result = await db.execute(
        select(SystemNotificationPolicy)
        .where(*filters)
        .order_by(SystemNotificationPolicy.template_key.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def upsert_policy(
    db: AsyncSession,
    resolver: PreferenceResolver,
    template_key: str,
    data: PolicyUpdate,
) -> SystemNotificationPolicy:
    result = await db.execute(
        select(SystemNotificationPolicy).where(SystemNotificationPolicy.template_key == template_key)
    )
    policy = result.scalar_one_or_none()
    if policy is None:
        policy = SystemNotificationPolicy(template_key=template_key)
        db.add(policy)

    policy.category = data.category.value
    policy.allowed_channels = [channel.value for channel in data.allowed_channels]
    policy.force_deliver = data.force_deliver
    if data.description is not None:
        policy.description = data.description
    await db.commit()
    await db.refresh(policy)

    resolver.clear_cache()
    logger.info(
        'Policy for "%s" set: category=%s, channels=%s, force_deliver=%s',
        template_key,
        policy.category,
        policy.allowed_channels,
        policy.force_deliver,
    )
    return policy


async def list_role_defaults(
    db: AsyncSession,
    *,
    role: Optional[UserRole] = None,
    category: Optional[NotificationCategory] = None,
) -> list[RoleNotificationDefault]:
    filters = []
    if role is not None:
        filters.append(RoleNotificationDefault.role == role.value)
    if category is not None:
        filters.append(RoleNotificationDefault.category == category.value)

    result = await db.execute(
        select(RoleNotificationDefault)
        .where(*filters)
        .order_by(
            RoleNotificationDefault.role.asc(),
            RoleNotificationDefault.category.asc(),
            RoleNotificationDefault.channel.asc(),
        )
    )
    return list(result.scalars().all())


async def upsert_role_default(
    db: AsyncSession,
    resolver: PreferenceResolver,
    data: RoleDefaultUpdate,
) -> RoleNotificationDefault:
    result = await db.execute(
        select(RoleNotificationDefault).where(
            RoleNotificationDefault.role == data.role.value,
            RoleNotificationDefault.category == data.category.value,
            RoleNotificationDefault.channel == data.channel.value,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = RoleNotificationDefault(
            role=data.role.value,
            category=data.category.value,
            channel=data.channel.value,
        )
        db.add(row)
    row.enabled = data.enabled
    await db.commit()

    resolver.clear_cache()
    logger.info(
        "Role default set: role=%s category=%s channel=%s enabled=%s",
        row.role,
        row.category,
        row.channel,
        row.enabled,
    )
    return row


async def get_user_preferences(db: AsyncSession, user_id: str) -> list[UserNotificationPreference]:
    result = await db.execute(
        select(UserNotificationPreference)
        .where(UserNotificationPreference.user_id == user_id)
        .order_by(UserNotificationPreference.category.asc(), UserNotificationPreference.channel.asc())
    )
    return list(result.scalars().all())


async def _allowed_channels_by_category(db: AsyncSession) -> dict[str, set[str]]:
    result = await db.execute(
        select(SystemNotificationPolicy.category, SystemNotificationPolicy.allowed_channels)
    )
    allowed: dict[str, set[str]] = {}
    for category, channels in result.all():
        allowed.setdefault(category, set()).update(channels or ())
    return allowed


async def update_user_preferences(
    db: AsyncSession,
    user_id: str,
    items: list[PreferenceItem],
) -> list[UserNotificationPreference]:
    """Upsert a user's preferences after checking them against the policies.

    Raises ``InvalidPreferenceError`` if every CRITICAL channel in the update
    is disabled, or a channel is outside what the category's policies allow.
    """
    critical = [item for item in items if item.category == NotificationCategory.CRITICAL]
    if critical and not any(item.enabled for item in critical):
        raise InvalidPreferenceError("Cannot disable all channels for CRITICAL notifications")

    allowed = await _allowed_channels_by_category(db)
    for item in items:
        channels = allowed.get(item.category.value)
        if channels and item.channel.value not in channels:
            raise InvalidPreferenceError(
                f"Channel {item.channel.value} is not allowed for {item.category.value} notifications"
            )

    existing = {
        (row.category, row.channel): row for row in await get_user_preferences(db, user_id)
    }
    rows = []
    for item in items:
        row = existing.get((item.category.value, item.channel.value))
        if row is None:
            row = UserNotificationPreference(
                user_id=user_id,
                category=item.category.value,
                channel=item.channel.value,
            )
            db.add(row)
            existing[(row.category, row.channel)] = row
        row.enabled = item.enabled
        rows.append(row)
    await db.commit()

    logger.info("Updated %d notification preferences for user %s", len(rows), user_id)
    return rows

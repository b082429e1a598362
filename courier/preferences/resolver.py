"""Decide whether a notification may be delivered on a channel.

Resolution order, first match wins:

1. System policy ``force_deliver`` -> always delivered.
2. Policy present but channel not in ``allowed_channels`` -> blocked.
3. User-level preference for (user, category, channel).
4. Role-level default for (role, category, channel).
5. System fallback: everything except MARKETING is enabled.

Policies and role defaults are cached with a TTL (misses included); user
preferences are always read from the store. Call ``clear_cache`` after
editing policy or role-default rows.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courier.constants import PREFERENCE_CACHE_TTL_SEC
from courier.models.enums import NotificationCategory, NotificationChannel, UserRole
from courier.models.notification_policy import (
    RoleNotificationDefault,
    SystemNotificationPolicy,
    UserNotificationPreference,
)
from courier.preferences.cache import MISSING, TTLCache

logger = logging.getLogger(__name__)


class PreferenceReason(str, enum.Enum):
    FORCE_DELIVER = "FORCE_DELIVER"
    CHANNEL_NOT_ALLOWED = "CHANNEL_NOT_ALLOWED"
    USER_PREF_ENABLED = "USER_PREF_ENABLED"
    USER_PREF_DISABLED = "USER_PREF_DISABLED"
    ROLE_DEFAULT_ENABLED = "ROLE_DEFAULT_ENABLED"
    ROLE_DEFAULT_DISABLED = "ROLE_DEFAULT_DISABLED"
    SYSTEM_FALLBACK_ENABLED = "SYSTEM_FALLBACK_ENABLED"
    SYSTEM_FALLBACK_DISABLED = "SYSTEM_FALLBACK_DISABLED"


@dataclass(frozen=True, slots=True)
class PreferenceDecision:
    enabled: bool
    reason: PreferenceReason


@dataclass(frozen=True, slots=True)
class PreferenceQuery:
    user_id: str
    role: UserRole
    template_key: str
    channel: NotificationChannel


@dataclass(frozen=True, slots=True)
class CachedPolicy:
    category: NotificationCategory
    allowed_channels: frozenset[str]
    force_deliver: bool


class PreferenceResolver:
    def __init__(
        self,
        policy_cache: TTLCache | None = None,
        role_default_cache: TTLCache | None = None,
    ) -> None:
        # An empty TTLCache is falsy, so compare against None.
        if policy_cache is None:
            policy_cache = TTLCache(PREFERENCE_CACHE_TTL_SEC)
        if role_default_cache is None:
            role_default_cache = TTLCache(PREFERENCE_CACHE_TTL_SEC)
        self._policy_cache = policy_cache
        self._role_default_cache = role_default_cache

    async def is_channel_enabled(
        self,
        db: AsyncSession,
        user_id: str,
        role: UserRole | str,
        template_key: str,
        channel: NotificationChannel | str,
    ) -> PreferenceDecision:
        role = UserRole(role)
        channel = NotificationChannel(channel)

        policy = await self._load_policy(db, template_key)
        if policy is not None and policy.force_deliver:
            return PreferenceDecision(True, PreferenceReason.FORCE_DELIVER)

        category = policy.category if policy is not None else NotificationCategory.TRANSACTIONAL

        if policy is not None and channel.value not in policy.allowed_channels:
            return PreferenceDecision(False, PreferenceReason.CHANNEL_NOT_ALLOWED)

        user_enabled = await self._load_user_preference(db, user_id, category, channel)
        if user_enabled is not None:
            return PreferenceDecision(
                user_enabled,
                PreferenceReason.USER_PREF_ENABLED if user_enabled else PreferenceReason.USER_PREF_DISABLED,
            )

        role_enabled = await self._load_role_default(db, role, category, channel)
        if role_enabled is not None:
            return PreferenceDecision(
                role_enabled,
                PreferenceReason.ROLE_DEFAULT_ENABLED if role_enabled else PreferenceReason.ROLE_DEFAULT_DISABLED,
            )

        fallback = category != NotificationCategory.MARKETING
        return PreferenceDecision(
            fallback,
            PreferenceReason.SYSTEM_FALLBACK_ENABLED if fallback else PreferenceReason.SYSTEM_FALLBACK_DISABLED,
        )

    async def batch_resolve(
        self,
        db: AsyncSession,
        queries: list[PreferenceQuery],
    ) -> list[PreferenceDecision]:
        """Resolve many queries, loading each distinct policy only once."""
        for template_key in dict.fromkeys(q.template_key for q in queries):
            await self._load_policy(db, template_key)

        return [
            await self.is_channel_enabled(db, q.user_id, q.role, q.template_key, q.channel)
            for q in queries
        ]

    def clear_cache(self) -> None:
        self._policy_cache.invalidate_all()
        self._role_default_cache.invalidate_all()
        logger.info("Preference caches cleared")

    async def _load_policy(self, db: AsyncSession, template_key: str) -> CachedPolicy | None:
        cached = self._policy_cache.get(template_key)
        if cached is not MISSING:
            return cached

        result = await db.execute(
            select(SystemNotificationPolicy).where(
                SystemNotificationPolicy.template_key == template_key
            )
        )
        row = result.scalar_one_or_none()
        policy = None
        if row is not None:
            policy = CachedPolicy(
                category=NotificationCategory(row.category),
                allowed_channels=frozenset(row.allowed_channels or ()),
                force_deliver=bool(row.force_deliver),
            )
        self._policy_cache.put(template_key, policy)
        return policy

    async def _load_user_preference(
        self,
        db: AsyncSession,
        user_id: str,
        category: NotificationCategory,
        channel: NotificationChannel,
    ) -> bool | None:
        result = await db.execute(
            select(UserNotificationPreference.enabled).where(
                UserNotificationPreference.user_id == user_id,
                UserNotificationPreference.category == category.value,
                UserNotificationPreference.channel == channel.value,
            )
        )
        return result.scalar_one_or_none()

    async def _load_role_default(
        self,
        db: AsyncSession,
        role: UserRole,
        category: NotificationCategory,
        channel: NotificationChannel,
    ) -> bool | None:
        cache_key = (role.value, category.value, channel.value)
        cached = self._role_default_cache.get(cache_key)
        if cached is not MISSING:
            return cached

        result = await db.execute(
            select(RoleNotificationDefault.enabled).where(
                RoleNotificationDefault.role == role.value,
                RoleNotificationDefault.category == category.value,
                RoleNotificationDefault.channel == channel.value,
            )
        )
        enabled = result.scalar_one_or_none()
        self._role_default_cache.put(cache_key, enabled)
        return enabled

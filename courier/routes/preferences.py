"""Preference routes: delivery policies, role defaults and user preferences."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courier.database import get_db
from courier.dependencies import get_preference_resolver
from courier.handlers import preference_admin
from courier.models.enums import NotificationCategory, UserRole
from courier.preferences.resolver import PreferenceResolver
from courier.schemas.admin import (
    PolicyOut,
    PolicyPage,
    PolicyUpdate,
    PreferenceItem,
    RoleDefaultUpdate,
    UserPreferencesUpdate,
)

router = APIRouter(tags=["preferences"])


@router.get("/notification-policies", response_model=PolicyPage)
async def list_policies(
    category: Optional[NotificationCategory] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> PolicyPage:
    rows, total = await preference_admin.list_policies(db, category=category, page=page, limit=limit)
    items = [PolicyOut.model_validate(row) for row in rows]
    return PolicyPage(items=items, total=total, page=page, limit=limit)


@router.put("/notification-policies/{template_key}", response_model=PolicyOut)
async def upsert_policy(
    template_key: str,
    body: PolicyUpdate,
    db: AsyncSession = Depends(get_db),
    resolver: PreferenceResolver = Depends(get_preference_resolver),
) -> PolicyOut:
    policy = await preference_admin.upsert_policy(db, resolver, template_key, body)
    return PolicyOut.model_validate(policy)


@router.get("/role-defaults", response_model=list[RoleDefaultUpdate])
async def list_role_defaults(
    role: Optional[UserRole] = None,
    category: Optional[NotificationCategory] = None,
    db: AsyncSession = Depends(get_db),
) -> list[RoleDefaultUpdate]:
    rows = await preference_admin.list_role_defaults(db, role=role, category=category)
    return [RoleDefaultUpdate.model_validate(row) for row in rows]


@router.put("/role-defaults", response_model=RoleDefaultUpdate)
async def upsert_role_default(
    body: RoleDefaultUpdate,
    db: AsyncSession = Depends(get_db),
    resolver: PreferenceResolver = Depends(get_preference_resolver),
) -> RoleDefaultUpdate:
    row = await preference_admin.upsert_role_default(db, resolver, body)
    return RoleDefaultUpdate.model_validate(row)


@router.get("/users/{user_id}/notification-preferences", response_model=list[PreferenceItem])
async def get_user_preferences(
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> list[PreferenceItem]:
    rows = await preference_admin.get_user_preferences(db, user_id)
    return [PreferenceItem.model_validate(row) for row in rows]


@router.put("/users/{user_id}/notification-preferences", response_model=list[PreferenceItem])
async def update_user_preferences(
    user_id: str,
    body: UserPreferencesUpdate,
    db: AsyncSession = Depends(get_db),
) -> list[PreferenceItem]:
    """Upsert a user's preferences. Rejects updates that break a policy with 400."""
    rows = await preference_admin.update_user_preferences(db, user_id, body.preferences)
    return [PreferenceItem.model_validate(row) for row in rows]


@router.post("/preferences/cache/clear")
async def clear_preference_cache(
    resolver: PreferenceResolver = Depends(get_preference_resolver),
) -> dict:
    resolver.clear_cache()
    return {"status": "cleared"}

"""Store-side management of versioned notification templates.

New versions are always created inactive. Only inactive versions may be
edited; to change a live template, create a new version and activate it.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courier.errors import RecordNotFoundError, TemplateConflictError
from courier.models.enums import NotificationChannel
from courier.models.notification_template import NotificationTemplate
from courier.schemas.admin import TemplateCreate, TemplateUpdate

logger = logging.getLogger(__name__)


def _dump_buttons(buttons) -> Optional[list[dict]]:
    if buttons is None:
        return None
    return [button.model_dump(by_alias=True) for button in buttons]


async def list_templates(
    db: AsyncSession,
    *,
    template_key: Optional[str] = None,
    channel: Optional[NotificationChannel] = None,
    is_active: Optional[bool] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[NotificationTemplate], int]:
    filters = []
    if template_key:
        filters.append(NotificationTemplate.template_key == template_key)
    if channel is not None:
        filters.append(NotificationTemplate.channel == channel.value)
    if is_active is not None:
        filters.append(NotificationTemplate.is_active.is_(is_active))

    total = await db.scalar(select(func.count()).select_from(NotificationTemplate).where(*filters))
    result = await db.execute(
        select(NotificationTemplate)
        .where(*filters)
        .order_by(NotificationTemplate.template_key.asc(), NotificationTemplate.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def get_template(db: AsyncSession, template_id: str) -> NotificationTemplate:
    template = await db.get(NotificationTemplate, template_id)
    if template is None:
        raise RecordNotFoundError("Template", template_id)
    return template


async def create_template(db: AsyncSession, data: TemplateCreate) -> NotificationTemplate:
    template = NotificationTemplate(
        template_key=data.template_key,
        version=data.version,
        channel=data.channel.value,
        body=data.body,
        buttons=_dump_buttons(data.buttons),
        variables=data.variables,
        policy_version=data.policy_version,
        is_active=False,
    )
    db.add(template)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise TemplateConflictError(
            f'Template with key="{data.template_key}", version="{data.version}", '
            f'channel="{data.channel.value}" already exists'
        ) from None
    logger.info(
        'Created template "%s" version=%s channel=%s',
        template.template_key,
        template.version,
        template.channel,
    )
    return template


async def update_template(
    db: AsyncSession,
    template_id: str,
    data: TemplateUpdate,
) -> NotificationTemplate:
    template = await get_template(db, template_id)
    if template.is_active:
        raise TemplateConflictError(
            "Cannot edit an active template. Deactivate it first or create a new version."
        )

    changes = data.model_dump(exclude_unset=True)
    if "buttons" in changes:
        changes["buttons"] = _dump_buttons(data.buttons)
    for field, value in changes.items():
        setattr(template, field, value)
    await db.commit()
    return template


async def activate_template(db: AsyncSession, template_id: str) -> NotificationTemplate:
    """Activate one version and deactivate its siblings in one transaction."""
    target = await get_template(db, template_id)
    await db.execute(
        update(NotificationTemplate)
        .where(
            NotificationTemplate.template_key == target.template_key,
            NotificationTemplate.channel == target.channel,
            NotificationTemplate.is_active.is_(True),
            NotificationTemplate.id != target.id,
        )
        .values(is_active=False)
    )
    target.is_active = True
    await db.commit()
    logger.info(
        'Activated template "%s" version=%s channel=%s',
        target.template_key,
        target.version,
        target.channel,
    )
    return target


async def deactivate_template(db: AsyncSession, template_id: str) -> NotificationTemplate:
    """Deactivate a version; deliveries fall back to the code template."""
    target = await get_template(db, template_id)
    if target.is_active:
        target.is_active = False
        await db.commit()
        logger.info('Deactivated template "%s" version=%s', target.template_key, target.version)
    return target

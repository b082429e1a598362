"""Template routes: versioned stored templates and admin preview."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courier.database import get_db
from courier.dependencies import get_template_resolver
from courier.handlers import template_admin
from courier.models.enums import NotificationChannel
from courier.schemas.admin import TemplateCreate, TemplateOut, TemplatePage, TemplateUpdate
from courier.schemas.notifications import TemplatePreviewRequest, TemplatePreviewResponse
from courier.templates.resolver import TemplateResolver

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", response_model=TemplatePage)
async def list_templates(
    template_key: Optional[str] = None,
    channel: Optional[NotificationChannel] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> TemplatePage:
    rows, total = await template_admin.list_templates(
        db, template_key=template_key, channel=channel, is_active=is_active, page=page, limit=limit
    )
    items = [TemplateOut.model_validate(row) for row in rows]
    return TemplatePage(items=items, total=total, page=page, limit=limit)


@router.post("", response_model=TemplateOut, status_code=201)
async def create_template(
    body: TemplateCreate,
    db: AsyncSession = Depends(get_db),
) -> TemplateOut:
    """Create a new, inactive template version."""
    return TemplateOut.model_validate(await template_admin.create_template(db, body))


@router.post("/preview", response_model=TemplatePreviewResponse)
async def preview_template(
    body: TemplatePreviewRequest,
    resolver: TemplateResolver = Depends(get_template_resolver),
) -> TemplatePreviewResponse:
    """Render a body with sample variables. Nothing is stored."""
    return resolver.preview(body.body, body.variables, body.buttons)


@router.get("/{template_id}", response_model=TemplateOut)
async def get_template(
    template_id: str,
    db: AsyncSession = Depends(get_db),
) -> TemplateOut:
    return TemplateOut.model_validate(await template_admin.get_template(db, template_id))


@router.put("/{template_id}", response_model=TemplateOut)
async def update_template(
    template_id: str,
    body: TemplateUpdate,
    db: AsyncSession = Depends(get_db),
) -> TemplateOut:
    """Edit an inactive version. Active versions are rejected with 409."""
    return TemplateOut.model_validate(await template_admin.update_template(db, template_id, body))


@router.post("/{template_id}/activate", response_model=TemplateOut)
async def activate_template(
    template_id: str,
    db: AsyncSession = Depends(get_db),
) -> TemplateOut:
    return TemplateOut.model_validate(await template_admin.activate_template(db, template_id))


@router.post("/{template_id}/deactivate", response_model=TemplateOut)
async def deactivate_template(
    template_id: str,
    db: AsyncSession = Depends(get_db),
) -> TemplateOut:
    return TemplateOut.model_validate(await template_admin.deactivate_template(db, template_id))

"""DB-first template resolution with fallback to the in-process registry."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courier.errors import TemplateResolutionError
from courier.models.enums import NotificationChannel
from courier.models.notification_template import NotificationTemplate
from courier.schemas.notifications import (
    NotificationButton,
    RenderedNotification,
    ResolvedTemplate,
    TemplatePreviewResponse,
    TemplateVariables,
)
from courier.templates.engine import TemplateEngine, interpolate, render_buttons

logger = logging.getLogger(__name__)


class TemplateResolver:
    """Resolve a template by key and channel.

    1. The most recently created active stored template for (key, channel).
    2. Otherwise the code template registered on the engine.
    3. Otherwise ``TemplateResolutionError``.

    Stored templates report their version and the unrendered body as the
    snapshot; code templates are unversioned and snapshot the rendered text.
    """

    def __init__(self, engine: TemplateEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> TemplateEngine:
        return self._engine

    async def resolve(
        self,
        db: AsyncSession,
        template_key: str,
        channel: NotificationChannel | str,
        variables: TemplateVariables,
    ) -> ResolvedTemplate:
        channel_value = NotificationChannel(channel).value
        result = await db.execute(
            select(NotificationTemplate)
            .where(
                NotificationTemplate.template_key == template_key,
                NotificationTemplate.channel == channel_value,
                NotificationTemplate.is_active.is_(True),
            )
            .order_by(NotificationTemplate.created_at.desc())
            .limit(1)
        )
        stored = result.scalar_one_or_none()

        if stored is not None:
            buttons = [NotificationButton.model_validate(b) for b in stored.buttons or []]
            logger.debug(
                'Resolved "%s" from DB, version=%s', template_key, stored.version
            )
            return ResolvedTemplate(
                rendered=RenderedNotification(
                    template_key=template_key,
                    text=interpolate(stored.body, variables),
                    buttons=render_buttons(buttons, variables),
                ),
                version=stored.version,
                snapshot=stored.body,
                policy_version=stored.policy_version,
                source="db",
            )

        if not self._engine.has(template_key):
            raise TemplateResolutionError(template_key, channel_value)

        rendered = self._engine.render(template_key, variables)
        logger.debug('Resolved "%s" from code registry (fallback)', template_key)
        return ResolvedTemplate(
            rendered=rendered,
            version=None,
            snapshot=rendered.text,
            policy_version=None,
            source="code",
        )

    def preview(
        self,
        body: str,
        variables: TemplateVariables,
        buttons: list[NotificationButton] | None = None,
    ) -> TemplatePreviewResponse:
        """Render an arbitrary body for admin dry-runs. Touches no storage."""
        return TemplatePreviewResponse(
            text=interpolate(body, variables),
            buttons=render_buttons(buttons, variables),
        )

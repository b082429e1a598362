"""In-process template registry with ``{{variable}}`` interpolation."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from courier.errors import TemplateNotFoundError
from courier.schemas.notifications import (
    NotificationButton,
    RenderedNotification,
    TemplateVariables,
)

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@dataclass(slots=True)
class NotificationTemplate:
    """A code-defined template, e.g. ``booking.created.agent``."""

    key: str
    body: str
    buttons: list[NotificationButton] = field(default_factory=list)


def _stringify(value: str | int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def interpolate(text: str, variables: TemplateVariables) -> str:
    """Substitute ``{{name}}`` tokens; unknown names are left as-is."""

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in variables:
            return _stringify(variables[name])
        logger.warning("Missing variable {{%s}} in template", name)
        return match.group(0)

    return _PLACEHOLDER.sub(_replace, text)


def render_buttons(
    buttons: list[NotificationButton] | None,
    variables: TemplateVariables,
) -> list[NotificationButton] | None:
    if not buttons:
        return None
    return [
        NotificationButton(
            label=interpolate(button.label, variables),
            callback_data=interpolate(button.callback_data, variables),
        )
        for button in buttons
    ]


class TemplateEngine:
    """Keyed registry of code templates. Re-registering a key replaces it."""

    def __init__(self) -> None:
        self._templates: dict[str, NotificationTemplate] = {}

    def register(self, template: NotificationTemplate) -> None:
        self._templates[template.key] = template
        logger.info('Registered template "%s"', template.key)

    def register_all(self, templates: list[NotificationTemplate]) -> None:
        for template in templates:
            self.register(template)

    def has(self, template_key: str) -> bool:
        return template_key in self._templates

    def registered_keys(self) -> list[str]:
        return list(self._templates)

    def render(self, template_key: str, variables: TemplateVariables) -> RenderedNotification:
        template = self._templates.get(template_key)
        if template is None:
            raise TemplateNotFoundError(template_key)
        return RenderedNotification(
            template_key=template_key,
            text=interpolate(template.body, variables),
            buttons=render_buttons(template.buttons, variables),
        )

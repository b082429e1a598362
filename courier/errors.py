from __future__ import annotations


class CourierError(Exception):
    """Base error for courier."""


class TemplateError(CourierError):
    """A notification template could not be rendered."""


class TemplateNotFoundError(TemplateError):
    """Template key is not registered in the in-process engine."""

    def __init__(self, template_key: str) -> None:
        super().__init__(f'Notification template "{template_key}" not found')
        self.template_key = template_key


class TemplateResolutionError(TemplateError):
    """No active stored template and no registered fallback."""

    def __init__(self, template_key: str, channel: str) -> None:
        super().__init__(
            f'Template "{template_key}" not found in DB or code registry (channel={channel})'
        )
        self.template_key = template_key
        self.channel = channel


class ChannelNotConfiguredError(CourierError):
    """A channel transport is missing its credentials."""


class AdminError(CourierError):
    """An admin change was rejected."""


class RecordNotFoundError(AdminError):
    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} not found")
        self.kind = kind
        self.record_id = record_id


class TemplateConflictError(AdminError):
    """Duplicate (key, version, channel), or an edit to an active version."""


class InvalidPreferenceError(AdminError):
    """A user preference update breaks a delivery policy."""

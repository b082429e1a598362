"""Tests for DB-first template resolution with code fallback."""

from datetime import datetime, timezone

import pytest

from courier.database import async_session
from courier.errors import TemplateResolutionError
from courier.models.enums import NotificationChannel
from courier.models.notification_template import NotificationTemplate
from courier.schemas.notifications import NotificationButton
from courier.templates.engine import NotificationTemplate as CodeTemplate
from courier.templates.engine import TemplateEngine
from courier.templates.resolver import TemplateResolver


def _resolver() -> TemplateResolver:
    engine = TemplateEngine()
    engine.register(CodeTemplate(key="t1", body="Code hello {{name}}"))
    return TemplateResolver(engine)


async def _add_template(**overrides) -> NotificationTemplate:
    values = {
        "template_key": "t1",
        "version": "v1",
        "channel": NotificationChannel.TELEGRAM.value,
        "body": "DB hello {{name}}",
        "is_active": True,
        "policy_version": "p1",
    }
    values.update(overrides)
    async with async_session() as db:
        row = NotificationTemplate(**values)
        db.add(row)
        await db.commit()
        return row


async def test_active_db_template_wins_over_code():
    await _add_template(buttons=[{"label": "Hi {{name}}", "callbackData": "hi:{{name}}"}])

    async with async_session() as db:
        resolved = await _resolver().resolve(db, "t1", NotificationChannel.TELEGRAM, {"name": "Alice"})

    assert resolved.source == "db"
    assert resolved.rendered.text == "DB hello Alice"
    assert resolved.rendered.buttons == [NotificationButton(label="Hi Alice", callback_data="hi:Alice")]
    assert resolved.version == "v1"
    assert resolved.policy_version == "p1"
    assert resolved.snapshot == "DB hello {{name}}"


async def test_newest_active_row_is_used():
    await _add_template(version="v1", body="old", created_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
    await _add_template(version="v2", body="new", created_at=datetime(2026, 2, 1, tzinfo=timezone.utc))

    async with async_session() as db:
        resolved = await _resolver().resolve(db, "t1", "TELEGRAM", {})

    assert resolved.version == "v2"
    assert resolved.rendered.text == "new"


async def test_inactive_db_template_falls_back_to_code():
    await _add_template(is_active=False)

    async with async_session() as db:
        resolved = await _resolver().resolve(db, "t1", NotificationChannel.TELEGRAM, {"name": "Alice"})

    assert resolved.source == "code"
    assert resolved.version is None
    assert resolved.policy_version is None
    assert resolved.snapshot == "Code hello Alice"


async def test_unknown_template_raises_resolution_error():
    async with async_session() as db:
        with pytest.raises(TemplateResolutionError):
            await _resolver().resolve(db, "nope", NotificationChannel.TELEGRAM, {})


def test_preview_renders_without_store():
    preview = _resolver().preview(
        "Trip to {{city}} for {{missing}}",
        {"city": "Yerevan"},
        [NotificationButton(label="Go {{city}}", callback_data="go")],
    )

    assert preview.text == "Trip to Yerevan for {{missing}}"
    assert preview.buttons[0].label == "Go Yerevan"

"""Shared test configuration — must be loaded before courier modules."""

import os

# Override settings before any courier modules are imported.
os.environ["COURIER_DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["COURIER_TELEGRAM_BOT_TOKEN"] = ""
os.environ["COURIER_QUEUE_MODE"] = "arq"

from unittest.mock import AsyncMock

import pytest

from courier.database import async_session, engine, Base
from courier.dependencies import build_template_resolver
from courier.handlers.notification_service import NotificationService
from courier.models import notification_log, notification_policy, notification_template  # noqa: F401
from courier.preferences.cache import TTLCache
from courier.preferences.resolver import PreferenceResolver


@pytest.fixture(autouse=True)
async def _reset_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def template_resolver():
    return build_template_resolver()


@pytest.fixture
def preference_resolver():
    return PreferenceResolver(policy_cache=TTLCache(300), role_default_cache=TTLCache(300))


@pytest.fixture
def queue():
    mock_queue = AsyncMock()
    mock_queue.submit = AsyncMock()
    mock_queue.close = AsyncMock()
    return mock_queue


@pytest.fixture
def service(template_resolver, preference_resolver, queue):
    return NotificationService(
        async_session,
        template_resolver,
        preference_resolver,
        queue,
        strict_template_check=False,
    )

"""Builds the notification components and exposes them to FastAPI routes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from courier.channels.base import ChannelProvider
from courier.channels.telegram import TelegramChannelProvider
from courier.clients.telegram_client import TelegramClient
from courier.config import settings
from courier.database import async_session
from courier.handlers.delivery import DeliveryWorker
from courier.handlers.notification_service import NotificationService
from courier.preferences.cache import TTLCache
from courier.preferences.resolver import PreferenceResolver
from courier.queue import DeliveryQueue, InlineDeliveryQueue, create_arq_queue
from courier.templates.booking_templates import BOOKING_TEMPLATES
from courier.templates.engine import TemplateEngine
from courier.templates.resolver import TemplateResolver

logger = logging.getLogger(__name__)


def build_template_resolver() -> TemplateResolver:
    engine = TemplateEngine()
    engine.register_all(BOOKING_TEMPLATES)
    return TemplateResolver(engine)


def build_preference_resolver() -> PreferenceResolver:
    return PreferenceResolver(
        policy_cache=TTLCache(settings.preference_cache_ttl_s),
        role_default_cache=TTLCache(settings.preference_cache_ttl_s),
    )


def build_channel_providers() -> list[ChannelProvider]:
    providers: list[ChannelProvider] = []
    if settings.telegram_bot_token:
        providers.append(TelegramChannelProvider(TelegramClient()))
    else:
        logger.warning("Telegram bot token not set — TELEGRAM deliveries will fail permanently")
    return providers


def build_delivery_worker(
    template_resolver: TemplateResolver,
    providers: list[ChannelProvider],
    session_factory: async_sessionmaker[AsyncSession] = async_session,
) -> DeliveryWorker:
    return DeliveryWorker(session_factory, template_resolver, providers)


@dataclass
class Courier:
    """Process-wide notification components."""

    template_resolver: TemplateResolver
    preference_resolver: PreferenceResolver
    queue: DeliveryQueue
    notification_service: NotificationService
    providers: list[ChannelProvider] = field(default_factory=list)

    async def close(self) -> None:
        await self.queue.close()
        for provider in self.providers:
            close = getattr(provider, "close", None)
            if close is not None:
                await close()


async def build_courier(
    session_factory: async_sessionmaker[AsyncSession] = async_session,
) -> Courier:
    template_resolver = build_template_resolver()
    preference_resolver = build_preference_resolver()
    providers: list[ChannelProvider] = []

    if settings.queue_mode == "inline":
        providers = build_channel_providers()
        worker = build_delivery_worker(template_resolver, providers, session_factory)
        queue: DeliveryQueue = InlineDeliveryQueue(worker)
    else:
        queue = await create_arq_queue()

    service = NotificationService(session_factory, template_resolver, preference_resolver, queue)
    logger.info("Notification components ready (queue_mode=%s)", settings.queue_mode)
    return Courier(
        template_resolver=template_resolver,
        preference_resolver=preference_resolver,
        queue=queue,
        notification_service=service,
        providers=providers,
    )


def get_courier(request: Request) -> Courier:
    return request.app.state.courier


def get_notification_service(request: Request) -> NotificationService:
    return get_courier(request).notification_service


def get_template_resolver(request: Request) -> TemplateResolver:
    return get_courier(request).template_resolver


def get_preference_resolver(request: Request) -> PreferenceResolver:
    return get_courier(request).preference_resolver

"""Telegram channel provider with permanent/transient failure classification."""

from __future__ import annotations

import logging

import httpx

from courier.clients.telegram_client import TelegramClient
from courier.models.enums import NotificationChannel
from courier.schemas.notifications import NotificationButton, SendResult

logger = logging.getLogger(__name__)

# 403: bot blocked / user deactivated. 400: chat not found, bad request.
PERMANENT_ERROR_CODES = frozenset({400, 403})

PERMANENT_ERROR_PHRASES = (
    "bot was blocked",
    "blocked by the user",
    "user is deactivated",
    "chat not found",
    "peer_id_invalid",
    "invalid peer",
)


def _error_code(error: BaseException) -> int | None:
    for attr in ("error_code", "status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def is_permanent_error(error: BaseException) -> bool:
    """A numeric code decides when present; otherwise match known phrases."""
    code = _error_code(error)
    if code is not None:
        return code in PERMANENT_ERROR_CODES
    message = str(error).lower()
    return any(phrase in message for phrase in PERMANENT_ERROR_PHRASES)


class TelegramChannelProvider:
    channel = NotificationChannel.TELEGRAM

    def __init__(self, client: TelegramClient) -> None:
        self._client = client

    async def send(
        self,
        chat_id: int,
        text: str,
        buttons: list[NotificationButton] | None = None,
    ) -> SendResult:
        try:
            message_id = await self._client.send_message(chat_id, text, buttons or None)
        except Exception as exc:
            error_message = str(exc) or exc.__class__.__name__
            permanent = is_permanent_error(exc)
            logger.error(
                "Failed to send to chat %d: %s (permanent=%s)", chat_id, error_message, permanent
            )
            return SendResult(success=False, error_message=error_message, permanent=permanent)

        return SendResult(
            success=True,
            provider_message_id=str(message_id) if message_id is not None else None,
        )

    async def close(self) -> None:
        await self._client.close()

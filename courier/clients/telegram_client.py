"""Telegram Bot API client (sendMessage with optional inline keyboard)."""

from __future__ import annotations

import logging

import httpx

from courier.config import settings
from courier.errors import ChannelNotConfiguredError
from courier.schemas.notifications import NotificationButton

logger = logging.getLogger(__name__)


class TelegramApiError(RuntimeError):
    """Telegram answered ``{"ok": false}`` or a non-JSON error page."""

    def __init__(self, description: str, error_code: int | None = None) -> None:
        super().__init__(description)
        self.description = description
        self.error_code = error_code


class TelegramClient:
    """Send chat messages via the Telegram Bot HTTP API."""

    def __init__(self, token: str | None = None, api_base: str | None = None) -> None:
        token = token or settings.telegram_bot_token
        if not token:
            raise ChannelNotConfiguredError("Telegram not configured — set COURIER_TELEGRAM_BOT_TOKEN")
        self._base_url = f"{(api_base or settings.telegram_api_base).rstrip('/')}/bot{token}"
        self._client = httpx.AsyncClient(timeout=settings.telegram_timeout_s)

    async def _call(self, method: str, payload: dict) -> dict:
        resp = await self._client.post(f"{self._base_url}/{method}", json=payload)
        try:
            data = resp.json()
        except ValueError:
            raise TelegramApiError(f"HTTP {resp.status_code} from Telegram", resp.status_code) from None
        if not data.get("ok"):
            raise TelegramApiError(
                data.get("description", "unknown Telegram error"),
                data.get("error_code", resp.status_code),
            )
        return data.get("result") or {}

    async def send_message(
        self,
        chat_id: int,
        text: str,
        buttons: list[NotificationButton] | None = None,
    ) -> int | None:
        """Send a Markdown message and return Telegram's ``message_id``.

        If Telegram cannot parse the Markdown entities the message is sent
        again as plain text.
        """
        payload: dict = {"chat_id": chat_id, "text": text, "parse_mode": "Markdown"}
        if buttons:
            payload["reply_markup"] = {
                "inline_keyboard": [
                    [{"text": b.label, "callback_data": b.callback_data}] for b in buttons
                ]
            }

        try:
            result = await self._call("sendMessage", payload)
        except TelegramApiError as exc:
            if exc.error_code != 400 or "can't parse entities" not in exc.description.lower():
                raise
            logger.warning("Markdown send failed for chat %d, retrying as plain text", chat_id)
            payload.pop("parse_mode")
            result = await self._call("sendMessage", payload)

        logger.info("Telegram message sent to chat %d", chat_id)
        return result.get("message_id")

    async def close(self) -> None:
        await self._client.aclose()

"""Tests for the Telegram client and channel provider."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from courier.channels.telegram import TelegramChannelProvider, is_permanent_error
from courier.clients.telegram_client import TelegramApiError, TelegramClient
from courier.errors import ChannelNotConfiguredError
from courier.schemas.notifications import NotificationButton


class _CodedError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def test_classification_prefers_numeric_code():
    assert is_permanent_error(TelegramApiError("Forbidden", 403)) is True
    assert is_permanent_error(TelegramApiError("Bad Request: chat not found", 400)) is True
    assert is_permanent_error(_CodedError("Too Many Requests", 429)) is False
    # A code wins over a misleading message.
    assert is_permanent_error(_CodedError("chat not found", 502)) is False


def test_classification_falls_back_to_message():
    assert is_permanent_error(RuntimeError("Forbidden: bot was blocked by the user")) is True
    assert is_permanent_error(RuntimeError("PEER_ID_INVALID")) is True
    assert is_permanent_error(RuntimeError("connection reset")) is False
    assert is_permanent_error(httpx.ReadTimeout("timed out")) is False


async def test_provider_success_returns_message_id():
    client = AsyncMock()
    client.send_message.return_value = 42
    provider = TelegramChannelProvider(client)

    result = await provider.send(1001, "hello")

    assert result.success is True
    assert result.provider_message_id == "42"
    client.send_message.assert_awaited_once_with(1001, "hello", None)


async def test_provider_passes_buttons():
    client = AsyncMock()
    client.send_message.return_value = 7
    provider = TelegramChannelProvider(client)
    buttons = [NotificationButton(label="Open", callback_data="open:1")]

    await provider.send(1001, "hello", buttons)

    client.send_message.assert_awaited_once_with(1001, "hello", buttons)


async def test_provider_sends_empty_button_list_as_plain_text():
    client = AsyncMock()
    client.send_message.return_value = 8
    provider = TelegramChannelProvider(client)

    await provider.send(1001, "hello", [])

    client.send_message.assert_awaited_once_with(1001, "hello", None)


async def test_provider_reports_blocked_user_as_permanent():
    client = AsyncMock()
    client.send_message.side_effect = TelegramApiError("Forbidden: bot was blocked by the user", 403)
    provider = TelegramChannelProvider(client)

    result = await provider.send(1001, "hello")

    assert result.success is False
    assert result.permanent is True
    assert "blocked" in result.error_message


async def test_provider_reports_timeout_as_transient():
    client = AsyncMock()
    client.send_message.side_effect = httpx.ConnectTimeout("")
    provider = TelegramChannelProvider(client)

    result = await provider.send(1001, "hello")

    assert result.success is False
    assert result.permanent is False
    assert result.error_message == "ConnectTimeout"


def test_client_requires_token():
    with pytest.raises(ChannelNotConfiguredError):
        TelegramClient(token="")


async def test_client_sends_inline_keyboard():
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 99}})

    client = TelegramClient(token="test-token", api_base="https://telegram.test")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    message_id = await client.send_message(
        5, "Hi", [NotificationButton(label="Go", callback_data="go:1")]
    )
    await client.close()

    assert message_id == 99
    assert sent[0].url.path == "/bottest-token/sendMessage"
    body = json.loads(sent[0].content)
    assert body["parse_mode"] == "Markdown"
    assert body["reply_markup"] == {"inline_keyboard": [[{"text": "Go", "callback_data": "go:1"}]]}


async def test_client_retries_unparseable_markdown_as_plain_text():
    payloads = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        payloads.append(body)
        if "parse_mode" in body:
            return httpx.Response(
                400,
                json={
                    "ok": False,
                    "error_code": 400,
                    "description": "Bad Request: can't parse entities: unmatched *",
                },
            )
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 3}})

    client = TelegramClient(token="t", api_base="https://telegram.test")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    assert await client.send_message(5, "*broken") == 3
    assert len(payloads) == 2
    assert "parse_mode" not in payloads[1]


async def test_client_raises_on_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403, json={"ok": False, "error_code": 403, "description": "Forbidden: user is deactivated"}
        )

    client = TelegramClient(token="t", api_base="https://telegram.test")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    with pytest.raises(TelegramApiError) as exc_info:
        await client.send_message(5, "hello")

    assert exc_info.value.error_code == 403

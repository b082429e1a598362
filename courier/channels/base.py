from __future__ import annotations

from typing import Protocol

from courier.models.enums import NotificationChannel
from courier.schemas.notifications import NotificationButton, SendResult


class ChannelProvider(Protocol):
    """Transport for one ``NotificationChannel``.

    ``send`` never raises for transport failures; it reports them in the
    ``SendResult`` and says whether a retry could help.
    """

    channel: NotificationChannel

    async def send(
        self,
        chat_id: int,
        text: str,
        buttons: list[NotificationButton] | None = None,
    ) -> SendResult:
        ...

"""HTTP Channel Senders for Slack, Telegram, Pushover and Discord."""

import logging
from typing import Any

import httpx

from peddler.errors import NotificationError
from peddler.notify.base import ChannelSender, NotificationMessage, SenderFactory
from peddler.notify.formatters import (
    format_discord_embed,
    format_pushover_message,
    format_slack_attachment,
    format_telegram_message,
)
from peddler.settings_provider import Credentials

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
PUSHOVER_API_URL = "https://api.pushover.net/1/messages.json"


class HttpChannelSender(ChannelSender):
    """Base class for senders that POST JSON over a shared httpx client."""

    ok_statuses: tuple[int, ...] = (200, 201, 202, 204)

    def __init__(self, client: httpx.AsyncClient, params: dict[str, Any], credentials: Credentials):
        self.client = client
        self.params = params
        self.credentials = credentials

    def _param(self, name: str) -> str:
        value = self.credentials.resolve(self.params.get(name))
        if not value:
            raise NotificationError(
                f"{self.channel} channel missing '{name}'", channel=self.channel, transient=False
            )
        return value

    async def _post(self, url: str, payload: dict) -> httpx.Response:
        try:
            response = await self.client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise NotificationError(f"{self.channel} request failed: {e}", channel=self.channel) from e

        if response.status_code not in self.ok_statuses:
            raise NotificationError(
                f"{self.channel} returned {response.status_code}: {response.text[:200]}",
                channel=self.channel,
                status_code=response.status_code,
                transient=_is_transient_status(response.status_code),
            )
        return response


def _is_transient_status(status_code: int) -> bool:
    # Rate limits and server errors can clear up, other 4xx responses will not
    return status_code == 429 or status_code >= 500


class SlackSender(HttpChannelSender):
    """Slack incoming webhook."""

    channel = "slack"

    async def send(self, message: NotificationMessage) -> None:
        await self._post(self._param("webhook"), format_slack_attachment(message))
        logger.info(f"Slack notification sent for {message.event_id}")


class TelegramSender(HttpChannelSender):
    """Telegram Bot API sendMessage."""

    channel = "telegram"
    ok_statuses = (200,)

    async def send(self, message: NotificationMessage) -> None:
        url = f"{TELEGRAM_API_URL}/bot{self._param('botToken')}/sendMessage"
        payload = {
            "chat_id": self._param("chatId"),
            "text": format_telegram_message(message),
            "parse_mode": "HTML",
            "disable_web_page_preview": False,
        }
        await self._post(url, payload)
        logger.info(f"Telegram notification sent for {message.event_id}")


class PushoverSender(HttpChannelSender):
    """Pushover messages API."""

    channel = "pushover"
    ok_statuses = (200,)

    async def send(self, message: NotificationMessage) -> None:
        formatted = format_pushover_message(message)
        payload = {
            "token": self._param("appToken"),
            "user": self._param("userKey"),
            "title": formatted["title"],
            "message": formatted["message"],
            "url": message.url,
            "url_title": "View Listing",
        }
        await self._post(PUSHOVER_API_URL, payload)
        logger.info(f"Pushover notification sent for {message.event_id}")


class DiscordSender(HttpChannelSender):
    """Discord webhook with an embed."""

    channel = "discord"

    async def send(self, message: NotificationMessage) -> None:
        await self._post(self._param("webhook"), format_discord_embed(message))
        logger.info(f"Discord notification sent for {message.event_id}")


DEFAULT_SENDERS: dict[str, SenderFactory] = {
    SlackSender.channel: SlackSender,
    TelegramSender.channel: TelegramSender,
    PushoverSender.channel: PushoverSender,
    DiscordSender.channel: DiscordSender,
}

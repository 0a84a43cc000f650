"""Wire-level tests for the channel senders."""

import json
from decimal import Decimal

import httpx
import pytest

from peddler.detect.classifier import EventKind
from peddler.errors import NotificationError
from peddler.notify.base import NotificationMessage
from peddler.notify.formatters import format_price, format_pushover_message, format_telegram_message
from peddler.notify.senders import (
    DEFAULT_SENDERS,
    DiscordSender,
    PushoverSender,
    SlackSender,
    TelegramSender,
)
from peddler.settings_provider import Credentials


def _message(**overrides) -> NotificationMessage:
    data = dict(
        kind=EventKind.PRICE_DROP,
        event_id="bikes:111:price_drop",
        watcher_id="bikes",
        watcher_name="Road bikes",
        item_id="111",
        title="Trek <Domane>",
        price=Decimal("4500"),
        location="seattle",
        url="https://www.facebook.com/marketplace/item/111/",
        image_url="https://cdn.test/111.jpg",
        previous_price=Decimal("5000"),
        drop_percentage=10.0,
    )
    data.update(overrides)
    return NotificationMessage(**data)


class Recorder:
    def __init__(self, status=200):
        self.status = status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json={"ok": self.status == 200})

    @property
    def payload(self):
        return json.loads(self.requests[-1].content)


def _client(recorder):
    return httpx.AsyncClient(transport=httpx.MockTransport(recorder))


@pytest.mark.asyncio
async def test_slack_posts_attachment_to_resolved_webhook(credentials):
    recorder = Recorder()
    async with _client(recorder) as client:
        sender = SlackSender(client, {"webhook": "slack-webhook-url-from-secrets"}, credentials)
        await sender.send(_message())

    assert str(recorder.requests[0].url) == "https://hooks.slack.test/services/T/B/X"
    attachment = recorder.payload["attachments"][0]
    assert attachment["title_link"] == "https://www.facebook.com/marketplace/item/111/"
    assert attachment["image_url"] == "https://cdn.test/111.jpg"
    fields = {f["title"]: f["value"] for f in attachment["fields"]}
    assert fields["Price"] == "$4,500"
    assert fields["Previous Price"] == "$5,000"


@pytest.mark.asyncio
async def test_telegram_uses_bot_token_and_html(credentials):
    recorder = Recorder()
    params = {"botToken": "telegram-bot-token-from-secrets", "chatId": "42"}
    async with _client(recorder) as client:
        await TelegramSender(client, params, credentials).send(_message())

    assert recorder.requests[0].url.path == "/bot123:abc/sendMessage"
    payload = recorder.payload
    assert payload["chat_id"] == "42"
    assert payload["parse_mode"] == "HTML"
    assert "Trek &lt;Domane&gt;" in payload["text"]


@pytest.mark.asyncio
async def test_pushover_payload(credentials):
    recorder = Recorder()
    params = {"userKey": "pushover-user-key-from-secrets", "appToken": "pushover-app-token-from-secrets"}
    async with _client(recorder) as client:
        await PushoverSender(client, params, credentials).send(_message())

    payload = recorder.payload
    assert payload["token"] == "app-token"
    assert payload["user"] == "user-key"
    assert payload["url_title"] == "View Listing"
    assert payload["title"].startswith("Price Drop:")


@pytest.mark.asyncio
async def test_discord_posts_embed():
    recorder = Recorder(status=204)
    async with _client(recorder) as client:
        sender = DiscordSender(client, {"webhook": "https://discord.test/hook"}, Credentials())
        await sender.send(_message(kind=EventKind.NEW_ITEM, previous_price=None, drop_percentage=None))

    embed = recorder.payload["embeds"][0]
    assert embed["url"] == "https://www.facebook.com/marketplace/item/111/"
    assert [f["name"] for f in embed["fields"]] == ["Price", "Location"]


@pytest.mark.asyncio
async def test_non_success_status_raises(credentials):
    recorder = Recorder(status=500)
    async with _client(recorder) as client:
        sender = SlackSender(client, {"webhook": "https://hooks.slack.test/x"}, credentials)
        with pytest.raises(NotificationError) as exc_info:
            await sender.send(_message())

    assert exc_info.value.status_code == 500
    assert exc_info.value.channel == "slack"
    assert exc_info.value.transient


@pytest.mark.asyncio
async def test_missing_parameter_raises_without_request():
    recorder = Recorder()
    async with _client(recorder) as client:
        sender = TelegramSender(client, {"botToken": "missing-from-secrets"}, Credentials())
        with pytest.raises(NotificationError) as exc_info:
            await sender.send(_message())

    assert recorder.requests == []
    assert not exc_info.value.transient


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, transient",
    [(400, False), (403, False), (404, False), (429, True), (500, True), (503, True)],
)
async def test_status_code_decides_retryability(status, transient):
    recorder = Recorder(status=status)
    async with _client(recorder) as client:
        sender = DiscordSender(client, {"webhook": "https://discord.test/hook"}, Credentials())
        with pytest.raises(NotificationError) as exc_info:
            await sender.send(_message())

    assert exc_info.value.status_code == status
    assert exc_info.value.transient is transient


@pytest.mark.asyncio
async def test_network_failures_are_transient():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as client:
        sender = SlackSender(client, {"webhook": "https://hooks.slack.test/x"}, Credentials())
        with pytest.raises(NotificationError) as exc_info:
            await sender.send(_message())

    assert exc_info.value.transient
    assert exc_info.value.status_code is None


def test_default_senders_cover_every_channel():
    assert set(DEFAULT_SENDERS) == {"slack", "telegram", "pushover", "discord"}


def test_format_price():
    assert format_price(Decimal("1250")) == "$1,250"
    assert format_price(Decimal("99.50")) == "$99.50"
    assert format_price(None) == ""


def test_new_item_messages_have_no_drop_details():
    message = _message(kind=EventKind.NEW_ITEM, previous_price=None, drop_percentage=None)

    assert "New Listing Found" in format_telegram_message(message)
    assert format_pushover_message(message)["message"].startswith("$4,500\n")

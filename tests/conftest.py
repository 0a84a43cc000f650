"""Shared fixtures for the Peddler test suite."""

import asyncio
from decimal import Decimal
from typing import Callable

import pytest

from peddler.detect.classifier import ClassifiedEvent, EventKind
from peddler.ingest.base import CollectorRegistry, RawItem, SourceCollector
from peddler.settings_provider import Credentials
from peddler.store.base import Item
from peddler.store.memory import MemoryItemStore
from peddler.watchers import Watcher


class ScriptedCollector(SourceCollector):
    """Collector returning canned items, or raising canned errors in order."""

    marketplace = "facebook"

    def __init__(self, items=None, errors=None, delay: float = 0.0):
        self.items = list(items or [])
        self.errors = list(errors or [])
        self.delay = delay
        self.calls = 0
        self.opened = False
        self.closed = False

    async def open(self) -> None:
        self.opened = True

    async def close(self) -> None:
        self.closed = True

    async def collect(self, watcher, credentials):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        return list(self.items)


class FakeSleep:
    """Records requested sleeps without waiting."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_watcher(watcher_id: str = "bikes", **overrides) -> Watcher:
    data = {
        "id": watcher_id,
        "name": f"{watcher_id} search",
        "marketplace": "facebook",
        "query": "road bike",
        "location": "seattle",
    }
    data.update(overrides)
    return Watcher.model_validate(data)


def raw_item(item_id: str, price, title: str = "Trek road bike") -> RawItem:
    return RawItem(
        item_id=item_id,
        title=title,
        price=Decimal(str(price)),
        location="seattle",
        url=f"https://www.facebook.com/marketplace/item/{item_id}/",
    )


def stored_item(watcher_id: str, item_id: str, price, **changes) -> Item:
    return Item(
        watcher_id=watcher_id,
        item_id=item_id,
        title=changes.pop("title", "Trek road bike"),
        price=Decimal(str(price)),
        url=f"https://www.facebook.com/marketplace/item/{item_id}/",
        **changes,
    )


def new_item_event(watcher_id: str, item_id: str, price=100) -> ClassifiedEvent:
    return ClassifiedEvent(EventKind.NEW_ITEM, stored_item(watcher_id, item_id, price))


def registry_for(factory: Callable[[], SourceCollector]) -> CollectorRegistry:
    registry = CollectorRegistry()
    registry.register("facebook", factory)
    return registry


@pytest.fixture
def watcher_factory():
    return make_watcher


@pytest.fixture
def memory_store():
    return MemoryItemStore(retention_days=30)


@pytest.fixture
def credentials():
    return Credentials(
        {
            "facebook-cookies": "c_user=1; xs=abc",
            "slack-webhook-url": "https://hooks.slack.test/services/T/B/X",
            "telegram-bot-token": "123:abc",
            "pushover-app-token": "app-token",
            "pushover-user-key": "user-key",
        }
    )


@pytest.fixture
def fake_sleep():
    return FakeSleep()

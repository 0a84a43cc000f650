"""Tests for the watch runner."""

from decimal import Decimal

import pytest

from peddler.detect.classifier import EventKind
from peddler.errors import (
    CollectorAuthError,
    CollectorLayoutError,
    CollectorNetworkError,
    PersistenceError,
)
from peddler.ingest.base import CollectorRegistry, RawItem
from peddler.store.memory import MemoryItemStore
from peddler.worker.runner import RunResult, WatchRunner

from tests.conftest import ScriptedCollector, make_watcher, raw_item, registry_for, stored_item


def _runner(store, collector, fake_sleep, credentials=None, **kwargs):
    kwargs.setdefault("timeout", 5)
    kwargs.setdefault("max_attempts", 3)
    kwargs.setdefault("backoff", 2.0)
    return WatchRunner(
        store,
        credentials=credentials,
        registry=registry_for(lambda: collector),
        sleep=fake_sleep,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_disabled_watcher_short_circuits(memory_store, fake_sleep):
    created = []
    registry = registry_for(lambda: created.append(1) or ScriptedCollector())
    runner = WatchRunner(memory_store, registry=registry, sleep=fake_sleep)

    result = await runner.run(make_watcher(enabled=False))

    assert result.success
    assert result.disabled
    assert result.items_observed == 0
    assert result.events == []
    assert created == []


@pytest.mark.asyncio
async def test_first_run_reports_new_items(memory_store, fake_sleep, credentials):
    collector = ScriptedCollector(items=[raw_item("1", 5000), raw_item("2", 300)])
    runner = _runner(memory_store, collector, fake_sleep, credentials)

    result = await runner.run(make_watcher())

    assert result.success
    assert result.items_observed == 2
    assert [e.item.item_id for e in result.new_items] == ["1", "2"]
    assert result.price_drops == []
    assert result.execution_ms >= 0
    assert len(memory_store) == 2
    assert collector.opened and collector.closed


@pytest.mark.asyncio
async def test_price_drop_at_threshold(memory_store, fake_sleep):
    await memory_store.put(stored_item("bikes", "1", 5000))
    runner = _runner(memory_store, ScriptedCollector(items=[raw_item("1", 4500)]), fake_sleep)

    result = await runner.run(make_watcher(priceDropThreshold=0.1))

    assert result.new_items == []
    assert len(result.price_drops) == 1
    drop = result.price_drops[0]
    assert drop.kind == EventKind.PRICE_DROP
    assert drop.percentage == pytest.approx(10.0)
    assert drop.item.previous_price == Decimal("5000")
    assert drop.item.price == Decimal("4500")


@pytest.mark.asyncio
async def test_small_drop_is_persisted_without_event(memory_store, fake_sleep):
    await memory_store.put(stored_item("bikes", "1", 5000))
    runner = _runner(memory_store, ScriptedCollector(items=[raw_item("1", 4600)]), fake_sleep)

    result = await runner.run(make_watcher(priceDropThreshold=0.1))

    assert result.events == []
    assert result.outcomes[0].kind == EventKind.UNCHANGED
    stored = await memory_store.get("bikes", "1")
    assert stored.price == Decimal("4600")
    assert stored.previous_price == Decimal("5000")


@pytest.mark.asyncio
async def test_unchanged_price_is_idempotent(memory_store, fake_sleep):
    collector = ScriptedCollector(items=[raw_item("1", 5000)])
    runner = _runner(memory_store, collector, fake_sleep)
    watcher = make_watcher()

    first = await runner.run(watcher)
    before = await memory_store.get("bikes", "1")
    second = await runner.run(watcher)
    after = await memory_store.get("bikes", "1")

    assert len(first.new_items) == 1
    assert second.events == []
    assert after.price == before.price
    assert after.previous_price is None
    assert after.last_seen >= before.last_seen


@pytest.mark.asyncio
async def test_collector_failure_fails_run_and_releases_collector(memory_store, fake_sleep):
    collector = ScriptedCollector(errors=[CollectorAuthError("login required")])
    runner = _runner(memory_store, collector, fake_sleep)

    result = await runner.run(make_watcher())

    assert not result.success
    assert "login required" in result.error
    assert result.outcomes == []
    assert collector.closed
    assert collector.calls == 1
    assert fake_sleep.calls == []


@pytest.mark.asyncio
async def test_layout_errors_are_not_retried(memory_store, fake_sleep):
    collector = ScriptedCollector(errors=[CollectorLayoutError("no feed")])
    runner = _runner(memory_store, collector, fake_sleep)

    result = await runner.run(make_watcher())

    assert not result.success
    assert collector.calls == 1


@pytest.mark.asyncio
async def test_network_errors_are_retried_with_backoff(memory_store, fake_sleep):
    collector = ScriptedCollector(
        items=[raw_item("1", 100)],
        errors=[CollectorNetworkError("reset"), CollectorNetworkError("reset")],
    )
    runner = _runner(memory_store, collector, fake_sleep, backoff=2.0)

    result = await runner.run(make_watcher())

    assert result.success
    assert collector.calls == 3
    assert fake_sleep.calls == [2.0, 4.0]


@pytest.mark.asyncio
async def test_collector_timeout_fails_run(memory_store, fake_sleep):
    collector = ScriptedCollector(items=[raw_item("1", 100)], delay=1.0)
    runner = _runner(memory_store, collector, fake_sleep, timeout=0.01, max_attempts=1)

    result = await runner.run(make_watcher())

    assert not result.success
    assert "timed out" in result.error
    assert collector.closed


@pytest.mark.asyncio
async def test_unsupported_marketplace_fails_run(memory_store, fake_sleep):
    runner = WatchRunner(memory_store, registry=CollectorRegistry(), sleep=fake_sleep)

    result = await runner.run(make_watcher(marketplace="ebay"))

    assert not result.success
    assert "ebay" in result.error


class FailingPutStore(MemoryItemStore):
    def __init__(self, bad_ids):
        super().__init__(retention_days=30)
        self.bad_ids = set(bad_ids)

    async def put(self, item):
        if item.item_id in self.bad_ids:
            raise PersistenceError("disk full", watcher_id=item.watcher_id, item_id=item.item_id)
        await super().put(item)


@pytest.mark.asyncio
async def test_item_failure_does_not_stop_other_items(fake_sleep):
    store = FailingPutStore(bad_ids={"2"})
    collector = ScriptedCollector(items=[raw_item("1", 10), raw_item("2", 20), raw_item("3", 30)])
    runner = _runner(store, collector, fake_sleep)

    result = await runner.run(make_watcher())

    assert result.success
    assert result.items_failed == 1
    assert [e.item.item_id for e in result.new_items] == ["1", "3"]
    failed = [o for o in result.outcomes if not o.ok]
    assert failed[0].item_id == "2"
    assert "disk full" in failed[0].error


class VanishingStore(MemoryItemStore):
    async def update_price(self, watcher_id, item_id, new_price, last_seen):
        return None


@pytest.mark.asyncio
async def test_missing_record_on_update_is_item_failure(fake_sleep):
    store = VanishingStore(retention_days=30)
    await store.put(stored_item("bikes", "1", 100))
    runner = _runner(store, ScriptedCollector(items=[raw_item("1", 50)]), fake_sleep)

    result = await runner.run(make_watcher())

    assert result.success
    assert result.items_failed == 1
    assert result.price_drops == []


@pytest.mark.asyncio
async def test_filters_apply_before_classification(memory_store, fake_sleep):
    collector = ScriptedCollector(
        items=[raw_item("1", 100, title="Kids bike"), raw_item("2", 100, title="Road bike")]
    )
    runner = _runner(memory_store, collector, fake_sleep)

    result = await runner.run(make_watcher(excludeKeywords=["kids"]))

    assert result.items_observed == 1
    assert await memory_store.get("bikes", "1") is None


@pytest.mark.asyncio
async def test_malformed_record_fails_only_that_item(memory_store, fake_sleep):
    collector = ScriptedCollector(
        items=[raw_item("1", 10), RawItem(item_id="2", title=None, price=10), raw_item("3", 30)]
    )
    runner = _runner(memory_store, collector, fake_sleep)

    result = await runner.run(make_watcher())

    assert isinstance(result, RunResult)
    assert result.success
    assert result.items_failed == 1
    assert [o.item_id for o in result.outcomes if not o.ok] == ["2"]
    assert [e.item.item_id for e in result.new_items] == ["1", "3"]
    assert await memory_store.get("bikes", "1") is not None
    assert await memory_store.get("bikes", "2") is None
    assert await memory_store.get("bikes", "3") is not None

"""Tests for the HTTP API."""

import httpx
import pytest
from fastapi.testclient import TestClient

from peddler.api.deps import get_task_runner
from peddler.main import app
from peddler.settings_provider import StaticSettingsProvider
from peddler.store.memory import MemoryItemStore
from peddler.worker.tasks import TaskRunner

from tests.conftest import ScriptedCollector, raw_item, registry_for


@pytest.fixture
def runner():
    provider = StaticSettingsProvider(
        {
            "watchers": [
                {"id": "bikes", "name": "Road bikes", "query": "road bike"},
                {"id": "desks", "enabled": False},
            ]
        }
    )
    return TaskRunner(
        provider=provider,
        store=MemoryItemStore(retention_days=30),
        registry=registry_for(lambda: ScriptedCollector(items=[raw_item("1", 250), raw_item("2", 90)])),
        senders={},
        http_client=httpx.AsyncClient(),
    )


@pytest.fixture
def client(runner):
    app.dependency_overrides[get_task_runner] = lambda: runner
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_list_watchers(client):
    response = client.get("/api/watchers")

    assert response.status_code == 200
    body = response.json()
    assert [w["id"] for w in body] == ["bikes", "desks"]
    assert body[0]["name"] == "Road bikes"
    assert body[1]["enabled"] is False


def test_run_watcher_and_list_items(client):
    response = client.post("/api/watchers/bikes/run")

    assert response.status_code == 200
    result = response.json()
    assert result["success"] is True
    assert result["new_items"] == 2

    items = client.get("/api/watchers/bikes/items").json()
    assert items["item_count"] == 2
    assert {i["item_id"] for i in items["items"]} == {"1", "2"}


def test_running_disabled_watcher_reports_disabled(client):
    response = client.post("/api/watchers/desks/run")

    assert response.status_code == 200
    assert response.json()["disabled"] is True


def test_unknown_watcher_is_404(client):
    assert client.post("/api/watchers/nope/run").status_code == 404
    assert client.get("/api/watchers/nope/items").status_code == 404


def test_metrics_endpoint(client):
    response = client.get("/metrics/")

    assert response.status_code == 200
    assert "watcher_runs_total" in response.text

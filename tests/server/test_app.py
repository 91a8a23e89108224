"""Tests for the HTTP routes and error mapping."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from starlette.testclient import TestClient
from tests.helpers import apply

from gnmiwatch.models.config import AppSettings, Inventory
from gnmiwatch.server.app import create_app
from gnmiwatch.telemetry.service import TelemetryService
from gnmiwatch.telemetry.snapshot import SnapshotAPI

if TYPE_CHECKING:
    from gnmiwatch.telemetry.store import TelemetryStore


@pytest.fixture()
def api(inventory: Inventory, store: TelemetryStore) -> SnapshotAPI:
    return SnapshotAPI(inventory, store)


@pytest.fixture()
def client(api: SnapshotAPI) -> TestClient:
    return TestClient(create_app(api))


class TestRoutes:
    def test_list_routers(self, client: TestClient, store: TelemetryStore) -> None:
        apply(store, "leaf1", "/interface[name=mgmt0]/oper-state", "up")
        resp = client.get("/api/routers")
        assert resp.status_code == 200
        routers = resp.json()["routers"]
        assert set(routers) == {"spine1", "leaf1", "leaf2"}
        assert routers["leaf1"]["status"] == "connected"
        assert routers["spine1"]["status"] == "unknown"

    def test_interfaces(self, client: TestClient, store: TelemetryStore) -> None:
        apply(store, "leaf1", "/interface[name=mgmt0]/oper-state", "up")
        body = client.get("/api/routers/leaf1/interfaces").json()
        assert body["total"] == 1
        assert body["interfaces"][0]["name"] == "mgmt0"
        assert body["interfaces"][0]["operState"] == "up"

    def test_system(self, client: TestClient, store: TelemetryStore) -> None:
        apply(store, "spine1", "/platform/control[slot=A]/memory/utilization", 41)
        body = client.get("/api/routers/spine1/system").json()
        assert body["memory"]["utilization"] == 41.0
        assert body["cpu"]["total"] is None

    def test_bgp_and_routes(self, client: TestClient, store: TelemetryStore) -> None:
        apply(
            store,
            "spine1",
            "/network-instance[name=default]/route-table/ipv4-unicast"
            "/route[ipv4-prefix=10.9.0.0/16,route-type=bgp]",
            {},
        )
        bgp = client.get("/api/routers/spine1/bgp").json()
        assert bgp["totalPeers"] == 0
        assert bgp["routes"] == [{"prefix": "10.9.0.0/16", "received": True}]
        routes = client.get("/api/routers/spine1/routes").json()
        assert routes == {"routes": ["10.9.0.0/16"], "total": 1}

    def test_links(self, client: TestClient, store: TelemetryStore) -> None:
        apply(store, "spine1", "/interface[name=ethernet-1/1]/oper-state", "up")
        apply(store, "leaf1", "/interface[name=ethernet-1/49]/oper-state", "up")

        links = client.get("/api/links").json()["links"]
        assert links["spine1-leaf1"]["status"] == "up"
        assert links["spine1-leaf2"]["status"] == "down"

        link = client.get("/api/links/spine1-leaf1").json()
        assert link["router1"]["state"] == "up"

    def test_stats_and_health(self, client: TestClient, store: TelemetryStore) -> None:
        apply(store, "leaf1", "/interface[name=mgmt0]/oper-state", "up")
        stats = client.get("/api/stats").json()
        assert stats["routers"] == {"total": 3, "active": 1, "percentage": 33}

        health = client.get("/health").json()
        assert health["status"] == "ok"
        assert health["connections"]["leaf1"] == "connected"


class TestErrors:
    def test_unknown_device(self, client: TestClient) -> None:
        resp = client.get("/api/routers/nope/interfaces")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "unknown_device"

    def test_unknown_link(self, client: TestClient) -> None:
        resp = client.get("/api/links/nope")
        assert resp.status_code == 404
        assert resp.json()["error"] == {"code": "unknown_link", "message": "Unknown link: nope"}

    def test_never_connected(self, client: TestClient) -> None:
        resp = client.get("/api/routers/spine1/bgp")
        assert resp.status_code == 503
        body = resp.json()
        assert body["error"]["code"] == "data_unavailable"
        assert "never connected" in body["error"]["message"]

    def test_disconnected(self, client: TestClient, store: TelemetryStore) -> None:
        apply(store, "leaf1", "/interface[name=mgmt0]/oper-state", "up")
        store.mark_disconnected("leaf1", "[leaf1] stream ended")
        resp = client.get("/api/routers/leaf1/system")
        assert resp.status_code == 503
        assert "stream ended" in resp.json()["error"]["message"]

    def test_unexpected_error(self, api: SnapshotAPI, monkeypatch: pytest.MonkeyPatch) -> None:
        def boom() -> None:
            raise RuntimeError("boom")

        monkeypatch.setattr(api, "get_aggregate_stats", boom)
        client = TestClient(create_app(api), raise_server_exceptions=False)
        resp = client.get("/api/stats")
        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "internal_error"

    def test_unknown_route(self, client: TestClient) -> None:
        assert client.get("/api/nothing").status_code == 404


class TestMiddleware:
    def test_cors_allows_any_origin(self, client: TestClient) -> None:
        resp = client.get("/health", headers={"Origin": "http://dashboard.local"})
        assert resp.headers["access-control-allow-origin"] == "*"


class TestLifespan:
    def test_service_started_and_stopped(self, inventory: Inventory) -> None:
        service = TelemetryService(inventory, AppSettings())
        started: list[bool] = []

        async def fake_start() -> None:
            started.append(True)

        async def fake_stop() -> None:
            started.append(False)

        service.start = fake_start  # type: ignore[method-assign]
        service.stop = fake_stop  # type: ignore[method-assign]

        with TestClient(create_app(service.snapshot, service=service)) as client:
            assert client.get("/health").status_code == 200
            assert started == [True]
        assert started == [True, False]

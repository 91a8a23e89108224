"""Tests for the staleness sweep."""

from __future__ import annotations

import asyncio

import pytest
from tests.helpers import FakeClock, apply

from gnmiwatch.telemetry.store import DeviceStatus, TelemetryStore
from gnmiwatch.telemetry.supervisor import StalenessSupervisor


def _seed(store: TelemetryStore, device_id: str) -> None:
    apply(store, device_id, "/interface[name=ethernet-1/1]/oper-state", "up")


class TestSweep:
    def test_silent_device_goes_stale(self, store: TelemetryStore, clock: FakeClock) -> None:
        _seed(store, "leaf1")
        supervisor = StalenessSupervisor(store, clock=clock, threshold=30)

        clock.advance(30)
        assert supervisor.sweep() == []
        assert store.status("leaf1") is DeviceStatus.CONNECTED

        clock.advance(1)
        assert supervisor.sweep() == ["leaf1"]
        assert store.status("leaf1") is DeviceStatus.STALE
        assert supervisor.sweep_count == 2

    def test_only_silent_devices_change(self, store: TelemetryStore, clock: FakeClock) -> None:
        _seed(store, "leaf1")
        clock.advance(20)
        _seed(store, "leaf2")
        clock.advance(15)

        supervisor = StalenessSupervisor(store, clock=clock, threshold=30)
        assert supervisor.sweep() == ["leaf1"]
        assert store.status("leaf2") is DeviceStatus.CONNECTED

    def test_stale_recovers_on_next_update(
        self, store: TelemetryStore, clock: FakeClock
    ) -> None:
        _seed(store, "leaf1")
        clock.advance(60)
        StalenessSupervisor(store, clock=clock).sweep()
        assert store.status("leaf1") is DeviceStatus.STALE

        _seed(store, "leaf1")
        assert store.status("leaf1") is DeviceStatus.CONNECTED

    def test_disconnected_device_untouched(
        self, store: TelemetryStore, clock: FakeClock
    ) -> None:
        _seed(store, "leaf1")
        store.mark_disconnected("leaf1", "[leaf1] stream ended")
        clock.advance(120)

        assert StalenessSupervisor(store, clock=clock).sweep() == []
        assert store.status("leaf1") is DeviceStatus.DISCONNECTED

    def test_stale_logged(
        self, store: TelemetryStore, clock: FakeClock, caplog: pytest.LogCaptureFixture
    ) -> None:
        _seed(store, "leaf1")
        clock.advance(45)
        with caplog.at_level("WARNING", logger="gnmiwatch.telemetry.supervisor"):
            StalenessSupervisor(store, clock=clock).sweep()
        assert "[leaf1] No data for over 30s" in caplog.text

    @pytest.mark.parametrize(("interval", "threshold"), [(0, 30), (10, 0), (-1, -1)])
    def test_invalid_parameters(
        self, store: TelemetryStore, interval: float, threshold: float
    ) -> None:
        with pytest.raises(ValueError):
            StalenessSupervisor(store, interval=interval, threshold=threshold)


class TestRun:
    @pytest.mark.asyncio
    async def test_sweeps_every_interval(self, store: TelemetryStore, clock: FakeClock) -> None:
        clock.stop_after = 4
        _seed(store, "leaf1")
        supervisor = StalenessSupervisor(store, clock=clock, interval=10, threshold=25)

        with pytest.raises(asyncio.CancelledError):
            await supervisor.run()

        # The fourth sleep is cancelled before its sweep runs.
        assert clock.sleeps == [10, 10, 10, 10]
        assert supervisor.sweep_count == 3
        assert store.status("leaf1") is DeviceStatus.STALE

"""Tests for wiring sessions and the supervisor into one service."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence

import pytest
from tests.helpers import FakeClock

from gnmiwatch.models.config import AppSettings, Credentials, DeviceConfig, Inventory
from gnmiwatch.telemetry.service import TelemetryService
from gnmiwatch.telemetry.store import DeviceStatus
from gnmiwatch.telemetry.transport import RawNotification, RawUpdate


class HoldingTransport:
    """Sends one oper-state update, then keeps the stream open."""

    def __init__(self, device: DeviceConfig, credentials: Credentials) -> None:
        self.device = device
        self.closed = False

    async def connect(self, timeout: float) -> None:
        pass

    async def subscribe(
        self, subscriptions: Sequence[str], sample_interval: float
    ) -> AsyncIterator[RawNotification]:
        yield RawNotification(
            updates=[
                RawUpdate(
                    path="/interface[name=mgmt0]/oper-state", value={"string_val": "up"}
                )
            ]
        )
        await asyncio.Event().wait()

    async def close(self) -> None:
        self.closed = True


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


class TestTelemetryService:
    def test_sessions_per_device(self, inventory: Inventory, clock: FakeClock) -> None:
        settings = AppSettings(backoff_base=2.0, backoff_max=1.0, sample_interval=1.0)
        service = TelemetryService(inventory, settings, clock=clock)

        assert sorted(service.sessions) == ["leaf1", "leaf2", "spine1"]
        backoff = service.sessions["leaf1"].backoff
        # A maximum below the base is raised to the base.
        assert [backoff.next_delay(), backoff.next_delay()] == [2.0, 2.0]
        assert service.snapshot.inventory is inventory
        assert not service.running

    @pytest.mark.asyncio
    async def test_start_and_stop(self, inventory: Inventory, clock: FakeClock) -> None:
        transports: list[HoldingTransport] = []

        def factory(device: DeviceConfig, credentials: Credentials) -> HoldingTransport:
            transport = HoldingTransport(device, credentials)
            transports.append(transport)
            return transport

        # The supervisor advances the fake clock on every sweep.
        settings = AppSettings(stale_after=1_000_000)
        service = TelemetryService(inventory, settings, transport_factory=factory, clock=clock)
        await service.start()
        await service.start()
        assert service.running
        await _settle()

        assert len(transports) == 3
        for device_id in inventory.devices:
            assert service.store.status(device_id) is DeviceStatus.CONNECTED
        assert service.snapshot.get_interfaces("leaf1")["filtered"] == 1

        await service.stop()
        assert not service.running
        assert all(t.closed for t in transports)

    @pytest.mark.asyncio
    async def test_stop_when_not_started(self, inventory: Inventory) -> None:
        service = TelemetryService(inventory, AppSettings())
        await service.stop()
        assert not service.running

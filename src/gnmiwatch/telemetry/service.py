"""Wires one stream session per device plus the staleness supervisor."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from gnmiwatch.telemetry.backoff import Backoff
from gnmiwatch.telemetry.clock import SystemClock
from gnmiwatch.telemetry.session import StreamSession
from gnmiwatch.telemetry.snapshot import SnapshotAPI
from gnmiwatch.telemetry.store import TelemetryStore
from gnmiwatch.telemetry.supervisor import StalenessSupervisor
from gnmiwatch.telemetry.transport import grpc_transport_factory

if TYPE_CHECKING:
    from gnmiwatch.models.config import AppSettings, Inventory
    from gnmiwatch.telemetry.clock import Clock
    from gnmiwatch.telemetry.transport import TransportFactory

logger = logging.getLogger(__name__)


class TelemetryService:
    """Owns the store, the sessions and the supervisor task."""

    def __init__(
        self,
        inventory: Inventory,
        settings: AppSettings,
        *,
        transport_factory: TransportFactory = grpc_transport_factory,
        clock: Clock | None = None,
    ) -> None:
        self._inventory = inventory
        self._settings = settings
        self._clock: Clock = clock or SystemClock()
        self.store = TelemetryStore(self._clock)
        self.snapshot = SnapshotAPI(inventory, self.store)
        self.sessions: dict[str, StreamSession] = {
            device_id: StreamSession(
                device,
                inventory.credentials_for(device),
                self.store,
                transport_factory=transport_factory,
                clock=self._clock,
                backoff=Backoff(
                    self._clock,
                    base=settings.backoff_base,
                    maximum=max(settings.backoff_max, settings.backoff_base),
                ),
                sample_interval=settings.sample_interval,
                connect_timeout=settings.connect_timeout,
            )
            for device_id, device in inventory.devices.items()
        }
        self.supervisor = StalenessSupervisor(
            self.store,
            clock=self._clock,
            interval=settings.sweep_interval,
            threshold=settings.stale_after,
        )
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self._tasks:
            return
        for device_id, session in self.sessions.items():
            self._tasks.append(asyncio.create_task(session.run(), name=f"session-{device_id}"))
        self._tasks.append(asyncio.create_task(self.supervisor.run(), name="staleness"))
        logger.info("Telemetry service started for %d devices", len(self.sessions))

    async def stop(self) -> None:
        """Cancel every task and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if tasks:
            logger.info("Telemetry service stopped")

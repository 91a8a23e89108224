"""Test doubles shared across test packages."""

from __future__ import annotations

import asyncio
from typing import Any

from gnmiwatch.telemetry.paths import parse_path
from gnmiwatch.telemetry.store import TelemetryStore

T0 = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock; ``sleep`` advances time and records the delay.

    With *stop_after*, the Nth sleep raises ``CancelledError`` so endless
    loops can be driven a fixed number of cycles.
    """

    def __init__(self, start: float = T0, *, stop_after: int | None = None) -> None:
        self.time = start
        self.sleeps: list[float] = []
        self.stop_after = stop_after

    def now(self) -> float:
        return self.time

    def advance(self, seconds: float) -> None:
        self.time += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.time += seconds
        if self.stop_after is not None and len(self.sleeps) >= self.stop_after:
            raise asyncio.CancelledError
        await asyncio.sleep(0)


def apply(store: TelemetryStore, device_id: str, path: str, value: Any) -> Any:
    """Apply an already-decoded value at a path string."""
    return store.apply(device_id, parse_path(path), value)

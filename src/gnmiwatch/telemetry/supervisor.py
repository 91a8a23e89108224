"""Periodic staleness sweep."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gnmiwatch.telemetry.clock import SystemClock

if TYPE_CHECKING:
    from gnmiwatch.telemetry.clock import Clock
    from gnmiwatch.telemetry.store import TelemetryStore

logger = logging.getLogger(__name__)


class StalenessSupervisor:
    """Flips Connected devices to Stale after *threshold* seconds of silence.

    Never reconnects; the owning session handles that.  A Stale device
    returns to Connected on its next update.
    """

    def __init__(
        self,
        store: TelemetryStore,
        *,
        clock: Clock | None = None,
        interval: float = 10.0,
        threshold: float = 30.0,
    ) -> None:
        if interval <= 0 or threshold <= 0:
            raise ValueError("interval and threshold must be positive")
        self._store = store
        self._clock: Clock = clock or SystemClock()
        self._interval = interval
        self._threshold = threshold
        self._sweeps = 0

    @property
    def sweep_count(self) -> int:
        return self._sweeps

    def sweep(self) -> list[str]:
        """Run one pass and return the ids that went stale."""
        self._sweeps += 1
        changed = self._store.mark_stale(self._threshold)
        for device_id in changed:
            logger.warning(
                "[%s] No data for over %.0fs - marking stale", device_id, self._threshold
            )
        return changed

    async def run(self) -> None:
        """Sweep every *interval* seconds until cancelled."""
        while True:
            await self._clock.sleep(self._interval)
            self.sweep()

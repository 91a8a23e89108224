"""Exponential reconnect schedule (5s base -> 60s max, doubling)."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gnmiwatch.telemetry.clock import Clock

_BACKOFF_BASE = 5.0
_BACKOFF_MAX = 60.0
_BACKOFF_FACTOR = 2.0


class Backoff:
    """Capped exponential delay with an explicit next-attempt timestamp.

    Each :meth:`next_delay` call returns ``min(base * factor**n, maximum)``
    where *n* is the number of failures since the last :meth:`reset`, and
    records ``next_attempt_at`` on the injected clock.
    """

    def __init__(
        self,
        clock: Clock,
        *,
        base: float = _BACKOFF_BASE,
        maximum: float = _BACKOFF_MAX,
        factor: float = _BACKOFF_FACTOR,
    ) -> None:
        if base <= 0 or maximum < base or factor < 1:
            raise ValueError(
                f"Invalid backoff parameters: base={base} maximum={maximum} factor={factor}"
            )
        self._clock = clock
        self._base = base
        self._maximum = maximum
        self._factor = factor
        self._failures = 0
        self._next_attempt_at: float | None = None

    @property
    def failures(self) -> int:
        """Consecutive failures since the last reset."""
        return self._failures

    @property
    def next_attempt_at(self) -> float | None:
        """Epoch seconds of the scheduled retry, or ``None`` when not backing off."""
        return self._next_attempt_at

    def peek(self) -> float:
        """The delay the next failure would produce, without recording it."""
        # Exponent is clamped so long outages cannot overflow the float.
        return min(self._base * self._factor ** min(self._failures, 64), self._maximum)

    def next_delay(self) -> float:
        """Record a failure and return how long to wait before retrying."""
        delay = self.peek()
        self._failures += 1
        self._next_attempt_at = self._clock.now() + delay
        return delay

    def reset(self) -> None:
        self._failures = 0
        self._next_attempt_at = None

"""Tests for the reconnect backoff schedule."""

from __future__ import annotations

import pytest
from tests.helpers import T0, FakeClock

from gnmiwatch.telemetry.backoff import Backoff


class TestBackoff:
    def test_default_sequence_is_capped(self, clock: FakeClock) -> None:
        backoff = Backoff(clock)
        delays = [backoff.next_delay() for _ in range(7)]
        assert delays == [5.0, 10.0, 20.0, 40.0, 60.0, 60.0, 60.0]
        assert backoff.failures == 7

    def test_monotone_non_decreasing(self, clock: FakeClock) -> None:
        backoff = Backoff(clock, base=0.5, maximum=30.0, factor=3.0)
        delays = [backoff.next_delay() for _ in range(20)]
        assert delays == sorted(delays)
        assert max(delays) == 30.0

    def test_reset_returns_to_base(self, clock: FakeClock) -> None:
        backoff = Backoff(clock)
        backoff.next_delay()
        backoff.next_delay()
        backoff.reset()
        assert backoff.failures == 0
        assert backoff.next_attempt_at is None
        assert backoff.next_delay() == 5.0

    def test_next_attempt_at_uses_clock(self, clock: FakeClock) -> None:
        backoff = Backoff(clock)
        backoff.next_delay()
        assert backoff.next_attempt_at == T0 + 5
        clock.advance(5)
        backoff.next_delay()
        assert backoff.next_attempt_at == T0 + 5 + 10

    def test_peek_does_not_record(self, clock: FakeClock) -> None:
        backoff = Backoff(clock)
        assert backoff.peek() == 5.0
        assert backoff.peek() == 5.0
        assert backoff.failures == 0

    def test_long_outage_does_not_overflow(self, clock: FakeClock) -> None:
        backoff = Backoff(clock)
        for _ in range(2000):
            delay = backoff.next_delay()
        assert delay == 60.0

    @pytest.mark.parametrize(
        ("base", "maximum", "factor"),
        [(0, 60, 2), (5, 1, 2), (5, 60, 0.5)],
    )
    def test_invalid_parameters(
        self, clock: FakeClock, base: float, maximum: float, factor: float
    ) -> None:
        with pytest.raises(ValueError, match="Invalid backoff"):
            Backoff(clock, base=base, maximum=maximum, factor=factor)

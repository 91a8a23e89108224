"""Per-device subscription lifecycle with reconnect backoff."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import TYPE_CHECKING

from gnmiwatch.errors import DecodeError, TransportError
from gnmiwatch.telemetry.backoff import Backoff
from gnmiwatch.telemetry.clock import SystemClock
from gnmiwatch.telemetry.paths import decode_value, parse_path
from gnmiwatch.telemetry.transport import (
    DEFAULT_SUBSCRIPTIONS,
    SUBSCRIPTION_VERSION,
    grpc_transport_factory,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from gnmiwatch.models.config import Credentials, DeviceConfig
    from gnmiwatch.telemetry.clock import Clock
    from gnmiwatch.telemetry.store import TelemetryStore
    from gnmiwatch.telemetry.transport import (
        GnmiTransport,
        RawNotification,
        TransportFactory,
    )

logger = logging.getLogger(__name__)


class StreamState(enum.StrEnum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    BACKOFF = "backoff"


class StreamSession:
    """Keeps one device subscribed, feeding every update into the store.

    :meth:`run` cycles Connecting -> Streaming -> Backoff until cancelled.
    Every failure, including a clean end of stream, marks the device
    Disconnected and waits out the next backoff delay.  The first message
    received after a reconnect resets the schedule.
    """

    def __init__(
        self,
        device: DeviceConfig,
        credentials: Credentials,
        store: TelemetryStore,
        *,
        transport_factory: TransportFactory = grpc_transport_factory,
        clock: Clock | None = None,
        backoff: Backoff | None = None,
        subscriptions: Sequence[str] = DEFAULT_SUBSCRIPTIONS,
        sample_interval: float = 5.0,
        connect_timeout: float = 10.0,
    ) -> None:
        self._device = device
        self._credentials = credentials
        self._store = store
        self._transport_factory = transport_factory
        self._clock: Clock = clock or SystemClock()
        self._backoff = backoff or Backoff(self._clock)
        self._subscriptions = tuple(subscriptions)
        self._sample_interval = sample_interval
        self._connect_timeout = connect_timeout
        self._state = StreamState.CONNECTING
        self._retries = 0
        self._received = 0
        self._skipped = 0

    @property
    def device_id(self) -> str:
        return self._device.id

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def retries(self) -> int:
        """Consecutive failed attempts since data last arrived."""
        return self._retries

    @property
    def received_count(self) -> int:
        return self._received

    @property
    def skipped_count(self) -> int:
        """Updates dropped because they failed to decode or apply."""
        return self._skipped

    @property
    def backoff(self) -> Backoff:
        return self._backoff

    async def run(self) -> None:
        """Stream until cancelled."""
        while True:
            self._state = StreamState.CONNECTING
            try:
                await self._stream_once()
                raise TransportError(self.device_id, "stream ended")
            except asyncio.CancelledError:
                raise
            except TransportError as exc:
                error = str(exc)
            except Exception as exc:
                logger.exception("[%s] Unexpected stream failure", self.device_id)
                error = f"[{self.device_id}] {type(exc).__name__}: {exc}"

            self._store.mark_disconnected(self.device_id, error)
            self._state = StreamState.BACKOFF
            self._retries += 1
            delay = self._backoff.next_delay()
            logger.warning(
                "%s - reconnecting in %.0fs (attempt %d)", error, delay, self._retries
            )
            await self._clock.sleep(delay)

    async def _stream_once(self) -> None:
        transport = self._transport_factory(self._device, self._credentials)
        try:
            logger.info("[%s] Connecting to %s", self.device_id, self._device.target)
            await transport.connect(self._connect_timeout)
            logger.info(
                "[%s] Subscribing to %d paths (v%d)",
                self.device_id,
                len(self._subscriptions),
                SUBSCRIPTION_VERSION,
            )
            self._state = StreamState.STREAMING
            async for notification in transport.subscribe(
                self._subscriptions, self._sample_interval
            ):
                self.handle_notification(notification)
        finally:
            await self._close(transport)

    async def _close(self, transport: GnmiTransport) -> None:
        try:
            await transport.close()
        except Exception:
            logger.debug("[%s] Error closing transport", self.device_id, exc_info=True)

    def handle_notification(self, notification: RawNotification) -> None:
        """Apply every update in *notification*; a bad update is skipped alone."""
        self._store.mark_alive(self.device_id)
        if self._retries or self._backoff.failures:
            logger.info("[%s] Stream recovered after %d retries", self.device_id, self._retries)
        self._backoff.reset()
        self._retries = 0
        self._received += 1

        for update in notification.updates:
            try:
                path = parse_path(update.path)
                value = decode_value(update.value)
                self._store.apply(self.device_id, path, value)
            except DecodeError as exc:
                self._skipped += 1
                logger.warning("[%s] Skipping update %s: %s", self.device_id, update.path, exc)
            except Exception:
                self._skipped += 1
                logger.exception("[%s] Failed to apply update %s", self.device_id, update.path)

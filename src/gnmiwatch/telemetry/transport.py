"""gNMI Subscribe over gRPC.

Wraps ``grpc.aio`` and the gNMI stubs shipped with pygnmi, and converts
protobuf responses into :class:`RawNotification` objects so nothing above
this module touches protobuf types.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import grpc
from pygnmi.spec.v080 import gnmi_pb2, gnmi_pb2_grpc

from gnmiwatch.errors import TransportError
from gnmiwatch.telemetry.paths import DecodedPath, PathElem, parse_path

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from gnmiwatch.models.config import Credentials, DeviceConfig

logger = logging.getLogger(__name__)

# Bumped whenever the subscription list below changes.
SUBSCRIPTION_VERSION = 1

DEFAULT_SUBSCRIPTIONS: tuple[str, ...] = (
    "interface",
    "interface/subinterface/ipv4/address",
    "interface[name=system0]/subinterface[index=0]/ipv4/address",
    "interface[name=mgmt0]/subinterface[index=0]/ipv4/address",
    "network-instance[name=default]/interface",
    "platform/control",
    "network-instance[name=default]/protocols/bgp/statistics",
    "network-instance[name=default]/protocols/bgp/neighbor",
    "network-instance[name=default]/route-table/ipv4-unicast/route",
)

_CHANNEL_OPTIONS = [
    ("grpc.keepalive_time_ms", 30_000),
    ("grpc.keepalive_timeout_ms", 10_000),
    ("grpc.keepalive_permit_without_calls", 1),
    ("grpc.max_receive_message_length", 16 * 1024 * 1024),
]


@dataclass
class RawUpdate:
    """One update: a path string and a TypedValue as ``{kind: payload}``."""

    path: str
    value: dict[str, Any]


@dataclass
class RawNotification:
    timestamp: int = 0
    updates: list[RawUpdate] = field(default_factory=list)
    sync_response: bool = False


class GnmiTransport(Protocol):
    """What a :class:`~gnmiwatch.telemetry.session.StreamSession` needs from a transport."""

    async def connect(self, timeout: float) -> None: ...

    def subscribe(
        self, subscriptions: Sequence[str], sample_interval: float
    ) -> AsyncIterator[RawNotification]: ...

    async def close(self) -> None: ...


TransportFactory = Callable[["DeviceConfig", "Credentials"], GnmiTransport]


# -- Protobuf conversion ----------------------------------------------------------


def path_to_string(prefix: Any, path: Any) -> str:
    """Render ``prefix + path`` (``gnmi.Path`` messages) as a path string."""
    elems: list[PathElem] = []
    for source in (prefix, path):
        if source is None:
            continue
        for elem in source.elem:
            elems.append(PathElem(name=elem.name, keys=dict(sorted(elem.key.items()))))
    return str(DecodedPath(tuple(elems)))


def typed_value_to_dict(typed: Any) -> dict[str, Any]:
    """Convert a ``gnmi.TypedValue`` into the ``{kind: payload}`` form."""
    kind = typed.WhichOneof("value")
    if kind is None:
        return {}
    payload = getattr(typed, kind)
    if kind == "decimal_val":
        payload = {"digits": payload.digits, "precision": payload.precision}
    elif kind == "leaflist_val":
        payload = [typed_value_to_dict(element) for element in payload.element]
    return {kind: payload}


def notification_from_pb(notification: Any) -> RawNotification:
    return RawNotification(
        timestamp=notification.timestamp,
        updates=[
            RawUpdate(
                path=path_to_string(notification.prefix, update.path),
                value=typed_value_to_dict(update.val),
            )
            for update in notification.update
        ],
    )


def _path_to_pb(text: str) -> Any:
    decoded = parse_path(text)
    return gnmi_pb2.Path(
        elem=[gnmi_pb2.PathElem(name=e.name, key=e.keys) for e in decoded.elems]
    )


def build_subscribe_request(subscriptions: Sequence[str], sample_interval: float) -> Any:
    """Build a STREAM/SAMPLE ``SubscribeRequest`` with JSON_IETF encoding."""
    interval_ns = int(sample_interval * 1_000_000_000)
    return gnmi_pb2.SubscribeRequest(
        subscribe=gnmi_pb2.SubscriptionList(
            mode=gnmi_pb2.SubscriptionList.STREAM,
            encoding=gnmi_pb2.JSON_IETF,
            subscription=[
                gnmi_pb2.Subscription(
                    path=_path_to_pb(path),
                    mode=gnmi_pb2.SAMPLE,
                    sample_interval=interval_ns,
                )
                for path in subscriptions
            ],
        )
    )


# -- gRPC transport -------------------------------------------------------------


class GrpcTransport:
    """Insecure gRPC channel to one device with credentials as call metadata."""

    def __init__(self, device: DeviceConfig, credentials: Credentials) -> None:
        self._device = device
        self._credentials = credentials
        self._channel: grpc.aio.Channel | None = None
        self._call: Any = None

    @property
    def target(self) -> str:
        return self._device.target

    async def connect(self, timeout: float) -> None:
        """Open the channel and wait until it is ready.

        Raises:
            TransportError: If the channel is not ready within *timeout* seconds.
        """
        self._channel = grpc.aio.insecure_channel(self.target, options=_CHANNEL_OPTIONS)
        try:
            await asyncio.wait_for(self._channel.channel_ready(), timeout=timeout)
        except TimeoutError as exc:
            raise TransportError(
                self._device.id, f"Connect to {self.target} timed out after {timeout:.0f}s"
            ) from exc
        logger.info("[%s] Channel ready: %s", self._device.id, self.target)

    async def subscribe(
        self, subscriptions: Sequence[str], sample_interval: float
    ) -> AsyncIterator[RawNotification]:
        """Send the subscription and yield notifications until the stream ends.

        Raises:
            TransportError: On any RPC failure.
        """
        if self._channel is None:
            raise TransportError(self._device.id, "subscribe() called before connect()")

        stub = gnmi_pb2_grpc.gNMIStub(self._channel)
        metadata = (
            ("username", self._credentials.username),
            ("password", self._credentials.password),
        )
        self._call = stub.Subscribe(metadata=metadata)
        try:
            await self._call.write(build_subscribe_request(subscriptions, sample_interval))
            async for response in self._call:
                kind = response.WhichOneof("response")
                if kind == "update":
                    yield notification_from_pb(response.update)
                elif kind == "sync_response":
                    yield RawNotification(sync_response=True)
        except grpc.aio.AioRpcError as exc:
            raise TransportError(
                self._device.id, f"{exc.code().name}: {exc.details() or 'stream failed'}"
            ) from exc

    async def close(self) -> None:
        if self._call is not None:
            self._call.cancel()
            self._call = None
        if self._channel is not None:
            await self._channel.close()
            self._channel = None


def grpc_transport_factory(device: DeviceConfig, credentials: Credentials) -> GnmiTransport:
    return GrpcTransport(device, credentials)

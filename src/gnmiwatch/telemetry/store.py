"""Per-device telemetry cache.

One :class:`DeviceCache` per device, created on the first message from
that device and kept for the life of the process.  Each decoded update is
parsed into a patch first (:mod:`gnmiwatch.telemetry.extract`) and then
committed under the device's lock, so readers on any thread see either
none or all of an update.  Snapshots are deep copies.
"""

from __future__ import annotations

import copy
import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from gnmiwatch.errors import DataUnavailableError
from gnmiwatch.telemetry import extract
from gnmiwatch.telemetry.classify import Classification, Domain, UpdateKind, classify
from gnmiwatch.telemetry.clock import SystemClock

if TYPE_CHECKING:
    from gnmiwatch.telemetry.clock import Clock
    from gnmiwatch.telemetry.paths import DecodedPath

logger = logging.getLogger(__name__)


class DeviceStatus(enum.StrEnum):
    CONNECTED = "connected"
    STALE = "stale"
    DISCONNECTED = "disconnected"
    UNKNOWN = "unknown"

    @property
    def is_active(self) -> bool:
        return self in (DeviceStatus.CONNECTED, DeviceStatus.STALE)


@dataclass(slots=True)
class CounterSample:
    """A raw octet counter reading and when it was taken."""

    value: int
    at: float


def compute_rate(previous: CounterSample | None, value: int, at: float) -> float | None:
    """Return bits/second since *previous*, or ``None`` to leave the rate unchanged.

    No rate is derived without a prior sample or when no time has elapsed.
    A counter that went backwards (device reset) yields ``0.0`` instead of a
    negative spike.
    """
    if previous is None:
        return None
    elapsed = at - previous.at
    if elapsed <= 0:
        return None
    delta = value - previous.value
    if delta < 0:
        return 0.0
    return 8 * delta / elapsed


@dataclass
class InterfaceRecord:
    name: str
    oper_state: str = "unknown"
    ip_addresses: list[str] = field(default_factory=list)
    in_octets: int = 0
    out_octets: int = 0
    in_rate: float = 0.0
    out_rate: float = 0.0
    in_errors: int = 0
    out_errors: int = 0
    last_sample_time: float | None = None
    in_sample: CounterSample | None = field(default=None, repr=False)
    out_sample: CounterSample | None = field(default=None, repr=False)

    @property
    def has_traffic(self) -> bool:
        return self.in_octets > 0 or self.out_octets > 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "operState": self.oper_state,
            "ipAddresses": list(self.ip_addresses),
            "inOctets": self.in_octets,
            "outOctets": self.out_octets,
            "inRate": self.in_rate,
            "outRate": self.out_rate,
            "inErrors": self.in_errors,
            "outErrors": self.out_errors,
            "lastSampleTime": self.last_sample_time,
        }


@dataclass
class SystemMetrics:
    cpu_percent: float | None = None
    memory_utilization_percent: float | None = None
    memory_physical: int | None = None
    memory_used: int | None = None
    memory_free: int | None = None
    management_ip: str | None = None
    management_interface: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "cpu": {"total": self.cpu_percent},
            "memory": {
                "utilization": self.memory_utilization_percent,
                "physical": self.memory_physical,
                "used": self.memory_used,
                "free": self.memory_free,
            },
            "managementIP": self.management_ip,
            "managementInterface": self.management_interface,
        }


@dataclass
class BgpPeer:
    peer_address: str
    session_state: str = "unknown"
    routes_received: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "peerAddress": self.peer_address,
            "sessionState": self.session_state,
            "routesReceived": self.routes_received,
        }


@dataclass
class BgpSummary:
    total_peers: int = 0
    active_peers: int = 0
    peers: dict[str, BgpPeer] = field(default_factory=dict)
    statistics: dict[str, int] = field(default_factory=dict)

    def recompute(self) -> None:
        """Derive the peer totals from the peer table."""
        self.total_peers = len(self.peers)
        self.active_peers = sum(1 for p in self.peers.values() if p.session_state == "established")

    def as_dict(self) -> dict[str, Any]:
        return {
            "totalPeers": self.total_peers,
            "activePeers": self.active_peers,
            "neighbors": [p.as_dict() for p in self.peers.values()],
            "statistics": dict(self.statistics),
        }


@dataclass
class DeviceCache:
    device_id: str
    status: DeviceStatus = DeviceStatus.CONNECTED
    last_update: float | None = None
    last_error: str | None = None
    interfaces: dict[str, InterfaceRecord] = field(default_factory=dict)
    system: SystemMetrics = field(default_factory=SystemMetrics)
    bgp: BgpSummary = field(default_factory=BgpSummary)
    routes: dict[str, None] = field(default_factory=dict)  # ordered set of prefixes


@dataclass(frozen=True)
class DeviceState:
    """Status fields of one device at a point in time."""

    device_id: str
    status: DeviceStatus
    last_update: float | None
    last_error: str | None


def _copy_domain(cache: DeviceCache, domain: Domain) -> Any:
    if domain is Domain.INTERFACE:
        return copy.deepcopy(cache.interfaces)
    if domain is Domain.SYSTEM:
        return copy.deepcopy(cache.system)
    if domain is Domain.BGP:
        return copy.deepcopy(cache.bgp)
    if domain is Domain.ROUTE:
        return list(cache.routes)
    raise ValueError(f"Unknown domain: {domain!r}")


class TelemetryStore:
    """Thread-safe store of the latest telemetry per device.

    Locking is per device: writers for different devices never contend, and
    a reader holds a device's lock only while copying.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock: Clock = clock or SystemClock()
        self._caches: dict[str, DeviceCache] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._pending_errors: dict[str, str] = {}
        self._apply_count = 0

    @property
    def apply_count(self) -> int:
        """Total updates applied since start."""
        return self._apply_count

    # -- Internal ---------------------------------------------------------------

    def _lookup(self, device_id: str) -> tuple[DeviceCache, threading.Lock] | None:
        with self._registry_lock:
            cache = self._caches.get(device_id)
            if cache is None:
                return None
            return cache, self._locks[device_id]

    def _ensure(self, device_id: str) -> tuple[DeviceCache, threading.Lock]:
        with self._registry_lock:
            cache = self._caches.get(device_id)
            if cache is None:
                cache = DeviceCache(
                    device_id=device_id,
                    last_error=self._pending_errors.pop(device_id, None),
                )
                self._caches[device_id] = cache
                self._locks[device_id] = threading.Lock()
                logger.info("[%s] Cache initialized", device_id)
            return cache, self._locks[device_id]

    @staticmethod
    def _touch(cache: DeviceCache, now: float) -> None:
        if cache.status is not DeviceStatus.CONNECTED:
            logger.info("[%s] %s -> connected", cache.device_id, cache.status.value)
        cache.status = DeviceStatus.CONNECTED
        cache.last_update = now

    # -- Writers ----------------------------------------------------------------

    def mark_alive(self, device_id: str) -> None:
        """Record that a message arrived, even one carrying no updates."""
        cache, lock = self._ensure(device_id)
        with lock:
            self._touch(cache, self._clock.now())

    def mark_disconnected(self, device_id: str, error: str) -> None:
        """Flag the device disconnected; cached values are kept."""
        entry = self._lookup(device_id)
        if entry is None:
            with self._registry_lock:
                self._pending_errors[device_id] = error
            return
        cache, lock = entry
        with lock:
            cache.status = DeviceStatus.DISCONNECTED
            cache.last_error = error

    def mark_stale(self, threshold: float) -> list[str]:
        """Move Connected devices silent for more than *threshold* seconds to Stale.

        Returns the ids that changed.
        """
        now = self._clock.now()
        with self._registry_lock:
            entries = [(c, self._locks[d]) for d, c in self._caches.items()]
        changed: list[str] = []
        for cache, lock in entries:
            with lock:
                if (
                    cache.status is DeviceStatus.CONNECTED
                    and cache.last_update is not None
                    and now - cache.last_update > threshold
                ):
                    cache.status = DeviceStatus.STALE
                    changed.append(cache.device_id)
        return changed

    def apply(self, device_id: str, path: DecodedPath, value: Any) -> Classification | None:
        """Apply one decoded update atomically.

        Returns the classification used, or ``None`` when the path matched no
        rule or carried nothing the cache tracks.
        """
        classification = classify(path)
        patch = self._build_patch(classification, path, value)

        now = self._clock.now()
        cache, lock = self._ensure(device_id)
        with lock:
            self._touch(cache, now)
            if classification is None or patch is None:
                logger.debug("[%s] Unhandled update: %s", device_id, path)
                return None
            self._commit(cache, classification, patch, now)
            self._apply_count += 1
        return classification

    @staticmethod
    def _build_patch(
        classification: Classification | None, path: DecodedPath, value: Any
    ) -> Any:
        if classification is None:
            return None
        kind = classification.kind
        if kind in (UpdateKind.INTERFACE, UpdateKind.NETWORK_INSTANCE_INTERFACE):
            return extract.interface_patch(path, value)
        if kind is UpdateKind.SYSTEM:
            return extract.system_patch(path, value) or None
        if kind in (UpdateKind.BGP_PEER, UpdateKind.BGP_STATISTICS):
            return extract.bgp_patch(path, value, peer_update=kind is UpdateKind.BGP_PEER)
        if kind is UpdateKind.ROUTE:
            return extract.route_prefixes(path, value) or None
        return None

    def _commit(
        self, cache: DeviceCache, classification: Classification, patch: Any, now: float
    ) -> None:
        domain = classification.domain
        if domain is Domain.INTERFACE:
            self._commit_interface(cache, patch, now)
        elif domain is Domain.SYSTEM:
            self._commit_system(cache.system, patch)
        elif domain is Domain.BGP:
            self._commit_bgp(cache.bgp, patch)
        elif domain is Domain.ROUTE:
            for prefix in patch:
                if prefix not in cache.routes:
                    cache.routes[prefix] = None
                    logger.debug("[%s] BGP route received: %s", cache.device_id, prefix)

    @staticmethod
    def _commit_interface(cache: DeviceCache, patch: extract.InterfacePatch, now: float) -> None:
        record = cache.interfaces.get(patch.name)
        if record is None:
            record = InterfaceRecord(name=patch.name)
            cache.interfaces[patch.name] = record

        if patch.oper_state is not None:
            record.oper_state = patch.oper_state

        for prefix in patch.prefixes:
            if prefix not in record.ip_addresses:
                record.ip_addresses.append(prefix)
                logger.info("[%s] Interface %s has IP: %s", cache.device_id, patch.name, prefix)

        if patch.is_management and patch.prefixes:
            system = cache.system
            if patch.name == "system0" or system.management_interface != "system0":
                system.management_ip = patch.prefixes[-1].split("/", 1)[0]
                system.management_interface = patch.name

        counters = patch.counters
        if "in-octets" in counters:
            value = counters["in-octets"]
            rate = compute_rate(record.in_sample, value, now)
            if rate is not None:
                record.in_rate = rate
            record.in_octets = value
            record.in_sample = CounterSample(value, now)
            record.last_sample_time = now
        if "out-octets" in counters:
            value = counters["out-octets"]
            rate = compute_rate(record.out_sample, value, now)
            if rate is not None:
                record.out_rate = rate
            record.out_octets = value
            record.out_sample = CounterSample(value, now)
            record.last_sample_time = now
        if "in-errors" in counters:
            record.in_errors = counters["in-errors"]
        if "out-errors" in counters:
            record.out_errors = counters["out-errors"]

    @staticmethod
    def _commit_system(system: SystemMetrics, fields: dict[str, Any]) -> None:
        fallback = fields.pop("cpu_percent_fallback", None)
        if fallback is not None and system.cpu_percent is None and "cpu_percent" not in fields:
            system.cpu_percent = fallback
        for name, value in fields.items():
            setattr(system, name, value)
        if (
            "memory_utilization_percent" not in fields
            and ("memory_used" in fields or "memory_physical" in fields)
            and system.memory_used
            and system.memory_physical
        ):
            system.memory_utilization_percent = system.memory_used / system.memory_physical * 100

    @staticmethod
    def _commit_bgp(bgp: BgpSummary, patch: extract.BgpPatch) -> None:
        bgp.statistics.update(patch.statistics)
        for peer_patch in patch.peers:
            peer = bgp.peers.get(peer_patch.address)
            if peer is None:
                peer = BgpPeer(peer_address=peer_patch.address)
                bgp.peers[peer_patch.address] = peer
            if peer_patch.session_state is not None:
                peer.session_state = peer_patch.session_state
            if peer_patch.routes_received is not None:
                peer.routes_received = max(peer_patch.routes_received, 0)
        bgp.recompute()

    # -- Readers ----------------------------------------------------------------

    def device_ids(self) -> list[str]:
        with self._registry_lock:
            return list(self._caches)

    def state(self, device_id: str) -> DeviceState:
        entry = self._lookup(device_id)
        if entry is None:
            with self._registry_lock:
                error = self._pending_errors.get(device_id)
            return DeviceState(device_id, DeviceStatus.UNKNOWN, None, error)
        cache, lock = entry
        with lock:
            return DeviceState(device_id, cache.status, cache.last_update, cache.last_error)

    def status(self, device_id: str) -> DeviceStatus:
        return self.state(device_id).status

    def snapshot(self, device_id: str, domain: Domain) -> Any:
        """Return a deep copy of one domain of a device's cache.

        * ``INTERFACE`` -> ``dict[str, InterfaceRecord]``
        * ``SYSTEM`` -> :class:`SystemMetrics`
        * ``BGP`` -> :class:`BgpSummary`
        * ``ROUTE`` -> ``list[str]``

        Raises:
            DataUnavailableError: No message has ever been received from the
                device, or it is currently disconnected.
        """
        (result,) = self.snapshots(device_id, domain)
        return result

    def snapshots(self, device_id: str, *domains: Domain) -> tuple[Any, ...]:
        """Copy several domains of one device under a single lock acquisition."""
        entry = self._lookup(device_id)
        if entry is None:
            raise DataUnavailableError(device_id, "never connected")
        cache, lock = entry
        with lock:
            if cache.status is DeviceStatus.DISCONNECTED:
                raise DataUnavailableError(device_id, cache.last_error or "disconnected")
            return tuple(_copy_domain(cache, domain) for domain in domains)

    def oper_state(self, device_id: str, interface: str) -> str | None:
        """Last known oper-state of *interface*, whatever the device status.

        ``None`` when the device never reported the interface.
        """
        entry = self._lookup(device_id)
        if entry is None:
            return None
        cache, lock = entry
        with lock:
            record = cache.interfaces.get(interface)
            return record.oper_state if record is not None else None

    def peek(self, device_id: str) -> DeviceCache | None:
        """Deep copy of the whole cache regardless of status, or ``None``."""
        entry = self._lookup(device_id)
        if entry is None:
            return None
        cache, lock = entry
        with lock:
            return copy.deepcopy(cache)

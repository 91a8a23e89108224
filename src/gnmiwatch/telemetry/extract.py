"""Turn decoded (path, value) pairs into domain patches.

Devices encode the same leaf several ways: a whole container as a JSON
object, a nested ``statistics`` object, or one scalar update per leaf
path.  Keys may also carry a YANG module prefix
(``srl_nokia-interfaces:oper-state``).  Every encoding resolves to the
same canonical patch fields here; :mod:`gnmiwatch.telemetry.store`
commits the patch in one step.

All functions are pure.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from gnmiwatch.telemetry.paths import DecodedPath

logger = logging.getLogger(__name__)

MANAGEMENT_INTERFACES = ("system0", "mgmt0")

_OPER_UP = frozenset({"up"})
_OPER_DOWN = frozenset({"down", "lower-layer-down", "not-present", "dormant"})


# -- Scalar coercion ------------------------------------------------------------


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return None


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _get(value: Mapping[str, Any], key: str) -> Any:
    """Look up *key*, tolerating a ``module:`` prefix on the stored key."""
    if key in value:
        return value[key]
    suffix = ":" + key
    for k, v in value.items():
        if isinstance(k, str) and k.endswith(suffix):
            return v
    return None


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def base_interface_name(name: str) -> str:
    """Strip a subinterface suffix: ``ethernet-1/1.0`` -> ``ethernet-1/1``."""
    return name.split(".", 1)[0]


def normalize_oper_state(value: Any) -> str:
    state = str(value).strip().lower() if value is not None else ""
    if state in _OPER_UP:
        return "up"
    if state in _OPER_DOWN:
        return "down"
    return "unknown"


# -- Interfaces -----------------------------------------------------------------


_COUNTER_LEAVES = ("in-octets", "out-octets", "in-errors", "out-errors")


@dataclass
class InterfacePatch:
    """Changes for one interface, keyed by its base name."""

    name: str
    oper_state: str | None = None
    prefixes: list[str] = field(default_factory=list)
    counters: dict[str, int] = field(default_factory=dict)

    @property
    def is_management(self) -> bool:
        return self.name in MANAGEMENT_INTERFACES


def _collect_counters(source: Mapping[str, Any], counters: dict[str, int]) -> None:
    for leaf in _COUNTER_LEAVES:
        raw = _get(source, leaf)
        if raw is None:
            continue
        parsed = _to_int(raw)
        if parsed is None:
            logger.debug("Ignoring non-numeric %s: %r", leaf, raw)
            continue
        counters[leaf] = parsed


def _add_prefix(prefixes: list[str], prefix: Any) -> None:
    if prefix is None:
        return
    text = str(prefix)
    if text and text not in prefixes:
        prefixes.append(text)


def _collect_addresses(container: Any, prefixes: list[str]) -> None:
    """Collect ``ip-prefix`` values from an ``{ipv4: {address: [...]}}`` container."""
    if not isinstance(container, Mapping):
        return
    for family in ("ipv4", "ipv6"):
        block = _get(container, family)
        if not isinstance(block, Mapping):
            continue
        for addr in _as_list(_get(block, "address")):
            if isinstance(addr, Mapping):
                _add_prefix(prefixes, _get(addr, "ip-prefix"))


def interface_patch(path: DecodedPath, value: Any) -> InterfacePatch | None:
    """Extract an :class:`InterfacePatch`, or ``None`` when no name is present."""
    raw_name = path.key("interface", "name")
    if raw_name is None and isinstance(value, Mapping):
        raw_name = _get(value, "name")
    if not raw_name:
        return None

    patch = InterfacePatch(name=base_interface_name(str(raw_name)))

    if path.has("address"):
        _add_prefix(patch.prefixes, path.key("address", "ip-prefix"))

    if isinstance(value, Mapping):
        oper = _get(value, "oper-state")
        if oper is not None:
            patch.oper_state = normalize_oper_state(oper)
        _collect_counters(value, patch.counters)
        stats = _get(value, "statistics")
        if isinstance(stats, Mapping):
            _collect_counters(stats, patch.counters)
        _add_prefix(patch.prefixes, _get(value, "ip-prefix"))
        _collect_addresses(value, patch.prefixes)
        for sub in _as_list(_get(value, "subinterface")):
            _collect_addresses(sub, patch.prefixes)
        return patch

    leaf = path.last
    if leaf == "oper-state":
        patch.oper_state = normalize_oper_state(value)
    elif leaf in _COUNTER_LEAVES and path.has("statistics"):
        parsed = _to_int(value)
        if parsed is not None:
            patch.counters[leaf] = parsed
    elif leaf == "ip-prefix":
        _add_prefix(patch.prefixes, value)
    return patch


# -- System ---------------------------------------------------------------------


def _cpu_from_total(total: Mapping[str, Any], fields: dict[str, Any]) -> None:
    instant = _to_float(_get(total, "instant"))
    if instant is not None:
        fields["cpu_percent"] = instant
        return
    average = _to_float(_get(total, "average-1"))
    if average is not None:
        fields["cpu_percent"] = average


def _cpu_from_container(cpu: Any, fields: dict[str, Any]) -> None:
    """Handle ``cpu`` as ``{total: {...}}``, ``{total: n}``/``{average: n}`` or a keyed list."""
    if isinstance(cpu, list):
        for entry in cpu:
            if isinstance(entry, Mapping) and str(_get(entry, "index")) == "all":
                _cpu_from_container(entry, fields)
        return
    if not isinstance(cpu, Mapping):
        return
    total = _get(cpu, "total")
    if isinstance(total, Mapping):
        _cpu_from_total(total, fields)
    elif _to_float(total) is not None:
        fields["cpu_percent"] = _to_float(total)
    average = _to_float(_get(cpu, "average"))
    if average is not None:
        fields["cpu_percent"] = average


def _memory_from(memory: Mapping[str, Any], fields: dict[str, Any]) -> None:
    utilization = _to_float(_get(memory, "utilization"))
    if utilization is not None:
        fields["memory_utilization_percent"] = utilization
    for source, target in (
        ("physical", "memory_physical"),
        ("reserved", "memory_used"),
        ("used", "memory_used"),
        ("free", "memory_free"),
    ):
        parsed = _to_int(_get(memory, source))
        if parsed is not None:
            fields[target] = parsed


_SCALAR_MEMORY = {
    "utilization": "memory_utilization_percent",
    "physical": "memory_physical",
    "reserved": "memory_used",
    "used": "memory_used",
    "free": "memory_free",
}


def system_patch(path: DecodedPath, value: Any) -> dict[str, Any]:
    """Extract canonical system fields from nested or flat encodings.

    Keys are :class:`~gnmiwatch.telemetry.store.SystemMetrics` attribute
    names, plus ``cpu_percent_fallback`` for a flat ``average-1`` leaf that
    should only fill an empty CPU reading.
    """
    fields: dict[str, Any] = {}

    if isinstance(value, Mapping):
        if path.has("cpu"):
            if path.last == "total":
                _cpu_from_total(value, fields)
            else:
                _cpu_from_container(value, fields)
        if path.has("memory"):
            _memory_from(value, fields)
        cpu = _get(value, "cpu")
        if cpu is not None:
            _cpu_from_container(cpu, fields)
        memory = _get(value, "memory")
        if isinstance(memory, Mapping):
            _memory_from(memory, fields)
        return fields

    leaf = path.last
    if path.has("cpu"):
        number = _to_float(value)
        if number is None:
            return fields
        if leaf in ("instant", "total"):
            fields["cpu_percent"] = number
        elif leaf == "average-1":
            fields["cpu_percent_fallback"] = number
    elif path.has("memory") and leaf in _SCALAR_MEMORY:
        target = _SCALAR_MEMORY[leaf]
        number = _to_float(value) if target == "memory_utilization_percent" else _to_int(value)
        if number is not None:
            fields[target] = number
    return fields


# -- BGP ------------------------------------------------------------------------


@dataclass
class PeerPatch:
    address: str
    session_state: str | None = None
    routes_received: int | None = None


@dataclass
class BgpPatch:
    peers: list[PeerPatch] = field(default_factory=list)
    statistics: dict[str, int] = field(default_factory=dict)


def _received_routes(value: Mapping[str, Any]) -> int | None:
    direct = _to_int(_get(value, "received-routes"))
    if direct is not None:
        return direct
    afi_safi = _get(value, "afi-safi")
    if not isinstance(afi_safi, list):
        return None
    total: int | None = None
    for family in afi_safi:
        if not isinstance(family, Mapping):
            continue
        count = _to_int(_get(family, "received-routes"))
        if count is None:
            prefixes = _get(family, "prefixes")
            if isinstance(prefixes, Mapping):
                count = _to_int(_get(prefixes, "received"))
        if count is not None:
            total = (total or 0) + count
    return total


def _peer_from_mapping(
    value: Mapping[str, Any], fallback_address: str | None
) -> PeerPatch | None:
    address = _get(value, "peer-address") or fallback_address
    if not address:
        return None
    patch = PeerPatch(address=str(address))
    state = _get(value, "session-state")
    if state is not None:
        patch.session_state = str(state).lower()
    patch.routes_received = _received_routes(value)
    return patch


def bgp_patch(path: DecodedPath, value: Any, *, peer_update: bool) -> BgpPatch:
    patch = BgpPatch()
    path_address = path.key("neighbor", "peer-address")

    if peer_update:
        if isinstance(value, Mapping):
            peer = _peer_from_mapping(value, path_address)
            if peer is not None:
                patch.peers.append(peer)
        elif path_address:
            peer = PeerPatch(address=path_address)
            if path.last == "session-state" and value is not None:
                peer.session_state = str(value).lower()
            elif path.last == "received-routes":
                peer.routes_received = _to_int(value)
            patch.peers.append(peer)
        return patch

    if isinstance(value, Mapping):
        stats = _get(value, "statistics")
        if isinstance(stats, Mapping):
            source: Mapping[str, Any] = stats
        elif path.last == "statistics":
            source = value
        else:
            source = {}
        for key, raw in source.items():
            if isinstance(raw, (Mapping, list)):
                continue
            parsed = _to_int(raw)
            if parsed is not None:
                patch.statistics[str(key).rsplit(":", 1)[-1]] = parsed
        for entry in _as_list(_get(value, "neighbor")):
            if isinstance(entry, Mapping):
                peer = _peer_from_mapping(entry, None)
                if peer is not None:
                    patch.peers.append(peer)
    else:
        parsed = _to_int(value)
        if parsed is not None and path.last:
            patch.statistics[path.last] = parsed
    return patch


# -- Routes ---------------------------------------------------------------------


_PREFIX_KEYS = ("ipv4-prefix", "ipv6-prefix", "prefix")


def _is_bgp_route(markers: Mapping[str, Any]) -> bool:
    route_type = _get(markers, "route-type")
    owner = _get(markers, "route-owner")
    return (route_type is not None and str(route_type).rsplit(":", 1)[-1] == "bgp") or (
        owner is not None and str(owner) == "bgp_mgr"
    )


def route_prefixes(path: DecodedPath, value: Any) -> list[str]:
    """Return the BGP-originated route prefixes named by one update."""
    selectors = path.selector_values()
    found: list[str] = []

    entries = value if isinstance(value, list) else [value]
    for entry in entries:
        markers: dict[str, Any] = dict(selectors)
        if isinstance(entry, Mapping):
            markers.update(entry)
        prefix = next((p for p in (_get(markers, k) for k in _PREFIX_KEYS) if p), None)
        if prefix and _is_bgp_route(markers):
            _add_prefix(found, prefix)
    return found

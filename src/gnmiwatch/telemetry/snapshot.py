"""Read-only query boundary over the telemetry store.

Every method returns plain JSON-ready structures built from deep copies,
so callers can never reach into the live cache.  Keys use the camelCase
names the dashboard consumes.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from gnmiwatch.errors import UnknownDeviceError, UnknownLinkError
from gnmiwatch.telemetry.classify import Domain

if TYPE_CHECKING:
    from gnmiwatch.models.config import DeviceConfig, Inventory, LinkConfig
    from gnmiwatch.telemetry.store import InterfaceRecord, TelemetryStore

logger = logging.getLogger(__name__)

_MANAGEMENT_MARKERS = ("mgmt", "system")


def _iso(epoch: float | None) -> str | None:
    if epoch is None:
        return None
    return datetime.fromtimestamp(epoch, UTC).isoformat()


def is_displayable(record: InterfaceRecord) -> bool:
    """Interface filter: any address, or up with traffic or a management name."""
    if record.ip_addresses:
        return True
    if record.oper_state != "up":
        return False
    return record.has_traffic or any(m in record.name for m in _MANAGEMENT_MARKERS)


class SnapshotAPI:
    """Queries for the HTTP layer and CLI."""

    def __init__(self, inventory: Inventory, store: TelemetryStore) -> None:
        self._inventory = inventory
        self._store = store

    @property
    def inventory(self) -> Inventory:
        return self._inventory

    def _device(self, device_id: str) -> DeviceConfig:
        device = self._inventory.devices.get(device_id)
        if device is None:
            raise UnknownDeviceError(device_id)
        return device

    def _link(self, link_id: str) -> LinkConfig:
        link = self._inventory.links.get(link_id)
        if link is None:
            raise UnknownLinkError(link_id)
        return link

    # -- Devices ----------------------------------------------------------------

    def list_devices(self) -> dict[str, dict[str, Any]]:
        devices: dict[str, dict[str, Any]] = {}
        for device_id, device in self._inventory.devices.items():
            state = self._store.state(device_id)
            devices[device_id] = {
                "name": device.display_name,
                "type": device.role,
                "host": device.host,
                "port": device.port,
                "status": state.status.value,
                "lastUpdate": _iso(state.last_update),
                "lastError": state.last_error,
            }
        return devices

    def get_interfaces(self, device_id: str) -> dict[str, Any]:
        self._device(device_id)
        records = self._store.snapshot(device_id, Domain.INTERFACE)
        shown = [r.as_dict() for r in records.values() if is_displayable(r)]
        return {"interfaces": shown, "total": len(records), "filtered": len(shown)}

    def get_system(self, device_id: str) -> dict[str, Any]:
        self._device(device_id)
        return self._store.snapshot(device_id, Domain.SYSTEM).as_dict()

    def get_bgp(self, device_id: str) -> dict[str, Any]:
        self._device(device_id)
        bgp, routes = self._store.snapshots(device_id, Domain.BGP, Domain.ROUTE)
        summary = bgp.as_dict()
        summary["routes"] = [{"prefix": prefix, "received": True} for prefix in routes]
        return summary

    def get_routes(self, device_id: str) -> dict[str, Any]:
        self._device(device_id)
        routes = self._store.snapshot(device_id, Domain.ROUTE)
        return {"routes": routes, "total": len(routes)}

    # -- Links ------------------------------------------------------------------

    def _endpoint(self, device_id: str, interface: str) -> dict[str, Any]:
        device = self._device(device_id)
        # Retained values from a disconnected device still count.
        state = self._store.oper_state(device_id, interface)
        return {
            "id": device_id,
            "name": device.display_name,
            "interface": interface,
            "state": state or "unknown",
            "connected": self._store.status(device_id).is_active,
        }

    def get_link_status(self, link_id: str) -> dict[str, Any]:
        """A link is up only when both endpoint interfaces report up."""
        link = self._link(link_id)
        side_a = self._endpoint(link.device_a, link.interface_a)
        side_b = self._endpoint(link.device_b, link.interface_b)
        up = side_a["state"] == "up" and side_b["state"] == "up"
        return {"status": "up" if up else "down", "router1": side_a, "router2": side_b}

    def list_links(self) -> dict[str, dict[str, Any]]:
        return {link_id: self.get_link_status(link_id) for link_id in self._inventory.links}

    # -- Aggregates -------------------------------------------------------------

    def get_aggregate_stats(self) -> dict[str, Any]:
        total = len(self._inventory.devices)
        roles: Counter[str] = Counter()
        active_roles: Counter[str] = Counter()
        for device_id, device in self._inventory.devices.items():
            roles[device.role] += 1
            if self._store.status(device_id).is_active:
                active_roles[device.role] += 1
        active = sum(active_roles.values())
        return {
            "routers": {
                "total": total,
                "active": active,
                # Half rounds up, as the dashboard expects.
                "percentage": int(active * 100 / total + 0.5) if total else 0,
            },
            "byRole": {
                role: {"total": count, "active": active_roles[role]}
                for role, count in roles.items()
            },
        }

    def health(self) -> dict[str, Any]:
        connections = {
            device_id: self._store.status(device_id).value
            for device_id in self._inventory.devices
        }
        return {"status": "ok", "service": "gnmiwatch", "connections": connections}

"""Shared fixtures: a deterministic clock, a store and a small inventory."""

from __future__ import annotations

import pytest

from gnmiwatch.models.config import Inventory
from gnmiwatch.telemetry.store import TelemetryStore
from tests.helpers import FakeClock


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(clock: FakeClock) -> TelemetryStore:
    return TelemetryStore(clock)


@pytest.fixture()
def inventory() -> Inventory:
    return Inventory.model_validate(
        {
            "credentials": {"username": "admin", "password": "secret"},
            "devices": {
                "spine1": {"host": "10.0.0.1", "port": 57401, "name": "Spine-1", "role": "spine"},
                "leaf1": {"host": "10.0.0.2", "port": 57401, "name": "Leaf-1", "role": "leaf"},
                "leaf2": {"host": "10.0.0.3", "role": "leaf"},
            },
            "links": {
                "spine1-leaf1": {
                    "device_a": "spine1",
                    "interface_a": "ethernet-1/1",
                    "device_b": "leaf1",
                    "interface_b": "ethernet-1/49",
                },
                "spine1-leaf2": {
                    "device_a": "spine1",
                    "interface_a": "ethernet-1/2",
                    "device_b": "leaf2",
                    "interface_b": "ethernet-1/49",
                },
            },
        }
    )

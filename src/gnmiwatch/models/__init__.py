from __future__ import annotations

from gnmiwatch.models.config import (
    DEFAULT_INVENTORY,
    AppSettings,
    Credentials,
    DeviceConfig,
    Inventory,
    LinkConfig,
)

__all__ = [
    "DEFAULT_INVENTORY",
    "AppSettings",
    "Credentials",
    "DeviceConfig",
    "Inventory",
    "LinkConfig",
]

"""Settings and static device/topology inventory."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gnmiwatch.errors import ConfigError


class AppSettings(BaseSettings):
    """Application-wide settings populated from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="GNMIWATCH_",
        extra="ignore",
    )

    inventory_file: str | None = None
    host: str = "127.0.0.1"
    port: int = 3001
    username: str | None = None
    password: str | None = None
    stale_after: float = Field(default=30.0, gt=0)
    sweep_interval: float = Field(default=10.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    backoff_base: float = Field(default=5.0, gt=0)
    backoff_max: float = Field(default=60.0, gt=0)
    sample_interval: float = Field(default=5.0, gt=0)


class Credentials(BaseModel):
    """Fixed credentials passed to the device as call metadata."""

    model_config = ConfigDict(frozen=True)

    username: str = "admin"
    password: str = ""


class DeviceConfig(BaseModel):
    """A streaming-telemetry device from the roster."""

    model_config = ConfigDict(frozen=True)

    id: str
    host: str
    port: int = 57400
    name: str = ""
    role: str = "unknown"
    credentials: Credentials | None = None

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def display_name(self) -> str:
        return self.name or self.id


class LinkConfig(BaseModel):
    """A physical link between two device interfaces."""

    model_config = ConfigDict(frozen=True)

    id: str
    device_a: str
    interface_a: str
    device_b: str
    interface_b: str


class Inventory(BaseModel):
    """Device roster plus link table, loaded once at startup.

    The JSON file mirrors this model; ids are taken from the mapping keys::

        {
          "credentials": {"username": "admin", "password": "..."},
          "devices": {"dc1": {"host": "172.20.20.5", "port": 57401, "role": "spine"}},
          "links": {"dc1-leaf1": {"device_a": "dc1", "interface_a": "ethernet-1/1",
                                  "device_b": "leaf1", "interface_b": "ethernet-1/1"}}
        }
    """

    model_config = ConfigDict(frozen=True)

    credentials: Credentials = Field(default_factory=Credentials)
    devices: dict[str, DeviceConfig] = Field(default_factory=dict)
    links: dict[str, LinkConfig] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _inject_ids(cls, data: Any) -> Any:
        """Fill each device/link ``id`` from its mapping key."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for section in ("devices", "links"):
            entries = data.get(section)
            if isinstance(entries, dict):
                data[section] = {
                    key: ({"id": key, **entry} if isinstance(entry, dict) else entry)
                    for key, entry in entries.items()
                }
        return data

    @model_validator(mode="after")
    def _check_links(self) -> Inventory:
        for link in self.links.values():
            for device_id in (link.device_a, link.device_b):
                if device_id not in self.devices:
                    raise ValueError(f"link {link.id} references unknown device {device_id}")
        return self

    def credentials_for(self, device: DeviceConfig) -> Credentials:
        return device.credentials or self.credentials

    def with_credentials(
        self, *, username: str | None = None, password: str | None = None
    ) -> Inventory:
        """Return a new inventory with default credential overrides applied."""
        if username is None and password is None:
            return self
        creds = self.credentials.model_copy(
            update={
                k: v for k, v in (("username", username), ("password", password)) if v is not None
            }
        )
        return self.model_copy(update={"credentials": creds})

    @classmethod
    def load(cls, path: Path | str | None = None) -> Inventory:
        """Load the inventory from a JSON file.

        Falls back to the built-in lab inventory when *path* is ``None``.

        Raises:
            ConfigError: If the file is missing, not JSON, or fails validation.
        """
        if path is None:
            return cls.model_validate(DEFAULT_INVENTORY)

        resolved = Path(path).expanduser()
        if not resolved.exists():
            raise ConfigError(f"Inventory file not found: {resolved}")
        try:
            raw = json.loads(resolved.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Inventory file {resolved} is not valid JSON: {exc}") from exc
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError(f"Invalid inventory {resolved}: {exc}") from exc


# Containerlab SR Linux fabric; 57401 is the insecure gNMI port on SR Linux v24.
DEFAULT_INVENTORY: dict[str, Any] = {
    "devices": {
        "dc1": {"host": "172.20.20.5", "port": 57401, "name": "DC-1", "role": "spine"},
        "dc2": {"host": "172.20.20.8", "port": 57401, "name": "DC-2", "role": "spine"},
        "leaf1": {"host": "172.20.20.2", "port": 57401, "name": "Leaf-1", "role": "leaf"},
        "leaf2": {"host": "172.20.20.3", "port": 57401, "name": "Leaf-2", "role": "leaf"},
    },
    "links": {
        "dc1-leaf1": {
            "device_a": "dc1",
            "interface_a": "ethernet-1/1",
            "device_b": "leaf1",
            "interface_b": "ethernet-1/1",
        },
        "dc1-leaf2": {
            "device_a": "dc1",
            "interface_a": "ethernet-1/2",
            "device_b": "leaf2",
            "interface_b": "ethernet-1/1",
        },
        "dc2-leaf2": {
            "device_a": "dc2",
            "interface_a": "ethernet-1/1",
            "device_b": "leaf2",
            "interface_b": "ethernet-1/2",
        },
        "dc2-leaf1": {
            "device_a": "dc2",
            "interface_a": "ethernet-1/2",
            "device_b": "leaf1",
            "interface_b": "ethernet-1/3",
        },
    },
}

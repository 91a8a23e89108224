"""Error taxonomy shared by the telemetry core and the HTTP boundary."""

from __future__ import annotations


class GnmiwatchError(Exception):
    """Base class for all gnmiwatch errors."""


class ConfigError(GnmiwatchError):
    """The device inventory or settings are invalid."""


class TransportError(GnmiwatchError):
    """Connecting to a device or reading its stream failed.

    Recovered by the owning session via backoff.
    """

    def __init__(self, device_id: str, message: str) -> None:
        super().__init__(f"[{device_id}] {message}")
        self.device_id = device_id


class DecodeError(GnmiwatchError, ValueError):
    """A single path or value could not be decoded."""


class UnknownDeviceError(GnmiwatchError, LookupError):
    """A query referenced a device id outside the configured roster."""

    code = "unknown_device"

    def __init__(self, device_id: str) -> None:
        super().__init__(f"Unknown device: {device_id}")
        self.device_id = device_id


class UnknownLinkError(GnmiwatchError, LookupError):
    """A query referenced a link id outside the configured topology."""

    code = "unknown_link"

    def __init__(self, link_id: str) -> None:
        super().__init__(f"Unknown link: {link_id}")
        self.link_id = link_id


class DataUnavailableError(GnmiwatchError):
    """The device is configured but never connected or is currently disconnected."""

    code = "data_unavailable"

    def __init__(self, device_id: str, reason: str = "no telemetry received") -> None:
        super().__init__(f"Device {device_id} unavailable: {reason}")
        self.device_id = device_id
        self.reason = reason

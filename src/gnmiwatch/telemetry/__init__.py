"""gNMI streaming telemetry: decoding, caching, sessions and snapshots."""

from __future__ import annotations

from gnmiwatch.telemetry.backoff import Backoff
from gnmiwatch.telemetry.classify import Classification, Domain, UpdateKind, classify
from gnmiwatch.telemetry.clock import Clock, SystemClock
from gnmiwatch.telemetry.paths import DecodedPath, PathElem, decode_value, format_path, parse_path
from gnmiwatch.telemetry.service import TelemetryService
from gnmiwatch.telemetry.session import StreamSession, StreamState
from gnmiwatch.telemetry.snapshot import SnapshotAPI
from gnmiwatch.telemetry.store import DeviceStatus, TelemetryStore
from gnmiwatch.telemetry.supervisor import StalenessSupervisor

__all__ = [
    "Backoff",
    "Classification",
    "Clock",
    "DecodedPath",
    "DeviceStatus",
    "Domain",
    "PathElem",
    "SnapshotAPI",
    "StalenessSupervisor",
    "StreamSession",
    "StreamState",
    "SystemClock",
    "TelemetryService",
    "TelemetryStore",
    "UpdateKind",
    "classify",
    "decode_value",
    "format_path",
    "parse_path",
]

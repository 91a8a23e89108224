"""gnmiwatch: gNMI streaming telemetry ingestion and snapshot cache."""

from __future__ import annotations

__version__ = "0.1.0"

from __future__ import annotations

import enum
import json
from dataclasses import asdict, is_dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel


def _to_jsonable(obj: Any) -> Any:
    """Reduce *obj* to plain JSON types.

    Telemetry records expose ``as_dict()`` with the camelCase keys the HTTP
    API uses, and that form wins over a field-by-field dump.  Pydantic models
    drop ``None`` fields.
    """
    as_dict = getattr(obj, "as_dict", None)
    if callable(as_dict):
        return _to_jsonable(as_dict())
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", exclude_none=True)
    if isinstance(obj, enum.Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return _to_jsonable(asdict(obj))
    if isinstance(obj, dict):
        return {str(key): _to_jsonable(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [_to_jsonable(item) for item in obj]
    return obj


def _envelope(ok: bool, command: str, key: str, body: Any) -> str:
    return json.dumps(
        {
            "ok": ok,
            "command": command,
            key: body,
            "timestamp": datetime.now(UTC).isoformat(),
        },
        indent=2,
        default=str,
    )


def format_json_response(*, data: Any, command: str) -> str:
    """``{"ok": true, "command", "data", "timestamp"}`` for a successful command."""
    return _envelope(True, command, "data", _to_jsonable(data))


def format_json_error(*, code: str, message: str, command: str, **extra: Any) -> str:
    """``{"ok": false, "command", "error": {code, message, ...}, "timestamp"}``."""
    return _envelope(False, command, "error", {"code": code, "message": message, **extra})

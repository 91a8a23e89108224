"""Decode gNMI path strings and TypedValue unions into plain Python.

Path grammar (gNMI path conventions)::

    /elem[key=value,key2=value2]/elem2[key=value]/leaf

Slashes inside ``[...]`` belong to the key value, so
``interface[name=ethernet-1/1]`` is a single element.  Inside a selector a
backslash escapes ``]`` and ``\\``.  YANG module prefixes on element names
(``srl_nokia-platform-cpu:cpu``) are stripped.

TypedValue union, passed as a one-entry mapping ``{kind: payload}``::

    string_val / ascii_val      -> str
    int_val / uint_val          -> int
    bool_val                    -> bool
    float_val / double_val      -> float
    decimal_val                 -> digits * 10**-precision
    json_val / json_ietf_val    -> parsed document (dict / list / scalars)
    leaflist_val                -> list of decoded elements

These rules are a compatibility contract with the device firmware.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from gnmiwatch.errors import DecodeError


@dataclass(frozen=True)
class PathElem:
    """One path segment with its (possibly empty) key selectors."""

    name: str
    keys: dict[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        if not self.keys:
            return self.name
        selectors = ",".join(f"{k}={_escape(v)}" for k, v in self.keys.items())
        return f"{self.name}[{selectors}]"


@dataclass(frozen=True)
class DecodedPath:
    """An ordered sequence of :class:`PathElem`."""

    elems: tuple[PathElem, ...]

    def __str__(self) -> str:
        return "/" + "/".join(str(e) for e in self.elems)

    def __len__(self) -> int:
        return len(self.elems)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(e.name for e in self.elems)

    @property
    def last(self) -> str:
        return self.elems[-1].name if self.elems else ""

    def has(self, *names: str) -> bool:
        """Return ``True`` if every name in *names* appears in the path."""
        present = set(self.names)
        return all(n in present for n in names)

    def has_any(self, *names: str) -> bool:
        present = set(self.names)
        return any(n in present for n in names)

    def find(self, name: str) -> PathElem | None:
        """Return the last element called *name*, or ``None``."""
        for elem in reversed(self.elems):
            if elem.name == name:
                return elem
        return None

    def key(self, name: str, key: str) -> str | None:
        """Return selector *key* on the last element called *name*."""
        elem = self.find(name)
        if elem is None:
            return None
        return elem.keys.get(key)

    def selector_values(self) -> dict[str, str]:
        """All selectors on the path flattened; later elements win."""
        merged: dict[str, str] = {}
        for elem in self.elems:
            merged.update(elem.keys)
        return merged


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("]", "\\]")


def _strip_module(name: str) -> str:
    """``srl_nokia-platform-cpu:cpu`` -> ``cpu``."""
    return name.rsplit(":", 1)[-1]


def _split_elements(text: str) -> list[str]:
    """Split on ``/`` outside of brackets, honouring backslash escapes."""
    parts: list[str] = []
    buf: list[str] = []
    depth = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and depth > 0:
            if i + 1 >= len(text):
                raise DecodeError(f"Dangling escape in path: {text!r}")
            buf.append(text[i : i + 2])
            i += 2
            continue
        if ch == "[":
            if depth > 0:
                raise DecodeError(f"Nested '[' in path: {text!r}")
            depth = 1
        elif ch == "]":
            if depth == 0:
                raise DecodeError(f"Unbalanced ']' in path: {text!r}")
            depth = 0
        elif ch == "/" and depth == 0:
            parts.append("".join(buf))
            buf = []
            i += 1
            continue
        buf.append(ch)
        i += 1
    if depth != 0:
        raise DecodeError(f"Unterminated selector in path: {text!r}")
    parts.append("".join(buf))
    return [p for p in parts if p]


def _unescape(value: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(value):
        if value[i] == "\\" and i + 1 < len(value):
            out.append(value[i + 1])
            i += 2
        else:
            out.append(value[i])
            i += 1
    return "".join(out)


def _split_unescaped(text: str, sep: str) -> list[str]:
    parts: list[str] = []
    buf: list[str] = []
    i = 0
    while i < len(text):
        if text[i] == "\\" and i + 1 < len(text):
            buf.append(text[i : i + 2])
            i += 2
            continue
        if text[i] == sep:
            parts.append("".join(buf))
            buf = []
        else:
            buf.append(text[i])
        i += 1
    parts.append("".join(buf))
    return parts


def _parse_element(raw: str) -> PathElem:
    bracket = raw.find("[")
    if bracket == -1:
        name, selector_text = raw, ""
    else:
        name, selector_text = raw[:bracket], raw[bracket:]

    name = _strip_module(name.strip())
    if not name:
        raise DecodeError(f"Path element without a name: {raw!r}")

    keys: dict[str, str] = {}
    pos = 0
    while pos < len(selector_text):
        if selector_text[pos] != "[":
            raise DecodeError(f"Unexpected text after selector in {raw!r}")
        end = pos + 1
        while end < len(selector_text):
            if selector_text[end] == "\\":
                end += 2
                continue
            if selector_text[end] == "]":
                break
            end += 1
        body = selector_text[pos + 1 : end]
        pos = end + 1
        if not body:
            # ``platform[]`` is emitted by some firmware for keyless lists.
            continue
        for pair in _split_unescaped(body, ","):
            key, sep, value = pair.partition("=")
            if not sep or not key.strip():
                raise DecodeError(f"Malformed key selector {pair!r} in {raw!r}")
            keys[_strip_module(key.strip())] = _unescape(value)
    return PathElem(name=name, keys=keys)


def parse_path(text: str) -> DecodedPath:
    """Parse a slash-delimited path string into a :class:`DecodedPath`.

    Raises:
        DecodeError: If the path is empty or its selectors are malformed.
    """
    if not isinstance(text, str):
        raise DecodeError(f"Path must be a string, got {type(text).__name__}")
    raw_elems = _split_elements(text.strip())
    if not raw_elems:
        raise DecodeError(f"Empty path: {text!r}")
    return DecodedPath(tuple(_parse_element(e) for e in raw_elems))


def format_path(path: DecodedPath) -> str:
    """Render *path* back into its string form."""
    return str(path)


# -- Values -------------------------------------------------------------------


def _to_int(payload: Any, kind: str) -> int:
    if isinstance(payload, bool):
        raise DecodeError(f"{kind} payload is a bool")
    if isinstance(payload, int):
        return payload
    try:
        return int(str(payload).strip())
    except ValueError as exc:
        raise DecodeError(f"{kind} payload {payload!r} is not an integer") from exc


def _to_float(payload: Any, kind: str) -> float:
    try:
        return float(payload)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"{kind} payload {payload!r} is not a number") from exc


def _to_text(payload: Any, kind: str) -> str:
    if isinstance(payload, (bytes, bytearray)):
        try:
            return bytes(payload).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"{kind} payload is not valid UTF-8") from exc
    if isinstance(payload, str):
        return payload
    raise DecodeError(f"{kind} payload has unexpected type {type(payload).__name__}")


# Past this every int64 digits value underflows a float to zero.
_MAX_DECIMAL_PRECISION = 400


def _decode_decimal(payload: Any) -> float:
    if not isinstance(payload, Mapping):
        raise DecodeError(f"decimal_val payload must be a mapping, got {payload!r}")
    digits = _to_int(payload.get("digits", 0), "decimal_val.digits")
    precision = _to_int(payload.get("precision", 0), "decimal_val.precision")
    if not 0 <= precision <= _MAX_DECIMAL_PRECISION:
        raise DecodeError(
            f"decimal_val precision must be between 0 and {_MAX_DECIMAL_PRECISION}, "
            f"got {precision}"
        )
    return digits / 10**precision


def _decode_json(payload: Any, kind: str) -> Any:
    text = _to_text(payload, kind)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # Firmware occasionally ships bare strings in JSON leaves.
        return text


def decode_value(typed: Mapping[str, Any] | None) -> Any:
    """Decode a TypedValue given as ``{kind: payload}``.

    Returns ``None`` for an empty value.

    Raises:
        DecodeError: For unknown kinds or payloads that do not match their kind.
    """
    if not typed:
        return None
    if not isinstance(typed, Mapping) or len(typed) != 1:
        raise DecodeError(f"TypedValue must hold exactly one kind, got {typed!r}")

    ((kind, payload),) = typed.items()

    if kind in ("json_ietf_val", "json_val"):
        return _decode_json(payload, kind)
    if kind in ("string_val", "ascii_val"):
        return _to_text(payload, kind)
    if kind in ("int_val", "uint_val"):
        value = _to_int(payload, kind)
        if kind == "uint_val" and value < 0:
            raise DecodeError(f"uint_val payload {value} is negative")
        return value
    if kind == "bool_val":
        if isinstance(payload, bool):
            return payload
        raise DecodeError(f"bool_val payload {payload!r} is not a bool")
    if kind in ("float_val", "double_val"):
        return _to_float(payload, kind)
    if kind == "decimal_val":
        return _decode_decimal(payload)
    if kind == "leaflist_val":
        if not isinstance(payload, (list, tuple)):
            raise DecodeError(f"leaflist_val payload must be a sequence, got {payload!r}")
        return [decode_value(element) for element in payload]

    raise DecodeError(f"Unsupported TypedValue kind: {kind}")

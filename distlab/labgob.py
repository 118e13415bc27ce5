"""Self-describing value encoding for RPC messages and persisted state.

Values are framed as a 4-byte big-endian length followed by compact JSON.
Dataclasses travel with a type tag; fields whose value equals their declared
default are not sent, so decoding into an existing object leaves such fields
untouched.  Private fields (leading underscore) are never sent, and a warning
is printed the first time a type with such a field is seen.
"""

from __future__ import annotations

import base64
import dataclasses
import json
import struct
import threading
from typing import Any, BinaryIO

__all__ = [
    "LabDecoder",
    "LabEncoder",
    "LabgobError",
    "error_count",
    "register",
    "register_name",
]


class LabgobError(Exception):
    """Raised when a value cannot be encoded or decoded."""


_HEADER = struct.Struct(">I")
_MISSING = dataclasses.MISSING

_lock = threading.Lock()
_error_count = 0
_checked: set[type] = set()
_names_to_types: dict[str, type] = {}
_types_to_names: dict[type, str] = {}
_explicit: set[type] = set()


def error_count() -> int:
    """Number of field-name and default-value warnings issued so far."""
    with _lock:
        return _error_count


def _class_of(value: Any) -> type:
    return value if isinstance(value, type) else type(value)


def _default_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def _check_type(cls: type) -> None:
    global _error_count
    with _lock:
        if cls in _checked:
            return
        _checked.add(cls)
    if not dataclasses.is_dataclass(cls):
        return
    for f in dataclasses.fields(cls):
        if f.name.startswith("_"):
            print(
                f"labgob error: private field {f.name} of {cls.__name__} "
                "in RPC or persist/snapshot will break your Raft"
            )
            with _lock:
                _error_count += 1


def _check_value(value: Any) -> None:
    if isinstance(value, type):
        _check_type(value)
    elif dataclasses.is_dataclass(value):
        _check_type(type(value))
        for f in dataclasses.fields(value):
            _check_value(getattr(value, f.name))
    elif isinstance(value, (list, tuple)):
        for item in value:
            _check_value(item)
    elif isinstance(value, dict):
        for key, item in value.items():
            _check_value(key)
            _check_value(item)


def _zero(value: Any) -> Any:
    for kind, zero in ((bool, False), (int, 0), (float, 0.0), (str, "")):
        if isinstance(value, kind):
            return zero
    return _MISSING


def _declared_default(f: dataclasses.Field) -> Any:
    if f.default is not _MISSING:
        return f.default
    if f.default_factory is not _MISSING:
        return f.default_factory()
    return _MISSING


def _check_default(value: Any, depth: int = 1, name: str = "", zero: Any = _MISSING) -> None:
    global _error_count
    if value is None or isinstance(value, type) or depth > 3:
        return
    if dataclasses.is_dataclass(value):
        for f in dataclasses.fields(value):
            qualified = f"{name}.{f.name}" if name else f.name
            _check_default(getattr(value, f.name), depth + 1, qualified, _declared_default(f))
        return
    if zero is _MISSING:
        zero = _zero(value)
        if zero is _MISSING:
            return
    elif _zero(value) is _MISSING:
        return
    if value != zero:
        with _lock:
            if _error_count < 1:
                what = name or type(value).__name__
                print(f"labgob warning: Decoding into a non-default variable/field {what} may not work")
            _error_count += 1


def register_name(name: str, value: Any) -> None:
    """Register a dataclass (or an instance of one) under an explicit name."""
    _check_value(value)
    cls = _class_of(value)
    if not dataclasses.is_dataclass(cls):
        raise LabgobError(f"only dataclasses can be registered, not {cls.__name__}")
    with _lock:
        current = _types_to_names.get(cls)
        if cls in _explicit and current != name:
            raise LabgobError(f"type {cls.__name__} already registered as {current!r}")
        other = _names_to_types.get(name)
        if other is not None and other is not cls and other in _explicit:
            raise LabgobError(f"name {name!r} already registered for {other.__name__}")
        _types_to_names[cls] = name
        _names_to_types[name] = cls
        _explicit.add(cls)


def register(value: Any) -> None:
    """Register a dataclass (or an instance of one) under its qualified name."""
    register_name(_default_name(_class_of(value)), value)


def _tag_for(cls: type) -> str:
    with _lock:
        name = _types_to_names.get(cls)
        if name is None:
            name = _default_name(cls)
            _types_to_names[cls] = name
            _names_to_types[name] = cls
        return name


def _to_wire(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return {"$bytes": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, (list, tuple)):
        return [_to_wire(item) for item in value]
    if isinstance(value, dict):
        return {"$map": [[_to_wire(k), _to_wire(v)] for k, v in value.items()]}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {}
        for f in dataclasses.fields(value):
            if f.name.startswith("_"):
                continue
            item = getattr(value, f.name)
            default = _declared_default(f)
            if default is not _MISSING and item == default:
                continue
            fields[f.name] = _to_wire(item)
        return {"$type": _tag_for(type(value)), "fields": fields}
    raise LabgobError(f"cannot encode value of type {type(value).__name__}")


def _build(cls: type, wire_fields: dict[str, Any]) -> Any:
    by_name = {f.name: f for f in dataclasses.fields(cls)}
    values = {n: _from_wire(raw) for n, raw in wire_fields.items() if n in by_name}
    kwargs = {n: v for n, v in values.items() if by_name[n].init}
    try:
        obj = cls(**kwargs)
    except TypeError as exc:
        raise LabgobError(f"cannot build {cls.__name__}: {exc}") from exc
    for n, v in values.items():
        if not by_name[n].init:
            object.__setattr__(obj, n, v)
    return obj


def _from_wire(data: Any) -> Any:
    if isinstance(data, list):
        return [_from_wire(item) for item in data]
    if isinstance(data, dict):
        if "$bytes" in data:
            return base64.b64decode(data["$bytes"])
        if "$map" in data:
            result = {}
            for raw_key, raw_value in data["$map"]:
                key = _from_wire(raw_key)
                if isinstance(key, list):
                    key = tuple(key)
                result[key] = _from_wire(raw_value)
            return result
        if "$type" in data:
            with _lock:
                cls = _names_to_types.get(data["$type"])
            if cls is None:
                raise LabgobError(f"type not registered for name {data['$type']!r}")
            return _build(cls, data["fields"])
        raise LabgobError("malformed encoded value")
    return data


def _merge(into: Any, wire: Any) -> Any:
    cls = _class_of(into) if into is not None else None
    if cls is not None and dataclasses.is_dataclass(cls):
        if not (isinstance(wire, dict) and "$type" in wire):
            raise LabgobError(f"cannot decode a non-struct value into {cls.__name__}")
        if isinstance(into, type):
            return _build(cls, wire["fields"])
        names = {f.name for f in dataclasses.fields(cls)}
        updates = {n: _from_wire(raw) for n, raw in wire["fields"].items() if n in names}
        if cls.__dataclass_params__.frozen:
            return dataclasses.replace(into, **updates)
        for n, v in updates.items():
            setattr(into, n, v)
        return into
    value = _from_wire(wire)
    if cls is None:
        return value
    kind = next((t for t in (bool, int, float, str, bytes) if issubclass(cls, t)), None)
    if kind is None:
        return value
    if kind is float and isinstance(value, int) and not isinstance(value, bool):
        value = float(value)
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise LabgobError(f"cannot decode {type(value).__name__} into {cls.__name__}")
    return value


class LabEncoder:
    """Writes framed values to a binary stream."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def encode(self, value: Any) -> None:
        _check_value(value)
        payload = json.dumps(_to_wire(value), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        self._stream.write(_HEADER.pack(len(payload)) + payload)


class LabDecoder:
    """Reads framed values from a binary stream."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def _read(self, n: int, at_start: bool) -> bytes:
        data = self._stream.read(n)
        if not data and at_start:
            raise EOFError("no more encoded values")
        if len(data) != n:
            raise LabgobError("truncated encoded value")
        return data

    def decode(self, into: Any = None) -> Any:
        """Decode the next value.

        ``into`` is a target type or an existing object; dataclass objects are
        updated in place (or replaced, if frozen) and returned.
        """
        if into is not None:
            _check_value(into)
            _check_default(into)
        (length,) = _HEADER.unpack(self._read(_HEADER.size, at_start=True))
        payload = self._read(length, at_start=False) if length else b""
        try:
            wire = json.loads(payload.decode("utf-8"))
        except ValueError as exc:
            raise LabgobError(f"malformed encoded value: {exc}") from exc
        return _merge(into, wire)
"""Self-describing serialisation for values sent over the simulated network.

Values are encoded as length-prefixed JSON trees, so that a decoded value
never shares objects with the one that was encoded.  Dataclasses and enums
are identified by registered names; dataclass fields whose names begin with
an underscore are reported, once per class, as they should not travel in
RPCs or persisted state.
"""
from __future__ import annotations

import base64
import dataclasses
import enum
import json
import logging
import struct
import threading
from typing import Any, BinaryIO

_log = logging.getLogger(__name__)
_HEADER = struct.Struct(">I")

_lock = threading.Lock()
_error_count = 0
_checked: set[type] = set()
_by_name: dict[str, type] = {}
_by_type: dict[type, str] = {}


def error_count() -> int:
    """Number of problems reported so far in this process."""
    with _lock:
        return _error_count


def _registrable(cls: type) -> bool:
    return dataclasses.is_dataclass(cls) or issubclass(cls, enum.Enum)


def _default_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def _bind(name: str, cls: type) -> None:
    if not isinstance(cls, type) or not _registrable(cls):
        raise TypeError(f"only dataclasses and enums can be registered, not {cls!r}")
    with _lock:
        existing = _by_name.get(name)
        if existing is not None and existing is not cls:
            raise ValueError(f"name {name!r} is already registered for {existing!r}")
        old = _by_type.get(cls)
        if old is not None and old != name:
            raise ValueError(f"{cls!r} is already registered as {old!r}")
        _by_name[name] = cls
        _by_type[cls] = name


def _class_of(value: Any) -> type:
    return value if isinstance(value, type) else type(value)


def register(value: Any) -> None:
    """Register a dataclass or enum (given as a class or an instance)."""
    cls = _class_of(value)
    _check_class(cls)
    _bind(_default_name(cls), cls)


def register_name(name: str, value: Any) -> None:
    """Register a dataclass or enum under an explicit name."""
    cls = _class_of(value)
    _check_class(cls)
    _bind(name, cls)


def _name_of(cls: type) -> str:
    with _lock:
        name = _by_type.get(cls)
    if name is None:
        name = _default_name(cls)
        _bind(name, cls)
    return name


def _lookup(name: str) -> type:
    with _lock:
        cls = _by_name.get(name)
    if cls is None:
        raise ValueError(f"unknown type name {name!r}")
    return cls


def _check_class(cls: type) -> None:
    global _error_count
    with _lock:
        if cls in _checked:
            return
        _checked.add(cls)
    if not dataclasses.is_dataclass(cls):
        return
    for field in dataclasses.fields(cls):
        if field.name.startswith("_"):
            _log.warning(
                "labgob error: private field %s of %s should not be sent "
                "in an RPC or persist/snapshot",
                field.name,
                cls.__name__,
            )
            with _lock:
                _error_count += 1


def _to_tree(value: Any, active: set[int]) -> list:
    if value is None:
        return ["n"]
    if isinstance(value, enum.Enum):
        cls = type(value)
        _check_class(cls)
        return ["e", _name_of(cls), _to_tree(value.value, active)]
    if isinstance(value, bool):
        return ["b", value]
    if isinstance(value, int):
        return ["i", int(value)]
    if isinstance(value, float):
        return ["f", value]
    if isinstance(value, str):
        return ["s", str(value)]
    if isinstance(value, (bytes, bytearray)):
        return ["y", base64.b64encode(bytes(value)).decode("ascii")]

    if id(value) in active:
        raise ValueError("cannot encode a value that contains itself")
    active.add(id(value))
    try:
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            cls = type(value)
            _check_class(cls)
            fields = {
                f.name: _to_tree(getattr(value, f.name), active)
                for f in dataclasses.fields(value)
            }
            return ["o", _name_of(cls), fields]
        if isinstance(value, list):
            return ["l", [_to_tree(item, active) for item in value]]
        if isinstance(value, tuple):
            return ["u", [_to_tree(item, active) for item in value]]
        if isinstance(value, frozenset):
            return ["F", [_to_tree(item, active) for item in value]]
        if isinstance(value, set):
            return ["S", [_to_tree(item, active) for item in value]]
        if isinstance(value, dict):
            return [
                "d",
                [[_to_tree(k, active), _to_tree(v, active)] for k, v in value.items()],
            ]
    finally:
        active.discard(id(value))
    raise TypeError(f"cannot encode value of type {type(value).__name__}")


def _make_dataclass(cls: type, encoded: Any) -> Any:
    if not isinstance(encoded, dict):
        raise ValueError("malformed dataclass body")
    known = {f.name: f for f in dataclasses.fields(cls)}
    unknown = set(encoded) - set(known)
    if unknown:
        raise ValueError(f"unknown fields {sorted(unknown)} for {cls.__name__}")
    obj = cls.__new__(cls)
    for name, field in known.items():
        if name in encoded:
            item = _from_tree(encoded[name])
        elif field.default is not dataclasses.MISSING:
            item = field.default
        elif field.default_factory is not dataclasses.MISSING:
            item = field.default_factory()
        else:
            raise ValueError(f"missing field {name} for {cls.__name__}")
        object.__setattr__(obj, name, item)
    return obj


def _from_tree(node: Any) -> Any:
    if not isinstance(node, list) or not node:
        raise ValueError("malformed encoded value")
    tag, *rest = node
    try:
        match tag:
            case "n":
                return None
            case "b" | "i" | "f" | "s":
                return rest[0]
            case "y":
                return base64.b64decode(rest[0])
            case "e":
                cls = _lookup(rest[0])
                return cls(_from_tree(rest[1]))
            case "o":
                return _make_dataclass(_lookup(rest[0]), rest[1])
            case "l":
                return [_from_tree(item) for item in rest[0]]
            case "u":
                return tuple(_from_tree(item) for item in rest[0])
            case "F":
                return frozenset(_from_tree(item) for item in rest[0])
            case "S":
                return {_from_tree(item) for item in rest[0]}
            case "d":
                return {_from_tree(k): _from_tree(v) for k, v in rest[0]}
    except (IndexError, TypeError) as exc:
        raise ValueError("malformed encoded value") from exc
    raise ValueError(f"unknown tag {tag!r}")


class LabEncoder:
    """Writes encoded values, one after another, to a binary stream."""

    def __init__(self, writer: BinaryIO) -> None:
        self._writer = writer

    def encode(self, value: Any) -> None:
        tree = _to_tree(value, set())
        data = json.dumps(tree, separators=(",", ":")).encode("utf-8")
        self._writer.write(_HEADER.pack(len(data)) + data)


class LabDecoder:
    """Reads values written by a LabEncoder from a binary stream."""

    def __init__(self, reader: BinaryIO) -> None:
        self._reader = reader

    def decode(self) -> Any:
        """Return the next value; raise EOFError when the stream is exhausted."""
        header = self._reader.read(_HEADER.size)
        if not header:
            raise EOFError("no more encoded values")
        if len(header) < _HEADER.size:
            raise ValueError("truncated header")
        (length,) = _HEADER.unpack(header)
        body = self._reader.read(length)
        if len(body) < length:
            raise ValueError("truncated value")
        return _from_tree(json.loads(body.decode("utf-8")))
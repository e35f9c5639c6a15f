"""Sequential specification of a versioned key/value store, for checking histories."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

OP_GET = 0
OP_PUT = 1

INVALID = "<invalid>"


@dataclass(frozen=True)
class KvInput:
    op: int
    key: str
    value: str = ""
    version: int = 0


@dataclass(frozen=True)
class KvOutput:
    value: str = ""
    version: int = 0
    err: str = ""


@dataclass(frozen=True)
class KvState:
    value: str = ""
    version: int = 0


@dataclass(frozen=True)
class Operation:
    """One client operation with its invocation and response times."""

    input: KvInput
    output: KvOutput
    call: int
    ret: int
    client_id: int = 0


def partition(history: list[Operation]) -> list[list[Operation]]:
    """Split a history by key, keys in sorted order, operations in original order."""
    by_key: dict[str, list[Operation]] = {}
    for op in history:
        by_key.setdefault(op.input.key, []).append(op)
    return [by_key[key] for key in sorted(by_key)]


def init_state() -> KvState:
    """State of a single key before any operation."""
    return KvState("", 0)


def step(state: KvState, inp: KvInput, out: KvOutput) -> tuple[bool, Any]:
    """Return whether ``out`` is allowed for ``inp`` in ``state``, and the next state."""
    err = str(out.err)
    if inp.op == OP_GET:
        return out.value == state.value, state
    if inp.op == OP_PUT:
        if state.version == inp.version:
            return err in ("OK", "ErrMaybe"), KvState(inp.value, state.version + 1)
        return err in ("ErrVersion", "ErrMaybe"), state
    return False, INVALID


def describe_operation(inp: KvInput, out: KvOutput) -> str:
    """Human-readable summary of one operation."""
    err = str(out.err)
    if inp.op == OP_GET:
        return f"get('{inp.key}') -> ('{out.value}', '{out.version}', '{err}')"
    if inp.op == OP_PUT:
        return f"put('{inp.key}', '{inp.value}', '{inp.version}') -> ('{err}')"
    return INVALID
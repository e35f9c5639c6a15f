"""Recording of timed client operations for linearizability checking."""
from __future__ import annotations

import threading
import time
from typing import Any

from .kvmodel import OP_GET, OP_PUT, KvInput, KvOutput, Operation
from .kvrpc import Err, Tversion


class OpLog:
    """A thread-safe, append-only list of operations."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._operations: list[Operation] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._operations)

    def append(self, op: Operation) -> None:
        with self._lock:
            self._operations.append(op)

    def read(self) -> list[Operation]:
        """Return a copy of the operations recorded so far."""
        with self._lock:
            return list(self._operations)


def _now() -> int:
    return time.monotonic_ns()


def logged_get(
    ck: Any, key: str, log: OpLog | None, cli: int
) -> tuple[str, Tversion, Err]:
    """Run ``ck.get(key)`` and record it in ``log`` if one is given."""
    start = _now()
    value, version, err = ck.get(key)
    end = _now()
    if log is not None:
        log.append(
            Operation(
                input=KvInput(op=OP_GET, key=key),
                output=KvOutput(value=value, version=version, err=str(err)),
                call=start,
                ret=end,
                client_id=cli,
            )
        )
    return value, version, err


def logged_put(
    ck: Any, key: str, value: str, version: Tversion, log: OpLog | None, cli: int
) -> Err:
    """Run ``ck.put(key, value, version)`` and record it in ``log`` if one is given."""
    start = _now()
    err = ck.put(key, value, version)
    end = _now()
    if log is not None:
        log.append(
            Operation(
                input=KvInput(op=OP_PUT, key=key, value=value, version=version),
                output=KvOutput(err=str(err)),
                call=start,
                ret=end,
                client_id=cli,
            )
        )
    return err
"""Messages exchanged between the MapReduce coordinator and its workers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

SOCK_PREFIX = "/var/tmp/5840-mr-"


class TaskType(IntEnum):
    MAP = 0
    REDUCE = 1
    WAIT = 3
    STOP = 4


@dataclass(frozen=True)
class KeyValue:
    """One pair emitted by a map function."""

    key: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"Key": self.key, "Value": self.value}

    @classmethod
    def from_dict(cls, data: Any) -> KeyValue:
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {data!r}")
        key = data.get("Key", "")
        value = data.get("Value", "")
        if not isinstance(key, str) or not isinstance(value, str):
            raise ValueError(f"malformed key/value pair {data!r}")
        return cls(key, value)


@dataclass
class Task:
    """A map or reduce task.

    ``location`` is the input file of a map task.  ``nfiles`` is the number
    of reduce tasks for a map task, and the number of map tasks for a
    reduce task.
    """

    id: int
    location: str = ""
    state: str = "IDLE"
    nfiles: int = 0


@dataclass
class RequestWorkReply:
    """The coordinator's answer to a worker asking for work."""

    type_of_task: TaskType = TaskType.WAIT
    task: Task | None = None


@dataclass(frozen=True)
class WorkCompleteArgs:
    completed_task_id: int
    type_of_task: TaskType


def coordinator_sock() -> str:
    """A per-user UNIX-domain socket path for the coordinator."""
    return f"{SOCK_PREFIX}{os.getuid()}"
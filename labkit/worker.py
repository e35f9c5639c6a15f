"""A MapReduce worker: asks the coordinator for tasks and runs them."""
from __future__ import annotations

import json
import logging
import os
import socket
import tempfile
import time
from itertools import groupby
from operator import attrgetter
from typing import Any, Callable, Iterator

from . import labgob
from .labgob import LabDecoder, LabEncoder
from .labrpc import RPCError
from .mrrpc import (
    KeyValue,
    RequestWorkReply,
    Task,
    TaskType,
    WorkCompleteArgs,
    coordinator_sock,
)

_log = logging.getLogger(__name__)

MapFunc = Callable[[str, str], "list[KeyValue]"]
ReduceFunc = Callable[[str, "list[str]"], str]

REQUEST_WORK = "Coordinator.handle_request_work"
WORK_COMPLETE = "Coordinator.handle_work_complete"
WAIT_SECONDS = 1.0

for _cls in (TaskType, Task, RequestWorkReply, WorkCompleteArgs):
    labgob.register(_cls)


def ihash(key: str) -> int:
    """32-bit FNV-1a hash of ``key`` with the top bit cleared."""
    h = 0x811C9DC5
    for byte in key.encode("utf-8"):
        h ^= byte
        h = (h * 0x01000193) & 0xFFFFFFFF
    return h & 0x7FFFFFFF


def _write_atomically(name: str, text: str, prefix: str) -> None:
    directory = os.path.dirname(os.path.abspath(name))
    fd, tmp = tempfile.mkstemp(prefix=prefix, dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, name)
    except BaseException:
        try:
            os.remove(tmp)
        except FileNotFoundError:
            pass
        raise


def apply_map(mapf: MapFunc, task: Task) -> None:
    """Run ``mapf`` on the task's input file and write one file per reduce task.

    Pairs go to ``mr-<map id>-<reduce id>`` in the current directory, one
    JSON object per line.
    """
    if task.nfiles <= 0:
        raise ValueError(f"map task {task.id} needs at least one reduce task")
    filename = task.location
    with open(filename, encoding="utf-8", errors="replace") as f:
        content = f.read()
    buckets: list[list[KeyValue]] = [[] for _ in range(task.nfiles)]
    for kv in mapf(filename, content):
        buckets[ihash(kv.key) % task.nfiles].append(kv)
    for reduce_num, bucket in enumerate(buckets):
        text = "".join(json.dumps(kv.to_dict()) + "\n" for kv in bucket)
        _write_atomically(f"mr-{task.id}-{reduce_num}", text, "tempiFile-")


def _read_pairs(name: str) -> Iterator[KeyValue]:
    with open(name, encoding="utf-8") as f:
        for line in f:
            try:
                yield KeyValue.from_dict(json.loads(line))
            except ValueError:
                return


def apply_reduce(reducef: ReduceFunc, task: Task) -> None:
    """Gather this task's intermediate pairs, reduce them and write ``mr-out-<id>``."""
    intermediate: list[KeyValue] = []
    for map_num in range(task.nfiles):
        intermediate.extend(_read_pairs(f"mr-{map_num}-{task.id}"))
    intermediate.sort(key=attrgetter("key"))
    lines = (
        f"{key} {reducef(key, [kv.value for kv in group])}\n"
        for key, group in groupby(intermediate, key=attrgetter("key"))
    )
    _write_atomically(f"mr-out-{task.id}", "".join(lines), "tempoutFile-")


def call(rpcname: str, args: Any, sockname: str | None = None) -> Any:
    """Send one RPC to the coordinator and return its reply.

    Raises OSError if the coordinator cannot be reached, and RPCError if
    it answers with an error or no answer arrives.
    """
    path = sockname if sockname is not None else coordinator_sock()
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.connect(path)
        with sock.makefile("wb") as wfile:
            LabEncoder(wfile).encode((rpcname, args))
        with sock.makefile("rb") as rfile:
            try:
                response = LabDecoder(rfile).decode()
            except (EOFError, ValueError) as exc:
                raise RPCError(f"no reply to {rpcname}") from exc
    if isinstance(response, tuple) and len(response) == 2:
        status, payload = response
        if status == "ok":
            return payload
        if status == "error":
            raise RPCError(str(payload))
    raise RPCError(f"malformed reply to {rpcname}")


def _request_work(sockname: str | None) -> RequestWorkReply:
    try:
        reply = call(REQUEST_WORK, None, sockname)
    except RPCError as exc:
        _log.warning("failed RPC: %s", exc)
        return RequestWorkReply()
    if not isinstance(reply, RequestWorkReply):
        _log.warning("unexpected reply %r", reply)
        return RequestWorkReply()
    return reply


def _report(task_id: int, task_type: TaskType, sockname: str | None) -> None:
    try:
        call(WORK_COMPLETE, WorkCompleteArgs(task_id, task_type), sockname)
    except RPCError as exc:
        _log.warning("failed to report completion: %s", exc)


def worker(mapf: MapFunc, reducef: ReduceFunc, sockname: str | None = None) -> None:
    """Run tasks until the coordinator says stop or can no longer be reached."""
    try:
        while True:
            reply = _request_work(sockname)
            task = reply.task
            if reply.type_of_task == TaskType.STOP:
                return
            if reply.type_of_task == TaskType.MAP and task is not None:
                apply_map(mapf, task)
                _report(task.id, TaskType.MAP, sockname)
            elif reply.type_of_task == TaskType.REDUCE and task is not None:
                apply_reduce(reducef, task)
                _report(task.id, TaskType.REDUCE, sockname)
            else:
                time.sleep(WAIT_SECONDS)
    except RPCError:
        raise
    except (ConnectionError, FileNotFoundError) as exc:
        _log.info("coordinator unreachable, exiting: %s", exc)
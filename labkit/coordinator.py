"""The MapReduce coordinator: hands out map and reduce tasks to workers."""
from __future__ import annotations

import dataclasses
import logging
import os
import socketserver
import threading
from enum import Enum
from typing import Any, Iterable

from . import labgob
from .labgob import LabDecoder, LabEncoder
from .mrrpc import RequestWorkReply, Task, TaskType, WorkCompleteArgs, coordinator_sock

_log = logging.getLogger(__name__)

# A task handed out but not reported complete within this many seconds
# becomes available to other workers again.
TASK_TIMEOUT = 10.0

REQUEST_WORK = "Coordinator.handle_request_work"
WORK_COMPLETE = "Coordinator.handle_work_complete"

for _cls in (TaskType, Task, RequestWorkReply, WorkCompleteArgs):
    labgob.register(_cls)


class TaskState(str, Enum):
    IDLE = "IDLE"
    IN_PROGRESS = "INPROGRESS"
    COMPLETE = "COMPLETE"


class TaskList:
    """The tasks of one phase, with how many of them are complete."""

    def __init__(self, tasks: Iterable[Task], timeout: float = TASK_TIMEOUT) -> None:
        self.tasks = list(tasks)
        self.num_complete = 0
        self.timeout = timeout
        self._lock = threading.Lock()
        self._timers: list[threading.Timer] = []

    @classmethod
    def for_map(
        cls, files: Iterable[str], n_reduce: int, timeout: float = TASK_TIMEOUT
    ) -> TaskList:
        """One map task per input file."""
        return cls(
            (
                Task(id=i, location=name, state=TaskState.IDLE, nfiles=n_reduce)
                for i, name in enumerate(files)
            ),
            timeout,
        )

    @classmethod
    def for_reduce(
        cls, n_reduce: int, n_maps: int, timeout: float = TASK_TIMEOUT
    ) -> TaskList:
        return cls(
            (Task(id=i, state=TaskState.IDLE, nfiles=n_maps) for i in range(n_reduce)),
            timeout,
        )

    def __len__(self) -> int:
        return len(self.tasks)

    @property
    def finished(self) -> bool:
        with self._lock:
            return self.num_complete == len(self.tasks)

    def claim_idle(self) -> Task | None:
        """Mark the first idle task in progress and return a copy of it."""
        with self._lock:
            for index, task in enumerate(self.tasks):
                if task.state == TaskState.IDLE:
                    task.state = TaskState.IN_PROGRESS
                    timer = threading.Timer(self.timeout, self._expire, args=(index,))
                    timer.daemon = True
                    self._timers.append(timer)
                    timer.start()
                    return dataclasses.replace(task, state=TaskState(task.state).value)
        return None

    def _expire(self, index: int) -> None:
        with self._lock:
            task = self.tasks[index]
            if task.state == TaskState.IN_PROGRESS:
                task.state = TaskState.IDLE

    def complete(self, task_id: int) -> None:
        """Record a task as complete; repeated reports count once."""
        with self._lock:
            if not 0 <= task_id < len(self.tasks):
                raise IndexError(f"no task with id {task_id}")
            task = self.tasks[task_id]
            if task.state != TaskState.COMPLETE:
                task.state = TaskState.COMPLETE
                self.num_complete += 1

    def cancel_timers(self) -> None:
        with self._lock:
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()


class _Handler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        decoder = LabDecoder(self.rfile)
        encoder = LabEncoder(self.wfile)
        while True:
            try:
                request = decoder.decode()
            except EOFError:
                return
            except ValueError as exc:
                encoder.encode(("error", f"bad request: {exc}"))
                return
            encoder.encode(self.server.coordinator._dispatch(request))


class _Server(socketserver.ThreadingUnixStreamServer):
    daemon_threads = True

    def __init__(self, path: str, coordinator: Coordinator) -> None:
        self.coordinator = coordinator
        super().__init__(path, _Handler)


class Coordinator:
    """Assigns map tasks, then reduce tasks, and tracks their completion."""

    def __init__(
        self, files: Iterable[str], n_reduce: int, task_timeout: float = TASK_TIMEOUT
    ) -> None:
        if n_reduce < 0:
            raise ValueError(f"n_reduce must be non-negative, got {n_reduce}")
        files = list(files)
        self.n_map = len(files)
        self.n_reduce = n_reduce
        self.map_tasks = TaskList.for_map(files, n_reduce, task_timeout)
        self.reduce_tasks = TaskList.for_reduce(n_reduce, len(files), task_timeout)
        self._server: _Server | None = None
        self._sockname: str | None = None

    def handle_request_work(self) -> RequestWorkReply:
        """Return an idle task, WAIT if none is idle yet, or STOP when all is done."""
        for phase, tasks in ((TaskType.MAP, self.map_tasks), (TaskType.REDUCE, self.reduce_tasks)):
            if not tasks.finished:
                task = tasks.claim_idle()
                if task is None:
                    return RequestWorkReply(TaskType.WAIT)
                return RequestWorkReply(phase, task)
        return RequestWorkReply(TaskType.STOP)

    def handle_work_complete(self, args: WorkCompleteArgs) -> None:
        """Record that a worker finished a task."""
        if args.type_of_task == TaskType.MAP:
            self.map_tasks.complete(args.completed_task_id)
        elif args.type_of_task == TaskType.REDUCE:
            self.reduce_tasks.complete(args.completed_task_id)

    def done(self) -> bool:
        """Whether every reduce task has completed."""
        return self.reduce_tasks.finished

    def _dispatch(self, request: Any) -> tuple[str, Any]:
        if not (isinstance(request, tuple) and len(request) == 2):
            return ("error", "malformed request")
        method, args = request
        try:
            if method == REQUEST_WORK:
                return ("ok", self.handle_request_work())
            if method == WORK_COMPLETE:
                if not isinstance(args, WorkCompleteArgs):
                    raise TypeError(f"{method} expects WorkCompleteArgs")
                self.handle_work_complete(args)
                return ("ok", None)
        except (TypeError, ValueError, IndexError) as exc:
            return ("error", str(exc))
        return ("error", f"unknown method {method!r}")

    def serve(self, sockname: str | None = None) -> str:
        """Listen for workers on a UNIX-domain socket; return its path."""
        if self._server is not None:
            raise RuntimeError("coordinator is already serving")
        path = sockname if sockname is not None else coordinator_sock()
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        self._server = _Server(path, self)
        self._sockname = path
        threading.Thread(target=self._server.serve_forever, daemon=True).start()
        _log.debug("coordinator listening on %s", path)
        return path

    def close(self) -> None:
        """Stop serving and cancel pending task timeouts."""
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            if self._sockname is not None:
                try:
                    os.remove(self._sockname)
                except FileNotFoundError:
                    pass
                self._sockname = None
        self.map_tasks.cancel_timers()
        self.reduce_tasks.cancel_timers()

    def __enter__(self) -> Coordinator:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
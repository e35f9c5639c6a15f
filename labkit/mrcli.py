"""Command-line entry points for the MapReduce coordinator and worker.

The coordinator listens on the per-user socket path unless the
``LABKIT_MR_SOCKET`` environment variable names another one; workers use
the same rule to find it.
"""
from __future__ import annotations

import os
import sys
import time
from typing import Sequence

from .coordinator import Coordinator
from .mrapps import load_app
from .worker import worker

SOCKET_ENV = "LABKIT_MR_SOCKET"
N_REDUCE = 10
POLL_SECONDS = 1.0


def _sockname() -> str | None:
    return os.environ.get(SOCKET_ENV) or None


def coordinator_main(argv: Sequence[str] | None = None) -> int:
    """Serve map tasks for the given input files until the job is done."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("Usage: mrcoordinator inputfiles...", file=sys.stderr)
        return 1
    with Coordinator(args, N_REDUCE) as coordinator:
        coordinator.serve(_sockname())
        while not coordinator.done():
            time.sleep(POLL_SECONDS)
        # Give workers a moment to learn that the job is over.
        time.sleep(POLL_SECONDS)
    return 0


def worker_main(argv: Sequence[str] | None = None) -> int:
    """Run one worker for the named application until the coordinator is done."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) != 1:
        print("Usage: mrworker xxx.so", file=sys.stderr)
        return 1
    try:
        mapf, reducef = load_app(args[0])
    except LookupError as exc:
        print(exc, file=sys.stderr)
        return 1
    worker(mapf, reducef, _sockname())
    return 0
"""MapReduce applications, each a map function and a reduce function.

``load_app`` selects an application by name, so that command-line tools
can be pointed at one the same way for every application.
"""
from __future__ import annotations

import itertools
import os
import re
import secrets
import time
from pathlib import Path
from typing import Callable

from .mrrpc import KeyValue

MapFunc = Callable[[str, str], "list[KeyValue]"]
ReduceFunc = Callable[[str, "list[str]"], str]

EARLY_EXIT_DELAY = 3.0
JOBCOUNT_PREFIX = "mr-worker-jobcount"

_job_counter = itertools.count()


def _words(text: str) -> list[str]:
    """Maximal runs of letters; everything else separates words."""
    return ["".join(run) for is_letter, run in itertools.groupby(text, str.isalpha) if is_letter]


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def _sorted_join(values: list[str]) -> str:
    return " ".join(sorted(values))


def _describe(filename: str, contents: str) -> list[KeyValue]:
    return [
        KeyValue("a", filename),
        KeyValue("b", str(_byte_len(filename))),
        KeyValue("c", str(_byte_len(contents))),
        KeyValue("d", "xyzzy"),
    ]


# Word count.

def wc_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit ``(word, "1")`` for every word in ``contents``."""
    return [KeyValue(word, "1") for word in _words(contents)]


def wc_reduce(key: str, values: list[str]) -> str:
    """The number of occurrences of ``key``."""
    return str(len(values))


# Inverted index.

def indexer_map(document: str, value: str) -> list[KeyValue]:
    """Emit ``(word, document)`` once for each distinct word in ``value``."""
    return [KeyValue(word, document) for word in dict.fromkeys(_words(value))]


def indexer_reduce(key: str, values: list[str]) -> str:
    """``"<count> <doc1>,<doc2>,..."`` with the documents sorted."""
    return f"{len(values)} {','.join(sorted(values))}"


# Applications that crash or stall, to exercise fault tolerance.

def _maybe_crash() -> None:
    roll = secrets.randbelow(1000)
    if roll < 330:
        os._exit(1)
    elif roll < 660:
        time.sleep(secrets.randbelow(10_000) / 1000)


def crash_map(filename: str, contents: str) -> list[KeyValue]:
    """Like ``nocrash_map``, but may kill the process or stall for a while."""
    _maybe_crash()
    return _describe(filename, contents)


def crash_reduce(key: str, values: list[str]) -> str:
    """Like ``nocrash_reduce``, but may kill the process or stall for a while."""
    _maybe_crash()
    return _sorted_join(values)


def nocrash_map(filename: str, contents: str) -> list[KeyValue]:
    """Describe the input: its name, the name's length, its length and a marker."""
    return _describe(filename, contents)


def nocrash_reduce(key: str, values: list[str]) -> str:
    """The values, sorted and joined by spaces."""
    return _sorted_join(values)


# Reduce tasks that take long, to catch workers exiting early.

def early_exit_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit ``(filename, "1")``."""
    return [KeyValue(filename, "1")]


def early_exit_reduce(key: str, values: list[str]) -> str:
    """Count the values, sleeping first for some keys."""
    if "sherlock" in key or "tom" in key:
        time.sleep(EARLY_EXIT_DELAY)
    return str(len(values))


# Counting how many times map tasks run.

def jobcount_map(filename: str, contents: str) -> list[KeyValue]:
    """Leave a marker file for this invocation, then stall for 2 to 5 seconds."""
    marker = f"{JOBCOUNT_PREFIX}-{os.getpid()}-{next(_job_counter)}"
    Path(marker).write_text("x")
    time.sleep((2000 + secrets.randbelow(3000)) / 1000)
    return [KeyValue("a", "x")]


def jobcount_reduce(key: str, values: list[str]) -> str:
    """The number of marker files left by map invocations."""
    return str(sum(1 for name in os.listdir(".") if name.startswith(JOBCOUNT_PREFIX)))


# Checking that tasks run in parallel.

def _is_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except (OSError, OverflowError):
        return False
    return True


def _nparallel(phase: str) -> int:
    """How many workers, this one included, are running ``phase`` right now."""
    mine = Path(f"mr-worker-{phase}-{os.getpid()}")
    mine.write_text("x")
    pattern = re.compile(rf"mr-worker-{re.escape(phase)}-([+-]?\d+)")
    running = 0
    for name in os.listdir("."):
        match = pattern.match(name)
        if match and _is_alive(int(match.group(1))):
            running += 1
    time.sleep(1)
    mine.unlink()
    return running


def mtiming_map(filename: str, contents: str) -> list[KeyValue]:
    """Report when this map ran and how many maps ran alongside it."""
    started = time.time()
    pid = os.getpid()
    n = _nparallel("map")
    return [
        KeyValue(f"times-{pid}", f"{started:.1f}"),
        KeyValue(f"parallel-{pid}", str(n)),
    ]


def mtiming_reduce(key: str, values: list[str]) -> str:
    """The values, sorted and joined by spaces."""
    return _sorted_join(values)


def rtiming_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit ten keys, ``a`` to ``j``, so that there are reduce tasks to spread."""
    return [KeyValue(key, "1") for key in "abcdefghij"]


def rtiming_reduce(key: str, values: list[str]) -> str:
    """How many reduces ran alongside this one."""
    return str(_nparallel("reduce"))


_APPS: dict[str, tuple[MapFunc, ReduceFunc]] = {
    "wc": (wc_map, wc_reduce),
    "indexer": (indexer_map, indexer_reduce),
    "crash": (crash_map, crash_reduce),
    "nocrash": (nocrash_map, nocrash_reduce),
    "early_exit": (early_exit_map, early_exit_reduce),
    "jobcount": (jobcount_map, jobcount_reduce),
    "mtiming": (mtiming_map, mtiming_reduce),
    "rtiming": (rtiming_map, rtiming_reduce),
}


def load_app(name: str) -> tuple[MapFunc, ReduceFunc]:
    """Return (map, reduce) for an application such as ``wc`` or ``../mrapps/wc.so``."""
    app = _APPS.get(Path(name).stem)
    if app is None:
        raise LookupError(f"cannot load plugin {name}; known: {sorted(_APPS)}")
    return app
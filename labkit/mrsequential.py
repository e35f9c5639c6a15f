"""Run a MapReduce application sequentially, in a single process."""
from __future__ import annotations

import sys
from itertools import groupby
from operator import attrgetter
from typing import Iterable, Sequence

from .mrapps import MapFunc, ReduceFunc, load_app
from .mrrpc import KeyValue

OUTPUT = "mr-out-0"
USAGE = "Usage: mrsequential xxx.so inputfiles..."


def run_sequential(
    mapf: MapFunc, reducef: ReduceFunc, filenames: Iterable[str], output: str = OUTPUT
) -> None:
    """Map every input file, reduce each distinct key and write ``key value`` lines."""
    intermediate: list[KeyValue] = []
    for filename in filenames:
        with open(filename, encoding="utf-8", errors="replace") as f:
            content = f.read()
        intermediate.extend(mapf(filename, content))
    intermediate.sort(key=attrgetter("key"))
    with open(output, "w", encoding="utf-8") as out:
        for key, group in groupby(intermediate, key=attrgetter("key")):
            out.write(f"{key} {reducef(key, [kv.value for kv in group])}\n")


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 2:
        print(USAGE, file=sys.stderr)
        return 1
    try:
        mapf, reducef = load_app(args[0])
    except LookupError as exc:
        print(exc, file=sys.stderr)
        return 1
    try:
        run_sequential(mapf, reducef, args[1:], OUTPUT)
    except OSError as exc:
        print(f"cannot open {exc.filename}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
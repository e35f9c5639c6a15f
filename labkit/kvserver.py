"""A single-node versioned key/value server."""
from __future__ import annotations

import threading

from .kvrpc import Err, GetArgs, GetReply, PutArgs, PutReply, Tversion


class KVServer:
    """Stores a value and a version for each key.

    A put succeeds only if the version it carries matches the key's current
    version.  A key that does not exist can be created only by a put with
    version 0.  Every successful put increments the key's version.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, tuple[str, Tversion]] = {}

    def get(self, args: GetArgs) -> GetReply:
        """Return the value and version of ``args.key``, or ``Err.NO_KEY``."""
        with self._lock:
            entry = self._data.get(args.key)
        if entry is None:
            return GetReply(err=Err.NO_KEY)
        value, version = entry
        return GetReply(value=value, version=version, err=Err.OK)

    def put(self, args: PutArgs) -> PutReply:
        """Install ``args.value`` if ``args.version`` matches the key's version."""
        with self._lock:
            entry = self._data.get(args.key)
            if entry is not None:
                if args.version != entry[1]:
                    return PutReply(err=Err.VERSION)
            elif args.version != 0:
                return PutReply(err=Err.NO_KEY)
            self._data[args.key] = (args.value, args.version + 1)
        return PutReply(err=Err.OK)

    def kill(self) -> None:
        """Called when the server is no longer needed; a single node keeps no resources."""
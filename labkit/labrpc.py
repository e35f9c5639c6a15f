"""In-process RPC over a simulated network.

The network can lose requests and replies, delay messages, reorder
replies and disconnect individual client end-points.  Arguments and
replies travel in labgob encoding, so a handler never shares objects with
its caller.

Typical use::

    net = Network()
    end = net.make_end("client-1")
    server = Server()
    server.add_service(Service(receiver))
    net.add_server("server-1", server)
    net.connect("client-1", "server-1")
    net.enable("client-1", True)
    reply = end.call("Receiver.method", args)

A handler is a public method of the receiver that takes one argument and
returns the reply.  ``ClientEnd.call`` raises ``RPCError`` when no reply
arrives: the request or the reply was lost, or the server is gone.
"""
from __future__ import annotations

import io
import queue
import random
import threading
import time
import types
from dataclasses import dataclass
from typing import Any, Callable, Hashable

from .labgob import LabDecoder, LabEncoder

SHORTDELAY = 27  # ms
LONGDELAY = 7000  # ms
MAXDELAY = LONGDELAY + 100

_POLL_SECONDS = 0.1

_CO_VARARGS = 0x04
_CO_VARKEYWORDS = 0x08


class RPCError(ConnectionError):
    """No reply was received for an RPC."""


def _encode(value: Any) -> bytes:
    buf = io.BytesIO()
    LabEncoder(buf).encode(value)
    return buf.getvalue()


def _decode(data: bytes) -> Any:
    return LabDecoder(io.BytesIO(data)).decode()


@dataclass(frozen=True)
class _Request:
    endname: Hashable
    svc_meth: str
    args: bytes


def _public_functions(cls: type) -> dict[str, types.FunctionType]:
    """Public plain functions defined on a class or its bases."""
    seen: set[str] = set()
    found: dict[str, types.FunctionType] = {}
    for klass in cls.__mro__:
        if klass is object:
            continue
        for name, attr in vars(klass).items():
            if name.startswith("_") or name in seen:
                continue
            seen.add(name)
            if isinstance(attr, types.FunctionType):
                found[name] = attr
    return found


def _is_handler(func: types.FunctionType) -> bool:
    """True for a method taking exactly one argument besides self."""
    code = func.__code__
    return (
        code.co_argcount == 2
        and code.co_kwonlyargcount == 0
        and not code.co_flags & (_CO_VARARGS | _CO_VARKEYWORDS)
    )


class Service:
    """An object whose one-argument public methods handle RPCs."""

    def __init__(self, rcvr: Any) -> None:
        self.name = type(rcvr).__name__
        self._methods: dict[str, Callable[[Any], Any]] = {}
        for name, func in _public_functions(type(rcvr)).items():
            if _is_handler(func):
                self._methods[name] = getattr(rcvr, name)

    @property
    def methods(self) -> list[str]:
        """Names of the handler methods, sorted."""
        return sorted(self._methods)

    def dispatch(self, method_name: str, args: bytes) -> bytes:
        handler = self._methods.get(method_name)
        if handler is None:
            raise LookupError(
                f"unknown method {method_name} in {self.name}; "
                f"expecting one of {self.methods}"
            )
        return _encode(handler(_decode(args)))


class Server:
    """A collection of services sharing one RPC end-point."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._services: dict[str, Service] = {}
        self._count = 0

    def add_service(self, svc: Service) -> None:
        with self._lock:
            self._services[svc.name] = svc

    @property
    def count(self) -> int:
        """Number of incoming RPCs."""
        with self._lock:
            return self._count

    def dispatch(self, svc_meth: str, args: bytes) -> bytes:
        with self._lock:
            self._count += 1
            service_name, _, method_name = svc_meth.rpartition(".")
            service = self._services.get(service_name)
            choices = sorted(self._services)
        if service is None:
            raise LookupError(
                f"unknown service {service_name} in {svc_meth}; "
                f"expecting one of {choices}"
            )
        return service.dispatch(method_name, args)


class ClientEnd:
    """A client end-point that talks to at most one server."""

    def __init__(
        self,
        endname: Hashable,
        deliver: Callable[[_Request], bytes],
        done: threading.Event,
    ) -> None:
        self.endname = endname
        self._deliver = deliver
        self._done = done

    def call(self, svc_meth: str, args: Any) -> Any:
        """Send an RPC such as ``"Raft.append_entries"`` and return the reply.

        Raises RPCError if no reply was received.
        """
        request = _Request(self.endname, svc_meth, _encode(args))
        if self._done.is_set():
            raise RPCError("network has been shut down")
        return _decode(self._deliver(request))


class Network:
    """Holds client end-points, servers and the connections between them."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._lock = threading.Lock()
        self._reliable = True
        self._long_delays = False
        self._long_reordering = False
        self._ends: dict[Hashable, ClientEnd] = {}
        self._enabled: dict[Hashable, bool] = {}
        self._servers: dict[Hashable, Server | None] = {}
        self._connections: dict[Hashable, Hashable | None] = {}
        self._done = threading.Event()
        self._stats_lock = threading.Lock()
        self._count = 0
        self._bytes = 0
        self._rng = rng if rng is not None else random.Random()

    def __enter__(self) -> Network:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Shut the network down; later calls fail at once."""
        self._done.set()

    @property
    def reliable(self) -> bool:
        with self._lock:
            return self._reliable

    @reliable.setter
    def reliable(self, yes: bool) -> None:
        with self._lock:
            self._reliable = yes

    @property
    def long_delays(self) -> bool:
        """Pause a long time before failing a call on a disabled connection."""
        with self._lock:
            return self._long_delays

    @long_delays.setter
    def long_delays(self, yes: bool) -> None:
        with self._lock:
            self._long_delays = yes

    @property
    def long_reordering(self) -> bool:
        """Sometimes delay replies for a long time."""
        with self._lock:
            return self._long_reordering

    @long_reordering.setter
    def long_reordering(self, yes: bool) -> None:
        with self._lock:
            self._long_reordering = yes

    @property
    def total_count(self) -> int:
        with self._stats_lock:
            return self._count

    @property
    def total_bytes(self) -> int:
        with self._stats_lock:
            return self._bytes

    def _add_bytes(self, n: int) -> None:
        with self._stats_lock:
            self._bytes += n

    def make_end(self, endname: Hashable) -> ClientEnd:
        """Create a client end-point, initially disabled and unconnected."""
        with self._lock:
            if endname in self._ends:
                raise ValueError(f"end {endname!r} already exists")
            end = ClientEnd(endname, self._deliver, self._done)
            self._ends[endname] = end
            self._enabled[endname] = False
            self._connections[endname] = None
            return end

    def delete_end(self, endname: Hashable) -> None:
        with self._lock:
            if endname not in self._ends:
                raise KeyError(f"end {endname!r} doesn't exist")
            del self._ends[endname]
            del self._enabled[endname]
            del self._connections[endname]

    def add_server(self, servername: Hashable, server: Server) -> None:
        with self._lock:
            self._servers[servername] = server

    def delete_server(self, servername: Hashable) -> None:
        with self._lock:
            self._servers[servername] = None

    def connect(self, endname: Hashable, servername: Hashable) -> None:
        with self._lock:
            self._connections[endname] = servername

    def enable(self, endname: Hashable, enabled: bool) -> None:
        with self._lock:
            self._enabled[endname] = enabled

    def get_count(self, servername: Hashable) -> int:
        """Number of RPCs that reached the named server."""
        with self._lock:
            server = self._servers.get(servername)
        if server is None:
            raise KeyError(f"no server named {servername!r}")
        return server.count

    def _read_endname_info(
        self, endname: Hashable
    ) -> tuple[bool, Hashable | None, Server | None, bool, bool]:
        with self._lock:
            servername = self._connections.get(endname)
            server = self._servers.get(servername) if servername is not None else None
            return (
                self._enabled.get(endname, False),
                servername,
                server,
                self._reliable,
                self._long_reordering,
            )

    def _is_server_dead(
        self, endname: Hashable, servername: Hashable, server: Server
    ) -> bool:
        with self._lock:
            return (
                not self._enabled.get(endname, False)
                or self._servers.get(servername) is not server
            )

    def _deliver(self, req: _Request) -> bytes:
        with self._stats_lock:
            self._count += 1
            self._bytes += len(req.args)
        return self._process(req)

    def _process(self, req: _Request) -> bytes:
        rng = self._rng
        enabled, servername, server, reliable, long_reordering = (
            self._read_endname_info(req.endname)
        )

        if not enabled or servername is None or server is None:
            # Simulate no reply and an eventual timeout.
            if self.long_delays:
                ms = rng.randrange(LONGDELAY)
            else:
                ms = rng.randrange(100)
            time.sleep(ms / 1000)
            raise RPCError(f"no reply from {servername!r}")

        if not reliable:
            time.sleep(rng.randrange(SHORTDELAY) / 1000)
            if rng.randrange(1000) < 100:
                raise RPCError("request lost")

        # Run the handler in its own thread so that a deleted server's
        # pending calls can still fail promptly.
        outcome: queue.Queue[tuple[bool, Any]] = queue.Queue(maxsize=1)

        def run() -> None:
            try:
                outcome.put((True, server.dispatch(req.svc_meth, req.args)))
            except Exception as exc:
                outcome.put((False, exc))

        threading.Thread(target=run, daemon=True).start()

        result: tuple[bool, Any] | None = None
        dead = False
        while result is None and not dead:
            try:
                result = outcome.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                dead = self._is_server_dead(req.endname, servername, server)

        # No reply from a deleted server, even if the handler finished.
        dead = self._is_server_dead(req.endname, servername, server)
        if result is None or dead:
            raise RPCError(f"server {servername!r} is gone")

        ok, payload = result
        if not ok:
            raise payload

        if not reliable and rng.randrange(1000) < 100:
            raise RPCError("reply lost")
        if long_reordering and rng.randrange(900) < 600:
            ms = 200 + rng.randrange(1 + rng.randrange(2000))
            time.sleep(ms / 1000)

        self._add_bytes(len(payload))
        return payload
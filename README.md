# labkit

Building blocks for experimenting with distributed systems in plain Python.
There are no runtime dependencies; Python 3.10 or later is required, and the
MapReduce parts use UNIX-domain sockets, so they need a POSIX system.

## What is in the package

- **`labkit.labrpc`** – an in-process simulated network. A `Network` holds
  named client ends (`make_end`, `delete_end`), servers (`add_server`,
  `delete_server`) and the connections between them (`connect`, `enable`).
  Setting `reliable` to `False` makes it delay, drop requests and drop
  replies; `long_delays` and `long_reordering` add longer pauses.
  `get_count` reports how many RPCs reached a server, and `total_count` and
  `total_bytes` count all traffic. A `Server` groups `Service` objects; a
  service's handlers are the public methods of its receiver that take one
  argument and return the reply. `ClientEnd.call("Receiver.method", args)`
  returns the reply or raises `RPCError` when none arrives. A `Network` is
  also a context manager that calls `cleanup` on exit.
- **`labkit.labgob`** – the encoding used for every message on the network
  (`LabEncoder`, `LabDecoder`). It handles `None`, numbers, strings, bytes,
  lists, tuples, sets, dicts, dataclasses and enums; decoded values never
  share objects with the encoded ones. Dataclasses and enums can be given
  explicit names with `register` and `register_name`. Dataclass fields whose
  names start with an underscore are logged as a problem, once per class, and
  `error_count()` reports how many problems have been logged.
- **`labkit.kvrpc`** – the key/value request and reply types (`GetArgs`,
  `GetReply`, `PutArgs`, `PutReply`) and the `Err` enum (`OK`, `NO_KEY`,
  `VERSION`, `MAYBE`, `WRONG_LEADER`, `WRONG_GROUP`).
- **`labkit.kvserver`** – `KVServer`, a single-node versioned store. `put`
  succeeds only if the version it carries matches the key's version (0 for a
  key that does not exist yet) and then increments the version; otherwise it
  answers `Err.VERSION`, or `Err.NO_KEY` for a missing key. `get` returns the
  value and version, or `Err.NO_KEY`.
- **`labkit.kvmodel`** – a sequential model of one key of that store
  (`init_state`, `step`, `describe_operation`) and `partition`, which splits a
  history of `Operation`s by key.
- **`labkit.oplog`** – `OpLog`, a thread-safe list of timed operations, and
  `logged_get` / `logged_put`, which run a get or put on any object with
  `get(key)` and `put(key, value, version)` methods and record it.
- **MapReduce** – `labkit.coordinator.Coordinator` hands out map tasks, then
  reduce tasks, over a UNIX-domain socket (`serve`, `close`, `done`);
  `labkit.worker.worker` asks for tasks and runs them; `labkit.mrsequential`
  runs an application in one process; `labkit.mrapps` holds the applications.

## Serving the key/value store on the simulated network

```python
from labkit.kvrpc import GetArgs, PutArgs
from labkit.kvserver import KVServer
from labkit.labrpc import Network, Server, Service

with Network() as net:
    end = net.make_end("client")
    server = Server()
    server.add_service(Service(KVServer()))
    net.add_server("kv", server)
    net.connect("client", "kv")
    net.enable("client", True)

    end.call("KVServer.put", PutArgs("k", "v", 0))   # PutReply(err=Err.OK)
    end.call("KVServer.get", GetArgs("k"))           # value "v", version 1
```

## MapReduce from the command line

Run the word-count application sequentially; the result is written to
`mr-out-0`, one `key value` line per distinct key:

```
labkit-mrsequential wc pg-*.txt
```

Run it distributed: start a coordinator with the input files (it uses ten
reduce tasks), then any number of workers naming the application:

```
labkit-mrcoordinator pg-*.txt
labkit-mrworker wc
labkit-mrworker wc
```

Both listen on, or connect to, a per-user socket under `/var/tmp` unless the
`LABKIT_MR_SOCKET` environment variable names another path. Workers write
intermediate files `mr-<map>-<reduce>` and output files `mr-out-<reduce>` in
the current directory. A task not reported complete within ten seconds is
handed to another worker. The coordinator exits shortly after every reduce
task is complete; a worker exits when told to stop or when the coordinator
can no longer be reached.

Applications are chosen by name (a path such as `../mrapps/wc.so` selects
`wc` by its stem): `wc`, `indexer`, `crash`, `nocrash`, `early_exit`,
`jobcount`, `mtiming` and `rtiming`.

## MapReduce from Python

```python
from labkit.mrapps import wc_map, wc_reduce
from labkit.mrsequential import run_sequential

run_sequential(wc_map, wc_reduce, ["a.txt", "b.txt"], "mr-out-0")
```

A map function takes a file name and its contents and returns a list of
`KeyValue` pairs; a reduce function takes a key and all of its values and
returns a string. `load_app(name)` returns the pair for a named application.

## What the package does not do

- There is no key/value client: nothing retries calls that raise `RPCError`
  or turns a retried put's `VERSION` answer into `MAYBE`. Callers use
  `ClientEnd.call` directly and handle lost messages themselves.
- There is no lock service built on the key/value store.
- There is no linearizability checker: `kvmodel` and `oplog` supply the model
  and the recorded history, but nothing searches a history for a valid order.
- The key/value server is a single node; there is no replication.

## Running the tests

```
pip install ".[test]"
pytest
```
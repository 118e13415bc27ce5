# distlab

Tools for building and testing small distributed systems in pure Python,
with no dependencies outside the standard library.

## What is inside

- **`distlab.labrpc`**: an in-process RPC network that can drop requests and
  replies, delay and reorder messages, disable client ends and delete servers.
  Create a `Network`, make client ends with `Network.make_end`, and register
  `Server` objects that hold one or more `Service` objects. A `Service` wraps
  any object; each public method that takes exactly one argument becomes a
  handler named `"ClassName.method"`, and its return value is the reply.
  `ClientEnd.call(svc_meth, args)` returns the reply, or raises `RPCFailed`
  when no reply arrives (request or reply lost, end disabled, server deleted,
  or network shut down with `Network.cleanup`). `Network.reliable`,
  `Network.long_delays` and `Network.long_reordering` switch the failure
  modes; `Network.get_count`, `Network.get_total_count` and
  `Network.get_total_bytes` give traffic statistics. `Network` is also a
  context manager that cleans up on exit.
- **`distlab.labgob`**: the encoder and decoder the network uses
  (`LabEncoder`, `LabDecoder`, `register`, `register_name`). Values are framed
  as a 4-byte big-endian length followed by compact JSON; dataclasses travel
  with a type tag. Private (underscore) fields are never sent and produce a
  warning, as does decoding into an object whose fields are not at their
  defaults. `error_count()` reports how many warnings were issued.
- **`distlab.bitset`**: `Bitset`, a fixed-size bit set stored in 64-bit chunks.
- **`distlab.model`**: `Operation`, `Event`, `EventKind`, `Model` and
  `CheckResult`, the vocabulary of the checker.
- **`distlab.checker`**: a linearizability checker for histories of
  concurrent operations (`check_operations`, `check_events` and their
  `_timeout` and `_verbose` forms). Timeouts are in seconds; a check that
  times out returns `CheckResult.UNKNOWN`. The verbose forms also return a
  `LinearizationInfo` with the longest linearizable prefixes found.
- **`distlab.kvmodel`**: a ready-made model of a key/value store with get, put
  and append (`KvInput`, `KvOutput`, `KV_MODEL`), partitioned by key.
- **`distlab.kvcommon`** and **`distlab.kvclient`**: the request and reply
  messages of a key/value service and `Clerk`, a client that tries servers in
  turn until one that is the leader answers, and numbers its writes so that
  servers can drop retried duplicates.
- **`distlab.mapreduce`**: `KeyValue`, `ihash`, `Master`, `make_master`,
  `worker`, `call` and `call_example`. Example applications live in
  `distlab.mrapps`: `wc`, `indexer`, `crash`, `nocrash`, `mtiming` and
  `rtiming`, each with `map_` and `reduce_`.

## Checking a history

```python
from distlab.checker import check_operations
from distlab.kvmodel import APPEND, GET, PUT, KV_MODEL, KvInput, KvOutput
from distlab.model import Operation

history = [
    Operation(input=KvInput(op=PUT, key="x", value="1"), call=0, output=KvOutput(), ret=10),
    Operation(input=KvInput(op=GET, key="x"), call=20, output=KvOutput(value="1"), ret=30,
              client_id=1),
]
assert check_operations(KV_MODEL, history)
```

## Calling over the simulated network

```python
from distlab.labrpc import Network, Server, Service

class Doubler:
    def double(self, x):
        return 2 * x

with Network() as net:
    end = net.make_end("client")
    server = Server()
    server.add_service(Service(Doubler()))
    net.add_server("s1", server)
    net.connect("client", "s1")
    net.enable("client", True)
    assert end.call("Doubler.double", 21) == 42
```

## MapReduce from the command line

Installing the package adds three commands. Applications are named `wc`,
`indexer`, `crash`, `nocrash`, `mtiming` or `rtiming`; a trailing `.so` or
`.py` and any directory part are ignored.

Run a job in one process and write the result to `mr-out-0`:

```
distlab-mrsequential wc pg-*.txt
```

Start a master for a set of input files, then one or more workers:

```
distlab-mrmaster pg-*.txt
distlab-mrworker wc
```

The master uses 10 reduce tasks, reassigns a task not finished within 10
seconds, and writes nothing itself: map task `m` leaves `mr-m-r` files and
reduce task `r` writes `mr-out-r`. It listens on a Unix-domain socket at
`/var/tmp/824-mr-<uid>`, or at the path in the `DISTLAB_MR_SOCKET`
environment variable.

## What is not included

The package provides the key/value client and its messages but no key/value
server and no replication or consensus layer behind it: `Clerk` expects
services that answer `KVServer.get` and `KVServer.put_append` with replies
carrying a `wrong_leader` flag, and you must supply them. The checker does
not render histories or linearizations graphically; `LinearizationInfo`
holds the raw data.

## Tests

```
pip install -e ".[test]"
pytest
```
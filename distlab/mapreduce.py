"""A MapReduce master and worker talking over a UNIX-domain socket.

The master hands out one map task per input file, then ``n_reduce`` reduce
tasks once every map task is done.  A task that is not reported done within
``Master.task_timeout`` seconds is given to another worker.  Map task ``m``
writes ``mr-m-r`` for each reduce task ``r``; reduce task ``r`` writes
``mr-out-r`` with one ``"key output"`` line per key.  Files are written under
temporary names and renamed into place, so a crashed worker never leaves a
partial output behind.
"""

from __future__ import annotations

import contextlib
import enum
import json
import os
import socket
import socketserver
import tempfile
import threading
import time
from dataclasses import dataclass
from itertools import groupby
from operator import itemgetter
from typing import Any, Callable, Iterable

from .labgob import LabDecoder, LabEncoder

__all__ = [
    "ExampleArgs",
    "ExampleReply",
    "KeyValue",
    "MapReduceError",
    "Master",
    "call",
    "call_example",
    "ihash",
    "make_master",
    "master_sock",
    "worker",
]

SOCKET_ENV = "DISTLAB_MR_SOCKET"
_WAIT_INTERVAL = 0.2

_MAP = "map"
_REDUCE = "reduce"
_WAIT = "wait"
_EXIT = "exit"


class MapReduceError(RuntimeError):
    """The master reported an error for an RPC."""


@dataclass(frozen=True)
class KeyValue:
    """A pair emitted by a map function."""

    key: str
    value: str


@dataclass
class ExampleArgs:
    x: int = 0


@dataclass
class ExampleReply:
    y: int = 0


@dataclass
class _TaskRequest:
    pass


@dataclass
class _Assignment:
    kind: str = ""
    task_id: int = 0
    filename: str = ""
    n_reduce: int = 0
    n_map: int = 0


@dataclass
class _Report:
    kind: str = ""
    task_id: int = 0


@dataclass
class _Ack:
    pass


def ihash(key: str) -> int:
    """Non-negative 31-bit FNV-1a hash; ``ihash(key) % n_reduce`` picks a reduce task."""
    h = 0x811C9DC5
    for byte in key.encode("utf-8", "surrogateescape"):
        h = ((h ^ byte) * 0x01000193) & 0xFFFFFFFF
    return h & 0x7FFFFFFF


def master_sock() -> str:
    """Path of the master's socket, unique per user.

    The ``DISTLAB_MR_SOCKET`` environment variable overrides it.
    """
    return os.environ.get(SOCKET_ENV) or f"/var/tmp/824-mr-{os.getuid()}"


class _TaskState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"


@dataclass
class _Task:
    state: _TaskState = _TaskState.IDLE
    started: float = 0.0


def _next_task(tasks: list[_Task], now: float, timeout: float) -> tuple[int | None, bool]:
    """Claim a task to run; the flag tells whether unfinished tasks remain."""
    pending = False
    for index, task in enumerate(tasks):
        if task.state is _TaskState.DONE:
            continue
        if task.state is _TaskState.IDLE or now - task.started >= timeout:
            task.state = _TaskState.RUNNING
            task.started = now
            return index, True
        pending = True
    return None, pending


class _RPCHandler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        decoder = LabDecoder(self.rfile)
        encoder = LabEncoder(self.wfile)
        while True:
            try:
                name = decoder.decode(str)
            except EOFError:
                return
            args = decoder.decode()
            handler = self.server.handlers.get(name)
            if handler is None:
                encoder.encode(False)
                encoder.encode(f"unknown method {name}; expecting one of {sorted(self.server.handlers)}")
            else:
                try:
                    reply = handler(args)
                except Exception as exc:  # reported back to the caller
                    encoder.encode(False)
                    encoder.encode(str(exc))
                else:
                    encoder.encode(True)
                    encoder.encode(reply)
            self.wfile.flush()


class _RPCServer(socketserver.ThreadingUnixStreamServer):
    daemon_threads = True

    def __init__(self, path: str, handlers: dict[str, Callable[[Any], Any]]) -> None:
        self.handlers = handlers
        super().__init__(path, _RPCHandler)


class Master:
    """Hands out map and reduce tasks to workers."""

    task_timeout = 10.0

    def __init__(self, files: Iterable[str], n_reduce: int) -> None:
        if n_reduce < 1:
            raise ValueError("n_reduce must be at least 1")
        self.files = list(files)
        self.n_reduce = n_reduce
        self._lock = threading.Lock()
        self._map_tasks = [_Task() for _ in self.files]
        self._reduce_tasks = [_Task() for _ in range(n_reduce)]
        self._server: _RPCServer | None = None
        self._sockname: str | None = None

    def __enter__(self) -> "Master":
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        with contextlib.suppress(FileNotFoundError):
            os.remove(self._sockname)
        self._server = None

    def example(self, args: ExampleArgs) -> ExampleReply:
        """An example handler: replies with ``args.x + 1``."""
        return ExampleReply(y=args.x + 1)

    def _request_task(self, _request: _TaskRequest) -> _Assignment:
        with self._lock:
            now = time.monotonic()
            common = {"n_reduce": self.n_reduce, "n_map": len(self.files)}
            index, pending = _next_task(self._map_tasks, now, self.task_timeout)
            if index is not None:
                return _Assignment(kind=_MAP, task_id=index, filename=self.files[index], **common)
            if pending:
                return _Assignment(kind=_WAIT)
            index, pending = _next_task(self._reduce_tasks, now, self.task_timeout)
            if index is not None:
                return _Assignment(kind=_REDUCE, task_id=index, **common)
            return _Assignment(kind=_WAIT if pending else _EXIT)

    def _report_task(self, report: _Report) -> _Ack:
        tasks = {_MAP: self._map_tasks, _REDUCE: self._reduce_tasks}.get(report.kind)
        if tasks is None:
            raise ValueError(f"unknown task kind {report.kind!r}")
        with self._lock:
            if not 0 <= report.task_id < len(tasks):
                raise ValueError(f"no {report.kind} task {report.task_id}")
            tasks[report.task_id].state = _TaskState.DONE
        return _Ack()

    def serve(self) -> None:
        """Start answering worker RPCs in a background thread."""
        if self._server is not None:
            raise RuntimeError("master is already serving")
        sockname = master_sock()
        with contextlib.suppress(FileNotFoundError):
            os.remove(sockname)
        server = _RPCServer(
            sockname,
            {
                "Master.example": self.example,
                "Master.request_task": self._request_task,
                "Master.report_task": self._report_task,
            },
        )
        threading.Thread(target=server.serve_forever, daemon=True).start()
        self._server = server
        self._sockname = sockname

    def done(self) -> bool:
        """Whether the entire job has finished."""
        with self._lock:
            return all(task.state is _TaskState.DONE for task in self._reduce_tasks)


def make_master(files: Iterable[str], n_reduce: int) -> Master:
    """Create a master for ``files`` with ``n_reduce`` reduce tasks and start serving."""
    master = Master(files, n_reduce)
    master.serve()
    return master


def call(rpcname: str, args: Any) -> Any:
    """Send an RPC to the master and return its reply.

    Raises :class:`OSError` if the master cannot be reached and
    :class:`MapReduceError` if the handler failed.
    """
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.connect(master_sock())
        with sock.makefile("rwb") as stream:
            encoder = LabEncoder(stream)
            encoder.encode(rpcname)
            encoder.encode(args)
            stream.flush()
            decoder = LabDecoder(stream)
            ok = decoder.decode(bool)
            payload = decoder.decode()
    if not ok:
        raise MapReduceError(payload)
    return payload


def call_example() -> ExampleReply:
    """Send the example RPC to the master and print the reply."""
    reply = call("Master.example", ExampleArgs(x=99))
    print(f"reply.Y {reply.y}")
    return reply


def _write_atomically(name: str, text: str) -> None:
    fd, tmp = tempfile.mkstemp(prefix="mr-tmp-", dir=".")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape") as out:
            out.write(text)
        os.replace(tmp, name)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.remove(tmp)
        raise


def _run_map(mapf: Callable[[str, str], list[KeyValue]], task: _Assignment) -> None:
    with open(task.filename, encoding="utf-8", errors="surrogateescape") as source:
        contents = source.read()
    buckets: list[list[str]] = [[] for _ in range(task.n_reduce)]
    for kv in mapf(task.filename, contents):
        buckets[ihash(kv.key) % task.n_reduce].append(json.dumps([kv.key, kv.value]) + "\n")
    for reduce_id, lines in enumerate(buckets):
        _write_atomically(f"mr-{task.task_id}-{reduce_id}", "".join(lines))


def _run_reduce(reducef: Callable[[str, list[str]], str], task: _Assignment) -> None:
    pairs: list[tuple[str, str]] = []
    for map_id in range(task.n_map):
        with open(f"mr-{map_id}-{task.task_id}", encoding="utf-8") as source:
            pairs.extend(tuple(json.loads(line)) for line in source)
    pairs.sort(key=itemgetter(0))
    lines = [
        f"{key} {reducef(key, [value for _, value in group])}\n"
        for key, group in groupby(pairs, key=itemgetter(0))
    ]
    _write_atomically(f"mr-out-{task.task_id}", "".join(lines))


def worker(mapf: Callable[[str, str], list[KeyValue]],
           reducef: Callable[[str, list[str]], str]) -> None:
    """Run tasks from the master until the job is finished or the master is gone."""
    while True:
        try:
            task = call("Master.request_task", _TaskRequest())
        except OSError:
            return
        if task.kind == _EXIT:
            return
        if task.kind == _WAIT:
            time.sleep(_WAIT_INTERVAL)
            continue
        if task.kind == _MAP:
            _run_map(mapf, task)
        else:
            _run_reduce(reducef, task)
        try:
            call("Master.report_task", _Report(kind=task.kind, task_id=task.task_id))
        except OSError:
            return
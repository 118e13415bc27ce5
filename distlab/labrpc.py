"""In-process RPC over a simulated network.

The network can lose requests, lose replies, delay messages and disconnect
particular client end-points.  Arguments and replies are always serialized
with :mod:`distlab.labgob`, so an RPC never shares objects between caller and
handler.

Typical use::

    net = Network()
    end = net.make_end("client-1")
    server = Server()
    server.add_service(Service(handler_object))
    net.add_server("server-1", server)
    net.connect("client-1", "server-1")
    net.enable("client-1", True)
    reply = end.call("HandlerClass.method", args)

A handler is any public method that takes exactly one argument (the RPC
arguments) and returns the reply.  ``ClientEnd.call`` raises
:class:`RPCFailed` whenever no reply arrives: the network lost the request or
the reply, the end-point is disabled, or the server is gone.
"""

from __future__ import annotations

import io
import queue
import random
import threading
import time
import types
from typing import Any, Callable, Hashable

from .labgob import LabDecoder, LabEncoder

__all__ = ["ClientEnd", "Network", "RPCFailed", "Server", "Service"]

# How often a waiting request checks whether its server has been deleted.
_SERVER_POLL = 0.1

_CO_VARARGS = 0x04
_CO_VARKEYWORDS = 0x08


class RPCFailed(ConnectionError):
    """No reply was received from the server."""


def _encode(value: Any) -> bytes:
    buffer = io.BytesIO()
    LabEncoder(buffer).encode(value)
    return buffer.getvalue()


def _decode(data: bytes) -> Any:
    return LabDecoder(io.BytesIO(data)).decode()


def _is_handler(function: types.FunctionType) -> bool:
    """True for a plain method taking ``self`` and exactly one argument."""
    code = function.__code__
    return (
        code.co_argcount == 2
        and code.co_kwonlyargcount == 0
        and not code.co_flags & (_CO_VARARGS | _CO_VARKEYWORDS)
    )


class Service:
    """An object whose one-argument public methods can be called over RPC."""

    def __init__(self, receiver: Any) -> None:
        self._receiver = receiver
        self._name = type(receiver).__name__
        self._methods: dict[str, Callable[[Any], Any]] = {}
        attributes: dict[str, Any] = {}
        for klass in reversed(type(receiver).__mro__):
            attributes.update(vars(klass))
        for attr, value in attributes.items():
            if attr.startswith("_"):
                continue
            if isinstance(value, types.FunctionType) and _is_handler(value):
                self._methods[attr] = getattr(receiver, attr)

    @property
    def name(self) -> str:
        return self._name

    @property
    def methods(self) -> list[str]:
        return sorted(self._methods)

    def _dispatch(self, method_name: str, svc_meth: str, payload: bytes) -> bytes:
        method = self._methods.get(method_name)
        if method is None:
            raise LookupError(
                f"unknown method {method_name} in {svc_meth}; expecting one of {self.methods}"
            )
        return _encode(method(_decode(payload)))


class Server:
    """A collection of services sharing one RPC end-point."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._services: dict[str, Service] = {}
        self._count = 0

    def add_service(self, service: Service) -> None:
        with self._lock:
            self._services[service.name] = service

    def get_count(self) -> int:
        """Number of incoming RPCs this server has dispatched."""
        with self._lock:
            return self._count

    def _dispatch(self, svc_meth: str, payload: bytes) -> bytes:
        service_name, _, method_name = svc_meth.rpartition(".")
        with self._lock:
            self._count += 1
            service = self._services.get(service_name)
            choices = sorted(self._services)
        if service is None:
            raise LookupError(
                f"unknown service {service_name} in {svc_meth}; expecting one of {choices}"
            )
        return service._dispatch(method_name, svc_meth, payload)


class ClientEnd:
    """A client end-point that talks to one server through a network."""

    def __init__(self, network: "Network", endname: Hashable) -> None:
        self._network = network
        self._endname = endname

    @property
    def name(self) -> Hashable:
        return self._endname

    def call(self, svc_meth: str, args: Any) -> Any:
        """Send ``args`` to ``"Service.method"`` and return the decoded reply.

        Raises :class:`RPCFailed` if no reply was received.
        """
        payload = _encode(args)
        return _decode(self._network._submit(self._endname, svc_meth, payload))


class Network:
    """Holds client end-points, servers and the links between them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reliable = True
        self._long_delays = False
        self._long_reordering = False
        self._ends: dict[Hashable, ClientEnd] = {}
        self._enabled: dict[Hashable, bool] = {}
        self._servers: dict[Hashable, Server | None] = {}
        self._connections: dict[Hashable, Hashable | None] = {}
        self._done = threading.Event()
        self._count = 0
        self._bytes = 0
        self._random = random.Random()

    def __enter__(self) -> "Network":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Shut the network down; later calls fail at once."""
        self._done.set()

    def reliable(self, yes: bool) -> None:
        """``False`` makes the network drop and delay messages."""
        with self._lock:
            self._reliable = yes

    def long_reordering(self, yes: bool) -> None:
        """``True`` sometimes delays replies for a long time."""
        with self._lock:
            self._long_reordering = yes

    def long_delays(self, yes: bool) -> None:
        """``True`` makes calls on disabled links wait up to seven seconds."""
        with self._lock:
            self._long_delays = yes

    def make_end(self, endname: Hashable) -> ClientEnd:
        with self._lock:
            if endname in self._ends:
                raise ValueError(f"end-point {endname!r} already exists")
            end = ClientEnd(self, endname)
            self._ends[endname] = end
            self._enabled[endname] = False
            self._connections[endname] = None
            return end

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
        """A server's count of incoming RPCs."""
        with self._lock:
            server = self._servers.get(servername)
        if server is None:
            raise KeyError(f"no server named {servername!r}")
        return server.get_count()

    def get_total_count(self) -> int:
        """Total number of RPCs sent through the network."""
        with self._lock:
            return self._count

    def get_total_bytes(self) -> int:
        """Total bytes of requests and delivered replies."""
        with self._lock:
            return self._bytes

    def _endpoint_info(self, endname: Hashable) -> tuple[bool, Hashable | None, Server | None, bool, bool]:
        with self._lock:
            enabled = self._enabled.get(endname, False)
            servername = self._connections.get(endname)
            server = self._servers.get(servername) if servername is not None else None
            return enabled, servername, server, self._reliable, self._long_reordering

    def _server_dead(self, endname: Hashable, servername: Hashable, server: Server) -> bool:
        with self._lock:
            return not self._enabled.get(endname, False) or self._servers.get(servername) is not server

    def _submit(self, endname: Hashable, svc_meth: str, payload: bytes) -> bytes:
        if self._done.is_set():
            raise RPCFailed("network has been shut down")
        with self._lock:
            self._count += 1
            self._bytes += len(payload)
        return self._process(endname, svc_meth, payload)

    @staticmethod
    def _run_handler(server: Server, svc_meth: str, payload: bytes, results: queue.SimpleQueue) -> None:
        try:
            results.put((True, server._dispatch(svc_meth, payload)))
        except Exception as exc:  # handed back to the caller
            results.put((False, exc))

    def _process(self, endname: Hashable, svc_meth: str, payload: bytes) -> bytes:
        enabled, servername, server, reliable, long_reordering = self._endpoint_info(endname)
        rng = self._random

        if not (enabled and servername is not None and server is not None):
            # Simulate no reply and an eventual timeout.
            with self._lock:
                long_delays = self._long_delays
            ms = rng.randrange(7000) if long_delays else rng.randrange(100)
            time.sleep(ms / 1000)
            raise RPCFailed("no reply from server")

        if not reliable:
            time.sleep(rng.randrange(27) / 1000)
            if rng.randrange(1000) < 100:
                raise RPCFailed("request lost")

        results: queue.SimpleQueue = queue.SimpleQueue()
        threading.Thread(
            target=self._run_handler,
            args=(server, svc_meth, payload, results),
            daemon=True,
        ).start()

        outcome = None
        while outcome is None:
            try:
                outcome = results.get(timeout=_SERVER_POLL)
            except queue.Empty:
                if self._server_dead(endname, servername, server):
                    break

        # Never reply once the server has been deleted, so a client cannot
        # see success for an update persisted by a superseded server.
        if outcome is None or self._server_dead(endname, servername, server):
            raise RPCFailed("server was killed")

        succeeded, value = outcome
        if not succeeded:
            raise value
        if not reliable and rng.randrange(1000) < 100:
            raise RPCFailed("reply lost")
        if long_reordering and rng.randrange(900) < 600:
            time.sleep((200 + rng.randrange(1 + rng.randrange(2000))) / 1000)
        with self._lock:
            self._bytes += len(value)
        return value
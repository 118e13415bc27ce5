"""Client for the replicated key/value service.

A :class:`Clerk` keeps trying servers in turn until one that believes it is
the leader answers, and remembers that server for the next request.
"""

from __future__ import annotations

import secrets
from typing import Any, Sequence

from .kvcommon import GetArgs, PutAppendArgs
from .labrpc import ClientEnd, RPCFailed

__all__ = ["Clerk", "nrand"]


def nrand() -> int:
    """A random identifier in ``[0, 2**62)``."""
    return secrets.randbelow(1 << 62)


class Clerk:
    """Sends Get, Put and Append requests to a group of key/value servers.

    Each clerk has a random ``client_id`` and numbers its Put and Append
    requests with a strictly increasing ``seq_num`` so servers can drop
    duplicates of a retried request.
    """

    def __init__(self, servers: Sequence[ClientEnd]) -> None:
        self.servers = list(servers)
        if not self.servers:
            raise ValueError("a clerk needs at least one server")
        self.last_leader = 0
        self.client_id = nrand()
        self.seq_num = 0

    def _ask(self, svc_meth: str, args: Any) -> Any:
        index = self.last_leader
        while True:
            try:
                reply = self.servers[index].call(svc_meth, args)
            except RPCFailed:
                reply = None
            if reply is not None and not reply.wrong_leader:
                self.last_leader = index
                return reply
            index = (index + 1) % len(self.servers)

    def get(self, key: str) -> str:
        """The current value of ``key``, or ``""`` if it does not exist.

        Keeps trying for as long as it takes.
        """
        return self._ask("KVServer.get", GetArgs(key=key)).value

    def put_append(self, key: str, value: str, op: str) -> None:
        """Send a Put or Append request (``op`` is ``"Put"`` or ``"Append"``)."""
        args = PutAppendArgs(
            key=key,
            value=value,
            op=op,
            cid=self.client_id,
            seq_num=self.seq_num,
        )
        self.seq_num += 1
        self._ask("KVServer.put_append", args)

    def put(self, key: str, value: str) -> None:
        self.put_append(key, value, "Put")

    def append(self, key: str, value: str) -> None:
        self.put_append(key, value, "Append")
"""Messages exchanged between key/value clerks and servers."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class Err(str, enum.Enum):
    OK = "OK"
    ERR_NO_KEY = "ErrNoKey"
    ERR_WRONG_LEADER = "ErrWrongLeader"


@dataclass
class PutAppendArgs:
    """A Put or Append request; ``op`` is "Put" or "Append"."""

    key: str = ""
    value: str = ""
    op: str = ""
    cid: int = 0
    seq_num: int = 0


@dataclass
class PutAppendReply:
    err: str = ""
    wrong_leader: bool = False


@dataclass
class GetArgs:
    key: str = ""


@dataclass
class GetReply:
    err: str = ""
    value: str = ""
    wrong_leader: bool = False
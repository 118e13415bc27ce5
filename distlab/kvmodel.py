"""Sequential model of a key/value store with get, put and append."""

from __future__ import annotations

from dataclasses import dataclass

from .model import Model, Operation

GET = 0
PUT = 1
APPEND = 2


@dataclass(frozen=True)
class KvInput:
    """``op`` is GET, PUT or APPEND."""

    op: int
    key: str
    value: str = ""


@dataclass(frozen=True)
class KvOutput:
    value: str = ""


def kv_partition(history: list[Operation]) -> list[list[Operation]]:
    """Split a history by key, ordered by key."""
    by_key: dict[str, list[Operation]] = {}
    for op in history:
        by_key.setdefault(op.input.key, []).append(op)
    return [by_key[key] for key in sorted(by_key)]


def kv_init() -> str:
    # The state models a single key's value; histories are partitioned by key.
    return ""


def kv_step(state: str, inp: KvInput, out: KvOutput | None) -> tuple[bool, str]:
    if inp.op == GET:
        value = out.value if out is not None else ""
        return value == state, state
    if inp.op == PUT:
        return True, inp.value
    return True, state + inp.value


def kv_describe_operation(inp: KvInput, out: KvOutput | None) -> str:
    if inp.op == GET:
        value = out.value if out is not None else ""
        return f"get('{inp.key}') -> '{value}'"
    if inp.op == PUT:
        return f"put('{inp.key}', '{inp.value}')"
    if inp.op == APPEND:
        return f"append('{inp.key}', '{inp.value}')"
    return "<invalid>"


KV_MODEL = Model(
    init=kv_init,
    step=kv_step,
    partition=kv_partition,
    describe_operation=kv_describe_operation,
)
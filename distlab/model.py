"""Histories and models for linearizability checking."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class Operation:
    """A completed operation: input at ``call`` time, output at ``ret`` time."""

    input: Any
    call: int
    output: Any
    ret: int
    client_id: int = 0


class EventKind(enum.Enum):
    CALL = "call"
    RETURN = "return"


@dataclass(frozen=True)
class Event:
    """One half of an operation in an event-ordered history."""

    kind: EventKind
    value: Any
    id: int
    client_id: int = 0


def no_partition(history: list[Operation]) -> list[list[Operation]]:
    return [history]


def no_partition_event(history: list[Event]) -> list[list[Event]]:
    return [history]


def shallow_equal(state1: Any, state2: Any) -> bool:
    return state1 == state2


def default_describe_operation(inp: Any, out: Any) -> str:
    return f"{inp} -> {out}"


def default_describe_state(state: Any) -> str:
    return f"{state}"


@dataclass(frozen=True)
class Model:
    """A sequential specification.

    ``step(state, input, output)`` returns ``(ok, new_state)`` and must not
    mutate ``state``.  The partition functions split a history into parts that
    are linearizable exactly when the whole is.
    """

    init: Callable[[], Any]
    step: Callable[[Any, Any, Any], tuple[bool, Any]]
    partition: Callable[[list[Operation]], list[list[Operation]]] = no_partition
    partition_event: Callable[[list[Event]], list[list[Event]]] = no_partition_event
    equal: Callable[[Any, Any], bool] = shallow_equal
    describe_operation: Callable[[Any, Any], str] = default_describe_operation
    describe_state: Callable[[Any], str] = default_describe_state


class CheckResult(str, enum.Enum):
    UNKNOWN = "Unknown"
    OK = "Ok"
    ILLEGAL = "Illegal"
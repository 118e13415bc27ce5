"""Linearizability checking of concurrent histories against a sequential model.

Each partition of a history is searched independently, in its own thread,
for an order of operations that the model accepts and that respects
real-time ordering.  Timeouts are given in seconds; ``0`` or ``None`` means
no timeout.  When a check times out the result may be a false positive, so
it is reported as :attr:`CheckResult.UNKNOWN`.
"""

from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any

from .bitset import Bitset
from .model import (
    CheckResult,
    Event,
    EventKind,
    Model,
    Operation,
    default_describe_operation,
    default_describe_state,
    no_partition,
    no_partition_event,
    shallow_equal,
)

__all__ = [
    "LinearizationInfo",
    "check_events",
    "check_events_timeout",
    "check_events_verbose",
    "check_operations",
    "check_operations_timeout",
    "check_operations_verbose",
]


@dataclass(frozen=True)
class _Entry:
    kind: EventKind
    value: Any
    id: int
    time: int
    client_id: int


@dataclass
class LinearizationInfo:
    """Per-partition histories and the longest linearizable prefixes found.

    ``partial_linearizations[i]`` is a list of distinct sequences of
    operation ids (local to partition ``i``).
    """

    history: list[list[_Entry]] = field(default_factory=list)
    partial_linearizations: list[list[list[int]]] = field(default_factory=list)


class _Node:
    __slots__ = ("value", "match", "id", "next", "prev")

    def __init__(self, value: Any, match: "_Node | None", node_id: int) -> None:
        self.value = value
        self.match = match  # None for a return node, the return node for a call
        self.id = node_id
        self.next: _Node | None = None
        self.prev: _Node | None = None


def _insert_before(node: _Node, mark: _Node | None) -> _Node:
    if mark is not None:
        before = mark.prev
        mark.prev = node
        node.next = mark
        if before is not None:
            node.prev = before
            before.next = node
    return node


def _length(node: _Node | None) -> int:
    count = 0
    while node is not None:
        node = node.next
        count += 1
    return count


def _make_entries(history: list[Operation]) -> list[_Entry]:
    entries: list[_Entry] = []
    for op_id, op in enumerate(history):
        entries.append(_Entry(EventKind.CALL, op.input, op_id, op.call, op.client_id))
        entries.append(_Entry(EventKind.RETURN, op.output, op_id, op.ret, op.client_id))
    entries.sort(key=lambda e: e.time)
    return entries


def _renumber(events: list[Event]) -> list[Event]:
    mapping: dict[Any, int] = {}
    renumbered = []
    for event in events:
        new_id = mapping.setdefault(event.id, len(mapping))
        renumbered.append(replace(event, id=new_id))
    return renumbered


def _convert_entries(events: list[Event]) -> list[_Entry]:
    # The position in the event list serves as the time.
    return [
        _Entry(event.kind, event.value, event.id, index, event.client_id)
        for index, event in enumerate(events)
    ]


def _make_linked_entries(entries: list[_Entry]) -> _Node | None:
    root: _Node | None = None
    returns: dict[int, _Node] = {}
    for entry in reversed(entries):
        if entry.kind is EventKind.RETURN:
            node = _Node(entry.value, None, entry.id)
            returns[entry.id] = node
        else:
            node = _Node(entry.value, returns.get(entry.id), entry.id)
        _insert_before(node, root)
        root = node
    return root


def _lift(node: _Node) -> None:
    node.prev.next = node.next
    node.next.prev = node.prev
    match = node.match
    match.prev.next = match.next
    if match.next is not None:
        match.next.prev = match.prev


def _unlift(node: _Node) -> None:
    match = node.match
    match.prev.next = match
    if match.next is not None:
        match.next.prev = match
    node.prev.next = node
    node.next.prev = node


def _cache_contains(model: Model, cache: dict[int, list[tuple[Bitset, Any]]],
                    linearized: Bitset, state: Any) -> bool:
    return any(
        linearized == seen and model.equal(state, seen_state)
        for seen, seen_state in cache.get(linearized.digest(), ())
    )


def _check_single(model: Model, history: list[_Entry], compute_partial: bool,
                  kill: threading.Event) -> tuple[bool, list[list[int] | None]]:
    entry = _make_linked_entries(history)
    n = _length(entry) // 2
    linearized = Bitset(n)
    cache: dict[int, list[tuple[Bitset, Any]]] = {}
    calls: list[tuple[_Node, Any]] = []
    # Longest linearizable prefix that includes each operation.
    longest: list[list[int] | None] = [None] * n

    state = model.init()
    head = _insert_before(_Node(None, None, -1), entry)
    while head.next is not None:
        if kill.is_set():
            return False, longest
        if entry.match is not None:
            ok, new_state = model.step(state, entry.value, entry.match.value)
            if ok:
                new_linearized = linearized.clone().set(entry.id)
                if not _cache_contains(model, cache, new_linearized, new_state):
                    cache.setdefault(new_linearized.digest(), []).append((new_linearized, new_state))
                    calls.append((entry, state))
                    state = new_state
                    linearized.set(entry.id)
                    _lift(entry)
                    entry = head.next
                else:
                    entry = entry.next
            else:
                entry = entry.next
        else:
            if not calls:
                return False, longest
            if compute_partial:
                seq: list[int] | None = None
                for node, _ in calls:
                    current = longest[node.id]
                    if current is None or len(calls) > len(current):
                        if seq is None:
                            seq = [call_node.id for call_node, _ in calls]
                        longest[node.id] = seq
            entry, state = calls.pop()
            linearized.clear(entry.id)
            _unlift(entry)
            entry = entry.next

    seq = [node.id for node, _ in calls]
    return True, [seq] * n


def _fill_default(model: Model) -> Model:
    defaults = {
        "partition": no_partition,
        "partition_event": no_partition_event,
        "equal": shallow_equal,
        "describe_operation": default_describe_operation,
        "describe_state": default_describe_state,
    }
    missing = {name: fn for name, fn in defaults.items() if getattr(model, name) is None}
    return replace(model, **missing) if missing else model


def _unique_partials(longest: list[list[int] | None]) -> list[list[int]]:
    unique: dict[int, list[int]] = {}
    for seq in longest:
        if seq is not None:
            unique.setdefault(id(seq), seq)
    return [list(seq) for seq in unique.values()]


def _check_parallel(model: Model, history: list[list[_Entry]], compute_info: bool,
                    timeout: float | None) -> tuple[CheckResult, LinearizationInfo]:
    ok = True
    timed_out = False
    kill = threading.Event()
    results: queue.Queue[bool] = queue.Queue()
    longest: list[list[list[int] | None]] = [[] for _ in history]

    def run(index: int, subhistory: list[_Entry]) -> None:
        try:
            result, partial = _check_single(model, subhistory, compute_info, kill)
        except BaseException:
            results.put(False)
            raise
        longest[index] = partial
        results.put(result)

    for index, subhistory in enumerate(history):
        threading.Thread(target=run, args=(index, subhistory), daemon=True).start()

    deadline = time.monotonic() + timeout if timeout else None
    count = 0
    while count < len(history):
        wait = None if deadline is None else max(0.0, deadline - time.monotonic())
        try:
            result = results.get(timeout=wait)
        except queue.Empty:
            timed_out = True
            kill.set()
            break
        count += 1
        ok = ok and result
        if not ok and not compute_info:
            kill.set()
            break

    info = LinearizationInfo()
    if compute_info:
        # Wait for every worker so that ``longest`` is complete.
        while count < len(history):
            results.get()
            count += 1
        info.history = history
        info.partial_linearizations = [_unique_partials(part) for part in longest]

    if not ok:
        return CheckResult.ILLEGAL, info
    if timed_out:
        return CheckResult.UNKNOWN, info
    return CheckResult.OK, info


def _check_events(model: Model, history: list[Event], verbose: bool,
                  timeout: float | None) -> tuple[CheckResult, LinearizationInfo]:
    model = _fill_default(model)
    partitions = [_convert_entries(_renumber(part)) for part in model.partition_event(history)]
    return _check_parallel(model, partitions, verbose, timeout)


def _check_operations(model: Model, history: list[Operation], verbose: bool,
                      timeout: float | None) -> tuple[CheckResult, LinearizationInfo]:
    model = _fill_default(model)
    partitions = [_make_entries(part) for part in model.partition(history)]
    return _check_parallel(model, partitions, verbose, timeout)


def check_operations(model: Model, history: list[Operation]) -> bool:
    """Whether the operation history is linearizable."""
    result, _ = _check_operations(model, history, False, None)
    return result is CheckResult.OK


def check_operations_timeout(model: Model, history: list[Operation],
                             timeout: float | None) -> CheckResult:
    result, _ = _check_operations(model, history, False, timeout)
    return result


def check_operations_verbose(model: Model, history: list[Operation],
                             timeout: float | None) -> tuple[CheckResult, LinearizationInfo]:
    return _check_operations(model, history, True, timeout)


def check_events(model: Model, history: list[Event]) -> bool:
    """Whether the event history is linearizable."""
    result, _ = _check_events(model, history, False, None)
    return result is CheckResult.OK


def check_events_timeout(model: Model, history: list[Event],
                         timeout: float | None) -> CheckResult:
    result, _ = _check_events(model, history, False, timeout)
    return result


def check_events_verbose(model: Model, history: list[Event],
                         timeout: float | None) -> tuple[CheckResult, LinearizationInfo]:
    return _check_events(model, history, True, timeout)
"""Command-line entry points: sequential MapReduce, master and worker.

Applications are named like the plug-ins they stand for: ``wc``,
``wc.so`` and ``../mrapps/wc.so`` all select the word-count application.
"""

from __future__ import annotations

import os
import sys
import time
from itertools import groupby
from operator import attrgetter
from typing import Callable, Sequence

from .mapreduce import KeyValue, make_master, worker
from .mrapps import crash, indexer, mtiming, nocrash, rtiming, wc

__all__ = ["load_app", "master_main", "sequential_main", "worker_main"]

MapFunc = Callable[[str, str], list[KeyValue]]
ReduceFunc = Callable[[str, list[str]], str]

_APPS = {
    "wc": wc,
    "indexer": indexer,
    "crash": crash,
    "nocrash": nocrash,
    "mtiming": mtiming,
    "rtiming": rtiming,
}

N_REDUCE = 10


def load_app(name: str) -> tuple[MapFunc, ReduceFunc]:
    """The map and reduce functions of the named application."""
    base = os.path.basename(name)
    stem, ext = os.path.splitext(base)
    if ext in (".so", ".py"):
        base = stem
    app = _APPS.get(base)
    if app is None:
        raise ValueError(f"cannot load plugin {name}")
    return app.map_, app.reduce_


def _args(argv: Sequence[str] | None) -> list[str]:
    return sys.argv[1:] if argv is None else list(argv)


def sequential_main(argv: Sequence[str] | None = None) -> int:
    """Run an application over the input files in one process into ``mr-out-0``."""
    args = _args(argv)
    if len(args) < 2:
        print("Usage: mrsequential xxx.so inputfiles...", file=sys.stderr)
        return 1
    try:
        mapf, reducef = load_app(args[0])
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1

    intermediate: list[KeyValue] = []
    for filename in args[1:]:
        try:
            with open(filename, encoding="utf-8", errors="surrogateescape") as source:
                content = source.read()
        except OSError:
            print(f"cannot open {filename}", file=sys.stderr)
            return 1
        intermediate.extend(mapf(filename, content))

    intermediate.sort(key=attrgetter("key"))
    with open("mr-out-0", "w", encoding="utf-8", errors="surrogateescape") as out:
        for key, group in groupby(intermediate, key=attrgetter("key")):
            output = reducef(key, [kv.value for kv in group])
            out.write(f"{key} {output}\n")
    return 0


def master_main(argv: Sequence[str] | None = None) -> int:
    """Serve the input files to workers until the whole job is done."""
    files = _args(argv)
    if not files:
        print("Usage: mrmaster inputfiles...", file=sys.stderr)
        return 1
    with make_master(files, N_REDUCE) as master:
        while not master.done():
            time.sleep(1)
        time.sleep(1)
    return 0


def worker_main(argv: Sequence[str] | None = None) -> int:
    """Run tasks for the master with the named application."""
    args = _args(argv)
    if len(args) != 1:
        print("Usage: mrworker xxx.so", file=sys.stderr)
        return 1
    try:
        mapf, reducef = load_app(args[0])
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    worker(mapf, reducef)
    return 0
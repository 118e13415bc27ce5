"""MapReduce application that checks whether reduce tasks run in parallel."""

from __future__ import annotations

import os
import re
import time
from pathlib import Path

from ..mapreduce import KeyValue

__all__ = ["map_", "nparallel", "reduce_"]


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except (OSError, OverflowError, ValueError):
        return False
    return True


def nparallel(phase: str) -> int:
    """Count the workers running ``phase`` right now, this one included.

    Each worker leaves a marker file named after its process id in the
    current directory, looks for the markers of live workers, waits a
    second so that overlapping workers can see it, and removes its marker.
    """
    marker = Path(f"mr-worker-{phase}-{os.getpid()}")
    marker.write_text("x")

    pattern = re.compile(rf"mr-worker-{re.escape(phase)}-([+-]?\d+)")
    running = 0
    for name in os.listdir("."):
        match = pattern.match(name)
        if match and _alive(int(match.group(1))):
            running += 1

    time.sleep(1)
    marker.unlink()
    return running


def map_(filename: str, contents: str) -> list[KeyValue]:
    """Emit ten fixed keys so that every reduce task has work."""
    return [KeyValue(key, "1") for key in "abcdefghij"]


def reduce_(key: str, values: list[str]) -> str:
    """How many reduce workers ran alongside this one, itself included."""
    return str(nparallel("reduce"))
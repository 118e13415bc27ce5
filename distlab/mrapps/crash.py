"""MapReduce application that sometimes crashes and sometimes stalls.

It exists to exercise the framework's recovery from failed or slow workers.
"""

from __future__ import annotations

import os
import secrets
import time

from ..mapreduce import KeyValue

# Out of 1000 draws: below CRASH_BELOW the process exits, below DELAY_BELOW it
# sleeps for up to MAX_DELAY_MS milliseconds, otherwise it carries on.
CRASH_BELOW = 330
DELAY_BELOW = 660
MAX_DELAY_MS = 10_000


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8", "surrogateescape"))


def maybe_crash() -> None:
    """Exit the process a third of the time, stall for a while another third."""
    rr = secrets.randbelow(1000)
    if rr < CRASH_BELOW:
        os._exit(1)
    elif rr < DELAY_BELOW:
        time.sleep(secrets.randbelow(MAX_DELAY_MS) / 1000)


def map_(filename: str, contents: str) -> list[KeyValue]:
    """Emit the file name, its length in bytes, the content length and a marker."""
    maybe_crash()
    return [
        KeyValue("a", filename),
        KeyValue("b", str(_byte_len(filename))),
        KeyValue("c", str(_byte_len(contents))),
        KeyValue("d", "xyzzy"),
    ]


def reduce_(key: str, values: list[str]) -> str:
    """The values sorted and joined by spaces, so the output is deterministic."""
    maybe_crash()
    return " ".join(sorted(values))
"""The crash application's twin that never actually crashes."""

from __future__ import annotations

import os
import secrets

from ..mapreduce import KeyValue

_CRASH_ENABLED = False


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8", "surrogateescape"))


def maybe_crash() -> None:
    """Draw a number as the crash application does, but never exit."""
    rr = secrets.randbelow(1000)
    if _CRASH_ENABLED and rr < 500:
        os._exit(1)


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
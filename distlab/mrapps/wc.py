"""Word-count application for MapReduce."""

from __future__ import annotations

from itertools import groupby

from ..mapreduce import KeyValue


def _words(text: str) -> list[str]:
    return ["".join(chars) for is_letter, chars in groupby(text, key=str.isalpha) if is_letter]


def map_(filename: str, contents: str) -> list[KeyValue]:
    """Emit ``(word, "1")`` for every maximal run of letters; the file name is ignored."""
    return [KeyValue(word, "1") for word in _words(contents)]


def reduce_(key: str, values: list[str]) -> str:
    """The number of occurrences of ``key``."""
    return str(len(values))
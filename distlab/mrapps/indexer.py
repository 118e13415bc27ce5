"""Inverted-index application for MapReduce."""

from __future__ import annotations

from itertools import groupby

from ..mapreduce import KeyValue


def _words(text: str) -> list[str]:
    return ["".join(chars) for is_letter, chars in groupby(text, key=str.isalpha) if is_letter]


def map_(document: str, value: str) -> list[KeyValue]:
    """Emit ``(word, document)`` once for each distinct word in the document."""
    return [KeyValue(word, document) for word in dict.fromkeys(_words(value))]


def reduce_(key: str, values: list[str]) -> str:
    """The number of documents followed by their sorted, comma-separated names."""
    documents = sorted(values)
    return f"{len(documents)} {','.join(documents)}"
"""Fixed-size bit set stored in 64-bit chunks."""

from __future__ import annotations

_CHUNK = 64
_MASK = (1 << _CHUNK) - 1


class Bitset:
    """A set of bit positions; bits 0-63 live in the first chunk, and so on."""

    __slots__ = ("_chunks",)

    def __init__(self, bits: int) -> None:
        if bits < 0:
            raise ValueError("bit count must not be negative")
        self._chunks = [0] * ((bits + _CHUNK - 1) // _CHUNK)

    def clone(self) -> "Bitset":
        copy = Bitset(0)
        copy._chunks = list(self._chunks)
        return copy

    def _index(self, pos: int) -> tuple[int, int]:
        if pos < 0:
            raise IndexError("bit position must not be negative")
        major, minor = divmod(pos, _CHUNK)
        if major >= len(self._chunks):
            raise IndexError(f"bit position {pos} out of range")
        return major, minor

    def set(self, pos: int) -> "Bitset":
        major, minor = self._index(pos)
        self._chunks[major] |= 1 << minor
        return self

    def clear(self, pos: int) -> "Bitset":
        major, minor = self._index(pos)
        self._chunks[major] &= ~(1 << minor) & _MASK
        return self

    def get(self, pos: int) -> bool:
        major, minor = self._index(pos)
        return bool(self._chunks[major] & (1 << minor))

    def popcnt(self) -> int:
        return sum(chunk.bit_count() for chunk in self._chunks)

    def digest(self) -> int:
        """Cheap 64-bit summary: the population count xor-ed with every chunk."""
        value = self.popcnt()
        for chunk in self._chunks:
            value ^= chunk
        return value & _MASK

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bitset):
            return NotImplemented
        return self._chunks == other._chunks

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        bits = [i for i in range(len(self._chunks) * _CHUNK) if self.get(i)]
        return f"Bitset({bits})"
import pytest

from distlab.bitset import Bitset


def test_set_get_clear():
    b = Bitset(100)
    b.set(3).set(70)
    assert b.get(3)
    assert b.get(70)
    assert not b.get(4)
    b.clear(3)
    assert not b.get(3)
    assert b.get(70)


def test_popcnt_counts_set_bits():
    b = Bitset(130)
    for pos in (0, 63, 64, 129):
        b.set(pos)
    assert b.popcnt() == 4
    b.clear(63)
    assert b.popcnt() == 3


def test_clone_is_independent():
    b = Bitset(10).set(1)
    c = b.clone()
    c.set(2)
    assert not b.get(2)
    assert c.get(1)
    assert b != c


def test_equality_and_digest():
    a = Bitset(64).set(5)
    b = Bitset(64).set(5)
    assert a == b
    assert a.digest() == b.digest()
    b.set(6)
    assert a != b


def test_empty_digest_is_zero():
    assert Bitset(64).digest() == 0


def test_chunk_boundary():
    b = Bitset(1)
    b.set(63)
    assert b.get(63)
    with pytest.raises(IndexError):
        b.set(64)


def test_negative_arguments_rejected():
    with pytest.raises(ValueError):
        Bitset(-1)
    with pytest.raises(IndexError):
        Bitset(8).get(-1)


def test_clear_round_trip_restores_equality():
    a = Bitset(200)
    b = a.clone().set(150).clear(150)
    assert a == b
    assert b.popcnt() == 0
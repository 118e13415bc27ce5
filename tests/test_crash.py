from unittest import mock

import pytest

from distlab.mapreduce import KeyValue
from distlab.mrapps import crash


@pytest.fixture
def no_crash():
    with mock.patch("distlab.mrapps.crash.secrets.randbelow", return_value=999) as draw:
        yield draw


def test_map_emits_four_pairs(no_crash):
    result = crash.map_("pg-x.txt", "hello")
    assert result == [
        KeyValue("a", "pg-x.txt"),
        KeyValue("b", "8"),
        KeyValue("c", "5"),
        KeyValue("d", "xyzzy"),
    ]


def test_map_counts_content_bytes(no_crash):
    result = crash.map_("f", "é")
    assert result[2] == KeyValue("c", "2")


def test_reduce_sorts_without_mutating(no_crash):
    values = ["b", "a", "c"]
    assert crash.reduce_("k", values) == "a b c"
    assert values == ["b", "a", "c"]


@pytest.mark.parametrize("draw", [0, crash.CRASH_BELOW - 1])
def test_low_draw_exits(draw):
    with mock.patch("distlab.mrapps.crash.secrets.randbelow", return_value=draw), \
            mock.patch("distlab.mrapps.crash.os._exit", side_effect=SystemExit) as exit_:
        with pytest.raises(SystemExit):
            crash.maybe_crash()
    assert exit_.call_args_list == [mock.call(1)]


@pytest.mark.parametrize("draw", [crash.CRASH_BELOW, crash.DELAY_BELOW - 1])
def test_middle_draw_sleeps(draw):
    with mock.patch("distlab.mrapps.crash.secrets.randbelow", side_effect=[draw, 2500]), \
            mock.patch("distlab.mrapps.crash.time.sleep") as sleep, \
            mock.patch("distlab.mrapps.crash.os._exit") as exit_:
        result = crash.maybe_crash()
    assert result is None
    assert sleep.call_args_list == [mock.call(2.5)]
    assert exit_.call_count == 0


def test_high_draw_does_nothing():
    with mock.patch("distlab.mrapps.crash.secrets.randbelow", return_value=crash.DELAY_BELOW), \
            mock.patch("distlab.mrapps.crash.time.sleep") as sleep, \
            mock.patch("distlab.mrapps.crash.os._exit") as exit_:
        result = crash.maybe_crash()
    assert result is None
    assert sleep.call_count == 0
    assert exit_.call_count == 0
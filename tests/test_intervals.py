"""Tests for the canonical interval map."""

from __future__ import annotations

import random

import pytest

from patchscript.intervals import Interval, IntervalMap


def spans(m: IntervalMap) -> list[tuple[int, int, object]]:
    return [(iv.start, iv.end, iv.value) for iv in m.intervals()]


def assert_canonical(m: IntervalMap) -> None:
    items = spans(m)
    for start, end, value in items:
        assert start <= end
        assert value is not None
    for (s1, e1, v1), (s2, e2, v2) in zip(items, items[1:]):
        assert e1 < s2, f"overlap or disorder: {items}"
        if e1 + 1 == s2:
            assert v1 != v2, f"touching intervals not merged: {items}"


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruct:
    def test_initial_interval(self) -> None:
        m = IntervalMap(0, 10, "apple")
        assert spans(m) == [(0, 10, "apple")]
        assert (m.min_index, m.max_index) == (0, 10)

    def test_unset_initial_value(self) -> None:
        m = IntervalMap(0, 10)
        assert spans(m) == []
        assert m.get(5) is None
        assert (m.min_index, m.max_index) == (0, 10)

    def test_empty(self) -> None:
        m = IntervalMap()
        assert m.min_index is None and m.max_index is None
        assert m.get(0) is None
        assert len(m) == 0

    def test_reversed_bounds_rejected(self) -> None:
        with pytest.raises(ValueError):
            IntervalMap(10, 0, "x")

    def test_half_bounds_rejected(self) -> None:
        with pytest.raises(ValueError, match="together"):
            IntervalMap(0, None, "x")


# ---------------------------------------------------------------------------
# set / get
# ---------------------------------------------------------------------------


class TestSet:
    def test_split_middle(self) -> None:
        m = IntervalMap(0, 10, "a")
        m.set(3, 5, "b")
        assert spans(m) == [(0, 2, "a"), (3, 5, "b"), (6, 10, "a")]

    def test_rewrite_middle_remerges(self) -> None:
        m = IntervalMap(0, 10, "a")
        m.set(3, 5, "b")
        m.set(3, 5, "a")
        assert spans(m) == [(0, 10, "a")]

    def test_adjacent_equal_values_merge_right(self) -> None:
        m = IntervalMap()
        m.set(0, 4, "v")
        m.set(5, 9, "v")
        assert spans(m) == [(0, 9, "v")]

    def test_adjacent_equal_values_merge_left(self) -> None:
        m = IntervalMap()
        m.set(5, 9, "v")
        m.set(0, 4, "v")
        assert spans(m) == [(0, 9, "v")]

    def test_adjacent_different_values_stay_apart(self) -> None:
        m = IntervalMap()
        m.set(0, 4, "v")
        m.set(5, 9, "w")
        assert spans(m) == [(0, 4, "v"), (5, 9, "w")]

    def test_bridge_merges_both_sides(self) -> None:
        m = IntervalMap()
        m.set(0, 2, "a")
        m.set(6, 8, "a")
        m.set(3, 5, "a")
        assert spans(m) == [(0, 8, "a")]

    def test_overwrite_spanning_several(self) -> None:
        m = IntervalMap()
        for i, v in enumerate("abcde"):
            m.set(i * 10, i * 10 + 9, v)
        m.set(15, 34, "z")
        assert spans(m) == [
            (0, 9, "a"),
            (10, 14, "b"),
            (15, 34, "z"),
            (35, 39, "d"),
            (40, 49, "e"),
        ]

    def test_clear_middle(self) -> None:
        m = IntervalMap(0, 10, "a")
        m.set(3, 5, None)
        assert spans(m) == [(0, 2, "a"), (6, 10, "a")]
        assert m.get(4) is None
        assert (m.min_index, m.max_index) == (0, 10)

    def test_clear_everything_keeps_bounds(self) -> None:
        m = IntervalMap(0, 10, "a")
        m.set(-5, 30, None)
        assert spans(m) == []
        assert (m.min_index, m.max_index) == (-5, 30)

    def test_growth_leaves_gap_unset(self) -> None:
        m = IntervalMap(0, 10, "a")
        m.set(20, 25, "a")
        assert spans(m) == [(0, 10, "a"), (20, 25, "a")]
        assert m.get(15) is None
        assert (m.min_index, m.max_index) == (0, 25)

    def test_growth_below(self) -> None:
        m = IntervalMap(0, 10, "a")
        m.set(-10, -5, "b")
        assert m.min_index == -10
        assert m.get(-3) is None

    def test_get_outside_bounds(self) -> None:
        m = IntervalMap(0, 10, "a")
        assert m.get(-1) is None
        assert m.get(11) is None
        assert m.get(0) == "a" and m.get(10) == "a"

    def test_reversed_range_rejected(self) -> None:
        m = IntervalMap(0, 10, "a")
        with pytest.raises(ValueError, match="greater than end"):
            m.set(5, 4, "b")
        assert spans(m) == [(0, 10, "a")]

    def test_single_index(self) -> None:
        m = IntervalMap(0, 10, False)
        m.set_index(4, True)
        assert spans(m) == [(0, 3, False), (4, 4, True), (5, 10, False)]

    def test_produce_sequence(self) -> None:
        m = IntervalMap(0, 10, "apple")
        m.set(11, 20, "banana")
        m.set(-10, -1, "carrot")
        m.set(5, 15, "durian")
        assert spans(m) == [
            (-10, -1, "carrot"),
            (0, 4, "apple"),
            (5, 15, "durian"),
            (16, 20, "banana"),
        ]
        m.set(0, 4, "eggplant")
        m.set(0, 6, "frankfurter")
        m.set(4, 15, "grape")
        assert spans(m) == [
            (-10, -1, "carrot"),
            (0, 3, "frankfurter"),
            (4, 15, "grape"),
            (16, 20, "banana"),
        ]
        m.set(0, 20, "haggis")
        m.set(0, 20, "carrot")
        assert spans(m) == [(-10, 20, "carrot")]
        m.set(-20, 30, "icaco")
        m.set(20, 30, "jello")
        m.set(60, 80, "muenster")
        assert spans(m) == [(-20, 19, "icaco"), (20, 30, "jello"), (60, 80, "muenster")]
        assert (m.min_index, m.max_index) == (-20, 80)
        m.set(81, 100, "muenster")
        assert spans(m)[-1] == (60, 100, "muenster")
        m.set(-200, 200, None)
        assert spans(m) == []
        assert (m.min_index, m.max_index) == (-200, 200)

    def test_last_write_wins_against_model(self) -> None:
        rng = random.Random(1234)
        m: IntervalMap[str] = IntervalMap()
        model: dict[int, str | None] = {}
        for _ in range(300):
            start = rng.randint(-40, 40)
            end = start + rng.randint(0, 15)
            value = rng.choice([None, "a", "b", "c"])
            m.set(start, end, value)
            for i in range(start, end + 1):
                model[i] = value
            assert_canonical(m)
        for i in range(-60, 60):
            assert m.get(i) == model.get(i), f"index {i}"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    @pytest.fixture
    def flags(self) -> IntervalMap[bool]:
        m = IntervalMap(0, 10, False)
        m.set(4, 6, True)
        return m

    def test_get_or_default(self) -> None:
        m = IntervalMap(0, 3, "a")
        assert m.get_or_default(2, "z") == "a"
        assert m.get_or_default(9, "z") == "z"

    def test_values(self, flags) -> None:
        assert flags.values(3, 7) == [False, True, False]
        assert flags.values(10, 12) == [False]
        assert flags.values(11, 12) == []

    def test_values_rejects_reversed(self, flags) -> None:
        with pytest.raises(ValueError):
            flags.values(5, 1)

    def test_value_set(self, flags) -> None:
        assert flags.value_set(0, 3) == {False}
        assert flags.value_set(3, 5) == {False, True}
        assert flags.value_set(9, 15) == {False}
        assert flags.value_set(11, 15) == set()

    def test_value_set_in_gap(self) -> None:
        m = IntervalMap()
        m.set(0, 1, "a")
        m.set(5, 6, "b")
        assert m.value_set(0, 6) == {"a", "b"}
        assert m.values(0, 6) == ["a", "b"]

    def test_cleared_range_contributes_nothing(self) -> None:
        m = IntervalMap(0, 10, "a")
        m.set(5, 6, None)
        assert m.value_set(0, 10) == {"a"}
        assert m.values(0, 10) == ["a", "a"]

    def test_index_width(self, flags) -> None:
        assert flags.index_width(True) == 3
        assert flags.index_width(False) == 8
        assert flags.index_width("nope") == 0

    def test_find(self, flags) -> None:
        assert flags.find(True) == 4
        assert flags.find(True, 5) == 5
        assert flags.find(True, 7) is None
        assert flags.find(False) == 0
        assert flags.find(False, 4) == 7

    def test_intervals(self, flags) -> None:
        ivs = list(flags.intervals())
        assert ivs[1] == Interval(4, 6, True)
        assert len(ivs[1]) == 3
        assert 5 in ivs[1] and 7 not in ivs[1]

    def test_repr(self) -> None:
        m = IntervalMap(0, 2, "a")
        m.set(3, 5, "b")
        assert repr(m) == "IntervalMap([0..2]='a', [3..5]='b')"

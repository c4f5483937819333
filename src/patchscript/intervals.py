"""Sparse integer-indexed map stored as canonical closed intervals.

Only intervals holding a value are stored; any index they do not cover is
unset (``None``). After every write the stored intervals are sorted, disjoint,
and no two touching intervals hold equal values.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Generic, TypeVar

V = TypeVar("V")


@dataclass(frozen=True, slots=True)
class Interval(Generic[V]):
    """A closed range ``[start, end]`` and the value it holds."""

    start: int
    end: int
    value: V

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __contains__(self, index: int) -> bool:
        return self.start <= index <= self.end


class IntervalMap(Generic[V]):
    """Assign values to ranges of integers, overwriting overlaps on write."""

    def __init__(
        self,
        min_index: int | None = None,
        max_index: int | None = None,
        value: V | None = None,
    ) -> None:
        # Parallel arrays, sorted by start; ends are sorted too since the
        # intervals never overlap.
        self._starts: list[int] = []
        self._ends: list[int] = []
        self._values: list[V] = []
        self._min_index: int | None = None
        self._max_index: int | None = None

        if (min_index is None) != (max_index is None):
            raise ValueError("min_index and max_index must be given together")
        if min_index is not None and max_index is not None:
            self.set(min_index, max_index, value)

    @property
    def min_index(self) -> int | None:
        return self._min_index

    @property
    def max_index(self) -> int | None:
        return self._max_index

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, start: int, end: int, value: V | None) -> None:
        """Overwrite ``[start, end]`` with ``value``; ``None`` clears the range."""
        if start > end:
            raise ValueError(f"interval start {start} is greater than end {end}")

        # Every stored interval that overlaps or touches [start - 1, end + 1].
        lo = bisect_left(self._ends, start - 1)
        hi = bisect_right(self._starts, end + 1)

        new_start, new_end = start, end
        left: list[tuple[int, int, V]] = []
        right: list[tuple[int, int, V]] = []
        for i in range(lo, hi):
            s, e, v = self._starts[i], self._ends[i], self._values[i]
            same = value is not None and v == value
            if s < start:
                if same:
                    new_start = s
                else:
                    left.append((s, min(e, start - 1), v))
            if e > end:
                if same:
                    new_end = e
                else:
                    right.append((max(s, end + 1), e, v))

        pieces = left
        if value is not None:
            pieces.append((new_start, new_end, value))
        pieces.extend(right)

        self._starts[lo:hi] = [p[0] for p in pieces]
        self._ends[lo:hi] = [p[1] for p in pieces]
        self._values[lo:hi] = [p[2] for p in pieces]

        if self._min_index is None or start < self._min_index:
            self._min_index = start
        if self._max_index is None or end > self._max_index:
            self._max_index = end

    def set_index(self, index: int, value: V | None) -> None:
        self.set(index, index, value)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _slot(self, index: int) -> int:
        """Position of the interval containing ``index``, or -1."""
        i = bisect_right(self._starts, index) - 1
        if i >= 0 and self._ends[i] >= index:
            return i
        return -1

    def get(self, index: int) -> V | None:
        i = self._slot(index)
        return self._values[i] if i >= 0 else None

    def get_or_default(self, index: int, default: V) -> V:
        value = self.get(index)
        return default if value is None else value

    def values(self, start: int, end: int) -> list[V]:
        """The value of each interval overlapping ``[start, end]``, in order.

        Unset gaps contribute nothing; equal values in separate intervals repeat.
        """
        if start > end:
            raise ValueError(f"interval start {start} is greater than end {end}")
        lo = bisect_left(self._ends, start)
        hi = bisect_right(self._starts, end)
        return self._values[lo:hi]

    def value_set(self, start: int, end: int) -> set[V]:
        """The distinct values set anywhere in ``[start, end]``."""
        return set(self.values(start, end))

    def index_width(self, value: V) -> int:
        """How many indices currently hold ``value``."""
        return sum(len(iv) for iv in self.intervals() if iv.value == value)

    def find(self, value: V, start: int | None = None) -> int | None:
        """The first index at or after ``start`` holding ``value``, or None."""
        begin = 0
        if start is not None:
            begin = max(bisect_right(self._starts, start) - 1, 0)
        for i in range(begin, len(self._starts)):
            if self._values[i] != value:
                continue
            if start is None or self._starts[i] >= start:
                return self._starts[i]
            if self._ends[i] >= start:
                return start
        return None

    def intervals(self) -> Iterator[Interval[V]]:
        for s, e, v in zip(self._starts, self._ends, self._values):
            yield Interval(s, e, v)

    def __len__(self) -> int:
        return len(self._starts)

    def __repr__(self) -> str:
        parts = ", ".join(f"[{iv.start}..{iv.end}]={iv.value!r}" for iv in self.intervals())
        return f"IntervalMap({parts})"

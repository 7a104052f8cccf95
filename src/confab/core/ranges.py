"""Structured helpers for representing text spans."""

from __future__ import annotations

import bisect
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Iterator


@dataclass(slots=True, frozen=True)
class TextRange(Sequence[int]):
    """Half-open ``[start, end)`` interval of absolute character offsets."""

    start: int
    end: int

    def __post_init__(self) -> None:
        start = self._coerce_index(self.start, "start")
        end = self._coerce_index(self.end, "end")
        if end < start:
            start, end = end, start
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @staticmethod
    def _coerce_index(value: Any, label: str) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"TextRange {label} must be an integer") from exc
        if number < 0:
            return 0
        return number

    def __len__(self) -> int:
        return 2

    def __getitem__(self, index: int | slice) -> int | tuple[int, ...]:
        if isinstance(index, slice):
            return self.to_tuple()[index]
        if index == 0:
            return self.start
        if index == 1:
            return self.end
        raise IndexError("TextRange index out of range")

    def __iter__(self) -> Iterator[int]:
        yield self.start
        yield self.end

    @property
    def length(self) -> int:
        """Return the width of the range."""

        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def contains(self, offset: int) -> bool:
        """Return ``True`` when ``offset`` falls inside the range."""

        return self.start <= offset < self.end

    def intersects(self, other: "TextRange") -> bool:
        """Return ``True`` when both ranges share at least one offset."""

        return self.start < other.end and other.start < self.end

    def slice(self, text: str) -> str:
        """Return the substring of ``text`` covered by this range."""

        return text[self.start : self.end]

    def to_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)

    def to_dict(self) -> dict[str, int]:
        """Return the range as a JSON-friendly object."""

        return {"start": self.start, "end": self.end}

    @classmethod
    def from_value(cls, value: Any) -> TextRange:
        """Coerce ``value`` into a :class:`TextRange`."""

        if isinstance(value, TextRange):
            return value
        if value is None:
            raise ValueError("TextRange value is required")
        if isinstance(value, Mapping):
            start = value.get("start")
            end = value.get("end")
            if start is None or end is None:
                raise ValueError("TextRange mappings require start and end keys")
            return cls(start, end)
        if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            seq = list(value)
            if len(seq) != 2:
                raise ValueError("TextRange sequences must have exactly two entries")
            return cls(seq[0], seq[1])
        start = getattr(value, "start", None)
        end = getattr(value, "end", None)
        if start is not None and end is not None:
            return cls(start, end)
        raise TypeError("Unsupported TextRange input")


class RangeSet:
    """Sorted, non-overlapping collection of claimed ranges.

    Ranges that touch or overlap are merged on insertion so lookups stay a
    single bisect away.
    """

    __slots__ = ("_starts", "_ends")

    def __init__(self, ranges: Iterable[Any] = ()) -> None:
        self._starts: list[int] = []
        self._ends: list[int] = []
        for value in ranges:
            self.add(value)

    def __len__(self) -> int:
        return len(self._starts)

    def __iter__(self) -> Iterator[TextRange]:
        for start, end in zip(self._starts, self._ends):
            yield TextRange(start, end)

    def __bool__(self) -> bool:
        return bool(self._starts)

    def copy(self) -> RangeSet:
        clone = RangeSet()
        clone._starts = list(self._starts)
        clone._ends = list(self._ends)
        return clone

    def add(self, value: Any) -> None:
        """Claim ``value`` (anything :meth:`TextRange.from_value` accepts)."""

        target = TextRange.from_value(value)
        if target.is_empty:
            return
        start, end = target.start, target.end
        lo = bisect.bisect_left(self._ends, start)
        hi = bisect.bisect_right(self._starts, end)
        if lo < hi:
            start = min(start, self._starts[lo])
            end = max(end, self._ends[hi - 1])
        self._starts[lo:hi] = [start]
        self._ends[lo:hi] = [end]

    def intersects(self, value: Any) -> bool:
        """Return ``True`` when ``value`` overlaps any claimed range."""

        target = TextRange.from_value(value)
        if target.is_empty or not self._starts:
            return False
        index = bisect.bisect_right(self._ends, target.start)
        if index >= len(self._starts):
            return False
        return self._starts[index] < target.end


__all__ = ["TextRange", "RangeSet"]

"""Tests for :mod:`confab.core.ranges`."""

from __future__ import annotations

import pytest

from confab.core.ranges import RangeSet, TextRange


def test_text_range_normalizes_reversed_and_negative_bounds() -> None:
    assert TextRange(8, 3).to_tuple() == (3, 8)
    assert TextRange(-4, 2).to_tuple() == (0, 2)


def test_text_range_is_half_open() -> None:
    target = TextRange(2, 5)
    assert target.contains(2)
    assert target.contains(4)
    assert not target.contains(5)
    assert target.length == 3
    assert target.slice("abcdefg") == "cde"


def test_text_range_intersection_excludes_touching_ranges() -> None:
    assert TextRange(0, 5).intersects(TextRange(4, 9))
    assert not TextRange(0, 5).intersects(TextRange(5, 9))


@pytest.mark.parametrize(
    "value",
    [(1, 4), [1, 4], {"start": 1, "end": 4}, TextRange(1, 4)],
)
def test_text_range_from_value_accepts_common_shapes(value: object) -> None:
    assert TextRange.from_value(value) == TextRange(1, 4)


def test_text_range_from_value_rejects_bad_input() -> None:
    with pytest.raises(ValueError):
        TextRange.from_value({"start": 1})
    with pytest.raises(ValueError):
        TextRange.from_value((1, 2, 3))
    with pytest.raises(TypeError):
        TextRange.from_value(3.5)


def test_range_set_merges_overlapping_and_touching_ranges() -> None:
    claimed = RangeSet([(10, 15), (0, 3)])
    claimed.add((3, 5))
    claimed.add((12, 20))

    assert [item.to_tuple() for item in claimed] == [(0, 5), (10, 20)]
    assert len(claimed) == 2


def test_range_set_intersects() -> None:
    claimed = RangeSet([(5, 10)])

    assert claimed.intersects((9, 12))
    assert claimed.intersects((0, 6))
    assert not claimed.intersects((10, 12))
    assert not claimed.intersects((0, 5))
    assert not claimed.intersects((7, 7))
    assert not RangeSet().intersects((0, 100))


def test_range_set_copy_is_independent() -> None:
    original = RangeSet([(0, 2)])
    clone = original.copy()
    clone.add((4, 6))

    assert len(original) == 1
    assert len(clone) == 2

from __future__ import annotations

import math
from dataclasses import dataclass, field

from streambly.diff import clone, is_different


@dataclass
class Point:
    x: int
    y: int
    tags: list = field(default_factory=list)


@dataclass
class OtherPoint:
    x: int
    y: int
    tags: list = field(default_factory=list)


def test_scalars_compare_by_value() -> None:
    assert not is_different(1, 1)
    assert not is_different("a", "a")
    assert not is_different(None, None)
    assert is_different(1, 2)
    assert is_different("a", "b")
    assert is_different(None, 0)


def test_same_nan_object_is_not_different() -> None:
    value = math.nan
    assert not is_different(value, value)


def test_nested_mappings_compare_structurally() -> None:
    left = {"todos": [{"id": 1, "done": False}], "meta": {"page": 1}}
    right = {"meta": {"page": 1}, "todos": [{"id": 1, "done": False}]}

    assert not is_different(left, right)
    right["todos"][0]["done"] = True
    assert is_different(left, right)


def test_added_or_removed_keys_are_different() -> None:
    assert is_different({"a": 1}, {"a": 1, "b": 2})
    assert is_different({"a": 1, "b": 2}, {"a": 1})
    assert is_different({"a": 1}, {"b": 1})


def test_sequences_compare_by_position() -> None:
    assert not is_different([1, [2, 3]], [1, [2, 3]])
    assert is_different([1, 2], [2, 1])
    assert is_different([1, 2], [1, 2, 3])
    assert not is_different((1, 2), [1, 2])


def test_sets_compare_by_membership() -> None:
    assert not is_different({1, 2}, {2, 1})
    assert is_different({1, 2}, {1})


def test_mixed_composite_and_scalar_are_different() -> None:
    assert is_different({"a": 1}, 1)
    assert is_different([1], 1)
    assert is_different("ab", ["a", "b"])
    assert is_different({"a": 1}, [("a", 1)])


def test_dataclasses_compare_field_by_field() -> None:
    assert not is_different(Point(1, 2, ["x"]), Point(1, 2, ["x"]))
    assert is_different(Point(1, 2), Point(1, 3))
    assert is_different(Point(1, 2), OtherPoint(1, 2))


def test_clone_is_independent() -> None:
    original = {"items": [Point(1, 2)]}
    copied = clone(original)

    copied["items"][0].x = 10
    assert original["items"][0].x == 1
    assert is_different(original, copied)

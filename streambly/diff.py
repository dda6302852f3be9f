"""
Structural comparison and snapshot helpers.

Values handed to a stream are expected to be plain data: scalars, mappings,
sequences, sets and dataclass instances nested arbitrarily.  Reference
identity of composite values never matters, only their contents.
"""

from __future__ import annotations

import copy
import dataclasses
from collections.abc import Mapping, Sequence, Set
from typing import Any, Optional, TypeVar

T = TypeVar("T")

_SCALAR_SEQUENCES = (str, bytes, bytearray)


def _composite_kind(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        return "mapping"
    if isinstance(value, Sequence) and not isinstance(value, _SCALAR_SEQUENCES):
        return "sequence"
    if isinstance(value, Set):
        return "set"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return "dataclass"
    return None


def is_different(a: Any, b: Any) -> bool:
    """
    Return ``True`` when ``a`` and ``b`` are not structurally equal.

    Scalars compare by value.  Composites compare field by field,
    recursively; an added, removed or changed entry makes them different.
    A composite is always different from a non-composite.
    """

    if a is b:
        return False

    kind_a = _composite_kind(a)
    kind_b = _composite_kind(b)
    if kind_a != kind_b:
        return True

    if kind_a is None:
        return not (a == b)

    if kind_a == "mapping":
        if len(a) != len(b):
            return True
        for key, value in a.items():
            if key not in b:
                return True
            if is_different(value, b[key]):
                return True
        return False

    if kind_a == "sequence":
        if len(a) != len(b):
            return True
        return any(is_different(left, right) for left, right in zip(a, b))

    if kind_a == "set":
        # Set members are hashable, hence scalars or frozen composites.
        return set(a) != set(b)

    if type(a) is not type(b):
        return True
    return any(
        is_different(getattr(a, field.name), getattr(b, field.name))
        for field in dataclasses.fields(a)
    )


def clone(value: T) -> T:
    """Deep, independent copy used for published snapshots."""

    return copy.deepcopy(value)


__all__ = ["clone", "is_different"]

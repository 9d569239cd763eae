"""Order-preserving set differences used by every synchronization flow.

``missing = target - actual`` and ``redundant = actual - target``, keeping
the order of the sequence they are taken from so rewritten documents stay
stable between runs.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TypeVar

T = TypeVar("T")


def missing_items(actual: Iterable[T], target: Sequence[T]) -> list[T]:
    actual_set = set(actual)
    return [item for item in _unique(target) if item not in actual_set]


def redundant_items(actual: Sequence[T], target: Iterable[T]) -> list[T]:
    target_set = set(target)
    return [item for item in _unique(actual) if item not in target_set]


def same_items(a: Iterable[T], b: Iterable[T]) -> bool:
    """Order-insensitive equality."""
    return set(a) == set(b)


def _unique(items: Sequence[T]) -> list[T]:
    return list(dict.fromkeys(items))

"""Undo/redo history over an immutable application value.

The store keeps three parts: ``past`` (oldest first), ``present`` and
``future`` (the next redo target first). Values are compared by identity,
so callers must produce a new object for every real edit and return the
same object when nothing changed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryFrame(Generic[T]):
    past: tuple[T, ...]
    present: T
    future: tuple[T, ...]


class HistoryStore(Generic[T]):
    """Past/present/future container with branch-clearing ``set``.

    ``limit`` caps the length of ``past``; ``None`` or ``0`` keeps it unbounded.
    """

    def __init__(self, initial: T, limit: int | None = None) -> None:
        self._past: list[T] = []
        self._present: T = initial
        self._future: list[T] = []
        self._limit = limit or None

    @property
    def present(self) -> T:
        return self._present

    @property
    def past(self) -> tuple[T, ...]:
        return tuple(self._past)

    @property
    def future(self) -> tuple[T, ...]:
        return tuple(self._future)

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    @property
    def frame(self) -> HistoryFrame[T]:
        return HistoryFrame(tuple(self._past), self._present, tuple(self._future))

    def set(self, value: T | Callable[[T], T]) -> bool:
        """Make ``value`` (or ``value(present)``) the new present.

        Returns False without touching the history when the computed value is
        the current present.
        """
        new_present = value(self._present) if callable(value) else value
        if new_present is self._present:
            return False

        self._past.append(self._present)
        if self._limit is not None and len(self._past) > self._limit:
            dropped = len(self._past) - self._limit
            del self._past[:dropped]
            logger.debug("History limit %d reached, dropped %d oldest entries", self._limit, dropped)
        self._present = new_present
        self._future.clear()
        return True

    def undo(self) -> bool:
        if not self._past:
            return False
        previous = self._past.pop()
        self._future.insert(0, self._present)
        self._present = previous
        return True

    def redo(self) -> bool:
        if not self._future:
            return False
        following = self._future.pop(0)
        self._past.append(self._present)
        self._present = following
        return True

    def reset(self, value: T) -> None:
        """Replace the present and forget all history."""
        self._past.clear()
        self._future.clear()
        self._present = value

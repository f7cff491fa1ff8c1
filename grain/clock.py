"""
Time and identifier sources.

Every service takes a Clock and an IdFactory instead of reading the wall
clock or a module counter, so runs can be replayed deterministically.
"""

from __future__ import annotations

import itertools
import uuid
from datetime import date, datetime, timezone
from typing import Callable, Protocol

IdFactory = Callable[[], str]


def utcnow() -> datetime:
    # Stored timestamps are naive UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def uuid_str() -> str:
    return str(uuid.uuid4())


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    def now(self) -> datetime:
        return utcnow()

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """A clock pinned to one instant (tests, replays)."""

    def __init__(self, instant: datetime):
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def today(self) -> date:
        return self._instant.date()


def sequential_ids(prefix: str = "id") -> IdFactory:
    counter = itertools.count(1)
    return lambda: f"{prefix}_{next(counter)}"

"""
Small statistics and calendar helpers shared by the detectors.

Everything here is defensive about empty input: averages of nothing are 0.0
and deviations of fewer than two values are 0.0, so callers only have to
check sample sizes, never denominators.
"""

from __future__ import annotations

import statistics
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, Iterable, Iterator, List, Sequence, Tuple, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Baseline:
    count: int
    mean: float
    std_dev: float

    def z_score(self, value: float) -> float:
        if self.std_dev <= 0:
            return 0.0
        return (value - self.mean) / self.std_dev


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(statistics.fmean(values))


def pstdev(values: Sequence[float]) -> float:
    # Population deviation: the whole history is the population.
    if len(values) < 2:
        return 0.0
    return float(statistics.pstdev(values))


def baseline(values: Sequence[float]) -> Baseline:
    return Baseline(count=len(values), mean=mean(values), std_dev=pstdev(values))


def pct_change(previous: float, current: float) -> float:
    """Percent change from previous to current; 100 when starting from zero."""
    if previous != 0:
        return (current - previous) / previous * 100.0
    return 100.0 if current > 0 else 0.0


def split_half(items: Sequence[T]) -> Tuple[List[T], List[T]]:
    """Split an ordered sequence at floor(n/2)."""
    mid = len(items) // 2
    return list(items[:mid]), list(items[mid:])


def window_midpoint(start: datetime, end: datetime) -> datetime:
    return start + (end - start) / 2


def split_by_midpoint(
    items: Iterable[T],
    key: Callable[[T], datetime],
    start: datetime,
    end: datetime,
) -> Tuple[List[T], List[T]]:
    """Split items into [start, mid) and [mid, end] by timestamp."""
    mid = window_midpoint(start, end)
    first: List[T] = []
    second: List[T] = []
    for item in items:
        (first if key(item) < mid else second).append(item)
    return first, second


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def days_inclusive(start: date, end: date) -> int:
    return (end - start).days + 1


def same_weekdays(day: date, weeks: int = 4) -> List[date]:
    """The same weekday in each of the previous `weeks` weeks, newest first."""
    return [day - timedelta(days=7 * w) for w in range(1, weeks + 1)]


def group_by_day(items: Iterable[T], key: Callable[[T], datetime | date]) -> Dict[date, List[T]]:
    groups: Dict[date, List[T]] = defaultdict(list)
    for item in items:
        stamp = key(item)
        day = stamp.date() if isinstance(stamp, datetime) else stamp
        groups[day].append(item)
    return dict(groups)


def as_datetime(day: date) -> datetime:
    return datetime.combine(day, time.min)

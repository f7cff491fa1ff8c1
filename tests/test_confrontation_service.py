from __future__ import annotations

from datetime import date, datetime, time

import pytest

from grain.clock import FixedClock
from grain.errors import InvalidPeriodError
from grain.services.confrontation_service import (
    confrontation_window,
    generate_confrontations,
    list_confrontations,
)


def test_weekly_and_monthly_windows():
    assert confrontation_window("weekly", date(2026, 10, 17)) == (
        datetime(2026, 10, 10),
        datetime.combine(date(2026, 10, 17), time.max),
    )
    start, _ = confrontation_window("monthly", date(2026, 3, 31))
    assert start == datetime(2026, 2, 28)


def test_unsupported_period():
    with pytest.raises(InvalidPeriodError):
        confrontation_window("daily", date(2026, 10, 17))


def _declining_mood(seed):
    for day, score in zip(range(11, 17), [4, 4, 4, 2, 2, 2]):
        seed.mood(datetime(2026, 10, day, 20, 0), score)


def test_generate_stores_a_mood_trend(store, seed):
    _declining_mood(seed)

    stored = generate_confrontations(store, "weekly")

    assert [c.title for c in stored] == ["Your mood is declining"]
    assert stored[0].id is not None
    assert stored[0].generated_at == datetime(2026, 10, 17, 12, 0)


def test_generation_replaces_every_previous_confrontation(store, seed):
    _declining_mood(seed)
    generate_confrontations(store, "weekly")
    generate_confrontations(store, "weekly")

    assert len(list_confrontations(store)) == 1


def test_empty_window_clears_old_confrontations(store, seed):
    _declining_mood(seed)
    generate_confrontations(store, "weekly")

    later = FixedClock(datetime(2027, 1, 15, 9, 0))

    assert generate_confrontations(store, "weekly", clock=later) == []
    assert list_confrontations(store) == []


def test_failed_generation_keeps_the_previous_set(store, seed, monkeypatch):
    from grain.store import SqlRecordStore

    _declining_mood(seed)
    previous = generate_confrontations(store, "weekly")
    assert len(previous) == 1

    def broken_insert(self, confrontation):
        raise RuntimeError("disk full")

    monkeypatch.setattr(SqlRecordStore, "insert_confrontation", broken_insert)

    with pytest.raises(RuntimeError):
        generate_confrontations(store, "weekly")

    assert [c.id for c in list_confrontations(store)] == [c.id for c in previous]

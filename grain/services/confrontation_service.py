from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from grain.clock import Clock
from grain.detectors.confrontation import (
    calendar_overload,
    exercise_decline,
    mood_trend,
    mood_vs_meeting_load,
    silent_locations,
    spending_trend,
    spending_vs_mood,
)
from grain.errors import InvalidPeriodError
from grain.records import Confrontation
from grain.store import RecordStore

logger = logging.getLogger(__name__)

CONFRONTATION_PERIODS = ("weekly", "monthly")


def _month_back(day: date) -> date:
    year, month = (day.year, day.month - 1) if day.month > 1 else (day.year - 1, 12)
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def confrontation_window(period: str, today: date) -> Tuple[datetime, datetime]:
    if period == "weekly":
        start = today - timedelta(days=7)
    elif period == "monthly":
        start = _month_back(today)
    else:
        raise InvalidPeriodError(f"confrontations support weekly or monthly, got {period}")
    return datetime.combine(start, time.min), datetime.combine(today, time.max)


def generate_confrontations(
    store: RecordStore,
    period: str = "weekly",
    *,
    clock: Optional[Clock] = None,
) -> List[Confrontation]:
    """
    Run every period analyzer and replace ALL stored confrontations with the
    new set. The replace is one transaction.
    """
    clock = clock or store.clock
    start, end = confrontation_window(period, clock.today())

    moods = store.get_mood_entries_in_window(start, end)
    calendar_entries = store.get_calendar_events_in_window(start, end)
    txns = store.get_transactions_in_window(start, end)
    health = store.get_health_entries_in_window(start, end)
    locations = store.get_locations_in_window(start, end)
    notes = store.get_notes_in_window(start, end)

    drafts: List[Confrontation] = []
    drafts += mood_vs_meeting_load(moods, calendar_entries)
    drafts += spending_vs_mood(moods, txns)
    drafts += exercise_decline(health, start, end)
    drafts += mood_trend(moods)
    drafts += silent_locations(locations, notes)
    drafts += spending_trend(txns, start, end)
    drafts += calendar_overload(calendar_entries, moods)

    with store.transaction():
        cleared = store.clear_confrontations()
        stored = [store.insert_confrontation(c) for c in drafts]

    logger.info(
        "Generated %d %s confrontations for %s..%s (replaced %d)",
        len(stored),
        period,
        start.date(),
        end.date(),
        cleared,
    )
    return stored


def list_confrontations(store: RecordStore, limit: int = 20) -> List[Confrontation]:
    return store.list_confrontations(limit)

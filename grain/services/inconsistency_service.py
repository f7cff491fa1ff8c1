"""
Inconsistency Scanner.

Walks a date range one day at a time, runs the seven per-day patterns and
replaces that day's stored findings. Each day is its own transaction, so a
rescan of an unchanged day yields the same finding set and a failure part
way through leaves earlier days committed and the failing day untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

from grain.clock import Clock
from grain.detectors.inconsistency import (
    detect_location_mismatches,
    detect_mood_behavior_disconnect,
    detect_pattern_breaks,
    detect_schedule_conflicts,
    detect_spending_mood_spike,
    detect_time_gaps,
    detect_visual_mood_mismatch_findings,
)
from grain.errors import InvalidPeriodError
from grain.records import EventRecord, Finding
from grain.stats import as_datetime, day_bounds, iter_days, same_weekdays
from grain.store import RecordStore

logger = logging.getLogger(__name__)

SPENDING_LOOKBACK_DAYS = 14


@dataclass(frozen=True)
class ScanResult:
    scanned_days: int
    found: int
    findings: List[Finding] = field(default_factory=list)


def scan_day(store: RecordStore, day: date) -> List[Finding]:
    """Compute (but do not store) every finding for one day."""
    start, end = day_bounds(day)

    calendar = store.get_calendar_events_in_window(start, end)
    locations = store.get_locations_in_window(start, end)
    moods = store.get_mood_entries_in_window(start, end)
    health = store.get_health_entries_in_window(start, end)
    txns = store.get_transactions(day, day)
    events = store.get_events_in_window(start, end)
    photos = store.get_photos_in_window(start, end)

    past_weekdays: Dict[date, Sequence[EventRecord]] = {}
    for past in same_weekdays(day, weeks=4):
        past_start, past_end = day_bounds(past)
        past_weekdays[past] = store.get_events_in_window(past_start, past_end)

    workouts = store.get_health_entries_by_type(
        "workout", as_datetime(day - timedelta(days=13)), end
    )

    lookback_start = day - timedelta(days=SPENDING_LOOKBACK_DAYS)
    lookback_end = day - timedelta(days=1)
    lookback_moods = store.get_mood_entries_in_window(
        as_datetime(lookback_start), day_bounds(lookback_end)[1]
    )
    lookback_txns = store.get_transactions(lookback_start, lookback_end)

    findings: List[Finding] = []
    findings += detect_location_mismatches(day, calendar, locations)
    findings += detect_schedule_conflicts(day, calendar)
    findings += detect_mood_behavior_disconnect(day, moods, txns, health, calendar)
    findings += detect_pattern_breaks(day, events, past_weekdays, workouts)
    findings += detect_spending_mood_spike(
        day, moods, txns, lookback_moods, lookback_txns, lookback_days=SPENDING_LOOKBACK_DAYS
    )
    findings += detect_time_gaps(day, events)
    findings += detect_visual_mood_mismatch_findings(day, photos, moods)
    return findings


def scan_for_inconsistencies(
    store: RecordStore,
    start: date,
    end: date,
    *,
    clock: Optional[Clock] = None,
) -> ScanResult:
    if end < start:
        raise InvalidPeriodError(f"scan range is inverted: {start} > {end}")
    clock = clock or store.clock

    stored: List[Finding] = []
    days = 0
    for day in iter_days(start, end):
        findings = scan_day(store, day)
        with store.transaction():
            cleared = store.clear_inconsistencies_for_date(day)
            stored.extend(store.insert_inconsistency(f) for f in findings)
        days += 1
        logger.debug("Scanned %s: cleared %d, stored %d", day, cleared, len(findings))

    logger.info(
        "Inconsistency scan %s..%s finished at %s: %d days, %d findings",
        start,
        end,
        clock.now().isoformat(),
        days,
        len(stored),
    )
    return ScanResult(scanned_days=days, found=len(stored), findings=stored)


def list_inconsistencies(store: RecordStore, limit: int = 50) -> List[Finding]:
    return store.list_inconsistencies(limit)


def dismiss_inconsistency(store: RecordStore, inconsistency_id: str) -> None:
    with store.transaction():
        store.dismiss_inconsistency(inconsistency_id)

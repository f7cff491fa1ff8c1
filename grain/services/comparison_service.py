"""
Comparison Engine: two explicit date ranges, the same metric set for each,
and a list of named changes between them.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Literal, Optional

from grain.detectors.visual import VisualSummary, summarize_visuals, visual_narrative
from grain.errors import InvalidPeriodError
from grain.stats import day_bounds, days_inclusive, mean, pct_change
from grain.store import RecordStore

logger = logging.getLogger(__name__)

Direction = Literal["up", "down", "stable"]

SLEEP_METRIC_TYPES = ("sleep_hours", "sleep")
TOP_MERCHANTS = 5
STABLE_BAND_PCT = 5.0


@dataclass(frozen=True)
class MoodMetrics:
    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0
    count: int = 0


@dataclass(frozen=True)
class MerchantTotal:
    name: str
    total: float


@dataclass(frozen=True)
class SpendingMetrics:
    total: float = 0.0
    avg_daily: float = 0.0
    top_merchants: List[MerchantTotal] = field(default_factory=list)


@dataclass(frozen=True)
class HealthMetrics:
    avg_steps: float = 0.0
    avg_sleep: float = 0.0
    workout_count: int = 0


@dataclass(frozen=True)
class CalendarMetrics:
    event_count: int = 0
    avg_per_day: float = 0.0


@dataclass(frozen=True)
class NotesMetrics:
    count: int = 0
    voice_count: int = 0


@dataclass(frozen=True)
class PeriodMetrics:
    mood: MoodMetrics
    spending: SpendingMetrics
    health: HealthMetrics
    calendar: CalendarMetrics
    notes: NotesMetrics
    unique_places: int
    visual: VisualSummary


@dataclass(frozen=True)
class PeriodSnapshot:
    start: date
    end: date
    metrics: PeriodMetrics


@dataclass(frozen=True)
class MetricChange:
    domain: str
    metric: str
    p1: float
    p2: float
    change_pct: float
    direction: Direction


@dataclass(frozen=True)
class ComparisonResult:
    period1: PeriodSnapshot
    period2: PeriodSnapshot
    changes: List[MetricChange]
    narrative: Optional[str] = None


def gather_metrics(store: RecordStore, start: date, end: date) -> PeriodMetrics:
    if end < start:
        raise InvalidPeriodError(f"period is inverted: {start} > {end}")

    start_ts, end_ts = day_bounds(start)[0], day_bounds(end)[1]
    day_count = max(1, days_inclusive(start, end))

    scores = [m.score for m in store.get_mood_entries_in_window(start_ts, end_ts)]
    mood = (
        MoodMetrics(avg=mean(scores), min=min(scores), max=max(scores), count=len(scores))
        if scores
        else MoodMetrics()
    )

    expenses = [t for t in store.get_transactions_in_window(start_ts, end_ts) if t.is_expense]
    total_spent = sum(abs(t.amount) for t in expenses)
    by_merchant: Dict[str, float] = defaultdict(float)
    for txn in expenses:
        by_merchant[txn.merchant or "Unknown"] += abs(txn.amount)
    top = sorted(by_merchant.items(), key=lambda kv: kv[1], reverse=True)[:TOP_MERCHANTS]

    health = store.get_health_entries_in_window(start_ts, end_ts)
    steps = [h.value for h in health if h.metric_type == "steps"]
    sleep = [h.value for h in health if h.metric_type in SLEEP_METRIC_TYPES]

    calendar_count = len(store.get_calendar_events_in_window(start_ts, end_ts))
    addresses = {
        loc.address.lower() for loc in store.get_locations_in_window(start_ts, end_ts) if loc.address
    }

    return PeriodMetrics(
        mood=mood,
        spending=SpendingMetrics(
            total=total_spent,
            avg_daily=total_spent / day_count,
            top_merchants=[MerchantTotal(name=n, total=round(t, 2)) for n, t in top],
        ),
        health=HealthMetrics(
            avg_steps=mean(steps),
            avg_sleep=mean(sleep),
            workout_count=sum(1 for h in health if h.metric_type == "workout"),
        ),
        calendar=CalendarMetrics(event_count=calendar_count, avg_per_day=calendar_count / day_count),
        notes=NotesMetrics(
            count=len(store.get_notes_in_window(start_ts, end_ts)),
            voice_count=len(store.get_voice_memos_in_window(start_ts, end_ts)),
        ),
        unique_places=len(addresses),
        visual=summarize_visuals(
            store.get_photos_in_window(start_ts, end_ts),
            store.get_videos_in_window(start_ts, end_ts),
        ),
    )


def metric_change(domain: str, metric: str, p1: float, p2: float) -> Optional[MetricChange]:
    """None when the metric is zero in both periods."""
    if p1 == 0 and p2 == 0:
        return None
    pct = pct_change(p1, p2)
    if abs(pct) < STABLE_BAND_PCT:
        direction: Direction = "stable"
    else:
        direction = "up" if pct > 0 else "down"
    return MetricChange(domain=domain, metric=metric, p1=p1, p2=p2, change_pct=round(pct, 1), direction=direction)


def compute_changes(m1: PeriodMetrics, m2: PeriodMetrics) -> List[MetricChange]:
    pairs = [
        ("mood", "Average Mood", m1.mood.avg, m2.mood.avg),
        ("mood", "Mood Entries", m1.mood.count, m2.mood.count),
        ("spending", "Total Spending", m1.spending.total, m2.spending.total),
        ("spending", "Daily Average", m1.spending.avg_daily, m2.spending.avg_daily),
        ("health", "Average Steps", m1.health.avg_steps, m2.health.avg_steps),
        ("health", "Average Sleep", m1.health.avg_sleep, m2.health.avg_sleep),
        ("health", "Workouts", m1.health.workout_count, m2.health.workout_count),
        ("calendar", "Calendar Events", m1.calendar.event_count, m2.calendar.event_count),
        ("calendar", "Events Per Day", m1.calendar.avg_per_day, m2.calendar.avg_per_day),
        ("notes", "Notes Written", m1.notes.count, m2.notes.count),
        ("notes", "Voice Memos", m1.notes.voice_count, m2.notes.voice_count),
        ("locations", "Unique Places", m1.unique_places, m2.unique_places),
        ("visual", "Photos", m1.visual.photo_count, m2.visual.photo_count),
        ("visual", "Videos", m1.visual.video_count, m2.visual.video_count),
        ("visual", "Avg People in Photos", m1.visual.avg_people_count, m2.visual.avg_people_count),
    ]
    changes = [metric_change(domain, metric, float(p1), float(p2)) for domain, metric, p1, p2 in pairs]
    return [c for c in changes if c is not None]


def compare_periods(
    store: RecordStore,
    p1_start: date,
    p1_end: date,
    p2_start: date,
    p2_end: date,
) -> ComparisonResult:
    m1 = gather_metrics(store, p1_start, p1_end)
    m2 = gather_metrics(store, p2_start, p2_end)
    changes = compute_changes(m1, m2)

    narrative = None
    if m1.visual.photo_count > 0 and m2.visual.photo_count > 0:
        narrative = visual_narrative(m1.visual, m2.visual)

    logger.info(
        "Compared %s..%s with %s..%s: %d changes", p1_start, p1_end, p2_start, p2_end, len(changes)
    )
    return ComparisonResult(
        period1=PeriodSnapshot(start=p1_start, end=p1_end, metrics=m1),
        period2=PeriodSnapshot(start=p2_start, end=p2_end, metrics=m2),
        changes=changes,
        narrative=narrative,
    )

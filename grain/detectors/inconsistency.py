"""
Per-day cross-domain contradiction patterns.

Each detector takes the records for a single day (plus whatever lookback the
pattern needs) and returns unsaved Finding objects. None of them touch the
store; the scanner service fetches and persists.

Location and note matching is plain case-insensitive substring containment.
It is an approximation: "Office" matches "Istanbul Office" but not "HQ".
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, List, Mapping, Sequence

from grain.detectors.visual import detect_visual_mood_mismatches
from grain.records import (
    CalendarEntry,
    EventRecord,
    Finding,
    HealthEntry,
    LedgerRecord,
    LocationEntry,
    MoodEntry,
    PhotoRecord,
)
from grain.stats import as_datetime, group_by_day, mean

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def _expense_total(txns: Sequence[LedgerRecord]) -> float:
    return sum(abs(t.amount) for t in txns if t.is_expense)


def _locations_match(calendar_location: str, address: str) -> bool:
    cal = calendar_location.lower()
    addr = address.lower()
    return addr in cal or cal in addr


# -------------------------
# 1. Location mismatch
# -------------------------

def detect_location_mismatches(
    day: date,
    calendar: Sequence[CalendarEntry],
    locations: Sequence[LocationEntry],
) -> List[Finding]:
    findings: List[Finding] = []
    if not calendar or not locations:
        return findings

    for entry in calendar:
        if not entry.location or not entry.location.strip():
            continue
        during = [
            loc for loc in locations if entry.start_time <= loc.timestamp <= entry.end_time
        ]
        if not during:
            continue
        if any(_locations_match(entry.location, loc.address) for loc in during):
            continue

        actual = during[0]
        findings.append(
            Finding(
                type="location_mismatch",
                severity=0.7,
                title="You weren't where you said you'd be",
                description=(
                    f'Calendar event "{entry.title}" was at "{entry.location}", but your '
                    f'location data shows you were at "{actual.address}" during that time.'
                ),
                evidence_event_ids=[entry.event_id, actual.event_id],
                suggested_question=f"Why were you at {actual.address} instead of {entry.location}?",
                date=day,
            )
        )
    return findings


# -------------------------
# 2. Schedule conflict
# -------------------------

def detect_schedule_conflicts(
    day: date,
    calendar: Sequence[CalendarEntry],
    *,
    min_overlap_minutes: int = 5,
) -> List[Finding]:
    findings: List[Finding] = []
    ordered = sorted(calendar, key=lambda c: c.start_time)

    for i, a in enumerate(ordered):
        for b in ordered[i + 1:]:
            if not (a.end_time > b.start_time and b.end_time > a.start_time):
                continue
            overlap_start = max(a.start_time, b.start_time)
            overlap_end = min(a.end_time, b.end_time)
            overlap_min = round((overlap_end - overlap_start).total_seconds() / 60)
            if overlap_min < min_overlap_minutes:
                continue

            findings.append(
                Finding(
                    type="schedule_conflict",
                    severity=min(0.5 + overlap_min / 120, 0.9),
                    title=f"Double-booked: {overlap_min}min overlap",
                    description=(
                        f'"{a.title}" and "{b.title}" overlap by {overlap_min} minutes. '
                        "You agreed to be in two places at once."
                    ),
                    evidence_event_ids=[a.event_id, b.event_id],
                    suggested_question=(
                        f'Which one did you actually attend: "{a.title}" or "{b.title}"?'
                    ),
                    date=day,
                )
            )
    return findings


# -------------------------
# 3. Mood / behavior disconnect
# -------------------------

def detect_mood_behavior_disconnect(
    day: date,
    moods: Sequence[MoodEntry],
    txns: Sequence[LedgerRecord],
    health: Sequence[HealthEntry],
    calendar: Sequence[CalendarEntry],
) -> List[Finding]:
    findings: List[Finding] = []
    if not moods:
        return findings

    avg_mood = mean([m.score for m in moods])
    mood_ids = [m.event_id for m in moods]

    if avg_mood >= 4:
        expenses = [t for t in txns if t.is_expense]
        spent = _expense_total(expenses)
        if spent > 100:
            findings.append(
                Finding(
                    type="mood_behavior_disconnect",
                    severity=0.5,
                    title=f"Happy and spending: ${spent:.0f} on a great day",
                    description=(
                        f"Your mood averaged {avg_mood:.1f}/5, a great day. But you spent "
                        f"${spent:.2f} across {len(expenses)} transactions. Euphoric spending?"
                    ),
                    evidence_event_ids=mood_ids + [t.event_id for t in expenses[:3]],
                    suggested_question="Were these purchases planned, or did the good mood drive spending?",
                    date=day,
                )
            )

    if avg_mood <= 2:
        workouts = [h for h in health if h.metric_type == "workout"]
        if workouts:
            findings.append(
                Finding(
                    type="mood_behavior_disconnect",
                    severity=0.4,
                    title="Low mood but you still worked out",
                    description=(
                        f"Mood was {avg_mood:.1f}/5, a rough day. But you logged "
                        f"{len(workouts)} workout(s). Pushing through or masking something?"
                    ),
                    evidence_event_ids=mood_ids + [w.event_id for w in workouts],
                    suggested_question=(
                        "Was the workout an attempt to feel better, or were things not as bad "
                        "as the mood score says?"
                    ),
                    date=day,
                )
            )
        if len(calendar) >= 3:
            findings.append(
                Finding(
                    type="mood_behavior_disconnect",
                    severity=0.6,
                    title=f"Miserable but social: {len(calendar)} events",
                    description=(
                        f"Your mood was {avg_mood:.1f}/5 but you had {len(calendar)} calendar "
                        "events. Performing happiness for others?"
                    ),
                    evidence_event_ids=mood_ids + [c.event_id for c in calendar[:3]],
                    suggested_question=(
                        f"Were you putting on a face for the {len(calendar)} events, or did "
                        "something happen between them?"
                    ),
                    date=day,
                )
            )

    if len(moods) >= 3:
        high = max(moods, key=lambda m: m.score)
        low = min(moods, key=lambda m: m.score)
        swing = high.score - low.score
        if swing >= 3:
            findings.append(
                Finding(
                    type="mood_behavior_disconnect",
                    severity=0.7,
                    title=f"Emotional rollercoaster: {low.score}/5 -> {high.score}/5",
                    description=(
                        f"Your mood swung {swing} points in one day. From {low.score}/5 at "
                        f"{low.timestamp:%H:%M} to {high.score}/5 at {high.timestamp:%H:%M}. "
                        "What happened in between?"
                    ),
                    evidence_event_ids=mood_ids,
                    suggested_question=f"What caused the shift from {low.score}/5 to {high.score}/5?",
                    date=day,
                )
            )

    return findings


# -------------------------
# 4. Pattern break
# -------------------------

def detect_pattern_breaks(
    day: date,
    today_events: Sequence[EventRecord],
    past_weekday_events: Mapping[date, Sequence[EventRecord]],
    workouts: Sequence[HealthEntry],
    *,
    min_days_present: int = 3,
) -> List[Finding]:
    """
    Routine breaks against the previous four same weekdays, plus a
    week-over-week workout drop.

    `workouts` must cover the 14 days ending on `day`.
    """
    findings: List[Finding] = []
    weekday = DAY_NAMES[day.weekday()]
    today_types = {e.type for e in today_events}

    days_with_type: Dict[str, int] = {}
    for events in past_weekday_events.values():
        for event_type in {e.type for e in events}:
            days_with_type[event_type] = days_with_type.get(event_type, 0) + 1

    for event_type in sorted(days_with_type):
        count = days_with_type[event_type]
        if count < min_days_present or event_type in today_types:
            continue
        readable = event_type.replace("_", " ")
        findings.append(
            Finding(
                type="pattern_break",
                severity=min(0.4 + count / 10, 1.0),
                title=f"Broke your {weekday} routine",
                description=(
                    f'You had "{readable}" events on {count} of the last '
                    f"{len(past_weekday_events)} {weekday}s, but not today. Routine broken."
                ),
                evidence_event_ids=[],
                suggested_question=f"Why did you skip {readable} this {weekday}?",
                date=day,
            )
        )

    current_week_start = as_datetime(day - timedelta(days=6))
    prior_week_start = as_datetime(day - timedelta(days=13))
    prior_week = [w for w in workouts if prior_week_start <= w.timestamp < current_week_start]
    current_week = [w for w in workouts if w.timestamp >= current_week_start]

    if len(prior_week) >= 3 and len(current_week) <= len(prior_week) * 0.5:
        findings.append(
            Finding(
                type="pattern_break",
                severity=0.6,
                title=f"Exercise dropped: {len(prior_week)}->{len(current_week)} workouts",
                description=(
                    f"You went from {len(prior_week)} workouts the week before to "
                    f"{len(current_week)} this past week. The decline is significant."
                ),
                evidence_event_ids=[w.event_id for w in prior_week + current_week],
                suggested_question=(
                    "What made you stop working out? Was it a choice or did something get in the way?"
                ),
                date=day,
            )
        )

    return findings


# -------------------------
# 5. Spending / mood correlation
# -------------------------

def detect_spending_mood_spike(
    day: date,
    moods: Sequence[MoodEntry],
    txns: Sequence[LedgerRecord],
    lookback_moods: Sequence[MoodEntry],
    lookback_txns: Sequence[LedgerRecord],
    *,
    lookback_days: int = 14,
) -> List[Finding]:
    """
    Emotional spending: a low-mood day whose spend is well above what the
    preceding normal-mood days cost. Days without mood entries count as
    neutral (3); only baseline days with some spend are averaged.
    """
    if not moods or not txns:
        return []

    avg_mood = mean([m.score for m in moods])
    expenses = [t for t in txns if t.is_expense]
    spent = _expense_total(expenses)
    if avg_mood > 2.5 or spent < 20:
        return []

    moods_by_day = group_by_day(lookback_moods, lambda m: m.timestamp)
    txns_by_day = group_by_day(lookback_txns, lambda t: t.date)

    normal_day_spend: List[float] = []
    for offset in range(lookback_days, 0, -1):
        past = day - timedelta(days=offset)
        past_moods = moods_by_day.get(past, [])
        past_avg = mean([m.score for m in past_moods]) if past_moods else 3.0
        if past_avg < 3:
            continue
        past_spent = _expense_total(txns_by_day.get(past, []))
        if past_spent > 0:
            normal_day_spend.append(past_spent)

    if not normal_day_spend:
        return []
    normal_avg = mean(normal_day_spend)
    if normal_avg <= 0 or spent <= normal_avg * 1.5:
        return []

    pct_more = round((spent / normal_avg - 1) * 100)
    biggest = max(expenses, key=lambda t: abs(t.amount))
    return [
        Finding(
            type="spending_mood_correlation",
            severity=min(0.5 + pct_more / 200, 0.9),
            title=f"Emotional spending: {pct_more}% above normal",
            description=(
                f"On a {avg_mood:.1f}/5 mood day, you spent ${spent:.2f}, {pct_more}% more "
                f"than your average ${normal_avg:.2f} on normal-mood days. Biggest: "
                f"${abs(biggest.amount):.2f} at {biggest.merchant}."
            ),
            evidence_event_ids=[m.event_id for m in moods]
            + [t.event_id for t in sorted(expenses, key=lambda t: t.amount)[:3]],
            suggested_question=f"Did spending at {biggest.merchant} make you feel better or worse?",
            date=day,
        )
    ]


# -------------------------
# 6. Time gap
# -------------------------

def detect_time_gaps(
    day: date,
    events: Sequence[EventRecord],
    *,
    min_events: int = 3,
    min_gap_hours: int = 2,
) -> List[Finding]:
    if len(events) < min_events:
        return []

    active_hours = sorted({e.timestamp.hour for e in events})
    first_hour, last_hour = active_hours[0], active_hours[-1]
    active = set(active_hours)

    findings: List[Finding] = []
    gap_start = None
    for hour in range(first_hour, last_hour + 1):
        if hour not in active:
            if gap_start is None:
                gap_start = hour
            continue
        if gap_start is None:
            continue
        duration = hour - gap_start
        if duration >= min_gap_hours:
            start_label = f"{gap_start:02d}:00"
            end_label = f"{hour:02d}:00"
            findings.append(
                Finding(
                    type="time_gap",
                    severity=min(0.3 + duration / 10, 0.8),
                    title=f"{duration}h silence: {start_label}-{end_label}",
                    description=(
                        f"No recorded activity from {start_label} to {end_label}: {duration} "
                        "hours of silence in the middle of an otherwise active day. "
                        "What were you doing?"
                    ),
                    evidence_event_ids=[],
                    suggested_question=f"What happened between {start_label} and {end_label}?",
                    date=day,
                )
            )
        gap_start = None

    return findings


# -------------------------
# 7. Visual mood mismatch
# -------------------------

def detect_visual_mood_mismatch_findings(
    day: date,
    photos: Sequence[PhotoRecord],
    moods: Sequence[MoodEntry],
) -> List[Finding]:
    return [
        Finding(
            type="visual_mood_mismatch",
            severity=m.severity,
            title="Your face tells a different story",
            description=m.description,
            evidence_event_ids=[m.photo_event_id],
            suggested_question=(
                f"The photo shows {m.photo_tone}, but you reported "
                f"{m.reported_mood:.1f}/5. Which was true?"
            ),
            date=day,
        )
        for m in detect_visual_mood_mismatches(photos, moods)
    ]

"""
Period-level analyzers behind confrontations.

Three flavours: correlations (mood vs meetings, mood vs spending, calendar
load), trends (exercise, mood, spending) and anomalies (places visited often
but never written about). Every analyzer needs a minimum amount of data and
returns an empty list otherwise.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from grain.records import (
    CalendarEntry,
    Confrontation,
    HealthEntry,
    LedgerRecord,
    LocationEntry,
    MoodEntry,
    NoteEntry,
    data_point,
)
from grain.stats import as_datetime, group_by_day, mean, split_by_midpoint, split_half


def _daily_mood(moods: Sequence[MoodEntry]) -> Dict[date, float]:
    by_day = group_by_day(moods, lambda m: m.timestamp)
    return {day: mean([m.score for m in entries]) for day, entries in by_day.items()}


def mood_vs_meeting_load(
    moods: Sequence[MoodEntry],
    calendar: Sequence[CalendarEntry],
) -> List[Confrontation]:
    if len(moods) < 3 or len(calendar) < 3:
        return []

    meetings_by_day = group_by_day(calendar, lambda c: c.start_time)
    busy: List[float] = []
    calm: List[float] = []
    for day, day_mood in _daily_mood(moods).items():
        meetings = len(meetings_by_day.get(day, []))
        if meetings >= 3:
            busy.append(day_mood)
        elif meetings <= 1:
            calm.append(day_mood)

    if len(busy) < 2 or len(calm) < 2:
        return []

    busy_avg = mean(busy)
    calm_avg = mean(calm)
    drop = calm_avg - busy_avg
    if drop < 0.5:
        return []

    return [
        Confrontation(
            title="Meetings kill your mood",
            insight=(
                f"Your average mood on busy days (3+ meetings) is {busy_avg:.1f}/5, but on calm "
                f"days (0-1 meetings) it's {calm_avg:.1f}/5. That's a {drop:.1f}-point drop "
                "every time your calendar fills up."
            ),
            severity=min(0.5 + drop / 3, 0.9),
            data_points=[
                data_point("Busy day mood", f"{busy_avg:.1f}/5"),
                data_point("Calm day mood", f"{calm_avg:.1f}/5"),
                data_point("Drop", f"{drop:.1f} points"),
            ],
            related_event_ids=[m.event_id for m in moods[:3]],
            category="correlation",
        )
    ]


def spending_vs_mood(
    moods: Sequence[MoodEntry],
    txns: Sequence[LedgerRecord],
) -> List[Confrontation]:
    if len(moods) < 3 or len(txns) < 5:
        return []

    spend_by_day = group_by_day([t for t in txns if t.is_expense], lambda t: t.date)
    low: List[float] = []
    high: List[float] = []
    for day, day_mood in _daily_mood(moods).items():
        spent = sum(abs(t.amount) for t in spend_by_day.get(day, []))
        if spent == 0:
            continue
        if day_mood <= 2.5:
            low.append(spent)
        elif day_mood >= 3.5:
            high.append(spent)

    if len(low) < 2 or len(high) < 2:
        return []

    low_avg = mean(low)
    high_avg = mean(high)
    if high_avg <= 0 or low_avg <= high_avg * 1.3:
        return []

    pct_more = round((low_avg / high_avg - 1) * 100)
    return [
        Confrontation(
            title="You spend more when you're sad",
            insight=(
                f"On low-mood days (<=2.5/5), you spend an average of ${low_avg:.0f}, {pct_more}% "
                f"more than the ${high_avg:.0f} you spend on good days. The worse you feel, "
                "the more you buy."
            ),
            severity=min(0.5 + pct_more / 200, 0.9),
            data_points=[
                data_point("Low-mood spending", f"${low_avg:.0f}/day"),
                data_point("Good-mood spending", f"${high_avg:.0f}/day"),
                data_point("Difference", f"+{pct_more}%"),
            ],
            related_event_ids=[m.event_id for m in moods if m.score <= 2.5][:3],
            category="correlation",
        )
    ]


def exercise_decline(
    health: Sequence[HealthEntry],
    start: datetime,
    end: datetime,
) -> List[Confrontation]:
    workouts = [h for h in health if h.metric_type == "workout"]
    if len(workouts) < 2:
        return []

    first, second = split_by_midpoint(workouts, lambda w: w.timestamp, start, end)
    if len(first) < 3 or len(second) > len(first) * 0.5:
        return []

    decline_pct = round((1 - len(second) / len(first)) * 100)
    return [
        Confrontation(
            title="You stopped working out",
            insight=(
                f"First half: {len(first)} workouts. Second half: {len(second)}. That's a "
                f"{decline_pct}% decline. Your body notices even if you pretend it doesn't."
            ),
            severity=min(0.5 + (len(first) - len(second)) / 10, 0.85),
            data_points=[
                data_point("First half", f"{len(first)} workouts"),
                data_point("Second half", f"{len(second)} workouts"),
                data_point("Decline", f"{decline_pct}%"),
            ],
            related_event_ids=[w.event_id for w in workouts[:3]],
            category="trend",
        )
    ]


def mood_trend(moods: Sequence[MoodEntry]) -> List[Confrontation]:
    if len(moods) < 6:
        return []

    earlier, recent = split_half(sorted(moods, key=lambda m: m.timestamp))
    earlier_avg = mean([m.score for m in earlier])
    recent_avg = mean([m.score for m in recent])
    decline = earlier_avg - recent_avg
    if decline < 0.5:
        return []

    return [
        Confrontation(
            title="Your mood is declining",
            insight=(
                f"Your average mood went from {earlier_avg:.1f}/5 to {recent_avg:.1f}/5, a steady "
                f"{decline:.1f}-point decline. This isn't a bad day. It's a trend."
            ),
            severity=min(0.5 + decline / 3, 0.9),
            data_points=[
                data_point("Earlier average", f"{earlier_avg:.1f}/5"),
                data_point("Recent average", f"{recent_avg:.1f}/5"),
                data_point("Decline", f"{decline:.1f} points"),
            ],
            related_event_ids=[m.event_id for m in recent[:3]],
            category="trend",
        )
    ]


def silent_locations(
    locations: Sequence[LocationEntry],
    notes: Sequence[NoteEntry],
    *,
    min_visits: int = 3,
    limit: int = 2,
) -> List[Confrontation]:
    """
    Places visited often whose address words never show up in any note.
    Word matching is substring containment over the concatenated notes.
    """
    if len(locations) < 3:
        return []

    visits: Counter = Counter()
    display: Dict[str, str] = {}
    for loc in locations:
        if not loc.address or len(loc.address) < 3:
            continue
        key = loc.address.lower()
        visits[key] += 1
        display.setdefault(key, loc.address)

    note_text = " ".join(n.content.lower() for n in notes)
    results: List[Confrontation] = []
    for address, count in visits.most_common():
        if count < min_visits:
            break
        words = [w for w in address.split() if len(w) > 3]
        if any(w in note_text for w in words):
            continue

        label = display[address]
        results.append(
            Confrontation(
                title=f"You keep going to {label}",
                insight=(
                    f'You\'ve been to "{label}" {count} times but never mentioned it in any note. '
                    "What happens there that you don't want to record?"
                ),
                severity=min(0.3 + count / 15, 0.7),
                data_points=[
                    data_point("Visits", f"{count} times"),
                    data_point("Mentioned", "Never"),
                ],
                related_event_ids=[loc.event_id for loc in locations if loc.address.lower() == address][:3],
                category="anomaly",
            )
        )
        if len(results) >= limit:
            break
    return results


def spending_trend(
    txns: Sequence[LedgerRecord],
    start: datetime,
    end: datetime,
) -> List[Confrontation]:
    expenses = [t for t in txns if t.is_expense]
    if len(expenses) < 6:
        return []

    first, second = split_by_midpoint(expenses, lambda t: as_datetime(t.date), start, end)
    first_total = sum(abs(t.amount) for t in first)
    second_total = sum(abs(t.amount) for t in second)
    if first_total <= 0 or second_total <= first_total * 1.3:
        return []

    pct_increase = round((second_total / first_total - 1) * 100)

    by_category: Counter = Counter()
    for txn in second:
        by_category[txn.category or "Uncategorized"] += abs(txn.amount)
    top: Optional[tuple] = by_category.most_common(1)[0] if by_category else None
    driver = f" Biggest driver: {top[0]} (${top[1]:.0f})." if top else ""

    return [
        Confrontation(
            title=f"Spending up {pct_increase}%",
            insight=(
                f"Your spending increased from ${first_total:.0f} to ${second_total:.0f}, up "
                f"{pct_increase}%.{driver} At this rate, next month will be worse."
            ),
            severity=min(0.4 + pct_increase / 200, 0.8),
            data_points=[
                data_point("Earlier spending", f"${first_total:.0f}"),
                data_point("Recent spending", f"${second_total:.0f}"),
                data_point("Increase", f"+{pct_increase}%"),
            ]
            + ([data_point("Top category", top[0])] if top else []),
            related_event_ids=[t.event_id for t in second[:3]],
            category="trend",
        )
    ]


def calendar_overload(
    calendar: Sequence[CalendarEntry],
    moods: Sequence[MoodEntry],
) -> List[Confrontation]:
    if len(calendar) < 10:
        return []

    daily_counts = [len(v) for v in group_by_day(calendar, lambda c: c.start_time).values()]
    avg_daily = mean(daily_counts)
    busiest = max(daily_counts)
    if avg_daily < 3 and busiest < 6:
        return []

    avg_mood = mean([m.score for m in moods]) if moods else None
    mood_note = ""
    if avg_mood is not None and avg_mood < 3.5:
        mood_note = f" Meanwhile, your mood averaged {avg_mood:.1f}/5. Coincidence?"

    points = [
        data_point("Total events", str(len(calendar))),
        data_point("Average/day", f"{avg_daily:.1f}"),
        data_point("Busiest day", f"{busiest} events"),
    ]
    if mood_note:
        points.append(data_point("Average mood", f"{avg_mood:.1f}/5"))

    return [
        Confrontation(
            title="Your calendar owns you",
            insight=(
                f"{len(calendar)} calendar events with an average of {avg_daily:.1f} per day. "
                f"Peak day had {busiest} events.{mood_note} When do you have time to think?"
            ),
            severity=min(0.3 + avg_daily / 8, 0.75),
            data_points=points,
            related_event_ids=[c.event_id for c in calendar[:3]],
            category="correlation",
        )
    ]

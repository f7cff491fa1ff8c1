from __future__ import annotations

from datetime import date, datetime, timedelta

from grain.detectors.confrontation import (
    calendar_overload,
    exercise_decline,
    mood_trend,
    mood_vs_meeting_load,
    silent_locations,
    spending_trend,
    spending_vs_mood,
)
from grain.records import (
    CalendarEntry,
    HealthEntry,
    LedgerRecord,
    LocationEntry,
    MoodEntry,
    NoteEntry,
)

START = datetime(2026, 10, 3, 0, 0)
END = datetime(2026, 10, 16, 23, 59, 59)


def day(n: int) -> date:
    return (START + timedelta(days=n)).date()


def at(n: int, hour: int = 12) -> datetime:
    return START + timedelta(days=n, hours=hour)


def mood(n: int, score: int, hour: int = 12) -> MoodEntry:
    return MoodEntry(id=f"m{n}_{hour}", event_id=f"ev_m{n}_{hour}", score=score, timestamp=at(n, hour))


def meeting(n: int, hour: int) -> CalendarEntry:
    return CalendarEntry(
        id=f"c{n}_{hour}",
        event_id=f"ev_c{n}_{hour}",
        title=f"Meeting {n}/{hour}",
        start_time=at(n, hour),
        end_time=at(n, hour) + timedelta(minutes=30),
    )


def expense(n: int, amount: float, merchant: str = "Shop", category: str = "Shopping") -> LedgerRecord:
    return LedgerRecord(
        id=f"t{n}_{merchant}_{amount}",
        event_id=f"ev_t{n}_{merchant}_{amount}",
        date=day(n),
        merchant=merchant,
        amount=-amount,
        category=category,
    )


def test_meetings_drag_mood_down():
    moods = [mood(0, 2), mood(1, 2), mood(2, 4), mood(3, 4)]
    calendar = [meeting(n, h) for n in (0, 1) for h in (9, 11, 14)]

    [c] = mood_vs_meeting_load(moods, calendar)

    assert c.category == "correlation"
    assert c.title == "Meetings kill your mood"
    assert c.severity == 0.9
    assert [p["label"] for p in c.data_points] == ["Busy day mood", "Calm day mood", "Drop"]


def test_meeting_correlation_needs_both_sides():
    moods = [mood(0, 2), mood(1, 2), mood(2, 4)]
    calendar = [meeting(n, h) for n in (0, 1) for h in (9, 11, 14)]

    assert mood_vs_meeting_load(moods, calendar) == []


def test_spending_more_on_bad_days():
    moods = [mood(0, 2), mood(1, 2), mood(2, 4), mood(3, 4)]
    txns = [expense(0, 100), expense(1, 100), expense(2, 40), expense(2, 10, "Cafe"), expense(3, 40)]

    [c] = spending_vs_mood(moods, txns)

    assert c.title == "You spend more when you're sad"
    assert {"label": "Difference", "value": "+122%"} in c.data_points
    assert c.severity == 0.9
    assert c.related_event_ids == ["ev_m0_12", "ev_m1_12"]


def test_spending_vs_mood_minimum_inputs():
    assert spending_vs_mood([mood(0, 2)], [expense(0, 100)] * 5) == []
    assert spending_vs_mood([mood(0, 2), mood(1, 4), mood(2, 4)], [expense(0, 100)]) == []


def test_exercise_decline_between_halves():
    workouts = [
        HealthEntry(id=f"w{n}", event_id=f"ev_w{n}", metric_type="workout", value=30, unit="min", timestamp=at(n, 7))
        for n in (0, 1, 2, 4, 5, 10)
    ]

    [c] = exercise_decline(workouts, START, END)

    assert c.category == "trend"
    assert c.data_points[0] == {"label": "First half", "value": "5 workouts"}
    assert c.data_points[1] == {"label": "Second half", "value": "1 workouts"}
    assert c.severity == 0.85


def test_exercise_steady_is_quiet():
    workouts = [
        HealthEntry(id=f"w{n}", event_id=f"ev_w{n}", metric_type="workout", value=30, unit="min", timestamp=at(n, 7))
        for n in (0, 2, 4, 8, 10, 12)
    ]

    assert exercise_decline(workouts, START, END) == []


def test_mood_trend_declining():
    moods = [mood(n, s) for n, s in enumerate([4, 4, 4, 2, 2, 2])]

    [c] = mood_trend(moods)

    assert c.title == "Your mood is declining"
    assert c.severity == 0.9
    assert c.related_event_ids == ["ev_m3_12", "ev_m4_12", "ev_m5_12"]


def test_mood_trend_needs_six_entries():
    assert mood_trend([mood(n, s) for n, s in enumerate([5, 5, 1, 1, 1])]) == []


def test_silent_locations_skip_places_mentioned_in_notes():
    locations = [
        LocationEntry(id=f"l{n}", event_id=f"ev_l{n}", lat=0, lng=0, address="Blue Lagoon Casino", timestamp=at(n, 22))
        for n in range(3)
    ] + [
        LocationEntry(id=f"h{n}", event_id=f"ev_h{n}", lat=0, lng=0, address="Home", timestamp=at(n, 23))
        for n in range(4)
    ]
    notes = [NoteEntry(id="n1", event_id="ev_n1", content="Quiet night at home.", timestamp=at(1, 23))]

    [c] = silent_locations(locations, notes)

    assert c.title == "You keep going to Blue Lagoon Casino"
    assert c.category == "anomaly"
    assert c.related_event_ids == ["ev_l0", "ev_l1", "ev_l2"]


def test_silent_locations_capped_at_two():
    places = ["Alpha Street", "Bravo Avenue", "Charlie Plaza"]
    locations = [
        LocationEntry(id=f"{p}{n}", event_id=f"ev_{p}{n}", lat=0, lng=0, address=p, timestamp=at(n))
        for p in places
        for n in range(3 + places.index(p))
    ]

    results = silent_locations(locations, [])

    assert [c.title for c in results] == [
        "You keep going to Charlie Plaza",
        "You keep going to Bravo Avenue",
    ]


def test_spending_trend_up_with_top_category():
    txns = [expense(n, 20, "Grocer", "Groceries") for n in (0, 1, 2)]
    txns += [expense(n, 50, "Bar", "Nightlife") for n in (9, 10, 11)]

    [c] = spending_trend(txns, START, END)

    assert c.title == "Spending up 150%"
    assert {"label": "Top category", "value": "Nightlife"} in c.data_points
    assert "Biggest driver: Nightlife ($150)" in c.insight


def test_spending_trend_flat_is_quiet():
    txns = [expense(n, 30) for n in (0, 1, 2, 9, 10, 11)]

    assert spending_trend(txns, START, END) == []


def test_calendar_overload_with_mood_context():
    calendar = [meeting(n, h) for n in (0, 1, 2) for h in (8, 10, 13, 15)]
    moods = [mood(0, 3), mood(1, 3)]

    [c] = calendar_overload(calendar, moods)

    assert c.title == "Your calendar owns you"
    assert {"label": "Average/day", "value": "4.0"} in c.data_points
    assert {"label": "Average mood", "value": "3.0/5"} in c.data_points
    assert c.severity == 0.75


def test_light_calendar_is_not_overload():
    calendar = [meeting(n, 9) for n in range(10)]

    assert calendar_overload(calendar, []) == []


def test_all_analyzers_handle_empty_input():
    assert mood_vs_meeting_load([], []) == []
    assert spending_vs_mood([], []) == []
    assert exercise_decline([], START, END) == []
    assert mood_trend([]) == []
    assert silent_locations([], []) == []
    assert spending_trend([], START, END) == []
    assert calendar_overload([], []) == []

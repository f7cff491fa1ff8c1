from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from grain.detectors.inconsistency import (
    detect_location_mismatches,
    detect_mood_behavior_disconnect,
    detect_pattern_breaks,
    detect_schedule_conflicts,
    detect_spending_mood_spike,
    detect_time_gaps,
    detect_visual_mood_mismatch_findings,
)
from grain.records import (
    CalendarEntry,
    EventRecord,
    HealthEntry,
    LedgerRecord,
    LocationEntry,
    MoodEntry,
    PhotoRecord,
)

DAY = date(2026, 10, 15)  # a Thursday


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


def cal(title: str, start: datetime, end: datetime, location: str = "") -> CalendarEntry:
    return CalendarEntry(
        id=f"cal_{title}", event_id=f"ev_{title}", title=title, start_time=start, end_time=end, location=location
    )


def mood(score: int, ts: datetime) -> MoodEntry:
    return MoodEntry(id=f"m_{ts:%d%H%M}", event_id=f"ev_m_{ts:%d%H%M}", score=score, timestamp=ts)


def spend(day: date, merchant: str, amount: float) -> LedgerRecord:
    return LedgerRecord(id=f"tx_{merchant}_{day}", event_id=f"ev_tx_{merchant}_{day}", date=day, merchant=merchant, amount=amount)


def event(event_type: str, ts: datetime) -> EventRecord:
    return EventRecord(id=f"ev_{event_type}_{ts:%d%H%M}", type=event_type, timestamp=ts)


def workout(ts: datetime) -> HealthEntry:
    return HealthEntry(
        id=f"w_{ts:%d%H}", event_id=f"ev_w_{ts:%d%H}", metric_type="workout", value=45, unit="min", timestamp=ts
    )


# -------------------------
# Schedule conflicts
# -------------------------

def test_overlapping_meetings_are_a_schedule_conflict():
    calendar = [
        cal("Standup", at(10), at(11, 30)),
        cal("Design review", at(11), at(12)),
    ]

    findings = detect_schedule_conflicts(DAY, calendar)

    assert len(findings) == 1
    finding = findings[0]
    assert finding.type == "schedule_conflict"
    assert finding.title == "Double-booked: 30min overlap"
    assert finding.severity == pytest.approx(0.5 + 30 / 120)
    assert finding.evidence_event_ids == ["ev_Standup", "ev_Design review"]
    assert finding.date == DAY


def test_back_to_back_or_tiny_overlap_is_not_a_conflict():
    calendar = [
        cal("A", at(9), at(10)),
        cal("B", at(10), at(11)),
        cal("C", at(10, 57), at(12)),
    ]

    assert detect_schedule_conflicts(DAY, calendar) == []


def test_schedule_conflict_severity_is_capped():
    calendar = [cal("Offsite", at(8), at(17)), cal("Workshop", at(9), at(16))]

    [finding] = detect_schedule_conflicts(DAY, calendar)

    assert finding.severity == 0.9


# -------------------------
# Location mismatch
# -------------------------

def test_location_mismatch_when_no_point_matches():
    calendar = [cal("Dentist", at(14), at(15), location="Smile Dental")]
    locations = [LocationEntry(id="l1", event_id="ev_l1", lat=0, lng=0, address="Rooftop Bar", timestamp=at(14, 20))]

    [finding] = detect_location_mismatches(DAY, calendar, locations)

    assert finding.type == "location_mismatch"
    assert finding.severity == 0.7
    assert finding.evidence_event_ids == ["ev_Dentist", "ev_l1"]


def test_location_substring_match_either_direction():
    calendar = [cal("Work", at(9), at(17), location="Office")]
    locations = [
        LocationEntry(id="l1", event_id="ev_l1", lat=0, lng=0, address="Istanbul Office", timestamp=at(10)),
    ]

    assert detect_location_mismatches(DAY, calendar, locations) == []


def test_location_outside_event_window_is_ignored():
    calendar = [cal("Dentist", at(14), at(15), location="Smile Dental")]
    locations = [LocationEntry(id="l1", event_id="ev_l1", lat=0, lng=0, address="Home", timestamp=at(18))]

    assert detect_location_mismatches(DAY, calendar, locations) == []


# -------------------------
# Mood / behavior
# -------------------------

def test_great_mood_with_heavy_spending():
    moods = [mood(5, at(9)), mood(4, at(18))]
    txns = [spend(DAY, "Shoes", -80), spend(DAY, "Dinner", -45)]

    [finding] = detect_mood_behavior_disconnect(DAY, moods, txns, [], [])

    assert finding.type == "mood_behavior_disconnect"
    assert finding.severity == 0.5


def test_low_mood_with_workout_and_busy_calendar():
    moods = [mood(2, at(8)), mood(1, at(20))]
    health = [workout(at(7))]
    calendar = [cal(f"Meeting {i}", at(9 + i), at(10 + i)) for i in range(3)]

    findings = detect_mood_behavior_disconnect(DAY, moods, [], health, calendar)

    assert sorted(f.severity for f in findings) == [0.4, 0.6]


def test_intra_day_mood_swing():
    moods = [mood(1, at(8)), mood(3, at(12)), mood(5, at(20))]

    findings = detect_mood_behavior_disconnect(DAY, moods, [], [], [])

    assert [f.severity for f in findings] == [0.7]
    assert findings[0].title == "Emotional rollercoaster: 1/5 -> 5/5"


def test_no_mood_means_no_disconnect():
    txns = [spend(DAY, "Shoes", -500)]

    assert detect_mood_behavior_disconnect(DAY, [], txns, [], []) == []


# -------------------------
# Pattern breaks
# -------------------------

def test_weekly_routine_break():
    past = {}
    for w in range(1, 5):
        day = DAY - timedelta(days=7 * w)
        events = [event("mood", at(9, day=day))]
        if w != 4:
            events.append(event("workout", at(7, day=day)))
        past[day] = events

    findings = detect_pattern_breaks(DAY, [event("mood", at(9))], past, [])

    assert len(findings) == 1
    finding = findings[0]
    assert finding.type == "pattern_break"
    assert finding.title == "Broke your Thursday routine"
    assert finding.severity == pytest.approx(0.7)
    assert "3 of the last 4 Thursdays" in finding.description


def test_workout_drop_week_over_week():
    prior_week = [workout(at(7, day=DAY - timedelta(days=d))) for d in (8, 10, 12)]
    this_week = [workout(at(7, day=DAY - timedelta(days=2)))]

    findings = detect_pattern_breaks(DAY, [], {}, prior_week + this_week)

    assert len(findings) == 1
    assert findings[0].severity == 0.6
    assert findings[0].title == "Exercise dropped: 3->1 workouts"


def test_steady_workouts_are_not_a_drop():
    workouts = [workout(at(7, day=DAY - timedelta(days=d))) for d in (1, 3, 5, 8, 10, 12)]

    assert detect_pattern_breaks(DAY, [], {}, workouts) == []


# -------------------------
# Spending / mood
# -------------------------

def test_emotional_spending_against_normal_days():
    lookback_moods = [mood(4, at(12, day=DAY - timedelta(days=d))) for d in (1, 2, 3)]
    lookback_txns = [spend(DAY - timedelta(days=d), f"Lunch{d}", -20) for d in (1, 2, 3)]
    moods = [mood(2, at(10))]
    txns = [spend(DAY, "Mall", -90), spend(DAY, "Snacks", -10)]

    [finding] = detect_spending_mood_spike(DAY, moods, txns, lookback_moods, lookback_txns)

    assert finding.type == "spending_mood_correlation"
    assert finding.title == "Emotional spending: 400% above normal"
    assert finding.severity == 0.9
    assert "Mall" in finding.suggested_question


def test_days_without_mood_count_as_neutral_in_baseline():
    lookback_txns = [spend(DAY - timedelta(days=d), f"Lunch{d}", -50) for d in (1, 2)]
    moods = [mood(2, at(10))]
    txns = [spend(DAY, "Mall", -60)]

    # 60 is not above 1.5 x 50
    assert detect_spending_mood_spike(DAY, moods, txns, [], lookback_txns) == []


def test_good_mood_or_small_spend_never_flags():
    lookback_txns = [spend(DAY - timedelta(days=1), "Lunch", -5)]

    assert detect_spending_mood_spike(DAY, [mood(4, at(10))], [spend(DAY, "Mall", -500)], [], lookback_txns) == []
    assert detect_spending_mood_spike(DAY, [mood(1, at(10))], [spend(DAY, "Gum", -3)], [], lookback_txns) == []


# -------------------------
# Time gaps
# -------------------------

def test_gap_in_the_middle_of_an_active_day():
    events = [event("mood", at(8)), event("note", at(9)), event("location", at(14))]

    [finding] = detect_time_gaps(DAY, events)

    assert finding.type == "time_gap"
    assert finding.title == "4h silence: 10:00-14:00"
    assert finding.severity == pytest.approx(0.7)


def test_time_gaps_need_three_events():
    assert detect_time_gaps(DAY, [event("mood", at(8)), event("note", at(20))]) == []


def test_one_hour_gaps_are_ignored():
    events = [event("mood", at(8)), event("note", at(10)), event("location", at(12))]

    assert detect_time_gaps(DAY, events) == []


# -------------------------
# Visual mood
# -------------------------

def test_joyful_photo_on_a_miserable_day():
    photos = [
        PhotoRecord(id="p1", event_id="ev_p1", timestamp=at(13), tone="joyful", tone_confidence=0.9),
        PhotoRecord(id="p2", event_id="ev_p2", timestamp=at(14), tone="joyful", tone_confidence=0.3),
        PhotoRecord(id="p3", event_id="ev_p3", timestamp=at(15), tone="sarcastic", tone_confidence=0.9),
    ]

    findings = detect_visual_mood_mismatch_findings(DAY, photos, [mood(1, at(12))])

    assert [f.evidence_event_ids for f in findings] == [["ev_p1"]]
    assert 0 <= findings[0].severity <= 0.95
    assert "worse than you looked" in findings[0].description

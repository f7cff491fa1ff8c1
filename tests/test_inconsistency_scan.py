from __future__ import annotations

from datetime import date, datetime

import pytest

from grain.errors import InvalidPeriodError, RecordNotFoundError
from grain.services import inconsistency_service

DAY = date(2026, 10, 15)


def _double_booking(seed):
    seed.calendar("Standup", datetime(2026, 10, 15, 10, 0), datetime(2026, 10, 15, 11, 30))
    seed.calendar("Design review", datetime(2026, 10, 15, 11, 0), datetime(2026, 10, 15, 12, 0))


def test_scan_stores_findings_for_each_day(store, seed):
    _double_booking(seed)

    result = inconsistency_service.scan_for_inconsistencies(store, date(2026, 10, 14), DAY)

    assert result.scanned_days == 2
    assert result.found == 1
    [finding] = result.findings
    assert finding.type == "schedule_conflict"
    assert finding.title == "Double-booked: 30min overlap"
    assert finding.id is not None
    assert finding.detected_at == datetime(2026, 10, 17, 12, 0)
    assert store.get_inconsistencies_for_date(DAY) == [finding]


def test_rescanning_a_day_replaces_its_findings(store, seed):
    _double_booking(seed)

    first = inconsistency_service.scan_for_inconsistencies(store, DAY, DAY)
    second = inconsistency_service.scan_for_inconsistencies(store, DAY, DAY)

    assert first.found == second.found == 1
    stored = inconsistency_service.list_inconsistencies(store)
    assert [f.id for f in stored] == [second.findings[0].id]


def test_rescan_leaves_other_days_alone(store, seed):
    _double_booking(seed)
    seed.calendar("Lunch", datetime(2026, 10, 16, 12, 0), datetime(2026, 10, 16, 13, 30))
    seed.calendar("Interview", datetime(2026, 10, 16, 13, 0), datetime(2026, 10, 16, 14, 0))

    inconsistency_service.scan_for_inconsistencies(store, DAY, date(2026, 10, 16))
    inconsistency_service.scan_for_inconsistencies(store, DAY, DAY)

    assert len(inconsistency_service.list_inconsistencies(store)) == 2


def test_scan_of_a_quiet_day_finds_nothing(store):
    result = inconsistency_service.scan_for_inconsistencies(store, DAY, DAY)

    assert (result.scanned_days, result.found) == (1, 0)


def test_inverted_range_is_rejected(store):
    with pytest.raises(InvalidPeriodError):
        inconsistency_service.scan_for_inconsistencies(store, DAY, date(2026, 10, 1))


def test_list_orders_by_severity(store, seed):
    _double_booking(seed)
    seed.calendar("Dentist", datetime(2026, 10, 15, 15, 0), datetime(2026, 10, 15, 16, 0), location="Smile Dental")
    seed.location(datetime(2026, 10, 15, 15, 20), "Rooftop Bar")

    inconsistency_service.scan_for_inconsistencies(store, DAY, DAY)
    severities = [f.severity for f in inconsistency_service.list_inconsistencies(store)]

    assert severities == sorted(severities, reverse=True)
    assert len(severities) >= 2


def test_dismiss_removes_a_finding(store, seed):
    _double_booking(seed)
    result = inconsistency_service.scan_for_inconsistencies(store, DAY, DAY)

    inconsistency_service.dismiss_inconsistency(store, result.findings[0].id)

    assert inconsistency_service.list_inconsistencies(store) == []
    with pytest.raises(RecordNotFoundError):
        inconsistency_service.dismiss_inconsistency(store, result.findings[0].id)


def test_failed_rescan_keeps_the_previous_findings(store, seed, monkeypatch):
    from grain.store import SqlRecordStore

    _double_booking(seed)
    inconsistency_service.scan_for_inconsistencies(store, DAY, DAY)
    before = store.get_inconsistencies_for_date(DAY)
    assert len(before) == 1

    def broken_insert(self, finding):
        raise RuntimeError("disk full")

    monkeypatch.setattr(SqlRecordStore, "insert_inconsistency", broken_insert)

    with pytest.raises(RuntimeError):
        inconsistency_service.scan_for_inconsistencies(store, DAY, DAY)

    assert [f.id for f in store.get_inconsistencies_for_date(DAY)] == [f.id for f in before]

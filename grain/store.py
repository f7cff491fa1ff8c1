"""
Record Store.

`RecordStore` is the read/write surface the analysis services depend on.
`SqlRecordStore` is the SQLAlchemy implementation over grain.models.

Writes are only flushed; `transaction()` commits on success and rolls back
on any error, so a clear-then-insert inside one `with store.transaction():`
block is never visible half-done.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, ContextManager, Dict, Iterator, List, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from grain.clock import Clock, IdFactory, SystemClock, uuid_str
from grain.errors import RecordNotFoundError
from grain.models import (
    ActivityLog,
    CalendarEventRow,
    Confrontation as ConfrontationRow,
    Diff,
    Event,
    EvidenceRef,
    HealthEntryRow,
    Inconsistency,
    LocationRow,
    MoneyTransaction,
    MoodEntryRow,
    NoteRow,
    PhotoRow,
    Rule,
    VideoRow,
    VoiceMemoRow,
)
from grain.records import (
    CalendarEntry,
    Confrontation,
    EventRecord,
    EvidenceRecord,
    Finding,
    HealthEntry,
    LedgerRecord,
    LocationEntry,
    MoodEntry,
    NoteEntry,
    PhotoRecord,
    RuleRecord,
    VideoRecord,
    VoiceMemo,
    as_payload,
)

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    clock: Clock
    ids: IdFactory

    # reads
    def get_transactions(self, start: Optional[date] = None, end: Optional[date] = None) -> List[LedgerRecord]: ...
    def get_transactions_in_window(self, start: datetime, end: datetime) -> List[LedgerRecord]: ...
    def get_mood_entries_in_window(self, start: datetime, end: datetime) -> List[MoodEntry]: ...
    def get_calendar_events_in_window(self, start: datetime, end: datetime) -> List[CalendarEntry]: ...
    def get_health_entries_in_window(self, start: datetime, end: datetime) -> List[HealthEntry]: ...
    def get_health_entries_by_type(self, metric_type: str, start: datetime, end: datetime) -> List[HealthEntry]: ...
    def get_locations_in_window(self, start: datetime, end: datetime) -> List[LocationEntry]: ...
    def get_notes_in_window(self, start: datetime, end: datetime) -> List[NoteEntry]: ...
    def get_voice_memos_in_window(self, start: datetime, end: datetime) -> List[VoiceMemo]: ...
    def get_photos_in_window(self, start: datetime, end: datetime) -> List[PhotoRecord]: ...
    def get_videos_in_window(self, start: datetime, end: datetime) -> List[VideoRecord]: ...
    def get_events_in_window(self, start: datetime, end: datetime) -> List[EventRecord]: ...
    def get_event(self, event_id: str) -> Optional[EventRecord]: ...
    def get_evidence_by_event(self, event_id: str) -> List[EvidenceRecord]: ...
    def get_active_rules(self) -> List[RuleRecord]: ...
    def list_rules(self) -> List[RuleRecord]: ...
    def list_inconsistencies(self, limit: int = 50) -> List[Finding]: ...
    def get_inconsistencies_for_date(self, day: date) -> List[Finding]: ...
    def list_confrontations(self, limit: int = 20) -> List[Confrontation]: ...
    def list_diffs(self, period_type: Optional[str] = None) -> List[Diff]: ...
    def get_diff(self, diff_id: str) -> Diff: ...
    def list_activity(self, limit: int = 500) -> List[ActivityLog]: ...

    # writes
    def insert_event(self, event_type: str, timestamp: datetime, summary: str, details: Dict[str, Any], confidence: float = 1.0, *, derived: bool = False) -> EventRecord: ...
    def insert_evidence(self, event_id: str, evidence_type: str, pointer: str, excerpt: str, hash: str) -> EvidenceRecord: ...
    def insert_inconsistency(self, finding: Finding) -> Finding: ...
    def clear_inconsistencies_for_date(self, day: date) -> int: ...
    def dismiss_inconsistency(self, inconsistency_id: str) -> None: ...
    def insert_confrontation(self, confrontation: Confrontation) -> Confrontation: ...
    def clear_confrontations(self) -> int: ...
    def insert_diff(self, *, period_type: str, period_start: date, period_end: date, summary: str, cards: List[Dict[str, Any]], total_spent: float, baseline_spent: float, change_pct: float) -> str: ...
    def log_activity(self, entry_type: str, description: str, details: Optional[Dict[str, Any]] = None) -> None: ...
    def insert_rule(self, rule_type: str, payload: Dict[str, Any]) -> RuleRecord: ...
    def set_rule_enabled(self, rule_id: str, enabled: bool) -> RuleRecord: ...
    def delete_rule(self, rule_id: str) -> None: ...

    def transaction(self) -> ContextManager[Any]: ...


# -------------------------
# Row -> record mapping
# -------------------------

def _ledger(row: MoneyTransaction) -> LedgerRecord:
    return LedgerRecord(
        id=row.id,
        event_id=row.event_id,
        date=row.date,
        merchant=row.merchant,
        amount=float(row.amount),
        currency=row.currency,
        category=row.category,
        account=row.account,
        content_hash=row.raw_row_hash,
        source_ref=row.source_ref,
    )


def _event(row: Event) -> EventRecord:
    return EventRecord(
        id=row.id,
        type=row.type,
        timestamp=row.timestamp,
        summary=row.summary,
        details=dict(row.details_json or {}),
        confidence=float(row.confidence),
        derived=bool(row.derived),
    )


def _finding(row: Inconsistency) -> Finding:
    return Finding(
        id=row.id,
        type=row.type,  # type: ignore[arg-type]
        severity=float(row.severity),
        title=row.title,
        description=row.description,
        evidence_event_ids=list(row.evidence_event_ids or []),
        suggested_question=row.suggested_question,
        date=row.date,
        detected_at=row.detected_at,
    )


def _confrontation(row: ConfrontationRow) -> Confrontation:
    return Confrontation(
        id=row.id,
        title=row.title,
        insight=row.insight,
        severity=float(row.severity),
        data_points=list(row.data_points or []),
        related_event_ids=list(row.related_event_ids or []),
        category=row.category,  # type: ignore[arg-type]
        generated_at=row.generated_at,
    )


def _rule(row: Rule) -> RuleRecord:
    return RuleRecord(
        id=row.id,
        rule_type=row.rule_type,
        payload=dict(row.rule_json or {}),
        enabled=bool(row.enabled),
        created_at=row.created_at,
    )


def _evidence(row: EvidenceRef) -> EvidenceRecord:
    return EvidenceRecord(
        id=row.id,
        event_id=row.event_id,
        evidence_type=row.evidence_type,
        pointer=row.pointer,
        excerpt=row.excerpt,
        hash=row.hash,
        created_at=row.created_at,
    )


class SqlRecordStore:
    def __init__(self, db: Session, *, clock: Optional[Clock] = None, ids: IdFactory = uuid_str):
        self.db = db
        self.clock = clock or SystemClock()
        self.ids = ids

    @contextmanager
    def transaction(self) -> Iterator["SqlRecordStore"]:
        try:
            yield self
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # -------------------------
    # Reads
    # -------------------------

    def get_transactions(self, start: Optional[date] = None, end: Optional[date] = None) -> List[LedgerRecord]:
        query = select(MoneyTransaction)
        if start:
            query = query.where(MoneyTransaction.date >= start)
        if end:
            query = query.where(MoneyTransaction.date <= end)
        rows = self.db.execute(
            query.order_by(MoneyTransaction.date.asc(), MoneyTransaction.id.asc())
        ).scalars().all()
        return [_ledger(r) for r in rows]

    def get_transactions_in_window(self, start: datetime, end: datetime) -> List[LedgerRecord]:
        return self.get_transactions(start.date(), end.date())

    def get_mood_entries_in_window(self, start: datetime, end: datetime) -> List[MoodEntry]:
        rows = self.db.execute(
            select(MoodEntryRow)
            .where(MoodEntryRow.timestamp >= start, MoodEntryRow.timestamp <= end)
            .order_by(MoodEntryRow.timestamp.asc(), MoodEntryRow.id.asc())
        ).scalars().all()
        return [
            MoodEntry(id=r.id, event_id=r.event_id, score=int(r.score), timestamp=r.timestamp, note=r.note)
            for r in rows
        ]

    def get_calendar_events_in_window(self, start: datetime, end: datetime) -> List[CalendarEntry]:
        rows = self.db.execute(
            select(CalendarEventRow)
            .where(CalendarEventRow.start_time >= start, CalendarEventRow.start_time <= end)
            .order_by(CalendarEventRow.start_time.asc(), CalendarEventRow.id.asc())
        ).scalars().all()
        return [
            CalendarEntry(
                id=r.id,
                event_id=r.event_id,
                title=r.title,
                start_time=r.start_time,
                end_time=r.end_time,
                location=r.location or "",
                description=r.description or "",
            )
            for r in rows
        ]

    def _health(self, query) -> List[HealthEntry]:
        rows = self.db.execute(
            query.order_by(HealthEntryRow.timestamp.asc(), HealthEntryRow.id.asc())
        ).scalars().all()
        return [
            HealthEntry(
                id=r.id,
                event_id=r.event_id,
                metric_type=r.metric_type,
                value=float(r.value),
                unit=r.unit,
                timestamp=r.timestamp,
            )
            for r in rows
        ]

    def get_health_entries_in_window(self, start: datetime, end: datetime) -> List[HealthEntry]:
        return self._health(
            select(HealthEntryRow).where(HealthEntryRow.timestamp >= start, HealthEntryRow.timestamp <= end)
        )

    def get_health_entries_by_type(self, metric_type: str, start: datetime, end: datetime) -> List[HealthEntry]:
        return self._health(
            select(HealthEntryRow).where(
                HealthEntryRow.metric_type == metric_type,
                HealthEntryRow.timestamp >= start,
                HealthEntryRow.timestamp <= end,
            )
        )

    def get_locations_in_window(self, start: datetime, end: datetime) -> List[LocationEntry]:
        rows = self.db.execute(
            select(LocationRow)
            .where(LocationRow.timestamp >= start, LocationRow.timestamp <= end)
            .order_by(LocationRow.timestamp.asc(), LocationRow.id.asc())
        ).scalars().all()
        return [
            LocationEntry(
                id=r.id, event_id=r.event_id, lat=r.lat, lng=r.lng, address=r.address or "", timestamp=r.timestamp
            )
            for r in rows
        ]

    def get_notes_in_window(self, start: datetime, end: datetime) -> List[NoteEntry]:
        rows = self.db.execute(
            select(NoteRow)
            .where(NoteRow.timestamp >= start, NoteRow.timestamp <= end)
            .order_by(NoteRow.timestamp.asc(), NoteRow.id.asc())
        ).scalars().all()
        return [NoteEntry(id=r.id, event_id=r.event_id, content=r.content, timestamp=r.timestamp) for r in rows]

    def get_voice_memos_in_window(self, start: datetime, end: datetime) -> List[VoiceMemo]:
        rows = self.db.execute(
            select(VoiceMemoRow)
            .where(VoiceMemoRow.timestamp >= start, VoiceMemoRow.timestamp <= end)
            .order_by(VoiceMemoRow.timestamp.asc(), VoiceMemoRow.id.asc())
        ).scalars().all()
        return [
            VoiceMemo(
                id=r.id,
                event_id=r.event_id,
                transcript=r.transcript,
                duration_seconds=float(r.duration_seconds),
                timestamp=r.timestamp,
            )
            for r in rows
        ]

    def get_photos_in_window(self, start: datetime, end: datetime) -> List[PhotoRecord]:
        rows = self.db.execute(
            select(PhotoRow)
            .where(PhotoRow.timestamp >= start, PhotoRow.timestamp <= end)
            .order_by(PhotoRow.timestamp.asc(), PhotoRow.id.asc())
        ).scalars().all()
        return [
            PhotoRecord(
                id=r.id,
                event_id=r.event_id,
                timestamp=r.timestamp,
                file_path=r.file_path,
                tone=r.tone,
                tone_confidence=r.tone_confidence,
                tags=list(r.tags or []),
                people_count=r.people_count,
            )
            for r in rows
        ]

    def get_videos_in_window(self, start: datetime, end: datetime) -> List[VideoRecord]:
        rows = self.db.execute(
            select(VideoRow)
            .where(VideoRow.timestamp >= start, VideoRow.timestamp <= end)
            .order_by(VideoRow.timestamp.asc(), VideoRow.id.asc())
        ).scalars().all()
        return [
            VideoRecord(
                id=r.id,
                event_id=r.event_id,
                timestamp=r.timestamp,
                file_path=r.file_path,
                duration_seconds=float(r.duration_seconds),
            )
            for r in rows
        ]

    def get_events_in_window(self, start: datetime, end: datetime) -> List[EventRecord]:
        """Source events only; detections written by grain itself are excluded."""
        rows = self.db.execute(
            select(Event)
            .where(Event.timestamp >= start, Event.timestamp <= end, Event.derived.is_(False))
            .order_by(Event.timestamp.asc(), Event.id.asc())
        ).scalars().all()
        return [_event(r) for r in rows]

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        row = self.db.get(Event, event_id)
        return _event(row) if row else None

    def get_evidence_by_event(self, event_id: str) -> List[EvidenceRecord]:
        rows = self.db.execute(
            select(EvidenceRef)
            .where(EvidenceRef.event_id == event_id)
            .order_by(EvidenceRef.created_at.asc(), EvidenceRef.id.asc())
        ).scalars().all()
        return [_evidence(r) for r in rows]

    def get_active_rules(self) -> List[RuleRecord]:
        rows = self.db.execute(
            select(Rule).where(Rule.enabled.is_(True)).order_by(Rule.created_at.asc(), Rule.id.asc())
        ).scalars().all()
        return [_rule(r) for r in rows]

    def list_rules(self) -> List[RuleRecord]:
        rows = self.db.execute(select(Rule).order_by(Rule.created_at.asc(), Rule.id.asc())).scalars().all()
        return [_rule(r) for r in rows]

    def list_inconsistencies(self, limit: int = 50) -> List[Finding]:
        rows = self.db.execute(
            select(Inconsistency)
            .order_by(Inconsistency.severity.desc(), Inconsistency.detected_at.desc(), Inconsistency.id.asc())
            .limit(limit)
        ).scalars().all()
        return [_finding(r) for r in rows]

    def get_inconsistencies_for_date(self, day: date) -> List[Finding]:
        rows = self.db.execute(
            select(Inconsistency).where(Inconsistency.date == day).order_by(Inconsistency.id.asc())
        ).scalars().all()
        return [_finding(r) for r in rows]

    def list_confrontations(self, limit: int = 20) -> List[Confrontation]:
        rows = self.db.execute(
            select(ConfrontationRow)
            .order_by(ConfrontationRow.severity.desc(), ConfrontationRow.generated_at.desc())
            .limit(limit)
        ).scalars().all()
        return [_confrontation(r) for r in rows]

    def list_diffs(self, period_type: Optional[str] = None) -> List[Diff]:
        query = select(Diff)
        if period_type:
            query = query.where(Diff.period_type == period_type)
        return list(
            self.db.execute(query.order_by(Diff.period_start.desc(), Diff.created_at.desc())).scalars().all()
        )

    def get_diff(self, diff_id: str) -> Diff:
        row = self.db.get(Diff, diff_id)
        if not row:
            raise RecordNotFoundError(f"diff {diff_id} not found")
        return row

    def list_activity(self, limit: int = 500) -> List[ActivityLog]:
        return list(
            self.db.execute(
                select(ActivityLog).order_by(ActivityLog.timestamp.desc()).limit(limit)
            ).scalars().all()
        )

    # -------------------------
    # Writes
    # -------------------------

    def insert_event(
        self,
        event_type: str,
        timestamp: datetime,
        summary: str,
        details: Dict[str, Any],
        confidence: float = 1.0,
        *,
        derived: bool = False,
    ) -> EventRecord:
        row = Event(
            id=self.ids(),
            type=event_type,
            timestamp=timestamp,
            summary=summary,
            details_json=as_payload(details),
            confidence=confidence,
            derived=derived,
            created_at=self.clock.now(),
        )
        self.db.add(row)
        self.db.flush()
        return _event(row)

    def insert_evidence(self, event_id: str, evidence_type: str, pointer: str, excerpt: str, hash: str) -> EvidenceRecord:
        row = EvidenceRef(
            id=self.ids(),
            event_id=event_id,
            evidence_type=evidence_type,
            pointer=pointer,
            excerpt=excerpt,
            hash=hash,
            created_at=self.clock.now(),
        )
        self.db.add(row)
        self.db.flush()
        return _evidence(row)

    def insert_inconsistency(self, finding: Finding) -> Finding:
        row = Inconsistency(
            id=self.ids(),
            type=finding.type,
            severity=finding.severity,
            title=finding.title,
            description=finding.description,
            evidence_event_ids=list(finding.evidence_event_ids),
            suggested_question=finding.suggested_question,
            date=finding.date,
            detected_at=self.clock.now(),
        )
        self.db.add(row)
        self.db.flush()
        return _finding(row)

    def clear_inconsistencies_for_date(self, day: date) -> int:
        result = self.db.execute(delete(Inconsistency).where(Inconsistency.date == day))
        return int(result.rowcount or 0)

    def dismiss_inconsistency(self, inconsistency_id: str) -> None:
        row = self.db.get(Inconsistency, inconsistency_id)
        if not row:
            raise RecordNotFoundError(f"inconsistency {inconsistency_id} not found")
        self.db.delete(row)
        self.db.flush()

    def insert_confrontation(self, confrontation: Confrontation) -> Confrontation:
        row = ConfrontationRow(
            id=self.ids(),
            title=confrontation.title,
            insight=confrontation.insight,
            severity=confrontation.severity,
            data_points=list(confrontation.data_points),
            related_event_ids=list(confrontation.related_event_ids),
            category=confrontation.category,
            generated_at=self.clock.now(),
        )
        self.db.add(row)
        self.db.flush()
        return _confrontation(row)

    def clear_confrontations(self) -> int:
        result = self.db.execute(delete(ConfrontationRow))
        return int(result.rowcount or 0)

    def insert_diff(
        self,
        *,
        period_type: str,
        period_start: date,
        period_end: date,
        summary: str,
        cards: List[Dict[str, Any]],
        total_spent: float,
        baseline_spent: float,
        change_pct: float,
    ) -> str:
        row = Diff(
            id=self.ids(),
            period_type=period_type,
            period_start=period_start,
            period_end=period_end,
            diff_summary=summary,
            diff_json=cards,
            total_spent=total_spent,
            baseline_spent=baseline_spent,
            change_pct=change_pct,
            created_at=self.clock.now(),
        )
        self.db.add(row)
        self.db.flush()
        return row.id

    def log_activity(self, entry_type: str, description: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.db.add(
            ActivityLog(
                id=self.ids(),
                timestamp=self.clock.now(),
                entry_type=entry_type,
                description=description,
                details_json=as_payload(details or {}),
            )
        )
        self.db.flush()

    def insert_rule(self, rule_type: str, payload: Dict[str, Any]) -> RuleRecord:
        row = Rule(id=self.ids(), rule_type=rule_type, rule_json=dict(payload), enabled=True, created_at=self.clock.now())
        self.db.add(row)
        self.db.flush()
        return _rule(row)

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> RuleRecord:
        row = self.db.get(Rule, rule_id)
        if not row:
            raise RecordNotFoundError(f"rule {rule_id} not found")
        row.enabled = enabled
        self.db.flush()
        return _rule(row)

    def delete_rule(self, rule_id: str) -> None:
        row = self.db.get(Rule, rule_id)
        if not row:
            raise RecordNotFoundError(f"rule {rule_id} not found")
        self.db.delete(row)
        self.db.flush()

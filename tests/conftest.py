import hashlib
import os
import pathlib
import sys
import tempfile
from datetime import date, datetime, timedelta
from typing import List, Optional

import pytest


REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.append(str(REPO_ROOT))

NOW = datetime(2026, 10, 17, 12, 0, 0)


def pytest_configure():
    if os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URL"):
        return
    temp_dir = tempfile.mkdtemp(prefix="grain-tests-")
    db_path = pathlib.Path(temp_dir) / "pytest.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"


@pytest.fixture(scope="session")
def sqlite_engine():
    from grain import models  # noqa: F401
    from grain.db import Base, engine

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def sqlite_session(sqlite_engine):
    from grain.db import Base, SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
        session.close()


@pytest.fixture()
def clock():
    from grain.clock import FixedClock

    return FixedClock(NOW)


@pytest.fixture()
def store(sqlite_session, clock):
    from grain.clock import sequential_ids
    from grain.store import SqlRecordStore

    return SqlRecordStore(sqlite_session, clock=clock, ids=sequential_ids("rec"))


class Seeder:
    """Writes source records (timeline event + domain row) and commits."""

    def __init__(self, session):
        self.session = session
        self._n = 0

    def _event(self, event_type: str, timestamp: datetime, summary: str = ""):
        from grain.models import Event

        self._n += 1
        event = Event(id=f"ev_{event_type}_{self._n}", type=event_type, timestamp=timestamp, summary=summary)
        self.session.add(event)
        self.session.flush()
        return event

    def _commit(self, row):
        self.session.add(row)
        self.session.commit()
        return row

    def txn(self, day: date, merchant: str, amount: float, category: Optional[str] = None):
        from grain.models import MoneyTransaction

        event = self._event("money_transaction", datetime.combine(day, datetime.min.time()), merchant)
        digest = hashlib.sha256(f"{day}|{merchant}|{amount}|{self._n}".encode()).hexdigest()
        return self._commit(
            MoneyTransaction(
                id=f"tx_{self._n}",
                event_id=event.id,
                date=day,
                merchant=merchant,
                amount=amount,
                category=category,
                raw_row_hash=digest,
                source_ref=f"ledger.csv:{self._n}",
            )
        )

    def monthly(self, merchant: str, amounts: List[float], first: date, category: Optional[str] = None):
        rows = []
        for i, amount in enumerate(amounts):
            rows.append(self.txn(first + timedelta(days=30 * i), merchant, amount, category))
        return rows

    def mood(self, timestamp: datetime, score: int, note: str = ""):
        from grain.models import MoodEntryRow

        event = self._event("mood", timestamp)
        return self._commit(MoodEntryRow(event_id=event.id, score=score, note=note, timestamp=timestamp))

    def calendar(self, title: str, start: datetime, end: datetime, location: str = ""):
        from grain.models import CalendarEventRow

        event = self._event("calendar_event", start, title)
        return self._commit(
            CalendarEventRow(event_id=event.id, title=title, start_time=start, end_time=end, location=location)
        )

    def health(self, metric_type: str, value: float, timestamp: datetime, unit: str = ""):
        from grain.models import HealthEntryRow

        event = self._event(metric_type, timestamp)
        return self._commit(
            HealthEntryRow(event_id=event.id, metric_type=metric_type, value=value, unit=unit, timestamp=timestamp)
        )

    def location(self, timestamp: datetime, address: str, lat: float = 0.0, lng: float = 0.0):
        from grain.models import LocationRow

        event = self._event("location", timestamp, address)
        return self._commit(LocationRow(event_id=event.id, lat=lat, lng=lng, address=address, timestamp=timestamp))

    def note(self, timestamp: datetime, content: str):
        from grain.models import NoteRow

        event = self._event("note", timestamp)
        return self._commit(NoteRow(event_id=event.id, content=content, timestamp=timestamp))

    def voice_memo(self, timestamp: datetime, transcript: str = "", duration_seconds: float = 30.0):
        from grain.models import VoiceMemoRow

        event = self._event("voice_memo", timestamp)
        return self._commit(
            VoiceMemoRow(
                event_id=event.id, transcript=transcript, duration_seconds=duration_seconds, timestamp=timestamp
            )
        )

    def photo(
        self,
        timestamp: datetime,
        tone: Optional[str] = None,
        tone_confidence: Optional[float] = None,
        tags: Optional[List[str]] = None,
        people_count: Optional[int] = None,
    ):
        from grain.models import PhotoRow

        event = self._event("photo", timestamp)
        return self._commit(
            PhotoRow(
                event_id=event.id,
                file_path=f"photos/{event.id}.jpg",
                timestamp=timestamp,
                tone=tone,
                tone_confidence=tone_confidence,
                tags=tags or [],
                people_count=people_count,
            )
        )

    def video(self, timestamp: datetime, duration_seconds: float = 10.0):
        from grain.models import VideoRow

        event = self._event("video", timestamp)
        return self._commit(
            VideoRow(
                event_id=event.id,
                file_path=f"videos/{event.id}.mp4",
                duration_seconds=duration_seconds,
                timestamp=timestamp,
            )
        )


@pytest.fixture()
def seed(sqlite_session):
    return Seeder(sqlite_session)


@pytest.fixture()
def api_client(sqlite_engine, sqlite_session, clock):
    from fastapi.testclient import TestClient

    from grain.api.deps import get_clock
    from grain.db import get_db
    from grain.main import app

    def _get_test_db():
        yield sqlite_session

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_clock] = lambda: clock
    client = TestClient(app)
    try:
        yield client
    finally:
        app.dependency_overrides.pop(get_db, None)
        app.dependency_overrides.pop(get_clock, None)

"""
Record types shared by the store, the detectors and the services.

Design notes:
- These are plain frozen dataclasses. Detectors only ever see these, never
  ORM rows, so every detector stays a pure function over lists.
- Timestamps are naive UTC datetimes; ledger records carry a calendar date.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

InconsistencyType = Literal[
    "location_mismatch",
    "schedule_conflict",
    "mood_behavior_disconnect",
    "pattern_break",
    "spending_mood_correlation",
    "time_gap",
    "visual_mood_mismatch",
]

ConfrontationCategory = Literal["correlation", "trend", "anomaly"]

RuleType = Literal["ignore_merchant", "ignore_category", "threshold", "whitelist_subscription"]


# -------------------------
# Source records
# -------------------------

@dataclass(frozen=True)
class LedgerRecord:
    id: str
    event_id: str
    date: date
    merchant: str
    amount: float                     # negative = expense
    currency: str = "USD"
    category: Optional[str] = None
    account: Optional[str] = None
    content_hash: str = ""
    source_ref: str = ""

    @property
    def merchant_key(self) -> str:
        return self.merchant.lower()

    @property
    def is_expense(self) -> bool:
        return self.amount < 0


@dataclass(frozen=True)
class MoodEntry:
    id: str
    event_id: str
    score: int
    timestamp: datetime
    note: str = ""


@dataclass(frozen=True)
class CalendarEntry:
    id: str
    event_id: str
    title: str
    start_time: datetime
    end_time: datetime
    location: str = ""
    description: str = ""


@dataclass(frozen=True)
class HealthEntry:
    id: str
    event_id: str
    metric_type: str
    value: float
    unit: str
    timestamp: datetime


@dataclass(frozen=True)
class LocationEntry:
    id: str
    event_id: str
    lat: float
    lng: float
    address: str
    timestamp: datetime


@dataclass(frozen=True)
class NoteEntry:
    id: str
    event_id: str
    content: str
    timestamp: datetime


@dataclass(frozen=True)
class VoiceMemo:
    id: str
    event_id: str
    transcript: str
    duration_seconds: float
    timestamp: datetime


@dataclass(frozen=True)
class PhotoRecord:
    id: str
    event_id: str
    timestamp: datetime
    file_path: str = ""
    tone: Optional[str] = None
    tone_confidence: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    people_count: Optional[int] = None


@dataclass(frozen=True)
class VideoRecord:
    id: str
    event_id: str
    timestamp: datetime
    file_path: str = ""
    duration_seconds: float = 0.0


@dataclass(frozen=True)
class EventRecord:
    id: str
    type: str
    timestamp: datetime
    summary: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 1.0
    derived: bool = False


@dataclass(frozen=True)
class EvidenceRecord:
    id: str
    event_id: str
    evidence_type: str
    pointer: str
    excerpt: str
    hash: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class RuleRecord:
    id: str
    rule_type: str
    payload: Dict[str, Any]
    enabled: bool = True
    created_at: Optional[datetime] = None


# -------------------------
# Generated output
# -------------------------

@dataclass(frozen=True)
class Finding:
    """A per-day cross-domain contradiction. id/detected_at are set once stored."""
    type: InconsistencyType
    severity: float
    title: str
    description: str
    evidence_event_ids: List[str]
    suggested_question: str
    date: date
    id: Optional[str] = None
    detected_at: Optional[datetime] = None


@dataclass(frozen=True)
class Confrontation:
    """A period-level insight. id/generated_at are set once stored."""
    title: str
    insight: str
    severity: float
    data_points: List[Dict[str, str]]
    related_event_ids: List[str]
    category: ConfrontationCategory
    id: Optional[str] = None
    generated_at: Optional[datetime] = None


def data_point(label: str, value: str) -> Dict[str, str]:
    return {"label": label, "value": value}


def as_payload(obj: Any) -> Any:
    """JSON-safe view of dataclasses / dates, for JSON columns and API output."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return as_payload(asdict(obj))
    if isinstance(obj, dict):
        return {str(k): as_payload(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [as_payload(v) for v in obj]
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return obj

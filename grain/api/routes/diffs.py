from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from grain.api.deps import domain_errors, get_store
from grain.records import as_payload
from grain.services import diff_service
from grain.services.diff_service import DiffReport
from grain.store import RecordStore

router = APIRouter(prefix="/api/diffs", tags=["diffs"])


class DiffGenerateIn(BaseModel):
    period_type: Literal["daily", "weekly", "monthly"]
    ref_date: date


class DiffCardOut(BaseModel):
    id: str
    event_id: str
    title: str
    type: str
    impact: float
    confidence: float = Field(..., ge=0, le=1)
    merchant: str
    summary: str
    details: Dict[str, Any] = Field(default_factory=dict)
    evidence_ids: List[str] = Field(default_factory=list)
    suggested_actions: List[str] = Field(default_factory=list)


class DiffOut(BaseModel):
    id: str
    period_type: str
    period_start: date
    period_end: date
    summary: str
    cards: List[DiffCardOut]
    total_spent: float
    baseline_spent: float
    change_pct: float


def _out(report: DiffReport) -> DiffOut:
    return DiffOut(**as_payload(report))


@router.post("", response_model=DiffOut)
def generate_diff(req: DiffGenerateIn, store: RecordStore = Depends(get_store)):
    with domain_errors():
        return _out(diff_service.generate_diff(store, req.period_type, req.ref_date))


@router.get("", response_model=List[DiffOut])
def list_diffs(
    period_type: Optional[str] = Query(None),
    store: RecordStore = Depends(get_store),
):
    with domain_errors():
        return [_out(r) for r in diff_service.list_diffs(store, period_type)]


@router.get("/{diff_id}", response_model=DiffOut)
def get_diff(diff_id: str, store: RecordStore = Depends(get_store)):
    with domain_errors():
        return _out(diff_service.get_diff(store, diff_id))

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from grain.api.deps import domain_errors, get_store
from grain.records import as_payload
from grain.services import inconsistency_service
from grain.store import RecordStore

router = APIRouter(prefix="/api/inconsistencies", tags=["inconsistencies"])


class ScanIn(BaseModel):
    start_date: date
    end_date: date


class FindingOut(BaseModel):
    id: Optional[str]
    type: str
    severity: float = Field(..., ge=0, le=1)
    title: str
    description: str
    evidence_event_ids: List[str]
    suggested_question: str
    date: date
    detected_at: Optional[datetime] = None


class ScanOut(BaseModel):
    scanned_days: int
    found: int
    findings: List[FindingOut]


@router.post("/scan", response_model=ScanOut)
def scan(req: ScanIn, store: RecordStore = Depends(get_store)):
    with domain_errors():
        result = inconsistency_service.scan_for_inconsistencies(store, req.start_date, req.end_date)
    return ScanOut(**as_payload(result))


@router.get("", response_model=List[FindingOut])
def list_inconsistencies(
    limit: int = Query(50, ge=1, le=500),
    store: RecordStore = Depends(get_store),
):
    return [FindingOut(**as_payload(f)) for f in inconsistency_service.list_inconsistencies(store, limit)]


@router.delete("/{inconsistency_id}", status_code=204)
def dismiss(inconsistency_id: str, store: RecordStore = Depends(get_store)):
    with domain_errors():
        inconsistency_service.dismiss_inconsistency(store, inconsistency_id)

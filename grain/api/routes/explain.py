from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from grain.api.deps import domain_errors, get_store
from grain.records import as_payload
from grain.services import explain_service
from grain.store import RecordStore

router = APIRouter(prefix="/api", tags=["explain"])


@router.get("/events/{event_id}/explain", response_model=Dict[str, Any])
def explain_event(event_id: str, store: RecordStore = Depends(get_store)):
    with domain_errors():
        return as_payload(explain_service.explain_event(store, event_id))


@router.get("/audit/{month}", response_model=Dict[str, Any])
def monthly_audit(month: str, store: RecordStore = Depends(get_store)):
    with domain_errors():
        return as_payload(explain_service.monthly_audit(store, month))

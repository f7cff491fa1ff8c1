from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from grain.api.deps import domain_errors, get_store
from grain.records import as_payload
from grain.services import confrontation_service
from grain.store import RecordStore

router = APIRouter(prefix="/api/confrontations", tags=["confrontations"])


class ConfrontationGenerateIn(BaseModel):
    period: Literal["weekly", "monthly"] = "weekly"


class ConfrontationOut(BaseModel):
    id: Optional[str]
    title: str
    insight: str
    severity: float = Field(..., ge=0, le=1)
    data_points: List[Dict[str, str]]
    related_event_ids: List[str]
    category: str
    generated_at: Optional[datetime] = None


@router.post("", response_model=List[ConfrontationOut])
def generate(req: ConfrontationGenerateIn, store: RecordStore = Depends(get_store)):
    with domain_errors():
        stored = confrontation_service.generate_confrontations(store, req.period)
    return [ConfrontationOut(**as_payload(c)) for c in stored]


@router.get("", response_model=List[ConfrontationOut])
def list_confrontations(
    limit: int = Query(20, ge=1, le=200),
    store: RecordStore = Depends(get_store),
):
    return [
        ConfrontationOut(**as_payload(c)) for c in confrontation_service.list_confrontations(store, limit)
    ]

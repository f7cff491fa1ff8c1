from __future__ import annotations

from datetime import date
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from grain.api.deps import domain_errors, get_store
from grain.records import as_payload
from grain.services import comparison_service
from grain.store import RecordStore

router = APIRouter(prefix="/api/comparisons", tags=["comparisons"])


class CompareIn(BaseModel):
    period1_start: date
    period1_end: date
    period2_start: date
    period2_end: date


@router.post("", response_model=Dict[str, Any])
def compare(req: CompareIn, store: RecordStore = Depends(get_store)):
    with domain_errors():
        result = comparison_service.compare_periods(
            store, req.period1_start, req.period1_end, req.period2_start, req.period2_end
        )
    return as_payload(result)

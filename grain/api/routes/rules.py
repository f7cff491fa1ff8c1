from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from grain.api.deps import domain_errors, get_store
from grain.records import RuleRecord
from grain.services import rule_service
from grain.store import RecordStore

router = APIRouter(prefix="/api/rules", tags=["rules"])


class RuleIn(BaseModel):
    rule_type: Literal["ignore_merchant", "ignore_category", "threshold", "whitelist_subscription"]
    payload: Dict[str, Any] = Field(default_factory=dict)


class RuleToggleIn(BaseModel):
    enabled: bool


class RuleOut(BaseModel):
    id: str
    rule_type: str
    payload: Dict[str, Any]
    enabled: bool
    created_at: Optional[datetime] = None
    description: str


def _out(rule: RuleRecord) -> RuleOut:
    return RuleOut(
        id=rule.id,
        rule_type=rule.rule_type,
        payload=rule.payload,
        enabled=rule.enabled,
        created_at=rule.created_at,
        description=rule_service.describe_rule(rule.rule_type, rule.payload),
    )


@router.get("", response_model=List[RuleOut])
def list_rules(store: RecordStore = Depends(get_store)):
    return [_out(r) for r in rule_service.list_rules(store)]


@router.post("", response_model=RuleOut, status_code=201)
def create_rule(req: RuleIn, store: RecordStore = Depends(get_store)):
    with domain_errors():
        return _out(rule_service.create_rule(store, req.rule_type, req.payload))


@router.patch("/{rule_id}", response_model=RuleOut)
def toggle_rule(rule_id: str, req: RuleToggleIn, store: RecordStore = Depends(get_store)):
    with domain_errors():
        return _out(rule_service.toggle_rule(store, rule_id, req.enabled))


@router.delete("/{rule_id}", status_code=204)
def delete_rule(rule_id: str, store: RecordStore = Depends(get_store)):
    with domain_errors():
        rule_service.remove_rule(store, rule_id)

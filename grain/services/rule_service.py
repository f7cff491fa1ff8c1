from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, TypeVar

from grain.errors import InvalidRuleError
from grain.records import RuleRecord
from grain.store import RecordStore

logger = logging.getLogger(__name__)

RULE_TYPES = ("ignore_merchant", "ignore_category", "threshold", "whitelist_subscription")


class Suppressible(Protocol):
    type: str
    merchant: str
    impact: float
    details: Dict[str, Any]


C = TypeVar("C", bound=Suppressible)


def _lower(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).lower()


def _min_amount(payload: Mapping[str, Any]) -> float:
    raw = payload.get("minAmount", payload.get("min_amount"))
    try:
        return float(raw or 0)
    except (TypeError, ValueError):
        return 0.0


def rule_matches(card: Suppressible, rule: RuleRecord) -> bool:
    payload = rule.payload or {}
    if rule.rule_type == "ignore_merchant":
        return card.merchant.lower() == _lower(payload.get("merchant"))
    if rule.rule_type == "ignore_category":
        category = _lower((card.details or {}).get("category"))
        return category is not None and category == _lower(payload.get("category"))
    if rule.rule_type == "threshold":
        return abs(card.impact) < _min_amount(payload)
    if rule.rule_type == "whitelist_subscription":
        return card.type == "subscription" and card.merchant.lower() == _lower(payload.get("merchant"))
    return False


def apply_rules(cards: Sequence[C], rules: Sequence[RuleRecord]) -> List[C]:
    """
    Drop every card that any enabled rule matches.

    Rules never rewrite cards. There is no priority between rules; the first
    match suppresses the card. Unknown rule types never match.
    """
    active = [r for r in rules if r.enabled]
    for rule in active:
        if rule.rule_type not in RULE_TYPES:
            logger.warning("Rule %s has unknown type %r; it will never match", rule.id, rule.rule_type)
    if not active:
        return list(cards)
    return [card for card in cards if not any(rule_matches(card, rule) for rule in active)]


# -------------------------
# Rule management
# -------------------------

def validate_rule(rule_type: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
    if rule_type not in RULE_TYPES:
        raise InvalidRuleError(f"unknown rule type: {rule_type}")

    data = dict(payload or {})
    if rule_type in ("ignore_merchant", "whitelist_subscription"):
        if not str(data.get("merchant") or "").strip():
            raise InvalidRuleError(f"{rule_type} requires a merchant")
    elif rule_type == "ignore_category":
        if not str(data.get("category") or "").strip():
            raise InvalidRuleError("ignore_category requires a category")
    elif rule_type == "threshold":
        raw = data.pop("min_amount", None)
        if "minAmount" in data:
            raw = data["minAmount"]
        try:
            data["minAmount"] = float(raw)
        except (TypeError, ValueError) as exc:
            raise InvalidRuleError("threshold requires a numeric minAmount") from exc
        if data["minAmount"] < 0:
            raise InvalidRuleError("minAmount must be >= 0")
    return data


def describe_rule(rule_type: str, payload: Mapping[str, Any]) -> str:
    if rule_type == "ignore_merchant":
        return f"Ignore merchant: {payload.get('merchant')}"
    if rule_type == "ignore_category":
        return f"Ignore category: {payload.get('category')}"
    if rule_type == "threshold":
        return f"Ignore below ${_min_amount(payload):g}"
    if rule_type == "whitelist_subscription":
        return f"Whitelist subscription: {payload.get('merchant')}"
    return f"Rule created: {rule_type}"


def create_rule(store: RecordStore, rule_type: str, payload: Mapping[str, Any]) -> RuleRecord:
    data = validate_rule(rule_type, payload)
    with store.transaction():
        rule = store.insert_rule(rule_type, data)
        store.log_activity(
            "rule_created",
            describe_rule(rule_type, data),
            {"rule_id": rule.id, "rule_type": rule_type, "rule_json": data},
        )
    logger.info("Created %s rule %s", rule_type, rule.id)
    return rule


def toggle_rule(store: RecordStore, rule_id: str, enabled: bool) -> RuleRecord:
    with store.transaction():
        rule = store.set_rule_enabled(rule_id, enabled)
        store.log_activity(
            "rule_updated",
            f"Rule {rule_id} {'enabled' if enabled else 'disabled'}",
            {"rule_id": rule_id, "enabled": enabled},
        )
    return rule


def remove_rule(store: RecordStore, rule_id: str) -> None:
    with store.transaction():
        store.delete_rule(rule_id)
        store.log_activity("rule_deleted", f"Rule {rule_id} deleted", {"rule_id": rule_id})


def list_rules(store: RecordStore) -> List[RuleRecord]:
    return store.list_rules()

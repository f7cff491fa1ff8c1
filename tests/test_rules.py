from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

import pytest

from grain.errors import InvalidRuleError, RecordNotFoundError
from grain.records import RuleRecord
from grain.services import rule_service
from grain.services.rule_service import apply_rules, describe_rule, validate_rule


@dataclass
class Card:
    type: str
    merchant: str
    impact: float
    details: Dict[str, Any] = field(default_factory=dict)


def rule(rule_type: str, enabled: bool = True, **payload) -> RuleRecord:
    return RuleRecord(id=f"r_{rule_type}", rule_type=rule_type, payload=payload, enabled=enabled)


CARDS = [
    Card("subscription", "Netflix", -17.99, {"category": "Entertainment"}),
    Card("anomaly", "Starbucks", -47.50, {"category": "Coffee"}),
    Card("refund_pending", "Apple Store", -999.00, {"category": "Electronics"}),
    Card("price_increase", "Spotify", -2.00, {}),
]


def merchants(cards):
    return [c.merchant for c in cards]


# -------------------------
# Filtering
# -------------------------

def test_no_rules_keeps_everything():
    assert apply_rules(CARDS, []) == CARDS


def test_ignore_merchant_is_case_insensitive():
    kept = apply_rules(CARDS, [rule("ignore_merchant", merchant="STARBUCKS")])

    assert merchants(kept) == ["Netflix", "Apple Store", "Spotify"]


def test_ignore_category_skips_cards_without_one():
    kept = apply_rules(CARDS, [rule("ignore_category", category="electronics")])

    assert merchants(kept) == ["Netflix", "Starbucks", "Spotify"]


def test_threshold_uses_absolute_impact():
    kept = apply_rules(CARDS, [rule("threshold", minAmount=20)])

    assert merchants(kept) == ["Starbucks", "Apple Store"]


def test_threshold_accepts_snake_case_key():
    kept = apply_rules(CARDS, [rule("threshold", min_amount=50)])

    assert merchants(kept) == ["Apple Store"]


def test_whitelist_only_hides_subscription_cards():
    rules = [rule("whitelist_subscription", merchant="netflix"), rule("whitelist_subscription", merchant="Spotify")]

    assert merchants(apply_rules(CARDS, rules)) == ["Starbucks", "Apple Store", "Spotify"]


def test_disabled_and_unknown_rules_never_match():
    rules = [rule("ignore_merchant", enabled=False, merchant="Netflix"), rule("mystery", merchant="Netflix")]

    assert apply_rules(CARDS, rules) == CARDS


def test_rules_never_rewrite_cards():
    kept = apply_rules(CARDS, [rule("ignore_merchant", merchant="Spotify")])

    assert all(k is c for k, c in zip(kept, CARDS))


# -------------------------
# Validation and CRUD
# -------------------------

@pytest.mark.parametrize(
    "rule_type,payload",
    [
        ("bogus", {}),
        ("ignore_merchant", {}),
        ("ignore_category", {"category": "  "}),
        ("threshold", {"minAmount": "lots"}),
        ("threshold", {"minAmount": -1}),
    ],
)
def test_invalid_rules(rule_type, payload):
    with pytest.raises(InvalidRuleError):
        validate_rule(rule_type, payload)


def test_threshold_payload_is_normalized():
    assert validate_rule("threshold", {"min_amount": "25"}) == {"minAmount": 25.0}


def test_descriptions():
    assert describe_rule("threshold", {"minAmount": 50.0}) == "Ignore below $50"
    assert describe_rule("ignore_merchant", {"merchant": "Uber"}) == "Ignore merchant: Uber"


def test_rule_lifecycle_is_logged(store):
    created = rule_service.create_rule(store, "ignore_merchant", {"merchant": "Uber"})
    assert [r.id for r in store.get_active_rules()] == [created.id]

    disabled = rule_service.toggle_rule(store, created.id, False)
    assert disabled.enabled is False
    assert store.get_active_rules() == []
    assert [r.id for r in rule_service.list_rules(store)] == [created.id]

    rule_service.remove_rule(store, created.id)
    assert rule_service.list_rules(store) == []

    logged = {a.entry_type for a in store.list_activity()}
    assert logged == {"rule_created", "rule_updated", "rule_deleted"}


def test_unknown_rule_id(store):
    with pytest.raises(RecordNotFoundError):
        rule_service.toggle_rule(store, "nope", True)
    with pytest.raises(RecordNotFoundError):
        rule_service.remove_rule(store, "nope")

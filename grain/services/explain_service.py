from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from grain import config
from grain.clock import Clock
from grain.detectors.financial import (
    detect_anomalies,
    detect_pending_refunds,
    detect_price_increases,
    detect_subscriptions,
)
from grain.errors import InvalidPeriodError, RecordNotFoundError
from grain.records import EventRecord, EvidenceRecord, as_payload
from grain.services.diff_service import SUGGESTED_ACTIONS, DiffCard, category_by_merchant, period_bounds
from grain.services.rule_service import apply_rules
from grain.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BaselineComparison:
    current: float
    baseline: float
    change_pct: float
    period_label: str


@dataclass(frozen=True)
class Explanation:
    event: EventRecord
    explanation: str
    drivers: List[str]
    evidence: List[EvidenceRecord]
    baseline_comparison: Optional[BaselineComparison]
    confidence_statement: str


@dataclass(frozen=True)
class MonthlyAudit:
    month: str
    new_subscriptions: List[DiffCard] = field(default_factory=list)
    price_increases: List[DiffCard] = field(default_factory=list)
    refunds_pending: List[DiffCard] = field(default_factory=list)
    anomalies: List[DiffCard] = field(default_factory=list)
    total_leakage: float = 0.0


def _money(value: Any) -> str:
    try:
        return f"${float(value):.2f}"
    except (TypeError, ValueError):
        return "$?"


def _pct(value: Any) -> str:
    try:
        return f"{float(value):.1f}"
    except (TypeError, ValueError):
        return "?"


def _confidence(event: EventRecord) -> str:
    return f"Confidence {event.confidence * 100:.0f}%"


def explain_event(store: RecordStore, event_id: str) -> Explanation:
    """
    Say why a diff card exists: the pattern behind it, the numbers that
    drove it and the ledger rows it points at.
    """
    event = store.get_event(event_id)
    if event is None:
        raise RecordNotFoundError(f"event {event_id} not found")

    evidence = store.get_evidence_by_event(event_id)
    details: Dict[str, Any] = event.details or {}
    comparison: Optional[BaselineComparison] = None

    if event.type == "subscription":
        sub = details.get("subscription", details)
        occurrences = sub.get("occurrences") or []
        count = len(occurrences) if occurrences else "2+"
        explanation = (
            f'This card was generated because "{sub.get("merchant")}" appears as a recurring charge. '
            f"We found {count} transactions with consistent amounts (~{_money(sub.get('typical_amount'))}) "
            f"at regular intervals ({sub.get('estimated_period')})."
        )
        drivers = [
            f"Recurring pattern: {count} charges found",
            f"Amount consistency: ~{_money(sub.get('typical_amount'))}",
            f"Period: {sub.get('estimated_period')}",
            f"First seen: {sub.get('first_seen')}",
        ]
        reason = (
            "high regularity in timing and amounts"
            if event.confidence >= 0.7
            else "some variation in timing or amounts"
        )
        statement = f"{_confidence(event)}: {reason}"

    elif event.type == "price_increase":
        pi = details.get("price_increase", details)
        explanation = (
            f'This card was generated because the charge from "{pi.get("merchant")}" increased from '
            f"{_money(pi.get('previous_amount'))} to {_money(pi.get('current_amount'))} "
            f"(+{_pct(pi.get('increase_pct'))}%)."
        )
        drivers = [
            f"Previous average: {_money(pi.get('previous_amount'))}",
            f"Current charge: {_money(pi.get('current_amount'))}",
            f"Increase: +{_money(pi.get('increase_amount'))} (+{_pct(pi.get('increase_pct'))}%)",
        ]
        comparison = BaselineComparison(
            current=float(pi.get("current_amount") or 0),
            baseline=float(pi.get("previous_amount") or 0),
            change_pct=float(pi.get("increase_pct") or 0),
            period_label="vs previous period",
        )
        statement = f"{_confidence(event)}: based on comparing averages across periods"

    elif event.type == "refund_pending":
        rp = details.get("refund_pending", details)
        explanation = (
            f'A purchase of {_money(rp.get("purchase_amount"))} at "{rp.get("merchant")}" on '
            f"{rp.get('purchase_date')} has no matching refund after {rp.get('days_since_purchase')} days. "
            "This is a heuristic; the item may not need a refund."
        )
        drivers = [
            f"Purchase: {_money(rp.get('purchase_amount'))} on {rp.get('purchase_date')}",
            f"Days since purchase: {rp.get('days_since_purchase')}",
            "No matching refund/credit found",
        ]
        statement = (
            f"{_confidence(event)}: this is a heuristic guess. "
            'Mark as "ignore" if you intended to keep this purchase.'
        )

    elif event.type == "anomaly":
        an = details.get("anomaly", details)
        amount = float(an.get("amount") or 0)
        avg = float(an.get("baseline_avg") or 0)
        z = float(an.get("z_score") or 0)
        explanation = an.get("reason") or (
            f'This transaction is significantly higher than your usual spending at "{an.get("merchant")}".'
        )
        drivers = [
            f"Amount: {_money(amount)}",
            f"Your average: {_money(avg)}",
            f"Standard deviation: {_money(an.get('baseline_std_dev'))}",
            f"Z-score: {z:.1f} ({'very unusual' if z > 3 else 'unusual'})",
        ]
        comparison = BaselineComparison(
            current=amount,
            baseline=avg,
            change_pct=round((amount - avg) / avg * 100, 1) if avg else 0.0,
            period_label="vs your average",
        )
        statement = f"{_confidence(event)}: statistical outlier detection (z-score {z:.1f})"

    else:
        explanation = event.summary
        drivers = ["See transaction details"]
        statement = _confidence(event)

    return Explanation(
        event=event,
        explanation=explanation,
        drivers=drivers,
        evidence=evidence,
        baseline_comparison=comparison,
        confidence_statement=statement,
    )


def _audit_card(
    store: RecordStore,
    card_type: str,
    merchant: str,
    impact: float,
    confidence: float,
    summary: str,
    details: Dict[str, Any],
) -> DiffCard:
    # Audit cards are views, not detections; they carry no event.
    return DiffCard(
        id=store.ids(),
        event_id="",
        title=merchant,
        type=card_type,  # type: ignore[arg-type]
        impact=round(impact, 2),
        confidence=confidence,
        merchant=merchant,
        summary=summary,
        details=as_payload(details),
        suggested_actions=list(SUGGESTED_ACTIONS[card_type]),
    )


def _parse_month(month: str) -> date:
    try:
        year, mon = month.split("-")
        return date(int(year), int(mon), 15)
    except ValueError as exc:
        raise InvalidPeriodError(f"month must be YYYY-MM, got {month!r}") from exc


def monthly_audit(store: RecordStore, month: str, *, clock: Optional[Clock] = None) -> MonthlyAudit:
    clock = clock or store.clock
    bounds = period_bounds("monthly", _parse_month(month))

    current = store.get_transactions(bounds.start, bounds.end)
    prior = store.get_transactions(bounds.baseline_start, bounds.baseline_end)
    history = store.get_transactions()
    rules = store.get_active_rules()
    current_merchants = {t.merchant_key for t in current}
    by_id = {t.id: t for t in history}
    categories = category_by_merchant(history)

    subs = [
        _audit_card(
            store,
            "subscription",
            s.merchant,
            -s.typical_amount,
            s.confidence,
            f"${s.typical_amount:.2f}/{s.estimated_period}",
            {"subscription": s, "category": categories.get(s.merchant.lower())},
        )
        for s in detect_subscriptions(history)
        if s.merchant.lower() in current_merchants
    ]
    increases = [
        _audit_card(
            store,
            "price_increase",
            pi.merchant,
            -pi.increase_amount,
            pi.confidence,
            f"${pi.previous_amount:.2f} -> ${pi.current_amount:.2f} (+{pi.increase_pct:.1f}%)",
            {"price_increase": pi, "category": categories.get(pi.merchant.lower())},
        )
        for pi in detect_price_increases(current, prior)
    ]
    refunds = [
        _audit_card(
            store,
            "refund_pending",
            pr.merchant,
            -pr.purchase_amount,
            pr.confidence,
            f"${pr.purchase_amount:.2f}, no refund after {pr.days_since_purchase} days",
            {
                "refund_pending": pr,
                "category": by_id[pr.transaction_id].category if pr.transaction_id in by_id else None,
            },
        )
        for pr in detect_pending_refunds(
            history,
            today=clock.today(),
            refund_threshold_days=config.refund_threshold_days(),
            min_amount=config.refund_min_amount(),
        )
        if pr.purchase_date <= bounds.end
    ]
    anomalies = [
        _audit_card(
            store,
            "anomaly",
            a.merchant,
            -a.amount,
            a.confidence,
            a.reason,
            {"anomaly": a, "category": a.category},
        )
        for a in detect_anomalies(current, history)
    ]

    # Leakage counts every detected recurring/price/refund card, before rules.
    leakage = sum(abs(c.impact) for c in subs + increases + refunds)

    logger.info(
        "Monthly audit %s: %d subscriptions, %d price increases, %d refunds, %d anomalies",
        month,
        len(subs),
        len(increases),
        len(refunds),
        len(anomalies),
    )
    return MonthlyAudit(
        month=month,
        new_subscriptions=apply_rules(subs, rules),
        price_increases=apply_rules(increases, rules),
        refunds_pending=apply_rules(refunds, rules),
        anomalies=apply_rules(anomalies, rules),
        total_leakage=round(leakage, 2),
    )

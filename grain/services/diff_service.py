"""
Diff Assembler.

Builds a financial "diff" for a day, week or month: runs the four ledger
detectors against the period and the period before it, turns candidates
into cards, records a detection event plus evidence for every card, filters
the cards through the user's rules and persists the result.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Literal, Optional, Sequence

from grain import config
from grain.clock import Clock
from grain.detectors.financial import (
    detect_anomalies,
    detect_pending_refunds,
    detect_price_increases,
    detect_subscriptions,
)
from grain.errors import InvalidPeriodError
from grain.models import Diff
from grain.records import LedgerRecord, as_payload
from grain.services.rule_service import apply_rules
from grain.store import RecordStore

logger = logging.getLogger(__name__)

PeriodType = Literal["daily", "weekly", "monthly"]
PERIOD_TYPES = ("daily", "weekly", "monthly")

CardType = Literal["subscription", "price_increase", "refund_pending", "anomaly", "spending_summary"]

SUGGESTED_ACTIONS: Dict[str, List[str]] = {
    "subscription": ["mark_ignore", "create_reminder"],
    "price_increase": ["draft_email", "create_reminder"],
    "refund_pending": ["draft_email", "mark_ignore"],
    "anomaly": ["mark_ignore"],
    "spending_summary": [],
}


@dataclass(frozen=True)
class PeriodBounds:
    start: date
    end: date
    baseline_start: date
    baseline_end: date
    label: str


@dataclass(frozen=True)
class DiffCard:
    id: str
    event_id: str
    title: str
    type: CardType
    impact: float
    confidence: float
    merchant: str
    summary: str
    details: Dict[str, Any] = field(default_factory=dict)
    evidence_ids: List[str] = field(default_factory=list)
    suggested_actions: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DiffReport:
    id: str
    period_type: str
    period_start: date
    period_end: date
    summary: str
    cards: List[DiffCard]
    total_spent: float
    baseline_spent: float
    change_pct: float


def _month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def period_bounds(period_type: str, ref: date) -> PeriodBounds:
    if period_type == "daily":
        prev = ref - timedelta(days=1)
        return PeriodBounds(ref, ref, prev, prev, f"{ref:%b} {ref.day}, {ref.year}")

    if period_type == "weekly":
        start = ref - timedelta(days=ref.weekday())
        return PeriodBounds(
            start,
            start + timedelta(days=6),
            start - timedelta(days=7),
            start - timedelta(days=1),
            f"Week of {start:%b} {start.day}",
        )

    if period_type == "monthly":
        start, end = _month_bounds(ref.year, ref.month)
        prev_last = start - timedelta(days=1)
        baseline_start, baseline_end = _month_bounds(prev_last.year, prev_last.month)
        return PeriodBounds(start, end, baseline_start, baseline_end, f"{ref:%B %Y}")

    raise InvalidPeriodError(f"unknown period type: {period_type}")


def _spent(txns: Sequence[LedgerRecord]) -> float:
    return sum(abs(t.amount) for t in txns)


def category_by_merchant(txns: Sequence[LedgerRecord]) -> Dict[str, str]:
    # Latest categorised record wins.
    categories: Dict[str, str] = {}
    for txn in sorted(txns, key=lambda t: t.date):
        if txn.category:
            categories[txn.merchant_key] = txn.category
    return categories


class _CardBuilder:
    """Writes the detection event and evidence behind each card."""

    def __init__(self, store: RecordStore, clock: Clock):
        self.store = store
        self.clock = clock

    def detection(
        self,
        event_type: str,
        summary: str,
        details: Dict[str, Any],
        confidence: float,
        related: Sequence[LedgerRecord],
    ) -> tuple[str, List[str]]:
        event = self.store.insert_event(
            event_type, self.clock.now(), summary, details, confidence, derived=True
        )
        evidence_ids = [
            self.store.insert_evidence(
                event.id,
                "csv_row",
                txn.source_ref or "",
                f"{txn.date.isoformat()} | {txn.merchant} | ${abs(txn.amount):.2f}",
                txn.content_hash,
            ).id
            for txn in related
        ]
        return event.id, evidence_ids

    def card(
        self,
        *,
        card_type: CardType,
        event_summary: str,
        title: str,
        summary: str,
        impact: float,
        confidence: float,
        merchant: str,
        details: Dict[str, Any],
        related: Sequence[LedgerRecord],
    ) -> DiffCard:
        payload = as_payload(details)
        event_id, evidence_ids = self.detection(
            card_type, event_summary, payload, confidence, related
        )
        return DiffCard(
            id=self.store.ids(),
            event_id=event_id,
            title=title,
            type=card_type,
            impact=round(impact, 2),
            confidence=confidence,
            merchant=merchant,
            summary=summary,
            details=payload,
            evidence_ids=evidence_ids,
            suggested_actions=list(SUGGESTED_ACTIONS[card_type]),
        )


def generate_diff(
    store: RecordStore,
    period_type: str,
    ref_date: date,
    *,
    clock: Optional[Clock] = None,
) -> DiffReport:
    clock = clock or store.clock
    bounds = period_bounds(period_type, ref_date)

    current = store.get_transactions(bounds.start, bounds.end)
    prior = store.get_transactions(bounds.baseline_start, bounds.baseline_end)
    history = store.get_transactions()
    rules = store.get_active_rules()

    total_spent = _spent(current)
    baseline_spent = _spent(prior)
    change_pct = (total_spent - baseline_spent) / baseline_spent * 100 if baseline_spent > 0 else 0.0

    current_merchants = {t.merchant_key for t in current}
    prior_merchants = {t.merchant_key for t in prior}
    categories = category_by_merchant(history)

    def for_merchant(merchant: str) -> List[LedgerRecord]:
        return [t for t in current if t.merchant_key == merchant.lower()]

    with store.transaction():
        builder = _CardBuilder(store, clock)
        cards: List[DiffCard] = []

        subscriptions = [s for s in detect_subscriptions(history) if s.merchant.lower() in current_merchants]
        carded: set[str] = set()

        for sub in subscriptions:
            key = sub.merchant.lower()
            if key in prior_merchants or len(sub.occurrences) > 3:
                continue
            cards.append(
                builder.card(
                    card_type="subscription",
                    event_summary=f"New subscription detected: {sub.merchant}",
                    title=f"New: {sub.merchant}",
                    summary=f"Recurring charge of ${sub.typical_amount:.2f}/{sub.estimated_period}",
                    impact=-sub.typical_amount,
                    confidence=sub.confidence,
                    merchant=sub.merchant,
                    details={"subscription": sub, "category": categories.get(key)},
                    related=for_merchant(sub.merchant),
                )
            )
            carded.add(key)

        # Established subscriptions are only worth a card on the monthly view.
        if period_type == "monthly":
            for sub in subscriptions:
                key = sub.merchant.lower()
                if key in carded or sub.confidence < 0.6:
                    continue
                cards.append(
                    builder.card(
                        card_type="subscription",
                        event_summary=f"Active subscription: {sub.merchant}",
                        title=f"Subscription: {sub.merchant}",
                        summary=(
                            f"${sub.typical_amount:.2f}/{sub.estimated_period}, "
                            f"active since {sub.first_seen.isoformat()}"
                        ),
                        impact=-sub.typical_amount,
                        confidence=sub.confidence,
                        merchant=sub.merchant,
                        details={"subscription": sub, "category": categories.get(key)},
                        related=for_merchant(sub.merchant),
                    )
                )
                carded.add(key)

        for pi in detect_price_increases(current, prior):
            cards.append(
                builder.card(
                    card_type="price_increase",
                    event_summary=f"Price increase: {pi.merchant} (+${pi.increase_amount:.2f})",
                    title=f"Price up: {pi.merchant}",
                    summary=(
                        f"${pi.previous_amount:.2f} -> ${pi.current_amount:.2f} "
                        f"(+{pi.increase_pct:.1f}%)"
                    ),
                    impact=-pi.increase_amount,
                    confidence=pi.confidence,
                    merchant=pi.merchant,
                    details={"price_increase": pi, "category": categories.get(pi.merchant.lower())},
                    related=for_merchant(pi.merchant),
                )
            )

        by_id = {t.id: t for t in history}
        refunds = detect_pending_refunds(
            history,
            today=clock.today(),
            refund_threshold_days=config.refund_threshold_days(),
            min_amount=config.refund_min_amount(),
        )
        for pr in refunds:
            if pr.purchase_date > bounds.end:
                continue
            purchase = by_id.get(pr.transaction_id)
            cards.append(
                builder.card(
                    card_type="refund_pending",
                    event_summary=f"Possible missing refund: {pr.merchant} (${pr.purchase_amount:.2f})",
                    title=f"Refund? {pr.merchant}",
                    summary=(
                        f"${pr.purchase_amount:.2f} purchase on {pr.purchase_date.isoformat()}, "
                        f"no refund found ({pr.days_since_purchase} days)"
                    ),
                    impact=-pr.purchase_amount,
                    confidence=pr.confidence,
                    merchant=pr.merchant,
                    details={
                        "refund_pending": pr,
                        "category": purchase.category if purchase else None,
                    },
                    related=[purchase] if purchase else [],
                )
            )

        current_by_id = {t.id: t for t in current}
        for anomaly in detect_anomalies(current, history):
            txn = current_by_id.get(anomaly.transaction_id)
            cards.append(
                builder.card(
                    card_type="anomaly",
                    event_summary=anomaly.reason,
                    title=f"Unusual: {anomaly.merchant}",
                    summary=anomaly.reason,
                    impact=-anomaly.amount,
                    confidence=anomaly.confidence,
                    merchant=anomaly.merchant,
                    details={"anomaly": anomaly, "category": anomaly.category},
                    related=[txn] if txn else [],
                )
            )

        if current:
            if baseline_spent > 0:
                sign = "+" if change_pct >= 0 else ""
                summary_text = f"{sign}{change_pct:.1f}% vs previous period (${baseline_spent:.2f})"
            else:
                summary_text = f"{len(current)} transactions"
            totals = {
                "total_spent": round(total_spent, 2),
                "baseline_spent": round(baseline_spent, 2),
                "change_pct": round(change_pct, 1),
                "count": len(current),
            }
            cards.insert(
                0,
                builder.card(
                    card_type="spending_summary",
                    event_summary=f"Period spending: ${total_spent:.2f}",
                    title=f"Total: ${total_spent:.2f}",
                    summary=summary_text,
                    impact=-(total_spent - baseline_spent),
                    confidence=1.0,
                    merchant="",
                    details=totals,
                    related=[],
                ),
            )

        filtered = apply_rules(cards, rules)
        findings = sum(1 for c in filtered if c.type != "spending_summary")
        summary = f"{bounds.label}: ${total_spent:.2f} ({findings} findings)"

        diff_id = store.insert_diff(
            period_type=period_type,
            period_start=bounds.start,
            period_end=bounds.end,
            summary=summary,
            cards=[as_payload(c) for c in filtered],
            total_spent=round(total_spent, 2),
            baseline_spent=round(baseline_spent, 2),
            change_pct=round(change_pct, 1),
        )
        store.log_activity(
            "diff_generated",
            summary,
            {
                "period_type": period_type,
                "period_start": bounds.start,
                "period_end": bounds.end,
                "card_count": len(filtered),
            },
        )

    logger.info(
        "Generated %s diff %s for %s..%s: %d cards (%d suppressed by rules)",
        period_type,
        diff_id,
        bounds.start,
        bounds.end,
        len(filtered),
        len(cards) - len(filtered),
    )
    return DiffReport(
        id=diff_id,
        period_type=period_type,
        period_start=bounds.start,
        period_end=bounds.end,
        summary=summary,
        cards=filtered,
        total_spent=round(total_spent, 2),
        baseline_spent=round(baseline_spent, 2),
        change_pct=round(change_pct, 1),
    )


def _report(row: Diff) -> DiffReport:
    return DiffReport(
        id=row.id,
        period_type=row.period_type,
        period_start=row.period_start,
        period_end=row.period_end,
        summary=row.diff_summary,
        cards=[DiffCard(**card) for card in (row.diff_json or [])],
        total_spent=float(row.total_spent or 0),
        baseline_spent=float(row.baseline_spent or 0),
        change_pct=float(row.change_pct or 0),
    )


def list_diffs(store: RecordStore, period_type: Optional[str] = None) -> List[DiffReport]:
    if period_type is not None and period_type not in PERIOD_TYPES:
        raise InvalidPeriodError(f"unknown period type: {period_type}")
    return [_report(row) for row in store.list_diffs(period_type)]


def get_diff(store: RecordStore, diff_id: str) -> DiffReport:
    return _report(store.get_diff(diff_id))

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Literal, Optional

from grain.records import LedgerRecord
from grain.stats import baseline, mean, pstdev

Period = Literal["monthly", "annual", "unknown"]


@dataclass(frozen=True)
class Occurrence:
    date: date
    amount: float


@dataclass(frozen=True)
class SubscriptionCandidate:
    merchant: str
    occurrences: List[Occurrence]
    estimated_period: Period
    typical_amount: float
    confidence: float
    first_seen: date
    last_seen: date
    amount_consistency: float
    interval_mean_days: float
    interval_std_days: float


@dataclass(frozen=True)
class PriceIncreaseCandidate:
    merchant: str
    previous_amount: float
    current_amount: float
    increase_amount: float
    increase_pct: float
    previous_date: date
    current_date: date
    baseline_count: int
    current_count: int
    confidence: float


@dataclass(frozen=True)
class PendingRefundCandidate:
    merchant: str
    purchase_amount: float
    purchase_date: date
    days_since_purchase: int
    transaction_id: str
    confidence: float


@dataclass(frozen=True)
class AnomalyCandidate:
    merchant: str
    amount: float
    date: date
    transaction_id: str
    baseline_avg: float
    baseline_std_dev: float
    z_score: float
    confidence: float
    level: Literal["merchant", "category"]
    category: Optional[str]
    reason: str


@dataclass
class _MerchantTotals:
    total: float = 0.0
    count: int = 0
    last_date: Optional[date] = None

    def add(self, txn: LedgerRecord) -> None:
        self.total += abs(txn.amount)
        self.count += 1
        if self.last_date is None or txn.date > self.last_date:
            self.last_date = txn.date

    @property
    def average(self) -> float:
        return self.total / self.count if self.count else 0.0


def _by_merchant(txns: Iterable[LedgerRecord]) -> Dict[str, List[LedgerRecord]]:
    groups: Dict[str, List[LedgerRecord]] = defaultdict(list)
    for txn in txns:
        groups[txn.merchant_key].append(txn)
    return dict(groups)


def _totals_by_merchant(txns: Iterable[LedgerRecord]) -> Dict[str, _MerchantTotals]:
    totals: Dict[str, _MerchantTotals] = defaultdict(_MerchantTotals)
    for txn in txns:
        totals[txn.merchant_key].add(txn)
    return dict(totals)


def _classify_period(interval_mean: float) -> Period:
    if 25 <= interval_mean <= 35:
        return "monthly"
    if 350 <= interval_mean <= 380:
        return "annual"
    return "unknown"


# -------------------------
# Subscriptions
# -------------------------

def detect_subscriptions(txns: List[LedgerRecord]) -> List[SubscriptionCandidate]:
    """
    Recurring expense charges: same merchant, similar amount, regular spacing.

    Confidence is additive (amount consistency, known period, interval
    regularity, occurrence count); candidates under 0.40 are dropped.
    """
    candidates: List[SubscriptionCandidate] = []

    for group in _by_merchant(t for t in txns if t.is_expense).values():
        if len(group) < 2:
            continue

        ordered = sorted(group, key=lambda t: t.date)
        amounts = [abs(t.amount) for t in ordered]
        avg_amount = mean(amounts)
        amount_std = pstdev(amounts)
        amount_consistency = 1 - min(amount_std / avg_amount, 1) if avg_amount > 0 else 0.0

        intervals = [
            float((ordered[i].date - ordered[i - 1].date).days) for i in range(1, len(ordered))
        ]
        interval_mean = mean(intervals)
        interval_std = pstdev(intervals)
        period = _classify_period(interval_mean)

        confidence = 0.0
        if amount_consistency > 0.85:
            confidence += 0.30
        elif amount_consistency > 0.70:
            confidence += 0.15
        if period != "unknown":
            confidence += 0.30
        if interval_std < 5:
            confidence += 0.20
        elif interval_std < 10:
            confidence += 0.10
        if len(ordered) >= 3:
            confidence += 0.20
        else:
            confidence += 0.10

        confidence = round(confidence, 2)
        if confidence < 0.40:
            continue

        candidates.append(
            SubscriptionCandidate(
                merchant=ordered[0].merchant,
                occurrences=[Occurrence(date=t.date, amount=abs(t.amount)) for t in ordered],
                estimated_period=period,
                typical_amount=round(avg_amount, 2),
                confidence=min(confidence, 1.0),
                first_seen=ordered[0].date,
                last_seen=ordered[-1].date,
                amount_consistency=round(amount_consistency, 4),
                interval_mean_days=round(interval_mean, 2),
                interval_std_days=round(interval_std, 2),
            )
        )

    return sorted(candidates, key=lambda c: c.confidence, reverse=True)


# -------------------------
# Price increases
# -------------------------

def detect_price_increases(
    current_txns: List[LedgerRecord],
    baseline_txns: List[LedgerRecord],
    *,
    min_increase_pct: float = 5.0,
    min_increase_amount: float = 0.50,
) -> List[PriceIncreaseCandidate]:
    baseline_totals = _totals_by_merchant(baseline_txns)
    current_totals = _totals_by_merchant(current_txns)

    labels: Dict[str, str] = {}
    for txn in current_txns:
        labels.setdefault(txn.merchant_key, txn.merchant)

    results: List[PriceIncreaseCandidate] = []
    for merchant_key, current in current_totals.items():
        prior = baseline_totals.get(merchant_key)
        if prior is None or prior.count == 0:
            continue

        current_avg = current.average
        baseline_avg = prior.average
        if baseline_avg <= 0 or current_avg <= baseline_avg:
            continue

        increase = current_avg - baseline_avg
        increase_pct = increase / baseline_avg * 100.0
        if increase_pct < min_increase_pct or increase < min_increase_amount:
            continue

        confidence = 0.5
        if increase_pct > 20:
            confidence += 0.2
        elif increase_pct > 10:
            confidence += 0.1
        if prior.count >= 2 and current.count >= 1:
            confidence += 0.2
        if increase > 5:
            confidence += 0.1

        results.append(
            PriceIncreaseCandidate(
                merchant=labels.get(merchant_key, merchant_key),
                previous_amount=round(baseline_avg, 2),
                current_amount=round(current_avg, 2),
                increase_amount=round(increase, 2),
                increase_pct=round(increase_pct, 1),
                previous_date=prior.last_date,
                current_date=current.last_date,
                baseline_count=prior.count,
                current_count=current.count,
                confidence=round(min(confidence, 1.0), 2),
            )
        )

    return sorted(results, key=lambda c: c.increase_amount, reverse=True)


# -------------------------
# Pending refunds
# -------------------------

def detect_pending_refunds(
    txns: List[LedgerRecord],
    *,
    today: date,
    refund_threshold_days: int = 30,
    min_amount: float = 50.0,
) -> List[PendingRefundCandidate]:
    """
    Large purchases with no matching credit from the same merchant.

    A credit matches when it is dated on/after the purchase and its amount
    is within $1 of the purchase. This is a heuristic: plenty of purchases
    are never meant to be refunded, which is why confidence starts low.
    """
    results: List[PendingRefundCandidate] = []

    for group in _by_merchant(txns).values():
        purchases = [t for t in group if t.amount < 0 and abs(t.amount) >= min_amount]
        credits = [t for t in group if t.amount > 0]

        for purchase in purchases:
            days_since = (today - purchase.date).days
            if days_since < refund_threshold_days:
                continue

            purchase_amount = abs(purchase.amount)
            refunded = any(
                credit.date >= purchase.date and abs(credit.amount - purchase_amount) < 1
                for credit in credits
            )
            if refunded:
                continue

            confidence = 0.3
            if days_since > 60:
                confidence += 0.1
            if purchase_amount > 200:
                confidence += 0.1

            results.append(
                PendingRefundCandidate(
                    merchant=purchase.merchant,
                    purchase_amount=purchase_amount,
                    purchase_date=purchase.date,
                    days_since_purchase=days_since,
                    transaction_id=purchase.id,
                    confidence=round(min(confidence, 1.0), 2),
                )
            )

    return sorted(results, key=lambda c: c.purchase_amount, reverse=True)


# -------------------------
# Anomalies
# -------------------------

def detect_anomalies(
    current_txns: List[LedgerRecord],
    historical_txns: List[LedgerRecord],
    *,
    merchant_min_samples: int = 3,
    merchant_z_threshold: float = 2.0,
    category_min_samples: int = 5,
    category_z_threshold: float = 2.5,
) -> List[AnomalyCandidate]:
    """
    Z-score outliers against merchant history, falling back to category.

    A record is flagged at most once; the merchant-level check wins.
    """
    merchant_amounts: Dict[str, List[float]] = defaultdict(list)
    category_amounts: Dict[str, List[float]] = defaultdict(list)
    for txn in historical_txns:
        merchant_amounts[txn.merchant_key].append(abs(txn.amount))
        if txn.category:
            category_amounts[txn.category.lower()].append(abs(txn.amount))

    merchant_baselines = {k: baseline(v) for k, v in merchant_amounts.items()}
    category_baselines = {k: baseline(v) for k, v in category_amounts.items()}

    results: List[AnomalyCandidate] = []
    for txn in current_txns:
        amount = abs(txn.amount)

        stats = merchant_baselines.get(txn.merchant_key)
        if stats and stats.count >= merchant_min_samples and stats.std_dev > 0:
            z = stats.z_score(amount)
            if z > merchant_z_threshold:
                results.append(
                    AnomalyCandidate(
                        merchant=txn.merchant,
                        amount=amount,
                        date=txn.date,
                        transaction_id=txn.id,
                        baseline_avg=round(stats.mean, 2),
                        baseline_std_dev=round(stats.std_dev, 2),
                        z_score=round(z, 2),
                        confidence=round(min(0.5 + (z - 2) * 0.15, 0.95), 2),
                        level="merchant",
                        category=txn.category,
                        reason=(
                            f"{txn.merchant}: ${amount:.2f} is {z:.1f} std devs "
                            f"above average (${stats.mean:.2f})"
                        ),
                    )
                )
                continue

        if not txn.category:
            continue
        stats = category_baselines.get(txn.category.lower())
        if stats and stats.count >= category_min_samples and stats.std_dev > 0:
            z = stats.z_score(amount)
            if z > category_z_threshold:
                results.append(
                    AnomalyCandidate(
                        merchant=txn.merchant,
                        amount=amount,
                        date=txn.date,
                        transaction_id=txn.id,
                        baseline_avg=round(stats.mean, 2),
                        baseline_std_dev=round(stats.std_dev, 2),
                        z_score=round(z, 2),
                        confidence=round(min(0.4 + (z - 2.5) * 0.15, 0.90), 2),
                        level="category",
                        category=txn.category,
                        reason=(
                            f"{txn.merchant}: ${amount:.2f} in {txn.category} is {z:.1f} "
                            f"std devs above category avg (${stats.mean:.2f})"
                        ),
                    )
                )

    return sorted(results, key=lambda c: c.z_score, reverse=True)

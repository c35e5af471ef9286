# ledgerhound/detection.py
from __future__ import annotations

import logging
import sqlite3
from datetime import date, timedelta
from typing import Collection, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from ledgerhound import database
from ledgerhound.core.models import Frequency, SubscriptionCandidate

logger = logging.getLogger(__name__)

MIN_OCCURRENCES = 2
MIN_CONFIDENCE = 0.6

# Inclusive mean-interval ranges in days.
_FREQUENCY_RANGES = (
    (Frequency.WEEKLY, 6, 8),
    (Frequency.BIWEEKLY, 12, 16),
    (Frequency.MONTHLY, 25, 35),
    (Frequency.YEARLY, 355, 375),
)

Occurrence = Tuple[int, str]
BucketKey = Tuple[str, int]


def normalize_payee(payee: str) -> str:
    """Lower-case, drop everything but letters and whitespace, keep three words."""
    kept = "".join(ch for ch in payee.lower() if ch.isalpha() or ch.isspace())
    return " ".join(kept.split()[:3])


def group_expenses(
    expenses: Iterable[Tuple[int, str, int, str]],
    excluded: Collection[BucketKey] = (),
) -> Dict[BucketKey, List[Occurrence]]:
    """Bucket ``(id, payee, amount, date)`` rows by normalized payee and amount.

    Buckets already saved as subscriptions and buckets with a single
    occurrence are left out.
    """
    frame = pd.DataFrame(list(expenses), columns=["id", "payee", "amount", "date"])
    if frame.empty:
        return {}
    frame["pattern"] = frame["payee"].map(normalize_payee)

    buckets: Dict[BucketKey, List[Occurrence]] = {}
    for (pattern, amount), group in frame.groupby(["pattern", "amount"], sort=False):
        key = (pattern, int(amount))
        if key in excluded:
            logger.debug("Skipping %r, already saved as a subscription", key)
            continue
        if len(group) < MIN_OCCURRENCES:
            continue
        buckets[key] = [(int(i), str(d)) for i, d in zip(group["id"], group["date"])]
    return buckets


def calculate_intervals(dates: Sequence[str]) -> List[int]:
    """Day gaps between consecutive dates, after sorting ascending.

    Same-day repeats and pairs involving an unparseable date produce no
    interval.
    """
    ordered = pd.Series(sorted(dates), dtype="object")
    parsed = pd.to_datetime(ordered, format="%Y-%m-%d", errors="coerce")
    gaps = parsed.diff().dt.days.dropna()
    return [int(days) for days in gaps if days > 0]


def classify_intervals(intervals: Sequence[int]) -> Optional[Tuple[Frequency, float]]:
    """Map a list of intervals to a frequency and a confidence in [0, 1].

    The mean picks the frequency; the population standard deviation relative
    to the frequency's reference period lowers the confidence.
    """
    if not intervals:
        return None

    series = pd.Series(intervals, dtype="float64")
    mean = float(series.mean())
    std = float(series.std(ddof=0))

    for frequency, low, high in _FREQUENCY_RANGES:
        if low <= mean <= high:
            break
    else:
        return None

    confidence = 1.0 - std / frequency.period_days
    return frequency, min(max(confidence, 0.0), 1.0)


def predict_next_date(last_date: str, frequency: Frequency) -> Optional[str]:
    """Add the frequency's fixed day offset. Month lengths are not modelled."""
    try:
        parsed = date.fromisoformat(last_date)
    except (TypeError, ValueError):
        return None
    return (parsed + timedelta(days=frequency.period_days)).isoformat()


def find_candidates(
    account_id: int,
    expenses: Iterable[Tuple[int, str, int, str]],
    excluded: Collection[BucketKey] = (),
    min_confidence: float = MIN_CONFIDENCE,
) -> List[SubscriptionCandidate]:
    candidates: List[SubscriptionCandidate] = []
    for (pattern, amount), occurrences in group_expenses(expenses, excluded).items():
        occurrences.sort(key=lambda occ: occ[1])
        intervals = calculate_intervals([d for _, d in occurrences])

        classified = classify_intervals(intervals)
        if classified is None:
            continue
        frequency, confidence = classified
        if confidence < min_confidence:
            logger.debug(
                "%r looks %s but confidence %.2f is below %.2f",
                pattern, frequency.value, confidence, min_confidence,
            )
            continue

        last_date = occurrences[-1][1]
        candidates.append(
            SubscriptionCandidate(
                account_id=account_id,
                payee_pattern=pattern,
                amount=amount,
                frequency=frequency,
                last_charge_date=last_date,
                next_charge_date=predict_next_date(last_date, frequency),
                confidence=confidence,
                transaction_ids=[tx_id for tx_id, _ in occurrences],
            )
        )

    candidates.sort(key=lambda c: c.confidence, reverse=True)
    return candidates


def detect_subscriptions(
    conn: sqlite3.Connection,
    account_id: int,
    min_confidence: float = MIN_CONFIDENCE,
) -> List[SubscriptionCandidate]:
    """Detect recurring expenses for one account.

    Reads the account's expenses and its active saved subscriptions through
    *conn*; nothing is written.
    """
    excluded = database.get_saved_subscription_patterns(conn, account_id)
    expenses = database.get_expenses_by_account(conn, account_id)
    candidates = find_candidates(account_id, expenses, excluded, min_confidence)
    logger.info(
        "Account %s: %d expenses, %d subscription candidates",
        account_id, len(expenses), len(candidates),
    )
    return candidates

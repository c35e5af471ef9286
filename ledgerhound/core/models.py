# ledgerhound/core/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Frequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @property
    def period_days(self) -> int:
        """Reference period used for scoring and for predicting the next charge."""
        return _PERIOD_DAYS[self]


_PERIOD_DAYS = {
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 14,
    Frequency.MONTHLY: 30,
    Frequency.YEARLY: 365,
}


@dataclass
class Account:
    name: str
    account_number: Optional[str] = None
    currency: str = "DKK"
    id: Optional[int] = None


@dataclass
class Category:
    name: str
    parent_id: Optional[int] = None
    id: Optional[int] = None


@dataclass
class Transaction:
    account_id: int
    date: str
    payee: str
    amount: int
    category_id: Optional[int] = None
    balance_snapshot: Optional[int] = None
    status: Optional[str] = None
    is_reconciled: bool = False
    import_hash: Optional[str] = None
    id: Optional[int] = None


@dataclass
class ImportResult:
    total_rows: int = 0
    imported: int = 0
    skipped_duplicates: int = 0


@dataclass
class SubscriptionCandidate:
    account_id: int
    payee_pattern: str
    amount: int
    frequency: Frequency
    last_charge_date: Optional[str]
    next_charge_date: Optional[str]
    confidence: float
    transaction_ids: List[int] = field(default_factory=list)
    is_active: bool = True
    category_id: Optional[int] = None
    id: Optional[int] = None

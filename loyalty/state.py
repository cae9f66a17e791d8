"""
Persisted per-client loyalty state.

ClientLoyaltyState is the single document the engine reads and writes for
a client. Its history sequences are append-only HistoryLog instances that
expose log-style reads (latest-N, by month, DataFrame view).
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, TypeVar

import pandas as pd

from .config import Tier
from .schemas import MONTHLY_HISTORY_SCHEMA, PROTECTION_HISTORY_SCHEMA


def _dt_out(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_in(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _tier_in(value) -> Optional[Tier]:
    if value is None or value == "none":
        return None
    return Tier.parse(value)


@dataclass
class ProtectionBalance:
    """Banked protection: which tier it shields, whole months, and leftover points."""

    protection_type: Optional[Tier] = None  # None = "none"
    months: int = 0
    points: int = 0

    def to_dict(self) -> dict:
        return {
            "protection_type": self.protection_type.value if self.protection_type else "none",
            "months": self.months,
            "points": self.points,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProtectionBalance":
        return cls(
            protection_type=_tier_in(data.get("protection_type")),
            months=int(data.get("months", 0)),
            points=int(data.get("points", 0)),
        )


@dataclass
class MonthlyRecord:
    month: str
    tier: Tier
    units: int
    price_per_unit: float
    total_billed: float
    protection_awarded: bool
    protection_used: bool
    recorded_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "month": self.month,
            "tier": self.tier.value,
            "units": self.units,
            "price_per_unit": self.price_per_unit,
            "total_billed": self.total_billed,
            "protection_awarded": self.protection_awarded,
            "protection_used": self.protection_used,
            "recorded_at": _dt_out(self.recorded_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MonthlyRecord":
        return cls(
            month=data["month"],
            tier=Tier.parse(data["tier"]),
            units=int(data["units"]),
            price_per_unit=float(data["price_per_unit"]),
            total_billed=float(data["total_billed"]),
            protection_awarded=bool(data["protection_awarded"]),
            protection_used=bool(data["protection_used"]),
            recorded_at=_dt_in(data.get("recorded_at")),
        )


@dataclass
class ProtectionRecord:
    month: str
    tier: Tier  # tier the points were earned against
    units_submitted: int
    tier_minimum: int
    points_earned: int
    points_balance_after: int
    protection_awarded: bool
    protection_used: bool

    def to_dict(self) -> dict:
        return {
            "month": self.month,
            "tier": self.tier.value,
            "units_submitted": self.units_submitted,
            "tier_minimum": self.tier_minimum,
            "points_earned": self.points_earned,
            "points_balance_after": self.points_balance_after,
            "protection_awarded": self.protection_awarded,
            "protection_used": self.protection_used,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProtectionRecord":
        return cls(
            month=data["month"],
            tier=Tier.parse(data["tier"]),
            units_submitted=int(data["units_submitted"]),
            tier_minimum=int(data["tier_minimum"]),
            points_earned=int(data["points_earned"]),
            points_balance_after=int(data["points_balance_after"]),
            protection_awarded=bool(data["protection_awarded"]),
            protection_used=bool(data["protection_used"]),
        )


@dataclass
class CashbackAward:
    from_tier: Tier
    to_tier: Tier
    awarded_at: datetime
    amount: float

    def to_dict(self) -> dict:
        return {
            "from_tier": self.from_tier.value,
            "to_tier": self.to_tier.value,
            "awarded_at": _dt_out(self.awarded_at),
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CashbackAward":
        return cls(
            from_tier=Tier.parse(data["from_tier"]),
            to_tier=Tier.parse(data["to_tier"]),
            awarded_at=_dt_in(data["awarded_at"]),
            amount=float(data["amount"]),
        )


@dataclass
class CashbackRedemption:
    amount: float
    reference: Optional[str]
    applied_at: datetime

    def to_dict(self) -> dict:
        return {
            "amount": self.amount,
            "reference": self.reference,
            "applied_at": _dt_out(self.applied_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CashbackRedemption":
        return cls(
            amount=float(data["amount"]),
            reference=data.get("reference"),
            applied_at=_dt_in(data["applied_at"]),
        )


@dataclass
class AuditEntry:
    """Record of one manual override, kept apart from evaluation history."""

    action: str
    reason: str
    actor: str
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "reason": self.reason,
            "actor": self.actor,
            "timestamp": _dt_out(self.timestamp),
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditEntry":
        return cls(
            action=data["action"],
            reason=data["reason"],
            actor=data["actor"],
            timestamp=_dt_in(data["timestamp"]),
            details=dict(data.get("details") or {}),
        )


T = TypeVar("T", MonthlyRecord, ProtectionRecord)


class HistoryLog(Generic[T]):
    """
    Append-only sequence of monthly entries.

    Entries can only be appended. Reads go through latest() and
    for_month() so callers never need the whole sequence.
    """

    def __init__(self, entries: Optional[List[T]] = None, schema=None):
        self._entries: List[T] = list(entries or [])
        self._schema = schema

    def append(self, entry: T) -> None:
        self._entries.append(entry)

    def latest(self, n: int = 1) -> List[T]:
        """Most recent n entries, newest first."""
        if n <= 0:
            return []
        return list(reversed(self._entries[-n:]))

    def for_month(self, month: str) -> List[T]:
        return [entry for entry in self._entries if entry.month == month]

    def has_month(self, month: str) -> bool:
        return any(entry.month == month for entry in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._entries))

    def __eq__(self, other) -> bool:
        if not isinstance(other, HistoryLog):
            return NotImplemented
        return self._entries == other._entries

    def __deepcopy__(self, memo) -> "HistoryLog[T]":
        # Schemas are immutable and shared
        return HistoryLog(copy.deepcopy(self._entries, memo), schema=self._schema)

    def to_list(self) -> List[dict]:
        return [entry.to_dict() for entry in self._entries]

    def to_frame(self) -> pd.DataFrame:
        """
        History as a DataFrame with upper-case columns, oldest first.

        Validated against the log's Pandera schema when one is attached.
        """
        columns = [name.upper() for name in self._schema.columns] if self._schema else None
        rows = []
        for entry in self._entries:
            row = {key.upper(): value for key, value in entry.to_dict().items()}
            rows.append(row)
        df = pd.DataFrame(rows, columns=columns)
        if self._schema is not None:
            df = self._schema.validate(df)
        return df

    @classmethod
    def from_list(
        cls,
        data: Optional[List[dict]],
        parse: Callable[[dict], T],
        schema=None,
    ) -> "HistoryLog[T]":
        return cls([parse(item) for item in data or []], schema=schema)


def monthly_log(entries: Optional[List[MonthlyRecord]] = None) -> HistoryLog[MonthlyRecord]:
    return HistoryLog(entries, schema=MONTHLY_HISTORY_SCHEMA)


def protection_log(entries: Optional[List[ProtectionRecord]] = None) -> HistoryLog[ProtectionRecord]:
    return HistoryLog(entries, schema=PROTECTION_HISTORY_SCHEMA)


@dataclass
class ClientLoyaltyState:
    """
    Loyalty document for one client.

    Created all-zero at enrollment and never deleted. Only the evaluator,
    counter reset, rollout, unit tracking and audited overrides mutate it.
    """

    client_id: str
    name: str = ""

    # Tier status
    current_tier: Tier = Tier.CASUAL
    previous_tier: Optional[Tier] = None
    tier_effective_date: Optional[datetime] = None

    # Protection
    protection: ProtectionBalance = field(default_factory=ProtectionBalance)

    # Cashback
    cashback_balance: float = 0.0
    cashback_awards: List[CashbackAward] = field(default_factory=list)
    cashback_redemptions: List[CashbackRedemption] = field(default_factory=list)

    # Monthly tracking
    current_month_units: int = 0
    counter_reset_at: Optional[datetime] = None

    # Lifetime billing
    lifetime_units_billed: int = 0
    meets_lifetime_minimum: bool = False

    # History
    monthly_history: HistoryLog[MonthlyRecord] = field(default_factory=monthly_log)
    protection_history: HistoryLog[ProtectionRecord] = field(default_factory=protection_log)
    evaluated_periods: List[str] = field(default_factory=list)
    audit_log: List[AuditEntry] = field(default_factory=list)

    # Enrollment
    enrolled_date: Optional[datetime] = None
    is_rollout: bool = False

    @property
    def is_enrolled(self) -> bool:
        return self.enrolled_date is not None

    def has_cashback_for(self, from_tier: Tier, to_tier: Tier) -> bool:
        return any(
            award.from_tier is from_tier and award.to_tier is to_tier
            for award in self.cashback_awards
        )

    def copy(self) -> "ClientLoyaltyState":
        """Deep working copy; edits do not touch the original."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "name": self.name,
            "current_tier": self.current_tier.value,
            "previous_tier": self.previous_tier.value if self.previous_tier else None,
            "tier_effective_date": _dt_out(self.tier_effective_date),
            "protection": self.protection.to_dict(),
            "cashback_balance": self.cashback_balance,
            "cashback_awards": [a.to_dict() for a in self.cashback_awards],
            "cashback_redemptions": [r.to_dict() for r in self.cashback_redemptions],
            "current_month_units": self.current_month_units,
            "counter_reset_at": _dt_out(self.counter_reset_at),
            "lifetime_units_billed": self.lifetime_units_billed,
            "meets_lifetime_minimum": self.meets_lifetime_minimum,
            "monthly_history": self.monthly_history.to_list(),
            "protection_history": self.protection_history.to_list(),
            "evaluated_periods": list(self.evaluated_periods),
            "audit_log": [e.to_dict() for e in self.audit_log],
            "enrolled_date": _dt_out(self.enrolled_date),
            "is_rollout": self.is_rollout,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ClientLoyaltyState":
        return cls(
            client_id=str(data["client_id"]),
            name=data.get("name") or "",
            current_tier=Tier.parse(data.get("current_tier") or Tier.CASUAL),
            previous_tier=_tier_in(data.get("previous_tier")),
            tier_effective_date=_dt_in(data.get("tier_effective_date")),
            protection=ProtectionBalance.from_dict(data.get("protection") or {}),
            cashback_balance=float(data.get("cashback_balance", 0.0)),
            cashback_awards=[CashbackAward.from_dict(a) for a in data.get("cashback_awards") or []],
            cashback_redemptions=[
                CashbackRedemption.from_dict(r) for r in data.get("cashback_redemptions") or []
            ],
            current_month_units=int(data.get("current_month_units", 0)),
            counter_reset_at=_dt_in(data.get("counter_reset_at")),
            lifetime_units_billed=int(data.get("lifetime_units_billed", 0)),
            meets_lifetime_minimum=bool(data.get("meets_lifetime_minimum", False)),
            monthly_history=HistoryLog.from_list(
                data.get("monthly_history"), MonthlyRecord.from_dict, MONTHLY_HISTORY_SCHEMA
            ),
            protection_history=HistoryLog.from_list(
                data.get("protection_history"), ProtectionRecord.from_dict, PROTECTION_HISTORY_SCHEMA
            ),
            evaluated_periods=list(data.get("evaluated_periods") or []),
            audit_log=[AuditEntry.from_dict(e) for e in data.get("audit_log") or []],
            enrolled_date=_dt_in(data.get("enrolled_date")),
            is_rollout=bool(data.get("is_rollout", False)),
        )

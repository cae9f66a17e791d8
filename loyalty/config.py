"""
Tier table and program constants for the loyalty tier engine.

All tier thresholds, prices and protection/cashback constants live here
so tests and operators can substitute alternate tier tables.
Defaults:
- Casual 0-5 units, Pro 6-10 units, Elite 10+ units
- Pro needs 5 points per protection month, Elite needs 10
- At most 3 protection months banked
- 100 cashback on a first-time upgrade once 5 units have been billed
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from functools import total_ordering
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml


@total_ordering
class Tier(Enum):
    """Pricing tier, ordered Casual < Pro < Elite."""

    CASUAL = "Casual"
    PRO = "Pro"
    ELITE = "Elite"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank < other.rank

    @classmethod
    def parse(cls, raw) -> "Tier":
        """
        Normalize an external tier value.

        Accepts Tier members and any casing of the tier names, plus the
        legacy "standard" alias for Casual.

        Raises:
            ValueError: If the value names no tier
        """
        if isinstance(raw, Tier):
            return raw
        key = str(raw).strip().lower()
        if key in _TIER_ALIASES:
            return _TIER_ALIASES[key]
        raise ValueError(f"Unknown tier: {raw!r}")


_TIER_RANK = {Tier.CASUAL: 0, Tier.PRO: 1, Tier.ELITE: 2}

_TIER_ALIASES = {
    "casual": Tier.CASUAL,
    "standard": Tier.CASUAL,
    "pro": Tier.PRO,
    "elite": Tier.ELITE,
}


@dataclass(frozen=True)
class TierDefinition:
    """One row of the tier table."""

    tier: Tier
    min_units: int
    max_units: Optional[int]  # None = unbounded
    price_per_unit: float
    discount_pct: float
    protection_points_required: Optional[int] = None  # None = earns no protection

    def to_dict(self) -> dict:
        return {
            "min_units": self.min_units,
            "max_units": self.max_units,
            "price_per_unit": self.price_per_unit,
            "discount_pct": self.discount_pct,
            "protection_points_required": self.protection_points_required,
        }


def _default_tiers() -> Tuple[TierDefinition, ...]:
    return (
        TierDefinition(Tier.CASUAL, 0, 5, 100.0, 0.0),
        TierDefinition(Tier.PRO, 6, 10, 80.0, 20.0, protection_points_required=5),
        # Elite minimum abuts Pro maximum; classification prefers Elite at 10
        TierDefinition(Tier.ELITE, 10, None, 70.0, 30.0, protection_points_required=10),
    )


@dataclass(frozen=True)
class LoyaltyConfig:
    """
    Immutable configuration shared by every loyalty component.

    Load from YAML:
        config = LoyaltyConfig.from_yaml("loyalty.yaml")

    Override programmatically:
        config = LoyaltyConfig(cashback_amount=50.0)
    """

    tiers: Tuple[TierDefinition, ...] = field(default_factory=_default_tiers)

    # === Protection ===
    max_protection_months: int = 3

    # === Cashback ===
    cashback_amount: float = 100.0
    lifetime_minimum_units: int = 5  # lifetime billed units before cashback can fire

    # === Rollout ===
    rollout_tier: Tier = Tier.ELITE
    rollout_date: date = date(2026, 2, 2)

    # === Metadata ===
    version: str = "1.0.0"

    def __post_init__(self):
        seen = [definition.tier for definition in self.tiers]
        missing = set(Tier) - set(seen)
        if missing or len(seen) != len(set(seen)):
            raise ValueError(
                f"Tier table must define each tier exactly once, got {[t.value for t in seen]}"
            )
        for definition in self.tiers:
            if definition.tier is Tier.CASUAL:
                continue
            required = definition.protection_points_required
            if required is None or required <= 0:
                raise ValueError(
                    f"{definition.tier.value} requires a positive protection_points_required"
                )
        if self.max_protection_months < 0:
            raise ValueError("max_protection_months must be >= 0")

    def tier(self, tier: Tier) -> TierDefinition:
        """Look up the definition of a tier."""
        for definition in self.tiers:
            if definition.tier is tier:
                return definition
        raise KeyError(tier)

    def ordered_tiers(self, descending: bool = False) -> list[TierDefinition]:
        """Tier definitions sorted by tier order."""
        return sorted(self.tiers, key=lambda d: d.tier.rank, reverse=descending)

    @property
    def promotion_conversion_factor(self) -> int:
        """Elite points granted per banked Pro protection month."""
        return self.tier(Tier.PRO).protection_points_required

    @property
    def rollout_datetime(self) -> datetime:
        return datetime(self.rollout_date.year, self.rollout_date.month, self.rollout_date.day)

    @classmethod
    def from_dict(cls, data: dict) -> "LoyaltyConfig":
        """Build a config from plain data (e.g. parsed YAML)."""
        data = dict(data or {})
        kwargs = {}

        raw_tiers: Optional[Dict[str, dict]] = data.pop("tiers", None)
        if raw_tiers is not None:
            kwargs["tiers"] = tuple(
                TierDefinition(
                    tier=Tier.parse(name),
                    min_units=int(values["min_units"]),
                    max_units=None if values.get("max_units") is None else int(values["max_units"]),
                    price_per_unit=float(values["price_per_unit"]),
                    discount_pct=float(values.get("discount_pct", 0)),
                    protection_points_required=(
                        None
                        if values.get("protection_points_required") is None
                        else int(values["protection_points_required"])
                    ),
                )
                for name, values in raw_tiers.items()
            )

        if "rollout_tier" in data:
            data["rollout_tier"] = Tier.parse(data["rollout_tier"])
        if isinstance(data.get("rollout_date"), str):
            data["rollout_date"] = date.fromisoformat(data["rollout_date"])

        return cls(**kwargs, **data)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "LoyaltyConfig":
        """Load configuration from YAML file."""
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        """Convert to plain data."""
        return {
            "tiers": {d.tier.value: d.to_dict() for d in self.ordered_tiers()},
            "max_protection_months": self.max_protection_months,
            "cashback_amount": self.cashback_amount,
            "lifetime_minimum_units": self.lifetime_minimum_units,
            "rollout_tier": self.rollout_tier.value,
            "rollout_date": self.rollout_date.isoformat(),
            "version": self.version,
        }

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


# Default configuration instance
DEFAULT_CONFIG = LoyaltyConfig()

"""Protection point ledger component."""

import logging
from dataclasses import dataclass

from ..config import Tier
from ..state import ProtectionBalance
from .base import BaseComponent

logger = logging.getLogger(__name__)


@dataclass
class AccrualResult:
    awarded_months: int
    remaining_points: int

    @property
    def protection_awarded(self) -> bool:
        return self.awarded_months > 0


class ProtectionLedger(BaseComponent):
    """
    Accumulate protection points and bank protection months.

    Units above a tier's own minimum earn one point each. Every
    `protection_points_required` points bank one protection month for
    that tier, up to `max_protection_months`. A banked month lets the
    client keep the tier for one month spent below its minimum.

    Points (defaults):
    - Casual: never earns points
    - Pro: units above 6, 5 points per month
    - Elite: units above 10, 10 points per month
    """

    name = "ledger"

    def points_earned(self, units: int, tier: Tier) -> int:
        """Points earned by a month's units against a tier's minimum."""
        definition = self.tier_definition(tier)
        if definition.protection_points_required is None:
            return 0
        return max(0, units - definition.min_units)

    def accrue(self, balance: ProtectionBalance, tier: Tier, points: int) -> AccrualResult:
        """
        Add points for `tier` and convert whole thresholds into months.

        Leftover points carry forward. Once months reach the cap, further
        points stay in the balance until a month is spent.

        A balance banked for a different tier is not transferred: when
        points arrive for a new tier, the balance restarts from them.

        Args:
            balance: ProtectionBalance to update in place
            tier: Tier the points are earned for
            points: Points to add (>= 0)

        Returns:
            AccrualResult with months newly awarded and the points left over
        """
        required = self.tier_definition(tier).protection_points_required
        if required is None or points <= 0:
            return AccrualResult(awarded_months=0, remaining_points=balance.points)

        if balance.protection_type is not tier:
            if balance.months or balance.points:
                logger.info(
                    "Protection type switching %s -> %s; dropping %d month(s) and %d point(s)",
                    balance.protection_type.value if balance.protection_type else "none",
                    tier.value,
                    balance.months,
                    balance.points,
                )
            balance.protection_type = tier
            balance.months = 0
            balance.points = 0

        balance.points += points
        awarded = 0
        while balance.points >= required and balance.months < self.config.max_protection_months:
            balance.points -= required
            balance.months += 1
            awarded += 1

        return AccrualResult(awarded_months=awarded, remaining_points=balance.points)

    def spend_one_month(self, balance: ProtectionBalance, tier: Tier) -> bool:
        """Spend one banked month shielding `tier`. False (no change) if none is available."""
        if balance.protection_type is not tier or balance.months <= 0:
            return False
        balance.months -= 1
        return True

    def points_needed_for_next(self, balance: ProtectionBalance, tier: Tier):
        """Points still needed for the next month of `tier`, or None if it earns none."""
        required = self.tier_definition(tier).protection_points_required
        if required is None:
            return None
        banked = balance.points if balance.protection_type is tier else 0
        return max(0, required - banked)

"""Pro to Elite protection conversion component."""

import logging

from ..config import Tier
from ..state import ProtectionBalance
from .base import BaseComponent

logger = logging.getLogger(__name__)


class PromotionConverter(BaseComponent):
    """
    Carry banked Pro protection into Elite on promotion.

    Each banked Pro month is worth the Pro threshold in Elite points
    (5 by default), plus any loose Pro points. The result lands as an
    Elite point balance with no months; the Elite threshold is applied
    at the next accrual.
    """

    name = "promotion"

    def applies(self, from_tier: Tier, to_tier: Tier) -> bool:
        return from_tier is Tier.PRO and to_tier is Tier.ELITE

    def convert(self, balance: ProtectionBalance) -> bool:
        """
        Convert a Pro balance to Elite points in place.

        Returns:
            True if converted, False if the balance does not hold Pro protection
        """
        if balance.protection_type is not Tier.PRO:
            return False

        factor = self.config.promotion_conversion_factor
        elite_points = balance.months * factor + balance.points
        logger.info(
            "Converted %d Pro month(s) + %d Pro point(s) into %d Elite point(s)",
            balance.months,
            balance.points,
            elite_points,
        )

        balance.protection_type = Tier.ELITE
        balance.months = 0
        balance.points = elite_points
        return True

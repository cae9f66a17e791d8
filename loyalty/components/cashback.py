"""Tier requalification cashback component."""

import logging
from datetime import datetime

from ..config import Tier
from ..state import CashbackAward, ClientLoyaltyState
from .base import BaseComponent

logger = logging.getLogger(__name__)


class CashbackAwarder(BaseComponent):
    """
    Grant a one-time cashback credit on a tier upgrade.

    Fires only when all hold:
    - the client has billed the lifetime minimum (5 units by default)
    - the new tier is strictly higher than the old one
    - this exact (from, to) pair has never been rewarded for the client
    """

    name = "cashback"

    def maybe_award(
        self,
        state: ClientLoyaltyState,
        from_tier: Tier,
        to_tier: Tier,
        now: datetime,
    ) -> float:
        """
        Award cashback on `state` in place if eligible.

        Returns:
            Amount credited (0.0 when nothing was awarded)
        """
        if not state.meets_lifetime_minimum:
            logger.debug(
                "Client %s below lifetime minimum; no cashback for %s -> %s",
                state.client_id, from_tier.value, to_tier.value,
            )
            return 0.0

        if not to_tier > from_tier:
            return 0.0

        if state.has_cashback_for(from_tier, to_tier):
            logger.debug(
                "Client %s already rewarded for %s -> %s",
                state.client_id, from_tier.value, to_tier.value,
            )
            return 0.0

        amount = float(self.config.cashback_amount)
        state.cashback_awards.append(
            CashbackAward(from_tier=from_tier, to_tier=to_tier, awarded_at=now, amount=amount)
        )
        state.cashback_balance = round(state.cashback_balance + amount, 2)
        logger.info(
            "Awarded %.2f cashback to client %s for %s -> %s",
            amount, state.client_id, from_tier.value, to_tier.value,
        )
        return amount

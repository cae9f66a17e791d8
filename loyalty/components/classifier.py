"""Unit-volume tier classification component."""

import numpy as np
import pandas as pd

from ..config import Tier
from .base import BaseComponent


class TierClassifier(BaseComponent):
    """
    Map a month's billable units to a tier.

    Returns the highest tier whose minimum the units reach. Ranges may
    abut or overlap at a boundary (Pro ends at 10, Elite starts at 10);
    the higher tier always wins.

    Defaults:
    - 0-5 units: Casual
    - 6-9 units: Pro
    - 10+ units: Elite
    """

    name = "classifier"

    def classify(self, units: int) -> Tier:
        """Tier for a unit count. Counts below every minimum fall to the lowest tier."""
        for definition in self.config.ordered_tiers(descending=True):
            if units >= definition.min_units:
                return definition.tier
        return self.config.ordered_tiers()[0].tier

    def classify_series(self, units: pd.Series) -> pd.Series:
        """Vectorized classify(), returning tier names."""
        descending = self.config.ordered_tiers(descending=True)

        # Highest tier first, first match wins
        conditions = [units >= d.min_units for d in descending]
        choices = [d.tier.value for d in descending]

        return pd.Series(
            np.select(conditions, choices, default=descending[-1].tier.value),
            index=units.index,
            dtype=object,
        )

    def price_per_unit(self, tier: Tier) -> float:
        return self.tier_definition(tier).price_per_unit

    def is_downgrade(self, from_tier: Tier, to_tier: Tier) -> bool:
        return to_tier < from_tier

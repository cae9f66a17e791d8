"""Base class for loyalty rule components."""

from abc import ABC
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import LoyaltyConfig, Tier, TierDefinition


class BaseComponent(ABC):
    """
    Abstract base class for loyalty rule components.

    Each component owns a single rule of the loyalty program and reads
    its thresholds from the shared, immutable LoyaltyConfig.
    """

    name: str = "base"

    def __init__(self, config: "LoyaltyConfig"):
        """
        Initialize component with configuration.

        Args:
            config: LoyaltyConfig instance with tier table and constants
        """
        self.config = config

    def tier_definition(self, tier: "Tier") -> "TierDefinition":
        """Definition of a tier from the configured table."""
        return self.config.tier(tier)

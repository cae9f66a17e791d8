"""Rule components for the loyalty tier engine."""

from .base import BaseComponent
from .classifier import TierClassifier
from .ledger import AccrualResult, ProtectionLedger
from .promotion import PromotionConverter
from .cashback import CashbackAwarder

__all__ = [
    "BaseComponent",
    "TierClassifier",
    "ProtectionLedger",
    "AccrualResult",
    "PromotionConverter",
    "CashbackAwarder",
]

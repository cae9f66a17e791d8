"""
Loyalty Tier Engine Package

Monthly volume-based tier evaluation with protection points, promotion
conversion and requalification cashback.
"""

from .config import DEFAULT_CONFIG, LoyaltyConfig, Tier, TierDefinition
from .errors import ClientNotFound, InvalidAdjustment, LoyaltyError, PersistenceFailure
from .state import ClientLoyaltyState, ProtectionBalance
from .stores import (
    CsvUnitSource,
    InMemoryClientStore,
    InMemoryUnitSource,
    JsonClientStore,
    UnitRecord,
)
from .evaluator import EvaluationOutcome, MonthlyEvaluator
from .batch import BatchReport, BatchRunner, CounterResetter, RolloutInitializer
from .service import LoyaltyService

__all__ = [
    "DEFAULT_CONFIG",
    "LoyaltyConfig",
    "Tier",
    "TierDefinition",
    "LoyaltyError",
    "ClientNotFound",
    "InvalidAdjustment",
    "PersistenceFailure",
    "ClientLoyaltyState",
    "ProtectionBalance",
    "UnitRecord",
    "InMemoryUnitSource",
    "CsvUnitSource",
    "InMemoryClientStore",
    "JsonClientStore",
    "EvaluationOutcome",
    "MonthlyEvaluator",
    "BatchReport",
    "BatchRunner",
    "CounterResetter",
    "RolloutInitializer",
    "LoyaltyService",
]
__version__ = "1.0.0"

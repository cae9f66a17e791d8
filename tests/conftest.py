"""
Pytest fixtures for loyalty tier engine tests.
"""

from datetime import datetime, timezone

import pytest

# Add packages to path
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from loyalty.config import LoyaltyConfig, Tier
from loyalty.evaluator import MonthlyEvaluator
from loyalty.service import LoyaltyService
from loyalty.state import ClientLoyaltyState, ProtectionBalance
from loyalty.stores import InMemoryClientStore, InMemoryUnitSource

# First run of April closes March
FIXED_NOW = datetime(2026, 4, 1, 0, 5, tzinfo=timezone.utc)


@pytest.fixture
def default_config():
    """Default tier table and constants."""
    return LoyaltyConfig()


@pytest.fixture
def clock():
    """Clock frozen at the start of April 2026."""
    return lambda: FIXED_NOW


@pytest.fixture
def store():
    return InMemoryClientStore()


@pytest.fixture
def unit_source():
    return InMemoryUnitSource()


@pytest.fixture
def make_client(store):
    """
    Factory saving an enrolled client into the store.

    Usage:
        make_client("c1", tier=Tier.ELITE, units=3, months=2)
    """

    def _make(
        client_id="client-1",
        tier=Tier.CASUAL,
        units=0,
        protection_type=None,
        months=0,
        points=0,
        lifetime=0,
        meets_lifetime=False,
        enrolled=True,
        **kwargs,
    ):
        if protection_type is None and (months or points):
            protection_type = tier
        state = ClientLoyaltyState(
            client_id=client_id,
            name=kwargs.pop("name", f"Client {client_id}"),
            current_tier=tier,
            protection=ProtectionBalance(protection_type, months, points),
            current_month_units=units,
            lifetime_units_billed=lifetime,
            meets_lifetime_minimum=meets_lifetime,
            enrolled_date=datetime(2026, 1, 1, tzinfo=timezone.utc) if enrolled else None,
            **kwargs,
        )
        store.save(state)
        return state

    return _make


@pytest.fixture
def evaluator(store, unit_source, default_config, clock):
    """MonthlyEvaluator over in-memory collaborators."""
    return MonthlyEvaluator(store, unit_source, default_config, clock=clock)


@pytest.fixture
def service(store, unit_source, default_config, clock):
    """LoyaltyService over in-memory collaborators."""
    return LoyaltyService(store, unit_source, default_config, clock=clock)

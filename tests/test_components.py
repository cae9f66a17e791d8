"""
Unit tests for individual loyalty rule components.
"""

from datetime import datetime, timezone

import pandas as pd
import pytest

from loyalty.config import LoyaltyConfig, Tier, TierDefinition
from loyalty.components import (
    CashbackAwarder,
    PromotionConverter,
    ProtectionLedger,
    TierClassifier,
)
from loyalty.state import ClientLoyaltyState, ProtectionBalance

NOW = datetime(2026, 4, 1, tzinfo=timezone.utc)


class TestTierClassifier:
    """Tests for unit-volume tier classification."""

    def test_default_boundaries(self, default_config):
        """0-5 Casual, 6-9 Pro, 10+ Elite."""
        classifier = TierClassifier(default_config)

        assert classifier.classify(0) is Tier.CASUAL
        assert classifier.classify(5) is Tier.CASUAL
        assert classifier.classify(6) is Tier.PRO
        assert classifier.classify(9) is Tier.PRO
        assert classifier.classify(10) is Tier.ELITE  # Overlap resolves upward
        assert classifier.classify(250) is Tier.ELITE

    def test_below_every_minimum_falls_to_lowest(self, default_config):
        classifier = TierClassifier(default_config)
        assert classifier.classify(-3) is Tier.CASUAL

    def test_monotonic_in_units(self, default_config):
        """More units never yields a lower tier."""
        classifier = TierClassifier(default_config)
        tiers = [classifier.classify(u) for u in range(0, 40)]

        assert all(a <= b for a, b in zip(tiers, tiers[1:]))

    def test_series_matches_scalar(self, default_config):
        classifier = TierClassifier(default_config)
        units = pd.Series([0, 5, 6, 9, 10, 31], index=list("abcdef"))

        result = classifier.classify_series(units)

        assert list(result.index) == list("abcdef")
        assert list(result) == [classifier.classify(u).value for u in units]

    def test_custom_tier_table(self):
        """Alternate thresholds flow through from config."""
        config = LoyaltyConfig(
            tiers=(
                TierDefinition(Tier.CASUAL, 0, 19, 100.0, 0.0),
                TierDefinition(Tier.PRO, 20, 49, 90.0, 10.0, protection_points_required=8),
                TierDefinition(Tier.ELITE, 50, None, 75.0, 25.0, protection_points_required=15),
            )
        )
        classifier = TierClassifier(config)

        assert classifier.classify(19) is Tier.CASUAL
        assert classifier.classify(20) is Tier.PRO
        assert classifier.classify(50) is Tier.ELITE
        assert classifier.price_per_unit(Tier.PRO) == 90.0

    def test_is_downgrade(self, default_config):
        classifier = TierClassifier(default_config)

        assert classifier.is_downgrade(Tier.ELITE, Tier.PRO)
        assert classifier.is_downgrade(Tier.PRO, Tier.CASUAL)
        assert not classifier.is_downgrade(Tier.PRO, Tier.PRO)
        assert not classifier.is_downgrade(Tier.CASUAL, Tier.ELITE)


class TestProtectionLedger:
    """Tests for protection point accrual and spending."""

    def test_points_earned_above_tier_minimum(self, default_config):
        ledger = ProtectionLedger(default_config)

        assert ledger.points_earned(8, Tier.PRO) == 2
        assert ledger.points_earned(6, Tier.PRO) == 0
        assert ledger.points_earned(3, Tier.PRO) == 0  # Never negative
        assert ledger.points_earned(14, Tier.ELITE) == 4

    def test_casual_never_earns(self, default_config):
        ledger = ProtectionLedger(default_config)
        assert ledger.points_earned(40, Tier.CASUAL) == 0

    def test_accrue_converts_threshold_into_month(self, default_config):
        """Pro: 3 banked + 4 earned = 1 month with 2 left over."""
        ledger = ProtectionLedger(default_config)
        balance = ProtectionBalance(Tier.PRO, months=0, points=3)

        result = ledger.accrue(balance, Tier.PRO, 4)

        assert result.awarded_months == 1
        assert result.protection_awarded
        assert balance == ProtectionBalance(Tier.PRO, months=1, points=2)

    def test_accrue_several_months_at_once(self, default_config):
        ledger = ProtectionLedger(default_config)
        balance = ProtectionBalance(Tier.PRO)

        result = ledger.accrue(balance, Tier.PRO, 12)

        assert result.awarded_months == 2
        assert balance.months == 2
        assert balance.points == 2

    def test_accrue_stops_at_cap_and_keeps_excess(self, default_config):
        """Months never exceed the cap; points beyond it are preserved."""
        ledger = ProtectionLedger(default_config)
        balance = ProtectionBalance(Tier.ELITE, months=2, points=0)

        result = ledger.accrue(balance, Tier.ELITE, 25)

        assert result.awarded_months == 1
        assert balance.months == default_config.max_protection_months
        assert balance.points == 15

    def test_accrue_at_cap_awards_nothing(self, default_config):
        ledger = ProtectionLedger(default_config)
        balance = ProtectionBalance(Tier.PRO, months=3, points=0)

        result = ledger.accrue(balance, Tier.PRO, 7)

        assert not result.protection_awarded
        assert balance == ProtectionBalance(Tier.PRO, months=3, points=7)

    def test_accrue_zero_points_is_noop(self, default_config):
        ledger = ProtectionLedger(default_config)
        balance = ProtectionBalance(Tier.ELITE, months=1, points=4)

        ledger.accrue(balance, Tier.PRO, 0)

        assert balance == ProtectionBalance(Tier.ELITE, months=1, points=4)

    def test_accrue_sets_type_on_empty_balance(self, default_config):
        ledger = ProtectionLedger(default_config)
        balance = ProtectionBalance()

        ledger.accrue(balance, Tier.ELITE, 3)

        assert balance == ProtectionBalance(Tier.ELITE, months=0, points=3)

    def test_accrue_for_other_tier_restarts_balance(self, default_config):
        """Banked Pro protection does not shield Elite."""
        ledger = ProtectionLedger(default_config)
        balance = ProtectionBalance(Tier.PRO, months=2, points=4)

        ledger.accrue(balance, Tier.ELITE, 3)

        assert balance == ProtectionBalance(Tier.ELITE, months=0, points=3)

    def test_spend_one_month(self, default_config):
        ledger = ProtectionLedger(default_config)
        balance = ProtectionBalance(Tier.ELITE, months=2, points=6)

        assert ledger.spend_one_month(balance, Tier.ELITE)
        assert balance == ProtectionBalance(Tier.ELITE, months=1, points=6)

    def test_spend_without_months_changes_nothing(self, default_config):
        ledger = ProtectionLedger(default_config)
        balance = ProtectionBalance(Tier.ELITE, months=0, points=6)

        assert not ledger.spend_one_month(balance, Tier.ELITE)
        assert balance == ProtectionBalance(Tier.ELITE, months=0, points=6)

    def test_spend_requires_matching_type(self, default_config):
        ledger = ProtectionLedger(default_config)
        balance = ProtectionBalance(Tier.PRO, months=2, points=0)

        assert not ledger.spend_one_month(balance, Tier.ELITE)
        assert balance.months == 2

    def test_points_needed_for_next(self, default_config):
        ledger = ProtectionLedger(default_config)

        assert ledger.points_needed_for_next(ProtectionBalance(Tier.PRO, 0, 3), Tier.PRO) == 2
        assert ledger.points_needed_for_next(ProtectionBalance(Tier.PRO, 0, 3), Tier.ELITE) == 10
        assert ledger.points_needed_for_next(ProtectionBalance(), Tier.CASUAL) is None


class TestPromotionConverter:
    """Tests for Pro to Elite protection conversion."""

    def test_applies_only_to_pro_to_elite(self, default_config):
        converter = PromotionConverter(default_config)

        assert converter.applies(Tier.PRO, Tier.ELITE)
        assert not converter.applies(Tier.CASUAL, Tier.ELITE)
        assert not converter.applies(Tier.CASUAL, Tier.PRO)
        assert not converter.applies(Tier.ELITE, Tier.PRO)

    def test_months_and_points_become_elite_points(self, default_config):
        """2 Pro months + 3 Pro points = 2*5 + 3 = 13 Elite points."""
        converter = PromotionConverter(default_config)
        balance = ProtectionBalance(Tier.PRO, months=2, points=3)

        assert converter.convert(balance)
        assert balance == ProtectionBalance(Tier.ELITE, months=0, points=13)

    def test_non_pro_balance_untouched(self, default_config):
        converter = PromotionConverter(default_config)
        balance = ProtectionBalance(None, months=0, points=0)

        assert not converter.convert(balance)
        assert balance == ProtectionBalance()


class TestCashbackAwarder:
    """Tests for one-time tier requalification cashback."""

    def _client(self, meets_lifetime=True):
        return ClientLoyaltyState(client_id="c1", meets_lifetime_minimum=meets_lifetime)

    def test_first_upgrade_awards_cashback(self, default_config):
        awarder = CashbackAwarder(default_config)
        state = self._client()

        amount = awarder.maybe_award(state, Tier.CASUAL, Tier.PRO, NOW)

        assert amount == 100.0
        assert state.cashback_balance == 100.0
        assert len(state.cashback_awards) == 1
        assert state.has_cashback_for(Tier.CASUAL, Tier.PRO)

    def test_same_pair_awarded_once(self, default_config):
        awarder = CashbackAwarder(default_config)
        state = self._client()

        awarder.maybe_award(state, Tier.CASUAL, Tier.PRO, NOW)
        second = awarder.maybe_award(state, Tier.CASUAL, Tier.PRO, NOW)

        assert second == 0.0
        assert state.cashback_balance == 100.0
        assert len(state.cashback_awards) == 1

    def test_different_pair_awarded_separately(self, default_config):
        awarder = CashbackAwarder(default_config)
        state = self._client()

        awarder.maybe_award(state, Tier.CASUAL, Tier.PRO, NOW)
        awarder.maybe_award(state, Tier.PRO, Tier.ELITE, NOW)

        assert state.cashback_balance == 200.0

    def test_requires_lifetime_minimum(self, default_config):
        awarder = CashbackAwarder(default_config)
        state = self._client(meets_lifetime=False)

        assert awarder.maybe_award(state, Tier.CASUAL, Tier.ELITE, NOW) == 0.0
        assert state.cashback_awards == []

    def test_downgrade_never_awards(self, default_config):
        awarder = CashbackAwarder(default_config)
        state = self._client()

        assert awarder.maybe_award(state, Tier.ELITE, Tier.PRO, NOW) == 0.0
        assert state.cashback_balance == 0.0

    def test_configured_amount(self):
        awarder = CashbackAwarder(LoyaltyConfig(cashback_amount=49.99))
        state = self._client()

        assert awarder.maybe_award(state, Tier.CASUAL, Tier.PRO, NOW) == 49.99


class TestLoyaltyConfig:
    """Tests for the tier table and program constants."""

    def test_defaults(self, default_config):
        assert default_config.max_protection_months == 3
        assert default_config.cashback_amount == 100.0
        assert default_config.lifetime_minimum_units == 5
        assert default_config.rollout_tier is Tier.ELITE
        assert default_config.tier(Tier.PRO).protection_points_required == 5
        assert default_config.tier(Tier.ELITE).protection_points_required == 10
        assert default_config.promotion_conversion_factor == 5

    def test_ordered_tiers(self, default_config):
        names = [d.tier for d in default_config.ordered_tiers()]
        assert names == [Tier.CASUAL, Tier.PRO, Tier.ELITE]

    def test_yaml_round_trip(self, default_config, tmp_path):
        path = tmp_path / "loyalty.yaml"
        default_config.to_yaml(path)

        assert LoyaltyConfig.from_yaml(path) == default_config

    def test_partial_yaml_keeps_default_tiers(self, tmp_path):
        path = tmp_path / "loyalty.yaml"
        path.write_text("cashback_amount: 50\nrollout_tier: pro\nrollout_date: '2026-03-01'\n")

        config = LoyaltyConfig.from_yaml(path)

        assert config.cashback_amount == 50
        assert config.rollout_tier is Tier.PRO
        assert config.rollout_datetime == datetime(2026, 3, 1)
        assert config.tier(Tier.ELITE).min_units == 10

    def test_missing_tier_rejected(self):
        with pytest.raises(ValueError, match="exactly once"):
            LoyaltyConfig(tiers=(TierDefinition(Tier.CASUAL, 0, None, 100.0, 0.0),))

    def test_protected_tier_needs_threshold(self):
        with pytest.raises(ValueError, match="protection_points_required"):
            LoyaltyConfig(
                tiers=(
                    TierDefinition(Tier.CASUAL, 0, 5, 100.0, 0.0),
                    TierDefinition(Tier.PRO, 6, 10, 80.0, 20.0),
                    TierDefinition(Tier.ELITE, 10, None, 70.0, 30.0, protection_points_required=10),
                )
            )

    def test_tier_parse_normalizes_external_values(self):
        assert Tier.parse("elite") is Tier.ELITE
        assert Tier.parse(" PRO ") is Tier.PRO
        assert Tier.parse("standard") is Tier.CASUAL
        assert Tier.parse(Tier.CASUAL) is Tier.CASUAL

        with pytest.raises(ValueError, match="Unknown tier"):
            Tier.parse("platinum")

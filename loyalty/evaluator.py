"""
MonthlyEvaluator - one client's end-of-month loyalty evaluation.

Usage:
    from loyalty import MonthlyEvaluator, LoyaltyConfig

    evaluator = MonthlyEvaluator(store, unit_source)
    outcome = evaluator.evaluate("client-42", period="2026-03")
    print(outcome.describe())

Cycle:
    Pending -> Gated (skip) | Evaluating -> Classified
            -> Protected | Downgraded -> Archived -> Done

The whole cycle runs against a working copy of the client's state and is
committed with a single save, so a failure anywhere leaves the stored
state exactly as it was.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .config import DEFAULT_CONFIG, LoyaltyConfig, Tier
from .components import (
    CashbackAwarder,
    PromotionConverter,
    ProtectionLedger,
    TierClassifier,
)
from .errors import ClientNotFound, LoyaltyError, PersistenceFailure
from .locks import ClientLocks
from .periods import previous_period, utc_now, validate_period
from .state import ClientLoyaltyState, MonthlyRecord, ProtectionRecord
from .stores import ClientStore, UnitSource

logger = logging.getLogger(__name__)

EVALUATED = "evaluated"
SKIPPED = "skipped"
FAILED = "failed"

NOT_READY = "not_ready"
ALREADY_EVALUATED = "already_evaluated"
NOT_ENROLLED = "not_enrolled"


@dataclass
class EvaluationOutcome:
    """
    Result of evaluating one client for one period.

    Attributes:
        status: "evaluated", "skipped" or "failed"
        tier: Tier after evaluation (None unless evaluated)
        reason: Skip reason or error text
        pending_count: Unfinalized unit records when skipped as not ready
    """

    client_id: str
    period: str
    status: str
    tier: Optional[Tier] = None
    previous_tier: Optional[Tier] = None
    reason: Optional[str] = None
    pending_count: int = 0
    units: int = 0
    points_earned: int = 0
    protection_used: bool = False
    protection_awarded: bool = False
    cashback_awarded: float = 0.0

    @property
    def tier_changed(self) -> bool:
        return self.status == EVALUATED and self.tier is not self.previous_tier

    def describe(self) -> str:
        """Operator-facing one-liner."""
        if self.status == EVALUATED:
            return f"evaluated: tier {self.tier.value}"
        if self.status == SKIPPED:
            if self.reason == NOT_READY:
                return f"skipped: not ready ({self.pending_count} pending)"
            return f"skipped: {self.reason}"
        return f"failed: {self.reason}"

    def to_row(self) -> dict:
        return {
            "CLIENT_ID": self.client_id,
            "PERIOD": self.period,
            "STATUS": self.status,
            "TIER": self.tier.value if self.tier else None,
            "PREVIOUS_TIER": self.previous_tier.value if self.previous_tier else None,
            "REASON": self.reason,
            "PENDING_COUNT": self.pending_count,
            "UNITS": self.units,
            "POINTS_EARNED": self.points_earned,
            "PROTECTION_USED": self.protection_used,
            "PROTECTION_AWARDED": self.protection_awarded,
            "CASHBACK_AWARDED": self.cashback_awarded,
        }


class MonthlyEvaluator:
    """
    Orchestrates the loyalty rules for one client and one period.

    Steps:
    1. Readiness gate: every unit record of the period must be finalized
    2. Snapshot: this month's units and the current tier
    3. Classify the units
    4. Protect-or-downgrade: spend a banked month rather than drop a tier
    5. Accrue protection points earned against the pre-evaluation tier
    6. Commit any tier change (Pro -> Elite conversion, cashback)
    7. Archive monthly and protection history
    8. Update lifetime billed units and the sticky lifetime-minimum flag
    """

    def __init__(
        self,
        store: ClientStore,
        unit_source: UnitSource,
        config: Optional[LoyaltyConfig] = None,
        locks: Optional[ClientLocks] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize evaluator with collaborators and configuration.

        Args:
            store: Persistence collaborator for ClientLoyaltyState
            unit_source: Billable-unit record collaborator
            config: LoyaltyConfig instance. Uses DEFAULT_CONFIG if None.
            locks: Per-client lock registry shared with other writers
            clock: Returns the current time
        """
        self.store = store
        self.unit_source = unit_source
        self.config = config or DEFAULT_CONFIG
        self.locks = locks or ClientLocks()
        self.clock = clock
        self._init_components()

    def _init_components(self) -> None:
        """Initialize all rule components."""
        self.classifier = TierClassifier(self.config)
        self.ledger = ProtectionLedger(self.config)
        self.promotion = PromotionConverter(self.config)
        self.cashback = CashbackAwarder(self.config)

    def evaluate(self, client_id: str, period: Optional[str] = None) -> EvaluationOutcome:
        """
        Evaluate one client for one period.

        Args:
            client_id: Client to evaluate
            period: Month being closed ("YYYY-MM"). Defaults to the month
                before the current one.

        Returns:
            EvaluationOutcome (evaluated or skipped)

        Raises:
            ClientNotFound: Unknown client
            PersistenceFailure: State could not be loaded or saved
        """
        now = self.clock()
        period = validate_period(period or previous_period(now))

        with self.locks.hold(client_id):
            state = self.store.load(client_id)

            if not state.is_enrolled:
                return EvaluationOutcome(client_id, period, SKIPPED, reason=NOT_ENROLLED)

            if period in state.evaluated_periods:
                logger.info("Client %s already evaluated for %s; skipping", client_id, period)
                return EvaluationOutcome(client_id, period, SKIPPED, reason=ALREADY_EVALUATED)

            # 1. Readiness gate
            records = self.unit_source.records_for(client_id, period)
            pending = [r for r in records if not r.is_finalized]
            if pending:
                logger.info(
                    "Client %s not ready for %s: %d of %d record(s) unfinalized (%s)",
                    client_id, period, len(pending), len(records),
                    ", ".join(r.record_id for r in pending),
                )
                return EvaluationOutcome(
                    client_id, period, SKIPPED, reason=NOT_READY, pending_count=len(pending)
                )

            working = state.copy()
            outcome = self._apply(working, period, now)

            try:
                self.store.save(working)
            except PersistenceFailure:
                raise
            except Exception as exc:
                raise PersistenceFailure(f"Cannot save client {client_id}: {exc}") from exc

        logger.info(
            "Client %s %s: %s units, %s -> %s%s",
            client_id, period, outcome.units,
            outcome.previous_tier.value, outcome.tier.value,
            " (protection used)" if outcome.protection_used else "",
        )
        return outcome

    def _apply(self, state: ClientLoyaltyState, period: str, now: datetime) -> EvaluationOutcome:
        """Run steps 2-8 on a working copy."""
        # 2. Snapshot
        units = max(0, int(state.current_month_units))
        current_tier = state.current_tier
        current_def = self.config.tier(current_tier)

        # 3. Classify
        calculated_tier = self.classifier.classify(units)

        # 4. Protect-or-downgrade
        protection_used = False
        final_tier = calculated_tier
        if self.classifier.is_downgrade(current_tier, calculated_tier):
            if self.ledger.spend_one_month(state.protection, current_tier):
                final_tier = current_tier
                protection_used = True
                logger.info(
                    "Client %s kept %s with protection (%d month(s) left)",
                    state.client_id, current_tier.value, state.protection.months,
                )
            else:
                logger.info(
                    "Client %s below %s minimum with no protection; dropping to %s",
                    state.client_id, current_tier.value, calculated_tier.value,
                )

        # 5. Accrue points earned against the pre-evaluation tier
        points = self.ledger.points_earned(units, current_tier)
        converting = self.promotion.applies(current_tier, final_tier)
        # A Pro -> Elite promotion banks this month's Pro points before conversion
        accrual_tier = current_tier if converting else final_tier
        accrual = self.ledger.accrue(state.protection, accrual_tier, points)

        # 6. Commit tier change
        cashback = 0.0
        if final_tier is not current_tier:
            state.previous_tier = current_tier
            state.current_tier = final_tier
            state.tier_effective_date = now
            if converting:
                self.promotion.convert(state.protection)
            cashback = self.cashback.maybe_award(state, current_tier, final_tier, now)

        # 7. Archive
        price = self.classifier.price_per_unit(final_tier)
        state.monthly_history.append(
            MonthlyRecord(
                month=period,
                tier=final_tier,
                units=units,
                price_per_unit=price,
                total_billed=round(units * price, 2),
                protection_awarded=accrual.protection_awarded,
                protection_used=protection_used,
                recorded_at=now,
            )
        )
        state.protection_history.append(
            ProtectionRecord(
                month=period,
                tier=current_tier,
                units_submitted=units,
                tier_minimum=current_def.min_units,
                points_earned=points,
                points_balance_after=state.protection.points,
                protection_awarded=accrual.protection_awarded,
                protection_used=protection_used,
            )
        )
        state.evaluated_periods.append(period)

        # 8. Lifetime counters
        if units > 0:
            state.lifetime_units_billed += units
            if (
                not state.meets_lifetime_minimum
                and state.lifetime_units_billed >= self.config.lifetime_minimum_units
            ):
                state.meets_lifetime_minimum = True
                logger.info(
                    "Client %s reached lifetime minimum (%d units)",
                    state.client_id, state.lifetime_units_billed,
                )

        return EvaluationOutcome(
            client_id=state.client_id,
            period=period,
            status=EVALUATED,
            tier=final_tier,
            previous_tier=current_tier,
            units=units,
            points_earned=points,
            protection_used=protection_used,
            protection_awarded=accrual.protection_awarded,
            cashback_awarded=cashback,
        )

    def safe_evaluate(self, client_id: str, period: Optional[str] = None) -> EvaluationOutcome:
        """evaluate(), reporting any error as a failed outcome instead of raising."""
        now = self.clock()
        try:
            return self.evaluate(client_id, period)
        except ClientNotFound as exc:
            logger.error("%s", exc)
            reason = str(exc)
        except LoyaltyError as exc:
            logger.error("Evaluation failed for client %s: %s", client_id, exc)
            reason = str(exc)
        except Exception as exc:
            logger.exception("Unexpected error evaluating client %s", client_id)
            reason = f"{type(exc).__name__}: {exc}"
        return EvaluationOutcome(client_id, period or previous_period(now), FAILED, reason=reason)

"""
LoyaltyService - the surface schedulers and operator tools call.

Usage:
    from loyalty import LoyaltyService, InMemoryClientStore, InMemoryUnitSource

    service = LoyaltyService(store, unit_source)

    # Scheduled
    report = service.evaluate_all_enrolled_clients("2026-03")
    service.reset_monthly_counters("2026-03")

    # Operator
    service.set_tier("client-42", "elite", reason="Contract renegotiation", actor="ops@example.com")
    print(service.client_summary("client-42"))

Tier values arriving from outside (any casing, legacy "standard") are
normalized here; everything behind this surface works with Tier members.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

import pandas as pd

from .batch import BatchReport, BatchRunner, CounterResetter, RolloutInitializer
from .components import ProtectionLedger, TierClassifier
from .config import DEFAULT_CONFIG, LoyaltyConfig, Tier
from .errors import InvalidAdjustment
from .evaluator import EvaluationOutcome, MonthlyEvaluator
from .locks import ClientLocks
from .periods import utc_now
from .schemas import CLIENT_SNAPSHOT_SCHEMA
from .state import AuditEntry, CashbackRedemption, ClientLoyaltyState
from .stores import ClientStore, UnitSource

logger = logging.getLogger(__name__)

DEFAULT_ACTOR = "system"


def _as_int(value, what: str) -> int:
    """Coerce an operator-supplied delta to int, rejecting non-numeric input."""
    if isinstance(value, bool):
        raise InvalidAdjustment(f"{what} must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidAdjustment(f"{what} must be numeric, got {value!r}") from None
    if number != number or number in (float("inf"), float("-inf")):
        raise InvalidAdjustment(f"{what} must be finite, got {value!r}")
    return int(number)


class LoyaltyService:
    """
    Trigger surface and manual overrides for the loyalty tier engine.

    All writers share one ClientLocks registry, so an "evaluate now" call,
    an override and the scheduled batch never interleave on one client.
    Every override appends an AuditEntry separate from evaluation history.
    """

    def __init__(
        self,
        store: ClientStore,
        unit_source: UnitSource,
        config: Optional[LoyaltyConfig] = None,
        max_workers: int = 1,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            store: Persistence collaborator
            unit_source: Billable-unit record collaborator
            config: LoyaltyConfig instance. Uses DEFAULT_CONFIG if None.
            max_workers: Worker pool size for batch evaluation
            clock: Returns the current time
        """
        self.store = store
        self.unit_source = unit_source
        self.config = config or DEFAULT_CONFIG
        self.clock = clock
        self.locks = ClientLocks()

        self.evaluator = MonthlyEvaluator(
            store, unit_source, self.config, locks=self.locks, clock=clock
        )
        self.batch = BatchRunner(self.evaluator, store, max_workers=max_workers, clock=clock)
        self.resetter = CounterResetter(store, locks=self.locks, clock=clock)
        self.rollout = RolloutInitializer(store, self.config, locks=self.locks)
        self.classifier = TierClassifier(self.config)
        self.ledger = ProtectionLedger(self.config)

    # === Scheduled triggers ===

    def evaluate_client(self, client_id: str, period: Optional[str] = None) -> EvaluationOutcome:
        """Evaluate one client now. Raises ClientNotFound for unknown ids."""
        return self.evaluator.evaluate(client_id, period)

    def evaluate_all_enrolled_clients(self, period: Optional[str] = None) -> BatchReport:
        return self.batch.run(period)

    def reset_monthly_counters(self, closing_period: Optional[str] = None) -> int:
        return self.resetter.reset(closing_period)

    def rollout_enroll_all(self, tier=None, when: Optional[datetime] = None) -> int:
        return self.rollout.rollout(tier, when)

    # === Enrollment and unit tracking ===

    def enroll_client(self, client_id: str, actor: str = DEFAULT_ACTOR) -> ClientLoyaltyState:
        """
        Enroll a single client on Casual with an all-zero loyalty state.

        Raises:
            ClientNotFound: Unknown client
            InvalidAdjustment: Client already enrolled
        """
        now = self.clock()
        with self.locks.hold(client_id):
            state = self.store.load(client_id)
            if state.is_enrolled:
                raise InvalidAdjustment(f"Client {client_id} is already enrolled")
            enrolled = ClientLoyaltyState(
                client_id=state.client_id,
                name=state.name,
                tier_effective_date=now,
                counter_reset_at=now,
                enrolled_date=now,
                audit_log=list(state.audit_log),
            )
            enrolled.audit_log.append(
                AuditEntry("enroll", "Enrolled in loyalty program", actor, now)
            )
            self.store.save(enrolled)
        logger.info("Enrolled client %s on %s", client_id, enrolled.current_tier.value)
        return enrolled

    def add_units(self, client_id: str, units: int = 1) -> int:
        """
        Add billable units to the current month's counter.

        Unenrolled clients are not tracked.

        Returns:
            The updated counter (0 for unenrolled clients)
        """
        units = _as_int(units, "units")
        if units <= 0:
            raise InvalidAdjustment(f"units must be positive, got {units}")
        with self.locks.hold(client_id):
            state = self.store.load(client_id)
            if not state.is_enrolled:
                logger.info("Client %s not enrolled; ignoring %d unit(s)", client_id, units)
                return 0
            state.current_month_units += units
            self.store.save(state)
        logger.debug("Client %s current month units now %d", client_id, state.current_month_units)
        return state.current_month_units

    # === Manual overrides ===

    def set_tier(self, client_id: str, tier, reason: str, actor: str = DEFAULT_ACTOR) -> ClientLoyaltyState:
        """Force a client's tier. Protection and history are left as they are."""
        new_tier = Tier.parse(tier)
        now = self.clock()
        with self.locks.hold(client_id):
            state = self.store.load(client_id)
            old_tier = state.current_tier
            if new_tier is not old_tier:
                state.previous_tier = old_tier
            state.current_tier = new_tier
            state.tier_effective_date = now
            state.audit_log.append(
                AuditEntry(
                    "set_tier",
                    reason or "Manual admin override",
                    actor,
                    now,
                    {"old_tier": old_tier.value, "new_tier": new_tier.value},
                )
            )
            self.store.save(state)
        logger.info(
            "Tier override for client %s: %s -> %s by %s (%s)",
            client_id, old_tier.value, new_tier.value, actor, reason,
        )
        return state

    def adjust_protection_points(
        self, client_id: str, delta, reason: str, actor: str = DEFAULT_ACTOR
    ) -> ClientLoyaltyState:
        """Add or remove protection points. The balance is clamped at 0."""
        delta = _as_int(delta, "Protection point adjustment")
        now = self.clock()
        with self.locks.hold(client_id):
            state = self.store.load(client_id)
            old_points = state.protection.points
            requested = old_points + delta
            new_points = max(0, requested)
            clamped = new_points != requested
            if clamped:
                logger.warning(
                    "Protection points for client %s clamped: %d %+d -> %d",
                    client_id, old_points, delta, new_points,
                )
            state.protection.points = new_points
            if state.protection.protection_type is None and new_points > 0:
                state.protection.protection_type = state.current_tier
            state.audit_log.append(
                AuditEntry(
                    "adjust_protection_points",
                    reason or "Manual admin adjustment",
                    actor,
                    now,
                    {
                        "old_points": old_points,
                        "new_points": new_points,
                        "adjustment": delta,
                        "clamped": clamped,
                    },
                )
            )
            self.store.save(state)
        return state

    def adjust_protection_months(
        self, client_id: str, delta, reason: str, actor: str = DEFAULT_ACTOR
    ) -> ClientLoyaltyState:
        """Add or remove banked months, clamped to [0, max_protection_months]."""
        delta = _as_int(delta, "Protection month adjustment")
        now = self.clock()
        cap = self.config.max_protection_months
        with self.locks.hold(client_id):
            state = self.store.load(client_id)
            old_months = state.protection.months
            requested = old_months + delta
            new_months = max(0, min(cap, requested))
            clamped = new_months != requested
            if clamped:
                logger.warning(
                    "Protection months for client %s clamped to [0, %d]: %d %+d -> %d",
                    client_id, cap, old_months, delta, new_months,
                )
            state.protection.months = new_months
            if state.protection.protection_type is None and new_months > 0:
                state.protection.protection_type = state.current_tier
            state.audit_log.append(
                AuditEntry(
                    "adjust_protection_months",
                    reason or "Manual admin adjustment",
                    actor,
                    now,
                    {
                        "old_months": old_months,
                        "new_months": new_months,
                        "adjustment": delta,
                        "clamped": clamped,
                        "protection_type": (
                            state.protection.protection_type.value
                            if state.protection.protection_type
                            else "none"
                        ),
                    },
                )
            )
            self.store.save(state)
        return state

    def apply_cashback(
        self, client_id: str, amount, reference: Optional[str] = None, actor: str = DEFAULT_ACTOR
    ) -> ClientLoyaltyState:
        """
        Redeem cashback against an invoice.

        Raises:
            InvalidAdjustment: Amount not positive or above the balance
        """
        try:
            amount = round(float(amount), 2)
        except (TypeError, ValueError):
            raise InvalidAdjustment(f"Cashback amount must be numeric, got {amount!r}") from None
        if not amount > 0:
            raise InvalidAdjustment("Cashback amount must be positive")

        now = self.clock()
        with self.locks.hold(client_id):
            state = self.store.load(client_id)
            balance = state.cashback_balance
            if amount > balance:
                raise InvalidAdjustment(
                    f"Insufficient cashback balance for client {client_id}: "
                    f"requested {amount:.2f}, available {balance:.2f}"
                )
            state.cashback_balance = round(balance - amount, 2)
            state.cashback_redemptions.append(CashbackRedemption(amount, reference, now))
            state.audit_log.append(
                AuditEntry(
                    "apply_cashback",
                    f"Applied to {reference}" if reference else "Cashback applied",
                    actor,
                    now,
                    {
                        "amount": amount,
                        "reference": reference,
                        "previous_balance": balance,
                        "new_balance": state.cashback_balance,
                    },
                )
            )
            self.store.save(state)
        logger.info("Applied %.2f cashback for client %s (%s)", amount, client_id, reference)
        return state

    # === Reads ===

    def client_summary(self, client_id: str) -> dict:
        """Tier, pricing, protection and cashback status for one client."""
        state = self.store.load(client_id)
        definition = self.config.tier(state.current_tier)
        last = state.monthly_history.latest(1)
        return {
            "client_id": state.client_id,
            "client_name": state.name,
            "tier": state.current_tier.value,
            "previous_tier": state.previous_tier.value if state.previous_tier else None,
            "tier_effective_date": state.tier_effective_date,
            "price_per_unit": definition.price_per_unit,
            "discount_pct": definition.discount_pct,
            "protection": {
                "type": state.protection.protection_type.value if state.protection.protection_type else "none",
                "months_held": state.protection.months,
                "current_points": state.protection.points,
                "points_needed_for_next": self.ledger.points_needed_for_next(
                    state.protection, state.current_tier
                ),
                "max_months": self.config.max_protection_months,
            },
            "cashback_balance": state.cashback_balance,
            "current_month_units": state.current_month_units,
            "projected_tier": self.classifier.classify(state.current_month_units).value,
            "last_month": last[0].to_dict() if last else None,
            "lifetime_units_billed": state.lifetime_units_billed,
            "meets_lifetime_minimum": state.meets_lifetime_minimum,
            "enrolled_date": state.enrolled_date,
        }

    def cashback_statement(self, client_id: str) -> dict:
        state = self.store.load(client_id)
        return {
            "client_id": state.client_id,
            "balance": state.cashback_balance,
            "awards": [a.to_dict() for a in state.cashback_awards],
            "redemptions": [r.to_dict() for r in state.cashback_redemptions],
        }

    def monthly_history(self, client_id: str, latest: Optional[int] = None, month: Optional[str] = None):
        """Monthly history entries, newest first when `latest` is given."""
        return self._history(self.store.load(client_id).monthly_history, latest, month)

    def protection_history(self, client_id: str, latest: Optional[int] = None, month: Optional[str] = None):
        return self._history(self.store.load(client_id).protection_history, latest, month)

    @staticmethod
    def _history(log, latest, month):
        if month is not None:
            return log.for_month(month)
        if latest is not None:
            return log.latest(latest)
        return list(log)

    def audit_trail(self, client_id: str) -> list[AuditEntry]:
        return list(self.store.load(client_id).audit_log)

    def snapshot(self) -> pd.DataFrame:
        """One validated row per enrolled client."""
        rows = []
        for client_id in self.store.list_enrolled():
            state = self.store.load(client_id)
            rows.append({
                "CLIENT_ID": state.client_id,
                "NAME": state.name,
                "TIER": state.current_tier.value,
                "PROTECTION_TYPE": (
                    state.protection.protection_type.value if state.protection.protection_type else "none"
                ),
                "PROTECTION_MONTHS": state.protection.months,
                "PROTECTION_POINTS": state.protection.points,
                "CURRENT_MONTH_UNITS": state.current_month_units,
                "LIFETIME_UNITS_BILLED": state.lifetime_units_billed,
                "CASHBACK_BALANCE": state.cashback_balance,
            })
        columns = [
            "CLIENT_ID", "NAME", "TIER", "PROTECTION_TYPE", "PROTECTION_MONTHS",
            "PROTECTION_POINTS", "CURRENT_MONTH_UNITS", "LIFETIME_UNITS_BILLED", "CASHBACK_BALANCE",
        ]
        df = pd.DataFrame(rows, columns=columns)
        df = CLIENT_SNAPSHOT_SCHEMA.validate(df)
        if not df.empty:
            df["PROJECTED_TIER"] = self.classifier.classify_series(df["CURRENT_MONTH_UNITS"])
        else:
            df["PROJECTED_TIER"] = pd.Series(dtype=object)
        return df

    def clients_by_tier(self, tier) -> pd.DataFrame:
        tier = Tier.parse(tier)
        df = self.snapshot()
        return df[df["TIER"] == tier.value].sort_values("NAME").reset_index(drop=True)

    def analytics(self) -> dict:
        """Program-wide statistics over enrolled clients."""
        df = self.snapshot()
        distribution = df["TIER"].value_counts().reindex([t.value for t in Tier], fill_value=0)
        total = len(df)
        return {
            "total_clients": total,
            "tier_distribution": {tier: int(count) for tier, count in distribution.items()},
            "protection": {
                "clients_with_protection": int((df["PROTECTION_MONTHS"] > 0).sum()),
                "total_protection_months": int(df["PROTECTION_MONTHS"].sum()),
            },
            "current_month": {
                "total_units": int(df["CURRENT_MONTH_UNITS"].sum()),
                "average_units_per_client": (
                    round(float(df["CURRENT_MONTH_UNITS"].mean()), 2) if total else 0.0
                ),
            },
            "lifetime": {
                "total_units_billed": int(df["LIFETIME_UNITS_BILLED"].sum()),
                "outstanding_cashback": round(float(df["CASHBACK_BALANCE"].sum()), 2),
            },
        }

"""
Month-level operations across all clients.

- BatchRunner: evaluate every enrolled client for a period
- CounterResetter: zero the in-progress monthly unit counters
- RolloutInitializer: one-time enrollment of every not-yet-enrolled client
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

import pandas as pd

from .config import DEFAULT_CONFIG, LoyaltyConfig, Tier
from .errors import ClientNotFound, PersistenceFailure
from .evaluator import EVALUATED, FAILED, SKIPPED, EvaluationOutcome, MonthlyEvaluator
from .locks import ClientLocks
from .periods import previous_period, utc_now, validate_period
from .schemas import BATCH_REPORT_SCHEMA
from .stores import ClientStore

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    """
    Outcomes of one batch run with per-status tallies.

    Attributes:
        period: Month the batch closed
        outcomes: One EvaluationOutcome per enrolled client
    """

    period: str
    started_at: datetime
    outcomes: List[EvaluationOutcome] = field(default_factory=list)
    finished_at: Optional[datetime] = None

    def _count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def evaluated(self) -> int:
        return self._count(EVALUATED)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def errors(self) -> int:
        return self._count(FAILED)

    @property
    def failed_ids(self) -> List[str]:
        """Clients to retry once the cause is fixed."""
        return [o.client_id for o in self.outcomes if o.status == FAILED]

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_frame(self) -> pd.DataFrame:
        """One validated row per client outcome."""
        columns = list(EvaluationOutcome(client_id="", period=self.period, status=SKIPPED).to_row())
        df = pd.DataFrame([o.to_row() for o in self.outcomes], columns=columns)
        return BATCH_REPORT_SCHEMA.validate(df)

    def summary(self) -> str:
        """Human-readable summary."""
        return (
            f"[{self.period}] monthly evaluation\n"
            f"  Total clients: {self.total}\n"
            f"  Evaluated:     {self.evaluated}\n"
            f"  Skipped:       {self.skipped}\n"
            f"  Errors:        {self.errors}"
        )

    def tier_changes(self) -> pd.DataFrame:
        """Evaluated clients whose tier moved this period."""
        df = self.to_frame()
        moved = (df["STATUS"] == EVALUATED) & (df["TIER"] != df["PREVIOUS_TIER"])
        return df[moved][["CLIENT_ID", "PREVIOUS_TIER", "TIER", "PROTECTION_USED", "CASHBACK_AWARDED"]]


class BatchRunner:
    """
    Evaluate every enrolled client once for a period.

    Per-client failures are recorded and the batch moves on. Clients are
    independent, so an optional worker pool may evaluate several at once;
    the evaluator's per-client lock keeps any one client serialized.

    Re-running for the same period is safe: clients already archived for
    it come back as skipped ("already_evaluated").
    """

    def __init__(
        self,
        evaluator: MonthlyEvaluator,
        store: ClientStore,
        max_workers: int = 1,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            evaluator: MonthlyEvaluator used for every client
            store: Persistence collaborator (lists enrolled clients)
            max_workers: Size of the worker pool; 1 runs sequentially
            clock: Returns the current time
        """
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.evaluator = evaluator
        self.store = store
        self.max_workers = max_workers
        self.clock = clock

    def run(self, period: Optional[str] = None) -> BatchReport:
        """
        Evaluate all enrolled clients.

        Args:
            period: Month being closed ("YYYY-MM"). Defaults to the month
                before the current one.

        Returns:
            BatchReport with one outcome per enrolled client
        """
        started = self.clock()
        period = validate_period(period or previous_period(started))
        client_ids = self.store.list_enrolled()
        report = BatchReport(period=period, started_at=started)

        logger.info(
            "Monthly evaluation for %s starting: %d enrolled client(s), %d worker(s)",
            period, len(client_ids), self.max_workers,
        )

        if self.max_workers == 1:
            for client_id in client_ids:
                report.outcomes.append(self._evaluate_one(client_id, period))
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    executor.submit(self._evaluate_one, client_id, period): client_id
                    for client_id in client_ids
                }
                by_id = {}
                for future in as_completed(futures):
                    by_id[futures[future]] = future.result()
            report.outcomes.extend(by_id[client_id] for client_id in client_ids)

        report.finished_at = self.clock()
        logger.info(
            "Monthly evaluation for %s complete: total=%d evaluated=%d skipped=%d errors=%d",
            period, report.total, report.evaluated, report.skipped, report.errors,
        )
        return report

    def _evaluate_one(self, client_id: str, period: str) -> EvaluationOutcome:
        outcome = self.evaluator.safe_evaluate(client_id, period)
        logger.debug("Client %s: %s", client_id, outcome.describe())
        return outcome


class CounterResetter:
    """
    Zero `current_month_units` for every enrolled client.

    Must run strictly after the batch that closed the month being reset;
    the scheduler owns that ordering. Clients with no archive entry for
    the closing period are still reset, with a warning. A client that
    cannot be loaded or saved is logged and listed in `failed_ids`; the
    rest are still reset.
    """

    def __init__(
        self,
        store: ClientStore,
        locks: Optional[ClientLocks] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.locks = locks or ClientLocks()
        self.clock = clock
        self.failed_ids: List[str] = []

    def reset(self, closing_period: Optional[str] = None) -> int:
        """
        Reset counters.

        Args:
            closing_period: Month the preceding batch closed. Defaults to
                the month before the current one.

        Returns:
            Number of clients reset
        """
        now = self.clock()
        closing_period = validate_period(closing_period or previous_period(now))
        reset = 0
        unevaluated = []
        self.failed_ids = []

        for client_id in self.store.list_enrolled():
            with self.locks.hold(client_id):
                try:
                    state = self.store.load(client_id)
                    if closing_period not in state.evaluated_periods and state.current_month_units:
                        unevaluated.append(client_id)
                    state.current_month_units = 0
                    state.counter_reset_at = now
                    self.store.save(state)
                except PersistenceFailure as exc:
                    logger.error("Counter reset failed for client %s: %s", client_id, exc)
                    self.failed_ids.append(client_id)
                    continue
                reset += 1

        if unevaluated:
            logger.warning(
                "Reset %d client(s) with unevaluated units for %s: %s",
                len(unevaluated), closing_period, ", ".join(unevaluated),
            )
        if self.failed_ids:
            logger.error(
                "Counters not reset for %d client(s): %s",
                len(self.failed_ids), ", ".join(self.failed_ids),
            )
        logger.info("Reset monthly counters for %d client(s)", reset)
        return reset


class RolloutInitializer:
    """
    Enroll every client that is not yet enrolled onto the rollout tier.

    Guarded by `enrolled_date is None`, so running it again touches only
    clients added since the last run.
    """

    def __init__(
        self,
        store: ClientStore,
        config: Optional[LoyaltyConfig] = None,
        locks: Optional[ClientLocks] = None,
    ):
        self.store = store
        self.config = config or DEFAULT_CONFIG
        self.locks = locks or ClientLocks()
        self.failed_ids: List[str] = []

    def rollout(self, tier: Optional[Tier] = None, when: Optional[datetime] = None) -> int:
        """
        Enroll all unenrolled clients.

        Args:
            tier: Starting tier. Defaults to the configured rollout tier.
            when: Enrollment date. Defaults to the configured rollout date.

        Returns:
            Number of clients enrolled
        """
        tier = Tier.parse(tier) if tier is not None else self.config.rollout_tier
        when = when or self.config.rollout_datetime
        enrolled = 0
        self.failed_ids = []

        for client_id in self.store.list_all():
            with self.locks.hold(client_id):
                try:
                    state = self.store.load(client_id)
                    if state.is_enrolled:
                        continue
                    state.enrolled_date = when
                    state.current_tier = tier
                    state.tier_effective_date = when
                    state.counter_reset_at = when
                    state.protection.protection_type = tier
                    state.is_rollout = True
                    self.store.save(state)
                except ClientNotFound:
                    continue
                except PersistenceFailure as exc:
                    logger.error("Rollout failed for client %s: %s", client_id, exc)
                    self.failed_ids.append(client_id)
                    continue
                enrolled += 1

        if self.failed_ids:
            logger.error(
                "Rollout skipped %d unreadable client(s): %s",
                len(self.failed_ids), ", ".join(self.failed_ids),
            )
        logger.info("Rollout enrolled %d client(s) on %s as of %s", enrolled, tier.value, when.isoformat())
        return enrolled

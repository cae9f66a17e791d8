"""
Job runner for the scheduled loyalty runs.

Single entry point for month-end evaluation, counter reset and rollout.
"""

import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import pandas as pd

from loyalty.batch import BatchReport
from loyalty.evaluator import EvaluationOutcome
from loyalty.periods import previous_period, utc_now
from loyalty.service import LoyaltyService
from loyalty.stores import CsvUnitSource, InMemoryUnitSource, JsonClientStore

from .config import JobConfig
from .logger import RunLogger

logger = logging.getLogger(__name__)


class JobRunner:
    """
    Wires a LoyaltyService over file-backed collaborators for the scheduler.

    Usage:
        runner = JobRunner(JobConfig.from_yaml("jobs/configs/production.yaml"))

        # First of the month: close last month, then zero the counters
        report, reset = runner.run_month_end()

        # One-off
        runner.evaluate("client-42", "2026-03")
    """

    def __init__(
        self,
        config: Optional[JobConfig] = None,
        base_path: Optional[Path] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize runner.

        Args:
            config: JobConfig to run with (defaults for every field if None)
            base_path: Base path relative config paths resolve against
            clock: Returns the current time
        """
        self.config = config or JobConfig()
        self.base_path = base_path
        self.clock = clock

        self.store = JsonClientStore(JobConfig.resolve(self.config.store_dir, base_path))
        if self.config.units_csv:
            self.unit_source = CsvUnitSource(JobConfig.resolve(self.config.units_csv, base_path))
        else:
            self.unit_source = InMemoryUnitSource()

        self.service = LoyaltyService(
            self.store,
            self.unit_source,
            config=self.config.load_loyalty_config(base_path),
            max_workers=self.config.max_workers,
            clock=clock,
        )
        self.run_logger = RunLogger(JobConfig.resolve(self.config.logs_dir, base_path))

    def generate_run_id(self) -> str:
        """Generate unique run ID: run_YYYYMMDD_XXXX"""
        date_str = self.clock().strftime("%Y%m%d")
        short_uuid = uuid.uuid4().hex[:4]
        return f"run_{date_str}_{short_uuid}"

    def evaluate_all(self, period: Optional[str] = None) -> BatchReport:
        """Evaluate every enrolled client and log the run."""
        run_id = self.generate_run_id()
        period = period or previous_period(self.clock())
        try:
            report = self.service.evaluate_all_enrolled_clients(period)
        except Exception as e:
            self.run_logger.log_failure(run_id, period, str(e))
            raise
        self.run_logger.log_batch(run_id, report)
        return report

    def run_month_end(self, period: Optional[str] = None) -> tuple[BatchReport, int]:
        """
        Close a month: evaluate every enrolled client, then reset counters.

        The reset only starts once the batch has returned. If the batch
        itself aborts, counters are left untouched. The run log is written
        even when the reset raises.

        Returns:
            (BatchReport, number of counters reset)
        """
        run_id = self.generate_run_id()
        period = period or previous_period(self.clock())
        try:
            report = self.service.evaluate_all_enrolled_clients(period)
        except Exception as e:
            logger.error("Month-end batch for %s aborted; counters not reset", period)
            self.run_logger.log_failure(run_id, period, str(e))
            raise

        reset = None
        try:
            reset = self.service.reset_monthly_counters(period)
        finally:
            self.run_logger.log_batch(
                run_id, report, reset_count=reset,
                reset_failed_ids=self.service.resetter.failed_ids,
            )
        return report, reset

    def evaluate(self, client_id: str, period: Optional[str] = None) -> EvaluationOutcome:
        return self.service.evaluate_client(client_id, period)

    def reset(self, closing_period: Optional[str] = None) -> int:
        return self.service.reset_monthly_counters(closing_period)

    def rollout(self, tier: Optional[str] = None, when: Optional[datetime] = None) -> int:
        return self.service.rollout_enroll_all(tier, when)

    def history(self, client_id: str, latest: Optional[int] = None) -> pd.DataFrame:
        """Monthly history of one client as a validated DataFrame, newest first."""
        state = self.store.load(client_id)
        df = state.monthly_history.to_frame()
        df = df.iloc[::-1].reset_index(drop=True)
        if latest is not None:
            df = df.head(latest)
        return df

    def analytics(self) -> dict:
        return self.service.analytics()

    def list_runs(self) -> pd.DataFrame:
        """
        Get summary of all past runs.

        Returns:
            DataFrame with run history
        """
        return self.run_logger.get_summary_dataframe()

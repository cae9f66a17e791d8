"""
Run logging for the scheduled loyalty jobs.

Writes one JSON log per batch run (completed or errored).
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import pandas as pd

if TYPE_CHECKING:
    from loyalty.batch import BatchReport


class RunLogger:
    """Structured JSON logging for month-end runs."""

    def __init__(self, logs_dir: Path):
        """
        Initialize logger.

        Args:
            logs_dir: Directory to write log files
        """
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def log_batch(
        self,
        run_id: str,
        report: "BatchReport",
        reset_count: Optional[int] = None,
        reset_failed_ids: Optional[list[str]] = None,
    ) -> Path:
        """
        Log a batch evaluation to JSON file.

        Args:
            run_id: Unique run ID
            report: BatchReport from the runner
            reset_count: Clients whose counters were reset after the batch
            reset_failed_ids: Clients whose counters could not be reset

        Returns:
            Path to log file
        """
        log_entry = {
            "run_id": run_id,
            "timestamp": report.started_at.isoformat(),
            "duration_seconds": report.duration_seconds,
            "period": report.period,
            "results": {
                "total": report.total,
                "evaluated": report.evaluated,
                "skipped": report.skipped,
                "errors": report.errors,
                "failed_ids": report.failed_ids,
                "tier_changes": [
                    {
                        "client_id": o.client_id,
                        "from": o.previous_tier.value,
                        "to": o.tier.value,
                    }
                    for o in report.outcomes
                    if o.tier_changed
                ],
                "cashback_awarded": round(sum(o.cashback_awarded for o in report.outcomes), 2),
            },
            "reset_count": reset_count,
            "reset_failed_ids": list(reset_failed_ids or []),
            "status": "ERROR" if report.errors or reset_failed_ids else "OK",
        }

        log_path = self.logs_dir / f"{run_id}.json"
        with open(log_path, "w") as f:
            json.dump(log_entry, f, indent=2, default=str)

        return log_path

    def log_failure(self, run_id: str, period: str, error: str) -> Path:
        """
        Log a run that aborted before producing a report.

        Returns:
            Path to log file
        """
        log_entry = {
            "run_id": run_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "period": period,
            "status": "ABORTED",
            "error": error,
        }

        log_path = self.logs_dir / f"{run_id}.json"
        with open(log_path, "w") as f:
            json.dump(log_entry, f, indent=2)

        return log_path

    def get_all_logs(self) -> list[dict]:
        """
        Load all run logs.

        Returns:
            List of log dictionaries, sorted by file name
        """
        logs = []
        for log_file in sorted(self.logs_dir.glob("run_*.json")):
            with open(log_file) as f:
                logs.append(json.load(f))
        return logs

    def get_summary_dataframe(self) -> pd.DataFrame:
        """
        Get summary of all runs as DataFrame, newest first.
        """
        logs = self.get_all_logs()
        if not logs:
            return pd.DataFrame()

        summary = []
        for log in logs:
            entry = {
                "run_id": log["run_id"],
                "period": log.get("period"),
                "timestamp": log["timestamp"],
                "status": log["status"],
            }

            if "results" in log:
                for key in ["total", "evaluated", "skipped", "errors"]:
                    entry[key] = log["results"].get(key)
                entry["tier_changes"] = len(log["results"].get("tier_changes", []))

            summary.append(entry)

        df = pd.DataFrame(summary)
        return df.sort_values("timestamp", ascending=False)

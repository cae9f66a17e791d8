"""
Scheduled jobs for the loyalty tier engine.

Usage:
    from jobs import JobRunner, JobConfig

    runner = JobRunner(JobConfig.from_yaml("jobs/configs/production.yaml"))
    report, reset = runner.run_month_end()
    print(report.summary())

CLI:
    python -m jobs.run month-end
    python -m jobs.run list
"""

from .config import JobConfig
from .logger import RunLogger
from .runner import JobRunner

__all__ = [
    "JobConfig",
    "JobRunner",
    "RunLogger",
]

#!/usr/bin/env python3
"""
CLI entry point for the scheduled loyalty jobs.

Usage:
    # First of the month: evaluate last month, then reset counters
    python -m jobs.run --config jobs/configs/production.yaml month-end

    # Evaluate one client now
    python -m jobs.run evaluate client-42 --period 2026-03

    # One-time rollout
    python -m jobs.run rollout --tier elite --date 2026-02-02

    # Past runs
    python -m jobs.run list
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from loyalty.errors import LoyaltyError

from .config import JobConfig
from .runner import JobRunner


def build_parser() -> argparse.ArgumentParser:
    """CLI parser."""
    parser = argparse.ArgumentParser(
        description="Loyalty tier engine scheduled jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m jobs.run month-end
  python -m jobs.run --config jobs/configs/production.yaml evaluate-all --period 2026-03
  python -m jobs.run history client-42 --latest 6
  python -m jobs.run analytics
        """,
    )
    parser.add_argument(
        "--config",
        help="Path to job YAML config (defaults apply when omitted)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level.",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    evaluate_all = commands.add_parser("evaluate-all", help="Evaluate every enrolled client")
    evaluate_all.add_argument("--period", help="Month to close (YYYY-MM); defaults to last month")

    evaluate = commands.add_parser("evaluate", help="Evaluate one client now")
    evaluate.add_argument("client_id")
    evaluate.add_argument("--period", help="Month to close (YYYY-MM); defaults to last month")

    reset = commands.add_parser("reset", help="Zero current-month unit counters")
    reset.add_argument("--period", help="Month the preceding batch closed")

    month_end = commands.add_parser("month-end", help="Evaluate all, then reset counters")
    month_end.add_argument("--period", help="Month to close (YYYY-MM); defaults to last month")

    rollout = commands.add_parser("rollout", help="Enroll every unenrolled client")
    rollout.add_argument("--tier", help="Starting tier (defaults to the configured rollout tier)")
    rollout.add_argument("--date", help="Enrollment date YYYY-MM-DD (defaults to the configured date)")

    history = commands.add_parser("history", help="Show a client's monthly history")
    history.add_argument("client_id")
    history.add_argument("--latest", type=int, help="Only the most recent N months")

    commands.add_parser("analytics", help="Program-wide statistics")
    commands.add_parser("list", help="List past runs")

    return parser


def _dispatch(runner: JobRunner, args: argparse.Namespace) -> int:
    if args.command == "evaluate-all":
        report = runner.evaluate_all(args.period)
        print(report.summary())
        return 1 if report.errors else 0

    if args.command == "month-end":
        report, reset = runner.run_month_end(args.period)
        print(report.summary())
        print(f"  Counters reset: {reset}")
        reset_failed = runner.service.resetter.failed_ids
        if reset_failed:
            print(f"  Counters not reset: {', '.join(reset_failed)}")
        return 1 if report.errors or reset_failed else 0

    if args.command == "evaluate":
        outcome = runner.evaluate(args.client_id, args.period)
        print(f"{args.client_id} [{outcome.period}] {outcome.describe()}")
        return 0

    if args.command == "reset":
        print(f"Counters reset: {runner.reset(args.period)}")
        return 0

    if args.command == "rollout":
        when = datetime.fromisoformat(args.date) if args.date else None
        print(f"Clients enrolled: {runner.rollout(args.tier, when)}")
        return 0

    if args.command == "history":
        df = runner.history(args.client_id, args.latest)
        if df.empty:
            print("No history found.")
        else:
            print(df.to_string(index=False))
        return 0

    if args.command == "analytics":
        print(json.dumps(runner.analytics(), indent=2))
        return 0

    if args.command == "list":
        df = runner.list_runs()
        if df.empty:
            print("No runs found.")
        else:
            print(df.to_string(index=False))
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[Iterable[str]] = None) -> int:
    """Program entrypoint."""
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logger = logging.getLogger("jobs.run")

    try:
        if args.config:
            config_path = Path(args.config)
            config = JobConfig.from_yaml(config_path)
            runner = JobRunner(config, base_path=config_path.resolve().parent)
        else:
            runner = JobRunner()
        return _dispatch(runner, args)
    except (LoyaltyError, ValueError) as exc:
        logger.error("%s", exc)
        return 2
    except Exception:
        logger.exception("Unexpected failure running %s.", args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())

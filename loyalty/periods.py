"""Billing period helpers. A period is a calendar month keyed "YYYY-MM"."""

import re
from datetime import datetime, timezone

PERIOD_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def period_of(moment: datetime) -> str:
    """Period containing a timestamp."""
    return f"{moment.year:04d}-{moment.month:02d}"


def previous_period(moment: datetime) -> str:
    """Period before the one containing a timestamp (the month a run closes)."""
    year, month = moment.year, moment.month - 1
    if month == 0:
        year, month = year - 1, 12
    return f"{year:04d}-{month:02d}"


def validate_period(period: str) -> str:
    if not isinstance(period, str) or not re.match(PERIOD_PATTERN, period):
        raise ValueError(f"Period must look like YYYY-MM, got {period!r}")
    return period

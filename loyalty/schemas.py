"""
Data schema definitions for the loyalty tier engine.

Uses Pandera for runtime validation of the DataFrames the engine hands
to operators (history views, batch reports, client snapshots) and of the
unit records it reads from CSV.
"""

from pandera.pandas import Column, Check, DataFrameSchema

from .config import Tier
from .periods import PERIOD_PATTERN

TIER_NAMES = [t.value for t in Tier]


# One row per archived month of a client's monthly history
MONTHLY_HISTORY_SCHEMA = DataFrameSchema(
    {
        "MONTH": Column(str, checks=Check.str_matches(PERIOD_PATTERN)),
        "TIER": Column(str, checks=Check.isin(TIER_NAMES)),
        "UNITS": Column(int, checks=Check.greater_than_or_equal_to(0)),
        "PRICE_PER_UNIT": Column(float, checks=Check.greater_than_or_equal_to(0)),
        "TOTAL_BILLED": Column(float, checks=Check.greater_than_or_equal_to(0)),
        "PROTECTION_AWARDED": Column(bool),
        "PROTECTION_USED": Column(bool),
    },
    strict=False,
    coerce=True,
    description="Archived monthly tier/billing entries for one client"
)


# One row per archived month of a client's protection-point history
PROTECTION_HISTORY_SCHEMA = DataFrameSchema(
    {
        "MONTH": Column(str, checks=Check.str_matches(PERIOD_PATTERN)),
        "TIER": Column(str, checks=Check.isin(TIER_NAMES)),
        "UNITS_SUBMITTED": Column(int, checks=Check.greater_than_or_equal_to(0)),
        "TIER_MINIMUM": Column(int, checks=Check.greater_than_or_equal_to(0)),
        "POINTS_EARNED": Column(int, checks=Check.greater_than_or_equal_to(0)),
        "POINTS_BALANCE_AFTER": Column(int, checks=Check.greater_than_or_equal_to(0)),
        "PROTECTION_AWARDED": Column(bool),
        "PROTECTION_USED": Column(bool),
    },
    strict=False,
    coerce=True,
    description="Archived protection-point entries for one client"
)


# One row per client outcome of a batch run
BATCH_REPORT_SCHEMA = DataFrameSchema(
    {
        "CLIENT_ID": Column(str, nullable=False, unique=True),
        "PERIOD": Column(str, checks=Check.str_matches(PERIOD_PATTERN)),
        "STATUS": Column(str, checks=Check.isin(["evaluated", "skipped", "failed"])),
        "TIER": Column(str, nullable=True, checks=Check.isin(TIER_NAMES)),
        "REASON": Column(str, nullable=True),
        "PENDING_COUNT": Column(int, checks=Check.greater_than_or_equal_to(0)),
        "PROTECTION_USED": Column(bool),
        "PROTECTION_AWARDED": Column(bool),
        "CASHBACK_AWARDED": Column(float, checks=Check.greater_than_or_equal_to(0)),
    },
    strict=False,
    coerce=True,
    description="Per-client outcomes of one monthly evaluation batch"
)


# One row per client, used by analytics and tier listings
CLIENT_SNAPSHOT_SCHEMA = DataFrameSchema(
    {
        "CLIENT_ID": Column(str, nullable=False, unique=True),
        "TIER": Column(str, checks=Check.isin(TIER_NAMES)),
        "PROTECTION_MONTHS": Column(
            int,
            checks=[
                Check.greater_than_or_equal_to(0),
                Check.less_than_or_equal_to(12),  # Loose bound; config caps lower
            ],
        ),
        "PROTECTION_POINTS": Column(int, checks=Check.greater_than_or_equal_to(0)),
        "CURRENT_MONTH_UNITS": Column(int, checks=Check.greater_than_or_equal_to(0)),
        "LIFETIME_UNITS_BILLED": Column(int, checks=Check.greater_than_or_equal_to(0)),
        "CASHBACK_BALANCE": Column(float, checks=Check.greater_than_or_equal_to(0)),
    },
    strict=False,
    coerce=True,
    description="Point-in-time snapshot of enrolled clients"
)


# Billable-unit source records (one row per estimate/project)
UNIT_RECORDS_SCHEMA = DataFrameSchema(
    {
        "RECORD_ID": Column(str, nullable=False),
        "CLIENT_ID": Column(str, nullable=False),
        "PERIOD": Column(str, nullable=False, checks=Check.str_matches(PERIOD_PATTERN)),
        "QTY": Column(
            float,
            nullable=True,  # Missing quantity = not finalized yet
            checks=Check.greater_than_or_equal_to(0),
        ),
    },
    strict=False,
    coerce=True,
    description="Billable-unit records feeding the readiness gate"
)

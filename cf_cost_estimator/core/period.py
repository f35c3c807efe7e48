"""
Billing period calculations.

The billing period is the current calendar month in UTC.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional


@dataclass(frozen=True)
class BillingPeriod:
    """Calendar-month window used as the aggregation range."""
    start: datetime
    end: datetime

    def __post_init__(self):
        """Validate time window is logical."""
        if self.start > self.end:
            raise ValueError("start must be before end")

    @property
    def days(self) -> int:
        """Number of days in the billing month."""
        return days_in_month(self.start)

    def to_dict(self) -> Dict[str, str]:
        return {"start": format_timestamp(self.start), "end": format_timestamp(self.end)}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def days_in_month(now: Optional[datetime] = None) -> int:
    """Return the day count of the UTC calendar month containing ``now``.

    Computed on every call so long-lived processes pick up month changes.
    """
    now = _as_utc(now or utc_now())
    return calendar.monthrange(now.year, now.month)[1]


def current_billing_period(now: Optional[datetime] = None) -> BillingPeriod:
    """Compute the billing period for the month containing ``now``.

    Args:
        now: Reference instant (defaults to the current UTC time)

    Returns:
        BillingPeriod starting on day 1 at 00:00:00.000 and ending on the
        last day of the month at 23:59:59.999, both in UTC
    """
    now = _as_utc(now or utc_now())
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    last_day = datetime(now.year, now.month, days_in_month(now), tzinfo=timezone.utc)
    end = last_day + timedelta(hours=23, minutes=59, seconds=59, milliseconds=999)
    return BillingPeriod(start=start, end=end)


def format_timestamp(value: datetime) -> str:
    """Render a UTC datetime as ISO-8601 with milliseconds and a Z suffix."""
    value = _as_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to already be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

"""
Overage cost formulas.

Every formula is a special case of ``per_unit``: usage above a free limit,
billed at a rate per ``unit_size`` units. The named variants fix the unit:

1. Linear per 1M units - request, row and operation counters
2. Storage per GB - byte-based storage, already converted to GiB
3. Flat per 100K units - products with no included quota
4. Thresholded per 1K units - overage above a (possibly derived) threshold

Arithmetic is done in Decimal so that rates such as $0.015 multiply out
exactly; results are returned as float USD amounts.
"""

from decimal import Decimal
from typing import Optional, Union

PER_MILLION = 1_000_000
PER_100K = 100_000
PER_THOUSAND = 1_000
PER_GB = 1

Number = Union[int, float, Decimal]


def per_unit(
    current: Optional[Number],
    limit: Optional[Number],
    rate: Number,
    unit_size: int,
) -> float:
    """Cost of usage above ``limit``, billed at ``rate`` per ``unit_size`` units.

    Args:
        current: Usage so far (None counts as zero)
        limit: Free allowance (None counts as zero)
        rate: USD per ``unit_size`` units
        unit_size: Number of units the rate applies to

    Returns:
        Non-negative cost in USD

    Raises:
        ValueError: If current or limit is negative, or unit_size is not positive
    """
    if unit_size <= 0:
        raise ValueError(f"unit_size must be > 0: {unit_size}")
    current = _counter("current", current)
    limit = _counter("limit", limit)
    billable = max(Decimal(0), current - limit)
    cost = (billable / Decimal(unit_size)) * _to_decimal(rate)
    return float(cost)


def linear_per_million(current: Optional[Number], limit: Optional[Number], rate_per_1m: Number) -> float:
    """Cost of usage above ``limit``, billed per 1M units."""
    return per_unit(current, limit, rate_per_1m, PER_MILLION)


def storage_per_gb(current_gb: Optional[Number], limit_gb: Optional[Number], rate_per_gb: Number) -> float:
    """Cost of storage above ``limit_gb``, billed per GB-month.

    Raises:
        ValueError: If current_gb or limit_gb is negative
    """
    _counter("current_gb", current_gb)
    _counter("limit_gb", limit_gb)
    return per_unit(current_gb, limit_gb, rate_per_gb, PER_GB)


def flat_per_100k(current: Optional[Number], rate_per_100k: Number) -> float:
    """Cost billed from zero per 100K units (no free tier)."""
    return per_unit(current, 0, rate_per_100k, PER_100K)


def thresholded_per_1k(current: Optional[Number], limit: Optional[Number], rate_per_1k: Number) -> float:
    """Cost of usage above ``limit``, billed per 1K units.

    The caller computes ``limit``; for daily allowances it must already be
    scaled by the days in the current month.
    """
    return per_unit(current, limit, rate_per_1k, PER_THOUSAND)


def _to_decimal(value: Number) -> Decimal:
    # str() keeps float literals such as 0.015 exact
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _counter(name: str, value: Optional[Number]) -> Decimal:
    if value is None:
        return Decimal(0)
    if value < 0:
        raise ValueError(f"{name} cannot be negative: {value}")
    return _to_decimal(value)

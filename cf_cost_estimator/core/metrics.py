"""
Usage metric construction.

Turns raw counters and pre-computed overage costs into immutable
UsageMetric / ProductUsage records.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

BYTES_PER_GB = 1024 ** 3


@dataclass(frozen=True)
class UsageMetric:
    """Single tracked usage dimension with its quota and overage cost."""
    name: str
    current: float
    limit: float
    unit: str
    percentage: float
    overage_cost: float
    rate: Optional[str] = None

    def __post_init__(self):
        """Validate metric values are reasonable."""
        if self.current < 0:
            raise ValueError(f"current cannot be negative for metric '{self.name}'")
        if self.overage_cost < 0:
            raise ValueError(f"overage_cost cannot be negative for metric '{self.name}'")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "current": self.current,
            "limit": self.limit,
            "unit": self.unit,
            "percentage": self.percentage,
            "overageCost": self.overage_cost,
        }
        if self.rate is not None:
            data["rate"] = self.rate
        return data


@dataclass(frozen=True)
class ProductUsage:
    """Usage and overage cost for one product.

    Metrics keep their declaration order, which is the display order.
    """
    product: str
    metrics: Tuple[UsageMetric, ...]
    total_overage_cost: float
    unclassified_requests: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product,
            "metrics": [metric.to_dict() for metric in self.metrics],
            "totalOverageCost": self.total_overage_cost,
            "unclassifiedRequests": self.unclassified_requests,
        }


def build_metric(
    name: str,
    current: float,
    limit: float,
    unit: str,
    rate: Optional[str],
    overage_cost: float,
) -> UsageMetric:
    """Build a usage metric with its percentage of the free limit.

    A limit of zero or below means pay-per-use with no quota, so the
    percentage is reported as 0 regardless of ``current``.

    Args:
        name: Display name of the metric
        current: Usage so far this billing period
        limit: Included free allowance
        unit: Unit label (requests, GB, ms, ...)
        rate: Human-readable overage rate, e.g. "$0.50/1M reads"
        overage_cost: Pre-computed overage cost in USD

    Returns:
        Immutable UsageMetric
    """
    percentage = (current / limit) * 100 if limit > 0 else 0.0
    return UsageMetric(
        name=name,
        current=current,
        limit=limit,
        unit=unit,
        percentage=percentage,
        overage_cost=overage_cost,
        rate=rate,
    )


def build_product_usage(
    product: str,
    metrics: Sequence[UsageMetric],
    unclassified_requests: int = 0,
) -> ProductUsage:
    """Roll metrics up into a ProductUsage, summing overage in declaration order."""
    total_overage_cost = Decimal(0)
    for metric in metrics:
        total_overage_cost += Decimal(str(metric.overage_cost))
    return ProductUsage(
        product=product,
        metrics=tuple(metrics),
        total_overage_cost=float(total_overage_cost),
        unclassified_requests=unclassified_requests,
    )


def get_field(group: Mapping[str, Any], *path: str) -> float:
    """Read a nested numeric field from a raw counter group.

    Missing keys, non-mapping intermediates and None all read as 0 so
    partial upstream payloads degrade to zero-valued metrics.
    """
    value: Any = group
    for key in path:
        if not isinstance(value, Mapping):
            return 0
        value = value.get(key)
    if value is None:
        return 0
    return value


def get_label(group: Mapping[str, Any], *path: str) -> str:
    """Read a nested string dimension, returning "" when absent."""
    value: Any = group
    for key in path:
        if not isinstance(value, Mapping):
            return ""
        value = value.get(key)
    return value if isinstance(value, str) else ""


def sum_field(groups: Optional[Iterable[Mapping[str, Any]]], *path: str) -> float:
    """Sum a nested numeric field across counter groups."""
    return sum((get_field(group, *path) for group in groups or ()), 0)


def max_field(groups: Optional[Iterable[Mapping[str, Any]]], *path: str) -> float:
    """Maximum of a nested numeric field across counter groups (0 if empty)."""
    return max((get_field(group, *path) for group in groups or ()), default=0)


def bytes_to_gb(byte_count: float) -> float:
    """Convert bytes to binary gigabytes (GiB)."""
    return byte_count / BYTES_PER_GB

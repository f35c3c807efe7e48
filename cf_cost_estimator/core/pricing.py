"""
Pricing policy and rate management.

Holds the free-tier limits and overage rates for every tracked dimension of
every product. The policy is immutable and injected into each aggregator.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .overage import per_unit

# Product keys in canonical order, with their display names
PRODUCT_NAMES: Mapping[str, str] = MappingProxyType({
    "r2": "R2 Storage",
    "workers": "Workers",
    "kv": "Workers KV",
    "d1": "D1 Database",
    "images": "Images",
    "ai": "Workers AI",
    "vectorize": "Vectorize",
})

_UNIT_SIZE_LABELS = {
    1_000_000: "1M",
    100_000: "100K",
    1_000: "1K",
    1: "",
}


@dataclass(frozen=True)
class PricingRule:
    """Free allowance and overage rate for one usage dimension.

    ``rate`` applies per ``unit_size`` units above ``free_limit``. When
    ``per_day`` is set, ``free_limit`` is a daily allowance that must be
    scaled by the days in the billing month.
    """
    free_limit: float
    rate: float
    unit_size: int
    rate_unit: str
    per_day: bool = False

    def __post_init__(self):
        """Validate rule values are reasonable."""
        if self.free_limit < 0:
            raise ValueError("free_limit cannot be negative")
        if self.rate < 0:
            raise ValueError("rate cannot be negative")
        if self.unit_size <= 0:
            raise ValueError("unit_size must be > 0")

    def monthly_limit(self, days_in_month: int) -> float:
        if self.per_day:
            return self.free_limit * days_in_month
        return self.free_limit

    def overage(self, current: Optional[float], limit: Optional[float]) -> float:
        """Cost of ``current`` above ``limit`` at this rule's rate and unit size."""
        return per_unit(current, limit, self.rate, self.unit_size)

    @property
    def rate_label(self) -> str:
        """Display string such as "$4.50/1M requests" or "$0.015/GB-month"."""
        amount = f"{self.rate:.2f}" if round(self.rate, 2) == self.rate else f"{self.rate:g}"
        size = _UNIT_SIZE_LABELS.get(self.unit_size, f"{self.unit_size:,}")
        if not size:
            return f"${amount}/{self.rate_unit}"
        return f"${amount}/{size} {self.rate_unit}"


@dataclass(frozen=True)
class ProductPricing:
    """Pricing rules for all dimensions of one product."""
    rules: Mapping[str, PricingRule]

    def __post_init__(self):
        object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))

    def rule(self, name: str) -> PricingRule:
        """Get the pricing rule for a dimension.

        Raises:
            ValueError: If the dimension is not priced
        """
        if name not in self.rules:
            raise ValueError(f"Unknown pricing dimension: {name}")
        return self.rules[name]


@dataclass(frozen=True)
class PricingPolicy:
    """Account-wide pricing: plan base fee plus per-product rules."""
    base_fee: float
    products: Mapping[str, ProductPricing] = field(default_factory=dict)

    def __post_init__(self):
        if self.base_fee < 0:
            raise ValueError("base_fee cannot be negative")
        object.__setattr__(self, "products", MappingProxyType(dict(self.products)))

    def get_pricing(self, product: str) -> ProductPricing:
        """Get pricing for a specific product.

        Args:
            product: Product key (r2, workers, kv, d1, images, ai, vectorize)

        Returns:
            ProductPricing for the product

        Raises:
            ValueError: If product is not supported
        """
        if product not in self.products:
            raise ValueError(f"Unsupported product: {product}")
        return self.products[product]

    def with_rule(self, product: str, name: str, **changes) -> "PricingPolicy":
        """Return a copy of the policy with one rule's fields replaced."""
        pricing = self.get_pricing(product)
        rules: Dict[str, PricingRule] = dict(pricing.rules)
        rules[name] = replace(pricing.rule(name), **changes)
        products = dict(self.products)
        products[product] = ProductPricing(rules)
        return PricingPolicy(base_fee=self.base_fee, products=products)

    def with_base_fee(self, base_fee: Optional[float]) -> "PricingPolicy":
        if base_fee is None:
            return self
        return PricingPolicy(base_fee=base_fee, products=self.products)


# Workers Paid plan: $5/mo base, other products billed on overage
DEFAULT_PRICING = PricingPolicy(
    base_fee=5.0,
    products={
        "workers": ProductPricing({
            "requests": PricingRule(free_limit=10_000_000, rate=0.30, unit_size=1_000_000, rate_unit="requests"),
            "cpu_ms": PricingRule(free_limit=30_000_000, rate=0.02, unit_size=1_000_000, rate_unit="ms"),
        }),
        "r2": ProductPricing({
            "class_a_operations": PricingRule(free_limit=1_000_000, rate=4.50, unit_size=1_000_000, rate_unit="requests"),
            "class_b_operations": PricingRule(free_limit=10_000_000, rate=0.36, unit_size=1_000_000, rate_unit="requests"),
            "storage": PricingRule(free_limit=10, rate=0.015, unit_size=1, rate_unit="GB-month"),
        }),
        "kv": ProductPricing({
            "reads": PricingRule(free_limit=10_000_000, rate=0.50, unit_size=1_000_000, rate_unit="reads"),
            "writes": PricingRule(free_limit=1_000_000, rate=5.00, unit_size=1_000_000, rate_unit="writes"),
            "deletes": PricingRule(free_limit=1_000_000, rate=5.00, unit_size=1_000_000, rate_unit="deletes"),
            "lists": PricingRule(free_limit=1_000_000, rate=5.00, unit_size=1_000_000, rate_unit="lists"),
            "storage": PricingRule(free_limit=1, rate=0.50, unit_size=1, rate_unit="GB-month"),
        }),
        "d1": ProductPricing({
            "rows_read": PricingRule(free_limit=25_000_000_000, rate=0.001, unit_size=1_000_000, rate_unit="rows"),
            "rows_written": PricingRule(free_limit=50_000_000, rate=1.00, unit_size=1_000_000, rate_unit="rows"),
            "storage": PricingRule(free_limit=5, rate=0.75, unit_size=1, rate_unit="GB-month"),
        }),
        "images": ProductPricing({
            # No free tier, billed from the first request
            "requests": PricingRule(free_limit=0, rate=1.00, unit_size=100_000, rate_unit="requests"),
        }),
        "ai": ProductPricing({
            "neurons": PricingRule(free_limit=10_000, rate=0.011, unit_size=1_000, rate_unit="neurons", per_day=True),
        }),
        "vectorize": ProductPricing({
            "queried_dimensions": PricingRule(free_limit=30_000_000, rate=0.01, unit_size=1_000_000, rate_unit="dimensions"),
            "stored_dimensions": PricingRule(free_limit=5_000_000, rate=0.05, unit_size=1_000_000, rate_unit="dim-month"),
        }),
    },
)

"""
Account-level usage aggregation.

Fans out to every product fetcher concurrently, captures each product's
success or failure individually and combines the results into one cost
summary for the current billing period.

Failure semantics:
1. Missing credentials - ConfigurationError, raised before any fetch
2. A product fetch fails - product is None, one ServiceError recorded
3. A product is still pending at the timeout - cancelled, reported as failed
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from ..config.loader import Credentials
from .errors import ConfigurationError
from .metrics import ProductUsage
from .period import BillingPeriod, current_billing_period
from .pricing import PRODUCT_NAMES, PricingPolicy

logger = logging.getLogger(__name__)

ProductFetcher = Callable[[], Awaitable[ProductUsage]]

CANCELLED_MESSAGE = "cancelled"


@dataclass(frozen=True)
class ServiceError:
    """Failure of a single product's fetch."""
    service: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"service": self.service, "message": self.message}


@dataclass(frozen=True)
class BranchOutcome:
    """Result of one product branch: either a usage or an error, never both."""
    product: str
    usage: Optional[ProductUsage] = None
    error: Optional[ServiceError] = None


@dataclass
class AccountUsageSummary:
    """Whole-account cost estimate for one billing period."""
    billing_period: BillingPeriod
    base_fee: float
    total_estimated_cost: float
    r2: Optional[ProductUsage] = None
    workers: Optional[ProductUsage] = None
    kv: Optional[ProductUsage] = None
    d1: Optional[ProductUsage] = None
    images: Optional[ProductUsage] = None
    ai: Optional[ProductUsage] = None
    vectorize: Optional[ProductUsage] = None
    errors: List[ServiceError] = field(default_factory=list)

    @property
    def products(self) -> Dict[str, Optional[ProductUsage]]:
        """Product slots keyed by product key, in canonical order."""
        return {key: getattr(self, key) for key in PRODUCT_NAMES}

    @property
    def total_overage_cost(self) -> float:
        return self.total_estimated_cost - self.base_fee

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            key: usage.to_dict() if usage is not None else None
            for key, usage in self.products.items()
        }
        data["errors"] = [error.to_dict() for error in self.errors]
        data["baseCost"] = self.base_fee
        data["totalEstimatedCost"] = self.total_estimated_cost
        data["billingPeriod"] = self.billing_period.to_dict()
        return data


def check_credentials(credentials: Optional[Credentials]) -> None:
    """Fail fast when the account identifier or API token is absent.

    Raises:
        ConfigurationError: If credentials are missing or incomplete
    """
    if credentials is None:
        raise ConfigurationError("Missing Cloudflare credentials")
    credentials.validate()


async def fetch_all_usage(
    credentials: Optional[Credentials],
    fetchers: Mapping[str, ProductFetcher],
    pricing: PricingPolicy,
    now: Optional[datetime] = None,
    timeout: Optional[float] = None,
) -> AccountUsageSummary:
    """Fetch and aggregate usage for every product concurrently.

    No branch's failure cancels its siblings. The summary is returned even
    when every product failed; only missing credentials raise.

    Args:
        credentials: Cloudflare account id and API token
        fetchers: Async callables keyed by product key, each returning a
            ProductUsage for that product
        pricing: Pricing policy providing the account base fee
        now: Reference instant for the billing period (defaults to UTC now)
        timeout: Optional overall deadline in seconds; products still pending
            when it expires are reported as cancelled

    Returns:
        AccountUsageSummary for the current billing period

    Raises:
        ConfigurationError: If credentials are missing
    """
    check_credentials(credentials)

    unknown = set(fetchers) - set(PRODUCT_NAMES)
    if unknown:
        raise ValueError(f"Unknown products: {sorted(unknown)}")

    outcomes = await _gather_outcomes(fetchers, timeout)
    return summarize_outcomes(outcomes, pricing, now)


async def _gather_outcomes(
    fetchers: Mapping[str, ProductFetcher],
    timeout: Optional[float],
) -> List[BranchOutcome]:
    tasks: Dict[str, asyncio.Future] = {
        product: asyncio.ensure_future(fetcher())
        for product, fetcher in fetchers.items()
    }
    if not tasks:
        return []

    try:
        _, pending = await asyncio.wait(tasks.values(), timeout=timeout)
    except asyncio.CancelledError:
        for task in tasks.values():
            task.cancel()
        raise

    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)

    outcomes = []
    for product, task in tasks.items():
        outcomes.append(_branch_outcome(product, task, task in pending))
    return outcomes


def _branch_outcome(product: str, task: asyncio.Future, timed_out: bool) -> BranchOutcome:
    service = PRODUCT_NAMES[product]
    if timed_out or task.cancelled():
        logger.warning("%s fetch cancelled before completing", service)
        return BranchOutcome(product, error=ServiceError(service, CANCELLED_MESSAGE))

    exc = task.exception()
    if exc is not None:
        logger.error("%s fetch failed: %s", service, exc, exc_info=exc)
        return BranchOutcome(product, error=ServiceError(service, str(exc) or type(exc).__name__))

    return BranchOutcome(product, usage=task.result())


def summarize_outcomes(
    outcomes: List[BranchOutcome],
    pricing: PricingPolicy,
    now: Optional[datetime] = None,
) -> AccountUsageSummary:
    """Combine per-product outcomes into the account summary.

    Products and errors are laid out in canonical product order so the
    result does not depend on completion order.
    """
    by_product = {outcome.product: outcome for outcome in outcomes}

    usages: Dict[str, Optional[ProductUsage]] = {}
    errors: List[ServiceError] = []
    overage_costs = Decimal(0)
    for product in PRODUCT_NAMES:
        outcome = by_product.get(product)
        if outcome is None:
            continue
        if outcome.error is not None:
            errors.append(outcome.error)
        usages[product] = outcome.usage
        if outcome.usage is not None:
            overage_costs += Decimal(str(outcome.usage.total_overage_cost))

    return AccountUsageSummary(
        billing_period=current_billing_period(now),
        base_fee=pricing.base_fee,
        total_estimated_cost=float(Decimal(str(pricing.base_fee)) + overage_costs),
        errors=errors,
        **usages,
    )

"""
Per-product fetch-then-aggregate entry points.

Each method fetches the product's counter groups for the current billing
month (concurrently when the product needs two datasets) and hands them
to the matching pure aggregator.
"""

import asyncio
from datetime import datetime
from typing import Dict, Optional

import httpx

from ..config.loader import Credentials
from ..core.account import AccountUsageSummary, ProductFetcher, check_credentials, fetch_all_usage
from ..core.metrics import ProductUsage
from ..core.period import current_billing_period, format_timestamp
from ..core.pricing import PricingPolicy
from ..core import products
from .graphql import AnalyticsClient


class UsageFetcher:
    """Fetches and aggregates usage for every product of one account."""

    def __init__(self, client: AnalyticsClient, pricing: PricingPolicy, now: Optional[datetime] = None):
        self.client = client
        self.pricing = pricing
        self.now = now

    def _since(self) -> str:
        return f'datetime_geq: "{format_timestamp(current_billing_period(self.now).start)}"'

    async def r2(self) -> ProductUsage:
        operations, storage = await asyncio.gather(
            self.client.account_groups(
                "r2OperationsAdaptiveGroups", self._since(), "dimensions { actionType } sum { requests }"
            ),
            self.client.account_groups(
                "r2StorageAdaptiveGroups", self._since(), "max { payloadSize, metadataSize, objectCount }"
            ),
        )
        return products.aggregate_r2(operations, storage, self.pricing.get_pricing("r2"), now=self.now)

    async def workers(self) -> ProductUsage:
        period = current_billing_period(self.now)
        window = (
            f'datetime_geq: "{format_timestamp(period.start)}", '
            f'datetime_leq: "{format_timestamp(period.end)}"'
        )
        invocations = await self.client.account_groups(
            "workersInvocationsAdaptive", window, "sum { requests } quantiles { cpuTimeP50 }"
        )
        return products.aggregate_workers(invocations, self.pricing.get_pricing("workers"), now=self.now)

    async def kv(self) -> ProductUsage:
        operations, storage = await asyncio.gather(
            self.client.account_groups(
                "kvOperationsAdaptiveGroups", self._since(), "dimensions { actionType } sum { requests }"
            ),
            self.client.account_groups(
                "kvStorageAdaptiveGroups", self._since(), "max { byteCount, keyCount }"
            ),
        )
        return products.aggregate_kv(operations, storage, self.pricing.get_pricing("kv"), now=self.now)

    async def d1(self) -> ProductUsage:
        # D1 datasets are filtered by date rather than datetime
        since = f'date_geq: "{current_billing_period(self.now).start.date().isoformat()}"'
        analytics, storage = await asyncio.gather(
            self.client.account_groups(
                "d1AnalyticsAdaptiveGroups", since, "dimensions { databaseId } sum { rowsRead, rowsWritten }"
            ),
            self.client.account_groups(
                "d1StorageAdaptiveGroups", since, "dimensions { databaseId } max { databaseSizeBytes }"
            ),
        )
        return products.aggregate_d1(analytics, storage, self.pricing.get_pricing("d1"), now=self.now)

    async def images(self) -> ProductUsage:
        requests = await self.client.account_groups(
            "imagesRequestsAdaptiveGroups", self._since(), "sum { requests }"
        )
        return products.aggregate_images(requests, self.pricing.get_pricing("images"), now=self.now)

    async def ai(self) -> ProductUsage:
        inference = await self.client.account_groups(
            "aiInferenceAdaptiveGroups", self._since(), "sum { totalNeurons }"
        )
        return products.aggregate_ai(inference, self.pricing.get_pricing("ai"), now=self.now)

    async def vectorize(self) -> ProductUsage:
        queries, storage = await asyncio.gather(
            self.client.account_groups(
                "vectorizeV2QueriesAdaptiveGroups", self._since(), "sum { queriedVectorDimensions }"
            ),
            self.client.account_groups(
                "vectorizeV2StorageAdaptiveGroups", self._since(), "max { storedVectorDimensions }"
            ),
        )
        return products.aggregate_vectorize(queries, storage, self.pricing.get_pricing("vectorize"), now=self.now)

    def fetchers(self) -> Dict[str, ProductFetcher]:
        """Product fetchers keyed by product key, for fetch_all_usage."""
        return {
            "r2": self.r2,
            "workers": self.workers,
            "kv": self.kv,
            "d1": self.d1,
            "images": self.images,
            "ai": self.ai,
            "vectorize": self.vectorize,
        }


async def estimate_account_usage(
    credentials: Credentials,
    pricing: PricingPolicy,
    timeout: Optional[float] = None,
    now: Optional[datetime] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> AccountUsageSummary:
    """Fetch every product's usage from the analytics API and summarize it.

    Credentials are checked before any client is opened. The HTTP client
    lives only for the duration of this call.

    Raises:
        ConfigurationError: If credentials are missing
    """
    check_credentials(credentials)
    async with AnalyticsClient(credentials.account_id, credentials.api_token, http_client=http_client) as client:
        fetcher = UsageFetcher(client, pricing, now=now)
        return await fetch_all_usage(credentials, fetcher.fetchers(), pricing, now=now, timeout=timeout)

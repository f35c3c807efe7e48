"""
Cloudflare GraphQL Analytics client.

Thin async transport over httpx. Every failure mode of the upstream call
(transport error, non-2xx status, invalid JSON, GraphQL error payload) is
raised as UpstreamFetchError; missing nested data is returned as empty.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ..core.errors import ConfigurationError, UpstreamFetchError

logger = logging.getLogger(__name__)

GRAPHQL_ENDPOINT = "https://api.cloudflare.com/client/v4/graphql"
DEFAULT_TIMEOUT = 30.0
GROUP_LIMIT = 9999


class AnalyticsClient:
    """Async client for the Cloudflare GraphQL Analytics API.

    The underlying ``httpx.AsyncClient`` may be supplied by the caller, who
    then owns its lifecycle; otherwise the client creates one and closes it
    on ``aclose()`` or when used as an async context manager.
    """

    def __init__(
        self,
        account_id: str,
        api_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
        endpoint: str = GRAPHQL_ENDPOINT,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize the analytics client.

        Args:
            account_id: Cloudflare account tag (required)
            api_token: API token with Analytics read permission (required)
            http_client: Optional shared httpx.AsyncClient
            endpoint: GraphQL endpoint URL
            timeout: Per-request timeout in seconds when creating a client

        Raises:
            ConfigurationError: If account_id or api_token is missing/empty
        """
        if not account_id or not account_id.strip():
            raise ConfigurationError("account_id is required and cannot be empty")
        if not api_token or not api_token.strip():
            raise ConfigurationError("api_token is required and cannot be empty")

        self.account_id = account_id
        self.endpoint = endpoint
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "AnalyticsClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def query(self, query: str) -> Dict[str, Any]:
        """Execute a GraphQL query and return the decoded response body.

        Raises:
            UpstreamFetchError: On transport failure, non-2xx status, invalid
                JSON or a GraphQL error payload
        """
        logger.debug("GraphQL query: %s", " ".join(query.split()))
        try:
            response = await self._client.post(self.endpoint, headers=self._headers, json={"query": query})
        except httpx.HTTPError as e:
            raise UpstreamFetchError(f"Cloudflare API request failed: {e}") from e

        if not response.is_success:
            logger.error("Cloudflare API error: %s %s", response.status_code, response.text)
            raise UpstreamFetchError(
                f"Cloudflare API error: {response.status_code} - {response.text[:200]}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamFetchError(f"Invalid JSON from Cloudflare API: {e}") from e

        if not isinstance(payload, dict):
            raise UpstreamFetchError("Unexpected response from Cloudflare API")

        errors = payload.get("errors")
        if errors:
            logger.error("GraphQL errors: %s", errors)
            first = errors[0]
            message = first.get("message") if isinstance(first, Mapping) else str(first)
            raise UpstreamFetchError(f"GraphQL error: {message}")

        return payload

    async def account_groups(self, dataset: str, filter_clause: str, selection: str) -> List[Dict[str, Any]]:
        """Fetch the counter groups of one account-scoped analytics dataset.

        Args:
            dataset: Dataset node name, e.g. "r2OperationsAdaptiveGroups"
            filter_clause: GraphQL filter body, e.g. 'datetime_geq: "..."'
            selection: Field selection, e.g. "sum { requests }"

        Returns:
            The dataset's groups, or an empty list when absent
        """
        payload = await self.query(build_account_query(self.account_id, dataset, filter_clause, selection))
        groups = extract_account_data(payload).get(dataset)
        return groups if isinstance(groups, list) else []


def build_account_query(account_id: str, dataset: str, filter_clause: str, selection: str) -> str:
    return (
        "{ viewer { "
        f'accounts(filter: {{ accountTag: "{account_id}" }}) {{ '
        f"{dataset}(filter: {{ {filter_clause} }}, limit: {GROUP_LIMIT}) {{ {selection} }} "
        "} } }"
    )


def extract_account_data(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Return the first account node of a response, or {} when absent."""
    data = payload.get("data") if isinstance(payload, Mapping) else None
    viewer = data.get("viewer") if isinstance(data, Mapping) else None
    accounts = viewer.get("accounts") if isinstance(viewer, Mapping) else None
    if not accounts or not isinstance(accounts, list) or not isinstance(accounts[0], dict):
        return {}
    return accounts[0]

"""HTTP client for the community lowest-price service."""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from community_low.client.config import ClientConfig
from community_low.errors import UpstreamUnavailable
from community_low.utils.prices import parse_price

logger = logging.getLogger(__name__)


class CommunityPriceClient:
    """Reads lowest prices and posts report batches."""

    def __init__(self, config: ClientConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_lowest(self, prod_id: str) -> Optional[Decimal]:
        """
        Fetch the community lowest price for a product.

        Any failure degrades to None so the caller falls back to the
        observed price alone.

        Args:
            prod_id: Product identifier

        Returns:
            Lowest price, or None if absent or unreachable
        """
        if not self.config.base_url:
            return None

        try:
            client = await self._get_client()
            response = await client.get("/lowest", params={"prodId": prod_id})
        except httpx.HTTPError as e:
            logger.warning(f"Community lookup for {prod_id} failed: {e}")
            return None

        if not response.is_success:
            logger.debug(f"Community lookup for {prod_id} returned {response.status_code}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Community lookup for {prod_id} returned invalid JSON")
            return None
        if not isinstance(data, dict):
            return None

        value = data.get("minPrice")
        if value is None:
            value = data.get("min")  # legacy field name
        return parse_price(value)

    async def post_batch(self, items: List[Dict[str, Any]]) -> None:
        """
        Send a report batch to the ingestion endpoint.

        Raises:
            UpstreamUnavailable: on transport failure or a non-2xx response
        """
        try:
            client = await self._get_client()
            response = await client.post("/ingest", json={"items": items})
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"ingest request failed: {e}") from e

        if not response.is_success:
            raise UpstreamUnavailable(
                f"ingest returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        logger.debug(f"Posted {len(items)} report(s)")

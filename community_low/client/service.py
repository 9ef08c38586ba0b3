"""Client-facing price lookup: official + community prices, reporting side effect."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from community_low.client.community_api import CommunityPriceClient
from community_low.client.config import ClientConfig
from community_low.client.resolver import resolve
from community_low.client.uploader import BatchedReportUploader
from community_low.utils.clock import isoformat_z, utcnow
from community_low.utils.prices import parse_price, price_to_wire

logger = logging.getLogger(__name__)


class PriceRequest(BaseModel):
    """Request from the page-scraping collaborator."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    prod_id: str = Field(alias="prodId", min_length=1)
    promo_override: Optional[Any] = Field(default=None, alias="promoOverride")
    page_type: Optional[str] = Field(default=None, alias="pageType")

    @field_validator("prod_id", mode="before")
    @classmethod
    def coerce_prod_id(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v.strip() if isinstance(v, str) else v


@dataclass(frozen=True)
class OfficialPrice:
    """Prices from an official source; this deployment has none."""

    promo: Optional[Decimal] = None
    low: Optional[Decimal] = None


OfficialPriceSource = Callable[[str], Awaitable[OfficialPrice]]


async def no_official_price(prod_id: str) -> OfficialPrice:
    return OfficialPrice()


class PriceLookupService:
    """Answers ``getPrice`` requests and queues report-worthy observations."""

    def __init__(
        self,
        config: ClientConfig,
        client: Optional[CommunityPriceClient] = None,
        uploader: Optional[BatchedReportUploader] = None,
        official_source: OfficialPriceSource = no_official_price,
    ):
        self.config = config
        self.client = client or CommunityPriceClient(config)
        self.uploader = uploader or BatchedReportUploader(config, self.client.post_batch)
        self.official_source = official_source

    async def get_price(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """
        Resolve prices for one product page.

        Args:
            message: ``{prodId, promoOverride?, pageType?}``

        Returns:
            ``{ok, promo, low, communityLow, effectiveLow, source}`` or
            ``{ok: False, error}``
        """
        try:
            request = PriceRequest.model_validate(message)
        except ValidationError:
            return {"ok": False, "error": "Missing prodId"}

        try:
            return await self._get_price(request)
        except Exception as e:
            logger.exception(f"Price lookup failed for {request.prod_id}")
            return {"ok": False, "error": str(e)}

    async def _get_price(self, request: PriceRequest) -> Dict[str, Any]:
        official = await self.official_source(request.prod_id)

        # A supplied override wins even when unparseable, which suppresses the report
        if request.promo_override is not None:
            observed = parse_price(request.promo_override)
        else:
            observed = official.promo

        community_low = None
        if self.config.use_community:
            community_low = await self.client.fetch_lowest(request.prod_id)

        resolution = resolve(observed, community_low, official.low)

        if self.config.use_community and resolution.should_report:
            self.uploader.enqueue({
                "prodId": request.prod_id,
                "price": price_to_wire(observed),
                "pageType": request.page_type,
                "observedAt": isoformat_z(utcnow()),
            })

        return {
            "ok": True,
            "promo": price_to_wire(official.promo),
            "low": price_to_wire(official.low),
            "communityLow": price_to_wire(community_low),
            "effectiveLow": price_to_wire(resolution.effective_lowest),
            "source": resolution.source,
        }

    async def close(self) -> None:
        """Flush pending reports and close the HTTP client."""
        await self.uploader.aclose()
        await self.client.close()

"""Trust scoring: distinct-reporter corroboration of an exact price."""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from community_low.config import settings
from community_low.db.models import PriceReport, TrustLevel

logger = logging.getLogger(__name__)


class TrustScorer:
    """
    Classifies a reported price as Trusted or Unverified.

    A price is Trusted once at least ``min_reporters`` distinct reporter
    tokens reported exactly that price for the product inside the trailing
    window. Must be called after the current report has been committed, so
    the report always counts toward its own total.
    """

    def __init__(
        self,
        window: Optional[timedelta] = None,
        min_reporters: Optional[int] = None,
    ):
        self.window = window or timedelta(hours=settings.trust_window_hours)
        self.min_reporters = min_reporters or settings.trusted_min_reporters

    async def count_reporters(
        self,
        session: AsyncSession,
        prod_id: str,
        price: Decimal,
        now: datetime,
    ) -> int:
        """Count distinct reporters of ``price`` within ``[now - window, now]``."""
        result = await session.execute(
            select(func.count(func.distinct(PriceReport.reporter_token))).where(
                PriceReport.prod_id == prod_id,
                PriceReport.price == price,
                PriceReport.created_at >= now - self.window,
                PriceReport.created_at <= now,
            )
        )
        return result.scalar_one() or 0

    async def classify(
        self,
        session: AsyncSession,
        prod_id: str,
        price: Decimal,
        now: datetime,
    ) -> TrustLevel:
        """
        Classify a just-recorded report.

        Args:
            session: Database session
            prod_id: Product identifier
            price: Normalised reported price
            now: Time the report was recorded

        Returns:
            TrustLevel.TRUSTED or TrustLevel.UNVERIFIED
        """
        # The committed report counts for itself even if the query races a prune.
        count = max(await self.count_reporters(session, prod_id, price, now), 1)
        level = TrustLevel.TRUSTED if count >= self.min_reporters else TrustLevel.UNVERIFIED
        logger.debug(
            f"Trust for {prod_id} @ {price}: {count} distinct reporter(s) -> {level.name}"
        )
        return level

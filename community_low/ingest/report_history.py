"""Append-only history of accepted client reports."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from community_low.db.models import PriceReport

logger = logging.getLogger(__name__)


class ReportHistory:
    """Writes and prunes ``price_reports`` rows. Rows are never updated."""

    async def record(
        self,
        session: AsyncSession,
        prod_id: str,
        price: Decimal,
        reporter_token: str,
        now: datetime,
        page_type: Optional[str] = None,
        client_observed_at: Optional[str] = None,
    ) -> PriceReport:
        """Durably write one report (commits)."""
        report = PriceReport(
            prod_id=prod_id,
            price=price,
            reporter_token=reporter_token,
            page_type=page_type,
            client_observed_at=client_observed_at,
            created_at=now,
        )
        session.add(report)
        await session.commit()
        return report

    async def prune(self, session: AsyncSession, older_than: datetime) -> int:
        """
        Delete reports created before ``older_than``.

        Reports outside the trust window can no longer corroborate anything.

        Returns:
            Number of deleted rows
        """
        result = await session.execute(
            delete(PriceReport).where(PriceReport.created_at < older_than)
        )
        await session.commit()
        deleted = result.rowcount or 0
        logger.info(f"Pruned {deleted} report(s) older than {older_than.isoformat()}")
        return deleted


# Global history instance
report_history = ReportHistory()

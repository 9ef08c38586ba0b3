"""Ingestion pipeline: validate -> record -> classify -> conditional update -> invalidate."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from community_low import metrics
from community_low.cache.price_cache import PriceCache, price_cache
from community_low.config import settings
from community_low.errors import IngestValidationError, UnsupportedDatabaseError
from community_low.ingest.anonymizer import ReporterAnonymizer, reporter_anonymizer
from community_low.ingest.price_store import PriceStore, price_store
from community_low.ingest.report_history import ReportHistory, report_history
from community_low.ingest.trust import TrustScorer
from community_low.logging_config import get_logger
from community_low.utils.clock import utcnow
from community_low.utils.prices import normalize_price, to_decimal

logger = logging.getLogger(__name__)


class ReportItem(BaseModel):
    """One item of an ingest payload."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    prod_id: str = Field(alias="prodId", min_length=1, max_length=128)
    price: Decimal
    page_type: Optional[str] = Field(default=None, alias="pageType")
    observed_at: Optional[str] = Field(default=None, alias="observedAt")

    @field_validator("prod_id", mode="before")
    @classmethod
    def coerce_prod_id(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("prodId must be a string")
        if isinstance(v, int):
            v = str(v)
        if isinstance(v, str):
            v = v.strip()
        return v

    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, v: Any) -> Decimal:
        # Left unrounded so the floor sees the reported value
        normalize_price(v)
        return to_decimal(v)

    @field_validator("page_type", "observed_at", mode="before")
    @classmethod
    def coerce_optional_text(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        return str(v)[:64]

    @field_validator("page_type")
    @classmethod
    def clip_page_type(cls, v: Optional[str]) -> Optional[str]:
        return v[:32] if v else v


@dataclass
class IngestResult:
    """Outcome counts for one ingest batch.

    ``processed`` counts items that reached the conflict policy, whether the
    store accepted them or not.
    """

    processed: int = 0
    accepted: int = 0
    skipped: int = 0
    failed: int = 0


class IngestionPipeline:
    """Processes batches of anonymous price reports."""

    def __init__(
        self,
        store: Optional[PriceStore] = None,
        history: Optional[ReportHistory] = None,
        scorer: Optional[TrustScorer] = None,
        cache: Optional[PriceCache] = None,
        anonymizer: Optional[ReporterAnonymizer] = None,
        clock: Callable[[], datetime] = utcnow,
        min_price: Optional[float] = None,
        max_items: Optional[int] = None,
    ):
        self.store = store or price_store
        self.history = history or report_history
        self.scorer = scorer or TrustScorer()
        self.cache = cache or price_cache
        self.anonymizer = anonymizer or reporter_anonymizer
        self.clock = clock
        self.min_price = Decimal(str(settings.min_report_price if min_price is None else min_price))
        self.max_items = max_items or settings.max_ingest_items

    def validate(self, raw: Any) -> ReportItem:
        """
        Parse one raw payload item.

        Raises:
            IngestValidationError: if the item is malformed, lacks a product
                id, or is at or below the minimum price floor
        """
        if not isinstance(raw, dict):
            raise IngestValidationError("item is not an object")
        try:
            item = ReportItem.model_validate(raw)
        except ValidationError as e:
            raise IngestValidationError(
                f"invalid item: {e.error_count()} error(s)"
            ) from e
        if item.price <= self.min_price:
            raise IngestValidationError(f"price {item.price} at or below floor {self.min_price}")
        return item.model_copy(update={"price": normalize_price(item.price)})

    async def ingest_one(self, session: AsyncSession, item: ReportItem, reporter_token: str) -> bool:
        """Record, classify and apply a single validated report.

        Returns:
            True if the authoritative record changed
        """
        log = get_logger(__name__, prod_id=item.prod_id)
        self.store.ensure_supported(session)

        now = self.clock()
        await self.history.record(
            session,
            prod_id=item.prod_id,
            price=item.price,
            reporter_token=reporter_token,
            now=now,
            page_type=item.page_type,
            client_observed_at=item.observed_at,
        )
        trust_level = await self.scorer.classify(session, item.prod_id, item.price, now)
        accepted = await self.store.try_update(session, item.prod_id, item.price, trust_level, now)
        log.debug(
            f"Report {item.price} classified {trust_level.name}, "
            f"{'accepted' if accepted else 'rejected'}",
            extra={"trust_level": trust_level.name, "page_type": item.page_type},
        )
        if accepted:
            metrics.lowest_price_updates_total.labels(trust_level=trust_level.name.lower()).inc()
            await self.cache.invalidate(item.prod_id)
        return accepted

    async def process_batch(
        self,
        session: AsyncSession,
        items: Iterable[Any],
        raw_identity: Optional[str],
    ) -> IngestResult:
        """
        Process an ingest batch. Per-item failures never abort the batch.

        Args:
            session: Database session
            items: Raw payload items
            raw_identity: Client network identity used for the reporter token

        Returns:
            IngestResult with per-outcome counts
        """
        result = IngestResult()
        reporter_token = self.anonymizer.anonymize(raw_identity)

        for index, raw in enumerate(items):
            if index >= self.max_items:
                result.skipped += 1
                metrics.reports_total.labels(outcome="skipped").inc()
                continue

            try:
                item = self.validate(raw)
            except IngestValidationError as e:
                logger.debug(f"Skipping ingest item {index}: {e}")
                result.skipped += 1
                metrics.reports_total.labels(outcome="skipped").inc()
                continue

            try:
                accepted = await self.ingest_one(session, item, reporter_token)
            except (SQLAlchemyError, OSError, UnsupportedDatabaseError):
                get_logger(__name__, prod_id=item.prod_id).exception("Failed to ingest report")
                await session.rollback()
                result.failed += 1
                metrics.reports_total.labels(outcome="failed").inc()
                continue

            result.processed += 1
            if accepted:
                result.accepted += 1
            metrics.reports_total.labels(outcome="accepted" if accepted else "rejected").inc()

        logger.info(
            f"Ingested batch: processed={result.processed} accepted={result.accepted} "
            f"skipped={result.skipped} failed={result.failed}"
        )
        return result

"""Public lowest-price routes: lookup, snapshot, ingest, health."""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from community_low.api.deps import (
    get_client_identity,
    get_database,
    get_ingestion_pipeline,
    get_price_cache,
    get_price_store,
)
from community_low.cache.price_cache import SNAPSHOT_KEY, PriceCache, lowest_key
from community_low.config import settings
from community_low.errors import TransportFailure
from community_low.ingest.pipeline import IngestionPipeline
from community_low.ingest.price_store import LowestPriceRecord, PriceStore
from community_low.utils.clock import isoformat_z, utcnow
from community_low.utils.prices import price_to_wire

logger = logging.getLogger(__name__)

router = APIRouter(tags=["prices"])

NO_STORE = "no-store"


def lowest_payload(prod_id: str, record: Optional[LowestPriceRecord]) -> Dict[str, Any]:
    """Wire form of a lookup; absence is all-null fields, not an error."""
    if record is None:
        return {"prodId": prod_id, "minPrice": None, "trustLevel": None, "updatedAt": None}
    return {
        "prodId": prod_id,
        "minPrice": price_to_wire(record.price),
        "trustLevel": int(record.trust_level),
        "updatedAt": isoformat_z(record.updated_at),
    }


def _json(payload: Dict[str, Any], cache_control: str, status_code: int = 200) -> JSONResponse:
    response = JSONResponse(payload, status_code=status_code)
    response.headers["Cache-Control"] = cache_control
    return response


@router.get("/health")
async def health():
    """Health check endpoint."""
    return {"ok": True}


@router.get("/lowest")
async def get_lowest(
    prod_id: Optional[str] = Query(None, alias="prodId"),
    db: AsyncSession = Depends(get_database),
    cache: PriceCache = Depends(get_price_cache),
    store: PriceStore = Depends(get_price_store),
):
    """
    Current community lowest price for one product.

    Served from the read-through cache when possible. Only results with a
    price are cached, so a product's first report is visible immediately,
    and a fill is dropped if the product was invalidated mid-lookup.
    """
    prod_id = (prod_id or "").strip()
    if not prod_id:
        return _json({"error": "Missing prodId"}, NO_STORE, status_code=400)

    ttl = settings.lowest_cache_ttl_seconds
    key = lowest_key(prod_id)

    cached = await cache.lookup(key, view="lowest")
    if cached is not None:
        return _json(cached, f"public, max-age={ttl}")

    generation = await cache.generation(prod_id)
    try:
        record = await store.get(db, prod_id)
    except TransportFailure:
        logger.exception(f"Lowest-price lookup failed for {prod_id}, serving no data")
        return _json(lowest_payload(prod_id, None), NO_STORE)

    payload = lowest_payload(prod_id, record)
    if payload["minPrice"] is None:
        return _json(payload, NO_STORE)

    await cache.fill(prod_id, payload, ttl, generation)
    return _json(payload, f"public, max-age={ttl}")


@router.get("/snapshot")
async def get_snapshot(
    db: AsyncSession = Depends(get_database),
    cache: PriceCache = Depends(get_price_cache),
    store: PriceStore = Depends(get_price_store),
):
    """Bulk view of every product with a current record."""
    ttl = settings.snapshot_cache_ttl_seconds

    cached = await cache.lookup(SNAPSHOT_KEY, view="snapshot")
    if cached is not None:
        return _json(cached, f"public, max-age={ttl}")

    try:
        records = await store.snapshot(db)
    except TransportFailure:
        logger.exception("Snapshot query failed, serving empty snapshot")
        return _json({"ok": True, "last": isoformat_z(utcnow()), "prices": {}}, NO_STORE)

    payload = {
        "ok": True,
        "last": isoformat_z(utcnow()),
        "prices": {
            prod_id: {"p": price_to_wire(record.price), "t": int(record.trust_level)}
            for prod_id, record in records.items()
        },
    }
    await cache.store(SNAPSHOT_KEY, payload, ttl)
    return _json(payload, f"public, max-age={ttl}")


@router.post("/ingest")
async def ingest(
    request: Request,
    db: AsyncSession = Depends(get_database),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    """
    Accept a batch of crowd reports.

    ``count`` is the number of items that reached the conflict policy
    (accepted or rejected); ``accepted`` and ``skipped`` break it down.
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None

    if not isinstance(payload, dict) or not isinstance(payload.get("items"), list):
        return _json({"error": "Invalid"}, NO_STORE, status_code=400)

    result = await pipeline.process_batch(
        db,
        payload["items"],
        raw_identity=get_client_identity(request),
    )
    return _json(
        {
            "ok": True,
            "count": result.processed,
            "accepted": result.accepted,
            "skipped": result.skipped,
        },
        NO_STORE,
    )

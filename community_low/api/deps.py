"""FastAPI dependencies."""

from functools import lru_cache
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from community_low.cache.price_cache import PriceCache, price_cache
from community_low.config import settings
from community_low.db.session import get_db
from community_low.ingest.pipeline import IngestionPipeline
from community_low.ingest.price_store import PriceStore, price_store


async def get_database() -> AsyncIterator[AsyncSession]:
    """Dependency for database session."""
    async for session in get_db():
        yield session
        break  # Only yield once, as FastAPI handles the session lifecycle


def get_price_cache() -> PriceCache:
    """Dependency for the read-through cache."""
    return price_cache


def get_price_store() -> PriceStore:
    """Dependency for the authoritative store."""
    return price_store


@lru_cache(maxsize=1)
def get_ingestion_pipeline() -> IngestionPipeline:
    """Dependency for the ingestion pipeline (built once per process)."""
    return IngestionPipeline(store=price_store, cache=price_cache)


def get_client_identity(request: Request) -> str | None:
    """
    Raw network identity of the reporting client.

    Prefers the edge-provided client IP header, then the first hop of
    X-Forwarded-For, then the socket peer. Returns None when nothing usable
    is present; the anonymizer substitutes its sentinel.
    """
    header_value = request.headers.get(settings.client_ip_header)
    if header_value and header_value.strip():
        return header_value.strip()

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    if request.client and request.client.host:
        return request.client.host
    return None

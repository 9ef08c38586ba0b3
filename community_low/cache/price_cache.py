"""Read-through Redis cache for lowest-price lookups and the snapshot view.

Entries are JSON payloads stored with a TTL. Lookups and writes degrade
silently to a miss when Redis is unavailable; an accepted store update
deletes exactly the key that the next lookup of that product reads.

Product lookups are filled under a per-product generation counter: the
reader notes the generation before it queries the store, invalidation bumps
it, and a fill whose generation has moved on is dropped. A lookup racing an
accepted update therefore cannot put the pre-update value back.
"""

import json
import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis

from community_low import metrics
from community_low.config import settings

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "community_low:snapshot"

# KEYS[1] = lookup key, KEYS[2] = generation key
# ARGV[1] = generation TTL
INVALIDATE_SCRIPT = """
redis.call("INCR", KEYS[2])
redis.call("EXPIRE", KEYS[2], ARGV[1])
return redis.call("DEL", KEYS[1])
"""

# KEYS[1] = lookup key, KEYS[2] = generation key
# ARGV[1] = generation seen by the reader, ARGV[2] = payload, ARGV[3] = TTL
FILL_SCRIPT = """
local current = redis.call("GET", KEYS[2]) or ""
if current ~= ARGV[1] then
    return 0
end
redis.call("SET", KEYS[1], ARGV[2], "EX", ARGV[3])
return 1
"""


def lowest_key(prod_id: str) -> str:
    """Cache key for a single-product lookup."""
    return f"community_low:lowest:{prod_id}"


def generation_key(prod_id: str) -> str:
    return f"community_low:gen:{prod_id}"


class PriceCache:
    """Redis-backed read-through cache."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        enabled: Optional[bool] = None,
        client: Optional[redis.Redis] = None,
        generation_ttl_seconds: Optional[int] = None,
    ):
        self.redis_url = redis_url or settings.redis_url
        self.enabled = settings.price_cache_enabled if enabled is None else enabled
        # Must outlive any in-flight fill; an expired counter only drops fills
        self.generation_ttl_seconds = generation_ttl_seconds or settings.lowest_cache_ttl_seconds
        self._redis: Optional[redis.Redis] = client

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = await redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def lookup(self, key: str, view: str = "lowest") -> Optional[Dict[str, Any]]:
        """
        Get a cached payload.

        Args:
            key: Cache key (see ``lowest_key`` / ``SNAPSHOT_KEY``)
            view: Metrics label for the cached view

        Returns:
            Cached payload, or None on a miss or cache failure
        """
        if not self.enabled:
            return None

        try:
            redis_client = await self._get_redis()
            raw = await redis_client.get(key)
        except Exception as e:
            logger.warning(f"Cache lookup failed for {key}: {e}")
            metrics.cache_lookups_total.labels(view=view, result="error").inc()
            return None

        if raw is None:
            metrics.cache_lookups_total.labels(view=view, result="miss").inc()
            return None

        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Discarding undecodable cache entry {key}")
            metrics.cache_lookups_total.labels(view=view, result="error").inc()
            return None

        metrics.cache_lookups_total.labels(view=view, result="hit").inc()
        return payload

    async def store(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> None:
        """Cache a payload for ``ttl_seconds`` unconditionally (snapshot view)."""
        if not self.enabled:
            return

        try:
            redis_client = await self._get_redis()
            await redis_client.set(key, json.dumps(value), ex=ttl_seconds)
        except Exception as e:
            logger.warning(f"Cache store failed for {key}: {e}")

    async def generation(self, prod_id: str) -> Optional[str]:
        """
        Current invalidation generation of a product.

        Read this before querying the store and pass it to ``fill``.

        Returns:
            Generation token ("" if never invalidated), or None when caching
            is disabled or Redis is unreachable, in which case nothing is filled
        """
        if not self.enabled:
            return None

        try:
            redis_client = await self._get_redis()
            current = await redis_client.get(generation_key(prod_id))
        except Exception as e:
            logger.warning(f"Generation read failed for {prod_id}: {e}")
            return None
        return current or ""

    async def fill(
        self,
        prod_id: str,
        value: Dict[str, Any],
        ttl_seconds: int,
        generation: Optional[str],
    ) -> bool:
        """
        Cache a product lookup unless it was invalidated since ``generation``.

        Returns:
            True if the payload was written
        """
        if not self.enabled or generation is None:
            return False

        key = lowest_key(prod_id)
        try:
            redis_client = await self._get_redis()
            written = await redis_client.eval(
                FILL_SCRIPT,
                2,
                key,
                generation_key(prod_id),
                generation,
                json.dumps(value),
                ttl_seconds,
            )
        except Exception as e:
            logger.warning(f"Cache fill failed for {key}: {e}")
            return False

        if written != 1:
            logger.debug(f"Dropped fill of {key}: invalidated during lookup")
            return False
        return True

    async def invalidate(self, prod_id: str) -> bool:
        """
        Drop the cached lookup for a product and bump its generation.

        Returns:
            True if the delete reached Redis (or caching is disabled)
        """
        if not self.enabled:
            return True

        key = lowest_key(prod_id)
        try:
            redis_client = await self._get_redis()
            await redis_client.eval(
                INVALIDATE_SCRIPT,
                2,
                key,
                generation_key(prod_id),
                self.generation_ttl_seconds,
            )
        except Exception as e:
            logger.error(f"Cache invalidation failed for {key}: {e}")
            metrics.cache_invalidations_total.labels(status="failed").inc()
            return False

        metrics.cache_invalidations_total.labels(status="ok").inc()
        logger.debug(f"Invalidated {key}")
        return True


# Global cache instance
price_cache = PriceCache()

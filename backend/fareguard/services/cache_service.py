"""Redis cache for provider offers that cannot be re-fetched by id."""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import redis.asyncio as redis

logger = logging.getLogger(__name__)

# Entries outlive their offer's validity so an expired lookup can still
# report how long ago the offer lapsed.
TTL_GRACE = 60 * 60  # 1 hour


class CacheService:
    """Redis-backed JSON cache. Misses and Redis outages both read as None."""

    def __init__(self, redis_url: str | None = None, client: Any | None = None):
        self._redis_url = redis_url
        self._redis = client

    async def _get_redis(self):
        if self._redis is None and self._redis_url:
            try:
                self._redis = redis.from_url(
                    self._redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                await self._redis.ping()
            except Exception as e:
                logger.warning(f"Redis unavailable, offer cache disabled: {e}")
                self._redis = None
                return None
        return self._redis

    async def get(self, key: str) -> Any | None:
        try:
            r = await self._get_redis()
            if r is None:
                return None
            raw = await r.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        try:
            r = await self._get_redis()
            if r is None:
                return False
            await r.set(key, json.dumps(value, default=str), ex=ttl)
            return True
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False

    async def close(self):
        if self._redis is not None and self._redis_url:
            await self._redis.aclose()
            self._redis = None


class OfferCache:
    """Stores raw provider offers with the moment they stop being bookable."""

    def __init__(self, cache: CacheService):
        self._cache = cache

    @staticmethod
    def offer_key(provider: str, offer_id: str) -> str:
        return f"offers:{provider}:{offer_id}"

    async def put(self, provider: str, offer_id: str, offer: dict, valid_for: timedelta, extra: dict | None = None) -> bool:
        expires_at = datetime.now(timezone.utc) + valid_for
        entry = {"offer": offer, "expires_at": expires_at.isoformat(), **(extra or {})}
        ttl = int(valid_for.total_seconds()) + TTL_GRACE
        return await self._cache.set(self.offer_key(provider, offer_id), entry, ttl)

    async def get(self, provider: str, offer_id: str) -> dict | None:
        return await self._cache.get(self.offer_key(provider, offer_id))

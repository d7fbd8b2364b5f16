import asyncio
import json
from datetime import timedelta

from fareguard.services.cache_service import CacheService, OfferCache


class DownRedis:
    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, key, value, ex=None):
        raise ConnectionError("redis down")


def test_outage_reads_as_miss():
    cache = CacheService(client=DownRedis())
    assert asyncio.run(cache.get("offers:amadeus:x")) is None
    assert asyncio.run(cache.set("offers:amadeus:x", {"a": 1}, 60)) is False


def test_no_redis_configured_reads_as_miss():
    assert asyncio.run(CacheService().get("anything")) is None


def test_offer_entry_outlives_offer_validity(offer_cache, fake_redis):
    asyncio.run(offer_cache.put("amadeus", "abc-1", {"id": "1"}, timedelta(minutes=15), extra={"dictionaries": {}}))

    key = OfferCache.offer_key("amadeus", "abc-1")
    assert key == "offers:amadeus:abc-1"
    assert fake_redis.ttls[key] == 15 * 60 + 60 * 60
    stored = json.loads(fake_redis.store[key])
    assert set(stored) == {"offer", "expires_at", "dictionaries"}

    entry = asyncio.run(offer_cache.get("amadeus", "abc-1"))
    assert entry["offer"] == {"id": "1"}

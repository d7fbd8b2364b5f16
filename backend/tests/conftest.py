import pytest

from fareguard.schemas.travel import PassengerDetails
from fareguard.services.cache_service import CacheService, OfferCache

from payloads import passenger_payload


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache service."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex

    async def aclose(self):
        pass


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def offer_cache(fake_redis):
    return OfferCache(CacheService(client=fake_redis))


@pytest.fixture
def passenger():
    return PassengerDetails(**passenger_payload())

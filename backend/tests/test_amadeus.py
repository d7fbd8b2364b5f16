import asyncio
import json
from datetime import date, datetime, timedelta, timezone

import httpx
import pytest

from fareguard.errors import ExpiredOfferError, UpstreamError, ValidationError
from fareguard.schemas.travel import CreateBookingParams, FlightSearchParams, PassengerDetails
from fareguard.services.cache_service import CacheService, OfferCache
from fareguard.services.providers import amadeus as amadeus_module
from fareguard.services.providers.amadeus import AmadeusProvider
from fareguard.services.providers.amadeus_transform import to_amadeus_traveler, to_canonical_offer
from fareguard.services.providers.passengers import normalize_passenger

from payloads import AMADEUS_DICTIONARIES, amadeus_offer, passenger_payload

TOKEN_PATH = "/v1/security/oauth2/token"
SEARCH_PATH = "/v2/shopping/flight-offers"
PRICING_PATH = "/v1/shopping/flight-offers/pricing"
ORDERS_PATH = "/v1/booking/flight-orders"


class AmadeusStub:
    def __init__(self, search_statuses=None, order_failures=None):
        self.requests: list[httpx.Request] = []
        self.search_statuses = list(search_statuses or [])
        self.order_failures = list(order_failures or [])
        self.tokens_issued = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == TOKEN_PATH:
            self.tokens_issued += 1
            return httpx.Response(200, json={"access_token": f"tok{self.tokens_issued}", "expires_in": 1799})
        if path == SEARCH_PATH:
            if self.search_statuses:
                status = self.search_statuses.pop(0)
                if status != 200:
                    return httpx.Response(status, json={"errors": [{"status": status}]})
            return httpx.Response(200, json={
                "data": [amadeus_offer("1"), amadeus_offer("2", grand_total="980.00", base="800.00")],
                "dictionaries": AMADEUS_DICTIONARIES,
            })
        if path == PRICING_PATH:
            offers = json.loads(request.content)["data"]["flightOffers"]
            return httpx.Response(200, json={"data": {"type": "flight-offers-pricing", "flightOffers": offers}})
        if path == ORDERS_PATH:
            if self.order_failures:
                failure = self.order_failures.pop(0)
                if failure == "timeout":
                    raise httpx.ReadTimeout("order response lost", request=request)
                return httpx.Response(failure, json={"errors": [{"status": failure}]})
            body = json.loads(request.content)["data"]
            return httpx.Response(201, json={"data": {
                "type": "flight-order",
                "id": "eJzTd9f3NjIJdzUGAAp%2fAiY=",
                "associatedRecords": [{"reference": "QWE7RT", "creationDate": "2026-10-19T12:00:00.000"}],
                "flightOffers": body["flightOffers"],
                "travelers": body["travelers"],
            }})
        return httpx.Response(404, json={})

    def calls(self, path):
        return [r for r in self.requests if r.url.path == path]


@pytest.fixture
def no_backoff(monkeypatch):
    async def instant(_seconds):
        return None

    monkeypatch.setattr(amadeus_module.asyncio, "sleep", instant)


def make_provider(stub, offer_cache=None):
    return AmadeusProvider(
        client_id="client",
        client_secret="secret",
        offer_cache=offer_cache,
        transport=httpx.MockTransport(stub),
    )


def search_params(**overrides):
    return FlightSearchParams(origin="YYZ", destination="LHR", departure_date=date(2026, 11, 20), **overrides)


def test_offer_transform_uses_dictionaries_and_defaults():
    offer = to_canonical_offer(amadeus_offer(), AMADEUS_DICTIONARIES, offer_id="abc-1")

    assert offer.id == "abc-1"
    assert offer.number_of_bookable_seats == 9
    assert offer.cabin_class == "premium_economy"
    assert offer.price.taxes == 75.30
    assert offer.validating_airline == "Air Canada"
    segment = offer.outbound[0]
    assert segment.departure.city == "YTO"
    assert segment.aircraft.name == "BOEING 787-9"
    assert segment.baggage.checked == "23KG"
    assert segment.baggage.carry_on == "1 bags"


def test_unknown_cabin_defaults_to_economy():
    raw = amadeus_offer(seats=4)
    raw["travelerPricings"][0]["fareDetailsBySegment"][0]["cabin"] = "SOMETHING_NEW"
    offer = to_canonical_offer(raw)
    assert offer.cabin_class == "economy"
    assert offer.number_of_bookable_seats == 4


def test_traveler_mapping_splits_calling_code(passenger):
    traveler = to_amadeus_traveler(normalize_passenger(passenger), "1")

    assert traveler["name"] == {"firstName": "JANE", "lastName": "DOE"}
    assert traveler["gender"] == "FEMALE"
    phone = traveler["contact"]["phones"][0]
    assert phone["countryCallingCode"] == "1"
    assert phone["number"] == "4165551234"
    assert traveler["documents"][0]["issuanceCountry"] == "CA"
    assert traveler["documents"][0]["holder"] is True


def test_search_caches_offers_under_search_scoped_ids(offer_cache, fake_redis):
    stub = AmadeusStub()
    provider = make_provider(stub, offer_cache)

    offers = asyncio.run(provider.search(search_params(max_price=500)))

    assert len(offers) == 1
    search_id, raw_id = offers[0].id.rsplit("-", 1)
    assert raw_id == "1"
    assert len(search_id) == 12
    assert len(fake_redis.store) == 2

    key = f"offers:amadeus:{offers[0].id}"
    entry = json.loads(fake_redis.store[key])
    assert entry["offer"]["id"] == "1"
    assert entry["dictionaries"]["carriers"] == {"AC": "AIR CANADA"}
    assert fake_redis.ttls[key] == 15 * 60 + 60 * 60

    search = stub.calls(SEARCH_PATH)[0]
    assert search.headers["Authorization"] == "Bearer tok1"
    assert search.url.params["nonStop"] == "false"
    assert search.url.params["maxPrice"] == "500"


def test_cache_miss_reads_as_expired(offer_cache):
    stub = AmadeusStub()
    with pytest.raises(ExpiredOfferError) as exc:
        asyncio.run(make_provider(stub, offer_cache).get_offer_detail("deadbeef0000-1"))
    assert exc.value.offer_id == "deadbeef0000-1"
    assert exc.value.expired_minutes is None
    assert stub.requests == []


def test_offer_detail_reprices_cached_offer(offer_cache):
    stub = AmadeusStub()
    provider = make_provider(stub, offer_cache)

    async def scenario():
        offers = await provider.search(search_params())
        return offers[0].id, await provider.get_offer_detail(offers[0].id)

    offer_id, detail = asyncio.run(scenario())

    assert detail.id == offer_id
    assert detail.expires_at is not None
    assert len(stub.calls(PRICING_PATH)) == 1


def test_booking_prices_then_orders_and_reads_pnr(offer_cache, passenger):
    stub = AmadeusStub()
    provider = make_provider(stub, offer_cache)

    async def scenario():
        offers = await provider.search(search_params())
        return await provider.create_booking(CreateBookingParams(offer_id=offers[0].id, passengers=[passenger]))

    confirmation = asyncio.run(scenario())

    assert confirmation.booking_reference == "QWE7RT"
    assert confirmation.provider.value == "amadeus"
    assert confirmation.total_price.amount == 455.30
    assert confirmation.booking_date == "2026-10-19T12:00:00.000"
    order = json.loads(stub.calls(ORDERS_PATH)[0].content)["data"]
    assert order["travelers"][0]["id"] == "1"
    assert order["flightOffers"][0]["id"] == "1"
    assert stub.tokens_issued == 1


def test_booking_more_passengers_than_priced_travelers(offer_cache, passenger):
    stub = AmadeusStub()
    provider = make_provider(stub, offer_cache)
    extra = PassengerDetails(**passenger_payload(first_name="John"))

    async def scenario():
        offers = await provider.search(search_params())
        await provider.create_booking(CreateBookingParams(offer_id=offers[0].id, passengers=[passenger, extra]))

    with pytest.raises(ValidationError) as exc:
        asyncio.run(scenario())
    assert exc.value.passenger == "John Doe"
    assert stub.calls(ORDERS_PATH) == []


def test_rate_limited_search_is_retried(no_backoff, offer_cache):
    stub = AmadeusStub(search_statuses=[429, 200])
    offers = asyncio.run(make_provider(stub, offer_cache).search(search_params()))
    assert len(offers) == 2
    assert len(stub.calls(SEARCH_PATH)) == 2


def test_revoked_token_is_refreshed(no_backoff, offer_cache):
    stub = AmadeusStub(search_statuses=[401, 200])
    asyncio.run(make_provider(stub, offer_cache).search(search_params()))
    assert stub.tokens_issued == 2
    assert stub.calls(SEARCH_PATH)[-1].headers["Authorization"] == "Bearer tok2"


def test_persistent_server_error_is_not_retried():
    stub = AmadeusStub(search_statuses=[500])
    with pytest.raises(UpstreamError) as exc:
        asyncio.run(make_provider(stub).search(search_params()))
    assert exc.value.status_code == 500
    assert len(stub.calls(SEARCH_PATH)) == 1


def book_first_offer(provider, passenger):
    async def scenario():
        offers = await provider.search(search_params())
        return await provider.create_booking(CreateBookingParams(offer_id=offers[0].id, passengers=[passenger]))

    return asyncio.run(scenario())


def test_order_timeout_is_not_retried(no_backoff, offer_cache, passenger):
    stub = AmadeusStub(order_failures=["timeout"])

    with pytest.raises(UpstreamError) as exc:
        book_first_offer(make_provider(stub, offer_cache), passenger)

    assert exc.value.operation == "booking"
    assert len(stub.calls(ORDERS_PATH)) == 1


def test_rate_limited_order_is_retried(no_backoff, offer_cache, passenger):
    stub = AmadeusStub(order_failures=[429])

    confirmation = book_first_offer(make_provider(stub, offer_cache), passenger)

    assert confirmation.booking_reference == "QWE7RT"
    assert len(stub.calls(ORDERS_PATH)) == 2


def test_search_fails_when_offers_cannot_be_cached():
    class DownRedis:
        async def set(self, key, value, ex=None):
            raise ConnectionError("redis down")

    stub = AmadeusStub()
    provider = make_provider(stub, OfferCache(CacheService(client=DownRedis())))

    with pytest.raises(UpstreamError) as exc:
        asyncio.run(provider.search(search_params()))
    assert exc.value.operation == "search"


def test_booking_an_expired_offer_makes_no_upstream_calls(offer_cache, fake_redis, passenger):
    offer_id = "deadbeef0000-1"
    expired_at = datetime.now(timezone.utc) - timedelta(minutes=20)
    fake_redis.store[OfferCache.offer_key("amadeus", offer_id)] = json.dumps({
        "offer": amadeus_offer("1"),
        "expires_at": expired_at.isoformat(),
        "dictionaries": AMADEUS_DICTIONARIES,
    })
    stub = AmadeusStub()

    with pytest.raises(ExpiredOfferError) as exc:
        asyncio.run(make_provider(stub, offer_cache).create_booking(
            CreateBookingParams(offer_id=offer_id, passengers=[passenger])
        ))

    assert exc.value.offer_id == offer_id
    assert exc.value.expired_minutes in (19, 20)
    assert stub.calls(PRICING_PATH) == []
    assert stub.calls(ORDERS_PATH) == []


def test_booking_an_uncached_offer_is_expired(offer_cache, passenger):
    stub = AmadeusStub()
    with pytest.raises(ExpiredOfferError):
        asyncio.run(make_provider(stub, offer_cache).create_booking(
            CreateBookingParams(offer_id="deadbeef0000-9", passengers=[passenger])
        ))
    assert stub.requests == []

import asyncio
from datetime import date

import pytest

from fareguard.config import Settings
from fareguard.errors import ProviderUnavailableError, UnknownProviderError, UpstreamError
from fareguard.schemas.travel import Capability, FlightSearchParams
from fareguard.services.providers.base import FlightProvider
from fareguard.services.providers.duffel_transform import to_canonical_offer
from fareguard.services.providers.registry import ProviderRegistry, build_registry

from payloads import duffel_offer

PARAMS = FlightSearchParams(origin="YYZ", destination="LHR", departure_date=date(2026, 11, 20))


class FakeProvider(FlightProvider):
    capabilities = frozenset(Capability)

    def __init__(self, name, configured=True, fail_with=None, capabilities=None):
        super().__init__("https://example.invalid")
        self.name = name
        self.configured = configured
        self.fail_with = fail_with
        self.searches = 0
        if capabilities is not None:
            self.capabilities = frozenset(capabilities)

    @property
    def is_configured(self):
        return self.configured

    async def search(self, params):
        self.searches += 1
        if self.fail_with:
            raise self.fail_with
        return [to_canonical_offer(duffel_offer(f"{self.name}_offer"))]

    async def get_offer_detail(self, offer_id):
        return to_canonical_offer(duffel_offer(offer_id))

    async def create_booking(self, params):
        raise NotImplementedError

    async def get_seat_maps(self, offer_id):
        return []


def make_registry(duffel, amadeus, **kwargs):
    kwargs.setdefault("fallback", "amadeus")
    return ProviderRegistry({"duffel": duffel, "amadeus": amadeus}, primary="duffel", **kwargs)


def test_primary_success_does_not_touch_fallback():
    duffel, amadeus = FakeProvider("duffel"), FakeProvider("amadeus")
    result = asyncio.run(make_registry(duffel, amadeus).search_with_fallback(PARAMS))
    assert result.provider.value == "duffel"
    assert result.used_fallback is False
    assert amadeus.searches == 0


def test_upstream_failure_falls_back():
    duffel = FakeProvider("duffel", fail_with=UpstreamError("duffel", "search", status_code=503))
    amadeus = FakeProvider("amadeus")

    result = asyncio.run(make_registry(duffel, amadeus).search_with_fallback(PARAMS))

    assert result.provider.value == "amadeus"
    assert result.used_fallback is True
    assert result.offers[0].id == "amadeus_offer"


def test_unconfigured_primary_falls_back():
    result = asyncio.run(
        make_registry(FakeProvider("duffel", configured=False), FakeProvider("amadeus")).search_with_fallback(PARAMS)
    )
    assert result.used_fallback is True


def test_fallback_disabled_reraises_primary_error():
    error = UpstreamError("duffel", "search")
    amadeus = FakeProvider("amadeus")
    registry = make_registry(FakeProvider("duffel", fail_with=error), amadeus, fallback_enabled=False)

    with pytest.raises(UpstreamError) as exc:
        asyncio.run(registry.search_with_fallback(PARAMS))

    assert exc.value is error
    assert amadeus.searches == 0


def test_fallback_failure_surfaces_primary_error():
    primary_error = UpstreamError("duffel", "search", status_code=500)
    amadeus = FakeProvider("amadeus", fail_with=UpstreamError("amadeus", "search", status_code=429))

    with pytest.raises(UpstreamError) as exc:
        asyncio.run(make_registry(FakeProvider("duffel", fail_with=primary_error), amadeus).search_with_fallback(PARAMS))

    assert exc.value is primary_error
    assert amadeus.searches == 1


def test_explicit_provider_never_falls_back():
    amadeus = FakeProvider("amadeus", fail_with=UpstreamError("amadeus", "search"))
    duffel = FakeProvider("duffel")

    with pytest.raises(UpstreamError):
        asyncio.run(make_registry(duffel, amadeus).search_with_fallback(PARAMS, preferred_provider="amadeus"))

    assert duffel.searches == 0


def test_get_provider_errors():
    registry = make_registry(FakeProvider("duffel"), FakeProvider("amadeus", configured=False))
    with pytest.raises(UnknownProviderError):
        registry.get_provider("sabre")
    with pytest.raises(ProviderUnavailableError):
        registry.get_provider("amadeus")
    assert registry.available_providers() == ["duffel"]


def test_unsupported_capability_reads_as_none():
    amadeus = FakeProvider("amadeus", capabilities={Capability.SEARCH, Capability.BOOKING})
    registry = make_registry(FakeProvider("duffel"), amadeus)

    assert asyncio.run(registry.get_seat_maps("off_1", "amadeus")) is None
    assert asyncio.run(registry.get_seat_maps("off_1", "duffel")) == []
    assert registry.capabilities("amadeus")["seat_maps"] is False


def test_build_registry_reports_unconfigured_providers():
    settings = Settings(
        _env_file=None,
        duffel_access_token="duffel_test",
        amadeus_client_id="",
        amadeus_client_secret="",
    )
    registry = build_registry(settings)

    assert registry.available_providers() == ["duffel"]
    assert registry.primary == "duffel"
    assert registry.fallback == "amadeus"
    assert registry.capabilities("duffel")["seat_maps"] is True
    assert registry.capabilities("amadeus")["seat_maps"] is False

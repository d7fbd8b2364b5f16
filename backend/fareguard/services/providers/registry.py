"""Provider registry: picks an adapter by name or configured priority and falls back on search failures."""

import logging

from fareguard.config import Settings
from fareguard.errors import (
    FareGuardError,
    ProviderUnavailableError,
    UnknownProviderError,
    UpstreamError,
)
from fareguard.schemas.travel import (
    AvailableService,
    BookingConfirmation,
    CancellationResult,
    CanonicalOffer,
    Capability,
    CreateBookingParams,
    FlightSearchParams,
    SearchResult,
    SeatMap,
)
from fareguard.services.cache_service import OfferCache
from fareguard.services.providers.amadeus import AmadeusProvider
from fareguard.services.providers.base import FlightProvider
from fareguard.services.providers.duffel import DuffelProvider

logger = logging.getLogger(__name__)

# Primary failures that send a search to the fallback provider
FALLBACK_ERRORS = (UpstreamError, ProviderUnavailableError)


class ProviderRegistry:
    """Holds every registered adapter, configured or not.

    Only ``search_with_fallback`` ever touches a second provider; offer
    lookups, bookings and cancellations go to exactly the provider named.
    """

    def __init__(
        self,
        providers: dict[str, FlightProvider],
        primary: str,
        fallback: str | None = None,
        fallback_enabled: bool = True,
    ):
        self._providers = providers
        self.primary = primary
        self.fallback = fallback
        self.fallback_enabled = fallback_enabled

    def get_provider(self, name: str | None = None) -> FlightProvider:
        name = name or self.primary
        provider = self._providers.get(name)
        if provider is None:
            raise UnknownProviderError(name)
        if not provider.is_configured:
            raise ProviderUnavailableError(name)
        return provider

    def is_available(self, name: str) -> bool:
        provider = self._providers.get(name)
        return provider is not None and provider.is_configured

    def available_providers(self) -> list[str]:
        return [name for name in self._providers if self.is_available(name)]

    def capabilities(self, name: str) -> dict[str, bool]:
        provider = self._providers.get(name)
        return {cap.value: bool(provider and provider.supports(cap)) for cap in Capability}

    def _fallback_for(self, primary: str) -> str | None:
        if not self.fallback_enabled or not self.fallback or self.fallback == primary:
            return None
        if self.fallback not in self._providers:
            return None
        return self.fallback

    async def search_with_fallback(
        self, params: FlightSearchParams, preferred_provider: str | None = None
    ) -> SearchResult:
        primary = preferred_provider or self.primary
        try:
            logger.info(f"[registry] Searching with primary provider: {primary}")
            offers = await self.get_provider(primary).search(params)
            return SearchResult(offers=offers, provider=primary, used_fallback=False)
        except FALLBACK_ERRORS as primary_error:
            logger.error(f"[registry] Primary provider {primary} failed: {primary_error.message}")

            # An explicitly requested provider never falls back
            fallback = None if preferred_provider else self._fallback_for(primary)
            if fallback is None:
                raise

            try:
                logger.warning(f"[registry] Attempting fallback to: {fallback}")
                offers = await self.get_provider(fallback).search(params)
            except FareGuardError as fallback_error:
                logger.error(f"[registry] Fallback provider {fallback} also failed: {fallback_error.message}")
                raise primary_error
            return SearchResult(offers=offers, provider=fallback, used_fallback=True)

    async def get_offer_detail(self, offer_id: str, provider: str) -> CanonicalOffer:
        logger.info(f"[registry] Getting offer details from {provider}: {offer_id}")
        return await self.get_provider(provider).get_offer_detail(offer_id)

    async def create_booking(self, params: CreateBookingParams, provider: str) -> BookingConfirmation:
        logger.info(f"[registry] Creating booking with {provider}")
        return await self.get_provider(provider).create_booking(params)

    async def cancel_booking(self, booking_reference: str, provider: str) -> CancellationResult:
        logger.info(f"[registry] Cancelling booking {booking_reference} with {provider}")
        return await self.get_provider(provider).cancel_booking(booking_reference)

    async def get_seat_maps(self, offer_id: str, provider: str) -> list[SeatMap] | None:
        adapter = self.get_provider(provider)
        if not adapter.supports(Capability.SEAT_MAPS):
            logger.warning(f"[registry] Provider {provider} does not support seat maps")
            return None
        return await adapter.get_seat_maps(offer_id)

    async def get_available_services(self, offer_id: str, provider: str) -> list[AvailableService] | None:
        adapter = self.get_provider(provider)
        if not adapter.supports(Capability.ANCILLARIES):
            logger.warning(f"[registry] Provider {provider} does not support ancillary services")
            return None
        return await adapter.get_available_services(offer_id)

    async def aclose(self):
        for provider in self._providers.values():
            await provider.close()


def build_registry(settings: Settings, offer_cache: OfferCache | None = None) -> ProviderRegistry:
    providers: dict[str, FlightProvider] = {
        "duffel": DuffelProvider(
            access_token=settings.duffel_access_token,
            base_url=settings.duffel_base_url,
            api_version=settings.duffel_api_version,
            timeout=settings.provider_timeout_seconds,
        ),
        "amadeus": AmadeusProvider(
            client_id=settings.amadeus_client_id,
            client_secret=settings.amadeus_client_secret,
            base_url=settings.amadeus_base_url,
            offer_cache=offer_cache,
            offer_ttl_minutes=settings.amadeus_offer_ttl_minutes,
            timeout=settings.provider_timeout_seconds,
        ),
    }

    primary = settings.primary_flight_provider
    fallback = settings.fallback_flight_provider or next(
        (name for name in providers if name != primary), None
    )
    for name in providers:
        if not providers[name].is_configured:
            logger.warning(f"Flight provider {name} is not configured and will be reported unavailable")

    return ProviderRegistry(
        providers,
        primary=primary,
        fallback=fallback,
        fallback_enabled=settings.enable_provider_fallback,
    )

"""Flight router: provider-agnostic search, offer lookup, booking and ancillaries."""

import logging

from fastapi import APIRouter, Depends

from fareguard.dependencies import Identity, get_identity, get_registry
from fareguard.schemas.travel import (
    BookingConfirmation,
    CancellationResult,
    CanonicalOffer,
    CreateBookingParams,
    FlightSearchParams,
    ProviderName,
    SearchResult,
)
from fareguard.services.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/providers")
async def list_providers(registry: ProviderRegistry = Depends(get_registry)):
    return {
        "primary": registry.primary,
        "fallback": registry.fallback if registry.fallback_enabled else None,
        "providers": [
            {
                "name": p.value,
                "available": registry.is_available(p.value),
                "capabilities": registry.capabilities(p.value),
            }
            for p in ProviderName
        ],
    }


@router.post("/search", response_model=SearchResult)
async def search_flights(
    params: FlightSearchParams,
    provider: ProviderName | None = None,
    registry: ProviderRegistry = Depends(get_registry),
    identity: Identity = Depends(get_identity),
):
    """Search the primary provider, or only ``provider`` when one is named."""
    logger.info(
        f"User {identity.user_id} searching {params.origin}->{params.destination} on {params.departure_date}"
    )
    return await registry.search_with_fallback(params, provider.value if provider else None)


@router.get("/offers/{provider}/{offer_id}", response_model=CanonicalOffer)
async def get_offer(
    provider: ProviderName,
    offer_id: str,
    registry: ProviderRegistry = Depends(get_registry),
    identity: Identity = Depends(get_identity),
):
    return await registry.get_offer_detail(offer_id, provider.value)


@router.get("/offers/{provider}/{offer_id}/seat-maps")
async def get_seat_maps(
    provider: ProviderName,
    offer_id: str,
    registry: ProviderRegistry = Depends(get_registry),
    identity: Identity = Depends(get_identity),
):
    seat_maps = await registry.get_seat_maps(offer_id, provider.value)
    return {
        "supported": seat_maps is not None,
        "seat_maps": [s.model_dump(mode="json") for s in seat_maps or []],
    }


@router.get("/offers/{provider}/{offer_id}/services")
async def get_available_services(
    provider: ProviderName,
    offer_id: str,
    registry: ProviderRegistry = Depends(get_registry),
    identity: Identity = Depends(get_identity),
):
    services = await registry.get_available_services(offer_id, provider.value)
    return {
        "supported": services is not None,
        "services": [s.model_dump(mode="json") for s in services or []],
    }


@router.post("/bookings/{provider}", response_model=BookingConfirmation, status_code=201)
async def create_booking(
    provider: ProviderName,
    params: CreateBookingParams,
    registry: ProviderRegistry = Depends(get_registry),
    identity: Identity = Depends(get_identity),
):
    logger.info(f"User {identity.user_id} booking offer {params.offer_id} with {provider.value}")
    return await registry.create_booking(params, provider.value)


@router.delete("/bookings/{provider}/{reference}", response_model=CancellationResult)
async def cancel_booking(
    provider: ProviderName,
    reference: str,
    registry: ProviderRegistry = Depends(get_registry),
    identity: Identity = Depends(get_identity),
):
    logger.info(f"User {identity.user_id} cancelling booking {reference} with {provider.value}")
    return await registry.cancel_booking(reference, provider.value)

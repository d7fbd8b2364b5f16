"""Amadeus Self-Service adapter: GDS-style search, pricing and flight orders with OAuth2 and rate limiting."""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone

import httpx

from fareguard.errors import ExpiredOfferError, UpstreamError, ValidationError
from fareguard.schemas.travel import (
    BookingConfirmation,
    CanonicalOffer,
    Capability,
    CreateBookingParams,
    FlightSearchParams,
)
from fareguard.services.cache_service import OfferCache
from fareguard.services.providers.amadeus_transform import (
    PASSENGER_TYPE_FROM_AMADEUS,
    build_search_params,
    order_to_confirmation,
    to_amadeus_traveler,
    to_canonical_offer,
)
from fareguard.services.providers.base import FlightProvider, ensure_not_expired, parse_timestamp
from fareguard.services.providers.passengers import normalize_passengers

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
TOKEN_REFRESH_MARGIN = 60  # seconds


class AmadeusProvider(FlightProvider):
    """Adapter for Amadeus Self-Service API.

    Amadeus has no offer-by-id endpoint, so searched offers are kept in the
    offer cache until they are priced or booked.
    """

    name = "amadeus"
    capabilities = frozenset({Capability.SEARCH, Capability.BOOKING})

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str = "https://test.api.amadeus.com",
        offer_cache: OfferCache | None = None,
        offer_ttl_minutes: int = 15,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(base_url, timeout=timeout, transport=transport)
        self._client_id = client_id
        self._client_secret = client_secret
        self._offer_cache = offer_cache
        self._offer_ttl = timedelta(minutes=offer_ttl_minutes)
        self._token: str | None = None
        self._token_expires: datetime | None = None
        self._semaphore = asyncio.Semaphore(10)  # 10 req/s rate limit

    @property
    def is_configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    async def _ensure_token(self):
        """Get or refresh OAuth2 token."""
        if self._token and self._token_expires and datetime.now(timezone.utc) < self._token_expires:
            return

        for attempt in range(MAX_ATTEMPTS):
            try:
                data = await self._request(
                    "authentication",
                    "POST",
                    "/v1/security/oauth2/token",
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                    },
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
            except UpstreamError as e:
                if self._retryable(e) and attempt < MAX_ATTEMPTS - 1:
                    await asyncio.sleep(2 ** attempt)
                    continue
                raise

            token = data.get("access_token")
            if not token:
                logger.error("[amadeus] token response carried no access_token")
                raise UpstreamError(self.name, "authentication")
            self._token = token
            self._token_expires = datetime.now(timezone.utc) + timedelta(
                seconds=data.get("expires_in", 1799) - TOKEN_REFRESH_MARGIN
            )
            logger.info("Amadeus token refreshed")
            return

    @staticmethod
    def _retryable(error: UpstreamError) -> bool:
        # 429 and transport failures (no status) back off and retry
        return error.status_code is None or error.status_code == 429

    async def _call(self, operation: str, method: str, path: str, idempotent: bool = True, **kwargs) -> dict:
        """Authenticated call under the rate-limit semaphore, retrying 429s and transport failures with backoff.

        Non-idempotent calls retry only rejections (401, 429). A transport
        failure may have reached Amadeus, so it is raised as is.
        """
        async with self._semaphore:
            for attempt in range(MAX_ATTEMPTS):
                await self._ensure_token()
                try:
                    return await self._request(
                        operation,
                        method,
                        path,
                        headers={"Authorization": f"Bearer {self._token}"},
                        **kwargs,
                    )
                except UpstreamError as e:
                    if e.status_code == 401:
                        # Token revoked early; force a refresh on the next attempt
                        self._token = None
                    elif e.status_code is None and not idempotent:
                        raise
                    elif not (self._retryable(e) and attempt < MAX_ATTEMPTS - 1):
                        raise
                    if attempt == MAX_ATTEMPTS - 1:
                        raise
                    await asyncio.sleep(2 ** attempt)
        raise UpstreamError(self.name, operation)

    async def _cached_offer(self, offer_id: str) -> dict:
        """Return the cache entry for an offer, checking it has not expired."""
        entry = await self._offer_cache.get(self.name, offer_id) if self._offer_cache else None
        if not entry or not entry.get("offer"):
            logger.warning(f"[amadeus] Offer {offer_id} not found in offer cache")
            raise ExpiredOfferError(offer_id)
        remaining = ensure_not_expired(offer_id, parse_timestamp(entry.get("expires_at")))
        logger.info(f"[amadeus] Offer {offer_id} valid for {remaining} more minutes")
        return entry

    async def _price(self, raw_offer: dict, operation: str) -> dict:
        data = await self._call(
            operation,
            "POST",
            "/v1/shopping/flight-offers/pricing",
            json={"data": {"type": "flight-offers-pricing", "flightOffers": [raw_offer]}},
        )
        priced = (data.get("data") or {}).get("flightOffers") or []
        if not priced:
            logger.error(f"[amadeus] pricing returned no flight offers for {operation}")
            raise UpstreamError(self.name, operation)
        return priced[0]

    async def search(self, params: FlightSearchParams) -> list[CanonicalOffer]:
        data = await self._call("search", "GET", "/v2/shopping/flight-offers", params=build_search_params(params))
        raw_offers = data.get("data") or []
        dictionaries = data.get("dictionaries") or {}
        logger.info(f"[amadeus] Found {len(raw_offers)} offers")

        # Amadeus ids are ordinals within one search; prefix them to stay unique
        search_id = uuid.uuid4().hex[:12]
        expires_at = datetime.now(timezone.utc) + self._offer_ttl
        results = []
        for raw in raw_offers[:params.max_results]:
            offer_id = f"{search_id}-{raw.get('id')}"
            stored = self._offer_cache is not None and await self._offer_cache.put(
                self.name, offer_id, raw, self._offer_ttl, extra={"dictionaries": dictionaries}
            )
            if not stored:
                # An offer that cannot be cached can never be priced or booked
                logger.error(f"[amadeus] Offer cache unavailable, cannot keep offer {offer_id}")
                raise UpstreamError(self.name, "search")
            results.append(to_canonical_offer(raw, dictionaries, offer_id=offer_id, expires_at=expires_at))

        if params.max_price is not None:
            results = [o for o in results if o.price.total <= params.max_price]
        return results

    async def get_offer_detail(self, offer_id: str) -> CanonicalOffer:
        entry = await self._cached_offer(offer_id)
        priced = await self._price(entry["offer"], "offer lookup")
        return to_canonical_offer(
            priced,
            entry.get("dictionaries"),
            offer_id=offer_id,
            expires_at=parse_timestamp(entry.get("expires_at")),
        )

    async def create_booking(self, params: CreateBookingParams) -> BookingConfirmation:
        entry = await self._cached_offer(params.offer_id)
        raw_offer = entry["offer"]

        normalized = normalize_passengers(params.passengers)
        pricings = raw_offer.get("travelerPricings") or []
        travelers = []
        for index, passenger in enumerate(normalized):
            if index >= len(pricings):
                raise ValidationError(
                    f"No matching passenger found in offer for passenger {passenger.full_name}",
                    field="passengers",
                    passenger=passenger.full_name,
                )
            pricing = pricings[index]
            offered_type = PASSENGER_TYPE_FROM_AMADEUS.get(pricing.get("travelerType"))
            if offered_type and offered_type != passenger.type:
                logger.warning(
                    f"[amadeus] {passenger.full_name} declared as {passenger.type} "
                    f"but traveler {pricing.get('travelerId')} was priced as {offered_type}"
                )
            travelers.append(to_amadeus_traveler(passenger, str(pricing.get("travelerId") or index + 1)))

        priced = await self._price(raw_offer, "booking")
        data = await self._call(
            "booking",
            "POST",
            "/v1/booking/flight-orders",
            idempotent=False,
            json={"data": {"type": "flight-order", "flightOffers": [priced], "travelers": travelers}},
        )
        order = data.get("data") or {}
        confirmation = order_to_confirmation(order, params.passengers, entry.get("dictionaries"))
        logger.info(f"[amadeus] Order created: {order.get('id')}, PNR: {confirmation.booking_reference}")
        return confirmation

"""Flight provider contract: every upstream supplier implements this."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

import httpx

from fareguard.errors import ExpiredOfferError, UnsupportedCapabilityError, UpstreamError
from fareguard.schemas.travel import (
    AvailableService,
    BookingConfirmation,
    CancellationResult,
    CanonicalOffer,
    Capability,
    CreateBookingParams,
    FlightSearchParams,
    SeatMap,
)

logger = logging.getLogger(__name__)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def ensure_not_expired(offer_id: str, expires_at: datetime | None, now: datetime | None = None) -> int | None:
    """Raise ExpiredOfferError if the offer's validity timestamp has passed.

    Returns whole minutes left, or None when the provider gave no expiry.
    """
    if expires_at is None:
        return None
    now = now or datetime.now(timezone.utc)
    if expires_at <= now:
        expired_minutes = int((now - expires_at).total_seconds() // 60)
        logger.error(f"Offer {offer_id} expired {expired_minutes} minutes ago at {expires_at.isoformat()}")
        raise ExpiredOfferError(offer_id, expired_minutes)
    return int((expires_at - now).total_seconds() // 60)


class FlightProvider(ABC):
    """Search / price / book contract with optional ancillary capabilities.

    Call sites ask ``supports(capability)`` instead of probing for methods.
    """

    name: str = ""
    capabilities: frozenset[Capability] = frozenset({Capability.SEARCH, Capability.BOOKING})

    def __init__(self, base_url: str, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """False when credentials are missing; the registry then reports the provider unavailable."""

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def _default_headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=self._default_headers(),
                transport=self._transport,
            )
        return self._client

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> dict:
        """Perform one upstream call. Every transport, timeout or HTTP failure becomes UpstreamError."""
        client = await self._get_client()
        logger.info(f"[{self.name}] {method} {path}")
        try:
            resp = await client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"[{self.name}] {operation} failed with {e.response.status_code}: {e.response.text[:2000]}"
            )
            raise UpstreamError(self.name, operation, status_code=e.response.status_code) from e
        except httpx.TimeoutException as e:
            logger.error(f"[{self.name}] {operation} timed out after {self._timeout}s")
            raise UpstreamError(self.name, operation) from e
        except httpx.RequestError as e:
            logger.error(f"[{self.name}] {operation} request error: {e}")
            raise UpstreamError(self.name, operation) from e
        except ValueError as e:
            logger.error(f"[{self.name}] {operation} returned a non-JSON body: {e}")
            raise UpstreamError(self.name, operation) from e

    @abstractmethod
    async def search(self, params: FlightSearchParams) -> list[CanonicalOffer]:
        """An empty list is a successful search with no results."""

    @abstractmethod
    async def get_offer_detail(self, offer_id: str) -> CanonicalOffer:
        ...

    @abstractmethod
    async def create_booking(self, params: CreateBookingParams) -> BookingConfirmation:
        ...

    async def get_seat_maps(self, offer_id: str) -> list[SeatMap]:
        raise UnsupportedCapabilityError(self.name, Capability.SEAT_MAPS.value)

    async def get_available_services(self, offer_id: str) -> list[AvailableService]:
        raise UnsupportedCapabilityError(self.name, Capability.ANCILLARIES.value)

    async def cancel_booking(self, booking_reference: str) -> CancellationResult:
        raise UnsupportedCapabilityError(self.name, Capability.CANCELLATION.value)

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

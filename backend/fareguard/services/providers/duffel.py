"""Duffel adapter: NDC-style offers/orders API with seat maps and ancillaries."""

import logging

import httpx

from fareguard.errors import UpstreamError, ValidationError
from fareguard.schemas.travel import (
    AvailableService,
    BookingConfirmation,
    CancellationResult,
    CanonicalOffer,
    Capability,
    CreateBookingParams,
    FlightSearchParams,
    SeatMap,
    ServiceSelection,
    ServiceSummary,
)
from fareguard.services.providers.base import FlightProvider, ensure_not_expired, parse_timestamp
from fareguard.services.providers.duffel_transform import (
    PASSENGER_TYPE_FROM_DUFFEL,
    build_offer_request,
    order_to_confirmation,
    to_available_service,
    to_canonical_offer,
    to_canonical_seat_map,
    to_duffel_passenger,
)
from fareguard.services.providers.passengers import normalize_passengers

logger = logging.getLogger(__name__)

EXPIRY_WARNING_MINUTES = 2


class DuffelProvider(FlightProvider):
    """Adapter for the Duffel Flights API."""

    name = "duffel"
    capabilities = frozenset({
        Capability.SEARCH,
        Capability.BOOKING,
        Capability.SEAT_MAPS,
        Capability.ANCILLARIES,
        Capability.CANCELLATION,
    })

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.duffel.com",
        api_version: str = "v2",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(base_url, timeout=timeout, transport=transport)
        self._access_token = access_token
        self._api_version = api_version

    @property
    def is_configured(self) -> bool:
        return bool(self._access_token)

    def _default_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Duffel-Version": self._api_version,
            "Authorization": f"Bearer {self._access_token}",
        }

    async def _fetch_offer(self, operation: str, offer_id: str, with_services: bool = False) -> dict:
        params = {"return_available_services": "true"} if with_services else None
        data = await self._request(operation, "GET", f"/air/offers/{offer_id}", params=params)
        return data.get("data") or {}

    async def search(self, params: FlightSearchParams) -> list[CanonicalOffer]:
        request = await self._request(
            "search",
            "POST",
            "/air/offer_requests",
            params={"return_offers": "false"},
            json={"data": build_offer_request(params)},
        )
        offer_request_id = (request.get("data") or {}).get("id")
        if not offer_request_id:
            logger.error("[duffel] offer request response carried no id")
            raise UpstreamError(self.name, "search")
        logger.info(f"[duffel] Created offer request {offer_request_id}")

        offers = await self._request(
            "search",
            "GET",
            "/air/offers",
            params={"offer_request_id": offer_request_id, "sort": "total_amount", "limit": params.max_results},
        )
        raw_offers = offers.get("data") or []
        logger.info(f"[duffel] Found {len(raw_offers)} offers")

        results = [to_canonical_offer(o) for o in raw_offers[:params.max_results]]
        if params.max_price is not None:
            results = [o for o in results if o.price.total <= params.max_price]
        return results

    async def get_offer_detail(self, offer_id: str) -> CanonicalOffer:
        raw = await self._fetch_offer("offer lookup", offer_id)
        # Duffel may accept a stale offer id and only fail at order time
        remaining = ensure_not_expired(offer_id, parse_timestamp(raw.get("expires_at")))
        logger.info(f"[duffel] Offer {offer_id} valid for {remaining} more minutes")
        return to_canonical_offer(raw)

    async def _price_services(
        self, offer_id: str, requested: list[ServiceSelection]
    ) -> tuple[list[dict], float]:
        """Re-price requested services against what the offer currently sells.

        Unknown ids are dropped. If pricing cannot be fetched no services are sent.
        """
        try:
            offer = await self._fetch_offer("service pricing", offer_id, with_services=True)
        except UpstreamError:
            logger.warning("[duffel] Could not fetch service prices, proceeding without services")
            return [], 0.0

        available = {s.get("id"): s for s in offer.get("available_services") or []}
        valid: list[dict] = []
        total = 0.0
        for service in requested:
            match = available.get(service.id)
            if match is None:
                logger.warning(f"[duffel] Service {service.id} no longer offered, excluding from order")
                continue
            line_total = float(match.get("total_amount") or 0) * service.quantity
            total += line_total
            valid.append({"id": service.id, "quantity": service.quantity})
            logger.info(f"[duffel] Service {service.id}: {match.get('total_amount')} x {service.quantity} = {line_total}")
        logger.info(f"[duffel] Valid services: {len(valid)}/{len(requested)}")
        return valid, total

    async def create_booking(self, params: CreateBookingParams) -> BookingConfirmation:
        offer = await self._fetch_offer("booking", params.offer_id)

        remaining = ensure_not_expired(params.offer_id, parse_timestamp(offer.get("expires_at")))
        if remaining is not None and remaining < EXPIRY_WARNING_MINUTES:
            logger.warning(f"[duffel] Offer {params.offer_id} expires in under {EXPIRY_WARNING_MINUTES} minutes")

        normalized = normalize_passengers(params.passengers)
        offer_passengers = offer.get("passengers") or []
        duffel_passengers = []
        for index, passenger in enumerate(normalized):
            if index >= len(offer_passengers):
                raise ValidationError(
                    f"No matching passenger found in offer for passenger {passenger.full_name}",
                    field="passengers",
                    passenger=passenger.full_name,
                )
            offer_passenger = offer_passengers[index]
            offered_type = PASSENGER_TYPE_FROM_DUFFEL.get(offer_passenger.get("type"))
            if offered_type and offered_type != passenger.type:
                logger.warning(
                    f"[duffel] {passenger.full_name} declared as {passenger.type} "
                    f"but offer slot {index} was priced as {offered_type}"
                )
            duffel_passengers.append(to_duffel_passenger(passenger, offer_passenger.get("id")))

        total_amount = float(offer.get("total_amount") or 0)
        summary = None
        services: list[dict] = []
        if params.services:
            services, services_total = await self._price_services(params.offer_id, params.services)
            total_amount += services_total
            summary = ServiceSummary(
                requested=len(params.services),
                honored=len(services),
                dropped=len(params.services) - len(services),
                services_total=round(services_total, 2),
            )

        order_params = {
            "selected_offers": [params.offer_id],
            "passengers": duffel_passengers,
            "payments": [{
                "type": "arc_bsp_cash",
                "amount": f"{total_amount:.2f}",
                "currency": offer.get("total_currency"),
            }],
            "metadata": {
                "contact_email": params.contact_email,
                "contact_phone": params.contact_phone,
            },
        }
        if services:
            order_params["services"] = services

        data = await self._request("booking", "POST", "/air/orders", json={"data": order_params})
        order = data.get("data") or {}
        logger.info(f"[duffel] Order created: {order.get('id')}, PNR: {order.get('booking_reference')}")
        return order_to_confirmation(order, params.passengers, summary)

    async def get_seat_maps(self, offer_id: str) -> list[SeatMap]:
        data = await self._request("seat maps", "GET", "/air/seat_maps", params={"offer_id": offer_id})
        return [to_canonical_seat_map(s) for s in data.get("data") or []]

    async def get_available_services(self, offer_id: str) -> list[AvailableService]:
        offer = await self._fetch_offer("ancillary services", offer_id, with_services=True)
        services = offer.get("available_services") or []
        logger.info(f"[duffel] Found {len(services)} available services for {offer_id}")
        return [to_available_service(s) for s in services]

    async def cancel_booking(self, booking_reference: str) -> CancellationResult:
        """Cancel an order by its Duffel order id (quote, then confirm)."""
        quote = await self._request(
            "cancellation", "POST", "/air/order_cancellations", json={"data": {"order_id": booking_reference}}
        )
        cancellation_id = (quote.get("data") or {}).get("id")
        if not cancellation_id:
            raise UpstreamError(self.name, "cancellation")
        confirmed = await self._request(
            "cancellation", "POST", f"/air/order_cancellations/{cancellation_id}/actions/confirm"
        )
        result = confirmed.get("data") or {}
        refund = result.get("refund_amount")
        return CancellationResult(
            success=bool(result.get("confirmed_at")),
            refund_amount=float(refund) if refund is not None else None,
            refund_currency=result.get("refund_currency"),
        )

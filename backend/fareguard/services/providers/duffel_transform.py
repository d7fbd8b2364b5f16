"""Transforms between Duffel payloads and the canonical model.

Pure functions: they never raise on a well-formed payload and fall back to
safe defaults when an optional field is missing.
"""

import logging
from typing import Any

from fareguard.schemas.travel import (
    Aircraft,
    AvailableService,
    Baggage,
    BookingConfirmation,
    CanonicalOffer,
    FlightSearchParams,
    PassengerDetails,
    Penalty,
    Price,
    Seat,
    SeatMap,
    SeatMapCabin,
    SeatMapRow,
    Segment,
    SegmentEndpoint,
    ServiceSummary,
    Ticket,
    TotalPrice,
)
from fareguard.services.providers.base import parse_timestamp
from fareguard.services.providers.passengers import NormalizedPassenger

logger = logging.getLogger(__name__)

DEFAULT_BOOKABLE_SEATS = 9  # Duffel does not report seat availability
DEFAULT_CHILD_AGE = 8

PASSENGER_TYPE_TO_DUFFEL = {"adult": "adult", "child": "child", "infant": "infant_without_seat"}
PASSENGER_TYPE_FROM_DUFFEL = {v: k for k, v in PASSENGER_TYPE_TO_DUFFEL.items()}

# Duffel already speaks the canonical cabin vocabulary
CABIN_TO_DUFFEL = {
    "economy": "economy",
    "premium_economy": "premium_economy",
    "business": "business",
    "first": "first",
}
CABIN_FROM_DUFFEL = {v: k for k, v in CABIN_TO_DUFFEL.items()}


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _penalty(condition: dict | None, fallback_currency: str) -> Penalty | None:
    if not condition or not condition.get("penalty_amount"):
        return None
    return Penalty(
        amount=_to_float(condition["penalty_amount"]),
        currency=condition.get("penalty_currency") or fallback_currency,
    )


def _endpoint(place: dict | None, terminal: str | None, time: str | None) -> SegmentEndpoint:
    place = place or {}
    name = place.get("name") or ""
    return SegmentEndpoint(
        airport=name,
        code=place.get("iata_code") or "",
        city=place.get("city_name") or (place.get("city") or {}).get("name") or name,
        terminal=terminal,
        time=time or "",
    )


def _baggage_summary(baggages: list[dict] | None) -> Baggage | None:
    if baggages is None:
        return None
    checked = sum(b.get("quantity", 0) or 0 for b in baggages if b.get("type") == "checked")
    carry_on = sum(b.get("quantity", 0) or 0 for b in baggages if b.get("type") == "carry_on")
    return Baggage(checked=f"{checked} bags", carry_on=f"{carry_on} bags")


def to_canonical_segments(slice_: dict | None) -> list[Segment]:
    segments = []
    for seg in (slice_ or {}).get("segments") or []:
        carrier = seg.get("marketing_carrier") or {}
        seg_passengers = seg.get("passengers") or []
        first_pax = seg_passengers[0] if seg_passengers else {}
        aircraft = seg.get("aircraft")

        segments.append(Segment(
            id=seg.get("id") or "",
            airline=carrier.get("name") or carrier.get("iata_code") or "",
            airline_code=carrier.get("iata_code") or "",
            flight_number=seg.get("marketing_carrier_flight_number") or "",
            departure=_endpoint(seg.get("origin"), seg.get("origin_terminal"), seg.get("departing_at")),
            arrival=_endpoint(seg.get("destination"), seg.get("destination_terminal"), seg.get("arriving_at")),
            duration=seg.get("duration") or "",
            stops=len(seg.get("stops") or []),
            cabin_class=CABIN_FROM_DUFFEL.get(first_pax.get("cabin_class"), "economy"),
            aircraft=Aircraft(code=aircraft.get("iata_code") or "", name=aircraft.get("name") or "") if aircraft else None,
            baggage=_baggage_summary(first_pax.get("baggages")),
        ))
    return segments


def _flight_view(raw: dict, *, offer_id: str, cabin_class: str | None) -> CanonicalOffer:
    """Shared by offers and orders: both carry slices, owner, conditions and amounts."""
    slices = raw.get("slices") or []
    outbound = slices[0] if slices else {}
    inbound = slices[1] if len(slices) > 1 else None
    currency = raw.get("total_currency") or ""
    conditions = raw.get("conditions") or {}
    change = conditions.get("change_before_departure") or {}
    refund = conditions.get("refund_before_departure") or {}
    owner = raw.get("owner") or {}

    first_segments = outbound.get("segments") or []
    first_pax = ((first_segments[0].get("passengers") or [{}])[0]) if first_segments else {}

    return CanonicalOffer(
        id=offer_id,
        provider="duffel",
        price=Price(
            total=_to_float(raw.get("total_amount")),
            base=_to_float(raw.get("base_amount")),
            taxes=_to_float(raw.get("tax_amount")),
            currency=currency,
        ),
        outbound=to_canonical_segments(outbound),
        inbound=to_canonical_segments(inbound) if inbound else None,
        validating_airline=owner.get("name") or "",
        validating_airline_code=owner.get("iata_code") or "",
        is_refundable=bool(refund.get("allowed")),
        is_changeable=bool(change.get("allowed")),
        last_ticketing_date=(raw.get("payment_requirements") or {}).get("payment_required_by"),
        expires_at=parse_timestamp(raw.get("expires_at")),
        fare_brand_name=outbound.get("fare_brand_name"),
        cabin_class=CABIN_FROM_DUFFEL.get(cabin_class or first_pax.get("cabin_class"), "economy"),
        cabin_class_marketing=first_pax.get("cabin_class_marketing_name"),
        change_penalty=_penalty(change, currency),
        refund_penalty=_penalty(refund, currency),
        number_of_bookable_seats=DEFAULT_BOOKABLE_SEATS,
        raw_data=raw,
    )


def to_canonical_offer(raw: dict) -> CanonicalOffer:
    return _flight_view(raw, offer_id=raw.get("id") or "", cabin_class=raw.get("cabin_class"))


def order_to_canonical_offer(order: dict) -> CanonicalOffer:
    """Completed orders carry no top-level cabin class; it is read from the first segment."""
    return _flight_view(order, offer_id=order.get("id") or "", cabin_class=None)


def order_to_confirmation(
    order: dict,
    passengers: list[PassengerDetails],
    services: ServiceSummary | None = None,
) -> BookingConfirmation:
    documents = order.get("documents") or []
    return BookingConfirmation(
        booking_reference=order.get("booking_reference") or order.get("id") or "",
        provider="duffel",
        status="confirmed",  # Duffel orders are confirmed synchronously
        flights=order_to_canonical_offer(order),
        passengers=passengers,
        total_price=TotalPrice(
            amount=_to_float(order.get("total_amount")),
            currency=order.get("total_currency") or "",
        ),
        booking_date=order.get("created_at") or "",
        ticketing_deadline=(order.get("payment_status") or {}).get("payment_required_by"),
        tickets=[
            Ticket(passenger_id=doc.get("passenger_id") or "", ticket_number=doc.get("unique_identifier") or "")
            for doc in documents
        ] if documents else None,
        services=services,
        raw_data=order,
    )


# ─── Requests ───


def build_offer_request(params: FlightSearchParams) -> dict:
    slices = [{
        "origin": params.origin,
        "destination": params.destination,
        "departure_date": params.departure_date.isoformat(),
    }]
    if params.return_date:
        slices.append({
            "origin": params.destination,
            "destination": params.origin,
            "departure_date": params.return_date.isoformat(),
        })

    passengers: list[dict] = [{"type": "adult"} for _ in range(params.adults)]
    passengers += [{"type": "child", "age": DEFAULT_CHILD_AGE} for _ in range(params.children)]
    passengers += [{"type": "infant_without_seat"} for _ in range(params.infants)]

    request = {
        "slices": slices,
        "passengers": passengers,
        "cabin_class": CABIN_TO_DUFFEL.get(params.travel_class, "economy"),
    }
    if params.non_stop:
        request["max_connections"] = 0
    return request


def to_duffel_passenger(passenger: NormalizedPassenger, offer_passenger_id: str) -> dict:
    duffel_passenger = {
        "id": offer_passenger_id,
        "type": PASSENGER_TYPE_TO_DUFFEL[passenger.type],
        "title": "mr" if passenger.gender == "m" else "ms",
        "gender": passenger.gender,
        "given_name": passenger.first_name,
        "family_name": passenger.last_name,
        "born_on": passenger.date_of_birth,
        "email": passenger.email,
        "phone_number": passenger.phone,
    }
    if passenger.passport:
        duffel_passenger["identity_documents"] = [{
            "type": "passport",
            "unique_identifier": passenger.passport.number,
            "expires_on": passenger.passport.expires_on,
            "issuing_country_code": passenger.passport.issuing_country_code,
        }]
    return duffel_passenger


# ─── Ancillaries ───


def _seat_type(element: dict) -> str:
    kind = element.get("type")
    if kind in ("bassinet", "lavatory", "galley"):
        return kind
    if kind == "empty" or not element.get("designator"):
        return "empty"
    if any("exit" in d.lower() for d in element.get("disclosures") or []):
        return "exit_row"
    return "seat"


def to_canonical_seat_map(raw: dict) -> SeatMap:
    cabins = []
    for cabin in raw.get("cabins") or []:
        rows = []
        for row in cabin.get("rows") or []:
            seats = []
            for section in row.get("sections") or []:
                for element in section.get("elements") or []:
                    services = element.get("available_services") or []
                    first_service = services[0] if services else None
                    seats.append(Seat(
                        designator=element.get("designator") or "",
                        available=bool(services),
                        type=_seat_type(element),
                        service_id=first_service.get("id") if first_service else None,
                        price=TotalPrice(
                            amount=_to_float(first_service.get("total_amount")),
                            currency=first_service.get("total_currency") or "",
                        ) if first_service else None,
                        disclosures=element.get("disclosures") or [],
                    ))
            rows.append(SeatMapRow(seats=seats))
        cabins.append(SeatMapCabin(cabin_class=cabin.get("cabin_class") or "economy", rows=rows))
    return SeatMap(segment_id=raw.get("segment_id") or "", cabins=cabins)


def to_available_service(raw: dict) -> AvailableService:
    kind = raw.get("type") or "baggage"
    return AvailableService(
        id=raw.get("id") or "",
        type=kind,
        description=(raw.get("metadata") or {}).get("type") or kind or "Additional service",
        price=TotalPrice(
            amount=_to_float(raw.get("total_amount")),
            currency=raw.get("total_currency") or "",
        ),
        segment_ids=raw.get("segment_ids") or [],
        passenger_ids=raw.get("passenger_ids") or [],
        max_quantity=raw.get("maximum_quantity") or 1,
    )

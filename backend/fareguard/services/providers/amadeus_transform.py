"""Transforms between Amadeus payloads and the canonical model.

Amadeus returns codes only; names come from the response ``dictionaries``
when present and from static tables otherwise.
"""

from datetime import datetime
from typing import Any

from fareguard.data.airlines import airline_name
from fareguard.data.countries import split_calling_code
from fareguard.schemas.travel import (
    Aircraft,
    Baggage,
    BookingConfirmation,
    CanonicalOffer,
    FlightSearchParams,
    PassengerDetails,
    Price,
    Segment,
    SegmentEndpoint,
    TotalPrice,
)
from fareguard.services.providers.passengers import NormalizedPassenger

DEFAULT_BOOKABLE_SEATS = 9

# Map Amadeus cabin to our cabin codes
CABIN_MAP = {
    "ECONOMY": "economy",
    "PREMIUM_ECONOMY": "premium_economy",
    "BUSINESS": "business",
    "FIRST": "first",
}
CABIN_TO_AMADEUS = {v: k for k, v in CABIN_MAP.items()}

PASSENGER_TYPE_TO_AMADEUS = {"adult": "ADULT", "child": "CHILD", "infant": "HELD_INFANT"}
PASSENGER_TYPE_FROM_AMADEUS = {
    "ADULT": "adult", "SENIOR": "adult", "YOUNG": "adult", "STUDENT": "adult",
    "CHILD": "child",
    "HELD_INFANT": "infant", "SEATED_INFANT": "infant",
}
GENDER_TO_AMADEUS = {"m": "MALE", "f": "FEMALE"}


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _fare_details(raw: dict) -> dict[str, dict]:
    """fareDetailsBySegment of the first traveler, keyed by segment id."""
    pricings = raw.get("travelerPricings") or []
    if not pricings:
        return {}
    return {fd.get("segmentId"): fd for fd in pricings[0].get("fareDetailsBySegment") or []}


def _bags(allowance: dict | None) -> str | None:
    if not allowance:
        return None
    if allowance.get("quantity") is not None:
        return f"{allowance['quantity']} bags"
    if allowance.get("weight") is not None:
        return f"{allowance['weight']}{allowance.get('weightUnit', 'KG')}"
    return None


def _endpoint(point: dict | None, locations: dict) -> SegmentEndpoint:
    point = point or {}
    code = point.get("iataCode") or ""
    return SegmentEndpoint(
        airport=code,
        code=code,
        city=(locations.get(code) or {}).get("cityCode") or code,
        terminal=point.get("terminal"),
        time=point.get("at") or "",
    )


def to_canonical_segments(itinerary: dict | None, raw_offer: dict | None = None, dictionaries: dict | None = None) -> list[Segment]:
    dictionaries = dictionaries or {}
    carriers = dictionaries.get("carriers") or {}
    aircraft_names = dictionaries.get("aircraft") or {}
    locations = dictionaries.get("locations") or {}
    fare_details = _fare_details(raw_offer or {})

    segments = []
    for seg in (itinerary or {}).get("segments") or []:
        carrier_code = seg.get("carrierCode") or ""
        details = fare_details.get(seg.get("id"), {})
        aircraft_code = (seg.get("aircraft") or {}).get("code")
        checked = _bags(details.get("includedCheckedBags"))
        carry_on = _bags(details.get("includedCabinBags"))

        segments.append(Segment(
            id=seg.get("id") or "",
            airline=airline_name(carrier_code, carriers),
            airline_code=carrier_code,
            flight_number=seg.get("number") or "",
            departure=_endpoint(seg.get("departure"), locations),
            arrival=_endpoint(seg.get("arrival"), locations),
            duration=seg.get("duration") or "",
            stops=seg.get("numberOfStops") or 0,
            cabin_class=CABIN_MAP.get(details.get("cabin"), "economy"),
            aircraft=Aircraft(code=aircraft_code, name=aircraft_names.get(aircraft_code, aircraft_code)) if aircraft_code else None,
            baggage=Baggage(checked=checked, carry_on=carry_on) if (checked or carry_on) else None,
        ))
    return segments


def to_canonical_offer(
    raw: dict,
    dictionaries: dict | None = None,
    offer_id: str | None = None,
    expires_at: datetime | None = None,
) -> CanonicalOffer:
    """Amadeus offer ids are per-search ordinals, so callers may supply a unique id."""
    itineraries = raw.get("itineraries") or []
    price = raw.get("price") or {}
    total = _to_float(price.get("grandTotal") or price.get("total"))
    base = _to_float(price.get("base"))
    validating = (raw.get("validatingAirlineCodes") or [""])[0]
    carriers = (dictionaries or {}).get("carriers") or {}

    first_details = next(iter(_fare_details(raw).values()), {})

    return CanonicalOffer(
        id=offer_id or str(raw.get("id") or ""),
        provider="amadeus",
        price=Price(
            total=total,
            base=base,
            taxes=round(total - base, 2),
            currency=price.get("currency") or "",
        ),
        outbound=to_canonical_segments(itineraries[0] if itineraries else None, raw, dictionaries),
        inbound=to_canonical_segments(itineraries[1], raw, dictionaries) if len(itineraries) > 1 else None,
        validating_airline=airline_name(validating, carriers) if validating else "",
        validating_airline_code=validating,
        is_refundable=bool((raw.get("pricingOptions") or {}).get("refundableFare")),
        is_changeable=False,
        last_ticketing_date=raw.get("lastTicketingDate"),
        expires_at=expires_at,
        fare_brand_name=first_details.get("brandedFareLabel") or first_details.get("brandedFare"),
        cabin_class=CABIN_MAP.get(first_details.get("cabin"), "economy"),
        cabin_class_marketing=first_details.get("brandedFareLabel"),
        number_of_bookable_seats=raw.get("numberOfBookableSeats") or DEFAULT_BOOKABLE_SEATS,
        raw_data=raw,
    )


def order_to_confirmation(order: dict, passengers: list[PassengerDetails], dictionaries: dict | None = None) -> BookingConfirmation:
    """Rebuild the flight view from the order's own flightOffers, not the quoted offer."""
    offers = order.get("flightOffers") or [{}]
    flights = to_canonical_offer(offers[0], dictionaries)
    records = order.get("associatedRecords") or [{}]
    record = records[0]
    return BookingConfirmation(
        booking_reference=record.get("reference") or order.get("id") or "",
        provider="amadeus",
        status="confirmed",
        flights=flights,
        passengers=passengers,
        total_price=TotalPrice(amount=flights.price.total, currency=flights.price.currency),
        booking_date=record.get("creationDate") or "",
        ticketing_deadline=flights.last_ticketing_date,
        tickets=None,
        raw_data=order,
    )


def build_search_params(params: FlightSearchParams) -> dict:
    query = {
        "originLocationCode": params.origin,
        "destinationLocationCode": params.destination,
        "departureDate": params.departure_date.isoformat(),
        "adults": params.adults,
        "travelClass": CABIN_TO_AMADEUS.get(params.travel_class, "ECONOMY"),
        "nonStop": "true" if params.non_stop else "false",
        "currencyCode": params.currency,
        "max": params.max_results,
    }
    if params.return_date:
        query["returnDate"] = params.return_date.isoformat()
    if params.children:
        query["children"] = params.children
    if params.infants:
        query["infants"] = params.infants
    if params.max_price is not None:
        query["maxPrice"] = int(params.max_price)
    return query


def to_amadeus_traveler(passenger: NormalizedPassenger, traveler_id: str) -> dict:
    calling_code, number = split_calling_code(passenger.phone)
    traveler = {
        "id": traveler_id,
        "dateOfBirth": passenger.date_of_birth,
        "name": {"firstName": passenger.first_name.upper(), "lastName": passenger.last_name.upper()},
        "gender": GENDER_TO_AMADEUS[passenger.gender],
        "contact": {
            "emailAddress": passenger.email,
            "phones": [{"deviceType": "MOBILE", "countryCallingCode": calling_code, "number": number}],
        },
    }
    if passenger.passport:
        traveler["documents"] = [{
            "documentType": "PASSPORT",
            "number": passenger.passport.number,
            "expiryDate": passenger.passport.expires_on,
            "issuanceCountry": passenger.passport.issuing_country_code,
            "nationality": passenger.passport.issuing_country_code,
            "holder": True,
        }]
    return traveler

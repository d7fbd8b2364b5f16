"""Upstream payloads and transport stubs shared by the tests."""

from datetime import datetime, timedelta, timezone

import httpx

ORG_ID = "org-1"
USER_ID = "user-1"


def iso_in(minutes: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(minutes=minutes)).isoformat().replace("+00:00", "Z")


def duffel_segment(segment_id="seg_1", origin="YYZ", destination="LHR", cabin="economy"):
    return {
        "id": segment_id,
        "origin": {"iata_code": origin, "name": f"{origin} International", "city_name": "Toronto"},
        "destination": {"iata_code": destination, "name": f"{destination} Airport", "city_name": "London"},
        "origin_terminal": "1",
        "destination_terminal": "5",
        "departing_at": "2026-11-20T18:00:00",
        "arriving_at": "2026-11-21T06:30:00",
        "duration": "PT7H30M",
        "marketing_carrier": {"iata_code": "AC", "name": "Air Canada"},
        "marketing_carrier_flight_number": "856",
        "aircraft": {"iata_code": "789", "name": "Boeing 787-9"},
        "stops": [],
        "passengers": [{
            "cabin_class": cabin,
            "cabin_class_marketing_name": "Economy Standard",
            "baggages": [{"type": "checked", "quantity": 1}, {"type": "carry_on", "quantity": 1}],
        }],
    }


def duffel_offer(offer_id="off_123", expires_in_minutes=30, passengers=None, total="612.40", services=None):
    offer = {
        "id": offer_id,
        "expires_at": iso_in(expires_in_minutes),
        "total_amount": total,
        "base_amount": "500.00",
        "tax_amount": "112.40",
        "total_currency": "USD",
        "cabin_class": "economy",
        "owner": {"iata_code": "AC", "name": "Air Canada"},
        "slices": [{"fare_brand_name": "Standard", "segments": [duffel_segment()]}],
        "conditions": {
            "change_before_departure": {"allowed": True, "penalty_amount": "100.00", "penalty_currency": "USD"},
            "refund_before_departure": {"allowed": False},
        },
        "payment_requirements": {"payment_required_by": "2026-11-19T00:00:00Z"},
        "passengers": passengers if passengers is not None else [{"id": "pas_1", "type": "adult"}],
    }
    if services is not None:
        offer["available_services"] = services
    return offer


def duffel_order(offer: dict, reference="ABC123"):
    return {
        **{k: v for k, v in offer.items() if k not in ("cabin_class", "passengers", "available_services")},
        "id": "ord_1",
        "booking_reference": reference,
        "created_at": "2026-10-19T12:00:00Z",
        "documents": [{"passenger_id": "pas_1", "unique_identifier": "0142345678901"}],
    }


def amadeus_offer(offer_id="1", grand_total="455.30", base="380.00", traveler_type="ADULT", seats=None):
    offer = {
        "type": "flight-offer",
        "id": offer_id,
        "source": "GDS",
        "lastTicketingDate": "2026-11-18",
        "itineraries": [{
            "duration": "PT7H10M",
            "segments": [{
                "id": "1",
                "departure": {"iataCode": "YYZ", "terminal": "1", "at": "2026-11-20T18:00:00"},
                "arrival": {"iataCode": "LHR", "terminal": "2", "at": "2026-11-21T06:10:00"},
                "carrierCode": "AC",
                "number": "848",
                "aircraft": {"code": "789"},
                "duration": "PT7H10M",
                "numberOfStops": 0,
            }],
        }],
        "price": {"currency": "USD", "total": grand_total, "base": base, "grandTotal": grand_total},
        "pricingOptions": {"fareType": ["PUBLISHED"], "includedCheckedBagsOnly": True},
        "validatingAirlineCodes": ["AC"],
        "travelerPricings": [{
            "travelerId": "1",
            "travelerType": traveler_type,
            "fareDetailsBySegment": [{
                "segmentId": "1",
                "cabin": "PREMIUM_ECONOMY",
                "brandedFare": "PREMLOW",
                "brandedFareLabel": "Premium Economy Lowest",
                "includedCheckedBags": {"weight": 23, "weightUnit": "KG"},
                "includedCabinBags": {"quantity": 1},
            }],
        }],
    }
    if seats is not None:
        offer["numberOfBookableSeats"] = seats
    return offer


AMADEUS_DICTIONARIES = {
    "locations": {"YYZ": {"cityCode": "YTO", "countryCode": "CA"}, "LHR": {"cityCode": "LON", "countryCode": "GB"}},
    "aircraft": {"789": "BOEING 787-9"},
    "carriers": {"AC": "AIR CANADA"},
}


def passenger_payload(**overrides):
    payload = {
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "jane@example.com",
        "phone": "+1 416 555 1234",
        "date_of_birth": "1990-04-12",
        "type": "adult",
        "gender": "female",
        "passport_number": "AB123456",
        "passport_expiry": "2030-01-01",
        "passport_country": "Canada",
    }
    payload.update(overrides)
    return payload


class DuffelStub:
    """Routes Duffel API paths to canned responses and remembers every request."""

    def __init__(self, routes):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"errors": [{"message": "not found"}]})
        status, body = handler(request) if callable(handler) else handler
        return httpx.Response(status, json=body)

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == path]

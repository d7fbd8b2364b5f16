"""Canonical travel model: the provider-agnostic shapes every adapter normalizes into."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class ProviderName(str, Enum):
    DUFFEL = "duffel"
    AMADEUS = "amadeus"


class Capability(str, Enum):
    SEARCH = "search"
    BOOKING = "booking"
    SEAT_MAPS = "seat_maps"
    ANCILLARIES = "ancillaries"
    CANCELLATION = "cancellation"


CabinClass = Literal["economy", "premium_economy", "business", "first"]


def normalize_cabin(value: str | None) -> str | None:
    """'PREMIUM_ECONOMY', 'Premium Economy' and 'premium_economy' are the same cabin."""
    if value is None:
        return None
    return value.strip().lower().replace(" ", "_").replace("-", "_")


_FROZEN = {"frozen": True}


# ─── Offers ───


class Price(BaseModel):
    # total is not guaranteed to equal base + taxes across providers
    total: float
    base: float
    taxes: float
    currency: str

    model_config = _FROZEN


class Penalty(BaseModel):
    amount: float
    currency: str

    model_config = _FROZEN


class SegmentEndpoint(BaseModel):
    airport: str
    code: str
    city: str
    terminal: str | None = None
    time: str

    model_config = _FROZEN


class Aircraft(BaseModel):
    code: str
    name: str

    model_config = _FROZEN


class Baggage(BaseModel):
    checked: str | None = None
    carry_on: str | None = None

    model_config = _FROZEN


class Segment(BaseModel):
    id: str
    airline: str
    airline_code: str
    flight_number: str
    departure: SegmentEndpoint
    arrival: SegmentEndpoint
    duration: str = ""
    stops: int = 0
    cabin_class: str = "economy"
    aircraft: Aircraft | None = None
    baggage: Baggage | None = None

    model_config = _FROZEN


class CanonicalOffer(BaseModel):
    id: str
    provider: ProviderName
    price: Price
    outbound: list[Segment]
    inbound: list[Segment] | None = None

    validating_airline: str
    validating_airline_code: str
    is_refundable: bool = False
    is_changeable: bool = False
    last_ticketing_date: str | None = None
    expires_at: datetime | None = None

    fare_brand_name: str | None = None
    cabin_class: str = "economy"
    cabin_class_marketing: str | None = None
    change_penalty: Penalty | None = None
    refund_penalty: Penalty | None = None

    number_of_bookable_seats: int = 9

    # Untouched upstream payload, kept for audit
    raw_data: Any = Field(default=None, repr=False)

    model_config = _FROZEN


# ─── Search ───


class FlightSearchParams(BaseModel):
    origin: str = Field(min_length=3, max_length=3)
    destination: str = Field(min_length=3, max_length=3)
    departure_date: date
    return_date: date | None = None
    adults: int = Field(default=1, ge=1, le=9)
    children: int = Field(default=0, ge=0)
    infants: int = Field(default=0, ge=0)
    travel_class: CabinClass = "economy"
    non_stop: bool = False
    currency: str = "USD"
    max_price: float | None = None
    max_results: int = Field(default=50, ge=1, le=250)


class SearchResult(BaseModel):
    offers: list[CanonicalOffer]
    # The provider that actually answered, which may differ from the requested one
    provider: ProviderName
    used_fallback: bool = False


# ─── Booking ───


class PassengerDetails(BaseModel):
    """Passenger as submitted by the caller. Required-field checks happen in the adapters
    so the error can name the passenger."""

    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    date_of_birth: str | None = None

    address: str | None = None
    city: str | None = None
    country: str | None = None
    postal_code: str | None = None

    passport_number: str | None = None
    passport_expiry: str | None = None
    passport_country: str | None = None

    type: str | None = None
    gender: str | None = None
    special_requests: list[str] = Field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ServiceSelection(BaseModel):
    id: str
    quantity: int = Field(default=1, ge=1)


class CreateBookingParams(BaseModel):
    offer_id: str
    passengers: list[PassengerDetails] = Field(min_length=1)
    contact_email: str | None = None
    contact_phone: str | None = None
    services: list[ServiceSelection] = Field(default_factory=list)


class Ticket(BaseModel):
    passenger_id: str
    ticket_number: str

    model_config = _FROZEN


class TotalPrice(BaseModel):
    amount: float
    currency: str

    model_config = _FROZEN


class ServiceSummary(BaseModel):
    requested: int
    honored: int
    dropped: int
    services_total: float

    model_config = _FROZEN


class BookingConfirmation(BaseModel):
    booking_reference: str
    provider: ProviderName
    # Adapters only ever return synchronously confirmed bookings
    status: Literal["confirmed"] = "confirmed"
    flights: CanonicalOffer
    passengers: list[PassengerDetails]
    total_price: TotalPrice
    booking_date: str
    ticketing_deadline: str | None = None
    tickets: list[Ticket] | None = None
    services: ServiceSummary | None = None
    raw_data: Any = Field(default=None, repr=False)

    model_config = _FROZEN


class CancellationResult(BaseModel):
    success: bool
    refund_amount: float | None = None
    refund_currency: str | None = None


# ─── Ancillaries ───


class Seat(BaseModel):
    designator: str
    available: bool
    type: Literal["seat", "bassinet", "empty", "exit_row", "lavatory", "galley"]
    service_id: str | None = None
    price: TotalPrice | None = None
    disclosures: list[str] = Field(default_factory=list)


class SeatMapRow(BaseModel):
    seats: list[Seat]


class SeatMapCabin(BaseModel):
    cabin_class: str
    rows: list[SeatMapRow]


class SeatMap(BaseModel):
    segment_id: str
    cabins: list[SeatMapCabin]


class AvailableService(BaseModel):
    id: str
    type: str
    description: str
    price: TotalPrice
    segment_ids: list[str] = Field(default_factory=list)
    passenger_ids: list[str] = Field(default_factory=list)
    max_quantity: int = 1

"""Passenger normalization shared by every adapter.

Validates the caller's passenger list once and yields a provider-neutral
``NormalizedPassenger``; each adapter then maps it onto its own wire format.
"""

import logging
import re
from dataclasses import dataclass

from fareguard.data.countries import country_name_to_code
from fareguard.errors import ValidationError
from fareguard.schemas.travel import PassengerDetails

logger = logging.getLogger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")

GENDER_TOKENS = {
    "m": "m", "male": "m", "man": "m",
    "f": "f", "female": "f", "woman": "f",
}
DEFAULT_GENDER = "m"

# Provider vocabularies folded onto adult / child / infant
PASSENGER_TYPE_ALIASES = {
    "adult": "adult", "adt": "adult",
    "child": "child", "chd": "child",
    "infant": "infant", "infant_without_seat": "infant", "held_infant": "infant", "inf": "infant",
}


@dataclass(frozen=True)
class PassportDocument:
    number: str
    expires_on: str
    issuing_country_code: str


@dataclass(frozen=True)
class NormalizedPassenger:
    first_name: str
    last_name: str
    gender: str  # "m" | "f"
    type: str  # "adult" | "child" | "infant"
    email: str
    phone: str  # E.164, no whitespace
    date_of_birth: str
    passport: PassportDocument | None
    source: PassengerDetails

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


def normalize_gender(token: str | None) -> str:
    """Absent or unrecognized tokens default to 'm' so the mapping stays deterministic."""
    if not token:
        return DEFAULT_GENDER
    return GENDER_TOKENS.get(token.strip().lower(), DEFAULT_GENDER)


def normalize_phone(phone: str) -> str:
    return re.sub(r"\s", "", phone)


def _blank(value: str | None) -> bool:
    return value is None or value.strip() == ""


def normalize_passenger(passenger: PassengerDetails) -> NormalizedPassenger:
    name = passenger.full_name

    for field, label in (("phone", "Phone number"), ("date_of_birth", "Date of birth"), ("email", "Email")):
        if _blank(getattr(passenger, field)):
            raise ValidationError(f"{label} is required for passenger {name}", field=field, passenger=name)

    phone = normalize_phone(passenger.phone)
    if not E164_PATTERN.match(phone):
        logger.error(f"Phone validation failed for passenger {name}: {phone!r}")
        raise ValidationError(
            f"Invalid phone number format for passenger {name}. "
            "Must be in E.164 format (e.g., +14165551234 or +1 416 555 1234)",
            field="phone",
            passenger=name,
        )

    # The caller declares the type; it is never inferred from the date of birth
    if _blank(passenger.type):
        raise ValidationError(
            f"Passenger type is required for {name}. Must be 'adult', 'child', or 'infant'.",
            field="type",
            passenger=name,
        )
    passenger_type = PASSENGER_TYPE_ALIASES.get(passenger.type.strip().lower())
    if passenger_type is None:
        raise ValidationError(
            f"Unknown passenger type '{passenger.type}' for {name}. Must be 'adult', 'child', or 'infant'.",
            field="type",
            passenger=name,
        )

    passport = None
    passport_fields = (passenger.passport_number, passenger.passport_expiry, passenger.passport_country)
    if not all(_blank(value) for value in passport_fields):
        if any(_blank(value) for value in passport_fields):
            logger.warning(
                f"Skipping incomplete passport data for {name} "
                "(passport info must include number, expiry date and country)"
            )
        else:
            passport = PassportDocument(
                number=passenger.passport_number.strip(),
                expires_on=passenger.passport_expiry.strip(),
                issuing_country_code=country_name_to_code(passenger.passport_country),
            )

    return NormalizedPassenger(
        first_name=passenger.first_name,
        last_name=passenger.last_name,
        gender=normalize_gender(passenger.gender),
        type=passenger_type,
        email=passenger.email.strip(),
        phone=phone,
        date_of_birth=passenger.date_of_birth.strip(),
        passport=passport,
        source=passenger,
    )


def normalize_passengers(passengers: list[PassengerDetails]) -> list[NormalizedPassenger]:
    return [normalize_passenger(p) for p in passengers]

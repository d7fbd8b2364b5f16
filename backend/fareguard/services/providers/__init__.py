from fareguard.services.providers.amadeus import AmadeusProvider
from fareguard.services.providers.base import FlightProvider
from fareguard.services.providers.duffel import DuffelProvider
from fareguard.services.providers.registry import ProviderRegistry, build_registry

__all__ = [
    "AmadeusProvider",
    "DuffelProvider",
    "FlightProvider",
    "ProviderRegistry",
    "build_registry",
]

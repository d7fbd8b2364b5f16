"""Error taxonomy shared by provider adapters, the registry and the policy engine."""


class FareGuardError(Exception):
    """Base class for every error raised by the core."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UpstreamError(FareGuardError):
    """Transport, auth, timeout or unexpected-shape failure from a provider.

    Only read-only calls (search) are retried against a fallback provider.
    """

    def __init__(
        self,
        provider: str,
        operation: str,
        message: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message or f"Flight {operation} is temporarily unavailable. Please try again.")
        self.provider = provider
        self.operation = operation
        self.status_code = status_code


class ExpiredOfferError(FareGuardError):
    """The offer's validity window has elapsed. The caller must search again."""

    def __init__(self, offer_id: str, expired_minutes: int | None = None, message: str | None = None):
        if message is None:
            if expired_minutes is None:
                message = (
                    f"Offer {offer_id} is no longer available. "
                    "Please search for flights again to get fresh availability and pricing."
                )
            else:
                message = (
                    f"This flight offer has expired {expired_minutes} minutes ago. "
                    "Flight offers are only valid for 5-15 minutes. "
                    "Please search for flights again to get fresh availability and pricing."
                )
        super().__init__(message)
        self.offer_id = offer_id
        self.expired_minutes = expired_minutes


class ValidationError(FareGuardError):
    """Malformed or missing passenger/booking data. Names the offending field and passenger."""

    def __init__(self, message: str, field: str | None = None, passenger: str | None = None):
        super().__init__(message)
        self.field = field
        self.passenger = passenger


class ProviderUnavailableError(FareGuardError):
    def __init__(self, provider: str):
        super().__init__(f"Flight provider '{provider}' is not configured")
        self.provider = provider


class UnknownProviderError(FareGuardError):
    def __init__(self, provider: str):
        super().__init__(f"Unknown flight provider: {provider}")
        self.provider = provider


class UnsupportedCapabilityError(FareGuardError):
    def __init__(self, provider: str, capability: str):
        super().__init__(f"Provider '{provider}' does not support {capability}")
        self.provider = provider
        self.capability = capability


class UserNotFoundError(FareGuardError):
    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class NotFoundError(FareGuardError):
    pass

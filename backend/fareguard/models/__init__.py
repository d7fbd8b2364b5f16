from fareguard.models.user import User
from fareguard.models.booking import Booking
from fareguard.models.policy import BookingPolicy, PolicyException, PolicyUsageLog

__all__ = [
    "Booking",
    "BookingPolicy",
    "PolicyException",
    "PolicyUsageLog",
    "User",
]

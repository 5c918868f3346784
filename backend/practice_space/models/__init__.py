"""
Database models for the practice space scheduler.

- Booking: rehearsal bookings and event holds, discriminated by ``kind``
- RecurringSeries: weekly rules that generate Reserved bookings
- Closure: administrative blackouts
"""

from .booking import Booking, BookingKind, BookingStatus, PaymentStatus
from .closure import Closure
from .recurring_series import RecurringSeries, SeriesStatus

__all__ = [
    "Booking",
    "BookingKind",
    "BookingStatus",
    "PaymentStatus",
    "Closure",
    "RecurringSeries",
    "SeriesStatus",
]

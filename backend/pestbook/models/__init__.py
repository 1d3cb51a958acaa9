from pestbook.models.user import User, UserRole
from pestbook.models.lead import Lead, LeadConversion
from pestbook.models.service import Service
from pestbook.models.booking import Booking, BookingAssignment, BookingEvent, BookingStatus
from pestbook.models.customer_tag import CustomerTag

__all__ = [
    "User", "UserRole",
    "Lead", "LeadConversion",
    "Service",
    "Booking", "BookingAssignment", "BookingEvent", "BookingStatus",
    "CustomerTag",
]

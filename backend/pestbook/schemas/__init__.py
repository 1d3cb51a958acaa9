from pestbook.schemas.user import UserCreate, UserResponse, UserLogin, Token, SignupResponse
from pestbook.schemas.service import ServiceResponse, ServiceListResponse, ServiceActivationUpdate
from pestbook.schemas.booking import (
    BookingCreate, AdminBookingCreate, LeadPayload, BookingPatch, AssignRequest,
    BookingResponse, BookingListItem, MyBookingsResponse, CompletedHistoryResponse, AvailabilityResponse,
    BookingEventResponse, CustomerTagUpdate, CustomerTagResponse,
)

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token", "SignupResponse",
    "ServiceResponse", "ServiceListResponse", "ServiceActivationUpdate",
    "BookingCreate", "AdminBookingCreate", "LeadPayload", "BookingPatch", "AssignRequest",
    "BookingResponse", "BookingListItem", "MyBookingsResponse", "CompletedHistoryResponse", "AvailabilityResponse",
    "BookingEventResponse", "CustomerTagUpdate", "CustomerTagResponse",
]

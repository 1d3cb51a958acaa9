"""
Pydantic schemas for booking-related request/response validation.
"""

import uuid
from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class BookingCreate(BaseModel):
    service_public_id: uuid.UUID
    starts_at: datetime
    ends_at: datetime
    address: str = Field(..., min_length=5, max_length=500)
    notes: Optional[str] = Field(None, max_length=2000)


class LeadPayload(BaseModel):
    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    account_type: Optional[Literal["residential", "business"]] = None
    address: Optional[str] = Field(None, max_length=500)


class AdminBookingCreate(BaseModel):
    """Admin booking on behalf of an existing customer or a (new or known) lead."""

    service_public_id: uuid.UUID
    starts_at: datetime
    ends_at: datetime
    notes: Optional[str] = Field(None, max_length=2000)
    customer_public_id: Optional[uuid.UUID] = None
    lead: Optional[LeadPayload] = None
    address: Optional[str] = Field(None, max_length=500)


class BookingPatch(BaseModel):
    """
    Customer edit. Only fields present in the request are applied;
    model_fields_set tells "omitted" apart from an explicit null.
    """

    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=2000)

    model_config = {"extra": "forbid"}

    @property
    def touches_schedule(self) -> bool:
        return bool({"starts_at", "ends_at"} & self.model_fields_set)


class AssignRequest(BaseModel):
    """Accepts both the single-worker and the list call shape."""

    worker_user_id: Optional[int] = Field(None, gt=0)
    worker_user_ids: Optional[list[int]] = Field(None, min_length=1)

    @model_validator(mode="after")
    def single_worker(self) -> "AssignRequest":
        ids = set(self.worker_user_ids or [])
        if self.worker_user_id is not None:
            ids.add(self.worker_user_id)
        if not ids:
            raise ValueError("worker_user_id is required")
        if len(ids) > 1:
            raise ValueError("A booking has a single assigned technician")
        if any(i <= 0 for i in ids):
            raise ValueError("worker ids must be positive")
        return self

    @property
    def worker_id(self) -> int:
        if self.worker_user_id is not None:
            return self.worker_user_id
        return self.worker_user_ids[0]


class BookingResponse(BaseModel):
    public_id: uuid.UUID
    status: str
    starts_at: datetime
    ends_at: datetime
    address: str
    notes: Optional[str]
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingListItem(BookingResponse):
    service_title: str


class MyBookingsResponse(BaseModel):
    upcoming: list[BookingListItem]
    history: list[BookingListItem]


class CompletedHistoryResponse(BaseModel):
    bookings: list[BookingListItem]
    page: int
    page_size: int
    total: int
    total_pages: int


class AvailabilityWindow(BaseModel):
    public_id: uuid.UUID
    starts_at: datetime
    ends_at: datetime
    status: str

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    date: date
    bookings: list[AvailabilityWindow]


class BookingEventResponse(BaseModel):
    event_type: str
    actor_user_id: Optional[int]
    metadata: dict[str, Any] = Field(validation_alias="event_metadata")
    created_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}


class CustomerTagUpdate(BaseModel):
    tag: str = Field(..., min_length=1, max_length=50)
    note: Optional[str] = Field(None, max_length=1000)


class CustomerTagResponse(BaseModel):
    kind: str
    public_id: uuid.UUID
    tag: str
    note: Optional[str]
    updated_at: datetime

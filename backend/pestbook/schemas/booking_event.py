"""
Typed payloads for booking audit events.

Each event kind declares exactly what it may carry; the discriminator
(event_type) becomes the booking_events.event_type column and the remaining
fields become the JSON metadata.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class BookingEventPayload(BaseModel):
    model_config = {"frozen": True}

    def metadata(self) -> dict:
        return self.model_dump(mode="json", exclude={"event_type"})


class Created(BookingEventPayload):
    event_type: Literal["created"] = "created"


class CreatedByAdmin(BookingEventPayload):
    event_type: Literal["created_by_admin"] = "created_by_admin"
    owner_kind: Literal["registered", "lead"]
    owner_public_id: str


class Accepted(BookingEventPayload):
    event_type: Literal["accepted"] = "accepted"


class Assigned(BookingEventPayload):
    event_type: Literal["assigned"] = "assigned"
    worker_user_id: int
    previous_worker_user_id: Optional[int] = None


class Reassigned(BookingEventPayload):
    event_type: Literal["reassigned"] = "reassigned"
    worker_user_id: int
    previous_worker_user_id: Optional[int] = None


class Completed(BookingEventPayload):
    event_type: Literal["completed"] = "completed"
    worker_user_id: int


class Cancelled(BookingEventPayload):
    event_type: Literal["cancelled"] = "cancelled"
    cancelled_by_role: Literal["admin", "customer"]


class Rescheduled(BookingEventPayload):
    event_type: Literal["rescheduled"] = "rescheduled"
    starts_at: datetime
    ends_at: datetime
    notes_changed: bool = False


class NotesUpdated(BookingEventPayload):
    event_type: Literal["notes_updated"] = "notes_updated"


BookingEventKind = Annotated[
    Union[
        Created,
        CreatedByAdmin,
        Accepted,
        Assigned,
        Reassigned,
        Completed,
        Cancelled,
        Rescheduled,
        NotesUpdated,
    ],
    Field(discriminator="event_type"),
]

_event_adapter = TypeAdapter(BookingEventKind)


def parse_event(event_type: str, metadata: dict) -> BookingEventPayload:
    """Rebuild the typed payload from a stored row."""
    return _event_adapter.validate_python({**(metadata or {}), "event_type": event_type})

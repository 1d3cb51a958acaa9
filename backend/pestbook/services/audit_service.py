"""
Audit recorder: one immutable booking_events row per state-changing operation.

record_event never commits. It is always called inside the caller's
transaction so the event and the change it documents land (or vanish)
together. No update or delete counterpart exists.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.core.errors import ForbiddenError, NotFoundError
from pestbook.core.security import Actor
from pestbook.models.booking import Booking, BookingEvent
from pestbook.schemas.booking_event import BookingEventPayload
from pestbook.core.logging import get_logger

logger = get_logger(__name__)


async def record_event(
    db: AsyncSession,
    booking_id: int,
    actor_user_id: Optional[int],
    payload: BookingEventPayload,
) -> BookingEvent:
    event = BookingEvent(
        booking_id=booking_id,
        actor_user_id=actor_user_id,
        event_type=payload.event_type,
        event_metadata=payload.metadata(),
    )
    db.add(event)
    await db.flush()

    logger.debug("booking_event_recorded", booking_id=booking_id, event_type=payload.event_type)
    return event


async def list_events_for_booking(db: AsyncSession, booking_id: int) -> list[BookingEvent]:
    result = await db.execute(
        select(BookingEvent)
        .where(BookingEvent.booking_id == booking_id)
        .order_by(BookingEvent.created_at.asc(), BookingEvent.id.asc())
    )
    return list(result.scalars().all())


async def list_booking_events(
    db: AsyncSession,
    actor: Actor,
    booking_public_id: uuid.UUID,
) -> list[BookingEvent]:
    """History of a booking, oldest first. Visible to staff admins and the owning customer."""
    result = await db.execute(select(Booking).where(Booking.public_id == booking_public_id))
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError("Booking not found")

    if not actor.is_admin and booking.customer_user_id != actor.user_id:
        raise ForbiddenError("Forbidden")

    return await list_events_for_booking(db, booking.id)


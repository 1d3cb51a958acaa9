"""
Customer booking endpoints.
"""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.db.session import get_db
from pestbook.schemas.booking import (
    AvailabilityResponse,
    AvailabilityWindow,
    BookingCreate,
    BookingEventResponse,
    BookingPatch,
    BookingResponse,
    MyBookingsResponse,
)
from pestbook.services.audit_service import list_booking_events
from pestbook.services.booking_service import create_customer_booking, get_availability, list_my_bookings
from pestbook.services.transition_service import cancel_booking, update_booking
from pestbook.core.security import Actor, get_current_actor

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Book a service slot.

    Overlap with another active booking is rejected by the database's
    exclusion constraint and surfaces as 409 "Time slot unavailable".
    """
    return await create_customer_booking(db, actor, booking_data)


@router.get("/me", response_model=MyBookingsResponse)
async def my_bookings(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    upcoming, history = await list_my_bookings(db, actor)
    return MyBookingsResponse(upcoming=upcoming, history=history)


@router.get("/availability", response_model=AvailabilityResponse)
async def availability(
    day: date = Query(..., alias="date"),
    tz_offset_minutes: int = Query(0),
    db: AsyncSession = Depends(get_db),
):
    """Windows already taken on a local calendar day. Only times are exposed, never owners."""
    bookings = await get_availability(db, day, tz_offset_minutes)
    return AvailabilityResponse(
        date=day,
        bookings=[AvailabilityWindow.model_validate(b) for b in bookings],
    )


@router.patch("/{public_id}", response_model=BookingResponse)
async def edit_booking(
    public_id: uuid.UUID,
    patch: BookingPatch,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Reschedule a pending booking, or change the notes of a pending/accepted one."""
    return await update_booking(db, actor, public_id, patch)


@router.post("/{public_id}/cancel", response_model=BookingResponse)
async def cancel_own_booking(
    public_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await cancel_booking(db, actor, public_id, as_role="customer")


@router.get("/{public_id}/events", response_model=list[BookingEventResponse])
async def booking_events(
    public_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await list_booking_events(db, actor, public_id)

"""
Booking entity manager: creation, customer listings, availability.

CONCURRENCY STRATEGY: Store-level exclusion constraint
=======================================================

Problem:
  Two customers (or a customer and an admin) ask for overlapping windows at
  the same moment. Both read "slot is free", both insert, crew double-booked.

Solution:
  The bookings table carries an exclusion constraint over
  tstzrange(starts_at, ends_at) for rows in an active status. PostgreSQL
  serializes the two inserts on the constraint index; the loser's INSERT
  fails with SQLSTATE 23P01, its transaction is rolled back by
  transaction(), and the caller gets ConflictError("Time slot unavailable").

  We never pre-check availability in application code. A read-then-insert
  check has a race window; the constraint does not.

Every creation path inserts the booking and its creation event in one
transaction, so a booking without a "created" / "created_by_admin" event
cannot exist.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.core.errors import ForbiddenError, NotFoundError, ValidationError
from pestbook.core.metrics import track_transition
from pestbook.core.security import Actor
from pestbook.db.base import as_utc
from pestbook.db.session import transaction
from pestbook.models.booking import Booking, BookingStatus, ACTIVE_STATUSES, TERMINAL_STATUSES
from pestbook.models.service import Service
from pestbook.models.user import User, UserRole, ROLE_CUSTOMER
from pestbook.schemas.booking import AdminBookingCreate, BookingCreate, BookingListItem, BookingResponse
from pestbook.schemas.booking_event import Created, CreatedByAdmin
from pestbook.services.audit_service import record_event
from pestbook.services.catalog_service import get_active_service
from pestbook.services.lead_service import upsert_lead
from pestbook.core.logging import get_logger

logger = get_logger(__name__)

MIN_ADDRESS_LENGTH = 5


def validate_window(starts_at: datetime, ends_at: datetime) -> tuple[datetime, datetime]:
    starts_at, ends_at = as_utc(starts_at), as_utc(ends_at)
    if ends_at <= starts_at:
        raise ValidationError("ends_at must be after starts_at")
    return starts_at, ends_at


def resolve_address(*candidates: Optional[str]) -> str:
    """First non-blank candidate wins; it must still be a usable address."""
    address = next((c.strip() for c in candidates if c and c.strip()), "")
    if len(address) < MIN_ADDRESS_LENGTH:
        raise ValidationError(f"Address is required (at least {MIN_ADDRESS_LENGTH} characters)")
    return address


async def create_customer_booking(db: AsyncSession, actor: Actor, data: BookingCreate) -> Booking:
    """Self-service booking: the acting customer owns the new booking."""
    with track_transition("create"):
        if not actor.is_customer:
            raise ForbiddenError("Only customers can book for themselves")

        starts_at, ends_at = validate_window(data.starts_at, data.ends_at)
        address = resolve_address(data.address)

        async with transaction(db):
            service = await get_active_service(db, data.service_public_id)

            booking = Booking(
                customer_user_id=actor.user_id,
                service_id=service.id,
                status=BookingStatus.PENDING.value,
                starts_at=starts_at,
                ends_at=ends_at,
                address=address,
                notes=data.notes,
            )
            db.add(booking)
            await db.flush()

            await record_event(db, booking.id, actor.user_id, Created())

    logger.info(
        "booking_created",
        booking_id=booking.id,
        customer_user_id=actor.user_id,
        service_id=service.id,
        starts_at=starts_at.isoformat(),
    )
    return booking


async def create_admin_booking(db: AsyncSession, actor: Actor, data: AdminBookingCreate) -> Booking:
    """
    Booking on behalf of an existing customer or a lead.

    For a lead the record is upserted by email in the same transaction, so a
    failed insert (e.g. slot taken) leaves no new lead behind either.
    """
    with track_transition("create"):
        if not actor.is_admin:
            raise ForbiddenError("Forbidden")
        if (data.customer_public_id is None) == (data.lead is None):
            raise ValidationError("Provide exactly one of customer_public_id or lead")

        starts_at, ends_at = validate_window(data.starts_at, data.ends_at)

        async with transaction(db):
            service = await get_active_service(db, data.service_public_id)

            if data.customer_public_id is not None:
                result = await db.execute(
                    select(User)
                    .join(UserRole, UserRole.user_id == User.id)
                    .where(User.public_id == data.customer_public_id, UserRole.role == ROLE_CUSTOMER)
                )
                customer = result.scalar_one_or_none()
                if customer is None:
                    raise NotFoundError("Customer not found")
                address = resolve_address(data.address, customer.address)
                owner = {"customer_user_id": customer.id}
                event = CreatedByAdmin(owner_kind="registered", owner_public_id=str(customer.public_id))
            else:
                payload_address = data.lead.address
                lead = await upsert_lead(db, data.lead)
                address = resolve_address(payload_address, data.address, lead.address)
                owner = {"lead_id": lead.id}
                event = CreatedByAdmin(owner_kind="lead", owner_public_id=str(lead.public_id))

            booking = Booking(
                service_id=service.id,
                status=BookingStatus.PENDING.value,
                starts_at=starts_at,
                ends_at=ends_at,
                address=address,
                notes=data.notes,
                **owner,
            )
            db.add(booking)
            await db.flush()

            await record_event(db, booking.id, actor.user_id, event)

    logger.info(
        "booking_created_by_admin",
        booking_id=booking.id,
        admin_user_id=actor.user_id,
        owner_kind=event.owner_kind,
        service_id=service.id,
    )
    return booking


def to_list_item(booking: Booking, service_title: str) -> BookingListItem:
    return BookingListItem(
        **BookingResponse.model_validate(booking).model_dump(),
        service_title=service_title,
    )


async def list_my_bookings(db: AsyncSession, actor: Actor) -> tuple[list[BookingListItem], list[BookingListItem]]:
    """The actor's own bookings split into (upcoming, history)."""
    result = await db.execute(
        select(Booking, Service.title)
        .join(Service, Service.id == Booking.service_id)
        .where(Booking.customer_user_id == actor.user_id)
        .order_by(Booking.starts_at.desc())
    )

    upcoming, history = [], []
    for booking, title in result.all():
        item = to_list_item(booking, title)
        if booking.status in TERMINAL_STATUSES:
            history.append(item)
        else:
            upcoming.append(item)
    return upcoming, history


async def get_availability(db: AsyncSession, day: date, tz_offset_minutes: int = 0) -> list[Booking]:
    """
    Active bookings overlapping one local calendar day.

    tz_offset_minutes follows the browser convention (UTC minus local time),
    so local midnight is UTC midnight plus the offset.
    """
    if not -14 * 60 <= tz_offset_minutes <= 14 * 60:
        raise ValidationError("tz_offset_minutes out of range")

    day_start = datetime.combine(day, time.min, tzinfo=timezone.utc) + timedelta(minutes=tz_offset_minutes)
    day_end = day_start + timedelta(days=1)

    result = await db.execute(
        select(Booking)
        .where(
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.starts_at < day_end,
            Booking.ends_at > day_start,
        )
        .order_by(Booking.starts_at.asc())
    )
    return list(result.scalars().all())

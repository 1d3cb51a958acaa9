"""
Assignment ledger: which technician is (and was) responsible for a booking.

Every change of technician appends a row, so the table doubles as the
assignment history. The current assignee is simply the newest row
(assigned_at, then id, descending). Assigning the worker who is already
current appends nothing, which keeps repeated assign calls idempotent.
"""

from typing import Optional

from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.core.errors import ForbiddenError, ValidationError
from pestbook.core.security import Actor
from pestbook.db.base import utcnow
from pestbook.models.booking import Booking, BookingAssignment, BookingEvent, BookingStatus
from pestbook.models.service import Service
from pestbook.models.user import UserRole, ROLE_WORKER
from pestbook.core.logging import get_logger

logger = get_logger(__name__)


async def current_assignment(db: AsyncSession, booking_id: int) -> Optional[BookingAssignment]:
    result = await db.execute(
        select(BookingAssignment)
        .where(BookingAssignment.booking_id == booking_id)
        .order_by(BookingAssignment.assigned_at.desc(), BookingAssignment.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def current_assignee(db: AsyncSession, booking_id: int) -> Optional[int]:
    """Worker user id of the most recent assignment, or None if never assigned."""
    assignment = await current_assignment(db, booking_id)
    return assignment.worker_user_id if assignment else None


async def assign_worker(
    db: AsyncSession,
    booking_id: int,
    worker_user_id: int,
    assigned_by_user_id: Optional[int],
) -> tuple[BookingAssignment, bool]:
    """
    Make worker_user_id the current assignee.

    Returns (assignment, created). Must run under the booking row lock so
    two admins cannot interleave their reads of the current assignee.
    """
    current = await current_assignment(db, booking_id)
    if current is not None and current.worker_user_id == worker_user_id:
        return current, False

    assignment = BookingAssignment(
        booking_id=booking_id,
        worker_user_id=worker_user_id,
        assigned_by_user_id=assigned_by_user_id,
        assigned_at=utcnow(),
    )
    db.add(assignment)
    await db.flush()
    return assignment, True


async def list_assignment_history(db: AsyncSession, booking_id: int) -> list[BookingAssignment]:
    result = await db.execute(
        select(BookingAssignment)
        .where(BookingAssignment.booking_id == booking_id)
        .order_by(BookingAssignment.assigned_at.asc(), BookingAssignment.id.asc())
    )
    return list(result.scalars().all())


async def ensure_worker(db: AsyncSession, user_id: int) -> None:
    """Reject assignment targets without the worker role before anything is written."""
    result = await db.execute(
        select(UserRole.user_id).where(UserRole.user_id == user_id, UserRole.role == ROLE_WORKER)
    )
    if result.scalar_one_or_none() is None:
        raise ValidationError(f"Invalid worker id: {user_id}")


async def list_assigned_bookings(db: AsyncSession, actor: Actor) -> list[tuple[Booking, str]]:
    """Bookings in status 'assigned' whose current assignee is the acting worker."""
    if not actor.is_worker:
        raise ForbiddenError("Forbidden")

    latest = (
        select(BookingAssignment.worker_user_id)
        .where(BookingAssignment.booking_id == Booking.id)
        .order_by(BookingAssignment.assigned_at.desc(), BookingAssignment.id.desc())
        .limit(1)
        .correlate(Booking)
        .scalar_subquery()
    )
    result = await db.execute(
        select(Booking, Service.title)
        .join(Service, Service.id == Booking.service_id)
        .where(Booking.status == BookingStatus.ASSIGNED.value, latest == actor.user_id)
        .order_by(Booking.starts_at.asc())
        .limit(200)
    )
    return [(booking, title) for booking, title in result.all()]


async def list_completed_bookings(
    db: AsyncSession,
    actor: Actor,
    page: int = 1,
    page_size: int = 30,
) -> tuple[list[tuple[Booking, str]], int]:
    """
    Bookings the acting worker completed, newest completion first.

    Completion is read from the audit log (the "completed" event and its
    actor), not from the assignment ledger. Returns (page rows, total count).
    """
    if not actor.is_worker:
        raise ForbiddenError("Forbidden")

    completed_by_actor = exists().where(
        BookingEvent.booking_id == Booking.id,
        BookingEvent.event_type == "completed",
        BookingEvent.actor_user_id == actor.user_id,
    )
    filters = (Booking.status == BookingStatus.COMPLETED.value, completed_by_actor)

    total = (await db.execute(select(func.count(Booking.id)).where(*filters))).scalar_one()
    result = await db.execute(
        select(Booking, Service.title)
        .join(Service, Service.id == Booking.service_id)
        .where(*filters)
        .order_by(Booking.completed_at.desc(), Booking.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return [(booking, title) for booking, title in result.all()], total

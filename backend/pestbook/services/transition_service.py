"""
Booking state machine.

    pending -> accepted -> assigned -> completed
       \\          \\          \\
        +----------+----------+--> cancelled

completed and cancelled are terminal.

CONCURRENCY STRATEGY: Pessimistic row lock per transition
==========================================================

Every transition runs one transaction that:
  1. locks the booking row (SELECT ... FOR UPDATE)
  2. re-reads its status under the lock (populate_existing)
  3. validates the precondition, mutates, appends exactly one audit event
  4. commits

Two admins accepting the same booking serialize on the row lock. The second
one wakes up, sees status=accepted, and gets ConflictError. Role checks and
the worker-role lookup run before the lock is taken so a rejected request
never holds it.
"""

import uuid
from typing import Literal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from pestbook.core.metrics import track_transition
from pestbook.core.security import Actor
from pestbook.db.base import as_utc, utcnow
from pestbook.db.session import transaction
from pestbook.models.booking import Booking, BookingStatus
from pestbook.schemas.booking import BookingPatch
from pestbook.schemas.booking_event import (
    Accepted,
    Assigned,
    Cancelled,
    Completed,
    NotesUpdated,
    Reassigned,
    Rescheduled,
)
from pestbook.services.assignment_service import assign_worker, current_assignee, ensure_worker
from pestbook.services.audit_service import record_event
from pestbook.core.logging import get_logger

logger = get_logger(__name__)


async def lock_booking(db: AsyncSession, booking_public_id: uuid.UUID) -> Booking:
    """Lock the booking row for the rest of the transaction and return its committed state."""
    result = await db.execute(
        select(Booking)
        .where(Booking.public_id == booking_public_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise ForbiddenError("Forbidden")


async def accept_booking(db: AsyncSession, actor: Actor, booking_public_id: uuid.UUID) -> Booking:
    with track_transition("accept"):
        _require_admin(actor)

        async with transaction(db):
            booking = await lock_booking(db, booking_public_id)
            if booking.status != BookingStatus.PENDING.value:
                raise ConflictError("Booking is not pending")

            booking.status = BookingStatus.ACCEPTED.value
            booking.accepted_at = utcnow()
            await record_event(db, booking.id, actor.user_id, Accepted())

    logger.info("booking_accepted", booking_id=booking.id, admin_user_id=actor.user_id)
    return booking


async def _assign(
    db: AsyncSession,
    actor: Actor,
    booking_public_id: uuid.UUID,
    worker_user_id: int,
    reassign: bool,
) -> Booking:
    _require_admin(actor)
    await ensure_worker(db, worker_user_id)

    async with transaction(db):
        booking = await lock_booking(db, booking_public_id)

        if booking.is_terminal:
            raise ConflictError(f"Booking is already {booking.status}")
        if not reassign and booking.status == BookingStatus.PENDING.value:
            raise ConflictError("Booking must be accepted first")

        previous = await current_assignee(db, booking.id)
        _, created = await assign_worker(db, booking.id, worker_user_id, actor.user_id)

        booking.status = BookingStatus.ASSIGNED.value
        if booking.accepted_at is None:
            booking.accepted_at = utcnow()

        payload_cls = Reassigned if reassign else Assigned
        await record_event(
            db,
            booking.id,
            actor.user_id,
            payload_cls(worker_user_id=worker_user_id, previous_worker_user_id=previous),
        )

    logger.info(
        "booking_reassigned" if reassign else "booking_assigned",
        booking_id=booking.id,
        worker_user_id=worker_user_id,
        previous_worker_user_id=previous,
        new_history_row=created,
    )
    return booking


async def assign_booking(db: AsyncSession, actor: Actor, booking_public_id: uuid.UUID, worker_user_id: int) -> Booking:
    """Give an accepted (or already assigned) booking to a technician."""
    with track_transition("assign"):
        return await _assign(db, actor, booking_public_id, worker_user_id, reassign=False)


async def reassign_booking(db: AsyncSession, actor: Actor, booking_public_id: uuid.UUID, worker_user_id: int) -> Booking:
    """
    Hand a non-terminal booking to a (possibly different) technician.

    Unlike assign this also works from pending: the booking jumps straight
    to assigned and accepted_at is filled in.
    """
    with track_transition("reassign"):
        return await _assign(db, actor, booking_public_id, worker_user_id, reassign=True)


async def complete_booking(db: AsyncSession, actor: Actor, booking_public_id: uuid.UUID) -> Booking:
    """Only the technician currently assigned can close the job."""
    with track_transition("complete"):
        if not actor.is_worker:
            raise ForbiddenError("Forbidden")

        async with transaction(db):
            booking = await lock_booking(db, booking_public_id)
            if booking.status == BookingStatus.COMPLETED.value:
                raise ConflictError("Booking is already completed")
            if booking.status != BookingStatus.ASSIGNED.value:
                raise ConflictError("Booking must be assigned first")

            assignee = await current_assignee(db, booking.id)
            if assignee is None:
                raise ConflictError("This booking has no technician assignment")
            if assignee != actor.user_id:
                raise ForbiddenError("You are not assigned to this booking")

            booking.status = BookingStatus.COMPLETED.value
            booking.completed_at = utcnow()
            await record_event(db, booking.id, actor.user_id, Completed(worker_user_id=actor.user_id))

    logger.info("booking_completed", booking_id=booking.id, worker_user_id=actor.user_id)
    return booking


async def cancel_booking(
    db: AsyncSession,
    actor: Actor,
    booking_public_id: uuid.UUID,
    as_role: Literal["admin", "customer"],
) -> Booking:
    with track_transition("cancel"):
        if as_role == "admin":
            _require_admin(actor)

        async with transaction(db):
            booking = await lock_booking(db, booking_public_id)
            if as_role == "customer" and booking.customer_user_id != actor.user_id:
                raise ForbiddenError("Forbidden")

            if booking.status == BookingStatus.COMPLETED.value:
                raise ConflictError("Completed bookings cannot be cancelled")
            if booking.status == BookingStatus.CANCELLED.value:
                raise ConflictError("Booking is already cancelled")

            booking.status = BookingStatus.CANCELLED.value
            booking.cancelled_at = utcnow()
            await record_event(db, booking.id, actor.user_id, Cancelled(cancelled_by_role=as_role))

    logger.info("booking_cancelled", booking_id=booking.id, cancelled_by_role=as_role, actor_user_id=actor.user_id)
    return booking


def _changes_from_patch(booking: Booking, patch: BookingPatch) -> dict:
    """Column values the patch actually changes, with the resulting window validated."""
    fields = patch.model_fields_set
    for name in ("starts_at", "ends_at"):
        if name in fields and getattr(patch, name) is None:
            raise ValidationError(f"{name} cannot be null")

    current_start, current_end = as_utc(booking.starts_at), as_utc(booking.ends_at)
    starts_at = as_utc(patch.starts_at) if "starts_at" in fields else current_start
    ends_at = as_utc(patch.ends_at) if "ends_at" in fields else current_end
    if ends_at <= starts_at:
        raise ValidationError("ends_at must be after starts_at")

    changes = {}
    if starts_at != current_start:
        changes["starts_at"] = starts_at
    if ends_at != current_end:
        changes["ends_at"] = ends_at
    if "notes" in fields and patch.notes != booking.notes:
        changes["notes"] = patch.notes
    return changes


async def update_booking(
    db: AsyncSession,
    actor: Actor,
    booking_public_id: uuid.UUID,
    patch: BookingPatch,
) -> Booking:
    """
    Customer edit of their own booking.

    pending: schedule and notes may change (event "rescheduled" when the
    window moves, else "notes_updated").
    accepted: notes only; touching the schedule is a conflict.
    Anything later is frozen.
    """
    with track_transition("update"):
        if not patch.model_fields_set:
            raise ValidationError("No changes provided")

        async with transaction(db):
            booking = await lock_booking(db, booking_public_id)
            if booking.customer_user_id != actor.user_id:
                raise ForbiddenError("Forbidden")

            if booking.status == BookingStatus.ACCEPTED.value:
                if patch.touches_schedule:
                    raise ConflictError("Accepted bookings can only have their notes changed")
            elif booking.status != BookingStatus.PENDING.value:
                raise ConflictError(f"A {booking.status} booking can no longer be edited")

            changes = _changes_from_patch(booking, patch)
            if not changes:
                raise ValidationError("No changes provided")

            await db.execute(update(Booking).where(Booking.id == booking.id).values(**changes))

            if "starts_at" in changes or "ends_at" in changes:
                event = Rescheduled(
                    starts_at=changes.get("starts_at", as_utc(booking.starts_at)),
                    ends_at=changes.get("ends_at", as_utc(booking.ends_at)),
                    notes_changed="notes" in changes,
                )
            else:
                event = NotesUpdated()
            await record_event(db, booking.id, actor.user_id, event)

    logger.info("booking_updated", booking_id=booking.id, fields=sorted(changes), event_type=event.event_type)
    return booking

"""
Tests for the transaction helper, store error translation and the
transition metrics wrapper.
"""

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from pestbook.core.errors import ConflictError, NotFoundError, StoreError
from pestbook.core.metrics import track_transition
from pestbook.db.session import transaction, translate_integrity_error
from pestbook.models import Booking, BookingAssignment, BookingEvent, Service


def _integrity(message: str) -> IntegrityError:
    return IntegrityError("INSERT ...", {}, Exception(message))


@pytest.mark.parametrize("message, expected", [
    ('conflicting key value violates exclusion constraint "bookings_no_overlap"', "Time slot unavailable"),
    ('duplicate key value violates unique constraint "uq_users_email"', "Email already in use"),
    ("UNIQUE constraint failed: users.email", "Email already in use"),
    ("UNIQUE constraint failed: leads.email", "Lead email already exists"),
])
def test_known_constraints_become_conflicts(message, expected):
    error = translate_integrity_error(_integrity(message))
    assert isinstance(error, ConflictError)
    assert error.message == expected


def test_unknown_constraint_is_store_error():
    error = translate_integrity_error(_integrity("NOT NULL constraint failed: bookings.address"))
    assert isinstance(error, StoreError)
    assert error.to_dict() == {"ok": False, "error": "store_error", "message": "Database constraint violated"}


@pytest.mark.asyncio
async def test_transaction_commits(db_session):
    async with transaction(db_session):
        db_session.add(Service(title="Rodent Exclusion"))

    titles = (await db_session.execute(select(Service.title))).scalars().all()
    assert titles == ["Rodent Exclusion"]


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_domain_error(db_session):
    with pytest.raises(NotFoundError):
        async with transaction(db_session):
            db_session.add(Service(title="Bed Bug Heat Treatment"))
            await db_session.flush()
            raise NotFoundError("Booking not found")

    assert (await db_session.execute(select(Service.id))).first() is None


def _transitions(outcome: str) -> float:
    labels = {"transition": "probe", "outcome": outcome}
    return REGISTRY.get_sample_value("booking_transitions_total", labels) or 0.0


def test_track_transition_counts_outcomes():
    conflicts, successes = _transitions("conflict"), _transitions("success")

    with pytest.raises(ConflictError):
        with track_transition("probe"):
            raise ConflictError("Booking is not pending")
    with track_transition("probe"):
        pass

    assert _transitions("conflict") == conflicts + 1
    assert _transitions("success") == successes + 1


@pytest.mark.parametrize("column", [
    Booking.__table__.c.customer_user_id,
    Booking.__table__.c.lead_id,
    BookingAssignment.__table__.c.booking_id,
    BookingAssignment.__table__.c.worker_user_id,
    BookingEvent.__table__.c.booking_id,
])
def test_deletes_never_cascade_into_bookings_or_history(column):
    (foreign_key,) = column.foreign_keys
    assert foreign_key.ondelete is None

"""
Tests for the booking lifecycle: accept, assign, complete, cancel, and the
audit trail each transition leaves behind.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from pestbook.models import Booking, BookingEvent
from pestbook.schemas.booking_event import Cancelled, Created, Reassigned, parse_event
from tests.conftest import headers_for


async def _pending(book, headers) -> str:
    response = await book(headers)
    assert response.status_code == 201
    return response.json()["public_id"]


@pytest.mark.asyncio
async def test_full_lifecycle(client: AsyncClient, customer_headers, admin_headers, worker, worker_headers, book):
    """created -> accepted -> assigned -> completed, then cancellation is refused."""
    public_id = await _pending(book, customer_headers)

    accepted = await client.patch(f"/api/v1/admin/bookings/{public_id}/accept", headers=admin_headers)
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"
    assert accepted.json()["accepted_at"] is not None

    assigned = await client.patch(
        f"/api/v1/admin/bookings/{public_id}/assign", json={"worker_user_id": worker.id}, headers=admin_headers
    )
    assert assigned.status_code == 200
    assert assigned.json()["status"] == "assigned"

    queue = await client.get("/api/v1/worker/bookings/assigned", headers=worker_headers)
    assert [b["public_id"] for b in queue.json()] == [public_id]

    completed = await client.patch(f"/api/v1/worker/bookings/{public_id}/complete", headers=worker_headers)
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"
    assert completed.json()["completed_at"] is not None

    cancel = await client.patch(f"/api/v1/admin/bookings/{public_id}/cancel", headers=admin_headers)
    assert cancel.status_code == 409
    assert cancel.json()["message"] == "Completed bookings cannot be cancelled"

    history = await client.get(f"/api/v1/bookings/{public_id}/events", headers=customer_headers)
    events = history.json()
    assert [e["event_type"] for e in events] == ["created", "accepted", "assigned", "completed"]
    assert events[2]["metadata"] == {"worker_user_id": worker.id, "previous_worker_user_id": None}
    assert events[3]["metadata"] == {"worker_user_id": worker.id}

    queue = await client.get("/api/v1/worker/bookings/assigned", headers=worker_headers)
    assert queue.json() == []


@pytest.mark.asyncio
async def test_accept_twice_records_one_event(client: AsyncClient, customer_headers, admin_headers, book, db_session):
    public_id = await _pending(book, customer_headers)

    first = await client.patch(f"/api/v1/admin/bookings/{public_id}/accept", headers=admin_headers)
    second = await client.patch(f"/api/v1/admin/bookings/{public_id}/accept", headers=admin_headers)
    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["message"] == "Booking is not pending"

    accepted = (await db_session.execute(
        select(func.count(BookingEvent.id)).where(BookingEvent.event_type == "accepted")
    )).scalar_one()
    assert accepted == 1


@pytest.mark.asyncio
async def test_only_admins_accept(client: AsyncClient, customer_headers, worker_headers, book):
    public_id = await _pending(book, customer_headers)
    for headers in (customer_headers, worker_headers):
        response = await client.patch(f"/api/v1/admin/bookings/{public_id}/accept", headers=headers)
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_assign_requires_acceptance(client: AsyncClient, customer_headers, admin_headers, worker, book):
    public_id = await _pending(book, customer_headers)
    response = await client.patch(
        f"/api/v1/admin/bookings/{public_id}/assign", json={"worker_user_id": worker.id}, headers=admin_headers
    )
    assert response.status_code == 409
    assert response.json()["message"] == "Booking must be accepted first"


@pytest.mark.asyncio
async def test_assign_rejects_non_worker(client: AsyncClient, customer, customer_headers, admin_headers, book, db_session):
    public_id = await _pending(book, customer_headers)
    await client.patch(f"/api/v1/admin/bookings/{public_id}/accept", headers=admin_headers)

    response = await client.patch(
        f"/api/v1/admin/bookings/{public_id}/assign", json={"worker_user_id": customer.id}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["message"] == f"Invalid worker id: {customer.id}"

    status = (await db_session.execute(select(Booking.status))).scalar_one()
    assert status == "accepted"


@pytest.mark.asyncio
async def test_complete_requires_assignment(client: AsyncClient, customer_headers, admin_headers, worker_headers, book):
    public_id = await _pending(book, customer_headers)
    await client.patch(f"/api/v1/admin/bookings/{public_id}/accept", headers=admin_headers)

    response = await client.patch(f"/api/v1/worker/bookings/{public_id}/complete", headers=worker_headers)
    assert response.status_code == 409
    assert response.json()["message"] == "Booking must be assigned first"


@pytest.mark.asyncio
async def test_only_assignee_completes(
    client: AsyncClient, customer_headers, admin_headers, worker, second_worker, book
):
    public_id = await _pending(book, customer_headers)
    await client.patch(f"/api/v1/admin/bookings/{public_id}/accept", headers=admin_headers)
    await client.patch(
        f"/api/v1/admin/bookings/{public_id}/assign", json={"worker_user_id": worker.id}, headers=admin_headers
    )

    response = await client.patch(
        f"/api/v1/worker/bookings/{public_id}/complete", headers=headers_for(second_worker)
    )
    assert response.status_code == 403
    assert response.json()["message"] == "You are not assigned to this booking"


@pytest.mark.asyncio
async def test_customer_cannot_complete(client: AsyncClient, customer_headers, book):
    public_id = await _pending(book, customer_headers)
    response = await client.patch(f"/api/v1/worker/bookings/{public_id}/complete", headers=customer_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_cancel_twice(client: AsyncClient, customer_headers, admin_headers, book):
    public_id = await _pending(book, customer_headers)

    first = await client.patch(f"/api/v1/admin/bookings/{public_id}/cancel", headers=admin_headers)
    second = await client.post(f"/api/v1/bookings/{public_id}/cancel", headers=customer_headers)
    assert first.status_code == 200
    assert first.json()["cancelled_at"] is not None
    assert second.status_code == 409
    assert second.json()["message"] == "Booking is already cancelled"


@pytest.mark.asyncio
async def test_cancel_records_role(client: AsyncClient, customer_headers, admin_headers, book, db_session):
    by_admin = await _pending(book, customer_headers)
    by_customer = (await book(customer_headers, hour=15)).json()["public_id"]

    await client.patch(f"/api/v1/admin/bookings/{by_admin}/cancel", headers=admin_headers)
    await client.post(f"/api/v1/bookings/{by_customer}/cancel", headers=customer_headers)

    roles = (await db_session.execute(
        select(BookingEvent.event_metadata)
        .where(BookingEvent.event_type == "cancelled")
        .order_by(BookingEvent.id)
    )).scalars().all()
    assert [m["cancelled_by_role"] for m in roles] == ["admin", "customer"]


@pytest.mark.asyncio
async def test_cancelled_booking_cannot_be_accepted(client: AsyncClient, customer_headers, admin_headers, book):
    public_id = await _pending(book, customer_headers)
    await client.post(f"/api/v1/bookings/{public_id}/cancel", headers=customer_headers)

    response = await client.patch(f"/api/v1/admin/bookings/{public_id}/accept", headers=admin_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_admin_reads_any_history(client: AsyncClient, customer_headers, admin_headers, book):
    public_id = await _pending(book, customer_headers)
    response = await client.get(f"/api/v1/bookings/{public_id}/events", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()[0]["event_type"] == "created"


@pytest.mark.asyncio
async def test_stored_events_rebuild_as_typed_payloads(
    client: AsyncClient, customer_headers, admin_headers, worker, book, db_session
):
    public_id = await _pending(book, customer_headers)
    await client.patch(f"/api/v1/admin/bookings/{public_id}/reassign", json={"worker_user_id": worker.id}, headers=admin_headers)
    await client.patch(f"/api/v1/admin/bookings/{public_id}/cancel", headers=admin_headers)

    rows = (await db_session.execute(
        select(BookingEvent.event_type, BookingEvent.event_metadata).order_by(BookingEvent.id)
    )).all()
    payloads = [parse_event(event_type, metadata) for event_type, metadata in rows]

    assert [type(p) for p in payloads] == [Created, Reassigned, Cancelled]
    assert payloads[1].worker_user_id == worker.id
    assert payloads[2].cancelled_by_role == "admin"


async def _completed_by(client, book, customer_headers, admin_headers, worker, hour: int) -> str:
    public_id = (await book(customer_headers, hour=hour)).json()["public_id"]
    await client.patch(f"/api/v1/admin/bookings/{public_id}/accept", headers=admin_headers)
    await client.patch(
        f"/api/v1/admin/bookings/{public_id}/assign", json={"worker_user_id": worker.id}, headers=admin_headers
    )
    response = await client.patch(f"/api/v1/worker/bookings/{public_id}/complete", headers=headers_for(worker))
    assert response.status_code == 200
    return public_id


@pytest.mark.asyncio
async def test_worker_history_lists_own_completions(
    client: AsyncClient, customer_headers, admin_headers, worker, worker_headers, second_worker, book
):
    first = await _completed_by(client, book, customer_headers, admin_headers, worker, hour=9)
    second = await _completed_by(client, book, customer_headers, admin_headers, worker, hour=11)
    await _completed_by(client, book, customer_headers, admin_headers, second_worker, hour=13)
    # still assigned, not history
    active = (await book(customer_headers, hour=15)).json()["public_id"]
    await client.patch(f"/api/v1/admin/bookings/{active}/accept", headers=admin_headers)
    await client.patch(
        f"/api/v1/admin/bookings/{active}/assign", json={"worker_user_id": worker.id}, headers=admin_headers
    )

    response = await client.get("/api/v1/worker/bookings/history", headers=worker_headers)
    assert response.status_code == 200
    body = response.json()
    assert [b["public_id"] for b in body["bookings"]] == [second, first]
    assert all(b["status"] == "completed" for b in body["bookings"])
    assert body["bookings"][0]["service_title"] == "General Pest Control"
    assert (body["total"], body["total_pages"]) == (2, 1)

    paged = await client.get("/api/v1/worker/bookings/history?page=2&page_size=1", headers=worker_headers)
    assert [b["public_id"] for b in paged.json()["bookings"]] == [first]
    assert paged.json()["total_pages"] == 2


@pytest.mark.asyncio
async def test_worker_history_access(client: AsyncClient, customer_headers, worker_headers):
    forbidden = await client.get("/api/v1/worker/bookings/history", headers=customer_headers)
    assert forbidden.status_code == 403

    empty = await client.get("/api/v1/worker/bookings/history", headers=worker_headers)
    assert empty.json() == {"bookings": [], "page": 1, "page_size": 30, "total": 0, "total_pages": 1}

    too_big = await client.get("/api/v1/worker/bookings/history?page_size=31", headers=worker_headers)
    assert too_big.status_code == 400
    assert too_big.json()["error"] == "validation_error"

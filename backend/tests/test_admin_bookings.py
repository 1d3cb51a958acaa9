"""
Tests for administrator endpoints: booking on behalf of customers and
leads, CRM tagging and service activation.
"""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from pestbook.models import Booking, BookingEvent, CustomerTag, Lead, User
from tests.conftest import slot


def admin_payload(service, **extra) -> dict:
    starts_at, ends_at = slot()
    return {
        "service_public_id": str(service.public_id),
        "starts_at": starts_at,
        "ends_at": ends_at,
        **extra,
    }


@pytest.mark.asyncio
async def test_admin_books_for_customer_with_saved_address(
    client: AsyncClient, admin_headers, customer, service, db_session
):
    response = await client.post(
        "/api/v1/admin/bookings",
        json=admin_payload(service, customer_public_id=str(customer.public_id)),
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["address"] == "12 Elm Street, Springfield"

    owner_id, lead_id = (await db_session.execute(select(Booking.customer_user_id, Booking.lead_id))).one()
    assert owner_id == customer.id
    assert lead_id is None

    event_type, metadata = (await db_session.execute(
        select(BookingEvent.event_type, BookingEvent.event_metadata)
    )).one()
    assert event_type == "created_by_admin"
    assert metadata == {"owner_kind": "registered", "owner_public_id": str(customer.public_id)}


@pytest.mark.asyncio
async def test_admin_address_override(client: AsyncClient, admin_headers, customer, service):
    response = await client.post(
        "/api/v1/admin/bookings",
        json=admin_payload(service, customer_public_id=str(customer.public_id), address="  7 Pine Road  "),
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["address"] == "7 Pine Road"


@pytest.mark.asyncio
async def test_admin_books_for_new_lead(client: AsyncClient, admin_headers, service, db_session):
    response = await client.post(
        "/api/v1/admin/bookings",
        json=admin_payload(service, lead={
            "email": "Prospect@Example.com",
            "first_name": "Pat",
            "phone": "555-0100",
            "address": "42 Maple Court",
        }),
        headers=admin_headers,
    )
    assert response.status_code == 201

    lead = (await db_session.execute(select(Lead))).scalar_one()
    assert lead.email == "prospect@example.com"
    assert lead.first_name == "Pat"

    owner_id, lead_id = (await db_session.execute(select(Booking.customer_user_id, Booking.lead_id))).one()
    assert owner_id is None
    assert lead_id == lead.id


@pytest.mark.asyncio
async def test_known_lead_refreshed_with_non_null_fields(client: AsyncClient, admin_headers, service, db_session):
    first = admin_payload(service, lead={"email": "pat@example.com", "first_name": "Pat", "address": "42 Maple Court"})
    await client.post("/api/v1/admin/bookings", json=first, headers=admin_headers)

    starts_at, ends_at = slot(hour=15)
    second = {
        **admin_payload(service, lead={"email": "pat@example.com", "phone": "555-0199"}),
        "starts_at": starts_at,
        "ends_at": ends_at,
    }
    response = await client.post("/api/v1/admin/bookings", json=second, headers=admin_headers)
    assert response.status_code == 201
    assert response.json()["address"] == "42 Maple Court"

    first_name, phone = (await db_session.execute(select(Lead.first_name, Lead.phone))).one()
    assert first_name == "Pat"
    assert phone == "555-0199"


@pytest.mark.asyncio
async def test_lead_without_address_rejected(client: AsyncClient, admin_headers, service, db_session):
    response = await client.post(
        "/api/v1/admin/bookings",
        json=admin_payload(service, lead={"email": "noaddr@example.com"}),
        headers=admin_headers,
    )
    assert response.status_code == 400
    # the lead upsert rolled back with the booking
    assert (await db_session.execute(select(Lead.id))).first() is None


@pytest.mark.asyncio
async def test_lead_email_of_registered_customer(client: AsyncClient, admin_headers, customer, service):
    response = await client.post(
        "/api/v1/admin/bookings",
        json=admin_payload(service, lead={"email": "customer@example.com", "address": "12 Elm Street"}),
        headers=admin_headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
@pytest.mark.parametrize("both", [True, False])
async def test_exactly_one_owner_selector(client: AsyncClient, admin_headers, customer, service, both):
    extra = {"customer_public_id": str(customer.public_id), "lead": {"email": "x@example.com"}} if both else {}
    response = await client.post("/api/v1/admin/bookings", json=admin_payload(service, **extra), headers=admin_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_customer(client: AsyncClient, admin_headers, service):
    response = await client.post(
        "/api/v1/admin/bookings",
        json=admin_payload(service, customer_public_id=str(uuid.uuid4())),
        headers=admin_headers,
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Customer not found"


@pytest.mark.asyncio
async def test_staff_account_is_not_a_bookable_customer(
    client: AsyncClient, admin_headers, worker, service, db_session
):
    response = await client.post(
        "/api/v1/admin/bookings",
        json=admin_payload(service, customer_public_id=str(worker.public_id), address="9 Depot Lane"),
        headers=admin_headers,
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Customer not found"
    assert (await db_session.execute(select(Booking.id))).first() is None


@pytest.mark.asyncio
async def test_lead_booking_on_taken_slot_leaves_no_lead(
    client: AsyncClient, admin_headers, customer_headers, service, book, db_session
):
    assert (await book(customer_headers)).status_code == 201

    response = await client.post(
        "/api/v1/admin/bookings",
        json=admin_payload(service, lead={"email": "late.com", "address": "3 Birch Way"}),
        headers=admin_headers,
    )
    assert response.status_code == 409
    assert response.json()["message"] == "Time slot unavailable"
    assert (await db_session.execute(select(Lead.id))).first() is None


@pytest.mark.asyncio
async def test_customer_cannot_use_admin_booking(client: AsyncClient, customer, customer_headers, service):
    response = await client.post(
        "/api/v1/admin/bookings",
        json=admin_payload(service, customer_public_id=str(customer.public_id)),
        headers=customer_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_tag_registered_customer(client: AsyncClient, admin, admin_headers, customer, db_session):
    response = await client.put(
        f"/api/v1/admin/customers/registered/{customer.public_id}/tag",
        json={"tag": "VIP", "note": "Quarterly contract"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["kind"] == "registered"
    assert data["tag"] == "VIP"

    crm_tag, updated_by = (await db_session.execute(
        select(User.crm_tag, User.crm_tag_updated_by_user_id).where(User.id == customer.id)
    )).one()
    assert crm_tag == "VIP"
    assert updated_by == admin.id

    tag = (await db_session.execute(select(CustomerTag.tag).where(CustomerTag.entity_id == customer.id))).scalar_one()
    assert tag == "VIP"


@pytest.mark.asyncio
async def test_tag_is_last_write_wins(client: AsyncClient, admin_headers, customer, db_session):
    url = f"/api/v1/admin/customers/registered/{customer.public_id}/tag"
    await client.put(url, json={"tag": "VIP"}, headers=admin_headers)
    await client.put(url, json={"tag": "Regular"}, headers=admin_headers)

    tags = (await db_session.execute(select(CustomerTag.tag))).scalars().all()
    assert tags == ["Regular"]


@pytest.mark.asyncio
async def test_tag_unknown_lead(client: AsyncClient, admin_headers):
    response = await client.put(
        f"/api/v1/admin/customers/lead/{uuid.uuid4()}/tag", json={"tag": "VIP"}, headers=admin_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_tag_requires_admin(client: AsyncClient, customer, customer_headers):
    response = await client.put(
        f"/api/v1/admin/customers/registered/{customer.public_id}/tag", json={"tag": "VIP"}, headers=customer_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_deactivated_service_leaves_catalog(client: AsyncClient, admin_headers, service):
    listed = await client.get("/api/v1/services")
    assert [s["title"] for s in listed.json()["services"]] == ["General Pest Control"]

    toggle = await client.patch(
        f"/api/v1/admin/services/{service.public_id}", json={"is_active": False}, headers=admin_headers
    )
    assert toggle.status_code == 200
    assert toggle.json()["is_active"] is False

    listed = await client.get("/api/v1/services")
    assert listed.json() == {"services": [], "cached": False}

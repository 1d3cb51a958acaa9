"""
Administrator endpoints: booking on behalf of customers/leads, lifecycle
transitions, CRM tagging and catalog activation.
"""

import uuid
from typing import Literal

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.db.session import get_db
from pestbook.schemas.booking import (
    AdminBookingCreate,
    AssignRequest,
    BookingResponse,
    CustomerTagResponse,
    CustomerTagUpdate,
)
from pestbook.schemas.service import ServiceActivationUpdate, ServiceResponse
from pestbook.services.booking_service import create_admin_booking
from pestbook.services.catalog_service import set_service_active
from pestbook.services.lead_service import set_customer_tag
from pestbook.services.transition_service import accept_booking, assign_booking, cancel_booking, reassign_booking
from pestbook.core.security import Actor, get_current_actor

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def admin_create_booking(
    booking_data: AdminBookingCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Book for an existing customer (customer_public_id) or for a lead.

    A lead is matched by email and created if unknown; its fields are
    refreshed with whatever non-null values the request carries.
    """
    return await create_admin_booking(db, actor, booking_data)


@router.patch("/bookings/{public_id}/accept", response_model=BookingResponse)
async def admin_accept_booking(
    public_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await accept_booking(db, actor, public_id)


@router.patch("/bookings/{public_id}/assign", response_model=BookingResponse)
async def admin_assign_booking(
    public_id: uuid.UUID,
    body: AssignRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Accepts {"worker_user_id": n} or {"worker_user_ids": [n]}."""
    return await assign_booking(db, actor, public_id, body.worker_id)


@router.patch("/bookings/{public_id}/reassign", response_model=BookingResponse)
async def admin_reassign_booking(
    public_id: uuid.UUID,
    body: AssignRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await reassign_booking(db, actor, public_id, body.worker_id)


@router.patch("/bookings/{public_id}/cancel", response_model=BookingResponse)
async def admin_cancel_booking(
    public_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await cancel_booking(db, actor, public_id, as_role="admin")


@router.put("/customers/{kind}/{public_id}/tag", response_model=CustomerTagResponse)
async def admin_tag_customer(
    kind: Literal["registered", "lead"],
    public_id: uuid.UUID,
    body: CustomerTagUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    tag, entity_public_id = await set_customer_tag(db, actor, kind, public_id, body)
    return CustomerTagResponse(
        kind=tag.kind,
        public_id=entity_public_id,
        tag=tag.tag,
        note=tag.note,
        updated_at=tag.updated_at,
    )


@router.patch("/services/{public_id}", response_model=ServiceResponse)
async def admin_toggle_service(
    public_id: uuid.UUID,
    body: ServiceActivationUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await set_service_active(db, actor, public_id, body.is_active)

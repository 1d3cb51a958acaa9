"""
Lead records: upsert on admin booking, and CRM tagging for customers and leads.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.core.errors import ConflictError, ForbiddenError, NotFoundError
from pestbook.core.security import Actor
from pestbook.db.base import utcnow
from pestbook.db.session import transaction
from pestbook.models.customer_tag import CustomerTag, KIND_REGISTERED
from pestbook.models.lead import Lead
from pestbook.models.user import User
from pestbook.schemas.booking import LeadPayload, CustomerTagUpdate
from pestbook.core.logging import get_logger

logger = get_logger(__name__)

LEAD_FIELDS = ("first_name", "last_name", "phone", "account_type", "address")


def normalize_email(email: str) -> str:
    return str(email or "").strip().lower()


async def find_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def lock_lead_by_email(db: AsyncSession, email: str) -> Optional[Lead]:
    result = await db.execute(
        select(Lead)
        .where(Lead.email == normalize_email(email))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_lead(db: AsyncSession, payload: LeadPayload) -> Lead:
    """
    Insert a lead, or refresh an existing one with the non-null fields supplied.

    Runs inside the caller's transaction. An email that already belongs to a
    registered account is a conflict: that person must be booked as a customer.
    """
    email = normalize_email(payload.email)

    # the user lookup runs after the lock: a signup promoting this lead has
    # committed its user by the time the lock is granted
    lead = await lock_lead_by_email(db, email)
    if await find_user_by_email(db, email) is not None:
        raise ConflictError("Email belongs to a registered customer")

    if lead is None:
        lead = Lead(email=email, **{f: getattr(payload, f) for f in LEAD_FIELDS})
        db.add(lead)
        await db.flush()
        logger.info("lead_created", lead_id=lead.id)
        return lead

    for field in LEAD_FIELDS:
        value = getattr(payload, field)
        if value is not None:
            setattr(lead, field, value)
    await db.flush()
    logger.info("lead_updated", lead_id=lead.id)
    return lead


async def set_customer_tag(
    db: AsyncSession,
    actor: Actor,
    kind: str,
    public_id: uuid.UUID,
    data: CustomerTagUpdate,
) -> tuple[CustomerTag, uuid.UUID]:
    """Tag a registered customer or a lead. Last write wins."""
    if not actor.is_admin:
        raise ForbiddenError("Forbidden")

    model = User if kind == KIND_REGISTERED else Lead
    now = utcnow()

    async with transaction(db):
        result = await db.execute(
            select(model).where(model.public_id == public_id).with_for_update()
        )
        entity = result.scalar_one_or_none()
        if entity is None:
            raise NotFoundError("Customer not found" if kind == KIND_REGISTERED else "Lead not found")

        entity.crm_tag = data.tag
        entity.crm_tag_note = data.note
        entity.crm_tag_updated_at = now
        entity.crm_tag_updated_by_user_id = actor.user_id

        tag = await db.get(CustomerTag, (kind, entity.id))
        if tag is None:
            tag = CustomerTag(kind=kind, entity_id=entity.id)
            db.add(tag)
        tag.tag = data.tag
        tag.note = data.note
        tag.updated_by_user_id = actor.user_id
        tag.updated_at = now

    logger.info("customer_tagged", kind=kind, entity_id=entity.id, tag=data.tag)
    return tag, entity.public_id

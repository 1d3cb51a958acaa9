"""
Lead promotion: turn a lead into a registered customer at signup.

Everything happens in one transaction:
  - the lead row is locked so a concurrent admin booking for the same email
    waits until the promotion has committed (and then sees a user)
  - the user is inserted, inheriting the lead's CRM tag
  - every booking owned by the lead moves to the user
  - the lead's customer_tags row becomes a 'registered' row
  - the lead is deleted and a lead_conversions row is written

If any step fails the transaction rolls back and the lead, its bookings and
its tag are exactly as they were. The caller mints the access token only
after commit.
"""

from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.core.errors import ConflictError
from pestbook.core.metrics import record_lead_promotion
from pestbook.core.security import hash_password
from pestbook.db.base import utcnow
from pestbook.db.session import transaction
from pestbook.models.booking import Booking
from pestbook.models.customer_tag import CustomerTag, KIND_LEAD, KIND_REGISTERED
from pestbook.models.lead import Lead, LeadConversion
from pestbook.models.user import User, UserRole, ROLE_CUSTOMER
from pestbook.schemas.user import UserCreate
from pestbook.services.lead_service import find_user_by_email, lock_lead_by_email, normalize_email
from pestbook.core.logging import get_logger

logger = get_logger(__name__)

CRM_FIELDS = ("crm_tag", "crm_tag_note", "crm_tag_updated_at", "crm_tag_updated_by_user_id")


def _build_user(data: UserCreate, email: str, lead: Optional[Lead]) -> User:
    user = User(
        email=email,
        password_hash=hash_password(data.password),
        first_name=data.first_name.strip(),
        last_name=data.last_name.strip(),
        phone=data.phone or (lead.phone if lead else None),
        account_type=data.account_type or (lead.account_type if lead else None),
        address=data.address or (lead.address if lead else None),
    )
    if lead is not None:
        for field in CRM_FIELDS:
            setattr(user, field, getattr(lead, field))
    user.roles.append(UserRole(role=ROLE_CUSTOMER))
    return user


async def _repoint_bookings(db: AsyncSession, lead_id: int, user_id: int) -> int:
    """Move every booking owned by the lead to the user. Returns rows moved."""
    result = await db.execute(
        update(Booking)
        .where(Booking.lead_id == lead_id)
        .values(customer_user_id=user_id, lead_id=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def _migrate_customer_tag(db: AsyncSession, lead_id: int, user_id: int) -> None:
    lead_tag = await db.get(CustomerTag, (KIND_LEAD, lead_id))
    if lead_tag is None:
        return

    user_tag = await db.get(CustomerTag, (KIND_REGISTERED, user_id))
    if user_tag is None:
        user_tag = CustomerTag(kind=KIND_REGISTERED, entity_id=user_id)
        db.add(user_tag)
    user_tag.tag = lead_tag.tag
    user_tag.note = lead_tag.note
    user_tag.updated_by_user_id = lead_tag.updated_by_user_id
    user_tag.updated_at = lead_tag.updated_at

    await db.delete(lead_tag)
    await db.flush()


async def _retire_lead(db: AsyncSession, lead: Lead, user_id: int, bookings_moved: int) -> None:
    lead_public_id = str(lead.public_id)
    await db.delete(lead)
    db.add(
        LeadConversion(
            lead_public_id=lead_public_id,
            user_id=user_id,
            bookings_moved=bookings_moved,
            converted_at=utcnow(),
        )
    )
    await db.flush()


async def promote_lead_on_signup(db: AsyncSession, data: UserCreate) -> tuple[User, bool]:
    """
    Create the customer account for a signup, merging a matching lead.

    Returns (user, promoted) where promoted tells whether a lead was merged.
    Raises ConflictError if the email is already registered.
    """
    email = normalize_email(data.email)

    try:
        async with transaction(db):
            if await find_user_by_email(db, email) is not None:
                raise ConflictError("Email already in use")

            lead = await lock_lead_by_email(db, email)

            user = _build_user(data, email, lead)
            db.add(user)
            await db.flush()

            bookings_moved = 0
            if lead is not None:
                bookings_moved = await _repoint_bookings(db, lead.id, user.id)
                await _migrate_customer_tag(db, lead.id, user.id)
                await _retire_lead(db, lead, user.id, bookings_moved)
    except Exception:
        record_lead_promotion("failed")
        raise

    promoted = lead is not None
    record_lead_promotion("promoted" if promoted else "plain")
    if promoted:
        logger.info("lead_promoted", user_id=user.id, lead_id=lead.id, bookings_moved=bookings_moved)
    else:
        logger.info("user_registered", user_id=user.id)
    return user, promoted

"""
Service catalog reads and activation toggling.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.core.errors import ForbiddenError, NotFoundError
from pestbook.core.security import Actor
from pestbook.db.session import transaction
from pestbook.models.service import Service
from pestbook.schemas.service import ServiceResponse
from pestbook.services.cache_service import get_cached_services, set_cached_services, invalidate_service_cache
from pestbook.core.logging import get_logger

logger = get_logger(__name__)


async def get_active_service(db: AsyncSession, service_public_id: uuid.UUID) -> Service:
    """Resolve a public id to an active service. Inactive services do not resolve."""
    result = await db.execute(
        select(Service).where(Service.public_id == service_public_id, Service.is_active.is_(True))
    )
    service = result.scalar_one_or_none()
    if service is None:
        raise NotFoundError("Service not found")
    return service


async def list_active_services(db: AsyncSession) -> tuple[list[dict], bool]:
    """Active catalog in display order. Returns (services, served_from_cache)."""
    cached = await get_cached_services()
    if cached is not None:
        return cached, True

    result = await db.execute(
        select(Service)
        .where(Service.is_active.is_(True))
        .order_by(Service.sort_order.asc(), Service.title.asc())
    )
    services = [
        ServiceResponse.model_validate(s).model_dump(mode="json") for s in result.scalars().all()
    ]
    await set_cached_services(services)
    return services, False


async def set_service_active(
    db: AsyncSession,
    actor: Actor,
    service_public_id: uuid.UUID,
    is_active: bool,
) -> Service:
    if not actor.is_admin:
        raise ForbiddenError("Forbidden")

    async with transaction(db):
        result = await db.execute(select(Service).where(Service.public_id == service_public_id))
        service = result.scalar_one_or_none()
        if service is None:
            raise NotFoundError("Service not found")
        service.is_active = is_active

    await invalidate_service_cache()
    logger.info("service_activation_changed", service_id=service.id, is_active=is_active)
    return service

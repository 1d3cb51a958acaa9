"""
Service catalog endpoint, served from Redis when warm.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.db.session import get_db
from pestbook.schemas.service import ServiceListResponse
from pestbook.services.catalog_service import list_active_services
from pestbook.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/services", tags=["Services"])


@router.get("", response_model=ServiceListResponse)
async def list_services(db: AsyncSession = Depends(get_db)):
    """Active services in display order. Cache is invalidated when a service is toggled."""
    services, cached = await list_active_services(db)
    if cached:
        logger.info("services_list_cache_hit")
    return ServiceListResponse(services=services, cached=cached)

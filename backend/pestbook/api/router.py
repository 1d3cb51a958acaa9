"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from pestbook.api.routes import admin, auth, bookings, services, worker

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(services.router)
api_router.include_router(bookings.router)
api_router.include_router(admin.router)
api_router.include_router(worker.router)

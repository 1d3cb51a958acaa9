"""
Technician endpoints: own job queue, completed-job history and job completion.
"""

import math
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.db.session import get_db
from pestbook.schemas.booking import BookingListItem, BookingResponse, CompletedHistoryResponse
from pestbook.services.assignment_service import list_assigned_bookings, list_completed_bookings
from pestbook.services.booking_service import to_list_item
from pestbook.services.transition_service import complete_booking
from pestbook.core.security import Actor, get_current_actor

router = APIRouter(prefix="/worker", tags=["Worker"])

HISTORY_MAX_PAGE_SIZE = 30


@router.get("/bookings/assigned", response_model=list[BookingListItem])
async def assigned_bookings(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_assigned_bookings(db, actor)
    return [to_list_item(booking, title) for booking, title in rows]


@router.get("/bookings/history", response_model=CompletedHistoryResponse)
async def completed_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(HISTORY_MAX_PAGE_SIZE, ge=1, le=HISTORY_MAX_PAGE_SIZE),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await list_completed_bookings(db, actor, page=page, page_size=page_size)
    return CompletedHistoryResponse(
        bookings=[to_list_item(booking, title) for booking, title in rows],
        page=page,
        page_size=page_size,
        total=total,
        total_pages=max(1, math.ceil(total / page_size)),
    )


@router.patch("/bookings/{public_id}/complete", response_model=BookingResponse)
async def worker_complete_booking(
    public_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await complete_booking(db, actor, public_id)

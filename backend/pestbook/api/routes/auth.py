"""
Authentication endpoints: register, login, profile.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.db.session import get_db
from pestbook.schemas.user import SignupResponse, UserCreate, UserResponse, UserLogin, Token
from pestbook.services.auth_service import register_user, authenticate_user, get_profile
from pestbook.core.security import Actor, get_current_actor

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    """
    Register a customer account.

    If an administrator already booked on behalf of this email, the lead's
    bookings and CRM tag move to the new account in the same transaction.
    """
    return await register_user(db, user_data)


@router.post("/login", response_model=Token)
async def login(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    """Authenticate and receive a JWT access token."""
    token = await authenticate_user(db, login_data)
    return Token(access_token=token)


@router.get("/me", response_model=UserResponse)
async def me(actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    return await get_profile(db, actor)

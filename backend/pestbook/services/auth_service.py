"""
Authentication service handling signup (with lead promotion) and login.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.core.errors import NotFoundError, UnauthenticatedError
from pestbook.core.security import Actor, create_access_token, verify_password
from pestbook.models.user import User
from pestbook.schemas.user import SignupResponse, UserCreate, UserLogin, UserResponse
from pestbook.services.lead_promotion import promote_lead_on_signup
from pestbook.services.lead_service import normalize_email
from pestbook.core.logging import get_logger

logger = get_logger(__name__)


async def register_user(db: AsyncSession, user_data: UserCreate) -> SignupResponse:
    """
    Register a customer account, merging a lead with the same email.

    The token is minted only after the promotion transaction committed, so a
    failed signup never hands out a session.
    """
    user, promoted = await promote_lead_on_signup(db, user_data)
    token = create_access_token(data={"sub": str(user.id)})

    return SignupResponse(
        user=UserResponse.model_validate(user),
        access_token=token,
        promoted_from_lead=promoted,
    )


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> str:
    """
    Authenticate user and return JWT access token.
    Raises UnauthenticatedError if credentials are invalid.
    """
    email = normalize_email(login_data.email)
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.password_hash):
        logger.warning("login_failed", email=email)
        raise UnauthenticatedError("Invalid email or password")

    token = create_access_token(data={"sub": str(user.id)})
    logger.info("user_logged_in", user_id=user.id)
    return token


async def get_profile(db: AsyncSession, actor: Actor) -> User:
    result = await db.execute(select(User).where(User.id == actor.user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user

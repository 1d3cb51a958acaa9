"""
Identity: password hashing, bearer tokens, and Actor resolution.

The booking core never reads request state. Route handlers depend on
get_current_actor, which turns the bearer token into an Actor value that is
passed explicitly into every service call.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pestbook.core.config import get_settings
from pestbook.core.errors import UnauthenticatedError
from pestbook.core.logging import bind_actor
from pestbook.db.session import get_db
from pestbook.models.user import User, UserRole, ROLE_ADMIN, ROLE_CUSTOMER, ROLE_SUPERUSER, ROLE_WORKER

settings = get_settings()
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    user_id: int
    roles: frozenset

    @property
    def is_admin(self) -> bool:
        return ROLE_ADMIN in self.roles or ROLE_SUPERUSER in self.roles

    @property
    def is_worker(self) -> bool:
        return ROLE_WORKER in self.roles

    @property
    def is_customer(self) -> bool:
        return ROLE_CUSTOMER in self.roles


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return bcrypt.checkpw(password.encode(), password_hash.encode())


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> int:
    """Return the user id carried by a token, or raise UnauthenticatedError."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Session expired")
    except jwt.PyJWTError:
        raise UnauthenticatedError("Invalid session")

    sub = payload.get("sub")
    if sub is None or not str(sub).isdigit():
        raise UnauthenticatedError("Invalid session")
    return int(sub)


async def load_actor(db: AsyncSession, user_id: int) -> Actor:
    """Resolve the role set for a user id. Unknown users are unauthenticated."""
    exists = await db.execute(select(User.id).where(User.id == user_id))
    if exists.scalar_one_or_none() is None:
        raise UnauthenticatedError("Not authenticated")

    result = await db.execute(select(UserRole.role).where(UserRole.user_id == user_id))
    return Actor(user_id=user_id, roles=frozenset(result.scalars().all()))


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> int:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthenticatedError("Not authenticated")
    user_id = decode_access_token(credentials.credentials)
    bind_actor(user_id)
    return user_id


async def get_current_actor(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    return await load_actor(db, user_id)

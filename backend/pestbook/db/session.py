"""
Async engine, per-request sessions, and the transaction helper every
state-mutating operation runs inside.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pestbook.core.config import get_settings
from pestbook.core.errors import ConflictError, DomainError, StoreError
from pestbook.core.logging import get_logger
from pestbook.core.metrics import record_rollback

logger = get_logger(__name__)
settings = get_settings()

# Constraint names (PostgreSQL) and column paths (SQLite) -> user-facing conflict message
CONSTRAINT_MESSAGES = (
    (("bookings_no_overlap",), "Time slot unavailable"),
    (("uq_users_email", "users.email"), "Email already in use"),
    (("uq_leads_email", "leads.email"), "Lead email already exists"),
)


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {}
    options = {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
    }
    if url.startswith("postgresql+asyncpg"):
        options["connect_args"] = {
            "server_settings": {"statement_timeout": str(settings.DB_STATEMENT_TIMEOUT_MS)}
        }
    return options


engine = create_async_engine(settings.DATABASE_URL, echo=False, **_engine_options(settings.DATABASE_URL))
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request, closed on every exit path."""
    async with AsyncSessionLocal() as session:
        yield session


def translate_integrity_error(exc: IntegrityError) -> DomainError:
    text = str(exc.orig) if exc.orig is not None else str(exc)
    for needles, message in CONSTRAINT_MESSAGES:
        if any(needle in text for needle in needles):
            return ConflictError(message)
    return StoreError("Database constraint violated")


async def _rollback(db: AsyncSession, reason: str) -> None:
    record_rollback(reason)
    try:
        await db.rollback()
    except Exception as exc:
        # never masks the error that triggered the rollback
        logger.error("rollback_failed", error=str(exc))


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a block as a single unit of work.

    Commits when the block exits cleanly. Any failure rolls back explicitly
    before the error leaves this function, so callers never observe a
    partially applied change. Store errors are translated into the domain
    taxonomy; everything else is re-raised untouched.
    """
    try:
        yield db
        await db.commit()
    except DomainError:
        await _rollback(db, "domain")
        raise
    except IntegrityError as exc:
        await _rollback(db, "integrity")
        translated = translate_integrity_error(exc)
        logger.warning("transaction_constraint_violation", error=translated.message)
        raise translated from exc
    except SQLAlchemyError as exc:
        await _rollback(db, "store")
        logger.error("transaction_store_error", error=str(exc))
        raise StoreError("Unexpected database error") from exc
    except BaseException:
        await _rollback(db, "unexpected")
        raise

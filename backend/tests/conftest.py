"""
Pytest fixtures for test database, client, and authentication.

Every test gets a fresh in-memory SQLite database. The application sees a
new session per request (as with get_db in production); fixtures and
assertions use their own db_session on the same connection.

SQLite has no exclusion constraints, so the overlap guard that PostgreSQL
enforces with bookings_no_overlap is emulated with triggers raising an
error under the same name.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_ENABLED", "false")

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from pestbook.main import app
from pestbook.db.base import Base
from pestbook.db.session import get_db
from pestbook.core.security import Actor, create_access_token, hash_password
from pestbook.models import Service, User, UserRole

TEST_PASSWORD = "testpassword123"

_ACTIVE = "('pending', 'accepted', 'assigned')"

OVERLAP_TRIGGERS = (
    f"""
    CREATE TRIGGER bookings_no_overlap_insert
    BEFORE INSERT ON bookings
    WHEN NEW.status IN {_ACTIVE}
    BEGIN
        SELECT RAISE(ABORT, 'bookings_no_overlap')
        WHERE EXISTS (
            SELECT 1 FROM bookings
            WHERE status IN {_ACTIVE}
              AND starts_at < NEW.ends_at
              AND ends_at > NEW.starts_at
        );
    END
    """,
    f"""
    CREATE TRIGGER bookings_no_overlap_update
    BEFORE UPDATE OF starts_at, ends_at, status ON bookings
    WHEN NEW.status IN {_ACTIVE}
    BEGIN
        SELECT RAISE(ABORT, 'bookings_no_overlap')
        WHERE EXISTS (
            SELECT 1 FROM bookings
            WHERE id != NEW.id
              AND status IN {_ACTIVE}
              AND starts_at < NEW.ends_at
              AND ends_at > NEW.starts_at
        );
    END
    """,
)


def slot(days: int = 7, hour: int = 10, minutes: int = 60) -> tuple[str, str]:
    """ISO (starts_at, ends_at) pair on a whole hour some days from now, in UTC."""
    day = (datetime.now(timezone.utc) + timedelta(days=days)).replace(hour=hour, minute=0, second=0, microsecond=0)
    return day.isoformat(), (day + timedelta(minutes=minutes)).isoformat()


@pytest_asyncio.fixture(scope="function")
async def engine():
    """In-memory database with the full schema and the overlap triggers."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        for ddl in OVERLAP_TRIGGERS:
            await conn.execute(text(ddl))

    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own session on the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: persist a user with the given roles."""

    async def _make(email: str, roles=("customer",), **fields) -> User:
        user = User(
            email=email,
            password_hash=hash_password(TEST_PASSWORD),
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", "User"),
            **fields,
        )
        for role in roles:
            user.roles.append(UserRole(role=role))
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


def headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


def actor_for(user: User) -> Actor:
    return Actor(user_id=user.id, roles=frozenset(user.role_names))


@pytest_asyncio.fixture
async def customer(make_user) -> User:
    return await make_user("customer@example.com", address="12 Elm Street, Springfield")


@pytest_asyncio.fixture
async def other_customer(make_user) -> User:
    return await make_user("other@example.com", address="99 Oak Avenue, Springfield")


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    return await make_user("admin@example.com", roles=("admin",))


@pytest_asyncio.fixture
async def worker(make_user) -> User:
    return await make_user("worker@example.com", roles=("worker",))


@pytest_asyncio.fixture
async def second_worker(make_user) -> User:
    return await make_user("worker2@example.com", roles=("worker",))


@pytest.fixture
def customer_headers(customer: User) -> dict:
    return headers_for(customer)


@pytest.fixture
def admin_headers(admin: User) -> dict:
    return headers_for(admin)


@pytest.fixture
def worker_headers(worker: User) -> dict:
    return headers_for(worker)


@pytest_asyncio.fixture
async def service(db_session: AsyncSession) -> Service:
    svc = Service(
        title="General Pest Control",
        description="Interior and exterior treatment",
        duration_minutes=60,
        base_price_cents=12900,
        sort_order=1,
    )
    db_session.add(svc)
    await db_session.commit()
    return svc


@pytest_asyncio.fixture
async def inactive_service(db_session: AsyncSession) -> Service:
    svc = Service(title="Retired Fogging", description="No longer offered", is_active=False)
    db_session.add(svc)
    await db_session.commit()
    return svc


@pytest.fixture
def book(client: AsyncClient, service: Service):
    """Factory: create a booking through the API and return the response."""

    async def _book(headers: dict, days: int = 7, hour: int = 10, minutes: int = 60, **extra):
        starts_at, ends_at = slot(days, hour, minutes)
        payload = {
            "service_public_id": str(service.public_id),
            "starts_at": starts_at,
            "ends_at": ends_at,
            "address": "12 Elm Street, Springfield",
            **extra,
        }
        return await client.post("/api/v1/bookings", json=payload, headers=headers)

    return _book

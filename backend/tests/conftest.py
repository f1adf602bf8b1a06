"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from backend.finpanel.main import app
from backend.finpanel.db.session import get_db, Base
from backend.finpanel.core.redis_client import get_redis
from backend.finpanel.core.dependencies import identity_for
from backend.finpanel.core.jwt import create_access_token
from backend.finpanel.core.security import get_password_hash
from backend.finpanel.models.enums import UserRole
from backend.finpanel.models.user import User

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def setex(self, key, ttl, value):
        return await self.set(key, value, ex=ttl)

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


async def make_user(
    db: AsyncSession,
    email: str,
    role: UserRole = UserRole.USER,
    approved: bool = True,
    password: str = "password123",
    name: str = None
) -> User:
    user = User(
        email=email,
        name=name or email.split("@")[0].title(),
        hashed_password=get_password_hash(password),
        role=role,
        is_active=True,
        is_approved=approved,
    )
    db.add(user)
    await db.commit()
    return user


def bearer(user: User) -> dict:
    token = create_access_token(data={"sub": user.email, "user_id": user.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def admin_user(db_session):
    return await make_user(db_session, "admin@test.com", role=UserRole.ADMIN, name="Admin")


@pytest.fixture
async def regular_user(db_session):
    return await make_user(db_session, "user@test.com", name="Alice")


@pytest.fixture
async def other_user(db_session):
    return await make_user(db_session, "other@test.com", name="Bob")


@pytest.fixture
def admin_identity(admin_user):
    return identity_for(admin_user)


@pytest.fixture
def user_identity(regular_user):
    return identity_for(regular_user)


@pytest.fixture
def other_identity(other_user):
    return identity_for(other_user)


@pytest.fixture
def admin_headers(admin_user):
    return bearer(admin_user)


@pytest.fixture
def user_headers(regular_user):
    return bearer(regular_user)


@pytest.fixture
def other_headers(other_user):
    return bearer(other_user)


@pytest.fixture
def user_factory(db_session):
    """Create extra users: ``await user_factory("x@test.com", role=UserRole.ADMIN)``."""
    async def _make(email: str, **kwargs) -> User:
        return await make_user(db_session, email, **kwargs)
    return _make


@pytest.fixture
def auth_headers():
    """Build bearer headers for any user."""
    return bearer

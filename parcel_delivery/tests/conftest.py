"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from parcel_delivery.app.main import app
from parcel_delivery.app.core.jwt import create_access_token
from parcel_delivery.app.core.redis_client import get_redis
from parcel_delivery.app.db.session import get_db, get_session_factory, Base
from parcel_delivery.app.models.parcel import Parcel
from parcel_delivery.app.models.parcel_enums import PaymentStatus, DeliveryStatus
from parcel_delivery.app.services.payment_gateway import get_payment_gateway

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
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
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def delete(self, key):
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        self.store = {}
        self._closed = False

    async def aclose(self):
        self._closed = True
        self.store = {}


class FakePaymentGateway:
    """Stands in for Stripe; remembers every requested amount."""

    def __init__(self):
        self.amounts = []

    async def create_payment_intent(self, amount: int) -> str:
        self.amounts.append(amount)
        return f"pi_test_{amount}_secret"


mock_redis = MockRedis()
fake_gateway = FakePaymentGateway()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Apply dependency overrides once for the session."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    def override_get_session_factory():
        return TestingSessionLocal

    async def override_get_redis():
        return mock_redis

    async def override_get_payment_gateway():
        return fake_gateway

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = override_get_session_factory
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_payment_gateway] = override_get_payment_gateway
    yield

    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await mock_redis.flushdb()
    fake_gateway.amounts.clear()

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


@pytest.fixture
def redis_mock():
    return mock_redis


@pytest.fixture
def gateway():
    return fake_gateway


def make_token(email: str, role: str = "user") -> str:
    return create_access_token(data={"sub": f"uid-{email}", "email": email, "role": role})


def auth_headers(email: str, role: str = "user") -> dict:
    return {"Authorization": f"Bearer {make_token(email, role)}"}


@pytest.fixture
def user_headers():
    return auth_headers("sender@test.com")


@pytest.fixture
def other_user_headers():
    return auth_headers("other@test.com")


@pytest.fixture
def admin_headers():
    return auth_headers("admin@test.com", role="admin")


@pytest.fixture
def rider_headers():
    return auth_headers("rider@test.com", role="rider")


@pytest.fixture
def parcel_factory(db_session):
    """Insert parcels directly into the store."""

    async def _create(
        created_by: str = "sender@test.com",
        title: str = "Documents",
        payment_status: PaymentStatus = PaymentStatus.UNPAID
    ) -> Parcel:
        parcel = Parcel(
            created_by=created_by,
            title=title,
            cost=500,
            delivery_status=DeliveryStatus.PAID if payment_status == PaymentStatus.PAID else DeliveryStatus.PENDING,
            payment_status=payment_status
        )
        db_session.add(parcel)
        await db_session.commit()
        await db_session.refresh(parcel)
        return parcel

    return _create

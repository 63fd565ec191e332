import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from yarrow.main import app
from yarrow.database import Base, get_db, install_listeners
from yarrow.api.deps import create_access_token, get_ai_gateway, get_escalation_notifier
from yarrow.services.ticket_state import TicketStateMachine
from tests.factories import TicketFactory
from tests.fakes import FakeGateway, RecordingNotifier

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"


@pytest_asyncio.fixture
async def test_db():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )
    install_listeners(engine.sync_engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def ticket(test_db: AsyncSession):
    """An open ticket with a tenant and an assigned agent."""
    return await TicketStateMachine(test_db).create_ticket(**TicketFactory())


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, fake_gateway: FakeGateway, notifier: RecordingNotifier):
    """Create test client with overridden database and reasoning service."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ai_gateway] = lambda: fake_gateway
    app.dependency_overrides[get_escalation_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def tenant_id():
    return uuid.uuid4()


@pytest_asyncio.fixture
async def authenticated_client(client: AsyncClient, tenant_id: uuid.UUID):
    """Client carrying a tenant bearer token."""
    token = create_access_token({"sub": str(tenant_id), "role": "tenant"})
    client.headers["Authorization"] = f"Bearer {token}"
    return client

"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.main import app
from app.models.base import Base
from app.db.session import get_db
from tests.factories import ClientFactory, ClientFinderFactory, LeadFactory, UserFactory


# Test database URL
# WHY: Using SQLite for tests eliminates external database dependencies
# and makes tests faster. For integration tests, use PostgreSQL.
TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Create a test database engine.

    WHY: Function scope ensures each test gets a fresh database state,
    preventing test pollution and ensuring test isolation. StaticPool keeps
    the single in-memory database alive for the whole test.
    """
    engine = create_async_engine(
        TEST_ASYNC_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # The sqlite driver delays BEGIN on its own, which breaks SAVEPOINT
    # (number retries and finder fee creation run in begin_nested).
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session.

    WHY: Each test gets its own session that is rolled back after the test,
    ensuring test isolation without recreating tables for each test.

    Yields:
        AsyncSession: Database session for the test
    """
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test HTTP client.

    WHY: AsyncClient allows testing FastAPI endpoints without running
    a real server, making tests faster and more reliable. Requests share
    the test session so assertions can read what a request flushed.

    Yields:
        AsyncClient: HTTP client for making test requests
    """

    async def override_get_db():
        """Override database dependency with test session."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_person(db_session: AsyncSession):
    """
    Create a staff member with a default hourly rate of 180.

    WHY: HOURLY line items auto-fill the assigned person's rate.
    """
    return await UserFactory.create(
        db_session,
        name="Anna Associate",
        email="anna@example.com",
        default_hourly_rate=Decimal("180.00"),
    )


@pytest_asyncio.fixture
async def test_client(db_session: AsyncSession):
    """Create a client without finders or default discount."""
    return await ClientFactory.create(db_session, name="Acme Ltd")


@pytest_asyncio.fixture
async def test_lead(db_session: AsyncSession):
    """Create a lead (prospective client)."""
    return await LeadFactory.create(db_session, name="Prospect GmbH")


@pytest_asyncio.fixture
async def test_finder(db_session: AsyncSession):
    """Create the user who referred the finder client."""
    return await UserFactory.create(db_session, name="Frank Finder", email="frank@example.com")


@pytest_asyncio.fixture
async def client_with_finder(db_session: AsyncSession, test_finder):
    """
    Create a client with one finder entitled to 10%.

    WHY: Finder fee tests need a client whose paid bills earn fees.
    """
    referred = await ClientFactory.create(db_session, name="Referred SA")
    await ClientFinderFactory.create(
        db_session,
        client=referred,
        user=test_finder,
        finder_fee_percent=Decimal("10"),
    )
    return referred


@pytest.fixture
def hourly_proposal_data(test_client, test_person) -> dict:
    """
    Request payload for a single-item HOURLY proposal (5h for Anna).

    WHY: Centralizing test data ensures consistency across tests
    and makes it easy to update test data in one place.
    """
    return {
        "title": "Contract review",
        "type": "HOURLY",
        "client_id": test_client.id,
        "items": [
            {
                "description": "Review of supply agreement",
                "person_id": test_person.id,
                "quantity": "5",
            }
        ],
    }

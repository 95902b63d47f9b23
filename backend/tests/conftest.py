"""
NeighborHelp Backend: Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets a fresh in-memory SQLite database (aiosqlite) with the
       real schema, a real ContentCipher and an AsyncMock notifier.

Fixture Hierarchy:
    Session-scoped:
    └── cipher: ContentCipher under a fixed test key

    Function-scoped:
    ├── db_engine / db_session: in-memory database, schema created per test
    ├── users: alice, bob, carol, foodbank (USER), admin, moderator,
    │          disabled and deleted accounts
    ├── resources: active and pending listings owned by bob
    ├── mock_notifier: AsyncMock Notifier returning NotificationResult.ok()
    ├── message_service: MessageService(cipher, mock_notifier)
    └── test_client: HTTPX AsyncClient over ASGITransport with overrides
"""

import os

# Must run before any app import: app.config reads the environment once
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENCRYPTION_SECRET"] = "test-secret-not-real"
os.environ["ENCRYPTION_SALT"] = "test-salt-not-real"
os.environ["RESEND_API_KEY"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models.message import Message  # noqa: F401
from app.models.resource import Resource, ResourceStatus
from app.models.user import User, UserRole
from app.services.content_cipher import ContentCipher, derive_key
from app.services.message_service import MessageService
from app.services.notifier_base import NotificationResult, Notifier


# ══════════════════════════════════════════════════════════════════════════
# Session-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def cipher():
    """ContentCipher under the test key (PBKDF2 runs once per session)."""
    return ContentCipher(derive_key("test-secret-not-real", "test-salt-not-real"))


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """
    In-memory SQLite engine with the full schema.

    StaticPool keeps a single connection, so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def users(db_session):
    """
    Accounts used across tests, keyed by username.

    alice, bob, carol and foodbank are active regular users; foodbank is an
    organization. admin and moderator are privileged. ghost is disabled and
    gone is soft-deleted.
    """
    accounts = {
        "alice": User(username="alice", email="alice@example.com", enabled=True),
        "bob": User(username="bob", email="bob@example.com", enabled=True),
        "carol": User(username="carol", email="carol@example.com", enabled=True),
        "foodbank": User(
            username="foodbank",
            email="contact@foodbank.org",
            organization_name="Lyon Food Bank",
            enabled=True,
        ),
        "admin": User(
            username="admin", email="admin@example.com", role=UserRole.ADMIN, enabled=True
        ),
        "moderator": User(
            username="moderator",
            email="mod@example.com",
            role=UserRole.MODERATOR,
            enabled=True,
        ),
        "ghost": User(username="ghost", email="ghost@example.com", enabled=False),
        "gone": User(username="gone", email="gone@example.com", enabled=True, deleted=True),
    }
    db_session.add_all(accounts.values())
    await db_session.flush()
    return accounts


@pytest_asyncio.fixture
async def resources(db_session, users):
    listings = {
        "active": Resource(
            owner=users["bob"], title="Free tutoring", city="Lyon", status=ResourceStatus.ACTIVE
        ),
        "pending": Resource(
            owner=users["bob"], title="Spare bicycle", city="Lyon", status=ResourceStatus.PENDING
        ),
    }
    db_session.add_all(listings.values())
    await db_session.flush()
    return listings


# ══════════════════════════════════════════════════════════════════════════
# Service Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_notifier():
    """
    Notifier double that records calls and reports successful delivery.

    Tests override send_message_notification.return_value / side_effect
    to simulate delivery failures.
    """
    notifier = AsyncMock(spec=Notifier)
    notifier.send_message_notification.return_value = NotificationResult.ok()
    notifier.health_check.return_value = "available"
    return notifier


@pytest.fixture
def message_service(cipher, mock_notifier):
    return MessageService(cipher=cipher, notifier=mock_notifier)


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(db_session, message_service, mock_notifier):
    """
    HTTPX AsyncClient talking to the FastAPI app in-process.

    The lifespan does not run under ASGITransport, so the test session and
    service are injected through dependency overrides instead.

    Usage:
        async def test_inbox(test_client, users):
            response = await test_client.get(
                "/api/messages/inbox", headers={"X-User-Email": "bob@example.com"}
            )
    """
    from app.database import get_db_session
    from app.main import app
    from app.routes.messages import get_message_service

    async def _override_db():
        yield db_session

    app.dependency_overrides[get_db_session] = _override_db
    app.dependency_overrides[get_message_service] = lambda: message_service
    app.state.notifier = mock_notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    del app.state.notifier

"""
Pytest configuration and fixtures for tests.
Provides reusable test fixtures for database, users, and data setup.
"""
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.v1.messages import limiter
from app.core.cache import cache
from app.core.database import get_db
from app.core.security import create_identity_token
from app.core.websocket import connection_manager
from app.main import fastapi_app
from app.models.base import Base


# In-memory SQLite shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Controllable unix-time source for the presence and typing trackers."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="function")
async def test_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def file_session_factory(tmp_path):
    """
    Session factory over a file-backed SQLite database.

    Each session gets its own connection, so concurrent requests can race
    the way they do against a real server.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def notifier(mocker):
    """
    Stub out live query pushes.

    Services default to the global Socket.IO manager; its publish is replaced
    so tests can assert on what would have been pushed.
    """
    return mocker.patch.object(connection_manager, "publish", new_callable=mocker.AsyncMock)


@pytest.fixture(autouse=True)
def ephemeral_store():
    """Fresh in-process typing/presence store for every test."""
    cache.redis = None
    cache.memory.clear()
    yield cache
    cache.memory.clear()


@pytest.fixture
def clock():
    return FakeClock()


async def _create_user(db_session: AsyncSession, subject: str, name: str, email: str):
    from app.models.user import User

    user = User(
        name=name,
        email=email,
        token_identifier=f"|{subject}",
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def alice(db_session: AsyncSession):
    """Create a test user."""
    return await _create_user(db_session, "alice", "Alice", "alice@example.com")


@pytest.fixture
async def bob(db_session: AsyncSession):
    """Create a second test user."""
    return await _create_user(db_session, "bob", "Bob", "bob@example.com")


@pytest.fixture
async def carol(db_session: AsyncSession):
    """Create a third test user (not in the 1:1 conversation)."""
    return await _create_user(db_session, "carol", "Carol", "carol@example.com")


@pytest.fixture
async def direct_conversation(db_session: AsyncSession, alice, bob):
    """1:1 conversation between alice and bob."""
    from app.services.conversation_service import ConversationService

    conversation_id = await ConversationService(db_session).create_conversation(
        creator_id=alice.id,
        participant_ids=[bob.id],
        is_group=False
    )
    return conversation_id


@pytest.fixture
async def group_conversation(db_session: AsyncSession, alice, bob, carol):
    """Group conversation of alice, bob and carol."""
    from app.services.conversation_service import ConversationService

    conversation_id = await ConversationService(db_session).create_conversation(
        creator_id=alice.id,
        participant_ids=[bob.id, carol.id],
        is_group=True,
        name="Team"
    )
    return conversation_id


def auth_headers_for(subject: str, name: str, **claims) -> dict:
    """Authorization header carrying an identity token for subject."""
    token = create_identity_token(subject, {"name": name, **claims})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice_headers(alice):
    return auth_headers_for("alice", "Alice", email="alice@example.com")


@pytest.fixture
def bob_headers(bob):
    return auth_headers_for("bob", "Bob", email="bob@example.com")


@pytest.fixture
def carol_headers(carol):
    return auth_headers_for("carol", "Carol", email="carol@example.com")


@pytest.fixture(scope="function")
async def client(db_session: AsyncSession, mocker) -> AsyncGenerator[AsyncClient, None]:
    """
    Create test HTTP client sharing the test session.

    Authentication runs for real: requests carry identity tokens signed with
    the configured secret.
    """
    async def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    mocker.patch.object(limiter, "enabled", False)

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac

    # Clear overrides after test
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def headers_for():
    """Build identity headers for users that do not exist yet."""
    return auth_headers_for

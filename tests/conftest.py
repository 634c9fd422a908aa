"""
Root Pytest Fixtures.

Shared fixtures available to all test types.

Storage Backends:
    The relational backend runs on in-memory SQLite (aiosqlite) and the
    document backend on mongomock-motor, so no database server is needed.
    Each test gets fresh storage; nothing leaks between tests.

    The `backend` fixture is parametrized over both, so every test that
    uses it runs once per backend.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from mongomock_motor import AsyncMongoMockClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from smscp.core.logging import setup_logging
from smscp.core.security import PasswordHasher, TokenService
from smscp.storage.base import StorageBackend
from smscp.storage.document import DocumentBackend
from smscp.storage.relational import RelationalBackend

PROJECT_ROOT = Path(__file__).resolve().parent.parent

TEST_JWT_SECRET = "test-secret-key-that-is-long-enough-for-testing-purposes"
TEST_MIGRATION_KEY = "test-migration-key"
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

BACKENDS = ["relational", "document"]


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def _configure_logging():
    """Route structlog through stdlib logging so pytest captures it."""
    with pytest.MonkeyPatch.context() as mp:
        mp.chdir(PROJECT_ROOT)
        setup_logging(level="DEBUG", enable_console=False, enable_file_logging=False)
    yield


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Controllable clock returning naive UTC datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Security Fixtures
# =============================================================================


@pytest.fixture
def hasher() -> PasswordHasher:
    """bcrypt at the minimum cost factor keeps tests fast."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_JWT_SECRET, algorithm="HS256", audience="smscp-test")


# =============================================================================
# Storage Fixtures
# =============================================================================


def make_relational_backend(
    hasher: PasswordHasher,
    tokens: TokenService,
    clock: FakeClock,
) -> RelationalBackend:
    """In-memory SQLite needs a single shared connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    return RelationalBackend(
        engine,
        hasher=hasher,
        tokens=tokens,
        migration_key=TEST_MIGRATION_KEY,
        clock=clock,
    )


def make_document_backend(
    hasher: PasswordHasher,
    tokens: TokenService,
    clock: FakeClock,
) -> DocumentBackend:
    return DocumentBackend(
        AsyncMongoMockClient(),
        "smscp_test",
        hasher=hasher,
        tokens=tokens,
        migration_key=TEST_MIGRATION_KEY,
        collection_prefix="test_",
        clock=clock,
    )


@pytest.fixture(params=BACKENDS)
async def backend(
    request: pytest.FixtureRequest,
    hasher: PasswordHasher,
    tokens: TokenService,
    clock: FakeClock,
) -> AsyncGenerator[StorageBackend, None]:
    """
    Provide a migrated storage backend, once per backend kind.

    Usage:
        async def test_create(backend: StorageBackend):
            user = await backend.user_create("alice", digest, "+15551234567")
            assert user.id is not None
    """
    if request.param == "relational":
        storage: StorageBackend = make_relational_backend(hasher, tokens, clock)
    else:
        storage = make_document_backend(hasher, tokens, clock)
    await storage.migrate(TEST_MIGRATION_KEY)
    yield storage
    await storage.close()


@pytest.fixture
def migration_key() -> str:
    return TEST_MIGRATION_KEY


@pytest.fixture
def password_hash(hasher: PasswordHasher) -> str:
    """Digest of 'pw123', computed once per test."""
    return hasher.hash("pw123")


# =============================================================================
# Utility Fixtures
# =============================================================================


@pytest.fixture
def anyio_backend() -> str:
    """Specify the async backend for anyio."""
    return "asyncio"

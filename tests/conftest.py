"""
Pytest Configuration and Shared Fixtures.

Provides common test fixtures for the encryption core and the reference
persistence layer.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool


TEST_ENCRYPTION_KEY = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
OTHER_ENCRYPTION_KEY = "fedcba9876543210fedcba9876543210fedcba9876543210fedcba9876543210"


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_encryption_singleton():
    """Make every test load the key from its own environment."""
    from fieldvault.security import reset_encryption_service

    reset_encryption_service()
    yield
    reset_encryption_service()


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set up mock environment variables for testing."""
    env_vars = {
        "APP_LOG_LEVEL": "DEBUG",
        "APP_LOG_DIR": "",
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "ENCRYPTION_KEY": TEST_ENCRYPTION_KEY,
    }

    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)

    return env_vars


@pytest.fixture
def no_key_env(mock_env_vars, monkeypatch):
    """Environment where ENCRYPTION_KEY is not configured."""
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    return mock_env_vars


@pytest.fixture
def encryption_key():
    """The hex key used by the configured test environment."""
    return TEST_ENCRYPTION_KEY


@pytest.fixture
def service(mock_env_vars):
    """Process-wide encryption service loaded from the mock environment."""
    from fieldvault.security import get_encryption_service

    return get_encryption_service()


@pytest.fixture
def unconfigured_service():
    """Encryption service without a key (degraded read path)."""
    from fieldvault.security import EncryptionService

    return EncryptionService(key="")


@pytest.fixture
def other_key_service():
    """Encryption service with a different valid key."""
    from fieldvault.security import EncryptionService

    return EncryptionService(key=OTHER_ENCRYPTION_KEY)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def db_engine(mock_env_vars):
    """In-memory async SQLite engine with the schema created."""
    from fieldvault.database import init_database

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Async session bound to the in-memory database."""
    from fieldvault.database import create_session_factory

    session_factory = create_session_factory(db_engine)
    async with session_factory() as session:
        yield session

"""Pytest configuration and fixtures for posauth tests.

Database Handling:
- Uses TEST_DATABASE_URL when set (e.g. a PostgreSQL instance)
- Otherwise runs against a throwaway SQLite file via aiosqlite
"""

import os
import tempfile
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

_db_dir = tempfile.mkdtemp(prefix="posauth-test-")

# Set test environment variables before importing app modules
os.environ["JWT_SECRET_KEY"] = "test-secret-key-0123456789abcdefghijklmnop"
os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_db_dir}/posauth_test.db"
)
# Cheap Argon2 parameters keep the suite fast; production defaults are much higher
os.environ["PASSWORD_HASH_TIME_COST"] = "1"
os.environ["PASSWORD_HASH_MEMORY_COST"] = "1024"
os.environ["PASSWORD_HASH_PARALLELISM"] = "1"
os.environ["LOGIN_RATE_LIMIT_ATTEMPTS"] = "5"
os.environ["LOGIN_RATE_LIMIT_WINDOW_SECONDS"] = "60"
os.environ.pop("BOOTSTRAP_ADMIN_USERNAME", None)
os.environ.pop("BOOTSTRAP_ADMIN_PASSWORD", None)

# Test credentials
TEST_PASSWORD = "Secret1"
TEST_ADMIN_USERNAME = "manager01"
TEST_STAFF_USERNAME = "waiter01"


# --- Login Throttle Reset Fixture ---


@pytest.fixture(autouse=True)
def reset_login_throttle():
    """Clear failed-login bookkeeping so attempts never leak between tests."""
    from posauth.api.auth import reset_login_attempts

    reset_login_attempts()
    yield
    reset_login_attempts()


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a database engine with a fresh schema for each test."""
    from posauth.models.base import BaseModel

    engine = create_async_engine(
        os.environ["DATABASE_URL"],
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database override."""
    from posauth.core.database import get_db
    from posauth.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# --- Test Factories ---


@pytest.fixture
def user_factory(db_session):
    """Factory for creating users through the credential store."""
    from posauth.models.user import Role, User
    from posauth.services.users import UserStore

    async def _create_user(
        username: str = TEST_STAFF_USERNAME,
        password: str = TEST_PASSWORD,
        role: Role = Role.STAFF,
        is_active: bool = True,
    ) -> User:
        store = UserStore(db_session)
        user = await store.create(username=username, password=password, role=role)
        if not is_active:
            user = await store.set_active(user, False)
        return user

    return _create_user


@pytest_asyncio.fixture
async def admin_user(user_factory):
    """Create a test admin user."""
    from posauth.models.user import Role

    return await user_factory(username=TEST_ADMIN_USERNAME, role=Role.ADMIN)


@pytest_asyncio.fixture
async def staff_user(user_factory):
    """Create a test staff user."""
    return await user_factory(username=TEST_STAFF_USERNAME)


@pytest.fixture
def token_issuer():
    """The process-wide token issuer the app uses."""
    from posauth.services.tokens import get_token_issuer

    return get_token_issuer()


@pytest.fixture
def token_for(token_issuer):
    """Issue a token for an existing user."""

    def _token_for(user, **kwargs) -> str:
        return token_issuer.issue(user.id, user.username, user.role, **kwargs)

    return _token_for


@pytest.fixture
def admin_token(admin_user, token_for) -> str:
    return token_for(admin_user)


@pytest.fixture
def admin_headers(admin_token) -> dict[str, str]:
    """Headers with an admin JWT for authenticated requests."""
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def staff_token(staff_user, token_for) -> str:
    return token_for(staff_user)


@pytest.fixture
def staff_headers(staff_token) -> dict[str, str]:
    """Headers with a staff JWT for authenticated requests."""
    return {"Authorization": f"Bearer {staff_token}"}


@pytest.fixture
def test_password() -> str:
    return TEST_PASSWORD

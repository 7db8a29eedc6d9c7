"""
Pytest configuration and core fixtures.

Every test gets its own in-memory SQLite database (aiosqlite) with all
tables created, so tests are isolated without transaction tricks.
Notification delivery is replaced by an AsyncMock dispatcher.
"""

import os
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

TEST_PASSWORD = "Str0ng!Pass"
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def pytest_configure(config):
    """Point settings at an in-memory database before the app is imported."""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["DEBUG"] = "true"
    os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL", TEST_DATABASE_URL)


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    from homeservices_auth.db import Base
    import homeservices_auth.db.models  # noqa: F401

    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_dispatcher() -> AsyncMock:
    """NotificationDispatcher whose send_* coroutines record calls."""
    return AsyncMock()


@pytest.fixture
def password_service():
    from homeservices_auth.services.password import PasswordService

    return PasswordService()


@pytest.fixture
def otp_service(mock_dispatcher):
    from homeservices_auth.services.otp import OTPService

    return OTPService(dispatcher=mock_dispatcher)


@pytest.fixture
def token_service():
    from homeservices_auth.services.token import TokenService

    return TokenService(
        secret_key="test_secret_key_that_is_long_enough_for_hs256",
        issuer="test-issuer",
        audience="test-audience",
    )


@pytest.fixture
def auth_service(password_service, otp_service, token_service, mock_dispatcher):
    from homeservices_auth.services.auth import AuthService

    return AuthService(
        passwords=password_service,
        otps=otp_service,
        tokens=token_service,
        dispatcher=mock_dispatcher,
    )


@pytest.fixture
async def test_user(db_session: AsyncSession, password_service):
    from homeservices_auth.db.crud import user_db

    return await user_db.create(
        db_session,
        {
            "username": "jdoe",
            "email": "jane@example.com",
            "password_hash": password_service.hash_password(TEST_PASSWORD),
            "first_name": "Jane",
            "last_name": "Doe",
            "is_email_confirmed": True,
        },
    )


@pytest.fixture
async def inactive_user(db_session: AsyncSession, password_service):
    from homeservices_auth.db.crud import user_db

    return await user_db.create(
        db_session,
        {
            "username": "ghost",
            "email": "ghost@example.com",
            "password_hash": password_service.hash_password(TEST_PASSWORD),
            "is_active": False,
        },
    )


@pytest.fixture
def app(session_factory, token_service, auth_service):
    """FastAPI app bound to the test database and test services."""
    from homeservices_auth.dependencies import get_async_session
    from homeservices_auth.main import app as fastapi_app

    async def override_get_session():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_async_session] = override_get_session
    original_token_service = fastapi_app.state.token_service
    original_auth_service = fastapi_app.state.auth_service
    fastapi_app.state.token_service = token_service
    fastapi_app.state.auth_service = auth_service

    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.pop(get_async_session, None)
        fastapi_app.state.token_service = original_token_service
        fastapi_app.state.auth_service = original_auth_service


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

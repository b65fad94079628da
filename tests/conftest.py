import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Test settings must be in place before libs.common.config is first imported.
env_test_path = os.path.join(os.path.dirname(__file__), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=True)
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./ledger-test.db")

from httpx import ASGITransport, AsyncClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from libs.common.config import get_settings  # noqa: E402
from libs.db.base import Base  # noqa: E402
from libs.db.session import get_async_db  # noqa: E402
from services.ledger_service import models as _ledger_models  # noqa: E402,F401
from services.ledger_service.app.main import app  # noqa: E402
from services.ledger_service.services.settings_provider import (  # noqa: E402
    SettingsProvider,
)

get_settings.cache_clear()
settings = get_settings()


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    Fresh schema per test.

    Defaults to a throwaway SQLite file; set TEST_DATABASE_URL to run the
    suite against Postgres instead.
    """
    url = os.environ.get("TEST_DATABASE_URL") or (
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"
    )
    engine = create_async_engine(url, future=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory for code that opens its own sessions (worker tasks)."""
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Platform settings are cached per process; start every test clean."""
    SettingsProvider.invalidate()
    yield
    SettingsProvider.invalidate()


def make_token(role: str, sub: str = "test-caller") -> str:
    return jwt.encode(
        {"sub": sub, "role": role, "email": f"{sub}@test.local"},
        settings.JWT_SECRET,
        algorithm="HS256",
    )


@pytest.fixture
def service_headers() -> dict:
    return {"Authorization": f"Bearer {make_token('service_role', 'payments-service')}"}


@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": f"Bearer {make_token('admin', 'admin-1')}"}


@pytest.fixture
def member_headers() -> dict:
    return {"Authorization": f"Bearer {make_token('authenticated', 'member-1')}"}


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client against the ledger app, sharing the test's DB session.
    """

    async def _override_db():
        yield db_session

    app.dependency_overrides[get_async_db] = _override_db
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()

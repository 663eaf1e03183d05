"""Test configuration and fixtures.

Each test gets its own SQLite database file:
1. The schema is created from the ORM metadata
2. HTTP requests get their own session per request, like in production
3. The ``session`` fixture is an independent session for arranging and asserting
4. CAPTCHA and email collaborators are replaced with in-memory fakes
"""

import os
from collections.abc import AsyncGenerator, Callable, Coroutine
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Load test environment variables before the settings module is imported
test_env_path = Path(__file__).parent.parent / ".env.test"
load_dotenv(test_env_path, override=True)
os.environ["TESTING"] = "true"

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from authcore.database.base import Base  # noqa: E402
from authcore.database.dependencies import get_db_session  # noqa: E402
from authcore.features.account.models import Account, AccountRole, AuthProvider  # noqa: E402
from authcore.features.auth.dependencies import get_captcha_verifier, get_email_notifier  # noqa: E402
from authcore.features.auth.jwt_utils import create_access_token  # noqa: E402
from authcore.main import app  # noqa: E402

DEFAULT_PASSWORD = "SecurePass123!"


# Collaborator fakes


class FakeCaptcha:
    """CAPTCHA oracle returning a fixed answer and recording the tokens it saw."""

    def __init__(self, result: bool = True):
        self.result = result
        self.tokens: list[str | None] = []

    async def verify(self, token: str | None, remote_ip: str | None = None) -> bool:
        self.tokens.append(token)
        return self.result


class FakeNotifier:
    """Email notifier that records which accounts it was asked to mail."""

    def __init__(self):
        self.verifications: list[str] = []
        self.password_resets: list[str] = []

    async def send_verification(self, account: Account) -> bool:
        self.verifications.append(account.email)
        return True

    async def send_password_reset(self, account: Account) -> bool:
        self.password_resets.append(account.email)
        return True


# Database Setup - Function Scope (fresh file per test)


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Create a database file and schema for one test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'authcore.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as async_session:
        yield async_session


# Collaborators


@pytest.fixture
def captcha() -> FakeCaptcha:
    return FakeCaptcha()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


# FastAPI Client & Dependency Overrides


@pytest_asyncio.fixture(autouse=True)
async def override_dependencies(
    session_factory: async_sessionmaker[AsyncSession],
    captcha: FakeCaptcha,
    notifier: FakeNotifier,
):
    """Point the app at the per-test database and the collaborator fakes."""

    async def _get_test_session():
        async with session_factory() as request_session:
            try:
                yield request_session
                await request_session.commit()
            except Exception:
                await request_session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _get_test_session
    app.dependency_overrides[get_captcha_verifier] = lambda: captcha
    app.dependency_overrides[get_email_notifier] = lambda: notifier
    yield
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient]:
    """Unauthenticated async HTTP test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Account factory


@pytest.fixture
def make_account(session: AsyncSession) -> Callable[..., Coroutine[Any, Any, Account]]:
    """Factory fixture that persists accounts.

    Usage:
        account = await make_account(email="a@x.com", totp_secret=secret, totp_enabled=True)
    """
    counter = 0

    async def _make_account(
        email: str | None = None,
        password: str | None = DEFAULT_PASSWORD,
        provider: AuthProvider = AuthProvider.LOCAL,
        **fields: Any,
    ) -> Account:
        nonlocal counter
        counter += 1
        account = Account(
            email=email or f"user{counter}@example.com",
            hashed_password=Account.hash_password(password) if password else None,
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", f"User{counter}"),
            provider=provider.value,
            roles=fields.pop("roles", [AccountRole.USER.value]),
            email_verified=fields.pop("email_verified", True),
            **fields,
        )
        session.add(account)
        await session.commit()
        await session.refresh(account)
        return account

    return _make_account


@pytest.fixture
def auth_headers() -> Callable[[Account], dict[str, str]]:
    """Build a bearer header carrying a fresh access token for the account."""

    def _auth_headers(account: Account) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(account.id, account.email)}"}

    return _auth_headers

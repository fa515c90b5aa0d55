"""Shared test fixtures.

Settings are read from the environment on first import, so the required
variables are set here before anything from chesswager is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-for-the-chesswager-suite-only")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("IDENTITY_PROVIDER_SECRET", "test-identity-provider-secret-value")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from decimal import Decimal  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402

from chesswager.models.account import Account  # noqa: E402
from chesswager.models.wallet import LedgerReason  # noqa: E402
from chesswager.services.ledger import LedgerService  # noqa: E402
from chesswager.utils.db import build_engine, build_session_factory, create_tables  # noqa: E402

AccountFactory = Callable[..., Awaitable[str]]


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database file per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def make_account(session_factory) -> AccountFactory:
    """Create a committed account, funded through the ledger.

    Returns the account id.
    """

    async def _make(
        balance: Decimal | str = "0",
        rating: int = 1200,
        games_played: int = 0,
        username: str | None = None,
    ) -> str:
        suffix = uuid4().hex[:8]
        async with session_factory() as session:
            account = Account(
                external_id=f"ext-{suffix}",
                username=username or f"player_{suffix}",
                rating=rating,
                games_played=games_played,
                balance=Decimal("0"),
                balance_version=0,
            )
            session.add(account)
            await session.flush()
            if Decimal(str(balance)) > 0:
                await LedgerService(session).credit(
                    account.id, Decimal(str(balance)), LedgerReason.DEPOSIT
                )
            await session.commit()
            return account.id

    return _make


async def balance_of(session_factory, account_id: str) -> Decimal:
    """Committed balance, read in a fresh session."""
    async with session_factory() as session:
        return await LedgerService(session).get_balance(account_id)

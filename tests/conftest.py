"""
Test fixtures for the Account Ledger test suite.

This module provides shared fixtures used across all test files:

  - db_engine / session_factory: Fresh file-backed SQLite database per test
  - locks / ledger / queries: Engine and query services bound to that database
  - open_account: Registers an account with an opening balance
  - client: Async HTTP test client with the services injected
  - auth_headers: Builds an Authorization header for an account

Key design decisions:
  - A temporary database FILE (not sqlite://) is used. In-memory SQLite
    shares a single connection between all sessions, which would let one
    operation's rollback or commit leak into another — exactly the kind
    of interference the concurrency tests need to rule out.
  - The same BEGIN IMMEDIATE hook as production is installed, so the
    store serialises writers the way it does in the running service.
  - We override the get_ledger_service / get_query_service dependencies,
    so the application code works exactly as it does in production.
  - Tokens are minted with the production helper; identity issuance
    itself lives outside this service.
"""

import os

# Must be set before app.config is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-do-not-use-in-production")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from app.database import Base, configure_sqlite, make_session_factory
from app.dependencies import get_ledger_service, get_query_service
from app.locks import AccountLocks
from app.main import app
from app.security import create_access_token
from app.services import account_store
from app.services.ledger_service import LedgerService
from app.services.query_service import QueryService


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    configure_sqlite(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def locks():
    return AccountLocks(timeout_seconds=5.0)


@pytest.fixture
def ledger(session_factory, locks):
    """Ledger engine without retry backoff, so fault tests stay fast."""
    return LedgerService(session_factory, locks, retry_backoff_seconds=0)


@pytest.fixture
def queries(session_factory, locks):
    return QueryService(session_factory, locks, retry_backoff_seconds=0)


@pytest.fixture
def open_account(session_factory):
    """
    Register an account and return its ID.

    Usage:
        account_id = await open_account(100_00)
    """
    async def _open(opening_balance_cents: int = 0):
        async with session_factory() as db:
            account = await account_store.open_account(db, opening_balance_cents)
            await db.commit()
            return account.id

    return _open


@pytest.fixture
def auth_headers():
    """Build the Authorization header the external issuer would hand out."""
    def _headers(account_id) -> dict:
        token = create_access_token(data={"sub": str(account_id)})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def client(ledger, queries):
    """
    Async HTTP test client with the test services injected.

    All requests hit the per-test database through the same ledger and
    query service instances the test itself uses.
    """
    app.dependency_overrides[get_ledger_service] = lambda: ledger
    app.dependency_overrides[get_query_service] = lambda: queries

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()

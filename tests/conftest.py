"""
Test configuration and fixtures for BitLend backend tests.
"""
import pytest
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator
from decimal import Decimal

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from bitlend.core.database import Base
from bitlend.core.dependencies import get_store
from bitlend.core.locks import LocalLockManager
from bitlend.core.security import create_access_token
from bitlend.modules.loans.services import LoanService
from bitlend.modules.stats.schemas import StatsCreate
from bitlend.modules.stats.services import AccountingService
from bitlend.modules.transactions.services import TransactionService
from bitlend.modules.users.schemas import UserCreate
from bitlend.modules.valuation.services import RateTableValuation
from bitlend.store.base import LedgerStore
from bitlend.store.memory import MemoryLedgerStore
from bitlend.store.sql import SqlLedgerStore
from main import app


# ============================================================
# Store Fixtures
# ============================================================

# Use SQLite for testing (in-memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def memory_store() -> MemoryLedgerStore:
    return MemoryLedgerStore()


@asynccontextmanager
async def open_sqlite_store() -> AsyncIterator[SqlLedgerStore]:
    """SQL store on a fresh in-memory database"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with session_factory() as session:
            yield SqlLedgerStore(session)
    finally:
        await engine.dispose()


@pytest.fixture
async def sql_store() -> AsyncGenerator[SqlLedgerStore, None]:
    async with open_sqlite_store() as sql:
        yield sql


@pytest.fixture(params=["memory", "sql"])
async def store(request) -> AsyncGenerator[LedgerStore, None]:
    """Each engine test runs once per store backend"""
    if request.param == "memory":
        yield MemoryLedgerStore()
        return

    async with open_sqlite_store() as sql:
        yield sql


# ============================================================
# User Fixtures
# ============================================================

async def _create_test_user(
    store: LedgerStore,
    username: str,
    email: str,
    btc_balance: Decimal = Decimal("0"),
    with_stats: bool = True
):
    """Insert a user (and its stats) straight into the store"""
    async with store.atomic():
        user = await store.create_user(UserCreate(
            username=username,
            email=email,
            hashed_password="not-a-real-hash",
            avatar_initials=username[:2].upper(),
            btc_balance=btc_balance
        ))
        if with_stats:
            await store.create_stats(StatsCreate(user_id=user.id))
    return user


@pytest.fixture
async def borrower(store):
    return await _create_test_user(store, "Bea Borrower", "bea@example.com", btc_balance=Decimal("0.45"))


@pytest.fixture
async def lender(store):
    return await _create_test_user(store, "Leo Lender", "leo@example.com", btc_balance=Decimal("2"))


@pytest.fixture
async def outsider(store):
    return await _create_test_user(store, "Oscar Outsider", "oscar@example.com")


# ============================================================
# Service Fixtures
# ============================================================

@pytest.fixture
def valuation() -> RateTableValuation:
    return RateTableValuation({"BTC": 35000, "ETH": 2000, "SOL": 100})


@pytest.fixture
def locks() -> LocalLockManager:
    return LocalLockManager()


@pytest.fixture
def accounting(store) -> AccountingService:
    return AccountingService(store)


@pytest.fixture
def loan_service(store, accounting, valuation, locks) -> LoanService:
    return LoanService(store, accounting=accounting, valuation=valuation, locks=locks, require_reference=False)


@pytest.fixture
def transaction_service(store, valuation, locks) -> TransactionService:
    return TransactionService(store, valuation=valuation, locks=locks, require_reference=False)


# ============================================================
# API Fixtures
# ============================================================

@pytest.fixture
async def api_store() -> MemoryLedgerStore:
    return MemoryLedgerStore()


@pytest.fixture
async def client(api_store) -> AsyncGenerator[AsyncClient, None]:
    """Create test client backed by an isolated in-memory store"""

    async def override_get_store():
        yield api_store

    app.dependency_overrides[get_store] = override_get_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def api_borrower(api_store):
    return await _create_test_user(api_store, "Bea Borrower", "bea@example.com", btc_balance=Decimal("0.45"))


@pytest.fixture
async def api_lender(api_store):
    return await _create_test_user(api_store, "Leo Lender", "leo@example.com", btc_balance=Decimal("2"))


def _auth_headers_for(user) -> dict:
    token = create_access_token(data={"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def borrower_headers(api_borrower) -> dict:
    return _auth_headers_for(api_borrower)


@pytest.fixture
def lender_headers(api_lender) -> dict:
    return _auth_headers_for(api_lender)


@pytest.fixture
def make_user():
    """Factory for extra users: ``await make_user(store, username, email)``"""
    return _create_test_user


@pytest.fixture
def auth_headers():
    """Factory for bearer headers: ``auth_headers(user)``"""
    return _auth_headers_for

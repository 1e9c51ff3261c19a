"""Per-request access to the configured ledger store."""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from bitlend.core.config import Settings
from bitlend.core.database import AsyncSessionLocal
from bitlend.store.base import LedgerStore
from bitlend.store.memory import MemoryLedgerStore
from bitlend.store.sql import SqlLedgerStore


class SqlStoreProvider:
    """One session, and so one SqlLedgerStore, per request"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @asynccontextmanager
    async def session(self) -> AsyncIterator[LedgerStore]:
        async with self.session_factory() as session:
            try:
                yield SqlLedgerStore(session)
            except Exception:
                await session.rollback()
                raise


class MemoryStoreProvider:
    """Every request shares one process-wide MemoryLedgerStore"""

    def __init__(self, store: Optional[MemoryLedgerStore] = None):
        self.store = store or MemoryLedgerStore()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[LedgerStore]:
        yield self.store


def build_store_provider(config: Settings, session_factory: Optional[async_sessionmaker] = None):
    """Create the provider selected by STORAGE_BACKEND"""
    if config.STORAGE_BACKEND == "memory":
        return MemoryStoreProvider()
    if config.STORAGE_BACKEND != "sql":
        raise ValueError(f"Unknown STORAGE_BACKEND: {config.STORAGE_BACKEND}")
    return SqlStoreProvider(session_factory or AsyncSessionLocal)

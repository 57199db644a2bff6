"""
Async engine, session factory & the store dependency.

Routes never touch the engine directly: they depend on `get_store`,
which hands out either the SQL store bound to a fresh AsyncSession or
the process-wide in-memory store (``USE_MEMORY_STORE=true``).
"""

from collections.abc import AsyncIterator
from functools import lru_cache

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.config import settings
from app.stores.base import Store
from app.stores.memory import MemoryStore
from app.stores.sql import sql_store


def _connect_args() -> dict:
    # asyncpg enforces a per-statement timeout client-side
    if settings.DATABASE_URL.startswith("postgresql+asyncpg"):
        return {"command_timeout": settings.DATABASE_COMMAND_TIMEOUT_SECONDS}
    return {}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
    connect_args=_connect_args(),
)

# Stores commit per operation; keep loaded attributes usable afterwards.
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


@lru_cache(maxsize=1)
def get_memory_store() -> MemoryStore:
    return MemoryStore()


async def get_store() -> AsyncIterator[Store]:
    """FastAPI dependency yielding one Store per request."""
    if settings.USE_MEMORY_STORE:
        yield get_memory_store()
        return
    async with async_session_factory() as session:
        yield sql_store(session)

"""
Async engine and session factories shared by the status API and the worker
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(database_url: str = settings.DATABASE_URL, **kwargs) -> AsyncEngine:
    """Create an async engine; extra kwargs go to create_async_engine."""
    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(database_url, echo=False, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """
    Session factory handed to JobScheduler and the API dependency.

    expire_on_commit is off: the record store commits after every write
    and callers keep reading the rows they already hold.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


# The API opens one short session per request
engine = build_engine(poolclass=NullPool)
async_session_maker = build_session_factory(engine)

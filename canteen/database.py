"""
Database Connection Module
Handles the connection using the SQLAlchemy async engine.

PostgreSQL (psycopg) in deployment, SQLite (aiosqlite) for local runs and
tests. SQLite connections get foreign keys switched on so menu items that
are referenced by orders cannot be deleted there either.
"""

import logging
from typing import Any, AsyncIterator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from canteen.core.config import get_settings

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Pool sizing only applies to server databases; SQLite gets the
    foreign-key pragma on every new connection.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        engine = create_async_engine(url, **kwargs)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    kwargs.setdefault("pool_size", 5)  # Connection pool size
    kwargs.setdefault("max_overflow", 10)  # Extra connections when pool is full
    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, **kwargs)


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False  # Objects remain accessible after commit
    )


settings = get_settings()
engine = build_engine(settings.database_url, echo=settings.database_echo)

# Session factory - creates new database sessions
async_session_maker = build_session_maker(engine)


# Base class for all our models
class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = engine) -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Register the mapped classes on Base.metadata
    import canteen.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ Database tables created successfully!")

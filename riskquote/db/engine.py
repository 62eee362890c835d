"""
Database wiring for the SQL record store.

`Database` owns one async engine and its session factory for the lifetime of
the app (asyncpg in production, aiosqlite for dev/tests). The schema is
created from the ORM models at startup.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from riskquote.config import settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    SQLite gets no pool sizing; an in-memory SQLite database is shared by
    every session through a single static connection.
    """
    if url.startswith("sqlite"):
        if ":memory:" in url:
            return create_async_engine(url, echo=echo, poolclass=StaticPool)
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        echo=echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create the record tables; existing tables are left untouched."""
    import riskquote.db.models  # noqa: F401  (registers the tables)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("record_tables_ready", tables=sorted(Base.metadata.tables))


class Database:
    """Engine + session factory for one app instance."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.async_database_url
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    async def connect(self) -> async_sessionmaker[AsyncSession]:
        if self.session_factory is None:
            self.engine = build_engine(self.url, echo=settings.debug)
            await init_db(self.engine)
            self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
            logger.info("database_connected", db=self.url.split("@")[-1])
        return self.session_factory

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("database_closed")
        self.engine = None
        self.session_factory = None

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import URL, event, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings
from .exceptions import StorageError
from .models import Base

logger = logging.getLogger(__name__)


def _async_url(raw_url: str) -> URL:
    """Pick the async driver matching the URL scheme."""
    parsed_url = make_url(raw_url)
    if parsed_url.drivername and parsed_url.drivername.startswith('sqlite'):
        # For SQLite, use aiosqlite driver
        return URL.create(
            drivername="sqlite+aiosqlite",
            database=parsed_url.database
        )
    # For PostgreSQL, use asyncpg driver
    return URL.create(
        drivername="postgresql+asyncpg",
        username=parsed_url.username,
        password=parsed_url.password,
        host=parsed_url.host,
        port=parsed_url.port,
        database=parsed_url.database,
        query=parsed_url.query  # Preserve SSL and other query parameters
    )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless enabled per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Storage handle owning the connection pool.

    One instance is created at process startup and passed to every store;
    ``dispose`` closes the pool on shutdown.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        echo: Optional[bool] = None,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        pool_timeout: Optional[int] = None,
    ):
        self.url = _async_url(url or settings.database_url)
        engine_kwargs = {}
        if not self.is_sqlite:
            engine_kwargs = {
                "pool_size": pool_size or settings.db_pool_size,
                "max_overflow": max_overflow if max_overflow is not None else settings.db_max_overflow,
                "pool_timeout": pool_timeout or settings.db_pool_timeout,
                "pool_pre_ping": True,
            }
        self.engine = create_async_engine(
            self.url,
            echo=settings.debug if echo is None else echo,
            future=True,
            **engine_kwargs,
        )
        if self.is_sqlite:
            event.listen(self.engine.sync_engine, "connect",
                         _enable_sqlite_foreign_keys)
        self.sessionmaker = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    @property
    def is_sqlite(self) -> bool:
        return self.url.drivername.startswith("sqlite")

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def session_for(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open one pooled session for a single storage call.

        Driver and SQLAlchemy failures are logged with the operation name
        and re-raised as StorageError.
        """
        try:
            async with self.sessionmaker() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Storage failure in {operation}: {e}")
            raise StorageError(operation) from e

    async def create_tables(self):
        """Create all tables"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self):
        """Drop all tables"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self):
        await self.engine.dispose()

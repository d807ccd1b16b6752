from contextlib import asynccontextmanager
from typing import AsyncGenerator
import logging

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from .config import DatabaseBackend, Settings, require
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Create base class for models
Base = declarative_base()


def build_database_url(settings: Settings) -> str:
    """
    Translate the configured store location into an async driver URL.

    ``DATABASE_URL`` may be a full URL or, for SQLite, a bare file path.
    """
    location = require(settings.DATABASE_URL, "DATABASE_URL")
    backend = settings.DATABASE_BACKEND

    if backend == DatabaseBackend.SQLITE:
        if location.startswith("sqlite+aiosqlite://"):
            return location
        if location.startswith("sqlite://"):
            return location.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return f"sqlite+aiosqlite:///{location}"

    if backend == DatabaseBackend.POSTGRESQL:
        if location.startswith("postgresql+asyncpg://"):
            return location
        if location.startswith("postgresql://"):
            return location.replace("postgresql://", "postgresql+asyncpg://", 1)
        raise ConfigurationError(f"Not a PostgreSQL URL: {location}")

    raise ConfigurationError(f"Unsupported database backend: {backend}")


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    # pysqlite defers BEGIN until the first write, which lets two readers race
    # for the same rows; take the write lock when the transaction starts.
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured backend."""
    url = build_database_url(settings)

    if settings.DATABASE_BACKEND == DatabaseBackend.SQLITE:
        engine = create_async_engine(
            url,
            connect_args={"timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS},
            echo=settings.DEBUG,
        )
        _use_immediate_transactions(engine)
    else:
        engine = create_async_engine(
            url,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_pre_ping=True,
            echo=settings.DEBUG,
        )

    logger.debug(f"Created {settings.DATABASE_BACKEND.value} engine")
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create the session factory used for every queue transaction."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def transaction(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session bound to one transaction.

    Commits when the block exits normally and rolls back on any exception,
    including cancellation by a deadline.
    """
    async with session_factory() as session:
        try:
            async with session.begin():
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Database session error: {e}")
            raise


class DatabaseManager:
    """
    Database manager for handling schema and connection lifecycle.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def create_tables(self):
        """Create all tables."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Error creating database tables: {e}")
            raise

    async def close_connections(self):
        """Close all database connections."""
        try:
            await self.engine.dispose()
            logger.info("Database connections closed")
        except Exception as e:
            logger.error(f"Error closing database connections: {e}")

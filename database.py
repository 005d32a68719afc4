"""
Database connection and session management for Identity Reconciliation API
This module sets up the SQLAlchemy async engine and session factories.
Supports local PostgreSQL, AWS RDS (including Lambda) and SQLite (local runs and tests),
with connection pooling and serializable transactions for the reconciliation engine.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config import settings
from models import Base

logger = logging.getLogger(__name__)


def _lock_database_on_begin(engine: AsyncEngine):
    """
    Take SQLite's write lock when a transaction starts

    pysqlite defers BEGIN until the first write, so two transactions could
    both read "no match" before either inserts. Driver transaction handling is
    switched off and every transaction opens with BEGIN IMMEDIATE instead;
    concurrent transactions then wait on the lock, or fail with "database is
    locked" once the busy timeout expires.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _hide_credentials(database_url: str) -> str:
    return make_url(database_url).render_as_string(hide_password=True)


class DatabaseManager:
    """
    Database connection manager that handles the SQLAlchemy engine,
    session creation, and connection lifecycle management

    The engine is created lazily on first use so importing this module
    never opens a connection.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.get_active_database_url()
        self._engine: Optional[AsyncEngine] = None
        self._serializable_engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    def _is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def _create_engine(self) -> AsyncEngine:
        """Create database engine with appropriate settings for environment"""
        logger.info(f"Initializing database connection to: {_hide_credentials(self.database_url)}")

        if self._is_sqlite():
            # SQLite picks its own pool, sizing arguments are not accepted
            engine = create_async_engine(self.database_url, echo=settings.DEBUG)
            _lock_database_on_begin(engine)
            return engine

        if settings.is_lambda_environment():
            # Lambda-optimized settings for RDS Proxy
            return create_async_engine(
                self.database_url,
                echo=settings.DEBUG,
                pool_pre_ping=True,
                pool_size=1,
                max_overflow=0,
                pool_recycle=3600,
                pool_timeout=10,
                connect_args={
                    "command_timeout": 10,
                    "server_settings": {
                        "application_name": "identity-reconciliation-lambda",
                    }
                }
            )

        return create_async_engine(
            self.database_url,
            echo=settings.DEBUG,
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            connect_args={
                "server_settings": {
                    "application_name": "identity-reconciliation",
                }
            }
        )

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,  # Don't expire objects after commit
                autoflush=False  # Writes are flushed explicitly
            )
        return self._session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """
        Context manager for database sessions with automatic cleanup
        Usage:
            async with db_manager.get_session() as session:
                # database operations
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(f"Database session error: {e}")
                raise

    @asynccontextmanager
    async def serializable_session(self) -> AsyncIterator[AsyncSession]:
        """
        Open a session inside a SERIALIZABLE transaction

        The transaction commits when the block exits normally and rolls back
        on any exception, so a failed attempt never leaves partial writes.
        """
        if self._serializable_engine is None:
            if self._is_sqlite():
                # BEGIN IMMEDIATE already serializes every transaction
                self._serializable_engine = self.engine
            else:
                self._serializable_engine = self.engine.execution_options(
                    isolation_level="SERIALIZABLE"
                )

        async with AsyncSession(
            self._serializable_engine,
            expire_on_commit=False,
            autoflush=False,
        ) as session:
            async with session.begin():
                yield session

    async def create_tables(self):
        """Create all database tables defined in models"""
        logger.info("Creating database tables...")
        async with self.engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    async def drop_tables(self):
        async with self.engine.begin() as connection:
            await connection.run_sync(Base.metadata.drop_all)

    async def test_connection(self) -> bool:
        """Test database connection"""
        try:
            async with self.engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
            logger.info("Database connection test successful")
            return True
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False

    async def dispose(self):
        """Close pooled connections"""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database connections closed")
        self._engine = None
        self._serializable_engine = None
        self._session_factory = None


# Global database manager instance
db_manager = DatabaseManager()

"""
Billing Ledger Backend — Database Handle and Session Management
================================================================

What:  Async SQLAlchemy engine, session factory and the FastAPI dependency.
How:   A `Database` handle is created once by the app factory, stored on
       `app.state.database`, verified at startup and disposed at shutdown.
       Each request gets its own session and therefore its own transaction:
       commit on success, rollback on any exception.
Who:   Route handlers receive sessions via `Depends(get_db_session)`;
       services receive the session as an argument.

Every multi-row write (invoice batch, payment batch) happens inside the one
request transaction, so a failed batch leaves no rows behind.

Timeouts:
    asyncpg:  connect timeout + per-statement command timeout
    pool:     pool_timeout bounds the wait for a free connection
    Expiry surfaces as a driver error that services map to PersistenceError.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ledger.config import Settings, settings as default_settings
from ledger.services.db_errors import database_errors

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all ledger ORM models; its metadata feeds Alembic."""
    pass


def _engine_options(config: Settings) -> Dict[str, Any]:
    """Builds create_async_engine keyword arguments for the configured driver."""
    options: Dict[str, Any] = {"echo": config.log_level == "DEBUG"}

    if config.is_sqlite:
        # SQLite pools are single-connection; sizing arguments do not apply
        options["connect_args"] = {"timeout": config.db_connect_timeout}
        return options

    options.update(
        pool_size=config.db_pool_size,
        max_overflow=config.db_max_overflow,
        pool_pre_ping=config.db_pool_pre_ping,
        pool_timeout=config.db_pool_timeout,
        pool_recycle=3600,
    )
    if "+asyncpg" in config.database_url:
        options["connect_args"] = {
            "timeout": config.db_connect_timeout,
            "command_timeout": config.db_statement_timeout,
        }
    return options


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    # The driver's implicit BEGIN is turned off; _begin_sqlite_immediate issues it
    dbapi_connection.isolation_level = None
    # SQLite ignores REFERENCES clauses unless this pragma is set per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_immediate(conn) -> None:
    # SQLite has no FOR UPDATE; taking the write lock at BEGIN serializes
    # transactions the way the row locks do on PostgreSQL
    conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    Owns the engine and session factory for one store.

    Usage:
        database = Database(settings)
        await database.verify()
        async with database.session() as session:
            ...
        await database.dispose()
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.engine: AsyncEngine = create_async_engine(
            self.config.database_url,
            **_engine_options(self.config),
        )
        if self.config.is_sqlite:
            event.listen(self.engine.sync_engine, "connect", _configure_sqlite_connection)
            event.listen(self.engine.sync_engine, "begin", _begin_sqlite_immediate)

        # expire_on_commit=False keeps returned ORM objects readable after commit
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def ping(self) -> None:
        """Runs SELECT 1 within the statement timeout. Raises on failure."""
        async with self.engine.connect() as conn:
            await asyncio.wait_for(
                conn.execute(text("SELECT 1")),
                timeout=self.config.db_statement_timeout,
            )

    async def is_reachable(self) -> bool:
        try:
            await self.ping()
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            logger.warning("Database unreachable: %s", type(e).__name__)
            return False
        return True

    async def verify(self) -> None:
        """
        Confirms the store is reachable, retrying with exponential backoff.

        Called once from the application lifespan. The last error is re-raised
        after `db_connect_retries` attempts.
        """
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type((SQLAlchemyError, OSError, asyncio.TimeoutError)),
            stop=stop_after_attempt(self.config.db_connect_retries),
            wait=wait_exponential_jitter(initial=1, max=10),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                await self.ping()
        logger.info("Database connection verified")

    async def create_all(self) -> None:
        """Creates every table from ORM metadata (tests and local SQLite only)."""
        # Registers the mapped classes on Base.metadata
        import ledger.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Transaction-scoped session: commit on success, rollback on error.
        """
        async with self.session_factory() as session:
            try:
                yield session
                with database_errors("commit transaction"):
                    await session.commit()
            except BaseException:
                # BaseException also covers request cancellation
                await session.rollback()
                raise

    async def dispose(self) -> None:
        """Closes every pooled connection."""
        await self.engine.dispose()


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides one transaction-scoped session per request.

    Example:
        @router.get("/clients")
        async def list_clients(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session

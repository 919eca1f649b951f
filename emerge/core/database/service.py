"""
Database Service

Purpose
-------
Own the async SQLAlchemy engine and hand out sessions and atomic
transactions to the SQL-backed stores.

Responsibilities
----------------
- Create and dispose a single AsyncEngine with connection pooling
- Provide `get_session()` for reads and `get_transaction()` for writes
- Commit on success, roll back on any exception, always close the session
- Create the schema for development and integration tests
- Lightweight `SELECT 1` health check

Non-Responsibilities
--------------------
- Retry policies (TransactionRetryPolicy)
- Migrations
- Domain logic

Architecture Notes
------------------
- Instance-based: each engine owner constructs its own service, so tests can
  point one at a throwaway container without touching global state.
- `get_transaction()` is the only interface for state mutations. Code inside
  the block never calls `session.commit()` itself.
- Pessimistic locks: `await session.get(Model, pk, with_for_update=True)`.

Usage Example
-------------
>>> db = DatabaseService(Config.DATABASE_URL)
>>> await db.initialize()
>>> async with db.get_transaction() as session:
>>>     row = await db.get_locked_entity(session, UserProgressionRow, user_id)
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional, Type, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from emerge.core.config.config import Config
from emerge.core.database.base import Base
from emerge.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class DatabaseInitializationError(RuntimeError):
    """Engine creation or schema bootstrap failed."""


class DatabaseNotInitializedError(RuntimeError):
    """A session was requested before `initialize()` ran."""


class DatabaseService:
    """
    Async engine and session management.

    Public API
    ----------
    - initialize() / shutdown()
    - create_schema() / drop_schema()
    - get_session() -> read-only session
    - get_transaction() -> atomic write transaction
    - get_locked_entity() -> SELECT ... FOR UPDATE helper
    - health_check()
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        echo: Optional[bool] = None,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        use_null_pool: bool = False,
    ) -> None:
        self._url = url or Config.DATABASE_URL
        self._echo = Config.DATABASE_ECHO if echo is None else echo
        self._pool_size = pool_size or Config.DATABASE_POOL_SIZE
        self._max_overflow = (
            Config.DATABASE_MAX_OVERFLOW if max_overflow is None else max_overflow
        )
        self._use_null_pool = use_null_pool or Config.is_testing()

        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._init_lock = asyncio.Lock()

    @property
    def url_scheme(self) -> str:
        return self._url.split(":", 1)[0] if ":" in self._url else "unknown"

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        """Create the engine and session factory. Idempotent."""
        async with self._init_lock:
            if self._engine is not None:
                return

            if not self._url:
                raise DatabaseInitializationError(
                    "DATABASE_URL is empty"
                )

            engine_kwargs: dict[str, Any] = {"echo": self._echo}
            if self._use_null_pool:
                engine_kwargs["poolclass"] = NullPool
            else:
                engine_kwargs.update(
                    pool_size=self._pool_size,
                    max_overflow=self._max_overflow,
                    pool_pre_ping=True,
                )

            try:
                self._engine = create_async_engine(self._url, **engine_kwargs)
            except Exception as exc:
                logger.error(
                    "Could not start database engine",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Could not start database engine: {exc}"
                ) from exc

            self._session_factory = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
            logger.info(
                "DatabaseService initialized",
                extra={
                    "url_scheme": self.url_scheme,
                    "null_pool": self._use_null_pool,
                },
            )

    async def shutdown(self) -> None:
        async with self._init_lock:
            if self._engine is None:
                return
            try:
                await self._engine.dispose()
                logger.info("Database engine disposed")
            finally:
                self._engine = None
                self._session_factory = None

    async def create_schema(self) -> None:
        """Create all tables registered on Base.metadata."""
        import emerge.database.models  # noqa: F401  registers tables

        engine = self._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_schema(self) -> None:
        engine = self._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def health_check(self) -> bool:
        """Return True when `SELECT 1` succeeds."""
        start = time.perf_counter()
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
        except (OperationalError, DBAPIError, DatabaseNotInitializedError) as exc:
            logger.warning(
                "Database ping failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        logger.debug(
            "Database health check passed",
            extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
        )
        return True

    # ========================================================================
    # Sessions
    # ========================================================================

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise DatabaseNotInitializedError(
                "No database engine; await initialize() at startup first."
            )
        return self._engine

    def _require_factory(self) -> async_sessionmaker[AsyncSession]:
        self._require_engine()
        assert self._session_factory is not None
        return self._session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session without automatic commit, for reads."""
        factory = self._require_factory()
        async with factory() as session:
            yield session

    @asynccontextmanager
    async def get_transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session wrapped in an atomic transaction.

        Commits when the block exits normally. Any exception rolls back and
        is re-raised unchanged.
        """
        factory = self._require_factory()
        start = time.perf_counter()

        async with factory() as session:
            try:
                yield session
                await session.commit()
                logger.debug(
                    "Progression transaction committed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )
            except Exception as exc:
                await session.rollback()
                logger.debug(
                    "Database transaction rolled back",
                    extra={
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                )
                raise

    @staticmethod
    async def get_locked_entity(
        session: AsyncSession,
        model: Type[T],
        primary_key: Any,
    ) -> Optional[T]:
        """Fetch an entity with SELECT ... FOR UPDATE, or None if absent."""
        return await session.get(model, primary_key, with_for_update=True)

"""
Database Service - Core Infrastructure Layer

Purpose
-------
Centralized async database engine and session management. Provides atomic
transactions, pessimistic locking and a lightweight health check for the
upgrade ledger, purchase history and compensation outbox.

Responsibilities
----------------
- Initialize and manage a single AsyncEngine instance
- Provide async context managers for read-only sessions and atomic transactions
- Enforce transaction discipline: automatic commit on success, rollback on exception
- Configure statement timeouts for PostgreSQL transactions
- Create the schema for local and test databases

Non-Responsibilities
--------------------
- Migrations (external tooling)
- Retry policies: callers decide; the purchase saga never retries

Architecture Notes
------------------
**Transaction Model**:
- `get_transaction()` is the primary interface for all state mutations
- Automatic commit on success, rollback on any exception
- Never call `session.commit()` inside service code
- Lock rows with `select(...).with_for_update()` inside the transaction

**Connection Pooling**:
- QueuePool for PostgreSQL outside tests
- NullPool for tests against PostgreSQL
- StaticPool for in-memory sqlite so every session sees the same database

Usage Example
-------------
>>> async with DatabaseService.get_transaction() as session:
...     record = await repo.get_for_update(session, player_id, upgrade_id)
...     record.level += 1
...     # Automatic commit on exit
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, Optional, Type

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, Pool, StaticPool

from clicker.core.config.config import Config
from clicker.core.database.base import Base
from clicker.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """Raised when database engine initialization fails."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when database operations are attempted before initialization."""


# ============================================================================
# Configuration Snapshot
# ============================================================================


@dataclass(frozen=True)
class _DatabaseConfigSnapshot:
    """Immutable view of database configuration for the engine lifetime."""

    url: str
    echo: bool
    pool_class: Optional[Type[Pool]]
    pool_size: int
    max_overflow: int
    pool_recycle: int
    statement_timeout_ms: int

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith(("postgresql://", "postgresql+asyncpg://"))

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"


@dataclass
class _TransactionStats:
    started: int = 0
    committed: int = 0
    rolled_back: int = 0
    total_duration_ms: float = 0.0


# ============================================================================
# DatabaseService
# ============================================================================


class DatabaseService:
    """
    Centralized async database engine and session management.

    Public API
    ----------
    - initialize(url=None) / shutdown()
    - create_schema() / drop_schema()
    - get_session() -> reads
    - get_transaction() -> atomic writes
    - health_check(), get_stats()
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _config_snapshot: Optional[_DatabaseConfigSnapshot] = None
    _init_lock: asyncio.Lock = asyncio.Lock()
    _stats: _TransactionStats = _TransactionStats()

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    @classmethod
    def _build_config_snapshot(cls, url: Optional[str]) -> _DatabaseConfigSnapshot:
        database_url = url or Config.DATABASE_URL
        if not database_url:
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )

        pool_class: Optional[Type[Pool]] = None
        in_memory = ":memory:" in database_url or database_url.rstrip("/").endswith(":")
        if database_url.startswith("sqlite") and in_memory:
            pool_class = StaticPool
        elif Config.is_testing():
            pool_class = NullPool

        return _DatabaseConfigSnapshot(
            url=database_url,
            echo=Config.DATABASE_ECHO,
            pool_class=pool_class,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            statement_timeout_ms=Config.DATABASE_STATEMENT_TIMEOUT_MS,
        )

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Initialize the engine and session factory. Idempotent.

        Raises:
            DatabaseInitializationError: invalid configuration or engine failure
        """
        async with cls._init_lock:
            if cls._engine is not None:
                logger.debug("DatabaseService already initialized; skipping")
                return

            config = cls._build_config_snapshot(url)
            engine_kwargs: Dict[str, Any] = {"echo": config.echo}

            if config.pool_class is StaticPool:
                engine_kwargs["poolclass"] = StaticPool
                engine_kwargs["connect_args"] = {"check_same_thread": False}
            elif config.pool_class is NullPool:
                engine_kwargs["poolclass"] = NullPool
            elif config.is_postgres:
                engine_kwargs.update(
                    pool_size=config.pool_size,
                    max_overflow=config.max_overflow,
                    pool_recycle=config.pool_recycle,
                    pool_pre_ping=True,
                )

            try:
                cls._engine = create_async_engine(config.url, **engine_kwargs)
            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

            cls._session_factory = async_sessionmaker(
                bind=cls._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
            cls._config_snapshot = config
            cls._stats = _TransactionStats()

            logger.info(
                "DatabaseService initialized",
                extra={
                    "url_scheme": config.url_scheme,
                    "pool_class": config.pool_class.__name__ if config.pool_class else "QueuePool",
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Dispose the engine. Safe to call multiple times."""
        async with cls._init_lock:
            if cls._engine is None:
                return
            try:
                await cls._engine.dispose()
                logger.info("DatabaseService shutdown complete")
            finally:
                cls._engine = None
                cls._session_factory = None
                cls._config_snapshot = None

    @classmethod
    async def create_schema(cls) -> None:
        """Create all tables registered on `Base.metadata`."""
        engine = cls._require_engine()
        # Register model tables on the metadata
        import clicker.database.models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema created", extra={"tables": len(Base.metadata.tables)})

    @classmethod
    async def drop_schema(cls) -> None:
        engine = cls._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    # ========================================================================
    # Health
    # ========================================================================

    @classmethod
    async def health_check(cls) -> bool:
        """`SELECT 1` liveness probe; never raises."""
        if cls._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            return False
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (OperationalError, DBAPIError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

    @classmethod
    def get_stats(cls) -> Dict[str, Any]:
        stats = cls._stats
        return {
            "transactions_started": stats.started,
            "transactions_committed": stats.committed,
            "transactions_rolled_back": stats.rolled_back,
            "avg_transaction_ms": (
                stats.total_duration_ms / stats.committed if stats.committed else 0.0
            ),
        }

    # ========================================================================
    # Sessions & Transactions
    # ========================================================================

    @classmethod
    def _require_engine(cls) -> AsyncEngine:
        if cls._engine is None or cls._session_factory is None:
            logger.error("DatabaseService operation attempted before initialization")
            raise DatabaseNotInitializedError(
                "DatabaseService must be initialized before use. "
                "Call DatabaseService.initialize() during startup."
            )
        return cls._engine

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Session without automatic commit, for reads.

        For writes use `get_transaction()`.
        """
        cls._require_engine()
        async with cls._session_factory() as session:
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Session wrapped in an atomic transaction.

        Commits when the block exits normally; rolls back and re-raises on any
        exception, including a failing commit.
        """
        cls._require_engine()
        config = cls._config_snapshot

        start = time.perf_counter()
        cls._stats.started += 1

        async with cls._session_factory() as session:
            try:
                if config is not None and config.is_postgres:
                    await session.execute(
                        text(f"SET LOCAL statement_timeout = {config.statement_timeout_ms}")
                    )

                yield session

                await session.commit()
                duration_ms = (time.perf_counter() - start) * 1000.0
                cls._stats.committed += 1
                cls._stats.total_duration_ms += duration_ms
                logger.debug(
                    "Database transaction committed",
                    extra={"duration_ms": round(duration_ms, 2)},
                )

            except BaseException as exc:
                await session.rollback()
                cls._stats.rolled_back += 1
                log = logger.error if isinstance(exc, (OperationalError, DBAPIError)) else logger.debug
                log(
                    "Database transaction rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": round((time.perf_counter() - start) * 1000.0, 2),
                    },
                )
                raise

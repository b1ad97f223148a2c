"""Database Session Manager: async engine, per-request sessions, schema bootstrap.

Invariants:
    - One AsyncSession per request; it is the transaction handle for that operation
    - A session that exits with an exception is rolled back before it is closed
    - SQLAlchemy failures leave this module as DatabaseError, never as raw driver errors
    - SQLite connections enable foreign keys so ON DELETE CASCADE holds

Design Decisions:
    - Module-level db_manager set by init_db() from the FastAPI lifespan
    - expire_on_commit=False: committed rows stay readable without a lazy reload
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

from postboard.core.errors import DatabaseError
from postboard.db.base import Base
import postboard.models  # noqa: F401

logger = logging.getLogger(__name__)

# Most specific first: IntegrityError and OperationalError are DBAPIErrors
_FAILURE_KINDS: tuple[tuple[type[SQLAlchemyError], str, str], ...] = (
    (IntegrityError, "commit", "constraint violated"),
    (OperationalError, "execute", "connection lost or statement rejected"),
    (DBAPIError, "query", "driver rejected the statement"),
    (SQLAlchemyError, "session", "ORM operation failed"),
)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(
    database_url: str, pool_size: int = 20, max_overflow: int = 10,
) -> AsyncEngine:
    """Create the async engine; pooling options only apply to server databases."""
    if database_url.startswith("sqlite"):
        # :memory: lives per connection, so every session must share one
        extra = {"poolclass": StaticPool} if ":memory:" in database_url else {}
        engine = create_async_engine(database_url, echo=False, **extra)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


def _as_database_error(exc: SQLAlchemyError) -> DatabaseError:
    for kind, operation, message in _FAILURE_KINDS:
        if isinstance(exc, kind):
            return DatabaseError(message, operation)
    return DatabaseError(str(exc), "session")


class DatabaseSessionManager:
    """Owns the engine and hands out one rollback-safe session per request."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        self.engine = build_engine(database_url, pool_size, max_overflow)
        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            await db.rollback()
            error = _as_database_error(e)
            logger.error(f"{type(e).__name__} rolled back: {e}", extra={"error_code": error.code})
            raise error from e
        except Exception:
            await db.rollback()
            raise
        finally:
            await db.close()

    async def create_schema(self) -> None:
        """Create missing tables from ORM metadata."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    async def health_check(self) -> bool:
        """True when a trivial round trip succeeds."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Database unreachable: {e}")
            return False
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()


db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Per-request AsyncSession for route dependencies."""
    if db_manager is None:
        raise RuntimeError("init_db() has not run")
    async with db_manager.session() as db:
        yield db

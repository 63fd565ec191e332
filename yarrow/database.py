"""
Async database engine, session factory and declarative base.

Services commit their own writes: one commit per appended message, per status
change and per summary update. A request never wraps several of those in a
single transaction.

SECURITY:
- SQL echo is off in production (statements can carry message bodies)
- The connection string is never logged
"""

import logging
import time

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from yarrow.config import settings

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD_MS = 500


def _engine_options(url: str) -> dict:
    """Pool sizing only applies to server databases."""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
    }


def _time_query(conn, cursor, statement, parameters, context, executemany):
    conn.info["query_started"] = time.monotonic()


def _warn_slow_query(conn, cursor, statement, parameters, context, executemany):
    started = conn.info.pop("query_started", None)
    if started is None:
        return
    elapsed_ms = (time.monotonic() - started) * 1000
    if elapsed_ms >= SLOW_QUERY_THRESHOLD_MS:
        # Statement only; parameters hold tenant text
        logger.warning("Slow query (%.0fms): %s", elapsed_ms, statement[:200])


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def install_listeners(sync_engine) -> None:
    """Attach slow-query logging (and FK enforcement on SQLite) to an engine."""
    event.listen(sync_engine, "before_cursor_execute", _time_query)
    event.listen(sync_engine, "after_cursor_execute", _warn_slow_query)
    if sync_engine.dialect.name == "sqlite":
        event.listen(sync_engine, "connect", _enable_sqlite_foreign_keys)


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.sqlalchemy_echo,
    **_engine_options(settings.DATABASE_URL),
)
install_listeners(engine.sync_engine)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """Request-scoped session. Rolls back whatever a failed request left open."""
    session = async_session_maker()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db():
    """Create tables for every registered model."""
    import yarrow.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

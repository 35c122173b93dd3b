"""Engine and unit-of-work sessions for LinkDesk.

One async engine per process, built from ``DATABASE_URL`` on first use.
Routes and CLI commands wrap each operation in ``get_session()``: order
confirmation, line-item edits and repairs either commit together or leave
nothing behind.

PostgreSQL (asyncpg) is the deployed backend. SQLite (aiosqlite) serves local
development and tests; there foreign keys are switched on per connection so
``ON DELETE CASCADE`` from orders to line items and share tokens behaves as
it does in production.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from linkdesk.config import DBConfig, get_config
from linkdesk.db.models import Base

_engine: AsyncEngine | None = None
_session_factory: sessionmaker | None = None


def _is_sqlite(url: str) -> bool:
    return url.lower().startswith("sqlite")


def _pool_options(db_config: DBConfig) -> dict:
    if _is_sqlite(db_config.url):
        return {}
    return {
        "pool_size": db_config.pool_size,
        "max_overflow": db_config.pool_max_overflow,
        "pool_timeout": db_config.pool_timeout,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def get_engine() -> AsyncEngine:
    """Process-wide engine for ``DATABASE_URL``.

    Raises:
        KeyError: DATABASE_URL is not set
    """
    global _engine

    if _engine is None:
        db_config = get_config().db
        _engine = create_async_engine(
            db_config.url, echo=db_config.echo, **_pool_options(db_config)
        )
        if _is_sqlite(db_config.url):
            _enable_sqlite_foreign_keys(_engine)

    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory

    if _session_factory is None:
        # Route handlers serialize ORM rows after the commit
        _session_factory = sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """One unit of work: commit when the block exits cleanly, else roll back.

    Services flush but never commit, except where a step must survive a
    later failure (confirmation before its benchmark, one migration at a
    time).

    Usage:
        async with get_session() as session:
            created = await line_items.add_line_items(session, order_id, items, user)
    """
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency form of ``get_session``."""
    async with get_session() as session:
        yield session


async def init_db(drop: bool = False) -> None:
    """Create every table from the ORM models (``linkdesk init``).

    For local databases only; deployed schemas change through
    ``linkdesk migrate``.
    """
    async with get_engine().begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine; the next ``get_engine()`` builds a fresh one."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None

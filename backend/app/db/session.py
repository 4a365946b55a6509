"""
Async engine and session factory.

Booking correctness depends on the storage engine's locking, so the engine is
built per dialect:

- PostgreSQL: pooled asyncpg connections at the configured isolation level
  (READ COMMITTED by default). Row locks come from SELECT ... FOR UPDATE and
  the lock wait is bounded per transaction with SET LOCAL lock_timeout.
- SQLite: no row locks exist, so every transaction starts with
  BEGIN IMMEDIATE and takes the database write lock up front. The sqlite3
  busy timeout bounds the wait. FOR UPDATE is dropped by the SQLite compiler.
"""

from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import get_settings

settings = get_settings()


def _install_sqlite_locking(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Stop the driver from emitting its own deferred BEGIN
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine with the locking setup its dialect needs."""
    backend = make_url(url).get_backend_name()

    if backend == "sqlite":
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("timeout", settings.BOOKING_LOCK_TIMEOUT_SECONDS)
        engine = create_async_engine(url, connect_args=connect_args, **kwargs)
        _install_sqlite_locking(engine)
        return engine

    kwargs.setdefault("isolation_level", settings.DB_ISOLATION_LEVEL)
    if "poolclass" not in kwargs:
        kwargs.setdefault("pool_size", settings.DB_POOL_SIZE)
        kwargs.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)
        kwargs.setdefault("pool_timeout", settings.DB_POOL_TIMEOUT)
        kwargs.setdefault("pool_recycle", settings.DB_POOL_RECYCLE)
        kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, **kwargs)


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    One session per request. Services own their transaction boundaries
    (`async with db.begin()`), so nothing is committed here.
    """
    async with AsyncSessionLocal() as session:
        yield session

"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - build_engine(): creates an async engine; SQLite engines get write locking
  - engine: The async database engine (connection pool for production DBs)
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - transaction_scope(): one session, one transaction, commit or roll back
  - get_db(): FastAPI dependency that provides a session per request
  - run_with_timeout(): bounds a unit of work by TRANSACTION_TIMEOUT_SECONDS

Session lifecycle:
  Each API request gets its own session (one transaction) via get_db(). The
  session commits on success and rolls back on any exception, with a single
  exception: RefreshTokenExpiredError commits, so that the revocation of the
  expired token written just before the error is persisted. GET and HEAD
  requests run read-only: their transaction is always rolled back.

SQLite locking:
  The sqlite3 driver normally delays BEGIN until the first write, so reads
  made earlier in a transaction can be stale by the time it writes. SQLite
  engines therefore take over transaction control: every read-write
  transaction starts with BEGIN IMMEDIATE, which takes the database write
  lock up front and makes concurrent writers run one after another.
  Read-only transactions start with a plain BEGIN. On PostgreSQL the row
  locks from SELECT ... FOR UPDATE do this job.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import TypeVar

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.exceptions import RefreshTokenExpiredError, TransactionTimeoutError

T = TypeVar("T")

READ_ONLY_METHODS = frozenset({"GET", "HEAD"})

# Execution option read by the SQLite "begin" listener
READ_ONLY_OPTION = "read_only"


def enable_sqlite_write_locking(engine: AsyncEngine) -> None:
    """Start SQLite transactions ourselves: BEGIN IMMEDIATE unless read-only."""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        if conn.get_execution_options().get(READ_ONLY_OPTION):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    new_engine = create_async_engine(url, echo=echo)
    if new_engine.dialect.name == "sqlite":
        enable_sqlite_write_locking(new_engine)
    return new_engine


# echo=True in debug mode logs all SQL statements
engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# expire_on_commit=False prevents lazy-load errors after commit: an expired
# attribute would trigger a synchronous DB call, which fails in async context.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


@asynccontextmanager
async def transaction_scope(
    factory: async_sessionmaker[AsyncSession],
    read_only: bool = False,
) -> AsyncIterator[AsyncSession]:
    """
    Open a session whose transaction ends with the block.

    Read-write scopes commit on success and roll back on any exception
    (except RefreshTokenExpiredError, see module docstring). Read-only
    scopes never commit.
    """
    async with factory() as session:
        if read_only:
            await session.connection(execution_options={READ_ONLY_OPTION: True})
            try:
                yield session
            finally:
                await session.rollback()
            return
        try:
            yield session
            await session.commit()
        except RefreshTokenExpiredError:
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise


async def get_db(request: Request):
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...

    The transaction follows transaction_scope(); GET and HEAD requests get
    a read-only one.
    """
    read_only = request.method in READ_ONLY_METHODS
    async with transaction_scope(AsyncSessionLocal, read_only=read_only) as session:
        yield session


async def run_with_timeout(
    operation: str,
    work: Awaitable[T],
    seconds: float | None = None,
) -> T:
    """
    Await a unit of database work, aborting it after the transaction timeout.

    The caller's session is rolled back by get_db() when the resulting
    TransactionTimeoutError propagates.
    """
    limit = seconds if seconds is not None else settings.TRANSACTION_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(work, timeout=limit)
    except asyncio.TimeoutError as exc:
        raise TransactionTimeoutError(operation, limit) from exc

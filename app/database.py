"""
Database engine, session factory, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine (connection pool for production DBs)
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - configure_sqlite(): BEGIN IMMEDIATE for writers, WAL snapshots for readers
  - UTCDateTime: Column type that always returns aware UTC datetimes

Session lifecycle:
  Unlike a request-scoped session, the ledger engine opens one session per
  logical operation and commits it exactly once (see
  app/services/unit_of_work.py). The commit has to happen while the
  per-account locks are still held, so sessions are never handed to the
  routers.

SQLite note:
  SQLite doesn't support SELECT ... FOR UPDATE. Instead, every writing
  transaction is started with BEGIN IMMEDIATE, which takes the database
  write lock up front. Concurrent writers wait for it (busy timeout)
  rather than failing later when a read lock would have to be upgraded.
  This keeps the store itself serialised even when several processes
  share the database file. Read-only units of work start a plain BEGIN
  instead and, with the WAL journal, never hold up a writer.
  On PostgreSQL the with_for_update() calls in the account store lock rows
  instead and this hook is not installed.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, TypeDecorator, event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


# Connection execution option marking a transaction that only reads
READ_ONLY_OPTION = "ledger_read_only"


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetimes on every backend.

    SQLite stores datetimes without an offset and hands them back naive.
    Values are converted to UTC on the way in and tagged as UTC on the way
    out, so a row read back compares and serializes exactly like the
    object that was written.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def configure_sqlite(async_engine: AsyncEngine) -> None:
    """
    Install the transaction hooks on a SQLite engine (no-op otherwise).

    The driver's own implicit transaction handling is switched off so that
    SQLAlchemy's "begin" event controls exactly when and how each
    transaction starts. Writers start with BEGIN IMMEDIATE; a connection
    carrying READ_ONLY_OPTION starts a deferred BEGIN and reads from a
    WAL snapshot without taking the write lock.
    """
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        # Readers and the writer don't block each other in WAL mode
        # (in-memory databases ignore this)
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(async_engine.sync_engine, "begin")
    def _begin(conn):
        if conn.get_execution_options().get(READ_ONLY_OPTION):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Build a session factory bound to an engine.

    expire_on_commit=False keeps committed objects readable after the
    session closes — the engine returns Transaction rows to its callers
    after the commit, and reloading them would require an open session.
    """
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# echo=True in debug mode logs all SQL statements — invaluable for development.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)
configure_sqlite(engine)

AsyncSessionLocal = make_session_factory(engine)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All models inherit from this class, which provides:
      - Metadata tracking for table creation
      - Common declarative mapping features
    """
    pass

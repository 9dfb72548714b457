"""
Base module for database connection and metadata.

This module defines the SQLAlchemy metadata object shared by the table modules
and the engine factory used by the service, the CLI and the tests.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import MetaData, event
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy.pool.base import _ConnectionRecord

logger = logging.getLogger(__name__)

# Define shared metadata object
metadata = MetaData()

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///task_automation.db"


def create_engine_with_sqlite_optimizations(database_url: str) -> AsyncEngine:
    """Create an async engine, tuning SQLite connections when applicable.

    SQLite connections are switched to explicit transaction control so that
    SAVEPOINTs (used for per-assignee work-item inserts) behave correctly
    under aiosqlite.
    """
    is_sqlite = database_url.startswith("sqlite")
    # An in-memory database only lives as long as its single connection
    pool_class = StaticPool if is_sqlite and ":memory:" in database_url else NullPool

    engine = create_async_engine(
        database_url,
        echo=False,
        connect_args={
            "timeout": 30,  # 30 second busy timeout for SQLite
            "check_same_thread": False,
        }
        if is_sqlite
        else {},
        poolclass=pool_class,
    )

    if not is_sqlite:
        return engine

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(
        dbapi_connection: Any,  # noqa: ANN401 # DBAPI connection type varies
        connection_record: _ConnectionRecord,
    ) -> None:
        # Disable the driver's implicit BEGIN; SQLAlchemy emits it in do_begin
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA temp_store=MEMORY")
            logger.debug("Applied SQLite optimizations")
        finally:
            cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN")

    return engine


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise a datetime for storage or after loading.

    SQLite drops tzinfo on DateTime columns, so values are always written in
    UTC and naive values read back are treated as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

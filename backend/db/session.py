"""Async engine and session factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core import settings


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _unicode_lower(value: str | None) -> str | None:
    return value.lower() if isinstance(value, str) else value


def configure_sqlite_connections(engine: Engine) -> None:
    """Turn on FK enforcement and Unicode-aware ``lower()`` for every SQLite connection.

    SQLite's built-in ``lower()`` only folds ASCII, and SQLAlchemy compiles
    ``ilike`` to ``lower(x) LIKE lower(y)`` on this dialect.
    """

    @event.listens_for(engine, "connect")
    def _configure_connection(dbapi_connection: Any, _connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)


def build_engine(database_url: str | None = None) -> AsyncEngine:
    url = database_url or settings.database_url
    connect_args: dict[str, Any] = {}
    if _is_sqlite(url):
        connect_args["check_same_thread"] = False
    engine = create_async_engine(url, connect_args=connect_args, pool_pre_ping=True)
    if _is_sqlite(url):
        configure_sqlite_connections(engine.sync_engine)
    return engine


async_engine = build_engine()
AsyncSessionMaker = async_sessionmaker(async_engine, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionMaker() as session:
        yield session

"""Async engine, session scope and table bootstrap.

Production runs on PostgreSQL (optionally inside a dedicated schema); local
runs and the test suite use SQLite through aiosqlite, which shares every
code path except the schema handling.
"""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from oralassess.config.settings import settings

# Registers every table on Base.metadata
from oralassess.models import Base

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _schema_for(url: str, raw_schema: str | None) -> str | None:
    """Validated schema name, or None when unset, invalid or not on PostgreSQL."""

    schema = (raw_schema or "").strip()
    if not schema:
        return None
    if not make_url(url).get_backend_name().startswith("postgresql"):
        logger.info("Ignoring DB_SCHEMA=%s for a non-PostgreSQL database.", schema)
        return None
    if not _IDENTIFIER.fullmatch(schema):
        logger.warning("Ignoring invalid schema name '%s'; using the default search_path.", schema)
        return None
    return schema


def _engine_options(url: str) -> dict[str, Any]:
    backend = make_url(url).get_backend_name()
    options: dict[str, Any] = {"echo": settings.debug}

    if backend == "sqlite":
        # One connection per session; writers queue on the file lock instead of failing.
        options["poolclass"] = NullPool
        options["connect_args"] = {"timeout": settings.database.sqlite_timeout_seconds}
        return options

    options["pool_pre_ping"] = True
    if settings.database.serverless or settings.debug:
        options["poolclass"] = NullPool
    else:
        options["pool_size"] = settings.database.pool_size
        options["max_overflow"] = settings.database.max_overflow
    return options


DATABASE_URL = settings.database.url
SCHEMA = _schema_for(DATABASE_URL, settings.database.schema_name)

if SCHEMA:
    for table in Base.metadata.tables.values():
        if table.schema is None:
            table.schema = SCHEMA

engine: AsyncEngine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))
SessionFactory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def _use_schema(target: Any) -> None:
    if SCHEMA:
        await target.execute(text(f'SET search_path TO "{SCHEMA}", public'))


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Yield a session; anything left uncommitted is rolled back on error."""

    async with SessionFactory() as session:
        await _use_schema(session)
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency-compatible generator yielding a configured session."""

    async with session_scope() as session:
        yield session


async def init_models() -> None:
    """Create missing tables (and the schema, when one is configured)."""

    async with engine.begin() as conn:
        if SCHEMA:
            await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{SCHEMA}"'))
        await _use_schema(conn)
        await conn.run_sync(Base.metadata.create_all)

    logger.info(
        "Ensured database tables on %s (schema=%s).",
        make_url(DATABASE_URL).get_backend_name(),
        SCHEMA or "default",
    )


async def dispose_engine() -> None:
    """Dispose of the engine and release pooled connections."""

    await engine.dispose()

"""Async engine and session factory wiring."""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ecoquest_api.core.settings import settings


def build_engine(database_url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    """Create an async engine with the statement timeout applied per connection."""

    url = database_url or settings.database_url
    connect_args: dict[str, object] = {}
    if url.startswith("postgresql+asyncpg"):
        connect_args["server_settings"] = {
            "statement_timeout": str(settings.database_statement_timeout_ms),
        }
    elif url.startswith("sqlite"):
        # seconds to wait on a locked database before raising
        connect_args["timeout"] = settings.database_statement_timeout_ms / 1000

    engine = create_async_engine(
        url,
        echo=settings.database_echo if echo is None else echo,
        future=True,
        connect_args=connect_args,
    )

    if url.startswith("sqlite"):
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:  # pragma: no cover - driver hook
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = build_engine()
async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""

    async with async_session() as session:
        yield session

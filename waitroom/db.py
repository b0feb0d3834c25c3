import os
from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./waitroom.db")


def _sync_url(url: str) -> str:
    """Return a synchronous SQLAlchemy URL for Alembic operations.

    The service runs on async drivers such as ``sqlite+aiosqlite`` or
    ``postgresql+asyncpg`` while Alembic needs a synchronous one. The URL is
    parsed with ``make_url`` and the ``+driver`` suffix dropped so Alembic
    falls back to the dialect's default driver whatever async driver is
    configured.
    """

    try:
        parsed = make_url(url)
    except Exception:  # pragma: no cover - malformed URLs are passed through
        return url

    drivername = parsed.drivername
    if "+" not in drivername:
        return url

    dialect, _, _ = drivername.partition("+")
    sync_url = parsed.set(drivername=dialect)
    return sync_url.render_as_string(hide_password=False)


ASYNC_DATABASE_URL = DATABASE_URL
SYNC_DATABASE_URL = _sync_url(DATABASE_URL)

engine = create_async_engine(ASYNC_DATABASE_URL, echo=False, future=True)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


class Base(DeclarativeBase):
    pass


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


async def init_db(bind: AsyncEngine = engine) -> None:
    """Create any missing tables. Alembic remains the source of truth in production."""
    # Registers the mapped classes on Base.metadata
    from waitroom import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = [
    "DATABASE_URL",
    "ASYNC_DATABASE_URL",
    "SYNC_DATABASE_URL",
    "engine",
    "async_session_maker",
    "get_session",
    "init_db",
    "Base",
]

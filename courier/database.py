"""Async engine, session factory and declarative base for the notification store."""

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from courier.config import settings

logger = logging.getLogger(__name__)

SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA busy_timeout=30000;",
    "PRAGMA foreign_keys=ON;",
)


def _sqlite_file(database_url: str) -> Path | None:
    """The on-disk path of a file-backed SQLite URL, else None."""
    if not database_url.startswith("sqlite+aiosqlite:///"):
        return None
    path = database_url.removeprefix("sqlite+aiosqlite:///")
    if path in {"", ":memory:"}:
        return None
    return Path(path)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    if not database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo, pool_pre_ping=True)

    db_file = _sqlite_file(database_url)
    if db_file is not None:
        db_file.parent.mkdir(parents=True, exist_ok=True)

    sqlite_engine = create_async_engine(database_url, echo=echo, connect_args={"timeout": 30})

    @event.listens_for(sqlite_engine.sync_engine, "connect")
    def _apply_pragmas(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
        cursor.close()

    return sqlite_engine


engine = create_engine(settings.database_url, echo=settings.debug)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with async_session() as session:
        yield session


async def init_db():
    # Importing the models registers their tables on Base.metadata.
    import courier.models.notification_log  # noqa: F401
    import courier.models.notification_policy  # noqa: F401
    import courier.models.notification_template  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Notification store ready (%d tables)", len(Base.metadata.tables))


async def close_db() -> None:
    await engine.dispose()

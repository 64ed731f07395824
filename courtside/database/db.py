"""
Async SQLAlchemy engine and session factory.

PostgreSQL (asyncpg) in deployments; any SQLAlchemy async URL works, which
is how the test suite runs on SQLite (aiosqlite).
"""

import os
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine
)
from sqlalchemy.orm import DeclarativeBase
from dotenv import load_dotenv

load_dotenv()


def _database_url() -> str:
    """DATABASE_URL if set, otherwise a postgresql+asyncpg URL from POSTGRES_* variables."""
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    user = os.getenv("POSTGRES_USER", "courtside")
    password = os.getenv("POSTGRES_PASSWORD", "courtside")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    name = os.getenv("POSTGRES_DB", "courtside")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


def _engine_options(url: str) -> dict:
    """Engine keyword arguments for ``url``. SQLite pools take no size limits."""
    options = {
        "echo": os.getenv("SQL_ECHO", "false").lower() == "true",
        "pool_pre_ping": True,
    }
    if not url.startswith("sqlite"):
        options["pool_size"] = int(os.getenv("DB_POOL_SIZE", "10"))
        options["max_overflow"] = int(os.getenv("DB_MAX_OVERFLOW", "20"))
    return options


DATABASE_URL = _database_url()

engine: AsyncEngine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# Services flush explicitly, so autoflush stays off
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Declarative base for every courtside table."""
    pass


# Registers the tables on Base.metadata; must follow the Base definition
from courtside.database import models  # noqa: F401, E402


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session for one unit of work.

    Services commit their own transactions; anything left pending when the
    caller finishes is committed here, and rolled back on error.

    Usage:
        async for session in get_db_session():
            await roster_service.join_game(session, game_id, user_id)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_database():
    """Create any missing tables. Deployments use the Alembic migrations instead."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)

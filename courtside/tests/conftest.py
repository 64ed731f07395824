"""
Shared pytest configuration for courtside tests.

Each test gets its own SQLite database file (via aiosqlite) so that
several sessions can share data, which the concurrency tests rely on.
Set TEST_DATABASE_URL to run the suite against PostgreSQL instead.

SAFETY: a TEST_DATABASE_URL whose database name does not contain "test"
is refused, since the suite drops every table when it finishes.
"""

import os
import asyncio
import pytest_asyncio
from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from courtside.database.db import Base
from courtside.database.models import Court, CourtAvailability, Game, GameStatus, User


def _resolve_test_database_url(tmp_path) -> str:
    """Build the test database URL, refusing non-test PostgreSQL databases."""
    url = os.getenv("TEST_DATABASE_URL", "")
    if not url:
        return f"sqlite+aiosqlite:///{tmp_path / 'courtside_test.db'}"

    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"SAFETY: Refusing to run tests against database '{db_name}'. "
            f"The database name must contain 'test'."
        )
    return url


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a fresh database with all tables for one test."""
    # NullPool gives every session its own connection
    engine = create_async_engine(
        _resolve_test_database_url(tmp_path),
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        from courtside.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    yield engine

    try:
        await asyncio.sleep(0.01)  # Let in-flight connections finish
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(test_engine):
    """Session factory configured like the application's AsyncSessionLocal."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker):
    """A database session that is rolled back and closed after the test."""
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


# ============================================================================
# Factories
# ============================================================================


async def _detached(session, obj):
    """
    Reload ``obj`` and detach it from the session.

    Services roll the shared session back when they reject a call, which
    expires every attached instance; detached factory objects keep their
    loaded attributes so tests can keep reading ids afterwards.
    """
    await session.refresh(obj)
    session.expunge(obj)
    return obj


@pytest_asyncio.fixture
async def make_user(db_session):
    """Create and commit a user."""

    async def _make_user(username, skill_level=5, rating=1000):
        user = User(username=username, skill_level=skill_level, rating=rating)
        db_session.add(user)
        await db_session.commit()
        return await _detached(db_session, user)

    return _make_user


@pytest_asyncio.fixture
async def organizer(make_user):
    return await make_user("organizer", skill_level=5, rating=1200)


@pytest_asyncio.fixture
async def make_game(db_session, organizer):
    """Create and commit a game organized by ``organizer`` unless told otherwise."""

    async def _make_game(
        max_players=2,
        skill_level_min=1,
        skill_level_max=10,
        status=GameStatus.SCHEDULED,
        organizer_id=None,
    ):
        game = Game(
            title="Sunday doubles",
            organizer_id=organizer_id or organizer.id,
            max_players=max_players,
            skill_level_min=skill_level_min,
            skill_level_max=skill_level_max,
            status=status,
        )
        db_session.add(game)
        await db_session.commit()
        return await _detached(db_session, game)

    return _make_game


@pytest_asyncio.fixture
async def make_court(db_session):
    """Create and commit a court with optional (day, start, end) windows."""

    async def _make_court(
        name="Center Court",
        hourly_rate=40.0,
        is_bookable=True,
        timezone="UTC",
        windows=(),
    ):
        court = Court(
            name=name,
            hourly_rate=hourly_rate,
            is_bookable=is_bookable,
            timezone=timezone,
        )
        db_session.add(court)
        await db_session.flush()
        for day, start, end in windows:
            db_session.add(
                CourtAvailability(
                    court_id=court.id,
                    day_of_week=day,
                    start_time=start,
                    end_time=end,
                    is_active=True,
                )
            )
        await db_session.commit()
        return await _detached(db_session, court)

    return _make_court


@pytest_asyncio.fixture
async def set_game_status(db_session):
    """Move a game to another status, as the external lifecycle would."""

    async def _set_game_status(game_id, status):
        await db_session.execute(update(Game).where(Game.id == game_id).values(status=status))
        await db_session.commit()

    return _set_game_status

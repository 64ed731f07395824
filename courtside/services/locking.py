"""
Per-key serialization for mutating operations.

Roster changes for one game (and bookings for one court) must run one
after another, while different games proceed in parallel. Two layers
give that guarantee:

- an in-process ``asyncio.Lock`` per key, so coroutines in this process
  queue up instead of racing inside the database;
- ``SELECT ... FOR UPDATE`` on the owning row, so other processes sharing
  the database are serialized by PostgreSQL.

Store failures inside the transaction are translated into typed service
errors and the session is rolled back. Nothing is retried here.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import Court, Game
from courtside.services.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    ServiceError,
)

logger = logging.getLogger(__name__)


class KeyedLocks:
    """asyncio locks created on demand per key and dropped once nobody holds or awaits them."""

    def __init__(self, name: str):
        self.name = name
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._holders: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


_game_locks = KeyedLocks("games")
_court_locks = KeyedLocks("courts")


def get_game_locks() -> KeyedLocks:
    """Get the process-wide game lock registry."""
    return _game_locks


@asynccontextmanager
async def store_transaction(session: AsyncSession, operation: str) -> AsyncIterator[None]:
    """
    Commit the body's writes as one unit, or roll all of them back.

    Service errors propagate unchanged. Integrity and lock/serialization
    failures become ConflictError; any other store failure becomes
    InternalError. Every failure path rolls back before re-raising.
    """
    try:
        yield
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        logger.debug(f"{operation} rejected: {e.code}: {e.message}")
        raise
    except (IntegrityError, OperationalError) as e:
        await session.rollback()
        logger.warning(f"Concurrent write conflict during {operation}: {e}")
        raise ConflictError(f"Concurrent update during {operation}, please retry") from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Store failure during {operation}: {e}", exc_info=True)
        raise InternalError(f"Store failure during {operation}") from e
    except Exception:
        # Anything else still must not leave the transaction (and its row lock) open
        await session.rollback()
        logger.error(f"Unexpected error during {operation}", exc_info=True)
        raise


@asynccontextmanager
async def game_transaction(
    session: AsyncSession, game_id: int, operation: str
) -> AsyncIterator[Game]:
    """
    Run the body as the single writer for ``game_id`` and yield the locked game row.

    Raises:
        NotFoundError: if the game does not exist
    """
    async with _game_locks.hold(game_id):
        async with store_transaction(session, operation):
            result = await session.execute(
                select(Game)
                .where(Game.id == game_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            game = result.scalar_one_or_none()
            if game is None:
                raise NotFoundError(f"Game {game_id} not found")
            yield game


@asynccontextmanager
async def court_transaction(
    session: AsyncSession, court_id: int, operation: str
) -> AsyncIterator[Court]:
    """
    Run the body as the single writer for ``court_id`` and yield the locked court row.

    Raises:
        NotFoundError: if the court does not exist
    """
    async with _court_locks.hold(court_id):
        async with store_transaction(session, operation):
            result = await session.execute(
                select(Court)
                .where(Court.id == court_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            court = result.scalar_one_or_none()
            if court is None:
                raise NotFoundError(f"Court {court_id} not found")
            yield court

"""
Waitlist ordering and promotion.

Active entries for one game always occupy positions 1..N with no gaps or
duplicates. Every mutation goes through ``Waitlist``, loaded while the
caller holds the game lock, so appends and renumbering act on a known
ordered list rather than re-deriving ``max(position)`` per request.
A broken sequence is reported as InternalError and never repaired here.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import Game, GameWaitlistEntry, User
from courtside.services import participant_service
from courtside.services.errors import InternalError
from courtside.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


class Waitlist:
    """Ordered view of one game's active waitlist entries."""

    def __init__(self, game_id: int, entries: List[GameWaitlistEntry]):
        self.game_id = game_id
        self._entries = sorted(entries, key=lambda e: e.position)

    @classmethod
    async def load(cls, session: AsyncSession, game_id: int) -> "Waitlist":
        """Load and validate the waitlist for a game."""
        result = await session.execute(
            select(GameWaitlistEntry)
            .where(GameWaitlistEntry.game_id == game_id)
            .order_by(GameWaitlistEntry.position.asc())
            .execution_options(populate_existing=True)
        )
        waitlist = cls(game_id, list(result.scalars().all()))
        waitlist.verify()
        return waitlist

    def verify(self) -> None:
        """Raise InternalError unless positions are exactly 1..N."""
        positions = [entry.position for entry in self._entries]
        expected = list(range(1, len(positions) + 1))
        if positions != expected:
            logger.error(
                f"Waitlist for game {self.game_id} is not contiguous: positions={positions}"
            )
            raise InternalError(f"Waitlist for game {self.game_id} is corrupted")

    @property
    def entries(self) -> List[GameWaitlistEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def head(self) -> Optional[GameWaitlistEntry]:
        return self._entries[0] if self._entries else None

    def entry_for(self, user_id: int) -> Optional[GameWaitlistEntry]:
        for entry in self._entries:
            if entry.user_id == user_id:
                return entry
        return None

    def position_of(self, user_id: int) -> Optional[int]:
        entry = self.entry_for(user_id)
        return entry.position if entry else None

    async def append(self, session: AsyncSession, user_id: int) -> GameWaitlistEntry:
        """Add a user at the tail (position N + 1)."""
        entry = GameWaitlistEntry(
            game_id=self.game_id,
            user_id=user_id,
            position=len(self._entries) + 1,
        )
        session.add(entry)
        await session.flush()
        self._entries.append(entry)
        return entry

    async def pop_head(self, session: AsyncSession) -> Optional[GameWaitlistEntry]:
        """
        Remove position 1 and shift every remaining entry up by one.

        The delete and the renumbering are flushed in the caller's
        transaction, so they commit or roll back together.
        """
        head = self.head()
        if head is None:
            return None

        await session.delete(head)
        await session.flush()
        await session.execute(
            update(GameWaitlistEntry)
            .where(
                GameWaitlistEntry.game_id == self.game_id,
                GameWaitlistEntry.position > head.position,
            )
            .values(position=GameWaitlistEntry.position - 1)
            .execution_options(synchronize_session="evaluate")
        )
        self._entries = self._entries[1:]
        self.verify()
        return head


async def promote_head(
    session: AsyncSession,
    game: Game,
    now: Optional[datetime] = None,
) -> Optional[User]:
    """
    Move the earliest waitlisted user into a freed roster slot.

    Must be called inside the same game transaction as the leave/kick that
    freed the slot. Does nothing when the waitlist is empty or the roster
    is still at capacity.

    Returns:
        The promoted user, or None if nobody was promoted
    """
    now = now or utcnow()

    joined = await participant_service.count_joined(session, game.id)
    if joined >= game.max_players:
        logger.warning(
            f"Promotion skipped for game {game.id}: roster still full ({joined}/{game.max_players})"
        )
        return None

    waitlist = await Waitlist.load(session, game.id)
    head = waitlist.head()
    if head is None:
        return None

    promoted_user_id = head.user_id
    await participant_service.activate_participant(session, game.id, promoted_user_id, now)
    await waitlist.pop_head(session)

    user = await session.get(User, promoted_user_id)
    logger.info(
        f"Promoted user {promoted_user_id} from waitlist to roster for game {game.id} "
        f"({len(waitlist)} still waiting)"
    )
    return user


async def get_waitlist(session: AsyncSession, game_id: int) -> List[GameWaitlistEntry]:
    """Get a game's waitlist entries ordered by position; InternalError if positions are not 1..N."""
    waitlist = await Waitlist.load(session, game_id)
    return waitlist.entries


async def get_waitlist_position(
    session: AsyncSession, game_id: int, user_id: int
) -> Optional[int]:
    """Get a user's 1-based waitlist position, or None if they are not waiting."""
    result = await session.execute(
        select(GameWaitlistEntry.position).where(
            GameWaitlistEntry.game_id == game_id,
            GameWaitlistEntry.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()

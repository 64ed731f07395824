"""
Participant row helpers shared by the roster and waitlist services.

A (game, user) pair owns exactly one participant row. Joining, leaving,
kicking and promotion all update that row in place so the table doubles
as the membership audit trail.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import GameParticipant, ParticipantStatus


async def get_participant(
    session: AsyncSession, game_id: int, user_id: int
) -> Optional[GameParticipant]:
    """Get the participant row for (game, user) in any status."""
    result = await session.execute(
        select(GameParticipant)
        .where(GameParticipant.game_id == game_id, GameParticipant.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def count_joined(session: AsyncSession, game_id: int) -> int:
    """Count participants currently holding a roster slot."""
    result = await session.execute(
        select(func.count(GameParticipant.id)).where(
            GameParticipant.game_id == game_id,
            GameParticipant.status == ParticipantStatus.JOINED,
        )
    )
    return result.scalar_one()


async def list_joined(session: AsyncSession, game_id: int) -> List[GameParticipant]:
    """Joined participants, earliest first."""
    result = await session.execute(
        select(GameParticipant)
        .where(
            GameParticipant.game_id == game_id,
            GameParticipant.status == ParticipantStatus.JOINED,
        )
        .order_by(GameParticipant.joined_at.asc(), GameParticipant.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def activate_participant(
    session: AsyncSession,
    game_id: int,
    user_id: int,
    now: datetime,
    existing: Optional[GameParticipant] = None,
) -> GameParticipant:
    """
    Put a user on the roster.

    Reuses a previous LEFT/KICKED row for the same game if there is one,
    otherwise inserts a new row. The caller must already hold the game lock.
    """
    participant = existing
    if participant is None:
        participant = await get_participant(session, game_id, user_id)

    if participant is None:
        participant = GameParticipant(
            game_id=game_id,
            user_id=user_id,
            status=ParticipantStatus.JOINED,
            joined_at=now,
        )
        session.add(participant)
    else:
        participant.status = ParticipantStatus.JOINED
        participant.joined_at = now
        participant.left_at = None
        participant.removed_by = None

    await session.flush()
    return participant


async def deactivate_participant(
    session: AsyncSession,
    participant: GameParticipant,
    status: ParticipantStatus,
    now: datetime,
    removed_by: Optional[int] = None,
) -> GameParticipant:
    """Mark a joined participant as LEFT or KICKED and free their slot."""
    if status not in (ParticipantStatus.LEFT, ParticipantStatus.KICKED):
        raise ValueError(f"Cannot deactivate participant with status {status}")

    participant.status = status
    participant.left_at = now
    participant.removed_by = removed_by
    await session.flush()
    return participant

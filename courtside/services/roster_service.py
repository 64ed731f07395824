"""
Roster service for game membership.

Join, leave and kick each run as one transaction under the game lock
(see ``locking.game_transaction``): precondition checks, the roster
write and any waitlist promotion commit together or not at all. The
capacity check in join and the promotion in leave/kick therefore always
see the current roster.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import (
    Game,
    GameParticipant,
    GameStatus,
    GameWaitlistEntry,
    ParticipantStatus,
    User,
)
from courtside.models.schemas import (
    JoinedResult,
    JoinResult,
    KickedResult,
    LeftResult,
    RosterParticipant,
    RosterResponse,
    RosterStats,
    RosterWaitlistEntry,
    UserSummary,
    WaitlistedResult,
)
from courtside.services import participant_service, waitlist_service
from courtside.services.errors import (
    AuthorizationError,
    ConflictError,
    InternalError,
    NotFoundError,
    StateError,
    ValidationError,
)
from courtside.services.locking import game_transaction
from courtside.utils.datetime_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)


def _user_summary(user: Optional[User]) -> Optional[UserSummary]:
    if user is None:
        return None
    return UserSummary.model_validate(user)


async def _get_user(session: AsyncSession, user_id: int) -> User:
    user = await session.get(User, user_id, populate_existing=True)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


async def join_game(session: AsyncSession, game_id: int, user_id: int) -> JoinResult:
    """
    Add a user to a game's roster, or to its waitlist if the roster is full.

    Checks, in order: game exists, game is SCHEDULED, user is neither joined
    nor waitlisted, user's skill level is inside the game's range.

    Args:
        session: Database session
        game_id: Game to join
        user_id: Authenticated user joining

    Returns:
        JoinedResult, or WaitlistedResult with the 1-based position

    Raises:
        NotFoundError: game or user does not exist
        StateError: game is not open for joining
        ConflictError: already joined / already waitlisted, or a concurrent write won
        ValidationError: skill level outside the allowed range
    """
    now = utcnow()

    async with game_transaction(session, game_id, "join") as game:
        capacity = game.max_players
        if game.status != GameStatus.SCHEDULED:
            raise StateError("Game is not open for joining")

        participant = await participant_service.get_participant(session, game_id, user_id)
        if participant is not None and participant.status == ParticipantStatus.JOINED:
            raise ConflictError("Already joined this game")

        waitlist = await waitlist_service.Waitlist.load(session, game_id)
        existing_entry = waitlist.entry_for(user_id)
        if existing_entry is not None:
            raise ConflictError(
                f"Already on waitlist for this game at position {existing_entry.position}"
            )

        user = await _get_user(session, user_id)
        if not game.skill_level_min <= user.skill_level <= game.skill_level_max:
            raise ValidationError(
                f"Skill level must be between {game.skill_level_min} and {game.skill_level_max}"
            )

        joined = await participant_service.count_joined(session, game_id)
        if joined > game.max_players:
            logger.error(f"Game {game_id} roster over capacity: {joined}/{game.max_players}")
            raise InternalError(f"Game {game_id} roster exceeds capacity")

        if joined < game.max_players:
            await participant_service.activate_participant(
                session, game_id, user_id, now, existing=participant
            )
            result = JoinedResult(game_id=game_id, user_id=user_id, joined_at=now)
        else:
            entry = await waitlist.append(session, user_id)
            result = WaitlistedResult(game_id=game_id, user_id=user_id, position=entry.position)

    if result.status == "joined":
        logger.info(f"User {user_id} joined game {game_id} ({joined + 1}/{capacity})")
    else:
        logger.info(f"User {user_id} waitlisted for game {game_id} at position {result.position}")
    return result


async def leave_game(session: AsyncSession, game_id: int, user_id: int) -> LeftResult:
    """
    Remove a user from a game's roster and promote the waitlist head.

    Args:
        session: Database session
        game_id: Game to leave
        user_id: Authenticated user leaving

    Returns:
        LeftResult with the promoted user, if any

    Raises:
        NotFoundError: game does not exist
        StateError: user is not a participant, or the game already started
        AuthorizationError: the organizer tried to leave their own game
    """
    now = utcnow()

    async with game_transaction(session, game_id, "leave") as game:
        participant = await participant_service.get_participant(session, game_id, user_id)
        if participant is None or participant.status != ParticipantStatus.JOINED:
            raise StateError("Not a participant in this game")

        if game.status != GameStatus.SCHEDULED:
            raise StateError("Cannot leave a game that has already started")

        if game.organizer_id == user_id:
            raise AuthorizationError("Game organizer cannot leave their own game")

        await participant_service.deactivate_participant(
            session, participant, ParticipantStatus.LEFT, now
        )
        promoted = await waitlist_service.promote_head(session, game, now=now)
        result = LeftResult(game_id=game_id, user_id=user_id, promoted_user=_user_summary(promoted))

    logger.info(
        f"User {user_id} left game {game_id}"
        + (f"; promoted user {result.promoted_user.id}" if result.promoted_user else "")
    )
    return result


async def kick_participant(
    session: AsyncSession, game_id: int, requester_id: int, target_user_id: int
) -> KickedResult:
    """
    Organizer removes a participant; the waitlist head takes the freed slot.

    The organizer may not target themselves: organizers cannot leave their
    own game, and kicking must not become a way around that rule.

    Args:
        session: Database session
        game_id: Game being managed
        requester_id: Authenticated user asking for the kick
        target_user_id: Participant to remove

    Returns:
        KickedResult with the promoted user, if any

    Raises:
        NotFoundError: game does not exist, or target is not a joined participant
        AuthorizationError: requester is not the organizer
        StateError: game already started
        ValidationError: organizer targeted themselves
    """
    now = utcnow()

    async with game_transaction(session, game_id, "kick") as game:
        if game.organizer_id != requester_id:
            raise AuthorizationError("Only the game organizer can manage participants")

        if game.status != GameStatus.SCHEDULED:
            raise StateError("Cannot modify participants after the game has started")

        if target_user_id == requester_id:
            raise ValidationError("Organizer cannot remove themselves from their own game")

        participant = await participant_service.get_participant(session, game_id, target_user_id)
        if participant is None or participant.status != ParticipantStatus.JOINED:
            raise NotFoundError(f"User {target_user_id} is not a participant in this game")

        await participant_service.deactivate_participant(
            session, participant, ParticipantStatus.KICKED, now, removed_by=requester_id
        )
        promoted = await waitlist_service.promote_head(session, game, now=now)
        result = KickedResult(
            game_id=game_id,
            user_id=target_user_id,
            kicked_by=requester_id,
            promoted_user=_user_summary(promoted),
        )

    logger.info(
        f"Organizer {requester_id} kicked user {target_user_id} from game {game_id}"
        + (f"; promoted user {result.promoted_user.id}" if result.promoted_user else "")
    )
    return result


async def get_roster(session: AsyncSession, game_id: int) -> RosterResponse:
    """
    Get joined participants (earliest first), the waitlist (by position) and roster stats.

    Read-only; takes no lock.
    """
    game = await session.get(Game, game_id, populate_existing=True)
    if game is None:
        raise NotFoundError(f"Game {game_id} not found")

    participant_rows = (
        await session.execute(
            select(GameParticipant, User)
            .join(User, GameParticipant.user_id == User.id)
            .where(
                GameParticipant.game_id == game_id,
                GameParticipant.status == ParticipantStatus.JOINED,
            )
            .order_by(GameParticipant.joined_at.asc(), GameParticipant.id.asc())
        )
    ).all()

    waitlist_rows = (
        await session.execute(
            select(GameWaitlistEntry, User)
            .join(User, GameWaitlistEntry.user_id == User.id)
            .where(GameWaitlistEntry.game_id == game_id)
            .order_by(GameWaitlistEntry.position.asc())
        )
    ).all()

    participants = [
        RosterParticipant(user=_user_summary(user), joined_at=ensure_utc(p.joined_at))
        for p, user in participant_rows
    ]
    waitlist = [
        RosterWaitlistEntry(user=_user_summary(user), position=entry.position)
        for entry, user in waitlist_rows
    ]

    count = len(participants)
    stats = RosterStats(
        total_participants=count,
        waitlist_count=len(waitlist),
        spots_left=max(game.max_players - count, 0),
        average_skill_level=round(sum(p.user.skill_level for p in participants) / count) if count else 0,
        average_rating=round(sum(p.user.rating for p in participants) / count) if count else 0,
    )
    return RosterResponse(
        game_id=game_id,
        max_players=game.max_players,
        participants=participants,
        waitlist=waitlist,
        stats=stats,
    )


async def verify_roster_invariants(session: AsyncSession, game_id: int) -> Dict:
    """
    Audit a game's roster and waitlist.

    Checks that the roster is within capacity, waitlist positions are exactly
    1..N, and nobody is both joined and waitlisted.

    Returns:
        Dict with joined and waitlisted counts

    Raises:
        NotFoundError: game does not exist
        InternalError: an invariant does not hold
    """
    game = await session.get(Game, game_id, populate_existing=True)
    if game is None:
        raise NotFoundError(f"Game {game_id} not found")

    joined: List[GameParticipant] = await participant_service.list_joined(session, game_id)
    if len(joined) > game.max_players:
        logger.error(f"Game {game_id} roster over capacity: {len(joined)}/{game.max_players}")
        raise InternalError(f"Game {game_id} roster exceeds capacity")

    waitlist = await waitlist_service.get_waitlist(session, game_id)

    both = {p.user_id for p in joined} & {e.user_id for e in waitlist}
    if both:
        logger.error(f"Game {game_id} has users both joined and waitlisted: {sorted(both)}")
        raise InternalError(f"Game {game_id} has users both joined and waitlisted")

    return {"game_id": game_id, "joined": len(joined), "waitlisted": len(waitlist)}

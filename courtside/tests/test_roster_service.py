"""
Tests for roster_service: join / leave / kick, waitlist promotion,
precondition ordering, roster view and invariant audit.
"""

import asyncio

import pytest
from sqlalchemy import func, select

from courtside.database.models import (
    GameParticipant,
    GameStatus,
    GameWaitlistEntry,
    ParticipantStatus,
)
from courtside.services import roster_service, waitlist_service
from courtside.services.errors import (
    AuthorizationError,
    ConflictError,
    InternalError,
    NotFoundError,
    StateError,
    ValidationError,
)


async def _joined_user_ids(session, game_id):
    result = await session.execute(
        select(GameParticipant.user_id)
        .where(
            GameParticipant.game_id == game_id,
            GameParticipant.status == ParticipantStatus.JOINED,
        )
        .order_by(GameParticipant.user_id)
    )
    return list(result.scalars().all())


async def _waitlist(session, game_id):
    result = await session.execute(
        select(GameWaitlistEntry.user_id, GameWaitlistEntry.position)
        .where(GameWaitlistEntry.game_id == game_id)
        .order_by(GameWaitlistEntry.position)
    )
    return [tuple(row) for row in result.all()]


# ============================================================================
# Join
# ============================================================================


@pytest.mark.asyncio
async def test_join_then_waitlist_then_promote_on_leave(db_session, make_user, make_game):
    """Capacity 2: A, B join; C is waitlisted; A leaves and C is promoted."""
    game = await make_game(max_players=2)
    a = await make_user("alice")
    b = await make_user("bob")
    c = await make_user("carol")

    result_a = await roster_service.join_game(db_session, game.id, a.id)
    result_b = await roster_service.join_game(db_session, game.id, b.id)
    result_c = await roster_service.join_game(db_session, game.id, c.id)

    assert result_a.status == "joined"
    assert result_b.status == "joined"
    assert result_c.status == "waitlisted"
    assert result_c.position == 1

    left = await roster_service.leave_game(db_session, game.id, a.id)

    assert left.status == "left"
    assert left.promoted_user is not None
    assert left.promoted_user.id == c.id
    assert left.promoted_user.username == "carol"
    assert await _joined_user_ids(db_session, game.id) == sorted([b.id, c.id])
    assert await _waitlist(db_session, game.id) == []

    # Roster is full again (B, C), so the next joiner waits at the head
    d = await make_user("dave")
    result_d = await roster_service.join_game(db_session, game.id, d.id)
    assert result_d.status == "waitlisted"
    assert result_d.position == 1


@pytest.mark.asyncio
async def test_join_missing_game_raises_not_found(db_session, make_user):
    user = await make_user("alice")
    with pytest.raises(NotFoundError, match="Game 999 not found"):
        await roster_service.join_game(db_session, 999, user.id)


@pytest.mark.asyncio
async def test_join_missing_user_raises_not_found(db_session, make_game):
    game = await make_game()
    with pytest.raises(NotFoundError, match="User 999 not found"):
        await roster_service.join_game(db_session, game.id, 999)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status", [GameStatus.IN_PROGRESS, GameStatus.COMPLETED, GameStatus.CANCELLED]
)
async def test_join_non_scheduled_game_raises_state_error(db_session, make_user, make_game, status):
    game = await make_game(status=status)
    user = await make_user("alice")
    with pytest.raises(StateError, match="not open for joining"):
        await roster_service.join_game(db_session, game.id, user.id)


@pytest.mark.asyncio
async def test_status_checked_before_duplicate_membership(
    db_session, make_user, make_game, set_game_status
):
    game = await make_game()
    user = await make_user("alice")
    await roster_service.join_game(db_session, game.id, user.id)

    await set_game_status(game.id, GameStatus.IN_PROGRESS)

    with pytest.raises(StateError):
        await roster_service.join_game(db_session, game.id, user.id)


@pytest.mark.asyncio
async def test_join_twice_raises_conflict(db_session, make_user, make_game):
    game = await make_game()
    user = await make_user("alice")
    await roster_service.join_game(db_session, game.id, user.id)

    with pytest.raises(ConflictError, match="Already joined this game") as exc_info:
        await roster_service.join_game(db_session, game.id, user.id)
    assert exc_info.value.retryable is True
    assert await _joined_user_ids(db_session, game.id) == [user.id]


@pytest.mark.asyncio
async def test_join_while_waitlisted_raises_conflict(db_session, make_user, make_game):
    game = await make_game(max_players=1)
    a = await make_user("alice")
    b = await make_user("bob")
    await roster_service.join_game(db_session, game.id, a.id)
    await roster_service.join_game(db_session, game.id, b.id)

    with pytest.raises(ConflictError, match="Already on waitlist for this game at position 1"):
        await roster_service.join_game(db_session, game.id, b.id)
    assert await _waitlist(db_session, game.id) == [(b.id, 1)]


@pytest.mark.asyncio
async def test_join_skill_out_of_range_includes_range(db_session, make_user, make_game):
    game = await make_game(skill_level_min=3, skill_level_max=6)
    novice = await make_user("novice", skill_level=2)
    expert = await make_user("expert", skill_level=7)

    with pytest.raises(ValidationError, match="Skill level must be between 3 and 6"):
        await roster_service.join_game(db_session, game.id, novice.id)
    with pytest.raises(ValidationError, match="Skill level must be between 3 and 6"):
        await roster_service.join_game(db_session, game.id, expert.id)
    assert await _joined_user_ids(db_session, game.id) == []


@pytest.mark.asyncio
async def test_join_skill_at_range_bounds_is_allowed(db_session, make_user, make_game):
    game = await make_game(max_players=4, skill_level_min=3, skill_level_max=6)
    low = await make_user("low", skill_level=3)
    high = await make_user("high", skill_level=6)

    assert (await roster_service.join_game(db_session, game.id, low.id)).status == "joined"
    assert (await roster_service.join_game(db_session, game.id, high.id)).status == "joined"


@pytest.mark.asyncio
async def test_waitlist_positions_are_assigned_in_order(db_session, make_user, make_game):
    game = await make_game(max_players=1)
    users = [await make_user(f"user{i}") for i in range(4)]

    results = [await roster_service.join_game(db_session, game.id, u.id) for u in users]

    assert results[0].status == "joined"
    assert [r.position for r in results[1:]] == [1, 2, 3]
    assert await _waitlist(db_session, game.id) == [
        (users[1].id, 1),
        (users[2].id, 2),
        (users[3].id, 3),
    ]


# ============================================================================
# Leave
# ============================================================================


@pytest.mark.asyncio
async def test_leave_twice_second_call_raises_state_error(db_session, make_user, make_game):
    game = await make_game(max_players=3)
    a = await make_user("alice")
    b = await make_user("bob")
    await roster_service.join_game(db_session, game.id, a.id)
    await roster_service.join_game(db_session, game.id, b.id)

    first = await roster_service.leave_game(db_session, game.id, a.id)
    assert first.status == "left"
    assert first.promoted_user is None

    with pytest.raises(StateError, match="Not a participant in this game"):
        await roster_service.leave_game(db_session, game.id, a.id)
    assert await _joined_user_ids(db_session, game.id) == [b.id]

    row = (
        await db_session.execute(
            select(GameParticipant).where(
                GameParticipant.game_id == game.id, GameParticipant.user_id == a.id
            )
        )
    ).scalar_one()
    assert row.status == ParticipantStatus.LEFT
    assert row.left_at is not None


@pytest.mark.asyncio
async def test_leave_missing_game_raises_not_found(db_session, make_user):
    user = await make_user("alice")
    with pytest.raises(NotFoundError):
        await roster_service.leave_game(db_session, 999, user.id)


@pytest.mark.asyncio
async def test_leave_when_only_waitlisted_raises_state_error(db_session, make_user, make_game):
    game = await make_game(max_players=1)
    a = await make_user("alice")
    b = await make_user("bob")
    await roster_service.join_game(db_session, game.id, a.id)
    await roster_service.join_game(db_session, game.id, b.id)

    with pytest.raises(StateError, match="Not a participant"):
        await roster_service.leave_game(db_session, game.id, b.id)
    assert await _waitlist(db_session, game.id) == [(b.id, 1)]


@pytest.mark.asyncio
async def test_leave_started_game_raises_state_error(
    db_session, make_user, make_game, set_game_status
):
    game = await make_game()
    user = await make_user("alice")
    await roster_service.join_game(db_session, game.id, user.id)
    await set_game_status(game.id, GameStatus.IN_PROGRESS)

    with pytest.raises(StateError, match="already started"):
        await roster_service.leave_game(db_session, game.id, user.id)


@pytest.mark.asyncio
async def test_participant_checked_before_status_on_leave(db_session, make_user, make_game):
    game = await make_game(status=GameStatus.IN_PROGRESS)
    user = await make_user("alice")

    with pytest.raises(StateError, match="Not a participant"):
        await roster_service.leave_game(db_session, game.id, user.id)


@pytest.mark.asyncio
async def test_organizer_cannot_leave_own_game(db_session, organizer, make_game):
    game = await make_game()
    await roster_service.join_game(db_session, game.id, organizer.id)

    with pytest.raises(AuthorizationError, match="organizer cannot leave"):
        await roster_service.leave_game(db_session, game.id, organizer.id)
    assert await _joined_user_ids(db_session, game.id) == [organizer.id]


@pytest.mark.asyncio
async def test_leave_promotes_head_and_renumbers_waitlist(db_session, make_user, make_game):
    game = await make_game(max_players=1)
    a, b, c, d = [await make_user(name) for name in ("alice", "bob", "carol", "dave")]
    for user in (a, b, c, d):
        await roster_service.join_game(db_session, game.id, user.id)

    result = await roster_service.leave_game(db_session, game.id, a.id)

    assert result.promoted_user.id == b.id
    assert await _joined_user_ids(db_session, game.id) == [b.id]
    assert await _waitlist(db_session, game.id) == [(c.id, 1), (d.id, 2)]
    assert await waitlist_service.get_waitlist_position(db_session, game.id, d.id) == 2
    assert await waitlist_service.get_waitlist_position(db_session, game.id, b.id) is None


@pytest.mark.asyncio
async def test_rejoin_reuses_participant_row(db_session, make_user, make_game):
    game = await make_game()
    user = await make_user("alice")
    await roster_service.join_game(db_session, game.id, user.id)
    await roster_service.leave_game(db_session, game.id, user.id)

    result = await roster_service.join_game(db_session, game.id, user.id)

    assert result.status == "joined"
    rows = (
        await db_session.execute(
            select(GameParticipant).where(
                GameParticipant.game_id == game.id, GameParticipant.user_id == user.id
            )
        )
    ).scalars().all()
    assert len(rows) == 1
    assert rows[0].status == ParticipantStatus.JOINED
    assert rows[0].left_at is None


@pytest.mark.asyncio
async def test_promotion_reuses_left_participant_row(db_session, make_user, make_game):
    game = await make_game(max_players=1)
    a = await make_user("alice")
    b = await make_user("bob")

    await roster_service.join_game(db_session, game.id, b.id)
    await roster_service.leave_game(db_session, game.id, b.id)
    await roster_service.join_game(db_session, game.id, a.id)
    waitlisted = await roster_service.join_game(db_session, game.id, b.id)
    assert waitlisted.status == "waitlisted"

    result = await roster_service.leave_game(db_session, game.id, a.id)

    assert result.promoted_user.id == b.id
    count = (
        await db_session.execute(
            select(func.count(GameParticipant.id)).where(
                GameParticipant.game_id == game.id, GameParticipant.user_id == b.id
            )
        )
    ).scalar_one()
    assert count == 1
    assert await _joined_user_ids(db_session, game.id) == [b.id]


# ============================================================================
# Kick
# ============================================================================


@pytest.mark.asyncio
async def test_kick_promotes_waitlist_head(db_session, organizer, make_user, make_game):
    game = await make_game(max_players=1)
    a = await make_user("alice")
    b = await make_user("bob")
    await roster_service.join_game(db_session, game.id, a.id)
    await roster_service.join_game(db_session, game.id, b.id)

    result = await roster_service.kick_participant(db_session, game.id, organizer.id, a.id)

    assert result.status == "kicked"
    assert result.kicked_by == organizer.id
    assert result.promoted_user.id == b.id

    kicked = await db_session.execute(
        select(GameParticipant).where(
            GameParticipant.game_id == game.id, GameParticipant.user_id == a.id
        )
    )
    row = kicked.scalar_one()
    assert row.status == ParticipantStatus.KICKED
    assert row.removed_by == organizer.id
    assert row.left_at is not None
    assert await _waitlist(db_session, game.id) == []


@pytest.mark.asyncio
async def test_kick_by_non_organizer_raises_authorization_error(db_session, make_user, make_game):
    game = await make_game()
    a = await make_user("alice")
    b = await make_user("bob")
    await roster_service.join_game(db_session, game.id, a.id)
    await roster_service.join_game(db_session, game.id, b.id)

    with pytest.raises(AuthorizationError, match="Only the game organizer"):
        await roster_service.kick_participant(db_session, game.id, b.id, a.id)
    assert await _joined_user_ids(db_session, game.id) == sorted([a.id, b.id])


@pytest.mark.asyncio
async def test_kick_after_start_raises_state_error(
    db_session, organizer, make_user, make_game, set_game_status
):
    game = await make_game()
    a = await make_user("alice")
    await roster_service.join_game(db_session, game.id, a.id)
    await set_game_status(game.id, GameStatus.IN_PROGRESS)

    with pytest.raises(StateError):
        await roster_service.kick_participant(db_session, game.id, organizer.id, a.id)


@pytest.mark.asyncio
async def test_kick_non_participant_raises_not_found(db_session, organizer, make_user, make_game):
    game = await make_game()
    a = await make_user("alice")

    with pytest.raises(NotFoundError, match="is not a participant"):
        await roster_service.kick_participant(db_session, game.id, organizer.id, a.id)


@pytest.mark.asyncio
async def test_organizer_cannot_kick_self(db_session, organizer, make_game):
    game = await make_game()
    await roster_service.join_game(db_session, game.id, organizer.id)

    with pytest.raises(ValidationError, match="cannot remove themselves"):
        await roster_service.kick_participant(db_session, game.id, organizer.id, organizer.id)


@pytest.mark.asyncio
async def test_kick_missing_game_raises_not_found(db_session, organizer):
    with pytest.raises(NotFoundError):
        await roster_service.kick_participant(db_session, 999, organizer.id, organizer.id)


# ============================================================================
# Roster view and invariant audit
# ============================================================================


@pytest.mark.asyncio
async def test_get_roster_lists_participants_waitlist_and_stats(db_session, make_user, make_game):
    game = await make_game(max_players=3)
    a = await make_user("alice", skill_level=3, rating=1000)
    b = await make_user("bob", skill_level=4, rating=1100)
    c = await make_user("carol", skill_level=5, rating=1300)
    d = await make_user("dave", skill_level=6, rating=900)
    for user in (a, b, c, d):
        await roster_service.join_game(db_session, game.id, user.id)

    roster = await roster_service.get_roster(db_session, game.id)

    assert [p.user.id for p in roster.participants] == [a.id, b.id, c.id]
    assert [(w.user.id, w.position) for w in roster.waitlist] == [(d.id, 1)]
    assert roster.stats.total_participants == 3
    assert roster.stats.waitlist_count == 1
    assert roster.stats.spots_left == 0
    assert roster.stats.average_skill_level == 4
    assert roster.stats.average_rating == 1133


@pytest.mark.asyncio
async def test_get_roster_empty_game(db_session, make_game):
    game = await make_game(max_players=4)

    roster = await roster_service.get_roster(db_session, game.id)

    assert roster.participants == []
    assert roster.waitlist == []
    assert roster.stats.spots_left == 4
    assert roster.stats.average_skill_level == 0
    assert roster.stats.average_rating == 0


@pytest.mark.asyncio
async def test_get_roster_missing_game(db_session):
    with pytest.raises(NotFoundError):
        await roster_service.get_roster(db_session, 999)


@pytest.mark.asyncio
async def test_verify_roster_invariants_reports_counts(db_session, make_user, make_game):
    game = await make_game(max_players=1)
    a = await make_user("alice")
    b = await make_user("bob")
    await roster_service.join_game(db_session, game.id, a.id)
    await roster_service.join_game(db_session, game.id, b.id)

    report = await roster_service.verify_roster_invariants(db_session, game.id)

    assert report == {"game_id": game.id, "joined": 1, "waitlisted": 1}


@pytest.mark.asyncio
async def test_corrupted_waitlist_is_reported_not_repaired(db_session, make_user, make_game):
    game = await make_game(max_players=1)
    a, b, c = [await make_user(name) for name in ("alice", "bob", "carol")]
    await roster_service.join_game(db_session, game.id, a.id)
    db_session.add(GameWaitlistEntry(game_id=game.id, user_id=b.id, position=1))
    db_session.add(GameWaitlistEntry(game_id=game.id, user_id=c.id, position=3))
    await db_session.commit()

    with pytest.raises(InternalError, match="corrupted"):
        await roster_service.verify_roster_invariants(db_session, game.id)

    d = await make_user("dave")
    with pytest.raises(InternalError):
        await roster_service.join_game(db_session, game.id, d.id)

    # Nothing was renumbered or added
    assert await _waitlist(db_session, game.id) == [(b.id, 1), (c.id, 3)]


@pytest.mark.asyncio
async def test_user_both_joined_and_waitlisted_is_reported(db_session, make_user, make_game):
    game = await make_game(max_players=2)
    a = await make_user("alice")
    await roster_service.join_game(db_session, game.id, a.id)
    db_session.add(GameWaitlistEntry(game_id=game.id, user_id=a.id, position=1))
    await db_session.commit()

    with pytest.raises(InternalError, match="both joined and waitlisted"):
        await roster_service.verify_roster_invariants(db_session, game.id)


# ============================================================================
# Concurrency
# ============================================================================


@pytest.mark.asyncio
async def test_concurrent_joins_on_last_slot(session_maker, make_user, make_game):
    """Two simultaneous joins for one slot: exactly one joins, the other waits at 1."""
    game = await make_game(max_players=1)
    a = await make_user("alice")
    b = await make_user("bob")

    async def join(user_id):
        async with session_maker() as session:
            return await roster_service.join_game(session, game.id, user_id)

    results = await asyncio.gather(join(a.id), join(b.id))

    assert sorted(r.status for r in results) == ["joined", "waitlisted"]
    waitlisted = next(r for r in results if r.status == "waitlisted")
    assert waitlisted.position == 1

    async with session_maker() as session:
        report = await roster_service.verify_roster_invariants(session, game.id)
    assert report["joined"] == 1
    assert report["waitlisted"] == 1


@pytest.mark.asyncio
async def test_concurrent_leave_and_join_never_double_promotes(session_maker, make_user, make_game):
    game = await make_game(max_players=1)
    a, b, c = [await make_user(name) for name in ("alice", "bob", "carol")]

    async with session_maker() as session:
        await roster_service.join_game(session, game.id, a.id)
        await roster_service.join_game(session, game.id, b.id)

    async def leave(user_id):
        async with session_maker() as session:
            return await roster_service.leave_game(session, game.id, user_id)

    async def join(user_id):
        async with session_maker() as session:
            return await roster_service.join_game(session, game.id, user_id)

    left, joined = await asyncio.gather(leave(a.id), join(c.id))

    assert left.promoted_user.id == b.id
    assert joined.status == "waitlisted"

    async with session_maker() as session:
        assert await _joined_user_ids(session, game.id) == [b.id]
        assert await _waitlist(session, game.id) == [(c.id, 1)]


@pytest.mark.asyncio
async def test_many_concurrent_joins_respect_capacity(session_maker, make_user, make_game):
    game = await make_game(max_players=3)
    users = [await make_user(f"player{i}") for i in range(8)]

    async def join(user_id):
        async with session_maker() as session:
            return await roster_service.join_game(session, game.id, user_id)

    results = await asyncio.gather(*(join(u.id) for u in users))

    assert sum(1 for r in results if r.status == "joined") == 3
    assert sorted(r.position for r in results if r.status == "waitlisted") == [1, 2, 3, 4, 5]

    async with session_maker() as session:
        report = await roster_service.verify_roster_invariants(session, game.id)
    assert report == {"game_id": game.id, "joined": 3, "waitlisted": 5}

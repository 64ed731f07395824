"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

Initial schema for game rosters and court bookings:
- users
- courts, court_availability (weekly windows, Sunday=0), court_reservations
- games, game_participants (one row per game/user), game_waitlist (positions 1..N)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


game_status = sa.Enum("SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELLED", name="gamestatus")
participant_status = sa.Enum("JOINED", "LEFT", "KICKED", name="participantstatus")
reservation_status = sa.Enum("PENDING", "CONFIRMED", "CANCELLED", name="reservationstatus")


def _timestamps(with_updated: bool = True):
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())]
    if with_updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now())
        )
    return columns


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(50), nullable=False, unique=True),
        sa.Column("skill_level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("rating", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("avatar", sa.String(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "courts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("is_bookable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hourly_rate", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "court_availability",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "court_id", sa.Integer(), sa.ForeignKey("courts.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("end_time", sa.String(5), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(with_updated=False),
        sa.CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_court_availability_day"),
        sa.CheckConstraint("start_time < end_time", name="ck_court_availability_window"),
    )
    op.create_index(
        "idx_court_availability_court_day", "court_availability", ["court_id", "day_of_week"]
    )

    op.create_table(
        "games",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("court_id", sa.Integer(), sa.ForeignKey("courts.id"), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_players", sa.Integer(), nullable=False),
        sa.Column("skill_level_min", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("skill_level_max", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("status", game_status, nullable=False, server_default="SCHEDULED"),
        *_timestamps(),
        sa.CheckConstraint("max_players > 0", name="ck_games_max_players"),
        sa.CheckConstraint("skill_level_min <= skill_level_max", name="ck_games_skill_range"),
    )
    op.create_index("idx_games_status", "games", ["status"])

    op.create_table(
        "court_reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("court_id", sa.Integer(), sa.ForeignKey("courts.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("game_id", sa.Integer(), sa.ForeignKey("games.id"), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", reservation_status, nullable=False, server_default="PENDING"),
        sa.Column("total_cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("start_time < end_time", name="ck_court_reservations_interval"),
    )
    op.create_index(
        "idx_court_reservations_court_time",
        "court_reservations",
        ["court_id", "start_time", "end_time"],
    )
    op.create_index("idx_court_reservations_user", "court_reservations", ["user_id"])

    op.create_table(
        "game_participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "game_id", sa.Integer(), sa.ForeignKey("games.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", participant_status, nullable=False, server_default="JOINED"),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("left_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("removed_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.UniqueConstraint("game_id", "user_id", name="uq_game_participants_game_user"),
    )
    op.create_index(
        "idx_game_participants_game_status", "game_participants", ["game_id", "status"]
    )

    op.create_table(
        "game_waitlist",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "game_id", sa.Integer(), sa.ForeignKey("games.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("game_id", "user_id", name="uq_game_waitlist_game_user"),
        sa.CheckConstraint("position >= 1", name="ck_game_waitlist_position"),
    )
    op.create_index(
        "idx_game_waitlist_game_position", "game_waitlist", ["game_id", "position"]
    )


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_table("game_waitlist")
    op.drop_table("game_participants")
    op.drop_table("court_reservations")
    op.drop_table("games")
    op.drop_table("court_availability")
    op.drop_table("courts")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (reservation_status, participant_status, game_status):
        enum_type.drop(bind, checkfirst=True)

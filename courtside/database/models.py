"""
SQLAlchemy ORM models for games, rosters, waitlists and court bookings.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    Enum,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from courtside.database.db import Base


class GameStatus(str, enum.Enum):
    """Game lifecycle status."""

    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ParticipantStatus(str, enum.Enum):
    """Roster membership status."""

    JOINED = "JOINED"
    LEFT = "LEFT"
    KICKED = "KICKED"


class ReservationStatus(str, enum.Enum):
    """Court reservation status."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class User(Base):
    """User accounts. Identity is verified upstream; the core only reads these."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True)
    skill_level = Column(Integer, nullable=False, default=1)
    rating = Column(Integer, nullable=False, default=1000)
    avatar = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    participations = relationship(
        "GameParticipant", back_populates="user", foreign_keys="GameParticipant.user_id"
    )
    waitlist_entries = relationship("GameWaitlistEntry", back_populates="user")
    reservations = relationship("CourtReservation", back_populates="user")


class Court(Base):
    """Bookable courts with recurring weekly availability."""

    __tablename__ = "courts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=True)
    timezone = Column(String(64), nullable=False, default="UTC")  # IANA name, windows are local time
    is_bookable = Column(Boolean, nullable=False, default=False)
    hourly_rate = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    availability = relationship(
        "CourtAvailability", back_populates="court", cascade="all, delete-orphan"
    )
    reservations = relationship("CourtReservation", back_populates="court")
    games = relationship("Game", back_populates="court")


class CourtAvailability(Base):
    """Recurring weekly window during which a court can be booked."""

    __tablename__ = "court_availability"

    id = Column(Integer, primary_key=True, autoincrement=True)
    court_id = Column(Integer, ForeignKey("courts.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0-6, Sunday=0
    start_time = Column(String(5), nullable=False)  # Time as string (HH:MM format)
    end_time = Column(String(5), nullable=False)  # Time as string (HH:MM format)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    court = relationship("Court", back_populates="availability")

    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_court_availability_day"),
        CheckConstraint("start_time < end_time", name="ck_court_availability_window"),
        Index("idx_court_availability_court_day", "court_id", "day_of_week"),
    )


class CourtReservation(Base):
    """A booked claim on a court over [start_time, end_time)."""

    __tablename__ = "court_reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    court_id = Column(Integer, ForeignKey("courts.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    game_id = Column(Integer, ForeignKey("games.id"), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)  # UTC
    end_time = Column(DateTime(timezone=True), nullable=False)  # UTC
    status = Column(Enum(ReservationStatus), nullable=False, default=ReservationStatus.PENDING)
    total_cost = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    court = relationship("Court", back_populates="reservations")
    user = relationship("User", back_populates="reservations")
    game = relationship("Game")

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_court_reservations_interval"),
        Index("idx_court_reservations_court_time", "court_id", "start_time", "end_time"),
        Index("idx_court_reservations_user", "user_id"),
    )


class Game(Base):
    """A capacity-bounded scheduled game that users join."""

    __tablename__ = "games"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    court_id = Column(Integer, ForeignKey("courts.id"), nullable=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)  # UTC
    max_players = Column(Integer, nullable=False)
    skill_level_min = Column(Integer, nullable=False, default=1)
    skill_level_max = Column(Integer, nullable=False, default=10)
    status = Column(Enum(GameStatus), nullable=False, default=GameStatus.SCHEDULED)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    organizer = relationship("User", foreign_keys=[organizer_id])
    court = relationship("Court", back_populates="games")
    participants = relationship(
        "GameParticipant", back_populates="game", cascade="all, delete-orphan"
    )
    waitlist = relationship(
        "GameWaitlistEntry",
        back_populates="game",
        cascade="all, delete-orphan",
        order_by="GameWaitlistEntry.position",
    )

    __table_args__ = (
        CheckConstraint("max_players > 0", name="ck_games_max_players"),
        CheckConstraint("skill_level_min <= skill_level_max", name="ck_games_skill_range"),
        Index("idx_games_status", "status"),
    )


class GameParticipant(Base):
    """One row per (game, user); status is updated in place, never deleted."""

    __tablename__ = "game_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(Enum(ParticipantStatus), nullable=False, default=ParticipantStatus.JOINED)
    joined_at = Column(DateTime(timezone=True), nullable=False)
    left_at = Column(DateTime(timezone=True), nullable=True)
    removed_by = Column(Integer, ForeignKey("users.id"), nullable=True)  # Organizer who kicked

    # Relationships
    game = relationship("Game", back_populates="participants")
    user = relationship("User", foreign_keys=[user_id], back_populates="participations")

    __table_args__ = (
        UniqueConstraint("game_id", "user_id", name="uq_game_participants_game_user"),
        Index("idx_game_participants_game_status", "game_id", "status"),
    )


class GameWaitlistEntry(Base):
    """Active waitlist entry. Positions for one game are always 1..N."""

    __tablename__ = "game_waitlist"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    position = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    game = relationship("Game", back_populates="waitlist")
    user = relationship("User", back_populates="waitlist_entries")

    __table_args__ = (
        UniqueConstraint("game_id", "user_id", name="uq_game_waitlist_game_user"),
        CheckConstraint("position >= 1", name="ck_game_waitlist_position"),
        Index("idx_game_waitlist_game_position", "game_id", "position"),
    )

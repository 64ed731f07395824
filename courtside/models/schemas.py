"""
Pydantic models for service results.

Roster operations return a closed set of tagged outcomes; the ``status``
field is the discriminator callers switch on.
"""

from datetime import datetime
from typing import Annotated, Optional, List, Literal, Union
from pydantic import BaseModel, Field, ConfigDict


class UserSummary(BaseModel):
    """Public view of a user on a roster or waitlist."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    username: str
    skill_level: int
    rating: int
    avatar: Optional[str] = None


# ---------------------------------------------------------------------------
# Roster outcomes
# ---------------------------------------------------------------------------


class JoinedResult(BaseModel):
    """User took an open roster slot."""

    status: Literal["joined"] = "joined"
    game_id: int
    user_id: int
    joined_at: datetime


class WaitlistedResult(BaseModel):
    """Game was full; user was appended to the waitlist."""

    status: Literal["waitlisted"] = "waitlisted"
    game_id: int
    user_id: int
    position: int = Field(ge=1)


JoinResult = Annotated[Union[JoinedResult, WaitlistedResult], Field(discriminator="status")]


class LeftResult(BaseModel):
    """User left the roster; the waitlist head may have been promoted."""

    status: Literal["left"] = "left"
    game_id: int
    user_id: int
    promoted_user: Optional[UserSummary] = None


class KickedResult(BaseModel):
    """Organizer removed a participant; the waitlist head may have been promoted."""

    status: Literal["kicked"] = "kicked"
    game_id: int
    user_id: int
    kicked_by: int
    promoted_user: Optional[UserSummary] = None


# ---------------------------------------------------------------------------
# Roster view
# ---------------------------------------------------------------------------


class RosterParticipant(BaseModel):
    """A joined participant."""

    user: UserSummary
    joined_at: datetime


class RosterWaitlistEntry(BaseModel):
    """A waitlisted user and their 1-based position."""

    user: UserSummary
    position: int = Field(ge=1)


class RosterStats(BaseModel):
    """Aggregate roster numbers."""

    total_participants: int
    waitlist_count: int
    spots_left: int
    average_skill_level: int
    average_rating: int


class RosterResponse(BaseModel):
    """Joined participants and waitlist for a game."""

    game_id: int
    max_players: int
    participants: List[RosterParticipant]
    waitlist: List[RosterWaitlistEntry]
    stats: RosterStats


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


class Slot(BaseModel):
    """A conflict-free candidate reservation interval (UTC)."""

    start_time: datetime
    end_time: datetime
    duration_minutes: int
    cost: float


class ReservationSummary(BaseModel):
    """An active reservation overlapping the queried range."""

    model_config = ConfigDict(from_attributes=True)
    start_time: datetime
    end_time: datetime
    status: str


class CourtSummary(BaseModel):
    """Court fields shown alongside availability."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    hourly_rate: Optional[float] = None
    is_bookable: bool
    timezone: str


class AvailabilityResponse(BaseModel):
    """Ordered free slots plus the reservations that blocked the rest."""

    court: CourtSummary
    available_slots: List[Slot]
    existing_reservations: List[ReservationSummary]


class AvailabilityWindowResponse(BaseModel):
    """A recurring weekly availability window."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    court_id: int
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------


class ReservationResponse(BaseModel):
    """A court reservation."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    court_id: int
    user_id: Optional[int] = None
    game_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    status: str
    total_cost: float
    notes: Optional[str] = None

"""
Court configuration: bookability and recurring weekly availability windows.

Windows are local wall-clock times in the court's timezone with
day_of_week 0=Sunday..6=Saturday. A window must start before it ends on
the same day; windows that would wrap past midnight are rejected instead
of being interpreted.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import Court, CourtAvailability
from courtside.models.schemas import AvailabilityWindowResponse
from courtside.services.errors import ConflictError, NotFoundError, ValidationError
from courtside.services.locking import court_transaction, store_transaction
from courtside.utils.constants import DEFAULT_COURT_TIMEZONE
from courtside.utils.datetime_utils import get_timezone, parse_time_of_day
from courtside.utils.intervals import first_overlap

logger = logging.getLogger(__name__)


def validate_window(day_of_week: int, start_time: str, end_time: str):
    """
    Validate a weekly window definition.

    Returns:
        (start, end) as ``datetime.time``

    Raises:
        ValidationError: bad day, bad HH:MM, or start not strictly before end
    """
    if not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
        raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    try:
        start = parse_time_of_day(start_time)
        end = parse_time_of_day(end_time)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if not start < end:
        raise ValidationError(
            f"Availability window {start_time}-{end_time} must end after it starts "
            "(windows crossing midnight are not supported)"
        )
    return start, end


async def create_court(
    session: AsyncSession,
    name: str,
    hourly_rate: Optional[float] = None,
    is_bookable: bool = True,
    timezone: str = DEFAULT_COURT_TIMEZONE,
    address: Optional[str] = None,
) -> Court:
    """Create a court. Windows are added separately."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Court name cannot be empty")
    if hourly_rate is not None and hourly_rate < 0:
        raise ValidationError("hourly_rate cannot be negative")
    try:
        get_timezone(timezone)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    async with store_transaction(session, "create court"):
        court = Court(
            name=name,
            address=address,
            hourly_rate=hourly_rate,
            is_bookable=is_bookable,
            timezone=timezone,
        )
        session.add(court)
        await session.flush()
        logger.info(f"Created court {court.id} ({name})")

    return court


async def get_court(session: AsyncSession, court_id: int) -> Court:
    """Get a court by ID, raising NotFoundError if missing."""
    court = await session.get(Court, court_id, populate_existing=True)
    if court is None:
        raise NotFoundError(f"Court {court_id} not found")
    return court


async def get_active_windows(session: AsyncSession, court_id: int) -> List[CourtAvailability]:
    """Active windows for a court ordered by (day_of_week, start_time)."""
    result = await session.execute(
        select(CourtAvailability)
        .where(CourtAvailability.court_id == court_id, CourtAvailability.is_active.is_(True))
        .order_by(
            CourtAvailability.day_of_week,
            CourtAvailability.start_time,
            CourtAvailability.id,
        )
    )
    return list(result.scalars().all())


async def add_availability_window(
    session: AsyncSession,
    court_id: int,
    day_of_week: int,
    start_time: str,
    end_time: str,
) -> AvailabilityWindowResponse:
    """
    Add a recurring weekly window to a court.

    Raises:
        ValidationError: invalid window definition
        NotFoundError: court does not exist
        ConflictError: overlaps another active window on the same day
    """
    start, end = validate_window(day_of_week, start_time, end_time)

    async with court_transaction(session, court_id, "add availability window"):
        same_day = [
            w for w in await get_active_windows(session, court_id) if w.day_of_week == day_of_week
        ]
        clash = first_overlap(
            start,
            end,
            [(parse_time_of_day(w.start_time), parse_time_of_day(w.end_time)) for w in same_day],
        )
        if clash is not None:
            raise ConflictError(
                f"Window {start_time}-{end_time} overlaps existing window "
                f"{clash[0].strftime('%H:%M')}-{clash[1].strftime('%H:%M')}"
            )

        window = CourtAvailability(
            court_id=court_id,
            day_of_week=day_of_week,
            start_time=start.strftime("%H:%M"),
            end_time=end.strftime("%H:%M"),
            is_active=True,
        )
        session.add(window)
        await session.flush()
        response = AvailabilityWindowResponse.model_validate(window)

    logger.info(
        f"Added availability window {response.id} to court {court_id}: "
        f"day {day_of_week} {response.start_time}-{response.end_time}"
    )
    return response


async def list_availability_windows(
    session: AsyncSession, court_id: int
) -> List[AvailabilityWindowResponse]:
    """List a court's active windows ordered by day then start time."""
    await get_court(session, court_id)
    windows = await get_active_windows(session, court_id)
    return [AvailabilityWindowResponse.model_validate(w) for w in windows]


async def deactivate_availability_window(session: AsyncSession, window_id: int) -> Dict:
    """Deactivate a window so it no longer produces slots."""
    window = await session.get(CourtAvailability, window_id)
    if window is None:
        raise NotFoundError(f"Availability window {window_id} not found")

    async with court_transaction(session, window.court_id, "deactivate availability window"):
        window.is_active = False
        await session.flush()

    logger.info(f"Deactivated availability window {window_id}")
    return {"id": window_id, "is_active": False}

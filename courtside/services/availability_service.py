"""
Availability engine for bookable courts.

Free slots are derived from a court's recurring weekly windows: every
calendar day in the query range is matched against the windows for its
weekday, each window is cut into fixed-length slots (a trailing partial
slot is dropped), and any slot overlapping an active reservation is
removed. The result is advisory. Nothing is reserved, and a booking must
re-check for conflicts before it commits.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

import pytz

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import CourtAvailability, CourtReservation, ReservationStatus
from courtside.models.schemas import (
    AvailabilityResponse,
    CourtSummary,
    ReservationSummary,
    Slot,
)
from courtside.services import court_service
from courtside.services.errors import InternalError, ValidationError
from courtside.utils.constants import (
    ACTIVE_RESERVATION_STATUSES,
    MAX_AVAILABILITY_RANGE_DAYS,
    SLOT_MINUTES,
)
from courtside.utils.datetime_utils import (
    ensure_utc,
    get_timezone,
    localize,
    parse_date,
    parse_time_of_day,
    sunday_based_weekday,
)
from courtside.utils.intervals import first_overlap

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]


def resolve_date_range(
    date_value: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Tuple[date, date]:
    """
    Turn a single date or a [start_date, end_date) pair into a half-open day range.

    A single date wins when both forms are supplied.

    Raises:
        ValidationError: nothing supplied, unparseable dates, empty or oversized range
    """
    try:
        if date_value is not None:
            first_day = parse_date(date_value)
            return first_day, first_day + timedelta(days=1)
        if start_date is None or end_date is None:
            raise ValidationError("Date or date range required")
        first_day = parse_date(start_date)
        last_day = parse_date(end_date)
    except ValidationError:
        raise
    except ValueError as e:
        raise ValidationError(str(e)) from e

    if last_day <= first_day:
        raise ValidationError("end_date must be after start_date")
    if (last_day - first_day).days > MAX_AVAILABILITY_RANGE_DAYS:
        raise ValidationError(
            f"Date range cannot exceed {MAX_AVAILABILITY_RANGE_DAYS} days"
        )
    return first_day, last_day


def slot_cost(hourly_rate: Optional[float], duration_minutes: int) -> float:
    """Price a slot at the hourly rate, prorated by its length. No rate means free."""
    if not hourly_rate:
        return 0.0
    return round(hourly_rate * duration_minutes / 60, 2)


def build_slots(
    windows: Sequence[CourtAvailability],
    first_day: date,
    end_day: date,
    tz,
    reservations: Iterable[Interval],
    hourly_rate: Optional[float],
    slot_minutes: int = SLOT_MINUTES,
) -> List[Slot]:
    """
    Generate conflict-free slots for every day in [first_day, end_day).

    Pure function of its inputs: windows are interpreted as wall-clock times
    in ``tz``, reservations are (start, end) UTC datetimes, and the returned
    slots carry UTC datetimes sorted by start time.
    """
    step = timedelta(minutes=slot_minutes)
    busy = [(ensure_utc(start), ensure_utc(end)) for start, end in reservations]

    windows_by_day = {}
    for window in windows:
        windows_by_day.setdefault(window.day_of_week, []).append(
            (parse_time_of_day(window.start_time), parse_time_of_day(window.end_time))
        )

    slots = {}
    day = first_day
    while day < end_day:
        for window_start, window_end in sorted(windows_by_day.get(sunday_based_weekday(day), [])):
            if not window_start < window_end:
                logger.error(f"Invalid availability window {window_start}-{window_end} on day {day}")
                raise InternalError("Court has an invalid availability window")

            wall = datetime.combine(day, window_start)
            wall_end = datetime.combine(day, window_end)
            while wall + step <= wall_end:
                start = localize(tz, day, wall.time()).astimezone(pytz.UTC)
                next_wall = wall + step
                end = localize(tz, next_wall.date(), next_wall.time()).astimezone(pytz.UTC)
                wall = next_wall

                duration = int((end - start).total_seconds() // 60)
                if duration <= 0:
                    continue
                if first_overlap(start, end, busy) is not None:
                    continue
                slots[(start, end)] = Slot(
                    start_time=start,
                    end_time=end,
                    duration_minutes=duration,
                    cost=slot_cost(hourly_rate, duration),
                )
        day += timedelta(days=1)

    return [slots[key] for key in sorted(slots)]


async def get_active_reservations(
    session: AsyncSession, court_id: int, range_start: datetime, range_end: datetime
) -> List[CourtReservation]:
    """
    Active reservations overlapping [range_start, range_end), in one read.

    A single statement gives the caller one consistent view of the
    reservation table for the whole computation.
    """
    result = await session.execute(
        select(CourtReservation)
        .where(
            CourtReservation.court_id == court_id,
            CourtReservation.status.in_(
                [ReservationStatus(s) for s in ACTIVE_RESERVATION_STATUSES]
            ),
            CourtReservation.start_time < range_end,
            CourtReservation.end_time > range_start,
        )
        .order_by(CourtReservation.start_time.asc(), CourtReservation.id.asc())
    )
    return list(result.scalars().all())


async def compute_available_slots(
    session: AsyncSession,
    court_id: int,
    on_date: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> AvailabilityResponse:
    """
    Compute free slots for a court over a date or [start_date, end_date) range.

    Args:
        session: Database session
        court_id: Court to query
        on_date: Single calendar day (YYYY-MM-DD) in the court's timezone
        start_date: First day of a range (inclusive)
        end_date: Day after the last day of a range (exclusive)

    Returns:
        AvailabilityResponse with ordered slots and the active reservations
        overlapping the range

    Raises:
        ValidationError: missing/invalid range, or court not bookable
        NotFoundError: court does not exist
    """
    first_day, end_day = resolve_date_range(on_date, start_date, end_date)

    court = await court_service.get_court(session, court_id)
    if not court.is_bookable:
        raise ValidationError("Court is not available for booking")

    try:
        tz = get_timezone(court.timezone)
    except ValueError as e:
        raise InternalError(f"Court {court_id} has an invalid timezone") from e

    range_start = localize(tz, first_day, time(0, 0)).astimezone(pytz.UTC)
    range_end = localize(tz, end_day, time(0, 0)).astimezone(pytz.UTC)

    windows = await court_service.get_active_windows(session, court_id)
    reservations = await get_active_reservations(session, court_id, range_start, range_end)

    slots = build_slots(
        windows,
        first_day,
        end_day,
        tz,
        [(r.start_time, r.end_time) for r in reservations],
        court.hourly_rate,
    )

    logger.debug(
        f"Court {court_id}: {len(slots)} free slots between {first_day} and {end_day} "
        f"({len(reservations)} active reservations)"
    )

    return AvailabilityResponse(
        court=CourtSummary(
            id=court.id,
            name=court.name,
            hourly_rate=court.hourly_rate,
            is_bookable=court.is_bookable,
            timezone=court.timezone,
        ),
        available_slots=slots,
        existing_reservations=[
            ReservationSummary(
                start_time=ensure_utc(r.start_time),
                end_time=ensure_utc(r.end_time),
                status=r.status.value,
            )
            for r in reservations
        ],
    )

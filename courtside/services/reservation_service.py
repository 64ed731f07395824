"""
Court reservation service.

Bookings re-check conflicts under the court lock right before they are
written, because availability results are only advisory and two callers
can pick the same free slot.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import Court, CourtReservation, ReservationStatus
from courtside.models.schemas import ReservationResponse
from courtside.services.availability_service import get_active_reservations
from courtside.services.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from courtside.services.locking import court_transaction
from courtside.utils.datetime_utils import ensure_utc, utcnow
from courtside.utils.intervals import first_overlap

logger = logging.getLogger(__name__)


def _to_response(reservation: CourtReservation) -> ReservationResponse:
    return ReservationResponse(
        id=reservation.id,
        court_id=reservation.court_id,
        user_id=reservation.user_id,
        game_id=reservation.game_id,
        start_time=ensure_utc(reservation.start_time),
        end_time=ensure_utc(reservation.end_time),
        status=reservation.status.value,
        total_cost=reservation.total_cost,
        notes=reservation.notes,
    )


def calculate_total_cost(court: Court, start_time: datetime, end_time: datetime) -> float:
    """Hourly rate times booked hours; courts without a rate are free."""
    if not court.hourly_rate:
        return 0.0
    hours = (end_time - start_time).total_seconds() / 3600
    return round(court.hourly_rate * hours, 2)


async def create_reservation(
    session: AsyncSession,
    court_id: int,
    user_id: int,
    start_time: datetime,
    end_time: datetime,
    game_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> ReservationResponse:
    """
    Book a court for [start_time, end_time).

    Raises:
        ValidationError: empty/inverted interval, start in the past, or court not bookable
        NotFoundError: court does not exist
        ConflictError: the interval overlaps an active reservation
    """
    start_time = ensure_utc(start_time)
    end_time = ensure_utc(end_time)
    if not start_time < end_time:
        raise ValidationError("End time must be after start time")
    if start_time < utcnow():
        raise ValidationError("Cannot book court in the past")

    async with court_transaction(session, court_id, "create reservation") as court:
        if not court.is_bookable:
            raise ValidationError("Court is not available for booking")

        existing = await get_active_reservations(session, court_id, start_time, end_time)
        if first_overlap(
            start_time, end_time, [(ensure_utc(r.start_time), ensure_utc(r.end_time)) for r in existing]
        ):
            raise ConflictError("Court is already booked for this time slot")

        reservation = CourtReservation(
            court_id=court_id,
            user_id=user_id,
            game_id=game_id,
            start_time=start_time,
            end_time=end_time,
            total_cost=calculate_total_cost(court, start_time, end_time),
            notes=notes or None,
            status=ReservationStatus.CONFIRMED,  # No payment step, so bookings confirm immediately
        )
        session.add(reservation)
        await session.flush()
        response = _to_response(reservation)

    logger.info(
        f"User {user_id} booked court {court_id} "
        f"{response.start_time.isoformat()} - {response.end_time.isoformat()} (reservation {response.id})"
    )
    return response


async def cancel_reservation(
    session: AsyncSession, reservation_id: int, user_id: int
) -> ReservationResponse:
    """
    Cancel a reservation owned by ``user_id``; the slot becomes available again.

    Raises:
        NotFoundError: reservation does not exist
        AuthorizationError: caller does not own the reservation
        StateError: reservation is already cancelled
    """
    reservation = await session.get(CourtReservation, reservation_id)
    if reservation is None:
        raise NotFoundError(f"Reservation {reservation_id} not found")

    async with court_transaction(session, reservation.court_id, "cancel reservation"):
        await session.refresh(reservation)
        if reservation.user_id != user_id:
            raise AuthorizationError("Only the user who made the reservation can cancel it")
        if reservation.status == ReservationStatus.CANCELLED:
            raise StateError("Reservation is already cancelled")

        reservation.status = ReservationStatus.CANCELLED
        await session.flush()
        response = _to_response(reservation)

    logger.info(f"User {user_id} cancelled reservation {reservation_id}")
    return response


async def list_user_reservations(
    session: AsyncSession, court_id: int, user_id: int
) -> List[ReservationResponse]:
    """A user's reservations for a court, newest first."""
    result = await session.execute(
        select(CourtReservation)
        .where(CourtReservation.court_id == court_id, CourtReservation.user_id == user_id)
        .order_by(CourtReservation.start_time.desc())
    )
    return [_to_response(r) for r in result.scalars().all()]

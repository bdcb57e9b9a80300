"""Ride creation, reads, deletion/cancellation and archiving."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.models import Participant, Payment, Ride, RideStatus, User
from rideshare.models.ride import MAX_SEATS, MIN_SEATS
from rideshare.services.capacity_gate import count_active_participants, lock_ride
from rideshare.services.errors import NotRideCreator, RideNotFound, UserNotFound, ValidationFailed
from rideshare.services.participation import ENGAGED, ParticipantEvent, apply_event

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"


@dataclass
class RideDetails:
    ride: Ride
    places_taken: int

    @property
    def available_seats(self) -> int:
        return max(self.ride.total_seats - self.places_taken, 0)


def _required_text(data: Dict[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailed(f"{field} is required")
    return value.strip()


def _optional_coordinate(data: Dict[str, Any], field: str, limit: float) -> Optional[float]:
    value = data.get(field)
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be a number") from None
    if not -limit <= value <= limit:
        raise ValidationFailed(f"{field} is out of range")
    return value


def parse_departure(raw_date: Any, raw_time: Any) -> Tuple[date, time]:
    if isinstance(raw_date, date):
        departure_date = raw_date
    else:
        try:
            departure_date = datetime.strptime(str(raw_date), DATE_FORMAT).date()
        except ValueError:
            raise ValidationFailed("departure_date must be YYYY-MM-DD") from None
    if isinstance(raw_time, time):
        departure_time = raw_time
    else:
        try:
            departure_time = datetime.strptime(str(raw_time), TIME_FORMAT).time()
        except ValueError:
            raise ValidationFailed("departure_time must be HH:MM") from None
    return departure_date, departure_time


def validate_ride_data(data: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Check and normalise a create-ride payload; raises ``ValidationFailed``."""
    seats = data.get("total_seats")
    if isinstance(seats, bool) or not isinstance(seats, int):
        raise ValidationFailed("total_seats must be an integer")
    if not MIN_SEATS <= seats <= MAX_SEATS:
        raise ValidationFailed(f"total_seats must be between {MIN_SEATS} and {MAX_SEATS}")

    departure_date, departure_time = parse_departure(
        data.get("departure_date"), data.get("departure_time")
    )
    now = now or datetime.now()
    if datetime.combine(departure_date, departure_time) <= now:
        raise ValidationFailed("departure must be in the future")

    return {
        "departure_location_name": _required_text(data, "departure_location_name"),
        "departure_lat": _optional_coordinate(data, "departure_lat", 90),
        "departure_lng": _optional_coordinate(data, "departure_lng", 180),
        "arrival_location_name": _required_text(data, "arrival_location_name"),
        "arrival_lat": _optional_coordinate(data, "arrival_lat", 90),
        "arrival_lng": _optional_coordinate(data, "arrival_lng", 180),
        "departure_date": departure_date,
        "departure_time": departure_time,
        "total_seats": seats,
    }


async def create_ride(db: AsyncSession, user_id: str, data: Dict[str, Any]) -> Ride:
    fields = validate_ride_data(data)
    async with db.begin():
        if await db.get(User, user_id) is None:
            raise UserNotFound()
        ride = Ride(user_id=user_id, status=RideStatus.ACTIVE, **fields)
        db.add(ride)
        await db.flush()
    logger.info(
        "Ride %s created by user %s (%s seats, departs %s)",
        ride.id,
        user_id,
        ride.total_seats,
        ride.departs_at.isoformat(),
    )
    return ride


async def get_ride(db: AsyncSession, ride_id: str) -> Ride:
    async with db.begin():
        ride = await db.get(Ride, ride_id)
    if ride is None:
        raise RideNotFound()
    return ride


async def get_ride_details(db: AsyncSession, ride_id: str) -> RideDetails:
    async with db.begin():
        ride = await db.get(Ride, ride_id)
        if ride is None:
            raise RideNotFound()
        taken = await count_active_participants(db, ride_id)
    return RideDetails(ride=ride, places_taken=taken)


async def delete_or_cancel(db: AsyncSession, ride_id: str, requester_id: str) -> bool:
    """Delete a ride nobody is engaged in, otherwise cancel it.

    Returns ``True`` when the ride was cancelled. Cancellation leaves payments
    untouched (no refunds); a hard delete removes the residual participant and
    payment rows with the ride.
    """
    async with db.begin():
        ride = await lock_ride(db, ride_id)
        if ride is None:
            raise RideNotFound()
        if ride.user_id != requester_id:
            logger.info("Delete refused: user %s is not the creator of ride %s", requester_id, ride_id)
            raise NotRideCreator()

        result = await db.execute(
            select(func.count(Participant.id)).where(
                Participant.ride_id == ride_id,
                Participant.status.in_(ENGAGED),
            )
        )
        engaged = result.scalar_one()

        if engaged == 0:
            await db.execute(
                delete(Payment)
                .where(Payment.ride_id == ride_id)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                delete(Participant)
                .where(Participant.ride_id == ride_id)
                .execution_options(synchronize_session=False)
            )
            await db.delete(ride)
            cancelled = False
        else:
            ride.status = RideStatus.CANCELLED
            moved = await apply_event(db, ParticipantEvent.RIDE_CANCELLED, Participant.ride_id == ride_id)
            cancelled = True

    if cancelled:
        logger.info("Ride %s cancelled by creator; %s participants moved to cancelled_ride", ride_id, moved)
    else:
        logger.info("Ride %s deleted by creator %s", ride_id, requester_id)
    return cancelled


async def archive_past_rides(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Flip ``active`` rides whose departure has passed to ``archived``."""
    now = now or datetime.now()
    async with db.begin():
        result = await db.execute(
            select(Ride).where(
                Ride.status == RideStatus.ACTIVE,
                Ride.departure_date <= now.date(),
            )
        )
        archived = 0
        for ride in result.scalars().all():
            if ride.departs_at <= now:
                ride.status = RideStatus.ARCHIVED
                archived += 1
    logger.info("Archived %s past rides", archived)
    return archived

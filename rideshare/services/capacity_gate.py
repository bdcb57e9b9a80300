"""Seat check for a join attempt.

The ride row is the only lock taken for capacity decisions. Whoever holds it
sees a participant count no concurrent joiner can change until the holder's
transaction commits or rolls back, so the check and the caller's write are
atomic with respect to other joiners. Capacity is never stored: it is the
number of ``active`` participant rows, counted under the lock.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.models import Participant, ParticipantStatus, Ride, RideStatus
from rideshare.services.errors import RideFull, RideNotActive, RideNotFound, SelfJoin

logger = logging.getLogger(__name__)


async def lock_ride(db: AsyncSession, ride_id: str):
    """``SELECT ... FOR UPDATE`` the ride; ``None`` if it does not exist."""
    result = await db.execute(
        select(Ride)
        .where(Ride.id == ride_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def count_active_participants(db: AsyncSession, ride_id: str) -> int:
    result = await db.execute(
        select(func.count(Participant.id)).where(
            Participant.ride_id == ride_id,
            Participant.status == ParticipantStatus.ACTIVE,
        )
    )
    return result.scalar_one()


async def attempt_reservation(db: AsyncSession, ride_id: str, user_id: str) -> Ride:
    """Lock the ride and check it can take ``user_id``.

    Must run inside the caller's transaction; the lock is held until that
    transaction ends. The caller writes the participant row before committing.
    """
    ride = await lock_ride(db, ride_id)
    if ride is None:
        logger.info("Join rejected: ride %s not found (user %s)", ride_id, user_id)
        raise RideNotFound()

    if ride.status != RideStatus.ACTIVE:
        logger.info(
            "Join rejected: ride %s is not active (status %s, user %s)",
            ride_id,
            ride.status.value,
            user_id,
        )
        raise RideNotActive()

    taken = await count_active_participants(db, ride_id)
    if taken >= ride.total_seats:
        logger.info(
            "Join rejected: ride %s is full (%s/%s seats taken, user %s)",
            ride_id,
            taken,
            ride.total_seats,
            user_id,
        )
        raise RideFull()

    if ride.user_id == user_id:
        logger.info("Join rejected: user %s is the creator of ride %s", user_id, ride_id)
        raise SelfJoin()

    return ride

"""Participation lifecycle: joining, leaving, status and contact reads.

Every status change goes through ``TRANSITIONS``. Joins use one primitive,
:func:`reserve`, parameterised by a settlement strategy, so the manual and the
automatic flow share the capacity check and the duplicate-join rules.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.models import Participant, ParticipantStatus, Ride, User
from rideshare.services.capacity_gate import attempt_reservation
from rideshare.services.errors import (
    AlreadyParticipating,
    ContactsForbidden,
    InvalidTransition,
    NotParticipating,
    RideNotFound,
)

logger = logging.getLogger(__name__)

NOT_PARTICIPANT = "not_participant"


class ParticipantEvent(str, enum.Enum):
    JOIN_DEFERRED = "join_deferred"
    JOIN_SETTLED = "join_settled"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    LEAVE = "leave"
    RIDE_CANCELLED = "ride_cancelled"


S = ParticipantStatus
E = ParticipantEvent

# (current status, or None when there is no row) x event -> next status
TRANSITIONS: Dict[Tuple[Optional[ParticipantStatus], ParticipantEvent], ParticipantStatus] = {
    (None, E.JOIN_DEFERRED): S.PENDING_PAYMENT,
    (None, E.JOIN_SETTLED): S.ACTIVE,
    (S.LEFT, E.JOIN_DEFERRED): S.PENDING_PAYMENT,
    (S.LEFT, E.JOIN_SETTLED): S.ACTIVE,
    (S.PENDING_PAYMENT, E.PAYMENT_SUCCEEDED): S.ACTIVE,
    # Failed charge keeps the row so the user can pay again
    (S.PENDING_PAYMENT, E.PAYMENT_FAILED): S.PENDING_PAYMENT,
    (S.PENDING_PAYMENT, E.LEAVE): S.LEFT,
    (S.ACTIVE, E.LEAVE): S.LEFT,
    (S.PENDING_PAYMENT, E.RIDE_CANCELLED): S.CANCELLED_RIDE,
    (S.ACTIVE, E.RIDE_CANCELLED): S.CANCELLED_RIDE,
}

# Rows in these states block a new join on the same ride
ENGAGED = (S.PENDING_PAYMENT, S.ACTIVE)


def next_status(current: Optional[ParticipantStatus], event: ParticipantEvent) -> ParticipantStatus:
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransition(current, event) from None


def sources_for(event: ParticipantEvent) -> Tuple[ParticipantStatus, ...]:
    """Existing-row statuses from which ``event`` is allowed."""
    return tuple(
        current for (current, ev) in TRANSITIONS if ev == event and current is not None
    )


def target_for(event: ParticipantEvent) -> ParticipantStatus:
    targets = {
        target for (current, ev), target in TRANSITIONS.items()
        if ev == event and current is not None
    }
    if len(targets) != 1:
        raise ValueError(f"{event.value} has no single target status: {targets}")
    return targets.pop()


async def apply_event(db: AsyncSession, event: ParticipantEvent, *criteria) -> int:
    """Conditionally move matching rows; returns how many actually changed.

    The status guard is part of the UPDATE, so a concurrent or replayed
    request that lost the race updates nothing.
    """
    result = await db.execute(
        update(Participant)
        .where(*criteria, Participant.status.in_(sources_for(event)))
        .values(status=target_for(event), updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def find_participant(db: AsyncSession, ride_id: str, user_id: str) -> Optional[Participant]:
    result = await db.execute(
        select(Participant).filter_by(ride_id=ride_id, user_id=user_id)
    )
    return result.scalars().first()


class DeferredSettlement:
    """Manual flow: the row waits in ``pending_payment`` for the webhook."""

    event = ParticipantEvent.JOIN_DEFERRED

    async def prepare(self, db: AsyncSession, ride: Ride, user_id: str) -> None:
        return None

    async def settle(self, db: AsyncSession, ride: Ride, participant: Participant) -> None:
        logger.info(
            "Participant %s on ride %s awaits payment", participant.id, ride.id
        )


async def reserve(db: AsyncSession, ride_id: str, user_id: str, settlement) -> Participant:
    """Reserve a place on ``ride_id`` for ``user_id`` and settle it.

    Runs inside the caller's transaction. ``settlement`` provides ``event``
    (the join event to apply), ``prepare`` (checks that must pass before any
    write) and ``settle`` (runs after the participant row is written; raising
    there rolls the whole reservation back).
    """
    ride = await attempt_reservation(db, ride_id, user_id)

    participant = await find_participant(db, ride_id, user_id)
    current = participant.status if participant is not None else None
    if current in ENGAGED:
        logger.info(
            "Join rejected: user %s already on ride %s with status %s",
            user_id,
            ride_id,
            current.value,
        )
        raise AlreadyParticipating()

    target = next_status(current, settlement.event)
    await settlement.prepare(db, ride, user_id)

    if participant is None:
        participant = Participant(ride_id=ride_id, user_id=user_id, status=target)
        db.add(participant)
    else:
        logger.info(
            "User %s rejoins ride %s (participant %s, %s -> %s)",
            user_id,
            ride_id,
            participant.id,
            current.value,
            target.value,
        )
        participant.status = target

    try:
        await db.flush()
    except IntegrityError as exc:
        logger.info("Join rejected: duplicate participation for user %s on ride %s", user_id, ride_id)
        raise AlreadyParticipating() from exc

    await settlement.settle(db, ride, participant)
    return participant


async def join_ride(db: AsyncSession, ride_id: str, user_id: str) -> Participant:
    """Manual-pay join: ``(none|left) -> pending_payment``."""
    async with db.begin():
        participant = await reserve(db, ride_id, user_id, DeferredSettlement())
    logger.info(
        "User %s joined ride %s (participant %s, status %s)",
        user_id,
        ride_id,
        participant.id,
        participant.status.value,
    )
    return participant


async def leave_ride(db: AsyncSession, ride_id: str, user_id: str) -> None:
    async with db.begin():
        changed = await apply_event(
            db,
            ParticipantEvent.LEAVE,
            Participant.ride_id == ride_id,
            Participant.user_id == user_id,
        )
        if changed == 0:
            logger.info("Leave rejected: user %s is not engaged on ride %s", user_id, ride_id)
            raise NotParticipating()
    logger.info("User %s left ride %s", user_id, ride_id)


async def get_participation_status(db: AsyncSession, ride_id: str, user_id: str) -> str:
    async with db.begin():
        ride = await db.get(Ride, ride_id)
        if ride is None:
            raise RideNotFound()
        participant = await find_participant(db, ride_id, user_id)
    if participant is None:
        return NOT_PARTICIPANT
    return participant.status.value


@dataclass
class ContactInfo:
    user_id: str
    first_name: Optional[str]
    last_name: Optional[str]
    phone: str
    is_creator: bool


async def get_ride_contacts(db: AsyncSession, ride_id: str, requester_id: str) -> List[ContactInfo]:
    """Creator and active participants' contact handles.

    Only the creator and ``active`` participants may read them. Leaving or a
    cancelled ride hides the handles from later reads.
    """
    async with db.begin():
        ride = await db.get(Ride, ride_id)
        if ride is None:
            raise RideNotFound()

        is_creator = ride.user_id == requester_id
        if not is_creator:
            participant = await find_participant(db, ride_id, requester_id)
            if participant is None or participant.status != ParticipantStatus.ACTIVE:
                logger.info(
                    "Contacts refused for user %s on ride %s (status %s)",
                    requester_id,
                    ride_id,
                    participant.status.value if participant else NOT_PARTICIPANT,
                )
                raise ContactsForbidden()

        creator = await db.get(User, ride.user_id)
        result = await db.execute(
            select(User)
            .join(Participant, Participant.user_id == User.id)
            .where(
                Participant.ride_id == ride_id,
                Participant.status == ParticipantStatus.ACTIVE,
            )
            .order_by(Participant.created_at)
        )
        members = result.scalars().all()

    contacts = []
    if creator is not None:
        contacts.append(
            ContactInfo(creator.id, creator.first_name, creator.last_name, creator.phone, True)
        )
    for user in members:
        contacts.append(ContactInfo(user.id, user.first_name, user.last_name, user.phone, False))

    logger.info("Disclosed %s contacts on ride %s to user %s", len(contacts), ride_id, requester_id)
    return contacts

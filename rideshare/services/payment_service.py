"""Charging for a seat: manual intents, automatic joins and card setup."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.config import Settings
from rideshare.models import (
    Participant,
    ParticipantStatus,
    Payment,
    PaymentStatus,
    Ride,
    RideStatus,
    User,
)
from rideshare.services.capacity_gate import count_active_participants, lock_ride
from rideshare.services.errors import (
    NoPaymentMethod,
    PaymentDeclined,
    PaymentGatewayError,
    PaymentNotAllowed,
    RideFull,
    RideNotActive,
    RideNotFound,
    UserNotFound,
)
from rideshare.services.participation import ParticipantEvent, find_participant, reserve

logger = logging.getLogger(__name__)

PURPOSE_JOIN = "join"
PURPOSE_SETUP = "setup"


@dataclass
class PaymentIntentHandle:
    client_handle: str
    payment_id: str
    intent_id: str
    amount: int
    currency: str


@dataclass
class SetupHandle:
    client_handle: str
    intent_id: str


def _charge_metadata(payment_id: str, user_id: str, ride_id: str, participant_id: str) -> dict:
    return {
        "purpose": PURPOSE_JOIN,
        "payment_id": payment_id,
        "user_id": user_id,
        "ride_id": ride_id,
        "participant_id": participant_id,
    }


async def create_payment_intent(
    db: AsyncSession, gateway, settings: Settings, ride_id: str, user_id: str
) -> PaymentIntentHandle:
    """Manual flow: issue a charge the client confirms, record it as ``pending``.

    Only the webhook ever marks the payment succeeded.
    """
    async with db.begin():
        ride = await lock_ride(db, ride_id)
        if ride is None:
            raise RideNotFound()
        participant = await find_participant(db, ride_id, user_id)
        if participant is None or participant.status != ParticipantStatus.PENDING_PAYMENT:
            logger.info(
                "Payment intent refused: user %s on ride %s has status %s",
                user_id,
                ride_id,
                participant.status.value if participant else "not_participant",
            )
            raise PaymentNotAllowed()
        # Paying for a seat that no longer exists would need a refund
        if ride.status != RideStatus.ACTIVE:
            raise RideNotActive()
        if await count_active_participants(db, ride_id) >= ride.total_seats:
            logger.info("Payment intent refused: ride %s filled up before user %s paid", ride_id, user_id)
            raise RideFull()
        result = await db.execute(
            select(Payment.intent_id).where(
                Payment.participant_id == participant.id,
                Payment.status == PaymentStatus.PENDING,
            )
        )
        open_intent = result.scalars().first()
        if open_intent is not None:
            logger.info(
                "Payment intent refused: intent %s for user %s on ride %s is still pending",
                open_intent,
                user_id,
                ride_id,
            )
            raise PaymentNotAllowed("a payment for this seat is already pending")
        participant_id = participant.id

    payment_id = str(uuid.uuid4())
    charge = await gateway.create_charge(
        settings.join_fee_minor,
        settings.currency,
        _charge_metadata(payment_id, user_id, ride_id, participant_id),
        idempotence_key=payment_id,
    )

    try:
        async with db.begin():
            db.add(
                Payment(
                    id=payment_id,
                    user_id=user_id,
                    ride_id=ride_id,
                    participant_id=participant_id,
                    intent_id=charge.intent_id,
                    status=PaymentStatus.PENDING,
                    amount=settings.join_fee_minor,
                    currency=settings.currency,
                )
            )
    except SQLAlchemyError:
        logger.exception(
            "Charge %s issued for user %s on ride %s but its payment row was not saved",
            charge.intent_id,
            user_id,
            ride_id,
        )
        raise

    logger.info(
        "Payment %s (intent %s) pending for user %s on ride %s",
        payment_id,
        charge.intent_id,
        user_id,
        ride_id,
    )
    return PaymentIntentHandle(
        client_handle=charge.client_handle,
        payment_id=payment_id,
        intent_id=charge.intent_id,
        amount=settings.join_fee_minor,
        currency=settings.currency,
    )


class ImmediateSettlement:
    """Automatic flow: charge the saved method now, inside the join transaction.

    Anything but an immediately succeeded charge raises, which rolls the
    participant write back with it.
    """

    event = ParticipantEvent.JOIN_SETTLED

    def __init__(self, gateway, settings: Settings):
        self.gateway = gateway
        self.settings = settings
        self.payment_method_id = None
        self.charge = None

    async def prepare(self, db: AsyncSession, ride: Ride, user_id: str) -> None:
        user = await db.get(User, user_id)
        if user is None:
            raise UserNotFound()
        if not user.payment_method_id:
            logger.info("Automatic join refused: user %s has no saved payment method", user_id)
            raise NoPaymentMethod()
        self.payment_method_id = user.payment_method_id

    async def settle(self, db: AsyncSession, ride: Ride, participant: Participant) -> None:
        payment_id = str(uuid.uuid4())
        try:
            charge = await self.gateway.charge_saved_method(
                self.settings.join_fee_minor,
                self.settings.currency,
                self.payment_method_id,
                _charge_metadata(payment_id, participant.user_id, ride.id, participant.id),
                idempotence_key=payment_id,
            )
        except PaymentGatewayError as exc:
            logger.warning(
                "Automatic charge for user %s on ride %s failed at the gateway: %s",
                participant.user_id,
                ride.id,
                exc.message,
            )
            raise PaymentDeclined() from exc
        if not charge.succeeded:
            logger.info(
                "Automatic charge %s for user %s on ride %s ended as %s (%s)",
                charge.intent_id,
                participant.user_id,
                ride.id,
                charge.status,
                charge.failure_reason,
            )
            raise PaymentDeclined()

        self.charge = charge
        db.add(
            Payment(
                id=payment_id,
                user_id=participant.user_id,
                ride_id=ride.id,
                participant_id=participant.id,
                intent_id=charge.intent_id,
                status=PaymentStatus.SUCCEEDED,
                amount=self.settings.join_fee_minor,
                currency=self.settings.currency,
                processed_at=datetime.utcnow(),
            )
        )
        await db.flush()


async def join_and_charge_automatically(
    db: AsyncSession, gateway, settings: Settings, ride_id: str, user_id: str
) -> Participant:
    settlement = ImmediateSettlement(gateway, settings)
    try:
        async with db.begin():
            participant = await reserve(db, ride_id, user_id, settlement)
    except SQLAlchemyError:
        if settlement.charge is not None:
            logger.critical(
                "Charge %s succeeded for user %s on ride %s but the join was rolled back",
                settlement.charge.intent_id,
                user_id,
                ride_id,
            )
        raise

    logger.info(
        "Automatic join: user %s active on ride %s (intent %s)",
        user_id,
        ride_id,
        settlement.charge.intent_id,
    )
    return participant


async def create_payment_setup(
    db: AsyncSession, gateway, settings: Settings, user_id: str
) -> SetupHandle:
    """Start saving a card; the webhook stores the method once it is authorised."""
    async with db.begin():
        user = await db.get(User, user_id)
        if user is None:
            raise UserNotFound()

    key = str(uuid.uuid4())
    charge = await gateway.create_setup(
        settings.setup_amount_minor,
        settings.currency,
        {"purpose": PURPOSE_SETUP, "user_id": user_id},
        idempotence_key=key,
    )
    logger.info("Card setup %s started for user %s", charge.intent_id, user_id)
    return SetupHandle(client_handle=charge.client_handle, intent_id=charge.intent_id)

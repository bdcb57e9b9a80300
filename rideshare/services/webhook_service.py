"""Reconcile processor notifications with local payments and participants.

Notifications may arrive more than once, out of order, or long after the
client gave up. Every write here is a guarded update, so a replay changes
nothing and reports zero rows.
"""

import hashlib
import hmac
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.models import Participant, ParticipantStatus, Payment, PaymentStatus, Ride, RideStatus, User
from rideshare.services.capacity_gate import count_active_participants, lock_ride
from rideshare.services.errors import (
    MalformedEvent,
    PaymentGatewayError,
    WebhookProcessingFailed,
    WebhookSignatureInvalid,
)
from rideshare.services.participation import ParticipantEvent, apply_event
from rideshare.services.payment_service import PURPOSE_SETUP

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"

EVENT_SUCCEEDED = "payment.succeeded"
EVENT_CANCELED = "payment.canceled"
EVENT_WAITING_FOR_CAPTURE = "payment.waiting_for_capture"

ACTION_CHARGE_SUCCEEDED = "charge_succeeded"
ACTION_CHARGE_FAILED = "charge_failed"
ACTION_PAID_WITHOUT_SEAT = "paid_without_seat"
ACTION_SETUP_SUCCEEDED = "setup_succeeded"
ACTION_IGNORED = "ignored"
ACTION_UNKNOWN_INTENT = "unknown_intent"


@dataclass
class WebhookOutcome:
    event: str
    intent_id: Optional[str]
    action: str
    payment_updated: int = 0
    participant_updated: int = 0


def sign_payload(secret: str, raw_payload: bytes) -> str:
    return hmac.new(secret.encode(), raw_payload, hashlib.sha256).hexdigest()


def verify_signature(secret: str, raw_payload: bytes, signature: Optional[str]) -> None:
    if not secret:
        logger.warning("Webhook rejected: PAYMENT_WEBHOOK_SECRET is not configured")
        raise WebhookSignatureInvalid()
    if not signature:
        logger.warning("Webhook rejected: missing %s header", SIGNATURE_HEADER)
        raise WebhookSignatureInvalid()

    provided = signature.strip()
    if provided.startswith("sha256="):
        provided = provided[len("sha256="):]
    expected = sign_payload(secret, raw_payload)
    if not provided.isascii() or not hmac.compare_digest(expected, provided.lower()):
        logger.warning("Webhook rejected: signature mismatch")
        raise WebhookSignatureInvalid()


def parse_event(raw_payload: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(raw_payload)
    except (TypeError, ValueError) as exc:
        raise MalformedEvent("webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise MalformedEvent()

    event = payload.get("event")
    obj = payload.get("object") or {}
    if not event or not isinstance(obj, dict) or not obj.get("id"):
        raise MalformedEvent("webhook body has no event or object id")
    return payload


async def _lock_payment(db: AsyncSession, intent_id: str) -> Optional[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.intent_id == intent_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _mark_payment(db: AsyncSession, payment: Payment, status: PaymentStatus) -> int:
    result = await db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
        .values(status=status, processed_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def _has_free_seat(db: AsyncSession, ride: Optional[Ride]) -> bool:
    if ride is None or ride.status != RideStatus.ACTIVE:
        return False
    return await count_active_participants(db, ride.id) < ride.total_seats


async def _charge_succeeded(db: AsyncSession, event: str, intent_id: str) -> WebhookOutcome:
    async with db.begin():
        result = await db.execute(select(Payment.ride_id).where(Payment.intent_id == intent_id))
        ride_id = result.scalar_one_or_none()
        # Ride before payment: joins and cancellation lock in the same order
        ride = await lock_ride(db, ride_id) if ride_id else None
        payment = await _lock_payment(db, intent_id)
        if payment is None:
            logger.warning("Webhook %s for unknown intent %s acknowledged", event, intent_id)
            return WebhookOutcome(event, intent_id, ACTION_UNKNOWN_INTENT)

        payment_updated = await _mark_payment(db, payment, PaymentStatus.SUCCEEDED)
        succeeded = payment_updated == 1 or payment.status == PaymentStatus.SUCCEEDED
        action = ACTION_CHARGE_SUCCEEDED
        participant_updated = 0
        # A payment already marked failed never activates anyone
        if succeeded and payment.participant_id is not None:
            participant = await db.get(Participant, payment.participant_id, populate_existing=True)
            awaiting = participant is not None and participant.status == ParticipantStatus.PENDING_PAYMENT
            if awaiting and not await _has_free_seat(db, ride):
                action = ACTION_PAID_WITHOUT_SEAT
            else:
                participant_updated = await apply_event(
                    db,
                    ParticipantEvent.PAYMENT_SUCCEEDED,
                    Participant.id == payment.participant_id,
                )

    if action == ACTION_PAID_WITHOUT_SEAT:
        logger.error(
            "Intent %s succeeded but ride %s has no free seat; participant %s stays awaiting payment, "
            "payment %s needs manual reconciliation",
            intent_id,
            payment.ride_id,
            payment.participant_id,
            payment.id,
        )
        return WebhookOutcome(event, intent_id, action, payment_updated, participant_updated)

    logger.info(
        "Intent %s succeeded: payment %s (%s rows), participant %s (%s rows)",
        intent_id,
        payment.id,
        payment_updated,
        payment.participant_id,
        participant_updated,
    )
    return WebhookOutcome(event, intent_id, ACTION_CHARGE_SUCCEEDED, payment_updated, participant_updated)


async def _charge_failed(db: AsyncSession, event: str, intent_id: str, reason: Optional[str]) -> WebhookOutcome:
    async with db.begin():
        payment = await _lock_payment(db, intent_id)
        if payment is None:
            logger.warning("Webhook %s for unknown intent %s acknowledged", event, intent_id)
            return WebhookOutcome(event, intent_id, ACTION_UNKNOWN_INTENT)
        payment_updated = await _mark_payment(db, payment, PaymentStatus.FAILED)

    logger.info(
        "Intent %s failed (%s): payment %s (%s rows); participant left awaiting payment",
        intent_id,
        reason,
        payment.id,
        payment_updated,
    )
    return WebhookOutcome(event, intent_id, ACTION_CHARGE_FAILED, payment_updated)


async def _setup_succeeded(db: AsyncSession, gateway, event: str, obj: Dict[str, Any]) -> WebhookOutcome:
    intent_id = obj["id"]
    meta = obj.get("metadata") or {}
    method = obj.get("payment_method") or {}
    user_id = meta.get("user_id")
    method_id = method.get("id")

    updated = 0
    if not user_id or not method_id or not method.get("saved"):
        logger.warning(
            "Setup %s did not save a payment method (user %s, saved=%s)",
            intent_id,
            user_id,
            method.get("saved"),
        )
    else:
        async with db.begin():
            result = await db.execute(
                update(User)
                .where(
                    User.id == user_id,
                    or_(User.payment_method_id.is_(None), User.payment_method_id != method_id),
                )
                .values(payment_method_id=method_id)
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount
        logger.info("Setup %s: payment method stored for user %s (%s rows)", intent_id, user_id, updated)

    # Release the verification hold
    await gateway.cancel(intent_id, idempotence_key=str(uuid.uuid5(uuid.NAMESPACE_URL, intent_id)))
    return WebhookOutcome(event, intent_id, ACTION_SETUP_SUCCEEDED)


async def handle_payment_event(
    db: AsyncSession,
    gateway,
    secret: str,
    raw_payload: bytes,
    signature: Optional[str],
) -> WebhookOutcome:
    """Verify, classify and apply one notification.

    Raises ``WebhookSignatureInvalid`` / ``MalformedEvent`` for requests that
    must not be retried and ``WebhookProcessingFailed`` for failures the
    processor should retry.
    """
    verify_signature(secret, raw_payload, signature)
    payload = parse_event(raw_payload)

    event = payload["event"]
    obj = payload["object"]
    intent_id = obj["id"]
    meta = obj.get("metadata") or {}
    logger.info("Webhook %s received for intent %s", event, intent_id)

    try:
        if event == EVENT_SUCCEEDED:
            return await _charge_succeeded(db, event, intent_id)
        if event == EVENT_CANCELED:
            reason = (obj.get("cancellation_details") or {}).get("reason")
            return await _charge_failed(db, event, intent_id, reason)
        if event == EVENT_WAITING_FOR_CAPTURE and meta.get("purpose") == PURPOSE_SETUP:
            return await _setup_succeeded(db, gateway, event, obj)
    except (SQLAlchemyError, PaymentGatewayError) as exc:
        logger.exception("Webhook %s for intent %s could not be applied", event, intent_id)
        raise WebhookProcessingFailed() from exc

    logger.info("Webhook %s for intent %s ignored", event, intent_id)
    return WebhookOutcome(event, intent_id, ACTION_IGNORED)

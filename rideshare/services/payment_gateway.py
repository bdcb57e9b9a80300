"""Thin async wrapper over the YooKassa SDK.

The SDK is synchronous, so every call runs in a worker thread. Services only
see :class:`ChargeResult` and :class:`PaymentGatewayError`, which lets tests
swap the gateway for a fake object.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from yookassa import Configuration, Payment

from rideshare.services.errors import PaymentGatewayError

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"
PENDING = "pending"
WAITING_FOR_CAPTURE = "waiting_for_capture"
CANCELED = "canceled"


def format_amount(amount_minor: int) -> str:
    """200 -> ``"2.00"``; the processor expects a decimal string."""
    return f"{amount_minor // 100}.{amount_minor % 100:02d}"


@dataclass
class ChargeResult:
    intent_id: str
    status: str
    client_handle: Optional[str] = None
    payment_method_id: Optional[str] = None
    failure_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED


def _to_result(payment) -> ChargeResult:
    confirmation = getattr(payment, "confirmation", None)
    method = getattr(payment, "payment_method", None)
    cancellation = getattr(payment, "cancellation_details", None)
    return ChargeResult(
        intent_id=payment.id,
        status=payment.status,
        client_handle=getattr(confirmation, "confirmation_token", None),
        payment_method_id=getattr(method, "id", None),
        failure_reason=getattr(cancellation, "reason", None),
    )


class PaymentGateway:
    def __init__(self, shop_id: str, secret_key: str):
        self.shop_id = shop_id
        self.secret_key = secret_key

    def _configure_or_raise(self) -> None:
        if not self.shop_id or not self.secret_key:
            raise PaymentGatewayError(
                "YOOKASSA credentials are not configured "
                "(set YOOKASSA_SHOP_ID and YOOKASSA_SECRET_KEY)."
            )
        Configuration.account_id = self.shop_id
        Configuration.secret_key = self.secret_key

    async def _create(self, params: Dict[str, Any], idempotence_key: str) -> ChargeResult:
        self._configure_or_raise()
        try:
            payment = await asyncio.to_thread(Payment.create, params, idempotence_key)
        except Exception as exc:
            logger.exception("YooKassa Payment.create failed (key %s)", idempotence_key)
            raise PaymentGatewayError(f"payment provider error: {exc}") from exc
        result = _to_result(payment)
        logger.info("YooKassa payment %s created with status %s", result.intent_id, result.status)
        return result

    async def create_charge(
        self, amount_minor: int, currency: str, metadata: Dict[str, str], idempotence_key: str
    ) -> ChargeResult:
        """Charge the client confirms in the embedded widget."""
        return await self._create(
            {
                "amount": {"value": format_amount(amount_minor), "currency": currency},
                "confirmation": {"type": "embedded"},
                "capture": True,
                "description": f"Ride seat {metadata.get('ride_id', '')}",
                "metadata": metadata,
            },
            idempotence_key,
        )

    async def charge_saved_method(
        self,
        amount_minor: int,
        currency: str,
        payment_method_id: str,
        metadata: Dict[str, str],
        idempotence_key: str,
    ) -> ChargeResult:
        """Off-session charge; no confirmation step is offered to the user."""
        return await self._create(
            {
                "amount": {"value": format_amount(amount_minor), "currency": currency},
                "payment_method_id": payment_method_id,
                "capture": True,
                "description": f"Ride seat {metadata.get('ride_id', '')}",
                "metadata": metadata,
            },
            idempotence_key,
        )

    async def create_setup(
        self, amount_minor: int, currency: str, metadata: Dict[str, str], idempotence_key: str
    ) -> ChargeResult:
        """Authorise-only payment that asks the processor to save the card."""
        return await self._create(
            {
                "amount": {"value": format_amount(amount_minor), "currency": currency},
                "confirmation": {"type": "embedded"},
                "capture": False,
                "save_payment_method": True,
                "description": "Card verification",
                "metadata": metadata,
            },
            idempotence_key,
        )

    async def cancel(self, intent_id: str, idempotence_key: str) -> ChargeResult:
        self._configure_or_raise()
        try:
            payment = await asyncio.to_thread(Payment.cancel, intent_id, idempotence_key)
        except Exception as exc:
            logger.exception("YooKassa Payment.cancel failed for %s", intent_id)
            raise PaymentGatewayError(f"payment provider error: {exc}") from exc
        return _to_result(payment)

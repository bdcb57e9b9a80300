from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.api.deps import get_current_user_id, get_db, get_gateway, get_settings
from rideshare.api.schemas import success
from rideshare.config import Settings
from rideshare.services import payment_service, webhook_service

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/setup")
async def create_payment_setup(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway=Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    handle = await payment_service.create_payment_setup(db, gateway, settings, user_id)
    return success(
        "Card setup started",
        {"client_handle": handle.client_handle, "intent_id": handle.intent_id},
    )


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway=Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    """Processor notifications.

    The signature covers the raw body, so it is read before any JSON parsing.
    200 acknowledges (including ignored events), 400 is never retried, 500
    asks the processor to retry.
    """
    raw = await request.body()
    outcome = await webhook_service.handle_payment_event(
        db,
        gateway,
        settings.webhook_secret,
        raw,
        request.headers.get(webhook_service.SIGNATURE_HEADER),
    )
    return {"status": "ok", "action": outcome.action}

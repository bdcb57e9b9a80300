from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.api.deps import get_current_user_id, get_db, get_gateway, get_settings
from rideshare.api.schemas import RideCreate, contacts_to_list, ride_to_dict, success
from rideshare.config import Settings
from rideshare.services import participation, payment_service, ride_service

router = APIRouter(prefix="/rides", tags=["rides"])


@router.post("", status_code=201)
async def create_ride(
    payload: RideCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    ride = await ride_service.create_ride(db, user_id, payload.model_dump())
    details = ride_service.RideDetails(ride=ride, places_taken=0)
    return success("Ride created", ride_to_dict(details))


@router.get("/{ride_id}")
async def get_ride(
    ride_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    details = await ride_service.get_ride_details(db, ride_id)
    return success("Ride details", ride_to_dict(details))


@router.post("/{ride_id}/join")
async def join_ride(
    ride_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Reserve a place; the seat counts once the payment webhook confirms it."""
    participant = await participation.join_ride(db, ride_id, user_id)
    return success(
        "Joined ride; complete the payment to confirm your place",
        {"participant_id": participant.id, "status": participant.status.value},
    )


@router.post("/{ride_id}/leave")
async def leave_ride(
    ride_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await participation.leave_ride(db, ride_id, user_id)
    return success("Left ride")


@router.delete("/{ride_id}")
async def delete_ride(
    ride_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    was_cancelled = await ride_service.delete_or_cancel(db, ride_id, user_id)
    if was_cancelled:
        message = "Ride cancelled: it already had participants, so it was not deleted"
    else:
        message = "Ride deleted"
    return success(message, {"was_cancelled": was_cancelled})


@router.get("/{ride_id}/contacts")
async def get_contacts(
    ride_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    contacts = await participation.get_ride_contacts(db, ride_id, user_id)
    return success("Ride contacts", contacts_to_list(contacts))


@router.get("/{ride_id}/my-status")
async def my_status(
    ride_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    status = await participation.get_participation_status(db, ride_id, user_id)
    return success("Participation status", {"status": status})


@router.post("/{ride_id}/create-payment-intent")
async def create_payment_intent(
    ride_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway=Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    handle = await payment_service.create_payment_intent(db, gateway, settings, ride_id, user_id)
    return success(
        "Payment intent created",
        {
            "client_handle": handle.client_handle,
            "payment_id": handle.payment_id,
            "amount": handle.amount,
            "currency": handle.currency,
        },
    )


@router.post("/{ride_id}/join-automatic")
async def join_automatic(
    ride_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway=Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    participant = await payment_service.join_and_charge_automatically(
        db, gateway, settings, ride_id, user_id
    )
    return success(
        "Joined ride and paid with the saved method",
        {"participant_id": participant.id, "status": participant.status.value},
    )

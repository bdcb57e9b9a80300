import asyncio
import sys
import uuid
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy import select

sys.path.append(str(Path(__file__).resolve().parents[1]))

from rideshare.config import Settings
from rideshare.db.session import Database
from rideshare.models import (
    Participant,
    ParticipantStatus,
    Payment,
    PaymentStatus,
    Ride,
    RideStatus,
    User,
)
from rideshare.services.errors import PaymentGatewayError
from rideshare.services.payment_gateway import ChargeResult

WEBHOOK_SECRET = "whsec_test"


def make_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        join_fee_minor=200,
        currency="RUB",
        setup_amount_minor=100,
        webhook_secret=WEBHOOK_SECRET,
        shop_id="shop",
        secret_key="key",
    )


def setup_test_db(tmp_path) -> Database:
    database = Database(make_settings(tmp_path).database_url)
    asyncio.run(database.create_all())
    return database


class FakeGateway:
    """Records calls; charges confirmed by the client start ``pending``."""

    def __init__(self, saved_method_status="succeeded", error=None, delay=0):
        self.saved_method_status = saved_method_status
        self.error = error
        self.delay = delay
        self.calls = []
        self.cancelled = []
        self._counter = 0

    async def _issue(self, kind, status, **kwargs):
        self.calls.append((kind, kwargs))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self._counter += 1
        return ChargeResult(
            intent_id=f"pay_{kind}_{self._counter}",
            status=status,
            client_handle=f"ct_{self._counter}",
        )

    async def create_charge(self, amount_minor, currency, metadata, idempotence_key):
        return await self._issue(
            "charge", "pending", amount_minor=amount_minor, currency=currency,
            metadata=metadata, idempotence_key=idempotence_key,
        )

    async def charge_saved_method(self, amount_minor, currency, payment_method_id, metadata, idempotence_key):
        return await self._issue(
            "saved", self.saved_method_status, amount_minor=amount_minor, currency=currency,
            payment_method_id=payment_method_id, metadata=metadata, idempotence_key=idempotence_key,
        )

    async def create_setup(self, amount_minor, currency, metadata, idempotence_key):
        return await self._issue(
            "setup", "pending", amount_minor=amount_minor, currency=currency,
            metadata=metadata, idempotence_key=idempotence_key,
        )

    async def cancel(self, intent_id, idempotence_key):
        if self.error is not None:
            raise self.error
        self.cancelled.append(intent_id)
        return ChargeResult(intent_id=intent_id, status="canceled")


def unavailable_gateway():
    return FakeGateway(error=PaymentGatewayError("connection refused"))


def add_user(database, payment_method_id=None, user_id=None) -> str:
    user_id = user_id or str(uuid.uuid4())

    async def _add():
        async with database.session() as db:
            async with db.begin():
                db.add(
                    User(
                        id=user_id,
                        first_name="Test",
                        last_name=user_id[:8],
                        phone=f"+7{uuid.uuid4().int % 10**10:010d}",
                        payment_method_id=payment_method_id,
                    )
                )

    asyncio.run(_add())
    return user_id


def add_ride(database, creator_id, total_seats=3, status=RideStatus.ACTIVE, departs=None) -> str:
    departs = departs or datetime.now() + timedelta(days=1)
    ride_id = str(uuid.uuid4())

    async def _add():
        async with database.session() as db:
            async with db.begin():
                db.add(
                    Ride(
                        id=ride_id,
                        user_id=creator_id,
                        departure_location_name="Moscow",
                        arrival_location_name="Tver",
                        departure_date=departs.date(),
                        departure_time=departs.time().replace(second=0, microsecond=0),
                        total_seats=total_seats,
                        status=status,
                    )
                )

    asyncio.run(_add())
    return ride_id


def add_participant(database, ride_id, user_id, status=ParticipantStatus.ACTIVE) -> str:
    participant_id = str(uuid.uuid4())

    async def _add():
        async with database.session() as db:
            async with db.begin():
                db.add(Participant(id=participant_id, ride_id=ride_id, user_id=user_id, status=status))

    asyncio.run(_add())
    return participant_id


def add_payment(database, user_id, ride_id, participant_id, intent_id, status=PaymentStatus.PENDING) -> str:
    payment_id = str(uuid.uuid4())

    async def _add():
        async with database.session() as db:
            async with db.begin():
                db.add(
                    Payment(
                        id=payment_id,
                        user_id=user_id,
                        ride_id=ride_id,
                        participant_id=participant_id,
                        intent_id=intent_id,
                        status=status,
                        amount=200,
                        currency="RUB",
                    )
                )

    asyncio.run(_add())
    return payment_id


def fetch(database, model, pk):
    async def _get():
        async with database.session() as db:
            return await db.get(model, pk)

    return asyncio.run(_get())


def fetch_all(database, model, *criteria):
    async def _get():
        async with database.session() as db:
            result = await db.execute(select(model).where(*criteria))
            return result.scalars().all()

    return asyncio.run(_get())


def run(database, func, *args):
    """Run a service coroutine ``func(db, *args)`` on a fresh session."""

    async def _call():
        async with database.session() as db:
            return await func(db, *args)

    return asyncio.run(_call())

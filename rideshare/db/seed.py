"""Populate the database with demo users and one upcoming ride."""

import asyncio
from datetime import datetime, timedelta

from sqlalchemy import delete

from rideshare.config import Settings
from rideshare.db.session import Database
from rideshare.models import Participant, Payment, Ride, RideStatus, User

DRIVER_ID = "00000000-0000-4000-8000-000000000001"
PASSENGER_ID = "00000000-0000-4000-8000-000000000002"


async def seed(database: Database) -> Ride:
    await database.create_all()
    async with database.session() as session:
        async with session.begin():
            print("🧹 Clearing tables...")
            await session.execute(delete(Payment))
            await session.execute(delete(Participant))
            await session.execute(delete(Ride))
            await session.execute(delete(User))

            print("➕ Adding users...")
            session.add_all(
                [
                    User(id=DRIVER_ID, first_name="Demo", last_name="Driver", phone="+70000000001"),
                    User(id=PASSENGER_ID, first_name="Demo", last_name="Passenger", phone="+70000000002"),
                ]
            )
            await session.flush()

            print("🚗 Adding a ride...")
            departs = datetime.now() + timedelta(days=1)
            ride = Ride(
                user_id=DRIVER_ID,
                departure_location_name="Moscow",
                arrival_location_name="Tver",
                departure_date=departs.date(),
                departure_time=departs.time().replace(second=0, microsecond=0),
                total_seats=3,
                status=RideStatus.ACTIVE,
            )
            session.add(ride)
    print(f"✅ Database seeded, ride {ride.id}")
    return ride


async def main() -> None:
    settings = Settings.from_env()
    print(f"🗂 Using database: {settings.database_url}")
    database = Database(settings.database_url)
    try:
        await seed(database)
    finally:
        await database.dispose()


if __name__ == "__main__":
    asyncio.run(main())

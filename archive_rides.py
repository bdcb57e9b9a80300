"""Archive rides whose departure time has passed. Meant for cron / a scheduler."""

import asyncio
import logging

from rideshare.config import Settings
from rideshare.db.session import Database
from rideshare.services.ride_service import archive_past_rides


async def main() -> None:
    settings = Settings.from_env()
    database = Database(settings.database_url)
    try:
        async with database.session() as db:
            archived = await archive_past_rides(db)
    finally:
        await database.dispose()
    print(f"Archived rides: {archived}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())

#!/usr/bin/env python3
"""Setup script for the club outings API."""

import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path
from uuid import uuid4

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command  # noqa: E402
from alembic.config import Config  # noqa: E402
from sqlalchemy import func, select  # noqa: E402

from club_outings.core.clock import utc_now  # noqa: E402
from club_outings.core.database import async_session_factory, close_db  # noqa: E402
from club_outings.models import (  # noqa: E402
    Member,
    MemberRole,
    Outing,
    OutingType,
    Reservation,
    ReservationStatus,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def setup_database():
    """Bring the database schema to the latest migration."""
    logger.info("Running database migrations...")
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data():
    """Create a club organizer and a few upcoming outings."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing = await db.scalar(select(func.count(Outing.id)))
            if existing:
                logger.info("Sample data already exists, skipping...")
                return

            organizer = Member(
                id=uuid4(),
                email="organizer@club.example",
                first_name="Jacques",
                last_name="Mayol",
                role=MemberRole.ORGANIZER,
            )
            db.add(organizer)

            base_date = (utc_now() + timedelta(days=7)).replace(hour=9, minute=0, second=0, microsecond=0)
            samples = [
                ("Reef dive at Sormiou", OutingType.SEA, "Calanque de Sormiou", 12),
                ("Pool training", OutingType.POOL, "Piscine Vallier", 20),
                ("Quarry weekend", OutingType.QUARRY, "Carrière de Vodelée", 8),
                ("Harbour clean-up", OutingType.CLEAN_UP, "Vieux-Port", 30),
            ]
            for week, (title, outing_type, location, seats) in enumerate(samples):
                outing = Outing(
                    title=title,
                    date_time=base_date + timedelta(days=week * 7),
                    location=location,
                    outing_type=outing_type,
                    max_participants=seats,
                    confirmed_count=1,
                    organizer_id=organizer.id,
                )
                db.add(outing)
                await db.flush()
                db.add(Reservation(
                    outing_id=outing.id,
                    member_id=organizer.id,
                    status=ReservationStatus.CONFIRMED,
                    queue_seq=1,
                ))

            await db.commit()
            logger.info("Sample data created successfully!")

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise

    await close_db()


def main():
    """Main setup function."""
    logger.info("Starting club outings API setup...")

    setup_database()
    asyncio.run(create_sample_data())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn club_outings.main:app --reload")


if __name__ == "__main__":
    main()

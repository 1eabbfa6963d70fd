#!/usr/bin/env python3
"""Setup script for the pet care booking API."""

import asyncio
import logging
import sys
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from petcare.core.database import async_session_factory
from petcare.models import Doctor, Venue
from petcare.services.member_service import MemberDirectory

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_MEMBERS = [
    ("admin", "Venue Administrator"),
    ("member-1", "Jiwoo Park"),
    ("member-2", "Minseo Kim"),
]


def setup_database():
    """Bring the schema up to the latest migration."""
    logger.info("Setting up database...")

    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data():
    """Create sample members, a venue and its doctors."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing_venues = await db.scalar(select(func.count()).select_from(Venue))
            if existing_venues:
                logger.info("Sample data already exists, skipping...")
                return

            members = MemberDirectory(db)
            for member_id, display_name in SAMPLE_MEMBERS:
                await members.register(member_id, display_name)

            venue = Venue(
                name="Happy Paws Animal Clinic & Hotel",
                address="12 Teheran-ro, Gangnam-gu, Seoul",
                latitude=37.4979,
                longitude=127.0276,
                active=True,
                hotel_capacity=15,
            )
            db.add(venue)
            await db.flush()

            for name in ("Dr. Han", "Dr. Lee"):
                db.add(Doctor(venue_id=venue.id, name=name, active=True))

            await db.commit()
            logger.info("Sample data created successfully!", extra={"venue_id": str(venue.id)})

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise


async def main():
    """Main setup function."""
    logger.info("Starting pet care booking API setup...")

    # Alembic's env.py drives its own event loop
    await asyncio.to_thread(setup_database)

    await create_sample_data()

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn petcare.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())

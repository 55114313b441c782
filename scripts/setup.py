#!/usr/bin/env python3
"""Setup script for the room broker: migrate the database and seed sample data."""

import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from roombroker.core.clock import utcnow
from roombroker.core.config import settings
from roombroker.core.database import build_engine, build_session_factory, close_db
from roombroker.models import Board, Hotel, Opportunity, RoomCategory

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_HOTELS = [
    # name, supplier hotel id, channel hotel code
    ("Dan Tel Aviv", "104921", "DANTLV"),
    ("Crowne Plaza Eilat", "208813", "CPEILAT"),
    ("Mamilla Jerusalem", "311270", None),
]


def run_migrations() -> None:
    """Upgrade the schema to the latest revision."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data() -> None:
    """Create a few hotels with pending opportunities two to six weeks out."""
    engine = build_engine(settings.database_url)
    session_factory = build_session_factory(engine)

    logger.info("Creating sample data...")

    try:
        async with session_factory() as db:
            existing = await db.scalar(select(func.count()).select_from(Hotel))
            if existing:
                logger.info("Sample data already exists, skipping...")
                return

            category = RoomCategory(name="Standard", channel_room_code="STD-DBL")
            board = Board(name="Bed and Breakfast", code="BB")
            db.add_all([category, board])

            today = utcnow().date()
            for index, (name, supplier_id, channel_code) in enumerate(SAMPLE_HOTELS):
                hotel = Hotel(name=name, supplier_hotel_id=supplier_id, channel_hotel_code=channel_code)
                db.add(hotel)
                await db.flush()

                for week in range(2, 6):
                    start = today + timedelta(weeks=week, days=index)
                    db.add(Opportunity(
                        hotel_id=hotel.id,
                        category_id=category.id,
                        board_id=board.id,
                        start_date=start,
                        end_date=start + timedelta(days=2),
                        buy_price=180.0 + 20 * index,
                        push_price=240.0 + 25 * index,
                    ))

            await db.commit()
            logger.info("Sample data created successfully!")
    finally:
        await close_db(engine)


def main() -> None:
    """Main setup function."""
    logger.info("Starting room broker setup...")

    run_migrations()
    asyncio.run(create_sample_data())

    logger.info("Setup completed successfully!")
    logger.info("Start the service with: cd server && uvicorn roombroker.main:app --reload")


if __name__ == "__main__":
    main()

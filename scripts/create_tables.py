"""Script to initialize database tables and the booking number sequence."""

import asyncio

from sqlalchemy import select

from service_dispatch.infrastructure.config import get_settings
from service_dispatch.infrastructure.database.connection import DatabaseManager
from service_dispatch.infrastructure.database.models import Base, BookingSequenceModel


async def create_tables():
    """Create all database tables and the sequence row."""
    settings = get_settings()
    database_manager = DatabaseManager(settings.database_url, echo=True)
    await database_manager.connect()

    try:
        # Create all tables
        async with database_manager.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        print("✅ Database tables created successfully!")

        async with database_manager.get_session() as session:
            stmt = select(BookingSequenceModel).where(BookingSequenceModel.name == settings.booking_sequence_name)
            existing = (await session.execute(stmt)).scalar_one_or_none()

            if existing is None:
                session.add(BookingSequenceModel(name=settings.booking_sequence_name, last_number=0))
                print(f"✅ Created booking sequence '{settings.booking_sequence_name}'")
            else:
                print(f"ℹ️ Booking sequence '{settings.booking_sequence_name}' already at {existing.last_number}")

    except Exception as e:
        print(f"❌ Error creating tables: {e}")
        raise
    finally:
        await database_manager.disconnect()


if __name__ == "__main__":
    asyncio.run(create_tables())

"""Script to create test agents for development."""

import asyncio
from uuid import UUID

from service_dispatch.domain.entities.agent import Agent
from service_dispatch.domain.entities.booking import SkillType
from service_dispatch.domain.value_objects.coordinates import Coordinates
from service_dispatch.infrastructure.config import get_settings
from service_dispatch.infrastructure.database.connection import DatabaseManager
from service_dispatch.infrastructure.repositories.sql_repositories import SQLAlchemyUnitOfWork


TEST_AGENTS = [
    Agent(
        agent_id=UUID("11111111-1111-1111-1111-111111111111"),
        name="Nagercoil Electricals",
        skills=[SkillType.ELECTRICAL],
        current_location=Coordinates(lat=8.1833, lng=77.4119),
        rating=4.8
    ),
    Agent(
        agent_id=UUID("22222222-2222-2222-2222-222222222222"),
        name="Vadasery Plumbing",
        skills=[SkillType.PLUMBING],
        current_location=Coordinates(lat=8.1920, lng=77.4280),
        rating=4.2
    ),
    Agent(
        agent_id=UUID("33333333-3333-3333-3333-333333333333"),
        name="Rapid Response Team",
        skills=[SkillType.EMERGENCY, SkillType.ELECTRICAL, SkillType.PLUMBING],
        current_location=Coordinates(lat=8.1778, lng=77.4362),
        rating=4.5
    ),
]


async def seed_agents():
    """Create or refresh the development agents."""
    database_manager = DatabaseManager(get_settings().database_url, echo=True)
    await database_manager.connect()

    try:
        async with SQLAlchemyUnitOfWork(database_manager) as uow:
            for agent in TEST_AGENTS:
                existing = await uow.agents.find_by_id(agent.id)
                await uow.agents.save(agent)
                if existing is None:
                    print(f"✅ Created agent: {agent.name} ({', '.join(sorted(s.value for s in agent.skills))})")
                else:
                    print(f"ℹ️ Agent refreshed: {agent.name}")

        print("✅ Test agents setup completed!")

    except Exception as e:
        print(f"❌ Error creating test agents: {e}")
        raise
    finally:
        await database_manager.disconnect()


if __name__ == "__main__":
    asyncio.run(seed_agents())

"""Script to dispatch every pending booking once.

Meant to run periodically (cron or a scheduler) so normal-priority bookings
whose retries ran out still get matched when agents free up.
"""

import argparse
import asyncio

from service_dispatch.infrastructure.logging import generate_correlation_id, set_correlation_id, setup_logging_from_env
from service_dispatch.infrastructure.services import get_service_factory


async def run_sweep(limit):
    factory = get_service_factory()
    await factory.initialize()

    try:
        set_correlation_id(generate_correlation_id())
        coordinator = factory.get_dispatch_coordinator()
        matched = await coordinator.sweep_pending_bookings(limit=limit)
        print(f"✅ Sweep finished, {matched} booking(s) matched")
    finally:
        await factory.shutdown()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--limit", type=int, default=None, help="maximum number of pending bookings to process")
    args = parser.parse_args()

    setup_logging_from_env()
    asyncio.run(run_sweep(args.limit))

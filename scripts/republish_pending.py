#!/usr/bin/env python3
"""
Republish scheduling requests for appointments stuck in pending.

An appointment stays pending when its ScheduleRequested event could not be
published. Running this script re-sends the event; the reservation worker
and the reconciliation worker treat the replay idempotently.

Usage:
    python scripts/republish_pending.py
    python scripts/republish_pending.py --older-than 30 --limit 500
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from medbook.core.redis_client import close_redis_connection, get_redis_client  # noqa: E402
from medbook.database import AsyncSessionLocal, engine  # noqa: E402
from medbook.messaging.publishers import build_notification_publisher  # noqa: E402
from medbook.middleware.logging import configure_logging  # noqa: E402
from medbook.services.appointment_service import AppointmentService  # noqa: E402


async def republish(older_than: int | None, limit: int) -> int:
    """Run the stale-pending sweep once."""
    try:
        async with AsyncSessionLocal() as session:
            service = AppointmentService(session, build_notification_publisher(get_redis_client()))
            return await service.republish_stale_pending(older_than_minutes=older_than, limit=limit)
    finally:
        await engine.dispose()
        await close_redis_connection()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Republish stale pending appointments")
    parser.add_argument("--older-than", type=int, default=None, help="Minimum age in minutes")
    parser.add_argument("--limit", type=int, default=100, help="Maximum appointments to republish")
    args = parser.parse_args()

    configure_logging()
    count = asyncio.run(republish(args.older_than, args.limit))
    print(f"✓ Republished {count} scheduling requests")

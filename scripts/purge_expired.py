#!/usr/bin/env python3
"""Delete appointments whose retention period has ended."""

import asyncio
import sys
from datetime import UTC, datetime
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from medbook.database import AsyncSessionLocal, engine  # noqa: E402
from medbook.middleware.logging import configure_logging  # noqa: E402
from medbook.repositories.appointment_repository import AppointmentRepository  # noqa: E402


async def purge() -> int:
    """Remove every appointment past its expiry."""
    try:
        async with AsyncSessionLocal() as session:
            return await AppointmentRepository(session).purge_expired(datetime.now(UTC))
    finally:
        await engine.dispose()


if __name__ == "__main__":
    configure_logging()
    deleted = asyncio.run(purge())
    print(f"✓ Purged {deleted} expired appointments")

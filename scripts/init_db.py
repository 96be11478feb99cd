"""Script to initialize the appointment store and the country schedule stores."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from medbook.core.country_databases import CountryEnginePool  # noqa: E402
from medbook.database import engine  # noqa: E402
from medbook.models.appointments import metadata as appointments_metadata  # noqa: E402
from medbook.models.schedules import metadata as schedules_metadata  # noqa: E402
from medbook.schemas.appointments import CountryISO  # noqa: E402


async def init_db(countries: list[CountryISO], skip_appointments: bool = False) -> None:
    """Create every table that does not exist yet."""
    if not skip_appointments:
        async with engine.begin() as conn:
            await conn.run_sync(appointments_metadata.create_all)
        await engine.dispose()
        print("✓ Appointment store initialized")

    engine_pool = CountryEnginePool()
    try:
        for country in countries:
            async with engine_pool.get_engine(country).begin() as conn:
                await conn.run_sync(schedules_metadata.create_all)
            print(f"✓ Schedule store {country.value} initialized")
    finally:
        await engine_pool.release_all()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create database tables")
    parser.add_argument(
        "--country",
        action="append",
        choices=[c.value for c in CountryISO],
        type=str.upper,
        help="Schedule store to initialize (repeatable, default: all)",
    )
    parser.add_argument(
        "--skip-appointments",
        action="store_true",
        help="Only initialize schedule stores (the appointment store is migrated with alembic)",
    )
    args = parser.parse_args()

    selected = [CountryISO(c) for c in args.country] if args.country else list(CountryISO)
    asyncio.run(init_db(selected, skip_appointments=args.skip_appointments))

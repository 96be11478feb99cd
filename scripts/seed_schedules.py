#!/usr/bin/env python3
"""
Load demo centers, specialities, doctors and open slots into a country's schedule store.

Usage:
    python scripts/seed_schedules.py --country PE
    python scripts/seed_schedules.py --country CL --slots 40 --days 14
"""

import argparse
import asyncio
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import func, insert, select  # noqa: E402

from medbook.core.country_databases import CountryEnginePool  # noqa: E402
from medbook.models.schedules import (  # noqa: E402
    doctors,
    medical_centers,
    medical_schedules,
    specialities,
)
from medbook.schemas.appointments import CountryISO  # noqa: E402

CENTERS = {
    CountryISO.PE: [
        ("Clinica San Felipe", "Av. Gregorio Escobedo 650", "Lima"),
        ("Clinica Ricardo Palma", "Av. Javier Prado Este 1066", "Lima"),
    ],
    CountryISO.CL: [
        ("Clinica Alemana", "Av. Vitacura 5951", "Santiago"),
        ("Clinica Las Condes", "Estoril 450", "Santiago"),
    ],
}

SPECIALITIES = [
    ("Cardiology", "Heart and circulatory system"),
    ("Dermatology", "Skin conditions"),
    ("Pediatrics", "Care of children"),
]

DOCTORS = [
    ("Ana", "Torres"),
    ("Luis", "Rojas"),
    ("Carmen", "Vega"),
]


async def seed(country: CountryISO, slots: int, days: int) -> None:
    """Insert reference data and open slots unless the store already has slots."""
    engine_pool = CountryEnginePool()
    try:
        async with engine_pool.get_engine(country).begin() as conn:
            existing = (await conn.execute(select(func.count()).select_from(medical_schedules))).scalar()
            if existing:
                print(f"Schedule store {country.value} already has {existing} slots, skipping")
                return

            center_ids = []
            for name, address, city in CENTERS[country]:
                result = await conn.execute(
                    insert(medical_centers).values(name=name, address=address, city=city)
                )
                center_ids.append(result.inserted_primary_key[0])

            speciality_ids = []
            for name, description in SPECIALITIES:
                result = await conn.execute(
                    insert(specialities).values(name=name, description=description)
                )
                speciality_ids.append(result.inserted_primary_key[0])

            doctor_ids = []
            for index, (first_name, last_name) in enumerate(DOCTORS, start=1):
                result = await conn.execute(
                    insert(doctors).values(
                        first_name=first_name,
                        last_name=last_name,
                        license_number=f"{country.value}-{index:05d}",
                    )
                )
                doctor_ids.append(result.inserted_primary_key[0])

            start = datetime.now(UTC).replace(hour=9, minute=0, second=0, microsecond=0)
            rows = []
            for i in range(slots):
                rows.append(
                    {
                        "country_iso": country.value,
                        "center_id": center_ids[i % len(center_ids)],
                        "speciality_id": speciality_ids[i % len(speciality_ids)],
                        "medic_id": doctor_ids[i % len(doctor_ids)],
                        "appointment_date": start + timedelta(days=1 + i % days, hours=i % 8),
                        "is_available": True,
                    }
                )
            await conn.execute(insert(medical_schedules), rows)

        print(f"✓ Seeded {slots} slots into schedule store {country.value}")
    finally:
        await engine_pool.release_all()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a country schedule store with demo data")
    parser.add_argument("--country", required=True, choices=[c.value for c in CountryISO], type=str.upper)
    parser.add_argument("--slots", type=int, default=20, help="Number of open slots to create")
    parser.add_argument("--days", type=int, default=7, help="Spread slots over this many days")
    args = parser.parse_args()

    asyncio.run(seed(CountryISO(args.country), args.slots, args.days))

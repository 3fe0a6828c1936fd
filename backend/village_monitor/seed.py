"""Create the schema and register the site's devices.

    python -m village_monitor.seed [--reset]
"""

import argparse
import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine

from .db import engine
from .models import Base, Device

logger = logging.getLogger(__name__)

SITE_DEVICES: list[dict[str, str]] = [
    {"device_name": "PZEM-004T", "device_type": "electricity", "location": "Kantor Utama"},
    {"device_name": "WaterTank01", "device_type": "water_level", "location": "Tandon Air"},
    {"device_name": "IR01", "device_type": "motion", "location": "Ruang Aula"},
    {"device_name": "IR02", "device_type": "motion", "location": "Ruang Arsip"},
    {"device_name": "IR03", "device_type": "motion", "location": "Ruang Layanan"},
    {"device_name": "DHT22", "device_type": "temperature_humidity", "location": "Kantor Utama"},
    {"device_name": "Smoke01", "device_type": "smoke", "location": "Kantor Utama"},
    {"device_name": "RainSensor01", "device_type": "rain", "location": "Luar Kantor"},
]


async def seed_database(target: AsyncEngine, *, reset: bool = False) -> int:
    """Create tables and insert any missing site device; returns how many were added."""

    async with target.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    added = 0
    async with target.begin() as conn:
        existing = {
            name for (name,) in (await conn.execute(select(Device.device_name))).all()
        }
        for entry in SITE_DEVICES:
            if entry["device_name"] in existing:
                continue
            await conn.execute(Device.__table__.insert().values(is_active=True, **entry))
            added += 1
    return added


async def _main(reset: bool) -> None:
    added = await seed_database(engine, reset=reset)
    logger.info("Seeded %d device(s)", added)
    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--reset", action="store_true", help="drop all tables first")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    asyncio.run(_main(args.reset))


if __name__ == "__main__":
    main()

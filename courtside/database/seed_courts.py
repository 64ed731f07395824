"""
Seed bookable courts and their weekly availability windows from CSV.

Idempotent: courts are matched by name and skipped if they already exist,
so windows edited after seeding are preserved across restarts.
To force a full re-seed, delete rows from the courts table first.

CSV columns: name, address, timezone, hourly_rate, is_bookable, windows
where windows is a ";"-separated list of "<day> HH:MM-HH:MM" (Sunday=0).
"""

import asyncio
import csv
import logging
from pathlib import Path
from typing import List, Tuple

from sqlalchemy import select

from courtside.database.db import AsyncSessionLocal
from courtside.database.models import Court, CourtAvailability
from courtside.services.court_service import validate_window
from courtside.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

SEED_DIR = Path(__file__).resolve().parent.parent / "seed"


def parse_windows(value: str) -> List[Tuple[int, str, str]]:
    """Parse "1 09:00-11:00;3 18:00-22:00" into validated (day, start, end) tuples."""
    windows = []
    for chunk in (value or "").split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        day_part, _, span = chunk.partition(" ")
        start, _, end = span.strip().partition("-")
        day = int(day_part)
        validate_window(day, start, end)
        windows.append((day, start, end))
    return windows


async def seed_courts(session, csv_filename: str = "courts.csv") -> int:
    """Seed courts from a CSV file. Returns count of new courts."""
    csv_path = SEED_DIR / csv_filename
    if not csv_path.exists():
        logger.warning("Courts CSV not found: %s", csv_path)
        return 0

    def _bool(val: str) -> bool:
        return val.strip().lower() == "true"

    created = 0
    with open(csv_path, "r", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            result = await session.execute(select(Court).where(Court.name == row["name"]))
            if result.scalar_one_or_none():
                continue

            court = Court(
                name=row["name"],
                address=row.get("address") or None,
                timezone=row.get("timezone") or "UTC",
                hourly_rate=float(row["hourly_rate"]) if row.get("hourly_rate") else None,
                is_bookable=_bool(row.get("is_bookable", "")),
            )
            session.add(court)
            await session.flush()

            for day, start, end in parse_windows(row.get("windows", "")):
                session.add(
                    CourtAvailability(
                        court_id=court.id,
                        day_of_week=day,
                        start_time=start,
                        end_time=end,
                        is_active=True,
                    )
                )
            created += 1

    await session.flush()
    return created


async def main():
    setup_logging()
    async with AsyncSessionLocal() as session:
        created = await seed_courts(session)
        await session.commit()
    logger.info("Seeded %d new courts", created)


if __name__ == "__main__":
    asyncio.run(main())

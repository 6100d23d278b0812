"""
Rewrite English weekday names stored in schedules.day to the Indonesian names
the API matches against (Monday -> Senin, ...).

Usage:
  python -m app.scripts.migrate_day_names
  python -m app.scripts.migrate_day_names --dry-run
"""

import argparse
import asyncio

from sqlalchemy import func, select, update

import app.auth.models  # noqa: F401  (registers Student for the Schedule mappers)
from app.core.clock import ENGLISH_DAY_NAMES
from app.core.models import Schedule
from app.db.session import AsyncSessionLocal


async def migrate_day_names(dry_run: bool = False) -> int:
    total = 0
    async with AsyncSessionLocal() as session:
        for english, indonesian in ENGLISH_DAY_NAMES.items():
            result = await session.execute(
                select(func.count(Schedule.id)).where(Schedule.day == english)
            )
            count = result.scalar_one()
            if not count:
                continue
            print(f"{english} -> {indonesian}: {count} schedule(s)")
            total += count
            if not dry_run:
                await session.execute(
                    update(Schedule).where(Schedule.day == english).values(day=indonesian)
                )
        if dry_run:
            await session.rollback()
        else:
            await session.commit()
    print(f"{'Would update' if dry_run else 'Updated'} {total} schedule(s).")
    return total


def main() -> None:
    parser = argparse.ArgumentParser(description="Convert English day names in schedules to Indonesian")
    parser.add_argument("--dry-run", action="store_true", help="Only report what would change")
    args = parser.parse_args()
    asyncio.run(migrate_day_names(dry_run=args.dry_run))


if __name__ == "__main__":
    main()

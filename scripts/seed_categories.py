"""
Seed script — creates the default set of categories.

Usage:
    python -m scripts.seed_categories

Finalize rejects any categoryRef that does not resolve to an active
category, so run this once after `docker compose up` (or point it at a
fresh database). Existing categories are left alone.
"""

import asyncio

from sqlalchemy import select

from models.base import AsyncSessionLocal, async_engine
from models.category import Category
from models.tables import create_tables

DEFAULT_CATEGORIES = [
    "Landscape",
    "Portrait",
    "Street",
    "Wildlife",
    "Architecture",
    "Food",
    "Travel",
    "Abstract",
]


async def seed():
    await create_tables(async_engine)

    async with AsyncSessionLocal() as session:
        existing = set((await session.execute(select(Category.name))).scalars().all())
        created = [name for name in DEFAULT_CATEGORIES if name not in existing]
        session.add_all(Category(name=name) for name in created)
        await session.commit()

    for name in DEFAULT_CATEGORIES:
        print(f"  [{'created' if name in created else 'exists '}] {name}")
    print(f"\nDone! {len(created)} new categories.")

    await async_engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())

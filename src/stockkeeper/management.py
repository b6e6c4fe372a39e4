"""Utility helpers for administrative tasks."""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from . import crud
from .models import Category, Location

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: dict[str, list[str]] = {
    "Office supplies": ["Stationery", "Equipment"],
    "Household": ["Toiletries", "Food"],
}

DEFAULT_LOCATIONS: list[tuple[str, str]] = [
    ("Office cabinet 1", "Left side, top shelf"),
    ("Warehouse zone A", "Rack 3"),
    ("Home storage closet", "Living room, right side"),
]


async def seed_defaults(session: AsyncSession) -> int:
    """Insert the starter categories and locations once; returns rows created.

    Each group is skipped when its first default already exists, so running the
    seed again is harmless.
    """

    created = 0
    first_parent = next(iter(DEFAULT_CATEGORIES))
    if await crud.find_category(session, first_parent, 0) is None:
        for parent_name, children in DEFAULT_CATEGORIES.items():
            parent = Category(name=parent_name, parent_id=0)
            session.add(parent)
            await session.flush()
            session.add_all(Category(name=child, parent_id=parent.id) for child in children)
            created += 1 + len(children)

    if await crud.find_location_by_name(session, DEFAULT_LOCATIONS[0][0]) is None:
        session.add_all(Location(name=name, remark=remark) for name, remark in DEFAULT_LOCATIONS)
        created += len(DEFAULT_LOCATIONS)

    await session.flush()
    if created:
        logger.info("Seeded default data", extra={"rows": created})
    return created


__all__ = ["DEFAULT_CATEGORIES", "DEFAULT_LOCATIONS", "seed_defaults"]

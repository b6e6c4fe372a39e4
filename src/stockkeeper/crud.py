"""Data access for categories, locations, items and recycle records."""
from __future__ import annotations

from collections.abc import Iterable, Sequence

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from . import schemas
from .exceptions import DuplicateNameError, InvalidArgumentError, NotFoundError
from .models import Category, Item, Location, RecycleRecord, join_image_paths, utcnow


# ----------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------
async def find_category(session: AsyncSession, name: str, parent_id: int) -> Category | None:
    stmt = select(Category).where(Category.name == name, Category.parent_id == parent_id)
    result = await session.execute(stmt)
    return result.scalars().first()


async def create_category(session: AsyncSession, data: schemas.CategoryCreate) -> Category:
    name = data.name.strip()
    if data.parent_id:
        parent = await get_category(session, data.parent_id)
        if not parent.is_top_level:
            raise InvalidArgumentError(f"Category {parent.id} is not a top-level category")
    if await find_category(session, name, data.parent_id) is not None:
        raise DuplicateNameError(f"Category '{name}' already exists under parent {data.parent_id}")
    category = Category(name=name, parent_id=data.parent_id)
    session.add(category)
    await session.flush()
    return category


async def list_categories(session: AsyncSession) -> Sequence[Category]:
    stmt = select(Category).order_by(Category.parent_id, Category.name)
    result = await session.execute(stmt)
    return result.scalars().all()


async def list_top_level_categories(session: AsyncSession) -> Sequence[Category]:
    return await list_child_categories(session, 0)


async def list_child_categories(session: AsyncSession, parent_id: int) -> Sequence[Category]:
    stmt = select(Category).where(Category.parent_id == parent_id).order_by(Category.name)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_category(session: AsyncSession, category_id: int) -> Category:
    category = await session.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    return category


async def update_category(
    session: AsyncSession, category: Category, data: schemas.CategoryUpdate
) -> Category:
    if data.name is not None:
        name = data.name.strip()
        existing = await find_category(session, name, category.parent_id)
        if existing is not None and existing.id != category.id:
            raise DuplicateNameError(
                f"Category '{name}' already exists under parent {category.parent_id}"
            )
        category.name = name
    await session.flush()
    return category


async def count_category_items(session: AsyncSession, category_id: int) -> int:
    stmt = select(func.count(Item.id)).where(
        or_(Item.parent_category_id == category_id, Item.child_category_id == category_id),
        Item.is_deleted.is_(False),
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def delete_category(session: AsyncSession, category: Category) -> None:
    """Delete ``category`` and clear the references items hold on it.

    Removing a top-level category also removes its children and clears both
    category columns of the items filed under it.
    """

    now = utcnow()
    if category.is_top_level:
        await session.execute(
            update(Item)
            .where(Item.parent_category_id == category.id)
            .values(parent_category_id=0, child_category_id=0, updated_at=now)
        )
        child_ids = select(Category.id).where(Category.parent_id == category.id)
        await session.execute(
            update(Item)
            .where(Item.child_category_id.in_(child_ids))
            .values(child_category_id=0, updated_at=now)
        )
        await session.execute(delete(Category).where(Category.parent_id == category.id))
    else:
        await session.execute(
            update(Item)
            .where(Item.child_category_id == category.id)
            .values(child_category_id=0, updated_at=now)
        )
    await session.delete(category)
    await session.flush()


# ----------------------------------------------------------------------
# Locations
# ----------------------------------------------------------------------
async def find_location_by_name(session: AsyncSession, name: str) -> Location | None:
    stmt = select(Location).where(Location.name == name)
    result = await session.execute(stmt)
    return result.scalars().first()


async def create_location(session: AsyncSession, data: schemas.LocationCreate) -> Location:
    name = data.name.strip()
    if await find_location_by_name(session, name) is not None:
        raise DuplicateNameError(f"Location '{name}' already exists")
    location = Location(name=name, remark=data.remark)
    session.add(location)
    await session.flush()
    return location


async def list_locations(session: AsyncSession) -> Sequence[Location]:
    stmt = select(Location).order_by(Location.name)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_location(session: AsyncSession, location_id: int) -> Location:
    location = await session.get(Location, location_id)
    if location is None:
        raise NotFoundError(f"Location {location_id} not found")
    return location


async def update_location(
    session: AsyncSession, location: Location, data: schemas.LocationUpdate
) -> Location:
    values = data.model_dump(exclude_unset=True)
    if values.get("name") is not None:
        name = values["name"].strip()
        existing = await find_location_by_name(session, name)
        if existing is not None and existing.id != location.id:
            raise DuplicateNameError(f"Location '{name}' already exists")
        values["name"] = name
    for field, value in values.items():
        if value is not None:
            setattr(location, field, value)
    await session.flush()
    return location


async def count_location_items(session: AsyncSession, location_id: int) -> int:
    stmt = select(func.count(Item.id)).where(
        Item.location_id == location_id, Item.is_deleted.is_(False)
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def delete_location(session: AsyncSession, location: Location) -> None:
    await session.execute(
        update(Item)
        .where(Item.location_id == location.id)
        .values(location_id=0, updated_at=utcnow())
    )
    await session.delete(location)
    await session.flush()


# ----------------------------------------------------------------------
# Items
# ----------------------------------------------------------------------
async def create_item(session: AsyncSession, data: schemas.ItemCreate) -> Item:
    values = data.model_dump()
    values["image_paths"] = join_image_paths(values["image_paths"])
    item = Item(**values)
    session.add(item)
    await session.flush()
    return item


async def find_item(session: AsyncSession, item_id: int) -> Item | None:
    """Return the item with ``item_id`` whatever its deletion state."""

    return await session.get(Item, item_id)


async def find_item_by_uuid(session: AsyncSession, item_uuid: str) -> Item | None:
    stmt = select(Item).where(Item.uuid == item_uuid)
    result = await session.execute(stmt)
    return result.scalars().first()


async def get_item(session: AsyncSession, item_id: int, *, include_deleted: bool = False) -> Item:
    item = await find_item(session, item_id)
    if item is None or (item.is_deleted and not include_deleted):
        raise NotFoundError(f"Item {item_id} not found")
    return item


async def list_items(
    session: AsyncSession,
    filters: schemas.ItemFilter | None = None,
    *,
    include_deleted: bool = False,
) -> Sequence[Item]:
    stmt = select(Item)
    if not include_deleted:
        stmt = stmt.where(Item.is_deleted.is_(False))
    if filters is not None:
        conditions = []
        if filters.keyword:
            pattern = f"%{filters.keyword.strip()}%"
            conditions.append(or_(Item.name.like(pattern), Item.remark.like(pattern)))
        if filters.parent_category_ids:
            conditions.append(Item.parent_category_id.in_(filters.parent_category_ids))
        if filters.child_category_ids:
            conditions.append(Item.child_category_id.in_(filters.child_category_ids))
        if filters.location_ids:
            conditions.append(Item.location_id.in_(filters.location_ids))
        if filters.quantity_min is not None:
            conditions.append(Item.count >= filters.quantity_min)
        if filters.quantity_max is not None:
            conditions.append(Item.count <= filters.quantity_max)
        if filters.expire_start is not None:
            conditions.append(Item.valid_time >= filters.expire_start)
        if filters.expire_end is not None:
            conditions.append(Item.valid_time <= filters.expire_end)
        if conditions:
            stmt = stmt.where(and_(*conditions))
    stmt = stmt.order_by(Item.valid_time, Item.id)
    result = await session.execute(stmt)
    return result.scalars().all()


async def list_expired_items(
    session: AsyncSession,
    now_ms: int,
    *,
    keyword: str | None = None,
    start: int | None = None,
    end: int | None = None,
) -> Sequence[Item]:
    stmt = select(Item).where(
        Item.is_deleted.is_(False),
        Item.valid_time > 0,
        Item.valid_time < now_ms,
    )
    if keyword:
        stmt = stmt.where(Item.name.like(f"%{keyword.strip()}%"))
    if start is not None:
        stmt = stmt.where(Item.valid_time >= start)
    if end is not None:
        stmt = stmt.where(Item.valid_time <= end)
    result = await session.execute(stmt.order_by(Item.valid_time))
    return result.scalars().all()


async def update_item(session: AsyncSession, item: Item, data: schemas.ItemUpdate) -> Item:
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        if field == "image_paths":
            value = join_image_paths(value)
        setattr(item, field, value)
    await session.flush()
    return item


async def set_item_deleted(session: AsyncSession, item_id: int, deleted: bool) -> int:
    """Flip the soft-delete flag of one item, returning the rows affected.

    Only rows currently in the opposite state are touched, so a flip that has
    already happened reports zero.
    """

    stmt = (
        update(Item)
        .where(Item.id == item_id, Item.is_deleted.is_(not deleted))
        .values(is_deleted=deleted, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    result = await session.execute(stmt)
    return result.rowcount


async def delete_items(session: AsyncSession, item_ids: Iterable[int]) -> int:
    ids = list(item_ids)
    if not ids:
        return 0
    stmt = delete(Item).where(Item.id.in_(ids)).execution_options(synchronize_session="fetch")
    result = await session.execute(stmt)
    return result.rowcount


# ----------------------------------------------------------------------
# Recycle records
# ----------------------------------------------------------------------
async def create_recycle_record(
    session: AsyncSession, item: Item, reason: str | None = None
) -> RecycleRecord:
    record = RecycleRecord(
        item_id=item.id,
        item_uuid=item.uuid,
        item_name=item.name,
        delete_time=utcnow(),
        delete_reason=reason,
    )
    session.add(record)
    await session.flush()
    return record


async def get_recycle_record(session: AsyncSession, recycle_id: int) -> RecycleRecord | None:
    return await session.get(RecycleRecord, recycle_id)


async def get_recycle_record_by_item_id(
    session: AsyncSession, item_id: int
) -> RecycleRecord | None:
    stmt = select(RecycleRecord).where(RecycleRecord.item_id == item_id)
    result = await session.execute(stmt)
    return result.scalars().first()


async def delete_recycle_record(session: AsyncSession, recycle_id: int) -> int:
    stmt = (
        delete(RecycleRecord)
        .where(RecycleRecord.id == recycle_id)
        .execution_options(synchronize_session="fetch")
    )
    result = await session.execute(stmt)
    return result.rowcount


async def delete_recycle_records_by_item_id(session: AsyncSession, item_id: int) -> int:
    stmt = (
        delete(RecycleRecord)
        .where(RecycleRecord.item_id == item_id)
        .execution_options(synchronize_session="fetch")
    )
    result = await session.execute(stmt)
    return result.rowcount


async def list_recycle_records(session: AsyncSession) -> Sequence[RecycleRecord]:
    """Records whose item is still soft-deleted, newest deletion first."""

    stmt = (
        select(RecycleRecord)
        .join(Item, RecycleRecord.item_id == Item.id)
        .where(Item.is_deleted.is_(True))
        .order_by(RecycleRecord.delete_time.desc(), RecycleRecord.id.desc())
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def list_orphan_recycle_records(session: AsyncSession) -> Sequence[RecycleRecord]:
    """Records whose item is gone or is no longer soft-deleted."""

    stmt = (
        select(RecycleRecord)
        .outerjoin(Item, RecycleRecord.item_id == Item.id)
        .where(or_(Item.id.is_(None), Item.is_deleted.is_(False)))
    )
    result = await session.execute(stmt)
    return result.scalars().all()


__all__ = [name for name in globals() if not name.startswith("_")]

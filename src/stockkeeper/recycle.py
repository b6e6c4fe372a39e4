"""Soft delete, restore and purge of items through the recycle bin.

Every item with ``is_deleted`` set owns exactly one :class:`RecycleRecord` and
every record points at a soft-deleted item. The manager keeps both sides in
step, including when a batch restore half-succeeds on one pair.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import crud
from .exceptions import InvalidArgumentError
from .models import RecycleRecord, utcnow

logger = logging.getLogger(__name__)


def _validate_pairs(
    recycle_ids: Sequence[int] | None, item_ids: Sequence[int] | None
) -> list[tuple[int, int]]:
    if not recycle_ids or not item_ids:
        raise InvalidArgumentError("recycle_ids and item_ids must both be non-empty")
    if len(recycle_ids) != len(item_ids):
        raise InvalidArgumentError(
            f"recycle_ids has {len(recycle_ids)} entries but item_ids has {len(item_ids)}"
        )
    return list(zip(recycle_ids, item_ids))


class RecycleManager:
    """Owns the soft-delete/restore contract between items and recycle records."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def soft_delete(self, item_id: int, reason: str | None = None) -> None:
        """Move a live item to the recycle bin; missing or deleted items are ignored."""

        async with self._session_factory() as session, session.begin():
            item = await crud.find_item(session, item_id)
            if item is None or item.is_deleted:
                logger.debug("Soft delete ignored", extra={"item_id": item_id})
                return
            # A live item must not own a record; drop any stale one first.
            await crud.delete_recycle_records_by_item_id(session, item_id)
            await crud.create_recycle_record(session, item, reason)
            item.is_deleted = True
            item.updated_at = utcnow()
            await session.flush()
        logger.info("Item moved to recycle bin", extra={"item_id": item_id})

    async def restore_one(self, item_id: int) -> int:
        """Restore one item and drop its record; returns the item rows updated."""

        async with self._session_factory() as session, session.begin():
            item = await crud.find_item(session, item_id)
            if item is None or not item.is_deleted:
                return 0
            rows = await crud.set_item_deleted(session, item_id, False)
            if rows:
                await crud.delete_recycle_records_by_item_id(session, item_id)
        if rows:
            logger.info("Item restored", extra={"item_id": item_id})
        return rows

    async def restore_batch(
        self, recycle_ids: Sequence[int] | None, item_ids: Sequence[int] | None
    ) -> int:
        """Restore ``(recycle_id, item_id)`` pairs, returning how many succeeded.

        The whole batch shares one storage transaction. Pairs that do not match,
        point at missing rows or fail part way are logged and skipped; they never
        stop the remaining pairs.
        """

        pairs = _validate_pairs(recycle_ids, item_ids)
        restored = 0
        async with self._session_factory() as session, session.begin():
            for recycle_id, item_id in pairs:
                try:
                    if await self._restore_pair(session, recycle_id, item_id):
                        restored += 1
                except Exception:
                    logger.exception(
                        "Restore failed, skipping pair",
                        extra={"recycle_id": recycle_id, "item_id": item_id},
                    )
        logger.info(
            "Batch restore finished",
            extra={"requested": len(pairs), "restored": restored},
        )
        return restored

    async def _restore_pair(self, session: AsyncSession, recycle_id: int, item_id: int) -> bool:
        record = await crud.get_recycle_record(session, recycle_id)
        if record is None or record.item_id != item_id:
            logger.warning(
                "Recycle record missing or paired with another item",
                extra={"recycle_id": recycle_id, "item_id": item_id},
            )
            return False

        item = await crud.find_item(session, item_id)
        if item is None or not item.is_deleted:
            logger.warning(
                "Item missing or not in recycle bin",
                extra={"recycle_id": recycle_id, "item_id": item_id},
            )
            return False

        if not await crud.set_item_deleted(session, item_id, False):
            logger.warning("Item flag flip wrote no rows", extra={"item_id": item_id})
            return False

        try:
            removed = await crud.delete_recycle_record(session, recycle_id)
        except Exception:
            logger.exception("Recycle record delete raised", extra={"recycle_id": recycle_id})
            removed = 0
        if not removed:
            # Put the item back in the bin so it keeps its record.
            await crud.set_item_deleted(session, item_id, True)
            logger.warning(
                "Recycle record delete failed, item returned to bin",
                extra={"recycle_id": recycle_id, "item_id": item_id},
            )
            return False
        return True

    async def purge_one(self, item_id: int) -> int:
        return await self.purge_batch([item_id])

    async def purge_batch(self, item_ids: Sequence[int]) -> int:
        """Permanently delete items by id.

        Recycle records are left alone; pair this with a record delete, or use
        :meth:`delete_forever` which does both.
        """

        async with self._session_factory() as session, session.begin():
            rows = await crud.delete_items(session, item_ids)
        logger.info("Items purged", extra={"requested": len(item_ids), "purged": rows})
        return rows

    async def delete_forever(self, recycle_id: int, item_id: int) -> int:
        return await self.delete_forever_batch([recycle_id], [item_id])

    async def delete_forever_batch(
        self, recycle_ids: Sequence[int] | None, item_ids: Sequence[int] | None
    ) -> int:
        """Purge items together with their recycle records; returns items purged."""

        pairs = _validate_pairs(recycle_ids, item_ids)
        purged = 0
        async with self._session_factory() as session, session.begin():
            for recycle_id, item_id in pairs:
                record = await crud.get_recycle_record(session, recycle_id)
                if record is None or record.item_id != item_id:
                    logger.warning(
                        "Recycle record missing or paired with another item",
                        extra={"recycle_id": recycle_id, "item_id": item_id},
                    )
                    continue
                await crud.delete_recycle_record(session, recycle_id)
                purged += await crud.delete_items(session, [item_id])
        return purged

    async def list_recycle_bin(self) -> Sequence[RecycleRecord]:
        """Return recycle records newest first, clearing orphans on the way."""

        async with self._session_factory() as session, session.begin():
            await self._remove_orphans(session)
            return await crud.list_recycle_records(session)

    async def reconcile(self) -> int:
        """Delete records whose item is gone or live again; returns the number removed."""

        async with self._session_factory() as session, session.begin():
            return await self._remove_orphans(session)

    async def _remove_orphans(self, session: AsyncSession) -> int:
        orphans = await crud.list_orphan_recycle_records(session)
        for record in orphans:
            logger.warning(
                "Removing orphan recycle record",
                extra={"recycle_id": record.id, "item_id": record.item_id},
            )
            await crud.delete_recycle_record(session, record.id)
        return len(orphans)


__all__ = ["RecycleManager"]

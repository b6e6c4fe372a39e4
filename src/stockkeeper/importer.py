"""Merge an exported archive into the local store without duplicating rows."""
from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import crud
from .archive import ExtractedArchive, read_archive
from .exceptions import InvalidArchiveError, StorageFailureError
from .models import Category, Item, Location, join_image_paths, split_image_paths
from .schemas import CategoryRecord, ImportResult, ItemRecord, LocationRecord

logger = logging.getLogger(__name__)


class ImportReconciler:
    """Imports categories, then locations, then items from one archive.

    Dedup keys: ``(name, parent)`` for categories, ``name`` for locations and
    ``uuid`` for items. Item references are re-linked by the names stored in the
    archive; archives without names keep a raw id only when it points at a local
    row of the right kind.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        image_dir: Path,
        scratch_dir: Path | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._image_dir = Path(image_dir)
        self._scratch_dir = scratch_dir

    async def import_archive(self, archive_path: str | Path) -> ImportResult:
        if self._scratch_dir is not None:
            Path(self._scratch_dir).mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix="inventory_import_", dir=self._scratch_dir))
        try:
            extracted = await asyncio.to_thread(read_archive, archive_path, scratch)
            result = ImportResult()
            async with self._session_factory() as session:
                document = extracted.document
                result.categories = await self._import_categories(
                    session, document.categories, result
                )
                result.locations = await self._import_locations(
                    session, document.locations, result
                )
                result.items = await self._import_items(session, document.items, extracted, result)
        except InvalidArchiveError as exc:
            logger.warning(
                "Archive rejected", extra={"archive": str(archive_path), "reason": exc.message}
            )
            raise
        except SQLAlchemyError as exc:
            logger.exception("Import aborted by storage error", extra={"archive": str(archive_path)})
            raise StorageFailureError(f"Import aborted: {exc}") from exc
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        result.inserted_count = result.categories + result.locations + result.items
        result.message = (
            f"Import succeeded: {result.inserted_count} new rows "
            f"({result.categories} categories, {result.locations} locations, "
            f"{result.items} items)"
        )
        if result.failed:
            result.message += f"; {result.failed} records skipped after errors"
        logger.info("Import finished", extra=result.model_dump(exclude={"message"}))
        return result

    async def _import_categories(
        self, session: AsyncSession, raw_records: list[Any], result: ImportResult
    ) -> int:
        records = [
            record
            for record in (self._parse(CategoryRecord, raw, result) for raw in raw_records)
            if record is not None
        ]
        # Parents first so children can resolve them by name.
        records.sort(key=lambda record: record.parent_id != 0)
        inserted = 0
        for record in records:
            name = record.name.strip()
            try:
                parent_id = await self._resolve_category_parent(session, record)
                if parent_id is None:
                    logger.warning(
                        "Category parent not found, record skipped",
                        extra={"category": name, "parent_name": record.parent_name},
                    )
                    result.failed += 1
                    continue
                if await crud.find_category(session, name, parent_id) is not None:
                    continue
                session.add(Category(name=name, parent_id=parent_id))
                await session.commit()
                inserted += 1
            except SQLAlchemyError:
                await session.rollback()
                logger.exception("Category import failed", extra={"category": name})
                result.failed += 1
        return inserted

    async def _resolve_category_parent(
        self, session: AsyncSession, record: CategoryRecord
    ) -> int | None:
        if record.parent_id == 0:
            return 0
        if record.parent_name:
            parent = await crud.find_category(session, record.parent_name.strip(), 0)
        else:
            parent = await session.get(Category, record.parent_id)
        if parent is None or not parent.is_top_level:
            return None
        return parent.id

    async def _import_locations(
        self, session: AsyncSession, raw_records: list[Any], result: ImportResult
    ) -> int:
        inserted = 0
        for raw in raw_records:
            record = self._parse(LocationRecord, raw, result)
            if record is None:
                continue
            name = record.name.strip()
            try:
                if await crud.find_location_by_name(session, name) is not None:
                    continue
                session.add(Location(name=name, remark=record.remark or ""))
                await session.commit()
                inserted += 1
            except SQLAlchemyError:
                await session.rollback()
                logger.exception("Location import failed", extra={"location": name})
                result.failed += 1
        return inserted

    async def _import_items(
        self,
        session: AsyncSession,
        raw_records: list[Any],
        extracted: ExtractedArchive,
        result: ImportResult,
    ) -> int:
        inserted = 0
        for raw in raw_records:
            record = self._parse(ItemRecord, raw, result)
            if record is None:
                continue
            copied: list[str] = []
            try:
                if await crud.find_item_by_uuid(session, record.uuid) is not None:
                    continue
                parent_id, child_id, location_id = await self._relink(session, record)
                copied = await asyncio.to_thread(self._relocate_images, extracted, record)
                session.add(
                    Item(
                        uuid=record.uuid,
                        name=record.name,
                        parent_category_id=parent_id,
                        child_category_id=child_id,
                        location_id=location_id,
                        valid_time=record.valid_time,
                        count=record.count,
                        image_paths=join_image_paths(copied),
                        remark=record.remark or "",
                        is_deleted=False,
                    )
                )
                await session.commit()
                inserted += 1
            except SQLAlchemyError:
                await session.rollback()
                for path in copied:
                    Path(path).unlink(missing_ok=True)
                logger.exception("Item import failed", extra={"item_uuid": record.uuid})
                result.failed += 1
        return inserted

    async def _relink(self, session: AsyncSession, record: ItemRecord) -> tuple[int, int, int]:
        if record.parent_category_name:
            parent = await crud.find_category(session, record.parent_category_name, 0)
        elif record.parent_category_id:
            parent = await session.get(Category, record.parent_category_id)
            if parent is not None and not parent.is_top_level:
                parent = None
        else:
            parent = None
        parent_id = parent.id if parent is not None else 0

        child_id = 0
        if parent_id:
            if record.child_category_name:
                child = await crud.find_category(session, record.child_category_name, parent_id)
            elif record.child_category_id:
                child = await session.get(Category, record.child_category_id)
                if child is not None and child.parent_id != parent_id:
                    child = None
            else:
                child = None
            child_id = child.id if child is not None else 0

        if record.location_name:
            location = await crud.find_location_by_name(session, record.location_name)
        elif record.location_id:
            location = await session.get(Location, record.location_id)
        else:
            location = None
        location_id = location.id if location is not None else 0

        if (record.parent_category_id and not parent_id) or (
            record.location_id and not location_id
        ):
            logger.info(
                "Item references could not be re-linked and were cleared",
                extra={"item_uuid": record.uuid},
            )
        return parent_id, child_id, location_id

    def _relocate_images(self, extracted: ExtractedArchive, record: ItemRecord) -> list[str]:
        """Copy the item's archived images into the image directory.

        Images that are absent from the archive or fail to copy are dropped one
        by one; the item keeps whatever did arrive.
        """

        relocated: list[str] = []
        seen: set[str] = set()
        for token in split_image_paths(record.image_paths):
            source = extracted.find_image(record.uuid, token)
            if source is None:
                logger.debug(
                    "Image not in archive", extra={"item_uuid": record.uuid, "path": token}
                )
                continue
            if source.name in seen:
                logger.warning(
                    "Image entry already relocated for item, path dropped",
                    extra={"item_uuid": record.uuid, "path": token},
                )
                continue
            seen.add(source.name)
            destination = self._image_dir / source.name
            try:
                self._image_dir.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, destination)
            except OSError:
                logger.warning(
                    "Image copy failed", extra={"item_uuid": record.uuid, "path": token}, exc_info=True
                )
                continue
            relocated.append(str(destination.resolve()))
        return relocated

    @staticmethod
    def _parse(model, raw: Any, result: ImportResult):
        try:
            return model.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                "Malformed archive record skipped",
                extra={"record_type": model.__name__, "errors": exc.error_count()},
            )
            result.failed += 1
            return None


__all__ = ["ImportReconciler"]

"""Portable ZIP archive of the whole inventory.

Layout::

    inventory_data.json          {"items": [...], "categories": [...], "locations": [...]}
    images/<item uuid>_<name>    one entry per image file that existed at export

Surrogate ids never travel as identifiers. Items are keyed by ``uuid``; the raw
category and location ids are kept for compatibility and the matching names
are written next to them so an importer can re-link.
"""
from __future__ import annotations

import asyncio
import json
import logging
import zipfile
import zlib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker

from . import crud, schemas
from .exceptions import InvalidArchiveError
from .models import Category, Item, Location

logger = logging.getLogger(__name__)

ARCHIVE_JSON_NAME = "inventory_data.json"
IMAGE_DIR_NAME = "images"


def image_entry_name(item_uuid: str, image_path: str | Path) -> str:
    """Archive entry name for one image of one item."""

    return f"{IMAGE_DIR_NAME}/{item_uuid}_{Path(image_path).name}"


def encode_category(category: Category, names: dict[int, str]) -> dict[str, Any]:
    record = schemas.CategoryRecord(
        parent_id=category.parent_id,
        name=category.name,
        parent_name=names.get(category.parent_id),
    )
    return record.model_dump(by_alias=True, exclude_none=True)


def encode_location(location: Location) -> dict[str, Any]:
    return schemas.LocationRecord(name=location.name, remark=location.remark).model_dump(
        by_alias=True
    )


def encode_item(
    item: Item, category_names: dict[int, str], location_names: dict[int, str]
) -> dict[str, Any]:
    record = schemas.ItemRecord(
        uuid=item.uuid,
        name=item.name,
        parent_category_id=item.parent_category_id,
        child_category_id=item.child_category_id,
        location_id=item.location_id,
        valid_time=item.valid_time,
        count=item.count,
        image_paths=item.image_paths,
        remark=item.remark,
        parent_category_name=category_names.get(item.parent_category_id),
        child_category_name=category_names.get(item.child_category_id),
        location_name=location_names.get(item.location_id),
    )
    return record.model_dump(by_alias=True, exclude_none=True)


def build_document(
    items: Sequence[Item], categories: Sequence[Category], locations: Sequence[Location]
) -> dict[str, list[dict[str, Any]]]:
    category_names = {category.id: category.name for category in categories}
    location_names = {location.id: location.name for location in locations}
    return {
        "items": [encode_item(item, category_names, location_names) for item in items],
        "categories": [encode_category(category, category_names) for category in categories],
        "locations": [encode_location(location) for location in locations],
    }


def write_archive(
    destination: Path,
    document: dict[str, Any],
    images: Iterable[tuple[str, list[str]]],
) -> int:
    """Write ``document`` and the image files into a fresh ZIP at ``destination``.

    ``images`` yields ``(item uuid, image paths)``. Paths that do not point at an
    existing file are skipped. Returns the number of image entries written.
    """

    written: set[str] = set()
    destination.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(ARCHIVE_JSON_NAME, json.dumps(document, ensure_ascii=False))
        for item_uuid, paths in images:
            for raw_path in paths:
                source = Path(raw_path)
                if not source.is_file():
                    logger.debug(
                        "Image missing, not exported",
                        extra={"item_uuid": item_uuid, "path": raw_path},
                    )
                    continue
                entry = image_entry_name(item_uuid, source)
                if entry in written:
                    # Same basename twice for one item; the first path wins.
                    logger.warning(
                        "Image basename already exported for item, later path not exported",
                        extra={"item_uuid": item_uuid, "path": raw_path, "entry": entry},
                    )
                    continue
                archive.write(source, entry)
                written.add(entry)
    return len(written)


async def export_archive(
    session_factory: async_sessionmaker,
    destination: str | Path,
    *,
    include_deleted: bool = False,
) -> bool:
    """Export the inventory to ``destination``; returns ``False`` on any failure.

    The destination is removed before writing, and again if writing fails, so a
    failed export never leaves a file that looks complete.
    """

    target = Path(destination)
    try:
        if target.exists():
            target.unlink()
        async with session_factory() as session:
            items = await crud.list_items(session, include_deleted=include_deleted)
            categories = await crud.list_categories(session)
            locations = await crud.list_locations(session)
        document = build_document(items, categories, locations)
        images = [(item.uuid, item.image_path_list) for item in items if item.image_paths]
        image_count = await asyncio.to_thread(write_archive, target, document, images)
    except Exception:
        logger.exception("Export failed", extra={"destination": str(target)})
        if target.is_file():
            target.unlink()
        return False
    logger.info(
        "Export finished",
        extra={
            "destination": str(target),
            "items": len(document["items"]),
            "categories": len(document["categories"]),
            "locations": len(document["locations"]),
            "images": image_count,
        },
    )
    return True


@dataclass
class ExtractedArchive:
    """An archive unpacked into a scratch directory."""

    root: Path
    document: schemas.ArchiveDocument
    image_names: set[str] = field(default_factory=set)

    def find_image(self, item_uuid: str, image_path: str) -> Path | None:
        entry = image_entry_name(item_uuid, image_path)
        if entry not in self.image_names:
            return None
        candidate = self.root / entry
        return candidate if candidate.is_file() else None


def read_archive(archive_path: str | Path, scratch: Path) -> ExtractedArchive:
    """Unpack ``archive_path`` into ``scratch`` and validate its structure.

    Raises :class:`InvalidArchiveError` when the file is missing, is not a ZIP,
    lacks the JSON document, has a corrupt member, or the document lacks one
    of its arrays.
    """

    source = Path(archive_path)
    if not source.is_file():
        raise InvalidArchiveError(f"Archive {source} does not exist")
    try:
        with zipfile.ZipFile(source) as archive:
            names = set(archive.namelist())
            if ARCHIVE_JSON_NAME not in names:
                raise InvalidArchiveError(f"Archive is missing {ARCHIVE_JSON_NAME}")
            archive.extractall(scratch)
    except zipfile.BadZipFile as exc:
        raise InvalidArchiveError(f"{source} is not a ZIP archive") from exc
    except (zlib.error, EOFError, OSError) as exc:
        raise InvalidArchiveError(f"{source} could not be unpacked: {exc}") from exc

    try:
        document = schemas.ArchiveDocument.model_validate_json(
            (scratch / ARCHIVE_JSON_NAME).read_bytes()
        )
    except ValidationError as exc:
        raise InvalidArchiveError(f"Malformed archive document: {exc.error_count()} error(s)") from exc
    image_names = {name for name in names if name.startswith(f"{IMAGE_DIR_NAME}/")}
    return ExtractedArchive(root=scratch, document=document, image_names=image_names)


__all__ = [
    "ARCHIVE_JSON_NAME",
    "IMAGE_DIR_NAME",
    "ExtractedArchive",
    "build_document",
    "encode_category",
    "encode_item",
    "encode_location",
    "export_archive",
    "image_entry_name",
    "read_archive",
    "write_archive",
]

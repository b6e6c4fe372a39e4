"""Store handle shared by the API and the CLI."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from . import management
from .archive import export_archive
from .config import Settings, get_settings
from .database import create_engine, create_session_factory, init_database
from .importer import ImportReconciler
from .models import RecycleRecord
from .recycle import RecycleManager
from .schemas import ImportResult

logger = logging.getLogger(__name__)


class InventoryService:
    """Owns one engine and runs mutating operations one at a time.

    Every recycle-bin mutation, export and import waits on a single lock, so one
    operation completes before the next begins. Blocking archive I/O is pushed
    to worker threads by the components themselves.
    """

    def __init__(self, settings: Settings | None = None, engine: AsyncEngine | None = None) -> None:
        self.settings = settings or get_settings()
        self.engine = engine or create_engine(self.settings)
        self.session_factory = create_session_factory(self.engine)
        self.recycle = RecycleManager(self.session_factory)
        self.importer = ImportReconciler(
            self.session_factory,
            image_dir=self.settings.image_dir,
            scratch_dir=self.settings.scratch_dir,
        )
        self._lock = asyncio.Lock()

    async def init_database(self) -> None:
        await init_database(self.engine)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            yield session

    async def soft_delete(self, item_id: int, reason: str | None = None) -> None:
        async with self._lock:
            await self.recycle.soft_delete(item_id, reason)

    async def restore_one(self, item_id: int) -> int:
        async with self._lock:
            return await self.recycle.restore_one(item_id)

    async def restore_batch(
        self, recycle_ids: Sequence[int] | None, item_ids: Sequence[int] | None
    ) -> int:
        async with self._lock:
            return await self.recycle.restore_batch(recycle_ids, item_ids)

    async def purge_one(self, item_id: int) -> int:
        async with self._lock:
            return await self.recycle.purge_one(item_id)

    async def purge_batch(self, item_ids: Sequence[int]) -> int:
        async with self._lock:
            return await self.recycle.purge_batch(item_ids)

    async def delete_forever_batch(
        self, recycle_ids: Sequence[int] | None, item_ids: Sequence[int] | None
    ) -> int:
        async with self._lock:
            return await self.recycle.delete_forever_batch(recycle_ids, item_ids)

    async def list_recycle_bin(self) -> Sequence[RecycleRecord]:
        async with self._lock:
            return await self.recycle.list_recycle_bin()

    async def reconcile(self) -> int:
        async with self._lock:
            return await self.recycle.reconcile()

    async def export(self, destination: str | Path, *, include_deleted: bool | None = None) -> bool:
        if include_deleted is None:
            include_deleted = self.settings.export_include_deleted
        async with self._lock:
            return await export_archive(
                self.session_factory, destination, include_deleted=include_deleted
            )

    async def import_archive(self, archive_path: str | Path) -> ImportResult:
        async with self._lock:
            return await self.importer.import_archive(archive_path)

    async def seed_defaults(self) -> int:
        async with self._lock, self.session_factory() as session, session.begin():
            return await management.seed_defaults(session)


__all__ = ["InventoryService"]

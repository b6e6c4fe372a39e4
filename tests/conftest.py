from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from stockkeeper import crud, schemas
from stockkeeper.api import create_app
from stockkeeper.config import Settings
from stockkeeper.models import Item, RecycleRecord
from stockkeeper.service import InventoryService


def make_settings(root: Path, name: str = "main") -> Settings:
    root.mkdir(parents=True, exist_ok=True)
    return Settings(
        database_url=f"sqlite+aiosqlite:///{root / f'{name}.db'}",
        environment="test",
        app_name="Test Stockkeeper",
        image_dir=root / f"{name}_images",
        scratch_dir=root / f"{name}_scratch",
        archive_dir=root / f"{name}_archives",
    )


@pytest.fixture()
async def service_factory(
    tmp_path: Path,
) -> AsyncIterator[Callable[[str], Awaitable[InventoryService]]]:
    services: list[InventoryService] = []

    async def factory(name: str) -> InventoryService:
        service = InventoryService(make_settings(tmp_path / "stores", name))
        await service.init_database()
        services.append(service)
        return service

    yield factory

    for service in services:
        await service.dispose()


@pytest.fixture()
async def service(service_factory) -> InventoryService:
    return await service_factory("main")


@pytest.fixture()
async def app(service: InventoryService) -> FastAPI:
    return create_app(service.settings, service)


@pytest.fixture()
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def add_item(service: InventoryService, name: str, **fields) -> Item:
    async with service.session() as session:
        item = await crud.create_item(session, schemas.ItemCreate(name=name, **fields))
        await session.commit()
        return item


async def load_item(service: InventoryService, item_id: int) -> Item | None:
    async with service.session() as session:
        return await crud.find_item(session, item_id)


async def recycle_records(service: InventoryService) -> list[RecycleRecord]:
    async with service.session() as session:
        result = await session.execute(select(RecycleRecord).order_by(RecycleRecord.id))
        return list(result.scalars().all())


async def assert_recycle_consistent(service: InventoryService) -> None:
    """Every deleted item owns exactly one record and every record has a deleted item."""

    async with service.session() as session:
        items = (await session.execute(select(Item))).scalars().all()
        records = (await session.execute(select(RecycleRecord))).scalars().all()
    by_item: dict[int, int] = {}
    for record in records:
        by_item[record.item_id] = by_item.get(record.item_id, 0) + 1
    for item in items:
        expected = 1 if item.is_deleted else 0
        assert by_item.get(item.id, 0) == expected, item.name
    live_ids = {item.id for item in items}
    assert set(by_item) <= live_ids

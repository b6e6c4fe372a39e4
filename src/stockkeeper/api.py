"""FastAPI router configuration."""
from __future__ import annotations

import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud, schemas
from .config import Settings, get_settings
from .exceptions import DuplicateNameError, ErrorKind, InvalidArgumentError, InventoryError
from .service import InventoryService

router = APIRouter()

_STATUS_BY_KIND = {
    ErrorKind.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_ARCHIVE: 422,
    ErrorKind.STORAGE_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def provide_service(request: Request) -> InventoryService:
    """Dependency returning the service owned by the running app."""

    return request.app.state.service


async def get_session(
    service: InventoryService = Depends(provide_service),
) -> AsyncIterator[AsyncSession]:
    async with service.session() as session:
        yield session


async def inventory_error_handler(request: Request, exc: InventoryError) -> JSONResponse:
    code = (
        status.HTTP_409_CONFLICT
        if isinstance(exc, DuplicateNameError)
        else _STATUS_BY_KIND[exc.kind]
    )
    return JSONResponse(status_code=code, content={"detail": exc.message, "kind": exc.kind.value})


@router.get("/health", response_model=schemas.HealthStatus, tags=["system"])
async def health_check(
    service: InventoryService = Depends(provide_service),
) -> schemas.HealthStatus:
    return schemas.HealthStatus(environment=service.settings.environment)


# Categories -----------------------------------------------------------------


@router.post(
    "/categories", response_model=schemas.CategoryOut, status_code=status.HTTP_201_CREATED
)
async def create_category(
    payload: schemas.CategoryCreate, session: AsyncSession = Depends(get_session)
) -> schemas.CategoryOut:
    category = await crud.create_category(session, payload)
    await session.commit()
    return schemas.CategoryOut.model_validate(category)


@router.get("/categories", response_model=list[schemas.CategoryOut])
async def list_categories(
    parent_id: int | None = None, session: AsyncSession = Depends(get_session)
) -> Sequence[schemas.CategoryOut]:
    if parent_id is None:
        categories = await crud.list_categories(session)
    else:
        categories = await crud.list_child_categories(session, parent_id)
    return [schemas.CategoryOut.model_validate(category) for category in categories]


@router.get("/categories/{category_id}", response_model=schemas.CategoryOut)
async def get_category(
    category_id: int, session: AsyncSession = Depends(get_session)
) -> schemas.CategoryOut:
    category = await crud.get_category(session, category_id)
    return schemas.CategoryOut.model_validate(category)


@router.put("/categories/{category_id}", response_model=schemas.CategoryOut)
async def update_category(
    category_id: int,
    payload: schemas.CategoryUpdate,
    session: AsyncSession = Depends(get_session),
) -> schemas.CategoryOut:
    category = await crud.get_category(session, category_id)
    category = await crud.update_category(session, category, payload)
    await session.commit()
    await session.refresh(category)
    return schemas.CategoryOut.model_validate(category)


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(category_id: int, session: AsyncSession = Depends(get_session)) -> None:
    category = await crud.get_category(session, category_id)
    await crud.delete_category(session, category)
    await session.commit()


# Locations ------------------------------------------------------------------


@router.post("/locations", response_model=schemas.LocationOut, status_code=status.HTTP_201_CREATED)
async def create_location(
    payload: schemas.LocationCreate, session: AsyncSession = Depends(get_session)
) -> schemas.LocationOut:
    location = await crud.create_location(session, payload)
    await session.commit()
    return schemas.LocationOut.model_validate(location)


@router.get("/locations", response_model=list[schemas.LocationOut])
async def list_locations(
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.LocationOut]:
    locations = await crud.list_locations(session)
    return [schemas.LocationOut.model_validate(location) for location in locations]


@router.get("/locations/{location_id}", response_model=schemas.LocationOut)
async def get_location(
    location_id: int, session: AsyncSession = Depends(get_session)
) -> schemas.LocationOut:
    location = await crud.get_location(session, location_id)
    return schemas.LocationOut.model_validate(location)


@router.put("/locations/{location_id}", response_model=schemas.LocationOut)
async def update_location(
    location_id: int,
    payload: schemas.LocationUpdate,
    session: AsyncSession = Depends(get_session),
) -> schemas.LocationOut:
    location = await crud.get_location(session, location_id)
    location = await crud.update_location(session, location, payload)
    await session.commit()
    await session.refresh(location)
    return schemas.LocationOut.model_validate(location)


@router.delete("/locations/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_location(
    location_id: int, session: AsyncSession = Depends(get_session)
) -> None:
    location = await crud.get_location(session, location_id)
    await crud.delete_location(session, location)
    await session.commit()


# Items ----------------------------------------------------------------------


@router.post("/items", response_model=schemas.ItemOut, status_code=status.HTTP_201_CREATED)
async def create_item(
    payload: schemas.ItemCreate, session: AsyncSession = Depends(get_session)
) -> schemas.ItemOut:
    item = await crud.create_item(session, payload)
    await session.commit()
    return schemas.ItemOut.model_validate(item)


@router.get("/items", response_model=list[schemas.ItemOut])
async def list_items(
    keyword: str | None = None,
    parent_category_id: list[int] | None = Query(default=None),
    child_category_id: list[int] | None = Query(default=None),
    location_id: list[int] | None = Query(default=None),
    quantity_min: int | None = Query(default=None, ge=0),
    quantity_max: int | None = Query(default=None, ge=0),
    expire_start: int | None = None,
    expire_end: int | None = None,
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.ItemOut]:
    filters = schemas.ItemFilter(
        keyword=keyword,
        parent_category_ids=parent_category_id,
        child_category_ids=child_category_id,
        location_ids=location_id,
        quantity_min=quantity_min,
        quantity_max=quantity_max,
        expire_start=expire_start,
        expire_end=expire_end,
    )
    items = await crud.list_items(session, filters)
    return [schemas.ItemOut.model_validate(item) for item in items]


@router.get("/items/expired", response_model=list[schemas.ItemOut])
async def list_expired_items(
    keyword: str | None = None,
    start: int | None = None,
    end: int | None = None,
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.ItemOut]:
    now_ms = int(time.time() * 1000)
    items = await crud.list_expired_items(session, now_ms, keyword=keyword, start=start, end=end)
    return [schemas.ItemOut.model_validate(item) for item in items]


@router.get("/items/{item_id}", response_model=schemas.ItemOut)
async def get_item(item_id: int, session: AsyncSession = Depends(get_session)) -> schemas.ItemOut:
    item = await crud.get_item(session, item_id)
    return schemas.ItemOut.model_validate(item)


@router.put("/items/{item_id}", response_model=schemas.ItemOut)
async def update_item(
    item_id: int,
    payload: schemas.ItemUpdate,
    session: AsyncSession = Depends(get_session),
) -> schemas.ItemOut:
    item = await crud.get_item(session, item_id)
    item = await crud.update_item(session, item, payload)
    await session.commit()
    await session.refresh(item)
    return schemas.ItemOut.model_validate(item)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def soft_delete_item(
    item_id: int,
    reason: str | None = Query(default=None, max_length=255),
    service: InventoryService = Depends(provide_service),
) -> None:
    await service.soft_delete(item_id, reason)


@router.post("/items/{item_id}/restore", response_model=schemas.CountResult)
async def restore_item(
    item_id: int, service: InventoryService = Depends(provide_service)
) -> schemas.CountResult:
    return schemas.CountResult(count=await service.restore_one(item_id))


# Recycle bin ----------------------------------------------------------------


@router.get("/recycle", response_model=list[schemas.RecycleRecordOut], tags=["recycle"])
async def list_recycle_bin(
    service: InventoryService = Depends(provide_service),
) -> Sequence[schemas.RecycleRecordOut]:
    records = await service.list_recycle_bin()
    return [schemas.RecycleRecordOut.model_validate(record) for record in records]


@router.post("/recycle/restore", response_model=schemas.CountResult, tags=["recycle"])
async def restore_batch(
    payload: schemas.RecyclePairsRequest, service: InventoryService = Depends(provide_service)
) -> schemas.CountResult:
    restored = await service.restore_batch(payload.recycle_ids, payload.item_ids)
    return schemas.CountResult(count=restored)


@router.post("/recycle/purge", response_model=schemas.CountResult, tags=["recycle"])
async def purge_items(
    payload: schemas.PurgeRequest, service: InventoryService = Depends(provide_service)
) -> schemas.CountResult:
    return schemas.CountResult(count=await service.purge_batch(payload.item_ids))


@router.post("/recycle/delete-forever", response_model=schemas.CountResult, tags=["recycle"])
async def delete_forever(
    payload: schemas.RecyclePairsRequest, service: InventoryService = Depends(provide_service)
) -> schemas.CountResult:
    purged = await service.delete_forever_batch(payload.recycle_ids, payload.item_ids)
    return schemas.CountResult(count=purged)


# Archive --------------------------------------------------------------------


def resolve_archive_path(settings: Settings, raw_path: str) -> Path:
    """Resolve a client supplied archive path inside ``settings.archive_dir``."""

    base = settings.archive_dir.resolve()
    candidate = (base / raw_path).resolve()
    if candidate == base or not candidate.is_relative_to(base):
        raise InvalidArgumentError(f"Archive path {raw_path!r} is outside the archive directory")
    return candidate


@router.post("/archive/export", response_model=schemas.ExportResult, tags=["archive"])
async def export_archive(
    payload: schemas.ExportRequest, service: InventoryService = Depends(provide_service)
) -> schemas.ExportResult:
    destination = resolve_archive_path(service.settings, payload.destination)
    success = await service.export(destination, include_deleted=payload.include_deleted)
    return schemas.ExportResult(success=success, destination=str(destination))


@router.post("/archive/import", response_model=schemas.ImportResult, tags=["archive"])
async def import_archive(
    payload: schemas.ImportRequest, service: InventoryService = Depends(provide_service)
) -> schemas.ImportResult:
    archive_path = resolve_archive_path(service.settings, payload.archive_path)
    return await service.import_archive(archive_path)


def create_app(
    settings: Settings | None = None, service: InventoryService | None = None
) -> FastAPI:
    settings = settings or get_settings()
    service = service or InventoryService(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await service.init_database()
        yield
        await service.dispose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.service = service
    app.add_exception_handler(InventoryError, inventory_error_handler)
    app.include_router(router)
    return app


__all__ = ["create_app", "provide_service", "get_session"]

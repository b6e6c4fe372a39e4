"""Pydantic schemas used by the API and the archive codec."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import split_image_paths


class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: int = Field(0, ge=0, description="0 for a top-level category.")


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)


class CategoryOut(CategoryBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime


class LocationBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    remark: str = ""


class LocationCreate(LocationBase):
    pass


class LocationUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    remark: str | None = None


class LocationOut(LocationBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime


class ItemBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_category_id: int = Field(0, ge=0)
    child_category_id: int = Field(0, ge=0)
    location_id: int = Field(0, ge=0)
    valid_time: int = Field(0, ge=0, description="Expiry as epoch milliseconds, 0 for none.")
    count: int = Field(1, ge=0)
    image_paths: list[str] = Field(default_factory=list)
    remark: str = ""

    @field_validator("image_paths", mode="before")
    @classmethod
    def _split_joined_paths(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return split_image_paths(value)
        return value


class ItemCreate(ItemBase):
    pass


class ItemUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    parent_category_id: int | None = Field(default=None, ge=0)
    child_category_id: int | None = Field(default=None, ge=0)
    location_id: int | None = Field(default=None, ge=0)
    valid_time: int | None = Field(default=None, ge=0)
    count: int | None = Field(default=None, ge=0)
    image_paths: list[str] | None = None
    remark: str | None = None


class ItemOut(ItemBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    is_deleted: bool
    created_at: datetime
    updated_at: datetime


class ItemFilter(BaseModel):
    keyword: str | None = None
    parent_category_ids: list[int] | None = None
    child_category_ids: list[int] | None = None
    location_ids: list[int] | None = None
    quantity_min: int | None = Field(default=None, ge=0)
    quantity_max: int | None = Field(default=None, ge=0)
    expire_start: int | None = None
    expire_end: int | None = None


class RecycleRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    item_id: int
    item_uuid: str
    item_name: str
    delete_time: datetime
    delete_reason: str | None = None


class SoftDeleteRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=255)


class RecyclePairsRequest(BaseModel):
    recycle_ids: list[int] | None = None
    item_ids: list[int] | None = None


class PurgeRequest(BaseModel):
    item_ids: list[int]


class CountResult(BaseModel):
    count: int


class ExportRequest(BaseModel):
    destination: str
    include_deleted: bool | None = None


class ExportResult(BaseModel):
    success: bool
    destination: str


class ImportRequest(BaseModel):
    archive_path: str


class ImportResult(BaseModel):
    inserted_count: int = 0
    message: str = ""
    categories: int = 0
    locations: int = 0
    items: int = 0
    failed: int = 0


class HealthStatus(BaseModel):
    status: Literal["ok"] = "ok"
    environment: str


# Archive wire records. Field names are camelCase on the wire.


class _ArchiveRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CategoryRecord(_ArchiveRecord):
    parent_id: int = Field(0, alias="parentId", ge=0)
    name: str = Field(..., min_length=1)
    parent_name: str | None = Field(default=None, alias="parentName")


class LocationRecord(_ArchiveRecord):
    name: str = Field(..., min_length=1)
    remark: str | None = ""


class ItemRecord(_ArchiveRecord):
    uuid: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    parent_category_id: int = Field(0, alias="parentCategoryId", ge=0)
    child_category_id: int = Field(0, alias="childCategoryId", ge=0)
    location_id: int = Field(0, alias="locationId", ge=0)
    valid_time: int = Field(0, alias="validTime", ge=0)
    count: int = Field(1, ge=0)
    image_paths: str | None = Field(default="", alias="imagePaths")
    remark: str | None = ""
    parent_category_name: str | None = Field(default=None, alias="parentCategoryName")
    child_category_name: str | None = Field(default=None, alias="childCategoryName")
    location_name: str | None = Field(default=None, alias="locationName")


class ArchiveDocument(BaseModel):
    """Top-level JSON document; records are validated one at a time on import."""

    items: list[Any]
    categories: list[Any]
    locations: list[Any]


__all__ = [
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryOut",
    "LocationCreate",
    "LocationUpdate",
    "LocationOut",
    "ItemCreate",
    "ItemUpdate",
    "ItemOut",
    "ItemFilter",
    "RecycleRecordOut",
    "SoftDeleteRequest",
    "RecyclePairsRequest",
    "PurgeRequest",
    "CountResult",
    "ExportRequest",
    "ExportResult",
    "ImportRequest",
    "ImportResult",
    "HealthStatus",
    "CategoryRecord",
    "LocationRecord",
    "ItemRecord",
    "ArchiveDocument",
]

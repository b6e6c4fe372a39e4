"""Database models for inventory items, their tags and the recycle bin."""
from __future__ import annotations

import uuid as uuid_module
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base

IMAGE_PATH_SEPARATOR = ","


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def split_image_paths(value: str | None) -> list[str]:
    """Split a comma-joined image path string, dropping blank tokens."""

    if not value:
        return []
    return [token.strip() for token in value.split(IMAGE_PATH_SEPARATOR) if token.strip()]


def join_image_paths(paths: list[str]) -> str:
    return IMAGE_PATH_SEPARATOR.join(paths)


class TimestampMixin:
    """Mixin providing created/updated timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("parent_id", "name", name="uq_categories_parent_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    # 0 marks a top-level category.
    parent_id: Mapped[int] = mapped_column(Integer, default=0, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    @property
    def is_top_level(self) -> bool:
        return self.parent_id == 0


class Location(Base, TimestampMixin):
    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    remark: Mapped[str] = mapped_column(Text, default="", nullable=False)


class Item(Base, TimestampMixin):
    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint("count >= 0", name="ck_items_count_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    uuid: Mapped[str] = mapped_column(
        String(36),
        unique=True,
        nullable=False,
        default=lambda: str(uuid_module.uuid4()),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_category_id: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    child_category_id: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    location_id: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Epoch milliseconds; 0 means the item never expires.
    valid_time: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    image_paths: Mapped[str] = mapped_column(Text, default="", nullable=False)
    remark: Mapped[str] = mapped_column(Text, default="", nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    @property
    def image_path_list(self) -> list[str]:
        return split_image_paths(self.image_paths)


class RecycleRecord(Base):
    __tablename__ = "recycle_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    item_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    item_uuid: Mapped[str] = mapped_column(String(36), nullable=False)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    delete_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    delete_reason: Mapped[str | None] = mapped_column(String(255))


__all__ = [
    "Category",
    "Location",
    "Item",
    "RecycleRecord",
    "split_image_paths",
    "join_image_paths",
    "utcnow",
]

"""SQLAlchemy models for the catalog sync service.

These models are stored in the 'catalog_sync' schema, separate from any
storefront tables but in the same database.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Schema for all sync tables
SCHEMA = "catalog_sync"


class Base(DeclarativeBase):
    """Base class for all models."""

    __table_args__ = {"schema": SCHEMA}


# =============================================================================
# Enums
# =============================================================================


class HistoryStatus(str, PyEnum):
    """Status values recorded in the sync history ledger."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"
    PAUSED = "paused"


class ProductStatus(str, PyEnum):
    """Publication status of a local product."""

    PUBLISH = "publish"
    DRAFT = "draft"
    TRASH = "trash"


# =============================================================================
# Sync History
# =============================================================================


class SyncHistory(Base):
    """One row per sync session: counters, timing and terminal status."""

    __tablename__ = "sync_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    profile_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    sync_type: Mapped[str] = mapped_column(String(20), nullable=False, default="full")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=HistoryStatus.RUNNING.value, index=True
    )

    products_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    products_created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    products_updated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    products_failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    started_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False, index=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer)


# =============================================================================
# Sync Profiles
# =============================================================================


class SyncProfile(Base):
    """A sync scope: catalog filters plus pricing/language settings."""

    __tablename__ = "sync_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # API filters (category, productReference, active, hasImages, ...)
    filters: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)
    # exchange_rate, markup_percent, target_language
    settings: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )


# =============================================================================
# Local Product Store
# =============================================================================


class CatalogProduct(Base):
    """A product (or variant) imported from the external catalog."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sku: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # External reference; may carry synthetic suffixes
    reference: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    # Reference with the variant suffix stripped, groups parents and children
    reference_base: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    parent_id: Mapped[Optional[int]] = mapped_column(Integer)

    product_type: Mapped[str] = mapped_column(String(20), default="simple")
    status: Mapped[str] = mapped_column(String(20), default=ProductStatus.PUBLISH.value)
    name: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    description: Mapped[Optional[str]] = mapped_column(Text)
    regular_price: Mapped[Optional[float]] = mapped_column(Float)

    stock_quantity: Mapped[Optional[int]] = mapped_column(Integer)
    stock_status: Mapped[Optional[str]] = mapped_column(String(20))

    categories: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    images: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    attributes: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_products_status", "status"),
        {"schema": SCHEMA},
    )


class CatalogCategory(Base):
    """Local copy of the external category tree."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reference: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_reference: Mapped[Optional[str]] = mapped_column(String(255))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

"""Repositories over the sync profile and local product tables."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.config import Settings
from catalog_sync.infrastructure.database.models import (
    CatalogCategory,
    CatalogProduct,
    ProductStatus,
    SyncProfile,
)
from shared.constants import STOCK_IN_STOCK, STOCK_OUT_OF_STOCK

if TYPE_CHECKING:
    from catalog_sync.services.transformer import NormalizedProduct


# =============================================================================
# Profiles
# =============================================================================


@dataclass
class ProfileConfig:
    """Resolved settings for one sync scope, with global fallbacks applied."""

    id: int | None
    name: str
    filters: dict[str, Any] = field(default_factory=dict)
    exchange_rate: float = 1.0
    markup_percent: float = 0.0
    target_language: str = "en"

    def api_filters(self) -> dict[str, Any]:
        """Only the non-empty filters, shaped for the catalog API."""
        api_filters: dict[str, Any] = {}
        for key in ("category", "productReference", "NewerThan"):
            if self.filters.get(key):
                api_filters[key] = self.filters[key]
        for key in ("active", "hasImages", "hasVariants"):
            if self.filters.get(key):
                api_filters[key] = True
        product_ids = self.filters.get("productsIds")
        if product_ids and isinstance(product_ids, list):
            api_filters["productsIds"] = product_ids
        return api_filters


class ProfileRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Settings):
        self.session_factory = session_factory
        self.settings = settings

    def _to_config(self, profile: SyncProfile | None) -> ProfileConfig:
        if profile is None:
            return ProfileConfig(
                id=None,
                name="Default",
                exchange_rate=self.settings.exchange_rate,
                markup_percent=self.settings.markup_percent,
                target_language=self.settings.target_language,
            )
        settings = profile.settings or {}
        return ProfileConfig(
            id=profile.id,
            name=profile.name,
            filters=dict(profile.filters or {}),
            exchange_rate=float(settings.get("exchange_rate", self.settings.exchange_rate)),
            markup_percent=float(settings.get("markup_percent", self.settings.markup_percent)),
            target_language=settings.get("target_language", self.settings.target_language),
        )

    async def get_config(self, profile_id: int | None) -> ProfileConfig | None:
        """Resolve a scope. ``None`` is the default scope and always resolves."""
        async with self.session_factory() as session:
            if profile_id is None:
                profile = await session.scalar(
                    select(SyncProfile)
                    .where(SyncProfile.is_active.is_(True))
                    .order_by(SyncProfile.id)
                    .limit(1)
                )
                return self._to_config(profile)

            profile = await session.get(SyncProfile, profile_id)
            return self._to_config(profile) if profile else None

    async def list_active_ids(self) -> list[int]:
        async with self.session_factory() as session:
            return list(
                (
                    await session.scalars(
                        select(SyncProfile.id).where(SyncProfile.is_active.is_(True)).order_by(SyncProfile.id)
                    )
                ).all()
            )


# =============================================================================
# Products
# =============================================================================


class ProductRepository:
    """Writes to the local product store plus the bulk index reads."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _index(self, column) -> list[tuple[str, int]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(column, CatalogProduct.id)
                .where(
                    column.is_not(None),
                    column != "",
                    CatalogProduct.status != ProductStatus.TRASH.value,
                )
                .order_by(CatalogProduct.id)
            )
            return [(key, product_id) for key, product_id in result.all()]

    async def sku_index(self) -> list[tuple[str, int]]:
        return await self._index(CatalogProduct.sku)

    async def reference_index(self) -> list[tuple[str, int]]:
        return await self._index(CatalogProduct.reference)

    async def reference_base_index(self) -> list[tuple[str, int]]:
        return await self._index(CatalogProduct.reference_base)

    @staticmethod
    def _apply(product: CatalogProduct, data: "NormalizedProduct") -> None:
        product.sku = data.sku
        product.reference = data.reference
        product.reference_base = data.reference_base
        product.product_type = data.product_type
        product.status = data.status
        product.name = data.name
        product.description = data.description
        product.regular_price = data.regular_price
        product.categories = list(data.categories)
        product.images = list(data.images)
        product.attributes = dict(data.attributes)
        if data.stock_quantity is not None:
            product.stock_quantity = data.stock_quantity
            product.stock_status = STOCK_IN_STOCK if data.stock_quantity > 0 else STOCK_OUT_OF_STOCK

    async def create(self, data: "NormalizedProduct", parent_id: int | None = None) -> int:
        async with self.session_factory() as session:
            product = CatalogProduct(parent_id=parent_id)
            self._apply(product, data)
            session.add(product)
            await session.commit()
            return product.id

    async def update(self, product_id: int, data: "NormalizedProduct") -> None:
        async with self.session_factory() as session:
            product = await session.get(CatalogProduct, product_id)
            if product is None:
                raise LookupError(f"Product {product_id} no longer exists")
            self._apply(product, data)
            await session.commit()

    async def set_stock(self, product_id: int, quantity: int) -> bool:
        async with self.session_factory() as session:
            product = await session.get(CatalogProduct, product_id)
            if product is None:
                return False
            product.stock_quantity = quantity
            product.stock_status = STOCK_IN_STOCK if quantity > 0 else STOCK_OUT_OF_STOCK
            await session.commit()
            return True

    async def save_category(self, reference: str, name: str, parent_reference: str | None = None) -> int:
        async with self.session_factory() as session:
            category = await session.scalar(
                select(CatalogCategory).where(CatalogCategory.reference == reference)
            )
            if category is None:
                category = CatalogCategory(reference=reference)
                session.add(category)
            category.name = name
            category.parent_reference = parent_reference
            await session.commit()
            return category.id

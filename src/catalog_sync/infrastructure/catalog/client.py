"""HTTP client for the external product catalog API."""

from typing import Any

import httpx
import structlog

from catalog_sync.config import Settings
from catalog_sync.exceptions import CatalogApiError

logger = structlog.get_logger()


class CatalogApiClient:
    """Paginated access to products, categories and stock levels.

    Pages are 0-indexed. Callers must keep ``page_size`` constant for a
    whole pagination run: the API computes offsets as ``page * page_size``.
    """

    PRODUCTS_PATH = "/api/v1/products/filter"
    CATEGORIES_PATH = "/api/v1/categories/filter"
    STOCK_PATH = "/api/v1/stock/filter"
    CATEGORY_PAGE_SIZE = 100
    MAX_CATEGORY_PAGES = 100

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    @classmethod
    def from_settings(cls, settings: Settings) -> "CatalogApiClient":
        http = httpx.AsyncClient(
            base_url=settings.catalog_api_base_url,
            timeout=settings.catalog_api_timeout,
            headers={
                "X-API-KEY": settings.catalog_api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        return cls(http)

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> list[dict[str, Any]]:
        try:
            response = await self.http.post(path, json=payload)
        except httpx.HTTPError as e:
            raise CatalogApiError(f"Request to {path} failed: {e}") from e

        if response.status_code >= 400:
            raise CatalogApiError(
                f"Catalog API returned {response.status_code} for {path}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise CatalogApiError(f"Invalid JSON from {path}") from e

        if isinstance(body, dict):
            body = body.get("Data", body.get("data", []))
        if not isinstance(body, list):
            raise CatalogApiError(f"Unexpected response shape from {path}")
        return body

    async def fetch_page(
        self, page: int, page_size: int, filters: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Fetch one page of products matching ``filters``."""
        payload = {"Page": page, "PageSize": page_size, **(filters or {})}
        logger.debug("Fetching catalog page", page=page, page_size=page_size)
        return await self._post(self.PRODUCTS_PATH, payload)

    async def fetch_category_tree(self) -> list[dict[str, Any]]:
        """Fetch every category, paging until a short page."""
        categories: list[dict[str, Any]] = []
        for page in range(self.MAX_CATEGORY_PAGES):
            batch = await self._post(
                self.CATEGORIES_PATH, {"Page": page, "PageSize": self.CATEGORY_PAGE_SIZE}
            )
            categories.extend(batch)
            if len(batch) < self.CATEGORY_PAGE_SIZE:
                break
        return categories

    async def fetch_stock_page(self, page: int, page_size: int) -> list[dict[str, Any]]:
        """Fetch one page of ``{reference, stock}`` levels."""
        return await self._post(self.STOCK_PATH, {"Page": page, "PageSize": page_size})

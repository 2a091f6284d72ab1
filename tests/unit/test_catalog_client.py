"""Unit tests for the catalog API client."""

import json

import httpx
import pytest

from catalog_sync.exceptions import CatalogApiError
from catalog_sync.infrastructure.catalog import CatalogApiClient


def make_client(handler) -> CatalogApiClient:
    http = httpx.AsyncClient(base_url="http://catalog.test", transport=httpx.MockTransport(handler))
    return CatalogApiClient(http)


class TestCatalogApiClient:
    @pytest.mark.asyncio
    async def test_fetch_page_sends_pagination_and_filters(self) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"Data": [{"Reference": "A-1"}]})

        client = make_client(handler)
        records = await client.fetch_page(3, 50, {"Active": 1})
        await client.aclose()

        assert records == [{"Reference": "A-1"}]
        assert requests[0].url.path == CatalogApiClient.PRODUCTS_PATH
        assert json.loads(requests[0].content) == {"Page": 3, "PageSize": 50, "Active": 1}

    @pytest.mark.asyncio
    async def test_bare_list_body(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json=[{"Reference": "A-1"}]))
        assert await client.fetch_stock_page(0, 10) == [{"Reference": "A-1"}]

    @pytest.mark.asyncio
    async def test_error_status_raises(self) -> None:
        client = make_client(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(CatalogApiError) as exc_info:
            await client.fetch_page(0, 50)

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self) -> None:
        client = make_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(CatalogApiError, match="Invalid JSON"):
            await client.fetch_page(0, 50)

    @pytest.mark.asyncio
    async def test_unexpected_shape_raises(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json={"Data": "nope"}))

        with pytest.raises(CatalogApiError, match="Unexpected response shape"):
            await client.fetch_page(0, 50)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(CatalogApiError, match="failed"):
            await make_client(handler).fetch_page(0, 50)

    @pytest.mark.asyncio
    async def test_category_tree_pages_until_short_page(self) -> None:
        pages = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = json.loads(request.content)["Page"]
            pages.append(page)
            size = CatalogApiClient.CATEGORY_PAGE_SIZE if page == 0 else 3
            return httpx.Response(200, json=[{"Reference": f"C{page}-{i}"} for i in range(size)])

        categories = await make_client(handler).fetch_category_tree()

        assert pages == [0, 1]
        assert len(categories) == CatalogApiClient.CATEGORY_PAGE_SIZE + 3

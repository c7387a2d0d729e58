import httpx
import pytest

from catalog_sync.integrations.square.api_client import CatalogSchemaError
from catalog_sync.services.catalog_fetcher import fetch_all

from conftest import variation

PAGES = {
    None: {"cursor": "c1", "objects": [variation("A"), variation("B")]},
    "c1": {"cursor": "c2", "objects": [variation("C")]},
    "c2": {"objects": [variation("D")]},
}


def _paged_handler(seen_cursors, failing_cursor="__never__", failing_status=500):
    def handler(request: httpx.Request) -> httpx.Response:
        cursor = request.url.params.get("cursor")
        seen_cursors.append(cursor)
        if cursor == failing_cursor:
            return httpx.Response(failing_status, json={"errors": [{"code": "INTERNAL"}]})
        return httpx.Response(200, json=PAGES[cursor])

    return handler


@pytest.mark.asyncio
async def test_fetch_all_follows_cursors_in_order(make_client):
    seen = []

    async with make_client(_paged_handler(seen)) as client:
        result = await fetch_all(client)

    assert [v.id for v in result.variants] == ["A", "B", "C", "D"]
    assert result.complete is True
    assert seen == [None, "c1", "c2"]


@pytest.mark.asyncio
async def test_failed_page_returns_pages_fetched_before_it(make_client):
    seen = []

    async with make_client(_paged_handler(seen, failing_cursor="c1")) as client:
        result = await fetch_all(client)

    assert [v.id for v in result.variants] == ["A", "B"]
    assert result.complete is False
    # first page once, failing page on every attempt, nothing after it
    assert seen == [None, "c1", "c1", "c1", "c1"]


@pytest.mark.asyncio
async def test_rejected_page_is_not_retried(make_client):
    seen = []

    async with make_client(_paged_handler(seen, failing_cursor="c2", failing_status=400)) as client:
        result = await fetch_all(client)

    assert [v.id for v in result.variants] == ["A", "B", "C"]
    assert result.complete is False
    assert seen == [None, "c1", "c2"]


@pytest.mark.asyncio
async def test_missing_objects_field_is_an_empty_page(make_client):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    async with make_client(handler) as client:
        result = await fetch_all(client)

    assert result.variants == []
    assert result.complete is True


@pytest.mark.asyncio
async def test_malformed_object_fails_the_whole_fetch(make_client):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("cursor") is None:
            return httpx.Response(200, json={"cursor": "c1", "objects": [variation("A")]})
        bad = variation("B")
        del bad["item_variation_data"]["item_id"]
        return httpx.Response(200, json={"objects": [bad]})

    async with make_client(handler) as client:
        with pytest.raises(CatalogSchemaError):
            await fetch_all(client)

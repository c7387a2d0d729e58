import json

import httpx
import pytest

from catalog_sync.integrations.square.api_client import (
    CatalogSchemaError,
    SquareAPIError,
    SquareClientConfig,
)
from catalog_sync.integrations.square.models import SquareMoney, UpdatePayload, CatalogVariant

from conftest import variation


@pytest.mark.asyncio
async def test_requests_carry_auth_version_and_content_type_headers(make_client):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"objects": []})

    async with make_client(handler) as client:
        await client.list_catalog("ITEM_VARIATION")

    request = seen[0]
    assert request.headers["Authorization"] == "Bearer test_access_token"
    assert request.headers["Square-Version"] == "2025-10-16"
    assert request.headers["Content-Type"] == "application/json"
    assert request.url.path == "/v2/catalog/list"
    assert request.url.params["types"] == "ITEM_VARIATION"
    assert "cursor" not in request.url.params


def test_config_repr_hides_access_token():
    config = SquareClientConfig(access_token="super-secret")
    assert "super-secret" not in repr(config)


@pytest.mark.asyncio
async def test_transient_failures_are_retried(make_client):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection reset", request=request)
        if len(calls) == 2:
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, json={"objects": [variation("V1")]})

    async with make_client(handler) as client:
        page = await client.list_catalog("ITEM_VARIATION")

    assert len(calls) == 3
    assert [v.id for v in page.objects] == ["V1"]


@pytest.mark.asyncio
async def test_client_errors_raise_without_retry(make_client):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"errors": [{"code": "UNAUTHORIZED"}]})

    async with make_client(handler) as client:
        with pytest.raises(SquareAPIError) as exc_info:
            await client.list_catalog("ITEM_VARIATION")

    assert exc_info.value.status_code == 401
    assert "UNAUTHORIZED" in exc_info.value.body
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_retries_stop_after_three(make_client):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(429, json={"errors": [{"code": "RATE_LIMITED"}]})

    async with make_client(handler) as client:
        with pytest.raises(SquareAPIError) as exc_info:
            await client.list_catalog("ITEM_VARIATION")

    assert exc_info.value.status_code == 429
    assert len(calls) == 4


@pytest.mark.asyncio
async def test_unexpected_object_shape_is_a_schema_error(make_client):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"objects": [{"type": "ITEM_VARIATION", "id": "V1"}]})

    async with make_client(handler) as client:
        with pytest.raises(CatalogSchemaError):
            await client.list_catalog("ITEM_VARIATION")


@pytest.mark.asyncio
async def test_non_json_body_is_a_schema_error(make_client):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    async with make_client(handler) as client:
        with pytest.raises(CatalogSchemaError):
            await client.list_catalog("ITEM_VARIATION")


@pytest.mark.asyncio
async def test_batch_retrieve_sends_item_ids_and_reads_tax_ids(make_client):
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "objects": [
                    {"type": "ITEM", "id": "ITEM_1", "item_data": {"tax_ids": ["TAX_A", "TAX_B"]}},
                    {"type": "ITEM", "id": "ITEM_2", "item_data": {"name": "No tax"}},
                ]
            },
        )

    async with make_client(handler) as client:
        response = await client.batch_retrieve_items(["ITEM_1", "ITEM_2"])

    assert bodies == [
        {
            "object_ids": ["ITEM_1", "ITEM_2"],
            "include_category_path_to_root": False,
            "include_related_objects": False,
        }
    ]
    assert [item.first_tax_id for item in response.objects] == ["TAX_A", None]


@pytest.mark.asyncio
async def test_batch_upsert_payload_shape(make_client):
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"objects": []})

    variant = CatalogVariant.model_validate(variation("V1", version=7, price=135))
    update = UpdatePayload.for_price(variant, 170)

    async with make_client(handler) as client:
        await client.batch_upsert([[update]], idempotency_key="key-1")

    assert bodies == [
        {
            "batches": [
                {
                    "objects": [
                        {
                            "type": "ITEM_VARIATION",
                            "id": "V1",
                            "version": 7,
                            "item_variation_data": {
                                "price_money": {"amount": 170, "currency": "GBP"}
                            },
                        }
                    ]
                }
            ],
            "idempotency_key": "key-1",
        }
    ]
    assert update.item_variation_data.price_money == SquareMoney(amount=170, currency="GBP")

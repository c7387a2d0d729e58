import os
import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("SQUARE_LOCATION_ID", "LMN05M0VXFMN4")
os.environ.setdefault("SQUARE_APP_ID", "sq0idp-test")
os.environ.setdefault("SQUARE_ACCESS_TOKEN", "test_access_token")
os.environ.setdefault("STANDARD_RATE_TAX_ID", "TAX_STANDARD")
os.environ.setdefault("REDUCED_RATE_TAX_ID", "TAX_REDUCED")
os.environ.setdefault("ZERO_RATE_TAX_ID", "TAX_ZERO")

import httpx  # noqa: E402

from catalog_sync.integrations.square.api_client import (  # noqa: E402
    SquareCatalogClient,
    SquareClientConfig,
)
from catalog_sync.utils.retry import RetryPolicy  # noqa: E402

NO_WAIT = RetryPolicy(max_retries=3, initial_delay=0, multiplier=0, max_delay=0)


def variation(
    id: str,
    version: int = 1,
    upc: str | None = None,
    price: int | None = 135,
    cost: int | None = 86,
    item_id: str = "ITEM_1",
    currency: str = "GBP",
    is_deleted: bool = False,
) -> dict:
    """Raw ITEM_VARIATION object as returned by /v2/catalog/list."""
    data = {
        "item_id": item_id,
        "name": f"Variant {id}",
        "sku": f"SKU-{id}",
        "ordinal": 1,
        "pricing_type": "FIXED_PRICING",
        "track_inventory": True,
    }
    if upc is not None:
        data["upc"] = upc
    if price is not None:
        data["price_money"] = {"amount": price, "currency": currency}
    if cost is not None:
        data["default_unit_cost"] = {"amount": cost, "currency": currency}
    return {
        "type": "ITEM_VARIATION",
        "id": id,
        "updated_at": "2025-09-29T19:11:49.983Z",
        "version": version,
        "is_deleted": is_deleted,
        "present_at_all_locations": False,
        "item_variation_data": data,
    }


@pytest.fixture
def make_client():
    """Build a SquareCatalogClient whose requests go to ``handler``."""

    def factory(handler, retry_policy: RetryPolicy = NO_WAIT) -> SquareCatalogClient:
        config = SquareClientConfig(access_token="test_access_token", retry_policy=retry_policy)
        return SquareCatalogClient(config, transport=httpx.MockTransport(handler))

    return factory

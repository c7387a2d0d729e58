"""
Cursor-paginated catalog scan.
Pages through GET /v2/catalog/list and accumulates every object in memory.
"""

from dataclasses import dataclass, field
from typing import List

import structlog

from catalog_sync.integrations.square.api_client import SquareAPIError, SquareCatalogClient
from catalog_sync.integrations.square.models import ITEM_VARIATION, CatalogVariant

logger = structlog.get_logger()


@dataclass
class FetchResult:
    """Fetched variants. ``complete`` is False when a page failed and the scan stopped early."""

    variants: List[CatalogVariant] = field(default_factory=list)
    complete: bool = True


async def fetch_all(
    client: SquareCatalogClient, object_type: str = ITEM_VARIATION
) -> FetchResult:
    """
    Fetch all catalog objects of ``object_type``, following cursors until none is returned.

    A page that still fails after the client's retries ends the scan: the pages
    gathered so far are returned with ``complete=False``. A page whose objects do
    not decode as catalog variants raises ``CatalogSchemaError``.

    Args:
        client: Square catalog client
        object_type: Square catalog object type to list

    Returns:
        FetchResult with variants in cursor order
    """
    variants: List[CatalogVariant] = []
    cursor = None
    page_count = 0

    while True:
        page_count += 1
        try:
            page = await client.list_catalog(object_type, cursor=cursor)
        except SquareAPIError as e:
            logger.error(
                "Catalog page failed, returning partial results",
                page=page_count,
                status_code=e.status_code,
                error=str(e),
                fetched_so_far=len(variants),
            )
            return FetchResult(variants=variants, complete=False)

        variants.extend(page.objects)
        logger.debug(
            "Fetched page of catalog objects",
            page=page_count,
            objects_in_page=len(page.objects),
            total_so_far=len(variants),
        )

        cursor = page.cursor
        if not cursor:
            break

    logger.info("Fetched catalog", object_type=object_type, count=len(variants), pages=page_count)
    return FetchResult(variants=variants)

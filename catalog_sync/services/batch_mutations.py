"""
Batched writes against the Square catalog.
Resolves parent-item tax ids concurrently, deletes variants in chunks and
upserts new prices with one idempotency key per request.
"""

import asyncio
from collections.abc import Callable, Iterable, Sequence
from typing import Dict, List, Optional, TypeVar
from uuid import uuid4

import structlog

from catalog_sync.integrations.square.api_client import SquareAPIError, SquareCatalogClient
from catalog_sync.integrations.square.models import UpdatePayload

logger = structlog.get_logger()

T = TypeVar("T")

TAX_LOOKUP_CHUNK_SIZE = 1000
DELETE_CHUNK_SIZE = 200
UPSERT_BATCH_SIZE = 1000
UPSERT_MAX_OBJECTS_PER_REQUEST = 10000


class TaxLookupError(Exception):
    """Raised when any chunk of the tax id lookup fails."""

    pass


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def _tax_ids_for_chunk(
    client: SquareCatalogClient, item_ids: List[str]
) -> Dict[str, str]:
    response = await client.batch_retrieve_items(item_ids)
    tax_ids = {}
    for item in response.objects:
        tax_id = item.first_tax_id
        if tax_id:
            tax_ids[item.id] = tax_id
    return tax_ids


async def resolve_tax_ids(
    client: SquareCatalogClient,
    item_ids: Iterable[str],
    chunk_size: int = TAX_LOOKUP_CHUNK_SIZE,
) -> Dict[str, str]:
    """
    Map each parent item id to its first tax id.

    One batch-retrieve call per chunk, all chunks in flight together. The
    mapping is returned only once every chunk has answered; items without a
    tax id are absent from it.

    Raises:
        TaxLookupError: any chunk failed
    """
    unique_ids = sorted(set(item_ids))
    if not unique_ids:
        return {}

    chunks = chunked(unique_ids, chunk_size)
    logger.info("Resolving tax ids", items=len(unique_ids), chunks=len(chunks))
    results = await asyncio.gather(
        *(_tax_ids_for_chunk(client, chunk) for chunk in chunks),
        return_exceptions=True,
    )

    tax_ids: Dict[str, str] = {}
    for number, result in enumerate(results, start=1):
        if isinstance(result, SquareAPIError):
            logger.error("Tax id lookup failed", chunk=number, chunks=len(chunks), error=str(result))
            raise TaxLookupError(f"Tax id lookup failed for chunk {number}: {result}") from result
        if isinstance(result, BaseException):
            raise result
        tax_ids.update(result)

    logger.info(
        "Resolved tax ids",
        items=len(unique_ids),
        with_tax_id=len(tax_ids),
        without_tax_id=len(unique_ids) - len(tax_ids),
    )
    return tax_ids


async def delete_variants(
    client: SquareCatalogClient,
    variant_ids: Iterable[str],
    dry_run: bool = False,
    chunk_size: int = DELETE_CHUNK_SIZE,
) -> int:
    """
    Delete variants in sequential chunks.

    In dry-run mode each chunk is only logged. A failing chunk raises
    ``SquareAPIError`` and the remaining chunks are not sent.

    Returns:
        Number of ids deleted, or that would be deleted in dry-run mode
    """
    chunks = chunked(sorted(variant_ids), chunk_size)
    total = 0

    for number, chunk in enumerate(chunks, start=1):
        if dry_run:
            logger.info(
                "Dry run: would delete variants",
                chunk=number,
                chunks=len(chunks),
                chunk_size=len(chunk),
            )
        else:
            await client.batch_delete(chunk)
            logger.info(
                "Deleted variants",
                chunk=number,
                chunks=len(chunks),
                chunk_size=len(chunk),
            )
        total += len(chunk)

    logger.info("Delete finished", dry_run=dry_run, deleted=total)
    return total


async def upsert_prices(
    client: SquareCatalogClient,
    updates: Sequence[UpdatePayload],
    dry_run: bool = False,
    batch_size: int = UPSERT_BATCH_SIZE,
    max_objects_per_request: int = UPSERT_MAX_OBJECTS_PER_REQUEST,
    idempotency_key_factory: Optional[Callable[[], str]] = None,
) -> int:
    """
    Write new prices with batch-upsert, one request at a time.

    Each request carries up to ``max_objects_per_request`` objects split into
    batches of ``batch_size`` and a fresh idempotency key, which the client's
    retries reuse.

    Returns:
        Number of variants updated, or that would be updated in dry-run mode
    """
    new_key = idempotency_key_factory or (lambda: str(uuid4()))
    requests = chunked(list(updates), max_objects_per_request)
    total = 0

    for number, request_objects in enumerate(requests, start=1):
        batches = chunked(request_objects, batch_size)
        if dry_run:
            logger.info(
                "Dry run: would update prices",
                request=number,
                requests=len(requests),
                objects=len(request_objects),
            )
        else:
            idempotency_key = new_key()
            await client.batch_upsert(batches, idempotency_key=idempotency_key)
            logger.info(
                "Updated prices",
                request=number,
                requests=len(requests),
                objects=len(request_objects),
                idempotency_key=idempotency_key,
            )
        total += len(request_objects)

    logger.info("Price update finished", dry_run=dry_run, updated=total)
    return total

"""
Single-pass catalog worker.
Each command fetches a fresh copy of the catalog, computes its result and,
for the write commands, sends the changes back to Square (or previews them).
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog

from catalog_sync.config import Settings
from catalog_sync.integrations.square.api_client import SquareCatalogClient
from catalog_sync.integrations.square.models import ITEM_VARIATION, CatalogVariant, UpdatePayload
from catalog_sync.services import batch_mutations, duplicate_resolver, pricing
from catalog_sync.services.catalog_fetcher import FetchResult, fetch_all

logger = structlog.get_logger()

COMMANDS = (
    "list-duplicates",
    "delete-duplicates",
    "list-zero-margin",
    "apply-price-targets",
)


class CatalogWorker:
    """Runs one catalog command against a Square location."""

    def __init__(
        self,
        client: SquareCatalogClient,
        settings: Settings,
        tax_table: Optional[pricing.TaxTable] = None,
    ):
        self.client = client
        self.settings = settings
        self.tax_table = tax_table or pricing.TaxTable.from_settings(settings)

    async def _fetch(self) -> FetchResult:
        result = await fetch_all(self.client, ITEM_VARIATION)
        if not result.complete:
            logger.warning(
                "Catalog scan incomplete, results cover fetched pages only",
                fetched=len(result.variants),
            )
        return result

    async def list_duplicates(self) -> Dict[str, Any]:
        fetched = await self._fetch()
        groups = duplicate_resolver.group_duplicates(fetched.variants)
        for group in groups:
            logger.info(
                "Duplicate UPC",
                upc=group.upc,
                survivor=group.survivor.id,
                to_delete=group.to_delete,
            )
        to_delete = duplicate_resolver.resolve(fetched.variants)
        logger.info("Duplicate groups found", groups=len(groups), variants_to_delete=len(to_delete))
        return {
            "fetched": len(fetched.variants),
            "complete": fetched.complete,
            "groups": len(groups),
            "to_delete": len(to_delete),
        }

    async def delete_duplicates(self, dry_run: bool = False) -> Dict[str, Any]:
        fetched = await self._fetch()
        to_delete = duplicate_resolver.resolve(fetched.variants)
        deleted = await batch_mutations.delete_variants(
            self.client,
            to_delete,
            dry_run=dry_run,
            chunk_size=self.settings.delete_chunk_size,
        )
        return {
            "fetched": len(fetched.variants),
            "complete": fetched.complete,
            "deleted": deleted,
            "dry_run": dry_run,
        }

    async def list_zero_margin(self) -> Dict[str, Any]:
        fetched = await self._fetch()
        zero_margin = [v for v in fetched.variants if pricing.is_zero_margin(v)]
        for variant in zero_margin:
            logger.info(
                "Zero or negative margin",
                variant_id=variant.id,
                name=variant.item_variation_data.name,
                sku=variant.item_variation_data.sku,
                price=variant.price_money.amount,
                unit_cost=variant.default_unit_cost.amount,
            )
        logger.info("Zero margin variants found", count=len(zero_margin))
        return {
            "fetched": len(fetched.variants),
            "complete": fetched.complete,
            "zero_margin": len(zero_margin),
        }

    async def apply_price_targets(
        self, dry_run: bool = False, target_margin: Optional[Decimal] = None
    ) -> Dict[str, Any]:
        target = self.settings.target_margin if target_margin is None else target_margin
        fetched = await self._fetch()
        candidates = [v for v in fetched.variants if pricing.is_repricing_candidate(v)]
        logger.info("Pricing candidates selected", candidates=len(candidates))

        tax_ids = await batch_mutations.resolve_tax_ids(
            self.client,
            (v.item_id for v in candidates),
            chunk_size=self.settings.tax_lookup_chunk_size,
        )

        updates = self.price_updates(candidates, tax_ids, target)
        updated = await batch_mutations.upsert_prices(
            self.client,
            updates,
            dry_run=dry_run,
            batch_size=self.settings.upsert_batch_size,
            max_objects_per_request=self.settings.upsert_max_objects_per_request,
        )
        return {
            "fetched": len(fetched.variants),
            "complete": fetched.complete,
            "candidates": len(candidates),
            "updated": updated,
            "dry_run": dry_run,
        }

    def price_updates(
        self,
        candidates: List[CatalogVariant],
        tax_ids: Dict[str, str],
        target_margin: Decimal,
    ) -> List[UpdatePayload]:
        """
        Stage price updates for candidates whose margin is below ``target_margin``.

        Candidates whose parent item has no tax id are skipped. A tax id outside
        the tax table raises ``UnknownTaxCategoryError``.
        """
        updates = []
        skipped_untaxed = 0
        for variant in candidates:
            tax_id = tax_ids.get(variant.item_id)
            if tax_id is None:
                skipped_untaxed += 1
                continue
            new_amount = pricing.target_price(
                variant, self.tax_table.rate_for(tax_id), target_margin
            )
            if new_amount is not None:
                updates.append(UpdatePayload.for_price(variant, new_amount))

        logger.info(
            "Price updates staged",
            updates=len(updates),
            skipped_without_tax_id=skipped_untaxed,
            target_margin=str(target_margin),
        )
        return updates

    async def run(self, command: str, dry_run: bool = False, **options) -> Dict[str, Any]:
        """Dispatch one of ``COMMANDS``."""
        if command == "list-duplicates":
            return await self.list_duplicates()
        if command == "delete-duplicates":
            return await self.delete_duplicates(dry_run=dry_run)
        if command == "list-zero-margin":
            return await self.list_zero_margin()
        if command == "apply-price-targets":
            return await self.apply_price_targets(
                dry_run=dry_run, target_margin=options.get("target_margin")
            )
        raise ValueError(f"Unknown command: {command}")

"""
Entry point for running a catalog command once.
Usage: python -m catalog_sync.workers <command> [--dry-run] [--target-margin 0.40]
"""
import argparse
import asyncio
import sys
from decimal import Decimal, InvalidOperation

import structlog

from catalog_sync.config import settings
from catalog_sync.integrations.square.api_client import SquareCatalogClient, SquareClientConfig
from catalog_sync.utils.logger import configure_logging
from catalog_sync.workers.catalog_worker import COMMANDS, CatalogWorker

logger = structlog.get_logger()


def margin_fraction(value: str) -> Decimal:
    """argparse type: a margin-on-retail in [0, 1)."""
    try:
        margin = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a decimal: {value!r}")
    if not margin.is_finite() or not Decimal("0") <= margin < Decimal("1"):
        raise argparse.ArgumentTypeError(f"must be in [0, 1), got {value}")
    return margin


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Clean up and reprice the Square catalog.")
    parser.add_argument("command", choices=COMMANDS, help="Catalog command to run.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the deletes or price updates that would be sent without sending them.",
    )
    parser.add_argument(
        "--target-margin",
        type=margin_fraction,
        default=None,
        help="Margin-on-retail target for apply-price-targets (defaults to TARGET_MARGIN).",
    )
    return parser


async def main(command: str, dry_run: bool, target_margin: Decimal | None) -> int:
    config = SquareClientConfig.from_settings(settings)
    logger.info(
        "Catalog command starting",
        command=command,
        dry_run=dry_run,
        location_id=settings.square_location_id,
    )

    async with SquareCatalogClient(config) as client:
        worker = CatalogWorker(client, settings)
        try:
            result = await worker.run(command, dry_run=dry_run, target_margin=target_margin)
        except Exception as e:
            logger.error(
                "Catalog command failed",
                command=command,
                error=str(e),
                error_type=type(e).__name__,
            )
            return 1

    logger.info("Catalog command done", command=command, **result)
    return 0


if __name__ == "__main__":
    configure_logging()
    args = build_parser().parse_args()
    sys.exit(asyncio.run(main(args.command, args.dry_run, args.target_margin)))

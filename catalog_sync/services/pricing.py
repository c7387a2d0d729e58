"""
Fixed-point VAT and margin calculations for retail pricing.

Money arrives from Square as integer minor units and is converted to two-place
decimals by truncation. Each derived figure names its rounding mode:

- ``_truncate``: ROUND_DOWN to 2 places (minor-unit conversion, margin solve)
- ``_round``: ROUND_HALF_UP to 2 places (VAT, net, margin-on-retail)
- ``to_minor_units``: ROUND_HALF_UP to whole pennies

The order of these steps decides the final penny and must not be rearranged.
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, Optional

import structlog

from catalog_sync.config import Settings
from catalog_sync.integrations.square.models import CatalogVariant

logger = structlog.get_logger()

TWO_PLACES = Decimal("0.01")
ONE = Decimal("1")
HUNDRED = Decimal("100")


class UnknownTaxCategoryError(Exception):
    """Raised when a tax id does not map to a known VAT category."""

    pass


class TaxCategory(Enum):
    """VAT categories with their rates as decimal fractions."""

    STANDARD = Decimal("0.20")
    REDUCED = Decimal("0.05")
    ZERO = Decimal("0.00")

    @property
    def rate(self) -> Decimal:
        return self.value


class TaxTable:
    """Maps Square tax object ids onto the fixed set of VAT categories."""

    def __init__(self, categories_by_tax_id: Dict[str, TaxCategory]):
        self.categories_by_tax_id = dict(categories_by_tax_id)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TaxTable":
        configured = {
            settings.standard_rate_tax_id: TaxCategory.STANDARD,
            settings.reduced_rate_tax_id: TaxCategory.REDUCED,
            settings.zero_rate_tax_id: TaxCategory.ZERO,
        }
        return cls({tax_id: category for tax_id, category in configured.items() if tax_id})

    def rate_for(self, tax_id: str) -> Decimal:
        """
        Look up the VAT rate for a Square tax id.

        Raises:
            UnknownTaxCategoryError: the id is not configured; no default rate is assumed
        """
        category = self.categories_by_tax_id.get(tax_id)
        if category is None:
            raise UnknownTaxCategoryError(f"Tax id {tax_id!r} is not a known VAT category")
        return category.rate


def _truncate(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_DOWN)


def _round(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def from_minor_units(amount: int) -> Decimal:
    """Convert pennies to a two-place decimal, truncating."""
    return _truncate(Decimal(amount) / HUNDRED)


def to_minor_units(value: Decimal) -> int:
    """Convert a decimal amount to whole pennies, rounding half up."""
    return int((value * HUNDRED).quantize(ONE, rounding=ROUND_HALF_UP))


def round_to_retail_ending(value: Decimal) -> Decimal:
    """
    Snap a price's final penny digit to a retail ending.

    Last digit 0-2 becomes 0, 3-5 becomes 5, 6-9 becomes 9, so 1.71 -> 1.70,
    1.73 -> 1.75 and 1.97 -> 1.99. Negative amounts keep their sign.
    """
    pennies = to_minor_units(value)
    sign = -1 if pennies < 0 else 1
    magnitude = abs(pennies)
    last_digit = magnitude % 10
    if last_digit <= 2:
        ending = 0
    elif last_digit <= 5:
        ending = 5
    else:
        ending = 9
    snapped = magnitude - last_digit + ending
    return Decimal(sign * snapped) / HUNDRED


@dataclass(frozen=True)
class PriceFigures:
    """Retail price, unit cost and VAT rate; every other figure is derived."""

    retail_price: Decimal
    unit_cost: Decimal
    tax_rate: Decimal

    @classmethod
    def from_minor_units(cls, price: int, cost: int, tax_rate: Decimal) -> "PriceFigures":
        return cls(
            retail_price=from_minor_units(price),
            unit_cost=from_minor_units(cost),
            tax_rate=tax_rate,
        )

    @property
    def vat(self) -> Decimal:
        return _round(self.retail_price - self.retail_price / (ONE + self.tax_rate))

    @property
    def net(self) -> Decimal:
        return _round(self.retail_price - self.vat)

    @property
    def profit(self) -> Decimal:
        return self.net - self.unit_cost

    @property
    def margin_on_retail(self) -> Decimal:
        return _round(self.profit / self.net)

    def set_margin(self, target_margin: Decimal) -> "PriceFigures":
        """
        Solve for the retail price that yields ``target_margin`` on the unit cost.

        net' = cost / (1 - target), gross' = truncate(net') * (1 + rate),
        price = truncate(gross').
        """
        if not Decimal("0") <= target_margin < ONE:
            raise ValueError(f"Target margin must be in [0, 1), got {target_margin}")
        target_net = _truncate(self.unit_cost / (ONE - target_margin))
        gross = _truncate(target_net * (ONE + self.tax_rate))
        return PriceFigures(retail_price=gross, unit_cost=self.unit_cost, tax_rate=self.tax_rate)


def is_zero_margin(variant: CatalogVariant) -> bool:
    """True when the variant has both money fields and sells at or below cost."""
    price, cost = variant.price_money, variant.default_unit_cost
    if price is None or cost is None:
        return False
    return price.amount <= cost.amount


def is_repricing_candidate(variant: CatalogVariant) -> bool:
    """
    True when the variant can be repriced automatically.

    Needs both money fields, a positive price and cost, and a cost below the price.
    """
    if variant.is_deleted:
        return False
    price, cost = variant.price_money, variant.default_unit_cost
    if price is None or cost is None:
        return False
    return 0 < cost.amount < price.amount


def target_price(
    variant: CatalogVariant, tax_rate: Decimal, target_margin: Decimal
) -> Optional[int]:
    """
    New retail price in pennies for a variant below ``target_margin``.

    Returns None when the variant is not a candidate, already meets the target,
    or retail rounding would leave the price unchanged or lower it.
    """
    if not is_repricing_candidate(variant):
        return None

    figures = PriceFigures.from_minor_units(
        variant.price_money.amount, variant.default_unit_cost.amount, tax_rate
    )
    if figures.margin_on_retail >= target_margin:
        return None

    retargeted = figures.set_margin(target_margin)
    new_amount = to_minor_units(round_to_retail_ending(retargeted.retail_price))
    if new_amount <= variant.price_money.amount:
        return None

    logger.debug(
        "Retargeted variant price",
        variant_id=variant.id,
        margin_on_retail=str(figures.margin_on_retail),
        old_amount=variant.price_money.amount,
        new_amount=new_amount,
    )
    return new_amount

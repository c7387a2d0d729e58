"""
Pydantic models for the Square Catalog API objects consumed by catalog sync.
Only the fields read or written here are declared; everything else is ignored.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ITEM_VARIATION = "ITEM_VARIATION"


class SquareMoney(BaseModel):
    """Square Money object - amount is in minor units (pennies/cents)."""

    amount: int
    currency: str


class ItemVariationData(BaseModel):
    """The item_variation_data block of an ITEM_VARIATION catalog object."""

    item_id: str
    name: str = ""
    sku: str | None = None
    upc: str | None = None  # Barcode, not unique in Square
    pricing_type: str | None = None
    price_money: SquareMoney | None = None
    default_unit_cost: SquareMoney | None = None


class CatalogVariant(BaseModel):
    """A Square ITEM_VARIATION catalog object."""

    type: Literal["ITEM_VARIATION"]
    id: str
    version: int
    is_deleted: bool = False
    item_variation_data: ItemVariationData

    @property
    def item_id(self) -> str:
        return self.item_variation_data.item_id

    @property
    def upc(self) -> str | None:
        return self.item_variation_data.upc or None

    @property
    def price_money(self) -> SquareMoney | None:
        return self.item_variation_data.price_money

    @property
    def default_unit_cost(self) -> SquareMoney | None:
        return self.item_variation_data.default_unit_cost


class ListCatalogResponse(BaseModel):
    """Response of GET /v2/catalog/list. A missing cursor ends pagination."""

    cursor: str | None = None
    objects: list[CatalogVariant] = Field(default_factory=list)


class ItemData(BaseModel):
    """The item_data block of a parent ITEM object."""

    tax_ids: list[str] = Field(default_factory=list)


class CatalogItem(BaseModel):
    """A parent ITEM object as returned by batch-retrieve."""

    id: str
    item_data: ItemData | None = None

    @property
    def first_tax_id(self) -> str | None:
        if not self.item_data or not self.item_data.tax_ids:
            return None
        return self.item_data.tax_ids[0]


class BatchRetrieveResponse(BaseModel):
    """Response of POST /v2/catalog/batch-retrieve."""

    objects: list[CatalogItem] = Field(default_factory=list)


class PriceUpdateData(BaseModel):
    price_money: SquareMoney


class UpdatePayload(BaseModel):
    """Minimal ITEM_VARIATION object sent to batch-upsert to change a price in place."""

    model_config = ConfigDict(frozen=True)

    type: Literal["ITEM_VARIATION"] = ITEM_VARIATION
    id: str
    version: int | None = None
    item_variation_data: PriceUpdateData

    @classmethod
    def for_price(cls, variant: CatalogVariant, amount: int) -> "UpdatePayload":
        """Stage a new price for ``variant``, keeping its id, version and currency."""
        if variant.price_money is None:
            raise ValueError(f"Variant {variant.id} has no price_money to update")
        currency = variant.price_money.currency
        return cls(
            id=variant.id,
            version=variant.version,
            item_variation_data=PriceUpdateData(
                price_money=SquareMoney(amount=amount, currency=currency)
            ),
        )

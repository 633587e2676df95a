from __future__ import annotations

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from bundlecart.core.enums import ProductType
from bundlecart.infrastructure.db.models import Product, ProductVariation
from bundlecart.infrastructure.db.repositories import ProductRepository

ZERO = Decimal("0.00")


class CatalogService:
    """Read-only catalog lookups used by bundle resolution and pricing."""

    def __init__(self, session: AsyncSession) -> None:
        self._products = ProductRepository(session)

    async def get_product(self, product_id: int) -> Product | None:
        return await self._products.get_by_id(product_id)

    async def get_variation(self, variation_id: int, parent_id: int) -> ProductVariation | None:
        return await self._products.get_variation(variation_id, parent_id=parent_id)

    async def get_variations(self, variation_ids: list[int]) -> dict[int, ProductVariation]:
        return await self._products.get_variations(variation_ids)

    async def list_variations(self, product_id: int) -> list[ProductVariation]:
        return await self._products.list_variations(product_id)


def is_variable(product: Product) -> bool:
    return product.product_type == ProductType.VARIABLE


def is_bundle(product: Product) -> bool:
    return product.product_type == ProductType.BUNDLE


def is_purchasable(unit: Product | ProductVariation, *, parent: Product | None = None) -> bool:
    if not unit.is_active or unit.price is None:
        return False
    if parent is not None and not parent.is_active:
        return False
    return True


def is_in_stock(unit: Product | ProductVariation, quantity: int = 1) -> bool:
    if unit.inventory is None:
        return True
    return unit.inventory > 0 and unit.inventory >= quantity


def reference_price(unit: Product | ProductVariation) -> Decimal:
    """Undiscounted price of a unit, falling back to its current price."""
    regular = Decimal(unit.regular_price) if unit.regular_price is not None else ZERO
    if regular > 0:
        return regular
    current = Decimal(unit.price) if unit.price is not None else ZERO
    return current if current > 0 else ZERO

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from bundlecart.core.enums import RejectionReason
from bundlecart.core.logging import get_logger
from bundlecart.infrastructure.db.models import Product, ProductVariation
from bundlecart.services.bundle_catalog import BundleDefinition, BundleRejection, BundleSlotDefinition
from bundlecart.services.catalog_service import (
    CatalogService,
    is_bundle,
    is_in_stock,
    is_purchasable,
    is_variable,
    reference_price,
)

MISSING_COLOR_MESSAGE = "Please select a color for all bundle items."
MISSING_SIZE_MESSAGE = "Please select a size for all bundle items."
PRODUCT_UNAVAILABLE_MESSAGE = "Selected product is not available."
SIZE_UNAVAILABLE_MESSAGE = "Selected size is not available."
SIZE_OUT_OF_STOCK_MESSAGE = "Selected size is out of stock."
PRODUCT_OUT_OF_STOCK_MESSAGE = "Selected product is out of stock."


@dataclass(slots=True, frozen=True)
class VariantSelection:
    slot_key: str
    product_id: int | None = None
    variation_id: int | None = None


@dataclass(slots=True, frozen=True)
class ResolvedUnit:
    slot_key: str
    slot_label: str
    product_id: int
    variation_id: int | None
    quantity: int
    name: str
    reference_unit_price: Decimal
    attributes: dict[str, str]


class VariantResolver:
    """Turns per-slot selections into concrete purchasable units.

    Resolution is all-or-nothing: the first slot that cannot be resolved
    raises :class:`BundleRejection` and nothing is returned for the others.
    """

    def __init__(self, catalog: CatalogService) -> None:
        self._catalog = catalog
        self._log = get_logger(__name__)

    async def resolve(
        self,
        definition: BundleDefinition,
        selections: Iterable[VariantSelection],
        *,
        bundle_quantity: int = 1,
    ) -> list[ResolvedUnit]:
        by_slot = {selection.slot_key: selection for selection in selections}
        bundle_quantity = max(1, bundle_quantity)

        resolved: list[ResolvedUnit] = []
        for slot in definition.slots:
            try:
                resolved.append(await self._resolve_slot(slot, by_slot.get(slot.slot_key), bundle_quantity))
            except BundleRejection as exc:
                exc.slot_key = slot.slot_key
                exc.selections = {
                    key: {"product_id": value.product_id, "variation_id": value.variation_id}
                    for key, value in by_slot.items()
                }
                self._log.info(
                    "bundle_selection_rejected",
                    bundle_id=definition.bundle_id,
                    slot_key=slot.slot_key,
                    reason=exc.reason.value,
                )
                raise
        return resolved

    async def _resolve_slot(
        self,
        slot: BundleSlotDefinition,
        selection: VariantSelection | None,
        bundle_quantity: int,
    ) -> ResolvedUnit:
        if selection is None or not selection.product_id:
            raise BundleRejection(RejectionReason.MISSING_COLOR, MISSING_COLOR_MESSAGE)
        if selection.product_id not in slot.allowed_product_ids:
            raise BundleRejection(RejectionReason.MISSING_COLOR, MISSING_COLOR_MESSAGE)

        product = await self._catalog.get_product(selection.product_id)
        if product is None or is_bundle(product):
            raise BundleRejection(RejectionReason.NOT_PURCHASABLE, PRODUCT_UNAVAILABLE_MESSAGE)

        required = bundle_quantity * slot.quantity

        if is_variable(product):
            variation = await self._resolve_variation(product, selection.variation_id, required)
            return ResolvedUnit(
                slot_key=slot.slot_key,
                slot_label=slot.label,
                product_id=product.id,
                variation_id=variation.id,
                quantity=slot.quantity,
                name=product.name,
                reference_unit_price=reference_price(variation),
                attributes={str(key): str(value) for key, value in (variation.attributes or {}).items()},
            )

        if not is_purchasable(product):
            raise BundleRejection(RejectionReason.NOT_PURCHASABLE, PRODUCT_UNAVAILABLE_MESSAGE)
        if not is_in_stock(product, required):
            raise BundleRejection(RejectionReason.OUT_OF_STOCK, PRODUCT_OUT_OF_STOCK_MESSAGE)

        return ResolvedUnit(
            slot_key=slot.slot_key,
            slot_label=slot.label,
            product_id=product.id,
            variation_id=None,
            quantity=slot.quantity,
            name=product.name,
            reference_unit_price=reference_price(product),
            attributes={},
        )

    async def _resolve_variation(
        self,
        product: Product,
        variation_id: int | None,
        required: int,
    ) -> ProductVariation:
        if not variation_id:
            raise BundleRejection(RejectionReason.MISSING_SIZE, MISSING_SIZE_MESSAGE)

        variation = await self._catalog.get_variation(variation_id, product.id)
        if variation is None or not is_purchasable(variation, parent=product):
            raise BundleRejection(RejectionReason.NOT_PURCHASABLE, SIZE_UNAVAILABLE_MESSAGE)
        if not is_in_stock(variation, required):
            raise BundleRejection(RejectionReason.OUT_OF_STOCK, SIZE_OUT_OF_STOCK_MESSAGE)
        return variation

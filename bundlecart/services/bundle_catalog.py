from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from bundlecart.core.enums import RejectionReason
from bundlecart.core.security import issue_form_token
from bundlecart.infrastructure.db.models import Product, ProductVariation
from bundlecart.infrastructure.db.repositories import ProductBundleRepository, ProductRepository
from bundlecart.services.catalog_service import (
    ZERO,
    is_bundle,
    is_in_stock,
    is_purchasable,
    is_variable,
    reference_price,
)

ONE_SIZE = "one-size"
SIZE_LIKE_PATTERNS = ("size", "madh", "masa", "talla", "taglia", "taille", "grösse", "grosse", "rozmiar")
COLOR_LIKE_PATTERNS = ("color", "colour")
_TITLE_SUFFIX = re.compile(r"\s+[-–—]\s+")


class BundleError(RuntimeError):
    """Base error for bundle handling."""


class BundleNotFoundError(BundleError):
    """Raised when a product id does not refer to a bundle product."""


class BundleRejection(BundleError):
    """An add-to-cart submission was refused; nothing was added to the cart."""

    def __init__(
        self,
        reason: RejectionReason,
        message: str,
        *,
        slot_key: str | None = None,
        selections: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.slot_key = slot_key
        self.selections = dict(selections or {})


@dataclass(slots=True, frozen=True)
class BundleSlotDefinition:
    slot_key: str
    label: str
    quantity: int
    allowed_product_ids: tuple[int, ...]


@dataclass(slots=True, frozen=True)
class BundleDefinition:
    bundle_id: int
    name: str
    bundle_price: Decimal
    currency: str
    slots: tuple[BundleSlotDefinition, ...]

    @property
    def is_configured(self) -> bool:
        return bool(self.slots)

    def get_slot(self, slot_key: str) -> BundleSlotDefinition | None:
        for slot in self.slots:
            if slot.slot_key == slot_key:
                return slot
        return None


@dataclass(slots=True)
class SizeOption:
    variation_id: int | None
    regular_price: Decimal
    price: Decimal
    in_stock: bool


@dataclass(slots=True)
class ColorOption:
    product_id: int
    name: str
    color: str
    is_variable: bool
    regular_price: Decimal
    sizes: dict[str, SizeOption] = field(default_factory=dict)


@dataclass(slots=True)
class SlotForm:
    slot_key: str
    label: str
    quantity: int
    options: list[ColorOption]


@dataclass(slots=True)
class BundleForm:
    bundle_id: int
    name: str
    bundle_price: Decimal
    currency: str
    form_token: str
    slots: list[SlotForm]


class BundleCatalogService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._products = ProductRepository(session)
        self._bundles = ProductBundleRepository(session)

    async def get_definition(self, bundle_id: int) -> BundleDefinition:
        bundle = await self._products.get_by_id(bundle_id)
        if bundle is None or not is_bundle(bundle):
            raise BundleNotFoundError(f"Product {bundle_id} is not a bundle")

        slots = await self._bundles.list_slots(bundle.id)
        option_ids = await self._bundles.list_option_ids(bundle.id)
        candidates = {product_id for ids in option_ids.values() for product_id in ids}
        products = await self._products.get_many(candidates)

        definitions: list[BundleSlotDefinition] = []
        for slot in slots:
            allowed = tuple(
                product_id
                for product_id in option_ids.get(slot.id, [])
                if self._is_resolvable(products.get(product_id))
            )
            if not allowed:
                continue
            definitions.append(
                BundleSlotDefinition(
                    slot_key=slot.slot_key,
                    label=slot.label,
                    quantity=max(1, slot.quantity),
                    allowed_product_ids=allowed,
                )
            )

        return BundleDefinition(
            bundle_id=bundle.id,
            name=bundle.name,
            bundle_price=Decimal(bundle.price) if bundle.price is not None else ZERO,
            currency=bundle.currency,
            slots=tuple(definitions),
        )

    async def require_definition(self, bundle_id: int) -> BundleDefinition:
        definition = await self.get_definition(bundle_id)
        if not definition.is_configured:
            raise BundleRejection(RejectionReason.NOT_CONFIGURED, "This bundle is not configured.")
        return definition

    async def build_form(self, bundle_id: int, *, session_key: str) -> BundleForm:
        definition = await self.get_definition(bundle_id)
        candidates = {product_id for slot in definition.slots for product_id in slot.allowed_product_ids}
        products = await self._products.get_many(candidates)

        slot_forms: list[SlotForm] = []
        for slot in definition.slots:
            options: list[ColorOption] = []
            for product_id in slot.allowed_product_ids:
                product = products.get(product_id)
                if product is None:
                    continue
                options.append(await self._build_color_option(product))
            if options:
                slot_forms.append(
                    SlotForm(slot_key=slot.slot_key, label=slot.label, quantity=slot.quantity, options=options)
                )

        if not slot_forms:
            raise BundleRejection(RejectionReason.NOT_CONFIGURED, "This bundle is not configured yet.")

        return BundleForm(
            bundle_id=definition.bundle_id,
            name=definition.name,
            bundle_price=definition.bundle_price,
            currency=definition.currency,
            form_token=issue_form_token(session_key),
            slots=slot_forms,
        )

    async def _build_color_option(self, product: Product) -> ColorOption:
        variable = is_variable(product)
        sizes: dict[str, SizeOption] = {}
        product_regular = reference_price(product)

        if variable:
            variations = [
                variation
                for variation in await self._products.list_variations(product.id)
                if is_purchasable(variation, parent=product)
            ]
            size_key = detect_size_attribute(variation.attributes or {} for variation in variations)
            if size_key is not None:
                sizes = _collect_sizes(variations, size_key)
            if product_regular <= 0 and sizes:
                product_regular = min(option.regular_price for option in sizes.values())
        else:
            sizes[ONE_SIZE] = SizeOption(
                variation_id=None,
                regular_price=product_regular,
                price=Decimal(product.price) if product.price is not None else ZERO,
                in_stock=is_in_stock(product),
            )

        return ColorOption(
            product_id=product.id,
            name=product.name,
            color=color_label(product),
            is_variable=variable,
            regular_price=product_regular,
            sizes=sizes,
        )

    @staticmethod
    def _is_resolvable(product: Product | None) -> bool:
        return product is not None and product.is_active and not is_bundle(product)


def color_label(product: Product) -> str:
    for name, value in (product.attributes or {}).items():
        if any(pattern in str(name).lower() for pattern in COLOR_LIKE_PATTERNS):
            label = str(value or "").strip()
            if label:
                return label

    parts = _TITLE_SUFFIX.split(product.name)
    if len(parts) > 1:
        suffix = parts[-1].strip()
        if suffix:
            return suffix
    return product.name


def detect_size_attribute(attribute_sets: Iterable[Mapping[str, object]]) -> str | None:
    values_by_key: dict[str, set[str]] = {}
    for attributes in attribute_sets:
        for key, value in attributes.items():
            key = str(key)
            if not key:
                continue
            values = values_by_key.setdefault(key, set())
            if value not in (None, ""):
                values.add(str(value))

    if not values_by_key:
        return None

    for key in values_by_key:
        lowered = key.lower()
        if any(pattern in lowered for pattern in SIZE_LIKE_PATTERNS):
            return key

    if len(values_by_key) == 1:
        return next(iter(values_by_key))

    return max(values_by_key, key=lambda key: len(values_by_key[key]))


def _collect_sizes(variations: list[ProductVariation], size_key: str) -> dict[str, SizeOption]:
    sizes: dict[str, SizeOption] = {}
    for variation in variations:
        size_value = str((variation.attributes or {}).get(size_key) or "")
        if not size_value:
            continue
        option = SizeOption(
            variation_id=variation.id,
            regular_price=reference_price(variation),
            price=Decimal(variation.price) if variation.price is not None else ZERO,
            in_stock=is_in_stock(variation),
        )
        existing = sizes.get(size_value)
        # Duplicates keep the first in-stock variation.
        if existing is None or (not existing.in_stock and option.in_stock):
            sizes[size_value] = option
    return sizes

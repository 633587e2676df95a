from __future__ import annotations

import re
import secrets
import string
import unicodedata
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

import orjson
from sqlalchemy.ext.asyncio import AsyncSession

from bundlecart.core.config import get_settings
from bundlecart.core.enums import ProductType
from bundlecart.core.logging import get_logger
from bundlecart.infrastructure.db.models import BundleSlot, Product, ProductVariation
from bundlecart.infrastructure.db.repositories import ProductBundleRepository, ProductRepository
from bundlecart.services.bundle_catalog import BundleCatalogService
from bundlecart.services.catalog_service import is_bundle

_SLOT_KEY_INVALID = re.compile(r"[^a-z0-9_-]+")
_SLOT_KEY_ALPHABET = string.ascii_lowercase + string.digits


class ProductAdminError(RuntimeError):
    """Base error for catalog and bundle administration."""


class ProductNotFoundError(ProductAdminError):
    """Raised when a product is missing."""


class ProductValidationError(ProductAdminError):
    """Raised when provided data is invalid."""


class BundleConfigurationError(ProductAdminError):
    """Raised when bundle configuration is invalid."""


@dataclass(slots=True)
class ProductInput:
    name: str
    price: Decimal | None
    currency: str | None = None
    product_type: ProductType = ProductType.SIMPLE
    regular_price: Decimal | None = None
    sku: str | None = None
    summary: str | None = None
    inventory: int | None = None
    max_per_order: int | None = None
    attributes: dict[str, str] | None = None
    is_active: bool = True
    position: int | None = None


@dataclass(slots=True)
class VariationInput:
    attributes: dict[str, str]
    price: Decimal | None
    regular_price: Decimal | None = None
    sku: str | None = None
    inventory: int | None = None
    is_active: bool = True


@dataclass(slots=True)
class SlotInput:
    key: str | None = None
    label: str | None = None
    quantity: Any = 1
    product_ids: list[Any] = field(default_factory=list)


@dataclass(slots=True)
class _CleanSlot:
    key: str
    label: str
    quantity: int
    product_ids: list[int]


class BundleAdminService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._products = ProductRepository(session)
        self._bundles = ProductBundleRepository(session)
        self._catalog = BundleCatalogService(session)
        self._log = get_logger(__name__)

    async def get_product(self, product_id: int) -> Product:
        product = await self._products.get_by_id(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return product

    async def create_product(self, data: ProductInput) -> Product:
        name = data.name.strip()
        if not name:
            raise ProductValidationError("Name cannot be empty.")
        self._ensure_amount(data.price, "Price")
        self._ensure_amount(data.regular_price, "Regular price")
        if data.inventory is not None and data.inventory < 0:
            raise ProductValidationError("Inventory cannot be negative.")
        if data.max_per_order is not None and data.max_per_order <= 0:
            raise ProductValidationError("Max per order must be greater than zero.")

        position = data.position
        if position is None:
            position = await self._products.get_next_position()

        product = Product(
            name=name,
            slug=await self._generate_unique_slug(name),
            sku=data.sku,
            summary=data.summary,
            product_type=data.product_type,
            price=data.price,
            regular_price=data.regular_price,
            currency=(data.currency or get_settings().store_currency).upper(),
            inventory=data.inventory,
            max_per_order=data.max_per_order,
            is_active=data.is_active,
            position=position,
            attributes=data.attributes,
            extra_attrs=None,
        )
        await self._products.add_product(product)
        return product

    async def add_variation(self, product_id: int, data: VariationInput) -> ProductVariation:
        product = await self.get_product(product_id)
        if product.product_type != ProductType.VARIABLE:
            raise ProductValidationError("Only variable products can have variations.")
        if not data.attributes:
            raise ProductValidationError("Variation attributes are required.")
        self._ensure_amount(data.price, "Price")
        self._ensure_amount(data.regular_price, "Regular price")
        if data.inventory is not None and data.inventory < 0:
            raise ProductValidationError("Inventory cannot be negative.")

        variation = ProductVariation(
            product_id=product.id,
            sku=data.sku,
            attributes={str(key): str(value) for key, value in data.attributes.items()},
            price=data.price,
            regular_price=data.regular_price,
            inventory=data.inventory,
            is_active=data.is_active,
            position=await self._products.get_next_variation_position(product.id),
        )
        await self._products.add_variation(variation)
        return variation

    async def save_bundle(
        self,
        bundle_product_id: int,
        slots: Iterable[SlotInput],
        *,
        price: Any = None,
    ) -> list[BundleSlot]:
        """Replace the slots of a bundle product with a sanitized copy of ``slots``.

        Slots left without a valid product are dropped.
        """
        product = await self.get_product(bundle_product_id)
        bundle_price = self._parse_bundle_price(price)

        cleaned = await self._sanitize_slots(slots, exclude_id=product.id)

        product.product_type = ProductType.BUNDLE
        if bundle_price is not None:
            product.price = bundle_price
            product.regular_price = bundle_price

        await self._bundles.clear_slots(product.id)
        saved: list[BundleSlot] = []
        for position, slot in enumerate(cleaned, start=1):
            saved.append(
                await self._bundles.add_slot(
                    bundle_product_id=product.id,
                    slot_key=slot.key,
                    label=slot.label,
                    quantity=slot.quantity,
                    position=position,
                    product_ids=slot.product_ids,
                )
            )
        await self._session.flush()
        self._log.info(
            "bundle_saved",
            bundle_id=product.id,
            slots=len(saved),
            price=bundle_price,
        )
        return saved

    async def search_products(self, term: str, *, limit: int | None = None) -> list[Product]:
        limit = limit if limit is not None else get_settings().product_search_limit
        return list(await self._products.search(term.strip(), limit=max(1, limit)))

    async def audit_bundles(self) -> list[int]:
        """Ids of bundle products that cannot be offered for sale."""
        broken: list[int] = []
        for product in await self._products.list_by_type(ProductType.BUNDLE):
            definition = await self._catalog.get_definition(product.id)
            if not definition.is_configured:
                broken.append(product.id)
        if broken:
            self._log.warning("bundles_not_configured", bundle_ids=broken)
        return broken

    async def _sanitize_slots(self, slots: Iterable[SlotInput], *, exclude_id: int) -> list[_CleanSlot]:
        pending: list[tuple[str, str, int, list[int]]] = []
        candidates: set[int] = set()
        for slot in slots:
            product_ids = _clean_product_ids(slot.product_ids)
            candidates.update(product_ids)
            pending.append(
                (
                    _clean_slot_key(slot.key),
                    str(slot.label or "").strip(),
                    max(1, _to_int(slot.quantity, default=1)),
                    product_ids,
                )
            )

        products = await self._products.get_many(candidates)
        allowed = {
            product_id
            for product_id, product in products.items()
            if product_id != exclude_id and not is_bundle(product)
        }

        cleaned: list[_CleanSlot] = []
        used_keys: set[str] = set()
        for key, label, quantity, product_ids in pending:
            product_ids = [product_id for product_id in product_ids if product_id in allowed]
            if not product_ids:
                continue
            key = key or f"item_{_random_suffix()}"
            if key in used_keys:
                suffix = 2
                while f"{key}_{suffix}" in used_keys:
                    suffix += 1
                key = f"{key}_{suffix}"
            used_keys.add(key)
            cleaned.append(_CleanSlot(key=key, label=label, quantity=quantity, product_ids=product_ids))
        return cleaned

    async def _generate_unique_slug(
        self,
        name: str,
        *,
        current_slug: str | None = None,
    ) -> str:
        base_slug = self._slugify(name)
        if not await self._products.slug_exists(base_slug) or base_slug == current_slug:
            return base_slug

        suffix = 2
        while True:
            candidate = f"{base_slug}-{suffix}"
            if not await self._products.slug_exists(candidate) or candidate == current_slug:
                return candidate
            suffix += 1

    @staticmethod
    def _parse_bundle_price(raw: Any) -> Decimal | None:
        if raw is None or raw == "":
            return None
        try:
            value = Decimal(str(raw).strip())
        except (InvalidOperation, ValueError) as exc:
            raise BundleConfigurationError("Bundle price must be a number.") from exc
        if not value.is_finite() or value < 0:
            raise BundleConfigurationError("Bundle price cannot be negative.")
        return value.quantize(Decimal("0.01"))

    @staticmethod
    def _ensure_amount(value: Decimal | None, label: str) -> None:
        if value is not None and value < 0:
            raise ProductValidationError(f"{label} cannot be negative.")

    @staticmethod
    def _slugify(value: str) -> str:
        normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
        normalized = normalized.lower()
        slug = re.sub(r"[^a-z0-9]+", "-", normalized).strip("-")
        return slug or "product"


def parse_slots_payload(raw: str | bytes | None) -> list[SlotInput]:
    """Decode the slot builder payload; anything malformed yields no slots."""
    if not raw:
        return []
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return []
    if not isinstance(data, list):
        return []

    slots: list[SlotInput] = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        products = entry.get("products", entry.get("product_ids"))
        if not isinstance(products, list):
            products = []
        slots.append(
            SlotInput(
                key=entry.get("key"),
                label=entry.get("label"),
                quantity=entry.get("qty", entry.get("quantity", 1)),
                product_ids=products,
            )
        )
    return slots


def _clean_slot_key(raw: Any) -> str:
    key = str(raw or "").strip().lower()
    return _SLOT_KEY_INVALID.sub("", key)


def _clean_product_ids(raw: Iterable[Any]) -> list[int]:
    seen: dict[int, None] = {}
    for value in raw or []:
        product_id = _to_int(value, default=0)
        if product_id > 0:
            seen.setdefault(product_id, None)
    return list(seen)


def _random_suffix(length: int = 8) -> str:
    return "".join(secrets.choice(_SLOT_KEY_ALPHABET) for _ in range(length))


def _to_int(value: Any, *, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default

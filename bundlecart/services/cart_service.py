from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from bundlecart.core.config import get_settings
from bundlecart.core.enums import CartAdjustmentType, CartStatus
from bundlecart.core.logging import get_logger
from bundlecart.infrastructure.db.models import (
    CartAdjustment,
    CartItem,
    Product,
    ProductVariation,
    ShoppingCart,
)
from bundlecart.infrastructure.db.repositories import CartRepository, ProductRepository
from bundlecart.services.bundle_catalog import BundleDefinition
from bundlecart.services.bundle_meta import ATTRIBUTES_META_KEY, BUNDLE_META_KEY, BundleLineInfo
from bundlecart.services.bundle_pricing import (
    CartLineAllocator,
    LinePricing,
    mark_pricing_pass,
    pricing_pass_ran,
    reset_pricing_pass,
)
from bundlecart.services.cart_integrity import CartIntegrityGuard
from bundlecart.services.catalog_service import ZERO, is_purchasable, is_variable, reference_price
from bundlecart.services.order_summary import (
    BundleTotals,
    OrderSummary,
    build_cart_summary,
    summarize_cart_bundles,
)
from bundlecart.services.variant_resolver import ResolvedUnit


@dataclass(slots=True)
class CartTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal


@dataclass(slots=True)
class BundleGroup:
    group_id: str
    bundle_id: int
    bundle_name: str
    items: list[CartItem]


@dataclass(slots=True)
class CartLineView:
    item_id: int
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    group_id: str | None = None
    bundle_name: str | None = None
    slot_label: str | None = None
    attributes: dict[str, str] | None = None

    @property
    def quantity_locked(self) -> bool:
        return self.group_id is not None


class CartService:
    """
    High-level cart orchestrator responsible for item management, bundle groups and totals.

    Every mutation resets the bundle pricing pass so the next totals refresh re-allocates
    the bundle groups; refreshing again without a mutation leaves line prices untouched.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._carts = CartRepository(session)
        self._products = ProductRepository(session)
        self._integrity = CartIntegrityGuard(session)
        self._allocator = CartLineAllocator(get_settings().price_decimals)
        self._log = get_logger(__name__)

    @property
    def integrity(self) -> CartIntegrityGuard:
        return self._integrity

    async def get_cart_by_public_id(self, public_id: str) -> ShoppingCart | None:
        return await self._carts.get_by_public_id(public_id)

    async def get_active_cart(self, session_key: str, *, currency: str | None = None) -> ShoppingCart | None:
        cart = await self._carts.get_active_for_session(session_key)
        if cart and currency and cart.currency != currency:
            # Currency mismatch implies the cart must be rebuilt.
            await self.deactivate_cart(cart)
            return None
        return cart

    async def get_or_create_cart(
        self,
        *,
        session_key: str,
        currency: str | None = None,
        expires_at: datetime | None = None,
    ) -> ShoppingCart:
        currency = currency or get_settings().store_currency
        cart = await self.get_active_cart(session_key, currency=currency)
        if cart:
            return cart
        cart = await self._carts.create_cart(
            session_key=session_key,
            currency=currency,
            expires_at=expires_at,
        )
        await self._session.flush()
        return cart

    async def list_items(self, cart: ShoppingCart) -> list[CartItem]:
        return await self._carts.list_items(cart)

    async def add_product(
        self,
        cart: ShoppingCart,
        product: Product,
        *,
        quantity: int = 1,
        variation: ProductVariation | None = None,
        allow_increase: bool = True,
    ) -> CartItem | None:
        """Add a plain product line.

        Returns ``None`` when the product is a bundle parent: the line is
        removed again right after insertion.
        """
        if quantity <= 0:
            raise ValueError("Quantity must be positive.")
        if not product.is_active:
            raise ValueError("Product is inactive.")
        if cart.currency != product.currency:
            raise ValueError("Cart currency mismatch. Start a new cart before adding this product.")
        if is_variable(product) and variation is None:
            raise ValueError("Please select a size for this product.")
        if variation is not None and variation.product_id != product.id:
            raise ValueError("Variation does not belong to this product.")

        unit = variation if variation is not None else product
        if unit.price is None:
            raise ValueError("Product is not purchasable.")
        if variation is not None and not is_purchasable(variation, parent=product):
            raise ValueError("Product is not purchasable.")
        unit_price = Decimal(unit.price)
        variation_id = variation.id if variation is not None else None

        existing = await self._carts.find_loose_item(cart, product_id=product.id, variation_id=variation_id)
        if existing:
            if not allow_increase:
                raise ValueError("Product already in cart.")
            new_quantity = existing.quantity + quantity
            self._ensure_quantity_allowed(product, new_quantity, variation=variation)
            await self._carts.update_item(
                existing,
                quantity=new_quantity,
                total_amount=self._calc_line_total(unit_price, new_quantity),
            )
            item = existing
        else:
            self._ensure_quantity_allowed(product, quantity, variation=variation)
            meta = None
            if variation is not None and variation.attributes:
                meta = {ATTRIBUTES_META_KEY: {str(k): str(v) for k, v in variation.attributes.items()}}
            item = await self._carts.create_item(
                cart,
                product_id=product.id,
                variation_id=variation_id,
                quantity=quantity,
                unit_price=unit_price,
                currency=product.currency,
                total_amount=self._calc_line_total(unit_price, quantity),
                position=await self._carts.get_next_position(cart),
                meta=meta,
            )
            await self._session.flush()
            if await self._integrity.after_line_added(cart, item):
                await self.refresh_totals(cart)
                await self._session.flush()
                return None

        reset_pricing_pass(cart)
        await self.refresh_totals(cart)
        await self._session.flush()
        return item

    async def add_bundle(
        self,
        cart: ShoppingCart,
        definition: BundleDefinition,
        units: Sequence[ResolvedUnit],
        *,
        bundle_quantity: int = 1,
    ) -> BundleGroup:
        """Create one child line per resolved unit under a fresh group id.

        Nothing is left in the cart when any line fails to be created.
        """
        if bundle_quantity <= 0:
            raise ValueError("Quantity must be positive.")
        if cart.currency != definition.currency:
            raise ValueError("Cart currency mismatch. Start a new cart before adding this product.")
        if not units or len(units) != len(definition.slots):
            raise ValueError("Every bundle item must be selected.")

        group_id = str(uuid4())
        position = await self._carts.get_next_position(cart)
        created: list[CartItem] = []
        try:
            for offset, unit in enumerate(units):
                info = BundleLineInfo(
                    group_id=group_id,
                    bundle_id=definition.bundle_id,
                    bundle_name=definition.name,
                    bundle_price=definition.bundle_price,
                    bundle_quantity=bundle_quantity,
                    slot_key=unit.slot_key,
                    slot_label=unit.slot_label,
                    slot_quantity=unit.quantity,
                    reference_unit_price=unit.reference_unit_price,
                )
                meta = {BUNDLE_META_KEY: info.to_meta()}
                if unit.attributes:
                    meta[ATTRIBUTES_META_KEY] = dict(unit.attributes)
                line_quantity = unit.quantity * bundle_quantity
                item = await self._carts.create_item(
                    cart,
                    product_id=unit.product_id,
                    variation_id=unit.variation_id,
                    quantity=line_quantity,
                    unit_price=unit.reference_unit_price,
                    currency=cart.currency,
                    total_amount=self._calc_line_total(unit.reference_unit_price, line_quantity),
                    position=position + offset,
                    title_override=unit.name,
                    bundle_group_id=group_id,
                    meta=meta,
                )
                created.append(item)
            await self._session.flush()
        except Exception:
            for item in created:
                await self._carts.remove_item(item)
            raise

        reset_pricing_pass(cart)
        await self.refresh_totals(cart)
        await self._session.flush()
        self._log.info(
            "bundle_added",
            cart_id=cart.id,
            bundle_id=definition.bundle_id,
            group_id=group_id,
            bundle_quantity=bundle_quantity,
            lines=len(created),
        )
        return BundleGroup(
            group_id=group_id,
            bundle_id=definition.bundle_id,
            bundle_name=definition.name,
            items=created,
        )

    async def update_quantity(self, cart: ShoppingCart, item_id: int, quantity: int) -> CartItem | None:
        if quantity < 0:
            raise ValueError("Quantity cannot be negative.")
        item = await self._carts.get_item(cart, item_id)
        if item is None:
            return None
        if not self._integrity.check_quantity_change(item, quantity):
            return item
        if quantity == 0:
            await self._carts.remove_item(item)
            reset_pricing_pass(cart)
            await self.refresh_totals(cart)
            await self._session.flush()
            return None

        product = await self._products.get_by_id(item.product_id)
        variation = None
        if item.variation_id is not None:
            variation = await self._products.get_variation(item.variation_id, parent_id=item.product_id)
        if product is not None:
            self._ensure_quantity_allowed(product, quantity, variation=variation)
        total_amount = self._calc_line_total(Decimal(item.unit_price), quantity)
        await self._carts.update_item(item, quantity=quantity, total_amount=total_amount)
        reset_pricing_pass(cart)
        await self.refresh_totals(cart)
        await self._session.flush()
        return item

    async def remove_item(self, cart: ShoppingCart, item_id: int) -> list[int]:
        """Remove a line; grouped lines take the rest of their bundle with them."""
        item = await self._carts.get_item(cart, item_id)
        if item is None:
            return []
        removed = await self._integrity.cascade_removal(cart, item, self._carts.remove_item)
        reset_pricing_pass(cart)
        await self.refresh_totals(cart)
        await self._session.flush()
        return removed

    async def clear_cart(self, cart: ShoppingCart) -> None:
        await self._carts.clear_items(cart)
        await self._carts.clear_adjustments(cart)
        await self._carts.set_totals(
            cart,
            subtotal=ZERO,
            discount=ZERO,
            tax=ZERO,
            shipping=ZERO,
            total=ZERO,
        )
        reset_pricing_pass(cart)
        await self._session.flush()

    async def set_discount_code(self, cart: ShoppingCart, code: str | None) -> ShoppingCart:
        await self._carts.set_discount_code(cart, code)
        await self._session.flush()
        return cart

    async def refresh_totals(self, cart: ShoppingCart) -> CartTotals:
        if await self._integrity.strip_parent_lines(cart):
            reset_pricing_pass(cart)

        items = await self._carts.list_items(cart)
        if not pricing_pass_ran(cart):
            await self._allocate_bundle_prices(items)
            mark_pricing_pass(cart)

        adjustments = await self._carts.list_adjustments(cart)
        subtotal = sum((Decimal(item.total_amount) for item in items), start=ZERO)
        discount = self._sum_adjustments(adjustments, CartAdjustmentType.PROMOTION)
        tax = self._sum_adjustments(adjustments, CartAdjustmentType.TAX)
        shipping = self._sum_adjustments(adjustments, CartAdjustmentType.SHIPPING)
        fees = self._sum_adjustments(adjustments, CartAdjustmentType.FEE)
        total = max(subtotal + tax + shipping + fees - discount, ZERO)
        totals = CartTotals(
            subtotal=self._quantize(subtotal),
            discount=self._quantize(discount),
            tax=self._quantize(tax),
            shipping=self._quantize(shipping),
            total=self._quantize(total),
        )
        await self._carts.set_totals(
            cart,
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax=totals.tax,
            shipping=totals.shipping,
            total=totals.total,
        )
        return totals

    async def deactivate_cart(self, cart: ShoppingCart) -> ShoppingCart:
        await self._carts.set_status(cart, CartStatus.ABANDONED)
        await self._session.flush()
        return cart

    async def add_adjustment(
        self,
        cart: ShoppingCart,
        *,
        kind: CartAdjustmentType,
        amount: Decimal,
        code: str | None = None,
        title: str | None = None,
        meta: dict | None = None,
    ) -> CartAdjustment:
        adjustment = await self._carts.add_adjustment(
            cart,
            kind=kind,
            amount=self._quantize(amount),
            code=code,
            title=title,
            meta=meta,
        )
        if kind == CartAdjustmentType.PROMOTION and code:
            await self._carts.set_discount_code(cart, code)
        reset_pricing_pass(cart)
        await self.refresh_totals(cart)
        await self._session.flush()
        return adjustment

    async def remove_adjustment(self, adjustment: CartAdjustment, cart: ShoppingCart) -> None:
        await self._carts.remove_adjustment(adjustment)
        reset_pricing_pass(cart)
        await self.refresh_totals(cart)
        await self._session.flush()

    async def bundle_totals(self, cart: ShoppingCart) -> BundleTotals:
        items = await self._carts.list_items(cart)
        return summarize_cart_bundles(items, await self._fallback_prices(items))

    async def summary(self, cart: ShoppingCart) -> OrderSummary:
        totals = await self.refresh_totals(cart)
        items = await self._carts.list_items(cart)
        products = await self._products.get_many({item.product_id for item in items})
        return build_cart_summary(
            cart,
            items,
            totals,
            names={product_id: product.name for product_id, product in products.items()},
            fallback_prices=await self._fallback_prices(items),
        )

    async def display_lines(self, cart: ShoppingCart) -> list[CartLineView]:
        """Cart lines for display; bundle children show their reference prices."""
        items = await self._carts.list_items(cart)
        products = await self._products.get_many({item.product_id for item in items})
        fallbacks = await self._fallback_prices(items)

        views: list[CartLineView] = []
        for item in items:
            product = products.get(item.product_id)
            name = item.title_override or (product.name if product else f"#{item.product_id}")
            attributes = (item.meta or {}).get(ATTRIBUTES_META_KEY) or None
            info = BundleLineInfo.from_meta(item.meta, group_id=item.bundle_group_id)
            if info is None:
                views.append(
                    CartLineView(
                        item_id=item.id,
                        name=name,
                        quantity=item.quantity,
                        unit_price=self._quantize(Decimal(item.unit_price)),
                        line_total=Decimal(item.total_amount),
                        attributes=attributes,
                    )
                )
                continue
            unit_price = info.reference_unit_price or fallbacks.get(item.id, ZERO)
            views.append(
                CartLineView(
                    item_id=item.id,
                    name=name,
                    quantity=item.quantity,
                    unit_price=self._quantize(unit_price),
                    line_total=self._quantize(unit_price * item.quantity),
                    group_id=info.group_id,
                    bundle_name=info.bundle_name,
                    slot_label=info.slot_label,
                    attributes=attributes,
                )
            )
        return views

    async def _allocate_bundle_prices(self, items: list[CartItem]) -> None:
        grouped = [item for item in items if item.bundle_group_id]
        if not grouped:
            return
        fallbacks = await self._fallback_prices(grouped)

        snapshots: list[LinePricing] = []
        for item in grouped:
            info = BundleLineInfo.from_meta(item.meta, group_id=item.bundle_group_id)
            if info is None:
                continue
            snapshots.append(
                LinePricing(
                    key=item.id,
                    group_id=info.group_id,
                    quantity=item.quantity,
                    reference_unit_price=info.reference_unit_price or fallbacks.get(item.id, ZERO),
                    bundle_price=info.bundle_price,
                    bundle_quantity=info.bundle_quantity,
                )
            )

        by_id = {item.id: item for item in grouped}
        for allocated in self._allocator.reallocate(snapshots):
            await self._carts.update_item(
                by_id[allocated.key],
                unit_price=allocated.unit_price,
                total_amount=allocated.line_total,
            )

    async def _fallback_prices(self, items: Sequence[CartItem]) -> dict[int, Decimal]:
        """Catalog reference prices keyed by item id, for lines missing a stored one."""
        products = await self._products.get_many({item.product_id for item in items})
        variations = await self._products.get_variations(
            [item.variation_id for item in items if item.variation_id is not None]
        )
        prices: dict[int, Decimal] = {}
        for item in items:
            unit: Product | ProductVariation | None = None
            if item.variation_id is not None:
                unit = variations.get(item.variation_id)
            if unit is None:
                unit = products.get(item.product_id)
            prices[item.id] = reference_price(unit) if unit is not None else ZERO
        return prices

    @staticmethod
    def _sum_adjustments(adjustments: Sequence[CartAdjustment], kind: CartAdjustmentType) -> Decimal:
        return sum((Decimal(adj.amount) for adj in adjustments if adj.kind == kind), start=ZERO)

    @staticmethod
    def _calc_line_total(unit_price: Decimal, quantity: int) -> Decimal:
        return CartService._quantize(Decimal(unit_price) * quantity)

    @staticmethod
    def _quantize(amount: Decimal) -> Decimal:
        return Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @staticmethod
    def _ensure_quantity_allowed(
        product: Product,
        quantity: int,
        *,
        variation: ProductVariation | None = None,
    ) -> None:
        if quantity <= 0:
            raise ValueError("Quantity must be positive.")

        max_per_order = getattr(product, "max_per_order", None)
        if max_per_order is not None and quantity > max_per_order:
            raise ValueError("Requested quantity exceeds per-order limit for this product.")

        stock_unit = variation if variation is not None else product
        inventory = getattr(stock_unit, "inventory", None)
        if inventory is not None and quantity > inventory:
            raise ValueError("Requested quantity exceeds available stock.")

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from bundlecart.core.enums import CartStatus, OrderStatus
from bundlecart.core.logging import get_logger
from bundlecart.infrastructure.db.models import Order, OrderLine, ShoppingCart
from bundlecart.infrastructure.db.repositories import CartRepository, OrderRepository, ProductRepository
from bundlecart.services.cart_service import CartService
from bundlecart.services.catalog_service import reference_price
from bundlecart.services.order_projector import OrderProjector
from bundlecart.services.order_summary import OrderSummary, build_order_summary


class OrderCreationError(RuntimeError):
    """Raised when an order cannot be created."""


class CheckoutService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._carts = CartRepository(session)
        self._orders = OrderRepository(session)
        self._products = ProductRepository(session)
        self._cart_service = CartService(session)
        self._projector = OrderProjector(session)
        self._log = get_logger(__name__)

    async def get_order_by_public_id(self, public_id: str) -> Order | None:
        return await self._orders.get_by_public_id(public_id)

    async def list_lines(self, order: Order) -> list[OrderLine]:
        return await self._orders.list_lines(order)

    async def place_order(self, cart: ShoppingCart) -> Order:
        if cart.status != CartStatus.ACTIVE:
            raise OrderCreationError("Cart is not active.")

        totals = await self._cart_service.refresh_totals(cart)
        items = await self._carts.list_items(cart)
        if not items:
            raise OrderCreationError("Cart is empty.")

        products = await self._products.get_many({item.product_id for item in items})
        variations = await self._products.get_variations(
            [item.variation_id for item in items if item.variation_id is not None]
        )

        order = await self._orders.create_order(
            session_key=cart.session_key,
            currency=cart.currency,
            cart_public_id=cart.public_id,
            status=OrderStatus.AWAITING_PAYMENT,
            extra_attrs={"discount_code": cart.discount_code} if cart.discount_code else None,
        )

        projected = 0
        for position, item in enumerate(items, start=1):
            product = products.get(item.product_id)
            name = item.title_override or (product.name if product else f"#{item.product_id}")
            line = await self._orders.create_line_from_cart_item(order, item, name=name, position=position)

            unit = variations.get(item.variation_id) if item.variation_id is not None else None
            if unit is None:
                unit = product
            fallback = reference_price(unit) if unit is not None else None
            if await self._projector.project(item, line, fallback_reference=fallback):
                projected += 1

        await self._orders.set_totals(
            order,
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax=totals.tax,
            shipping=totals.shipping,
            total=totals.total,
        )
        await self._carts.set_status(cart, CartStatus.CHECKED_OUT)
        await self._session.flush()

        self._log.info(
            "order_placed",
            order_public_id=order.public_id,
            cart_public_id=cart.public_id,
            lines=len(items),
            bundle_lines=projected,
            total=totals.total,
        )
        return order

    async def summarize(self, order: Order) -> OrderSummary:
        return build_order_summary(order, await self._orders.list_lines(order))

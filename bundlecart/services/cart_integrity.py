from __future__ import annotations

from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from bundlecart.core.enums import ProductType
from bundlecart.core.logging import get_logger
from bundlecart.infrastructure.db.models import CartItem, ShoppingCart
from bundlecart.infrastructure.db.repositories import CartRepository, ProductRepository
from bundlecart.services.catalog_service import is_bundle

QUANTITY_LOCKED_MESSAGE = "Bundle item quantity cannot be changed."


class BundleQuantityLockedError(ValueError):
    """Raised when a quantity change targets a line that belongs to a bundle group."""

    def __init__(self, item_id: int | None = None) -> None:
        super().__init__(QUANTITY_LOCKED_MESSAGE)
        self.item_id = item_id


RemoveLine = Callable[[CartItem], Awaitable[None]]


class CartIntegrityGuard:
    """Keeps bundle groups consistent across cart mutations.

    Quantity changes on grouped lines are refused, removing one grouped line
    removes its siblings, and a bundle parent product never stays in the cart
    as a line of its own.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._carts = CartRepository(session)
        self._products = ProductRepository(session)
        self._cascade_in_progress = False
        self._log = get_logger(__name__)

    @property
    def cascade_in_progress(self) -> bool:
        return self._cascade_in_progress

    def check_quantity_change(self, item: CartItem, quantity: int) -> bool:
        """Return ``True`` when the change should be applied."""
        if quantity == item.quantity:
            return False
        if item.bundle_group_id:
            self._log.info(
                "bundle_quantity_change_rejected",
                item_id=item.id,
                group_id=item.bundle_group_id,
                current=item.quantity,
                requested=quantity,
            )
            raise BundleQuantityLockedError(item.id)
        return True

    async def after_line_added(self, cart: ShoppingCart, item: CartItem) -> bool:
        product = await self._products.get_by_id(item.product_id)
        if product is None or not is_bundle(product):
            return False
        await self._carts.remove_item(item)
        self._log.info(
            "bundle_parent_line_stripped",
            cart_id=cart.id,
            product_id=product.id,
            stage="insert",
        )
        return True

    async def strip_parent_lines(self, cart: ShoppingCart) -> int:
        stripped = await self._carts.list_items_of_type(cart, ProductType.BUNDLE)
        for item in stripped:
            await self._carts.remove_item(item)
            self._log.info(
                "bundle_parent_line_stripped",
                cart_id=cart.id,
                product_id=item.product_id,
                stage="totals",
            )
        return len(stripped)

    async def cascade_removal(
        self,
        cart: ShoppingCart,
        item: CartItem,
        remove_line: RemoveLine,
    ) -> list[int]:
        """Remove ``item`` and, for grouped lines, every sibling of its group.

        Re-entrant calls made while siblings are being removed only remove the
        line they were given.
        """
        item_id = item.id
        group_id = item.bundle_group_id
        if self._cascade_in_progress or not group_id:
            await remove_line(item)
            return [item_id]

        self._cascade_in_progress = True
        removed = [item_id]
        try:
            await remove_line(item)
            for sibling in await self._carts.list_group_items(cart, group_id):
                sibling_id = sibling.id
                await remove_line(sibling)
                removed.append(sibling_id)
        finally:
            self._cascade_in_progress = False

        self._log.info(
            "bundle_group_cascade_removed",
            cart_id=cart.id,
            group_id=group_id,
            removed=len(removed),
        )
        return removed

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Select, func, select

from bundlecart.core.enums import CartAdjustmentType, CartStatus, ProductType
from bundlecart.infrastructure.db.models import CartAdjustment, CartItem, Product, ShoppingCart

from .base import BaseRepository


class CartRepository(BaseRepository):
    async def create_cart(
        self,
        *,
        session_key: str,
        currency: str,
        expires_at: datetime | None = None,
        meta: dict | None = None,
    ) -> ShoppingCart:
        cart = ShoppingCart(
            public_id=str(uuid4()),
            session_key=session_key,
            status=CartStatus.ACTIVE,
            currency=currency,
            expires_at=expires_at,
            meta=meta,
        )
        await self.add(cart)
        return cart

    async def get_by_public_id(self, public_id: str) -> ShoppingCart | None:
        stmt: Select[tuple[ShoppingCart]] = select(ShoppingCart).where(ShoppingCart.public_id == public_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_for_session(self, session_key: str) -> ShoppingCart | None:
        result = await self.session.execute(
            select(ShoppingCart)
            .where(
                ShoppingCart.session_key == session_key,
                ShoppingCart.status == CartStatus.ACTIVE,
            )
            .order_by(ShoppingCart.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_items(self, cart: ShoppingCart) -> list[CartItem]:
        stmt = (
            select(CartItem)
            .where(CartItem.cart_id == cart.id)
            .order_by(CartItem.position.asc(), CartItem.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def get_item(self, cart: ShoppingCart, item_id: int) -> CartItem | None:
        stmt = select(CartItem).where(CartItem.cart_id == cart.id, CartItem.id == item_id).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_loose_item(
        self,
        cart: ShoppingCart,
        *,
        product_id: int,
        variation_id: int | None,
    ) -> CartItem | None:
        """Return the non-bundle line holding this product/variation, if any."""
        stmt = select(CartItem).where(
            CartItem.cart_id == cart.id,
            CartItem.product_id == product_id,
            CartItem.bundle_group_id.is_(None),
        )
        if variation_id is None:
            stmt = stmt.where(CartItem.variation_id.is_(None))
        else:
            stmt = stmt.where(CartItem.variation_id == variation_id)
        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def list_group_items(self, cart: ShoppingCart, group_id: str) -> list[CartItem]:
        stmt = (
            select(CartItem)
            .where(CartItem.cart_id == cart.id, CartItem.bundle_group_id == group_id)
            .order_by(CartItem.position.asc(), CartItem.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def list_items_of_type(self, cart: ShoppingCart, product_type: ProductType) -> list[CartItem]:
        stmt = (
            select(CartItem)
            .join(Product, Product.id == CartItem.product_id)
            .where(CartItem.cart_id == cart.id, Product.product_type == product_type)
            .order_by(CartItem.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def get_next_position(self, cart: ShoppingCart) -> int:
        result = await self.session.execute(
            select(func.max(CartItem.position)).where(CartItem.cart_id == cart.id)
        )
        max_position = result.scalar()
        return (max_position or 0) + 1

    async def create_item(
        self,
        cart: ShoppingCart,
        *,
        product_id: int,
        quantity: int,
        unit_price: Decimal,
        currency: str,
        total_amount: Decimal,
        variation_id: int | None = None,
        position: int = 0,
        title_override: str | None = None,
        bundle_group_id: str | None = None,
        meta: dict | None = None,
    ) -> CartItem:
        item = CartItem(
            cart_id=cart.id,
            product_id=product_id,
            variation_id=variation_id,
            quantity=quantity,
            unit_price=unit_price,
            currency=currency,
            total_amount=total_amount,
            position=position,
            title_override=title_override,
            bundle_group_id=bundle_group_id,
            meta=meta,
        )
        await self.add(item)
        return item

    async def update_item(
        self,
        item: CartItem,
        *,
        quantity: int | None = None,
        unit_price: Decimal | None = None,
        total_amount: Decimal | None = None,
        meta: dict | None = None,
        position: int | None = None,
    ) -> CartItem:
        if quantity is not None:
            item.quantity = quantity
        if unit_price is not None:
            item.unit_price = unit_price
        if total_amount is not None:
            item.total_amount = total_amount
        if meta is not None:
            item.meta = meta
        if position is not None:
            item.position = position
        return item

    async def remove_item(self, item: CartItem) -> None:
        await self.session.delete(item)
        await self.session.flush()

    async def clear_items(self, cart: ShoppingCart) -> None:
        for item in await self.list_items(cart):
            await self.session.delete(item)
        await self.session.flush()

    async def list_adjustments(self, cart: ShoppingCart) -> list[CartAdjustment]:
        stmt = (
            select(CartAdjustment)
            .where(CartAdjustment.cart_id == cart.id)
            .order_by(CartAdjustment.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

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
        adjustment = CartAdjustment(
            cart_id=cart.id,
            kind=kind,
            code=code,
            title=title,
            amount=amount,
            meta=meta,
        )
        await self.add(adjustment)
        return adjustment

    async def remove_adjustment(self, adjustment: CartAdjustment) -> None:
        await self.session.delete(adjustment)
        await self.session.flush()

    async def clear_adjustments(self, cart: ShoppingCart, *, of_kind: CartAdjustmentType | None = None) -> None:
        for adjustment in await self.list_adjustments(cart):
            if of_kind is None or adjustment.kind == of_kind:
                await self.session.delete(adjustment)
        await self.session.flush()

    async def set_totals(
        self,
        cart: ShoppingCart,
        *,
        subtotal: Decimal,
        discount: Decimal,
        tax: Decimal,
        shipping: Decimal,
        total: Decimal,
    ) -> ShoppingCart:
        cart.subtotal_amount = subtotal
        cart.discount_amount = discount
        cart.tax_amount = tax
        cart.shipping_amount = shipping
        cart.total_amount = total
        return cart

    async def set_status(self, cart: ShoppingCart, status: CartStatus) -> ShoppingCart:
        cart.status = status
        return cart

    async def set_discount_code(self, cart: ShoppingCart, code: str | None) -> ShoppingCart:
        cart.discount_code = code
        return cart

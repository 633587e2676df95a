from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import select

from bundlecart.core.enums import OrderStatus
from bundlecart.infrastructure.db.models import CartItem, Order, OrderLine

from .base import BaseRepository


class OrderRepository(BaseRepository):
    async def create_order(
        self,
        *,
        session_key: str,
        currency: str,
        cart_public_id: str | None = None,
        status: OrderStatus = OrderStatus.DRAFT,
        extra_attrs: dict | None = None,
    ) -> Order:
        order = Order(
            public_id=str(uuid4()),
            cart_public_id=cart_public_id,
            session_key=session_key,
            status=status,
            total_amount=Decimal("0.00"),
            currency=currency,
            extra_attrs=extra_attrs,
        )
        await self.add(order)
        return order

    async def get_by_public_id(self, public_id: str) -> Order | None:
        result = await self.session.execute(select(Order).where(Order.public_id == public_id))
        return result.scalar_one_or_none()

    async def list_lines(self, order: Order) -> list[OrderLine]:
        stmt = (
            select(OrderLine)
            .where(OrderLine.order_id == order.id)
            .order_by(OrderLine.position.asc(), OrderLine.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def create_line_from_cart_item(
        self,
        order: Order,
        item: CartItem,
        *,
        name: str,
        position: int,
    ) -> OrderLine:
        meta: dict[str, Any] = {}
        attributes = (item.meta or {}).get("attributes")
        if attributes:
            meta["attributes"] = dict(attributes)
        line = OrderLine(
            order_id=order.id,
            product_id=item.product_id,
            variation_id=item.variation_id,
            name=name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            subtotal_amount=item.total_amount,
            currency=item.currency,
            position=position,
            meta=meta or None,
        )
        await self.add(line)
        return line

    async def attach_metadata(self, line: OrderLine, key: str, value: Any) -> bool:
        """Store ``value`` under ``key`` unless the line already carries it."""
        meta = dict(line.meta or {})
        if key in meta:
            return False
        meta[key] = value
        line.meta = meta
        return True

    async def set_totals(
        self,
        order: Order,
        *,
        subtotal: Decimal,
        discount: Decimal,
        tax: Decimal,
        shipping: Decimal,
        total: Decimal,
    ) -> Order:
        order.subtotal_amount = subtotal
        order.discount_amount = discount
        order.tax_amount = tax
        order.shipping_amount = shipping
        order.total_amount = total
        return order

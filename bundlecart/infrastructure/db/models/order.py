from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Enum, ForeignKey, Integer, JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bundlecart.core.enums import OrderStatus
from bundlecart.infrastructure.db.base import Base, IntPKMixin, TimestampMixin


class Order(IntPKMixin, TimestampMixin, Base):
    __tablename__ = "orders"

    public_id: Mapped[str] = mapped_column(String(length=36), unique=True, nullable=False)
    cart_public_id: Mapped[str | None] = mapped_column(String(length=36), index=True)
    session_key: Mapped[str] = mapped_column(String(length=64), nullable=False, index=True)

    status: Mapped[OrderStatus] = mapped_column(
        Enum(
            OrderStatus,
            native_enum=False,
            length=32,
            values_callable=lambda enum: [item.value for item in enum],
        ),
        default=OrderStatus.DRAFT,
        nullable=False,
    )
    subtotal_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    shipping_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(length=3), nullable=False)

    notes: Mapped[str | None] = mapped_column(String(length=512))
    extra_attrs: Mapped[dict | None] = mapped_column(JSON())

    lines: Mapped[list["OrderLine"]] = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderLine.position.asc()",
    )


class OrderLine(IntPKMixin, TimestampMixin, Base):
    __tablename__ = "order_lines"

    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    variation_id: Mapped[int | None] = mapped_column(ForeignKey("product_variations.id"))
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer(), default=1, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 6), nullable=False)
    subtotal_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(length=3), nullable=False)
    position: Mapped[int] = mapped_column(Integer(), default=0, nullable=False)
    bundle_group_id: Mapped[str | None] = mapped_column(String(length=36), index=True)
    meta: Mapped[dict | None] = mapped_column(JSON())

    order: Mapped[Order] = relationship("Order", back_populates="lines")
    product: Mapped["Product"] = relationship("Product")


from bundlecart.infrastructure.db.models.product import Product  # noqa: E402

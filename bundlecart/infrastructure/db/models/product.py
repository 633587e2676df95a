from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bundlecart.core.enums import ProductType
from bundlecart.infrastructure.db.base import Base, IntPKMixin, TimestampMixin


class Product(IntPKMixin, TimestampMixin, Base):
    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    slug: Mapped[str] = mapped_column(String(length=255), nullable=False, unique=True)
    sku: Mapped[str | None] = mapped_column(String(length=64), index=True)
    summary: Mapped[str | None] = mapped_column(Text())
    product_type: Mapped[ProductType] = mapped_column(
        Enum(
            ProductType,
            native_enum=False,
            length=32,
            values_callable=lambda enum: [item.value for item in enum],
        ),
        default=ProductType.SIMPLE,
        nullable=False,
    )
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    regular_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    currency: Mapped[str] = mapped_column(String(length=3), default="USD", nullable=False)
    inventory: Mapped[int | None] = mapped_column(Integer())
    max_per_order: Mapped[int | None] = mapped_column(Integer())
    is_active: Mapped[bool] = mapped_column(Boolean(), default=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer(), default=0, nullable=False)
    attributes: Mapped[dict | None] = mapped_column(JSON())
    extra_attrs: Mapped[dict | None] = mapped_column(JSON())

    variations: Mapped[list["ProductVariation"]] = relationship(
        "ProductVariation",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProductVariation.position.asc()",
    )
    bundle_slots: Mapped[list["BundleSlot"]] = relationship(
        "BundleSlot",
        back_populates="bundle",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BundleSlot.position.asc()",
    )


class ProductVariation(IntPKMixin, TimestampMixin, Base):
    __tablename__ = "product_variations"

    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sku: Mapped[str | None] = mapped_column(String(length=64))
    attributes: Mapped[dict | None] = mapped_column(JSON())
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    regular_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    inventory: Mapped[int | None] = mapped_column(Integer())
    is_active: Mapped[bool] = mapped_column(Boolean(), default=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer(), default=0, nullable=False)

    product: Mapped[Product] = relationship("Product", back_populates="variations")


from bundlecart.infrastructure.db.models.product_bundle import BundleSlot  # noqa: E402

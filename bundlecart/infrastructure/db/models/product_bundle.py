from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bundlecart.infrastructure.db.base import Base, IntPKMixin, TimestampMixin


class BundleSlot(IntPKMixin, TimestampMixin, Base):
    __tablename__ = "bundle_slots"
    __table_args__ = (
        UniqueConstraint("bundle_product_id", "slot_key", name="uq_bundle_slots_bundle_key"),
    )

    bundle_product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    slot_key: Mapped[str] = mapped_column(String(length=64), nullable=False)
    label: Mapped[str] = mapped_column(String(length=255), default="", nullable=False)
    quantity: Mapped[int] = mapped_column(Integer(), default=1, nullable=False)
    position: Mapped[int] = mapped_column(Integer(), default=0, nullable=False)

    bundle: Mapped["Product"] = relationship("Product", back_populates="bundle_slots")
    options: Mapped[list["BundleSlotOption"]] = relationship(
        "BundleSlotOption",
        back_populates="slot",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BundleSlotOption.position.asc()",
    )


class BundleSlotOption(IntPKMixin, TimestampMixin, Base):
    __tablename__ = "bundle_slot_options"
    __table_args__ = (
        UniqueConstraint("slot_id", "product_id", name="uq_bundle_slot_options_slot_product"),
    )

    slot_id: Mapped[int] = mapped_column(
        ForeignKey("bundle_slots.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer(), default=0, nullable=False)

    slot: Mapped[BundleSlot] = relationship("BundleSlot", back_populates="options")
    product: Mapped["Product"] = relationship("Product")


from bundlecart.infrastructure.db.models.product import Product  # noqa: E402

"""Create catalog, bundle slot, cart and order tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision: str = "20261019_0001"
down_revision: str | None = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None

PRODUCT_TYPE = sa.Enum("simple", "variable", "bundle", name="producttype", native_enum=False, length=32)
CART_STATUS = sa.Enum("active", "checked_out", "abandoned", name="cartstatus", native_enum=False, length=32)
CART_ADJUSTMENT_TYPE = sa.Enum(
    "promotion",
    "tax",
    "shipping",
    "fee",
    name="cartadjustmenttype",
    native_enum=False,
    length=32,
)
ORDER_STATUS = sa.Enum(
    "draft",
    "awaiting_payment",
    "paid",
    "expired",
    "cancelled",
    name="orderstatus",
    native_enum=False,
    length=32,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        *_timestamps(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False, unique=True),
        sa.Column("sku", sa.String(length=64), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("product_type", PRODUCT_TYPE, nullable=False, server_default="simple"),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("regular_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("inventory", sa.Integer(), nullable=True),
        sa.Column("max_per_order", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("attributes", sa.JSON(), nullable=True),
        sa.Column("extra_attrs", sa.JSON(), nullable=True),
    )
    op.create_index("ix_products_sku", "products", ["sku"])

    op.create_table(
        "product_variations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        *_timestamps(),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=True),
        sa.Column("attributes", sa.JSON(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("regular_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("inventory", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_product_variations_product_id", "product_variations", ["product_id"])

    op.create_table(
        "bundle_slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        *_timestamps(),
        sa.Column(
            "bundle_product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slot_key", sa.String(length=64), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("bundle_product_id", "slot_key", name="uq_bundle_slots_bundle_key"),
    )
    op.create_index("ix_bundle_slots_bundle_product_id", "bundle_slots", ["bundle_product_id"])

    op.create_table(
        "bundle_slot_options",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        *_timestamps(),
        sa.Column("slot_id", sa.Integer(), sa.ForeignKey("bundle_slots.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("slot_id", "product_id", name="uq_bundle_slot_options_slot_product"),
    )
    op.create_index("ix_bundle_slot_options_slot_id", "bundle_slot_options", ["slot_id"])
    op.create_index("ix_bundle_slot_options_product_id", "bundle_slot_options", ["product_id"])

    op.create_table(
        "shopping_carts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        *_timestamps(),
        sa.Column("public_id", sa.String(length=36), nullable=False, unique=True),
        sa.Column("session_key", sa.String(length=64), nullable=False),
        sa.Column("status", CART_STATUS, nullable=False, server_default="active"),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subtotal_amount", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("shipping_amount", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("discount_code", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
    )
    op.create_index("ix_shopping_carts_session_key", "shopping_carts", ["session_key"])

    op.create_table(
        "cart_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        *_timestamps(),
        sa.Column("cart_id", sa.Integer(), sa.ForeignKey("shopping_carts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("variation_id", sa.Integer(), sa.ForeignKey("product_variations.id"), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(14, 6), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("title_override", sa.String(length=255), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bundle_group_id", sa.String(length=36), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
    )
    op.create_index("ix_cart_items_cart_id", "cart_items", ["cart_id"])
    op.create_index("ix_cart_items_bundle_group_id", "cart_items", ["bundle_group_id"])

    op.create_table(
        "cart_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        *_timestamps(),
        sa.Column("cart_id", sa.Integer(), sa.ForeignKey("shopping_carts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", CART_ADJUSTMENT_TYPE, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=True),
    )
    op.create_index("ix_cart_adjustments_cart_id", "cart_adjustments", ["cart_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        *_timestamps(),
        sa.Column("public_id", sa.String(length=36), nullable=False, unique=True),
        sa.Column("cart_public_id", sa.String(length=36), nullable=True),
        sa.Column("session_key", sa.String(length=64), nullable=False),
        sa.Column("status", ORDER_STATUS, nullable=False, server_default="draft"),
        sa.Column("subtotal_amount", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("shipping_amount", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("notes", sa.String(length=512), nullable=True),
        sa.Column("extra_attrs", sa.JSON(), nullable=True),
    )
    op.create_index("ix_orders_cart_public_id", "orders", ["cart_public_id"])
    op.create_index("ix_orders_session_key", "orders", ["session_key"])

    op.create_table(
        "order_lines",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        *_timestamps(),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("variation_id", sa.Integer(), sa.ForeignKey("product_variations.id"), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(14, 6), nullable=False),
        sa.Column("subtotal_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bundle_group_id", sa.String(length=36), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
    )
    op.create_index("ix_order_lines_order_id", "order_lines", ["order_id"])
    op.create_index("ix_order_lines_bundle_group_id", "order_lines", ["bundle_group_id"])


def downgrade() -> None:
    op.drop_index("ix_order_lines_bundle_group_id", table_name="order_lines")
    op.drop_index("ix_order_lines_order_id", table_name="order_lines")
    op.drop_table("order_lines")

    op.drop_index("ix_orders_session_key", table_name="orders")
    op.drop_index("ix_orders_cart_public_id", table_name="orders")
    op.drop_table("orders")

    op.drop_index("ix_cart_adjustments_cart_id", table_name="cart_adjustments")
    op.drop_table("cart_adjustments")

    op.drop_index("ix_cart_items_bundle_group_id", table_name="cart_items")
    op.drop_index("ix_cart_items_cart_id", table_name="cart_items")
    op.drop_table("cart_items")

    op.drop_index("ix_shopping_carts_session_key", table_name="shopping_carts")
    op.drop_table("shopping_carts")

    op.drop_index("ix_bundle_slot_options_product_id", table_name="bundle_slot_options")
    op.drop_index("ix_bundle_slot_options_slot_id", table_name="bundle_slot_options")
    op.drop_table("bundle_slot_options")

    op.drop_index("ix_bundle_slots_bundle_product_id", table_name="bundle_slots")
    op.drop_table("bundle_slots")

    op.drop_index("ix_product_variations_product_id", table_name="product_variations")
    op.drop_table("product_variations")

    op.drop_index("ix_products_sku", table_name="products")
    op.drop_table("products")

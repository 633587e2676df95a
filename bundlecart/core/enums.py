from __future__ import annotations

from enum import StrEnum


class ProductType(StrEnum):
    SIMPLE = "simple"
    VARIABLE = "variable"
    BUNDLE = "bundle"


class CartStatus(StrEnum):
    ACTIVE = "active"
    CHECKED_OUT = "checked_out"
    ABANDONED = "abandoned"


class CartAdjustmentType(StrEnum):
    PROMOTION = "promotion"
    TAX = "tax"
    SHIPPING = "shipping"
    FEE = "fee"


class OrderStatus(StrEnum):
    DRAFT = "draft"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class RejectionReason(StrEnum):
    MISSING_COLOR = "missing_color"
    MISSING_SIZE = "missing_size"
    OUT_OF_STOCK = "out_of_stock"
    NOT_PURCHASABLE = "not_purchasable"
    NOT_CONFIGURED = "not_configured"
    SECURITY_CHECK_FAILED = "security_check_failed"

from .cart import CartAdjustment, CartItem, ShoppingCart
from .order import Order, OrderLine
from .product import Product, ProductVariation
from .product_bundle import BundleSlot, BundleSlotOption

__all__ = [
    "BundleSlot",
    "BundleSlotOption",
    "CartAdjustment",
    "CartItem",
    "Order",
    "OrderLine",
    "Product",
    "ProductVariation",
    "ShoppingCart",
]

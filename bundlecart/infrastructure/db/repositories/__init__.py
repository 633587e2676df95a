from .base import BaseRepository
from .cart import CartRepository
from .order import OrderRepository
from .product import ProductRepository
from .product_bundle import ProductBundleRepository

__all__ = [
    "BaseRepository",
    "CartRepository",
    "OrderRepository",
    "ProductBundleRepository",
    "ProductRepository",
]

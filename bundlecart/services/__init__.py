from .bundle_admin_service import BundleAdminService
from .bundle_catalog import BundleCatalogService
from .bundle_pricing import CartLineAllocator
from .bundle_submission import BundleSubmissionHandler
from .cart_integrity import CartIntegrityGuard
from .cart_service import CartService
from .catalog_service import CatalogService
from .checkout_service import CheckoutService
from .order_projector import OrderProjector
from .variant_resolver import VariantResolver

__all__ = [
    "BundleAdminService",
    "BundleCatalogService",
    "BundleSubmissionHandler",
    "CartIntegrityGuard",
    "CartLineAllocator",
    "CartService",
    "CatalogService",
    "CheckoutService",
    "OrderProjector",
    "VariantResolver",
]

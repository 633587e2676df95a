"""Add-to-cart handling for bundle form submissions."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from bundlecart.core.enums import RejectionReason
from bundlecart.core.logging import get_logger
from bundlecart.core.security import BUNDLE_ADD_TO_CART_ACTION, verify_form_token
from bundlecart.infrastructure.db.models import CartItem, ShoppingCart
from bundlecart.services.bundle_catalog import BundleCatalogService, BundleNotFoundError, BundleRejection
from bundlecart.services.cart_service import CartService
from bundlecart.services.catalog_service import CatalogService
from bundlecart.services.variant_resolver import VariantResolver, VariantSelection

SECURITY_CHECK_FAILED_MESSAGE = "Security check failed. Please try again."
INVALID_BUNDLE_MESSAGE = "This bundle is not available."

_SLOT_FIELD = re.compile(r"^(item_product|item_variation)\[([^\]]*)\]$")


@dataclass(slots=True)
class BundleSubmission:
    bundle_id: int | None
    bundle_quantity: int
    selections: list[VariantSelection]
    form_token: str | None = None

    def selections_map(self) -> dict[str, dict[str, int | None]]:
        return {
            selection.slot_key: {
                "product_id": selection.product_id,
                "variation_id": selection.variation_id,
            }
            for selection in self.selections
        }


@dataclass(slots=True)
class BundleAddResult:
    bundle_id: int
    group_id: str
    items: list[CartItem]
    notice: str
    selections: dict[str, Any] = field(default_factory=dict)


def parse_bundle_form(form: Mapping[str, Any]) -> BundleSubmission:
    """Read a submitted add-to-cart form.

    Accepts both flat ``item_product[<slot>]`` keys and already nested
    ``item_product`` / ``item_variation`` mappings.
    """
    products: dict[str, int | None] = {}
    variations: dict[str, int | None] = {}

    for key, value in form.items():
        match = _SLOT_FIELD.match(str(key))
        if match:
            target = products if match.group(1) == "item_product" else variations
            slot_key = _clean_slot_key(match.group(2))
            if slot_key:
                target[slot_key] = _positive_int(value)
            continue
        if key in ("item_product", "item_variation") and isinstance(value, Mapping):
            target = products if key == "item_product" else variations
            for slot_key, raw in value.items():
                slot_key = _clean_slot_key(str(slot_key))
                if slot_key:
                    target[slot_key] = _positive_int(raw)

    quantity = _positive_int(form.get("quantity"))
    selections = [
        VariantSelection(
            slot_key=slot_key,
            product_id=products.get(slot_key),
            variation_id=variations.get(slot_key),
        )
        for slot_key in dict.fromkeys([*products, *variations])
    ]
    token = form.get("form_token")
    return BundleSubmission(
        bundle_id=_positive_int(form.get("add-to-cart")),
        bundle_quantity=max(1, quantity or 1),
        selections=selections,
        form_token=str(token) if token else None,
    )


class BundleSubmissionHandler:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._bundles = BundleCatalogService(session)
        self._resolver = VariantResolver(CatalogService(session))
        self._cart = CartService(session)
        self._log = get_logger(__name__)

    async def handle(
        self,
        cart: ShoppingCart,
        form: Mapping[str, Any],
        *,
        session_key: str,
    ) -> BundleAddResult:
        submission = parse_bundle_form(form)
        selections = submission.selections_map()

        if not verify_form_token(submission.form_token, session_key, BUNDLE_ADD_TO_CART_ACTION):
            self._log.warning(
                "bundle_form_token_rejected",
                cart_id=cart.id,
                bundle_id=submission.bundle_id,
            )
            raise BundleRejection(
                RejectionReason.SECURITY_CHECK_FAILED,
                SECURITY_CHECK_FAILED_MESSAGE,
                selections=selections,
            )

        if submission.bundle_id is None:
            raise BundleRejection(RejectionReason.NOT_CONFIGURED, INVALID_BUNDLE_MESSAGE, selections=selections)

        try:
            definition = await self._bundles.require_definition(submission.bundle_id)
            units = await self._resolver.resolve(
                definition,
                submission.selections,
                bundle_quantity=submission.bundle_quantity,
            )
        except BundleNotFoundError as exc:
            raise BundleRejection(
                RejectionReason.NOT_CONFIGURED,
                INVALID_BUNDLE_MESSAGE,
                selections=selections,
            ) from exc
        except BundleRejection as exc:
            exc.selections = exc.selections or selections
            raise

        group = await self._cart.add_bundle(
            cart,
            definition,
            units,
            bundle_quantity=submission.bundle_quantity,
        )
        return BundleAddResult(
            bundle_id=definition.bundle_id,
            group_id=group.group_id,
            items=group.items,
            notice=f'"{definition.name}" was added to your cart.',
            selections=selections,
        )


def _clean_slot_key(raw: str) -> str:
    return raw.strip()


def _positive_int(value: Any) -> int | None:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None

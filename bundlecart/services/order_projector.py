from __future__ import annotations

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from bundlecart.core.logging import get_logger
from bundlecart.infrastructure.db.models import CartItem, OrderLine
from bundlecart.infrastructure.db.repositories import OrderRepository
from bundlecart.services.bundle_meta import BUNDLE_META_KEY, BundleLineInfo


class OrderProjector:
    """Freezes bundle grouping and reference prices onto order lines."""

    def __init__(self, session: AsyncSession) -> None:
        self._orders = OrderRepository(session)
        self._log = get_logger(__name__)

    async def project(
        self,
        item: CartItem,
        line: OrderLine,
        *,
        fallback_reference: Decimal | None = None,
    ) -> bool:
        info = BundleLineInfo.from_meta(item.meta, group_id=item.bundle_group_id)
        if info is None:
            return False

        reference = info.reference_unit_price
        if reference is None and fallback_reference is not None and fallback_reference > 0:
            reference = Decimal(fallback_reference)
        reference_line_total = (
            (reference * item.quantity).quantize(Decimal("0.01")) if reference is not None else None
        )

        snapshot = {
            "group_id": info.group_id,
            "bundle_id": info.bundle_id,
            "bundle_name": info.bundle_name,
            "slot_key": info.slot_key,
            "slot_label": info.slot_label,
            "bundle_price": str(info.bundle_price),
            "bundle_quantity": info.bundle_quantity,
            "reference_unit_price": str(reference) if reference is not None else None,
            "reference_line_total": str(reference_line_total) if reference_line_total is not None else None,
        }
        written = await self._orders.attach_metadata(line, BUNDLE_META_KEY, snapshot)
        if not written:
            self._log.debug("bundle_snapshot_kept", order_line_id=line.id, group_id=info.group_id)
            return False
        if line.bundle_group_id is None:
            line.bundle_group_id = info.group_id
        return True

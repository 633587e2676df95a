from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

BUNDLE_META_KEY = "bundle"
ATTRIBUTES_META_KEY = "attributes"


@dataclass(slots=True, frozen=True)
class BundleLineInfo:
    """Bundle grouping data carried by every child line of one bundle purchase."""

    group_id: str
    bundle_id: int
    bundle_name: str
    bundle_price: Decimal
    bundle_quantity: int
    slot_key: str
    slot_label: str
    slot_quantity: int
    reference_unit_price: Decimal | None

    def to_meta(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "bundle_id": self.bundle_id,
            "bundle_name": self.bundle_name,
            "bundle_price": str(self.bundle_price),
            "bundle_quantity": self.bundle_quantity,
            "slot_key": self.slot_key,
            "slot_label": self.slot_label,
            "slot_quantity": self.slot_quantity,
            "reference_unit_price": (
                str(self.reference_unit_price) if self.reference_unit_price is not None else None
            ),
        }

    @classmethod
    def from_meta(cls, meta: Mapping[str, Any] | None, *, group_id: str | None = None) -> "BundleLineInfo | None":
        raw = (meta or {}).get(BUNDLE_META_KEY)
        if not isinstance(raw, Mapping):
            raw = {}
        gid = group_id or raw.get("group_id")
        if not gid:
            return None
        reference = parse_amount(raw.get("reference_unit_price"))
        return cls(
            group_id=str(gid),
            bundle_id=_to_int(raw.get("bundle_id"), default=0),
            bundle_name=str(raw.get("bundle_name") or ""),
            bundle_price=parse_amount(raw.get("bundle_price")) or Decimal("0"),
            bundle_quantity=max(1, _to_int(raw.get("bundle_quantity"), default=1)),
            slot_key=str(raw.get("slot_key") or ""),
            slot_label=str(raw.get("slot_label") or ""),
            slot_quantity=max(1, _to_int(raw.get("slot_quantity"), default=1)),
            reference_unit_price=reference if reference is not None and reference > 0 else None,
        )


def parse_amount(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def _to_int(value: Any, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default

"""Bundle price allocation.

Child lines of one bundle purchase share a group id. Every totals pass
re-derives their per-unit prices so the group charges exactly
``bundle_price * bundle_quantity``. The split is proportional to each line's
reference contribution (``reference_unit_price * quantity``) and is computed
in integer minor units; the rounding remainder goes to the first line with a
quantity of one, or to the last line when there is none.

The allocator works on immutable snapshots and returns new values. Callers
write the results onto the line rows themselves, never onto catalog objects
that other lines may share.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Hashable, Iterable, Sequence

from bundlecart.core.logging import get_logger

UNIT_PRICE_PLACES = 6
PRICING_PASS_ATTR = "_bundle_pricing_pass_ran"

_UNIT_QUANTUM = Decimal(1).scaleb(-UNIT_PRICE_PLACES)


@dataclass(slots=True, frozen=True)
class LinePricing:
    key: Hashable
    group_id: str | None
    quantity: int
    reference_unit_price: Decimal
    bundle_price: Decimal = Decimal("0")
    bundle_quantity: int = 1


@dataclass(slots=True, frozen=True)
class AllocatedLine:
    key: Hashable
    group_id: str
    quantity: int
    allocated_minor: int
    unit_price: Decimal
    line_total: Decimal


class CartLineAllocator:
    def __init__(self, decimals: int = 2) -> None:
        self._decimals = decimals
        self._factor = 10**decimals
        self._total_quantum = Decimal(1).scaleb(-decimals)
        self._log = get_logger(__name__)

    @property
    def decimals(self) -> int:
        return self._decimals

    def reallocate(self, lines: Iterable[LinePricing]) -> list[AllocatedLine]:
        groups: dict[str, list[LinePricing]] = {}
        for line in lines:
            if not line.group_id:
                continue
            groups.setdefault(line.group_id, []).append(line)

        allocated: list[AllocatedLine] = []
        for group_lines in groups.values():
            allocated.extend(self.allocate_group(group_lines))
        return allocated

    def allocate_group(self, lines: Sequence[LinePricing]) -> list[AllocatedLine]:
        if not lines:
            return []

        first = lines[0]
        target_minor = self.to_minor(first.bundle_price * max(0, first.bundle_quantity))

        quantities = [max(1, line.quantity) for line in lines]
        weights = [
            max(line.reference_unit_price, Decimal("0")) * quantity
            for line, quantity in zip(lines, quantities)
        ]
        base_total = sum(weights, Decimal("0"))
        equal_split = base_total <= 0
        if equal_split:
            weights = [Decimal("1")] * len(lines)
            base_total = Decimal(len(lines))

        shares = [int((Decimal(target_minor) * weight) // base_total) for weight in weights]
        remainder = target_minor - sum(shares)
        remainder_index = next(
            (index for index, quantity in enumerate(quantities) if quantity == 1),
            len(lines) - 1,
        )
        shares[remainder_index] += remainder

        allocated = [
            AllocatedLine(
                key=line.key,
                group_id=str(line.group_id),
                quantity=quantity,
                allocated_minor=share,
                unit_price=self._unit_price(share, quantity),
                line_total=self.from_minor(share),
            )
            for line, quantity, share in zip(lines, quantities, shares)
        ]
        self._log.debug(
            "bundle_group_allocated",
            group_id=first.group_id,
            target_minor=target_minor,
            lines=len(lines),
            equal_split=equal_split,
            remainder=remainder,
        )
        return allocated

    def to_minor(self, amount: Decimal) -> int:
        minor = int((Decimal(amount) * self._factor).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return max(0, minor)

    def from_minor(self, minor: int) -> Decimal:
        return (Decimal(minor) / self._factor).quantize(self._total_quantum)

    def _unit_price(self, share_minor: int, quantity: int) -> Decimal:
        unit = (Decimal(share_minor) / (self._factor * quantity)).quantize(_UNIT_QUANTUM, rounding=ROUND_HALF_UP)
        return max(unit, Decimal("0"))


def pricing_pass_ran(cart: Any) -> bool:
    return bool(getattr(cart, PRICING_PASS_ATTR, False))


def mark_pricing_pass(cart: Any) -> None:
    setattr(cart, PRICING_PASS_ATTR, True)


def reset_pricing_pass(cart: Any) -> None:
    setattr(cart, PRICING_PASS_ATTR, False)

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Sequence

from bundlecart.infrastructure.db.models import CartItem, Order, OrderLine, ShoppingCart
from bundlecart.services.bundle_meta import ATTRIBUTES_META_KEY, BUNDLE_META_KEY, BundleLineInfo, parse_amount

ZERO = Decimal("0.00")


@dataclass(slots=True)
class GroupTotals:
    group_id: str
    bundle_id: int
    bundle_name: str
    bundle_quantity: int
    items_total: Decimal
    bundle_total: Decimal
    charged_total: Decimal
    savings: Decimal


@dataclass(slots=True)
class BundleTotals:
    groups: list[GroupTotals] = field(default_factory=list)
    items_total: Decimal = ZERO
    bundle_total: Decimal = ZERO
    savings: Decimal = ZERO

    def get_group(self, group_id: str) -> GroupTotals | None:
        for group in self.groups:
            if group.group_id == group_id:
                return group
        return None


@dataclass(slots=True)
class OrderSummary:
    label: str
    inline: str
    item_lines: list[str]
    totals_lines: list[str]
    has_bundles: bool


@dataclass(slots=True)
class _Line:
    name: str
    quantity: int
    subtotal: Decimal
    reference_total: Decimal
    currency: str
    info: BundleLineInfo | None
    attributes: Mapping[str, Any] | None


def summarize_cart_bundles(
    items: Sequence[CartItem],
    fallback_prices: Mapping[int, Decimal] | None = None,
) -> BundleTotals:
    """Reference totals and savings per bundle group of a cart.

    ``fallback_prices`` maps item ids to catalog reference prices for lines
    without a stored one.
    """
    lines = [_cart_line(item, fallback_prices or {}) for item in items]
    return _summarize(lines, savings_against_charge=False)


def summarize_order_bundles(lines: Sequence[OrderLine]) -> BundleTotals:
    return _summarize([_order_line(line) for line in lines], savings_against_charge=True)


def build_cart_summary(
    cart: ShoppingCart,
    items: Sequence[CartItem],
    totals: Any,
    *,
    names: Mapping[int, str] | None = None,
    fallback_prices: Mapping[int, Decimal] | None = None,
) -> OrderSummary:
    names = names or {}
    lines = [
        _cart_line(item, fallback_prices or {}, name=item.title_override or names.get(item.product_id))
        for item in items
    ]
    bundle_totals = _summarize(lines, savings_against_charge=False)
    totals_map = {
        "subtotal": getattr(totals, "subtotal", None),
        "discount": getattr(totals, "discount", None),
        "tax": getattr(totals, "tax", None),
        "shipping": getattr(totals, "shipping", None),
        "total": getattr(totals, "total", None),
    }
    return _build_summary(
        lines,
        bundle_totals,
        _normalize_totals(totals_map),
        currency=cart.currency,
        fallback_total=str(cart.total_amount),
    )


def build_order_summary(order: Order, lines: Sequence[OrderLine]) -> OrderSummary:
    normalized = [_order_line(line) for line in lines]
    bundle_totals = _summarize(normalized, savings_against_charge=True)
    totals_map = {
        "subtotal": order.subtotal_amount,
        "discount": order.discount_amount,
        "tax": order.tax_amount,
        "shipping": order.shipping_amount,
        "total": order.total_amount,
    }
    return _build_summary(
        normalized,
        bundle_totals,
        _normalize_totals(totals_map),
        currency=order.currency,
        fallback_total=str(order.total_amount),
    )


def _cart_line(item: CartItem, fallback_prices: Mapping[int, Decimal], *, name: str | None = None) -> _Line:
    info = BundleLineInfo.from_meta(item.meta, group_id=item.bundle_group_id)
    subtotal = Decimal(item.total_amount)
    reference_total = subtotal
    if info is not None:
        unit = info.reference_unit_price or fallback_prices.get(item.id) or ZERO
        reference_total = unit * item.quantity if unit > 0 else subtotal
    return _Line(
        name=name or item.title_override or f"#{item.product_id}",
        quantity=item.quantity,
        subtotal=subtotal,
        reference_total=_quantize(reference_total),
        currency=item.currency,
        info=info,
        attributes=(item.meta or {}).get(ATTRIBUTES_META_KEY),
    )


def _order_line(line: OrderLine) -> _Line:
    info = BundleLineInfo.from_meta(line.meta, group_id=line.bundle_group_id)
    subtotal = Decimal(line.subtotal_amount)
    reference_total = subtotal
    if info is not None:
        snapshot = (line.meta or {}).get(BUNDLE_META_KEY) or {}
        stored = parse_amount(snapshot.get("reference_line_total")) if isinstance(snapshot, Mapping) else None
        if stored is not None and stored > 0:
            reference_total = stored
        elif info.reference_unit_price is not None:
            reference_total = info.reference_unit_price * line.quantity
    return _Line(
        name=line.name,
        quantity=line.quantity,
        subtotal=subtotal,
        reference_total=_quantize(reference_total),
        currency=line.currency,
        info=info,
        attributes=(line.meta or {}).get(ATTRIBUTES_META_KEY),
    )


def _summarize(lines: Sequence[_Line], *, savings_against_charge: bool) -> BundleTotals:
    groups: dict[str, GroupTotals] = {}
    loose_total = ZERO
    for line in lines:
        if line.info is None:
            loose_total += line.subtotal
            continue
        group = groups.get(line.info.group_id)
        if group is None:
            group = GroupTotals(
                group_id=line.info.group_id,
                bundle_id=line.info.bundle_id,
                bundle_name=line.info.bundle_name,
                bundle_quantity=line.info.bundle_quantity,
                items_total=ZERO,
                bundle_total=_quantize(line.info.bundle_price * line.info.bundle_quantity),
                charged_total=ZERO,
                savings=ZERO,
            )
            groups[line.info.group_id] = group
        group.items_total += line.reference_total
        group.charged_total += line.subtotal

    for group in groups.values():
        paid = group.charged_total if savings_against_charge else group.bundle_total
        group.savings = max(_quantize(group.items_total - paid), ZERO)

    result = BundleTotals(groups=list(groups.values()))
    result.items_total = _quantize(sum((g.items_total for g in result.groups), start=loose_total))
    result.bundle_total = _quantize(sum((g.bundle_total for g in result.groups), start=ZERO))
    result.savings = _quantize(sum((g.savings for g in result.groups), start=ZERO))
    return result


def _build_summary(
    lines: Sequence[_Line],
    bundle_totals: BundleTotals,
    totals: dict[str, str],
    *,
    currency: str,
    fallback_total: str,
) -> OrderSummary:
    item_lines: list[str] = []
    inline_parts: list[str] = []
    seen_groups: set[str] = set()
    index = 0

    for line in lines:
        if line.info is None:
            index += 1
            item_lines.append(_format_detailed_item(index, line, fallback_currency=currency))
            inline_parts.append(_format_inline_item(line.name, line.quantity))
            continue
        if line.info.group_id in seen_groups:
            continue
        seen_groups.add(line.info.group_id)
        index += 1
        group = bundle_totals.get_group(line.info.group_id)
        bundle_name = line.info.bundle_name or "Bundle"
        item_lines.append(f"{index}. {bundle_name} x{line.info.bundle_quantity}")
        inline_parts.append(_format_inline_item(bundle_name, line.info.bundle_quantity))
        for member in lines:
            if member.info is not None and member.info.group_id == line.info.group_id:
                item_lines.append(_format_bundle_member(member, fallback_currency=currency))
        if group is not None and group.savings > 0:
            item_lines.append(f"   Bundle price: {group.bundle_total} {currency}")

    totals_lines: list[str] = []
    if bundle_totals.groups:
        totals_lines.append(f"Price of all items: {bundle_totals.items_total} {currency}")
        if bundle_totals.savings > 0:
            totals_lines.append(f"You save: {bundle_totals.savings} {currency}")
    totals_lines.extend(_format_totals(totals, currency=currency, fallback_total=fallback_total))

    inline = "; ".join(inline_parts)
    return OrderSummary(
        label=inline,
        inline=inline,
        item_lines=item_lines,
        totals_lines=totals_lines,
        has_bundles=bool(bundle_totals.groups),
    )


def _normalize_totals(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    result: dict[str, str] = {}
    for key, value in raw.items():
        if value is None:
            continue
        result[str(key)] = str(value)
    return result


def _format_inline_item(name: str, quantity: int) -> str:
    return f"{name or 'Item'} x{quantity}"


def _format_attributes(attributes: Mapping[str, Any] | None) -> str:
    if not attributes:
        return ""
    return ", ".join(f"{key}: {value}" for key, value in attributes.items())


def _format_detailed_item(index: int, line: _Line, *, fallback_currency: str) -> str:
    currency = line.currency or fallback_currency
    text = f"{index}. {line.name or 'Item'} x{line.quantity}"
    attributes = _format_attributes(line.attributes)
    if attributes:
        text += f" ({attributes})"
    return text + f" - {line.subtotal} {currency}"


def _format_bundle_member(line: _Line, *, fallback_currency: str) -> str:
    currency = line.currency or fallback_currency
    label = line.info.slot_label if line.info and line.info.slot_label else None
    text = "   - "
    if label:
        text += f"{label}: "
    text += f"{line.name or 'Item'} x{line.quantity}"
    attributes = _format_attributes(line.attributes)
    if attributes:
        text += f" ({attributes})"
    # Reference price, not the allocated one.
    return text + f" - {line.reference_total} {currency}"


def _format_totals(
    totals: dict[str, str],
    *,
    currency: str,
    fallback_total: str,
) -> list[str]:
    if not totals:
        return [f"Total: {fallback_total} {currency}"]

    lines: list[str] = []
    subtotal = totals.get("subtotal")
    discount = totals.get("discount")
    tax = totals.get("tax")
    shipping = totals.get("shipping")
    total = totals.get("total")

    if subtotal:
        lines.append(f"Subtotal: {subtotal} {currency}")
    if discount and _is_nonzero(discount):
        lines.append(f"Discounts: -{discount} {currency}")
    if tax and _is_nonzero(tax):
        lines.append(f"Tax: {tax} {currency}")
    if shipping and _is_nonzero(shipping):
        lines.append(f"Shipping: {shipping} {currency}")

    if total:
        lines.append(f"Total: {total} {currency}")
    else:
        lines.append(f"Total: {fallback_total} {currency}")
    return lines


def _is_nonzero(value: str) -> bool:
    try:
        return Decimal(value) != 0
    except (InvalidOperation, TypeError, ValueError):
        return bool(value)


def _quantize(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

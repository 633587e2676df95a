from decimal import Decimal
from types import SimpleNamespace

from bundlecart.services.bundle_pricing import (
    CartLineAllocator,
    LinePricing,
    mark_pricing_pass,
    pricing_pass_ran,
    reset_pricing_pass,
)


def _line(key, quantity, reference, *, group='g1', price='40.00', bundle_quantity=1) -> LinePricing:
    return LinePricing(
        key=key,
        group_id=group,
        quantity=quantity,
        reference_unit_price=Decimal(reference),
        bundle_price=Decimal(price),
        bundle_quantity=bundle_quantity,
    )


def test_allocation_is_proportional_with_remainder_on_first_single_unit_line() -> None:
    allocator = CartLineAllocator()

    result = allocator.reallocate([_line(1, 1, '25.00'), _line(2, 1, '35.00')])

    by_key = {line.key: line for line in result}
    assert by_key[1].line_total == Decimal('16.67')
    assert by_key[2].line_total == Decimal('23.33')
    assert by_key[1].unit_price == Decimal('16.670000')
    assert sum(line.allocated_minor for line in result) == 4000


def test_remainder_goes_to_last_line_without_single_unit_lines() -> None:
    allocator = CartLineAllocator()

    result = allocator.reallocate(
        [_line(1, 2, '10.00', price='10.00'), _line(2, 3, '10.00', price='10.00')]
    )

    # 1000 * 20/50 = 400, 1000 * 30/50 = 600: no remainder
    assert [line.allocated_minor for line in result] == [400, 600]

    result = allocator.reallocate(
        [_line(1, 2, '10.00', price='10.01'), _line(2, 3, '10.00', price='10.01')]
    )
    assert [line.allocated_minor for line in result] == [400, 601]


def test_allocation_conserves_target_for_every_group_size() -> None:
    allocator = CartLineAllocator()
    references = ['19.99', '7.35', '12.00', '3.33', '45.10', '0.99', '8.80']
    quantities = [1, 2, 3, 1, 4, 2, 5]

    for size in range(1, len(references) + 1):
        lines = [
            _line(index, quantities[index], references[index], price='33.33', bundle_quantity=2)
            for index in range(size)
        ]
        result = allocator.reallocate(lines)

        assert sum(line.allocated_minor for line in result) == 6666
        assert sum((line.line_total for line in result), Decimal('0')) == Decimal('66.66')
        charged = sum((line.unit_price * line.quantity for line in result), Decimal('0'))
        assert charged.quantize(Decimal('0.01')) == Decimal('66.66')
        assert all(line.unit_price >= 0 for line in result)


def test_equal_split_when_references_are_missing() -> None:
    allocator = CartLineAllocator()

    result = allocator.reallocate(
        [_line(1, 1, '0', price='10.00'), _line(2, 1, '0', price='10.00'), _line(3, 1, '0', price='10.00')]
    )

    assert [line.allocated_minor for line in result] == [334, 333, 333]


def test_groups_are_independent_and_loose_lines_ignored() -> None:
    allocator = CartLineAllocator()
    lines = [
        _line(1, 1, '25.00', group='a'),
        LinePricing(key=2, group_id=None, quantity=1, reference_unit_price=Decimal('99.00')),
        _line(3, 1, '35.00', group='a'),
        _line(4, 2, '5.00', group='b', price='8.00'),
    ]

    result = allocator.reallocate(lines)

    assert {line.key for line in result} == {1, 3, 4}
    group_b = [line for line in result if line.group_id == 'b']
    assert group_b[0].line_total == Decimal('8.00')
    assert group_b[0].unit_price == Decimal('4.000000')


def test_reallocating_same_state_is_stable() -> None:
    allocator = CartLineAllocator()
    lines = [_line(1, 1, '25.00'), _line(2, 2, '35.00')]

    first = allocator.reallocate(lines)
    second = allocator.reallocate(lines)

    assert first == second


def test_zero_bundle_price_and_zero_bundle_quantity_never_go_negative() -> None:
    allocator = CartLineAllocator()

    zero_price = allocator.reallocate([_line(1, 1, '10.00', price='0.00'), _line(2, 1, '5.00', price='0.00')])
    zero_qty = allocator.reallocate([_line(1, 1, '10.00', bundle_quantity=0)])
    negative = allocator.reallocate([_line(1, 1, '10.00', price='-5.00')])

    for result in (zero_price, zero_qty, negative):
        assert all(line.unit_price == 0 and line.line_total == 0 for line in result)


def test_precision_follows_configured_decimals() -> None:
    allocator = CartLineAllocator(decimals=0)

    result = allocator.reallocate([_line(1, 1, '1', price='100'), _line(2, 1, '2', price='100')])

    assert [line.line_total for line in result] == [Decimal('34'), Decimal('66')]


def test_pricing_pass_flag_is_per_cart_instance() -> None:
    cart = SimpleNamespace()
    other = SimpleNamespace()

    assert pricing_pass_ran(cart) is False
    mark_pricing_pass(cart)
    assert pricing_pass_ran(cart) is True
    assert pricing_pass_ran(other) is False
    reset_pricing_pass(cart)
    assert pricing_pass_ran(cart) is False

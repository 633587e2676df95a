import pytest
import pytest_asyncio
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bundlecart.core.enums import CartStatus, OrderStatus
from bundlecart.infrastructure.db.base import Base
from bundlecart.infrastructure.db.models import Order, OrderLine
from bundlecart.infrastructure.db.repositories import OrderRepository
from bundlecart.services.bundle_catalog import BundleCatalogService
from bundlecart.services.cart_service import CartService
from bundlecart.services.catalog_service import CatalogService
from bundlecart.services.checkout_service import CheckoutService, OrderCreationError
from bundlecart.services.order_projector import OrderProjector
from bundlecart.services.order_summary import build_order_summary, summarize_order_bundles
from bundlecart.services.variant_resolver import VariantResolver, VariantSelection


@pytest_asyncio.fixture()
async def session() -> AsyncSession:
    engine = create_async_engine('sqlite+aiosqlite:///:memory:', future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    async with Session() as session:
        yield session
    await engine.dispose()


async def _cart_with_bundle(session, catalog):
    service = CartService(session)
    cart = await service.get_or_create_cart(session_key='sess-1', currency='USD')
    definition = await BundleCatalogService(session).require_definition(catalog.bundle.id)
    units = await VariantResolver(CatalogService(session)).resolve(
        definition,
        [
            VariantSelection('top', catalog.black_tee.id, catalog.black_small.id),
            VariantSelection('cap', catalog.cap.id),
        ],
    )
    group = await service.add_bundle(cart, definition, units)
    await service.add_product(cart, catalog.cap, quantity=1)
    return cart, group


@pytest.mark.asyncio()
async def test_place_order_freezes_bundle_snapshot(session: AsyncSession, catalog) -> None:
    cart, group = await _cart_with_bundle(session, catalog)
    checkout = CheckoutService(session)

    order = await checkout.place_order(cart)

    assert order.status == OrderStatus.AWAITING_PAYMENT
    assert order.total_amount == Decimal('75.00')
    assert cart.status == CartStatus.CHECKED_OUT
    assert await checkout.get_order_by_public_id(order.public_id) is order
    assert await checkout.get_order_by_public_id('missing') is None

    lines = await checkout.list_lines(order)
    assert [line.subtotal_amount for line in lines] == [Decimal('16.67'), Decimal('23.33'), Decimal('35.00')]
    top, cap, loose = lines
    assert top.bundle_group_id == group.group_id
    assert top.name == 'Tee – Black'
    snapshot = top.meta['bundle']
    assert snapshot['bundle_id'] == catalog.bundle.id
    assert snapshot['bundle_name'] == 'Summer Set'
    assert snapshot['slot_key'] == 'top'
    assert snapshot['slot_label'] == 'T-shirt'
    assert snapshot['bundle_price'] == '40.00'
    assert snapshot['bundle_quantity'] == 1
    assert snapshot['reference_unit_price'] == '25.00'
    assert snapshot['reference_line_total'] == '25.00'
    assert top.meta['attributes'] == {'size': 'S'}
    assert cap.meta['bundle']['reference_line_total'] == '35.00'
    assert loose.bundle_group_id is None
    assert loose.meta is None


@pytest.mark.asyncio()
async def test_place_order_rejects_empty_or_closed_cart(session: AsyncSession, catalog) -> None:
    service = CartService(session)
    cart = await service.get_or_create_cart(session_key='sess-2', currency='USD')
    checkout = CheckoutService(session)

    with pytest.raises(OrderCreationError):
        await checkout.place_order(cart)

    await service.add_product(cart, catalog.cap, quantity=1)
    await checkout.place_order(cart)
    with pytest.raises(OrderCreationError):
        await checkout.place_order(cart)


@pytest.mark.asyncio()
async def test_projection_never_overwrites_existing_snapshot(session: AsyncSession, catalog) -> None:
    cart, _ = await _cart_with_bundle(session, catalog)
    order = await CheckoutService(session).place_order(cart)
    lines = await OrderRepository(session).list_lines(order)
    items = await CartService(session).list_items(cart)
    original = dict(lines[0].meta['bundle'])

    tampered = dict(items[0].meta)
    tampered['bundle'] = {**tampered['bundle'], 'bundle_name': 'Renamed'}
    items[0].meta = tampered

    written = await OrderProjector(session).project(items[0], lines[0])

    assert written is False
    assert lines[0].meta['bundle'] == original


@pytest.mark.asyncio()
async def test_order_summary_reports_reference_prices_and_savings(session: AsyncSession, catalog) -> None:
    cart, _ = await _cart_with_bundle(session, catalog)
    checkout = CheckoutService(session)
    order = await checkout.place_order(cart)

    summary = await checkout.summarize(order)

    assert summary.has_bundles is True
    assert summary.item_lines[0] == '1. Summer Set x1'
    assert '   - T-shirt: Tee – Black x1 (size: S) - 25.00 USD' in summary.item_lines
    assert '   - Cap: Cap x1 - 35.00 USD' in summary.item_lines
    assert '2. Cap x1 - 35.00 USD' in summary.item_lines
    assert 'Price of all items: 95.00 USD' in summary.totals_lines
    assert 'You save: 20.00 USD' in summary.totals_lines
    assert summary.totals_lines[-1] == 'Total: 75.00 USD'


@pytest.mark.asyncio()
async def test_legacy_lines_without_reference_fall_back_to_subtotal(session: AsyncSession) -> None:
    order = Order(
        public_id='legacy-1',
        session_key='sess-legacy',
        status=OrderStatus.PAID,
        subtotal_amount=Decimal('30.00'),
        total_amount=Decimal('30.00'),
        currency='USD',
    )
    lines = [
        OrderLine(
            product_id=1,
            name='Old Tee',
            quantity=1,
            unit_price=Decimal('12.00'),
            subtotal_amount=Decimal('12.00'),
            currency='USD',
            position=1,
            bundle_group_id='legacy-group',
            meta={'bundle': {'bundle_id': 9, 'bundle_name': 'Old Set', 'bundle_price': '30.00'}},
        ),
        OrderLine(
            product_id=2,
            name='Old Cap',
            quantity=1,
            unit_price=Decimal('18.00'),
            subtotal_amount=Decimal('18.00'),
            currency='USD',
            position=2,
            bundle_group_id='legacy-group',
            meta={'bundle': {'bundle_id': 9, 'bundle_name': 'Old Set', 'bundle_price': '30.00'}},
        ),
    ]

    totals = summarize_order_bundles(lines)
    summary = build_order_summary(order, lines)

    assert totals.items_total == Decimal('30.00')
    assert totals.savings == Decimal('0.00')
    assert 'You save' not in ' '.join(summary.totals_lines)
    assert 'Price of all items: 30.00 USD' in summary.totals_lines

import pytest
import pytest_asyncio
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bundlecart.core.enums import RejectionReason
from bundlecart.core.security import verify_form_token
from bundlecart.infrastructure.db.base import Base
from bundlecart.infrastructure.db.models import Product
from bundlecart.services.bundle_catalog import (
    ONE_SIZE,
    BundleCatalogService,
    BundleNotFoundError,
    BundleRejection,
    color_label,
    detect_size_attribute,
)


@pytest_asyncio.fixture()
async def session() -> AsyncSession:
    engine = create_async_engine('sqlite+aiosqlite:///:memory:', future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    async with Session() as session:
        yield session
    await engine.dispose()


@pytest.mark.asyncio()
async def test_definition_lists_slots_in_order(session: AsyncSession, catalog) -> None:
    definition = await BundleCatalogService(session).get_definition(catalog.bundle.id)

    assert definition.bundle_price == Decimal('40.00')
    assert [slot.slot_key for slot in definition.slots] == ['top', 'cap']
    assert definition.get_slot('top').allowed_product_ids == (catalog.black_tee.id, catalog.white_tee.id)
    assert definition.get_slot('cap').quantity == 1


@pytest.mark.asyncio()
async def test_inactive_products_drop_out_of_slots(session: AsyncSession, catalog) -> None:
    catalog.white_tee.is_active = False
    catalog.cap.is_active = False
    await session.flush()

    service = BundleCatalogService(session)
    definition = await service.get_definition(catalog.bundle.id)

    assert [slot.slot_key for slot in definition.slots] == ['top']
    assert definition.slots[0].allowed_product_ids == (catalog.black_tee.id,)

    catalog.black_tee.is_active = False
    await session.flush()
    with pytest.raises(BundleRejection) as exc_info:
        await service.require_definition(catalog.bundle.id)
    assert exc_info.value.reason == RejectionReason.NOT_CONFIGURED


@pytest.mark.asyncio()
async def test_non_bundle_product_is_not_a_definition(session: AsyncSession, catalog) -> None:
    with pytest.raises(BundleNotFoundError):
        await BundleCatalogService(session).get_definition(catalog.cap.id)


@pytest.mark.asyncio()
async def test_build_form_exposes_colours_sizes_and_token(session: AsyncSession, catalog) -> None:
    form = await BundleCatalogService(session).build_form(catalog.bundle.id, session_key='sess-1')

    assert verify_form_token(form.form_token, 'sess-1')
    assert form.bundle_price == Decimal('40.00')
    top, cap = form.slots
    black, white = top.options
    assert black.color == 'Black'
    assert white.color == 'White'
    assert set(black.sizes) == {'S', 'M'}
    assert black.sizes['S'].in_stock is True
    assert black.sizes['M'].in_stock is False
    assert black.sizes['S'].regular_price == Decimal('25.00')
    assert black.regular_price == Decimal('25.00')
    assert white.sizes['S'].regular_price == Decimal('22.00')
    assert list(cap.options[0].sizes) == [ONE_SIZE]
    assert cap.options[0].sizes[ONE_SIZE].variation_id is None


def test_color_label_prefers_attribute_then_title_suffix() -> None:
    assert color_label(Product(name='Tee – Navy', attributes={'Colour': 'Blue'})) == 'Blue'
    assert color_label(Product(name='Tee - Navy', attributes=None)) == 'Navy'
    assert color_label(Product(name='Plain Tee', attributes={})) == 'Plain Tee'


def test_detect_size_attribute() -> None:
    assert detect_size_attribute([{'Talla': 'M', 'fit': 'slim'}]) == 'Talla'
    assert detect_size_attribute([{'length': '30'}, {'length': '32'}]) == 'length'
    assert detect_size_attribute(
        [{'fit': 'slim', 'length': '30'}, {'fit': 'slim', 'length': '32'}, {'fit': 'slim', 'length': '34'}]
    ) == 'length'
    assert detect_size_attribute([]) is None

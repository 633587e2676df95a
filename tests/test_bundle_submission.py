import time

import pytest
import pytest_asyncio
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bundlecart.core.config import get_settings
from bundlecart.core.enums import RejectionReason
from bundlecart.core.security import issue_form_token, verify_form_token
from bundlecart.infrastructure.db.base import Base
from bundlecart.services.bundle_catalog import BundleRejection
from bundlecart.services.bundle_submission import BundleSubmissionHandler, parse_bundle_form
from bundlecart.services.cart_service import CartService


@pytest_asyncio.fixture()
async def session() -> AsyncSession:
    engine = create_async_engine('sqlite+aiosqlite:///:memory:', future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    async with Session() as session:
        yield session
    await engine.dispose()


def _form(catalog, *, token, variation_id=None, quantity='1') -> dict:
    return {
        'add-to-cart': str(catalog.bundle.id),
        'quantity': quantity,
        'item_product[top]': str(catalog.black_tee.id),
        'item_variation[top]': str(variation_id or catalog.black_small.id),
        'item_product[cap]': str(catalog.cap.id),
        'form_token': token,
    }


def test_form_token_is_bound_to_session_and_expires() -> None:
    issued_at = time.time()
    token = issue_form_token('sess-1', now=issued_at)

    assert verify_form_token(token, 'sess-1', now=issued_at + 10)
    assert not verify_form_token(token, 'sess-2', now=issued_at + 10)
    assert not verify_form_token(token, 'sess-1', 'other_action', now=issued_at + 10)
    ttl = get_settings().form_token_ttl_seconds
    assert not verify_form_token(token, 'sess-1', now=issued_at + ttl + 1)
    assert not verify_form_token(token[:-1] + ('0' if token[-1] != '0' else '1'), 'sess-1', now=issued_at)
    assert not verify_form_token(None, 'sess-1')
    assert not verify_form_token('garbage', 'sess-1')


def test_parse_bundle_form_reads_slot_fields() -> None:
    submission = parse_bundle_form(
        {
            'add-to-cart': '12',
            'quantity': '0',
            'item_product[top]': '3',
            'item_variation[top]': '7',
            'item_product[cap]': '5',
            'item_variation[cap]': '',
            'form_token': 'abc',
        }
    )

    assert submission.bundle_id == 12
    assert submission.bundle_quantity == 1
    assert submission.form_token == 'abc'
    by_slot = {selection.slot_key: selection for selection in submission.selections}
    assert by_slot['top'].product_id == 3 and by_slot['top'].variation_id == 7
    assert by_slot['cap'].product_id == 5 and by_slot['cap'].variation_id is None


def test_parse_bundle_form_accepts_nested_mappings() -> None:
    submission = parse_bundle_form(
        {
            'add-to-cart': ['4'],
            'quantity': '3',
            'item_product': {'top': '9'},
            'item_variation': {'top': 'x'},
        }
    )

    assert submission.bundle_id == 4
    assert submission.bundle_quantity == 3
    assert submission.selections[0].product_id == 9
    assert submission.selections[0].variation_id is None
    assert submission.form_token is None


@pytest.mark.asyncio()
async def test_handler_adds_bundle_and_returns_notice(session: AsyncSession, catalog) -> None:
    cart = await CartService(session).get_or_create_cart(session_key='sess-1', currency='USD')
    handler = BundleSubmissionHandler(session)

    result = await handler.handle(cart, _form(catalog, token=issue_form_token('sess-1')), session_key='sess-1')

    assert result.notice == '"Summer Set" was added to your cart.'
    assert len(result.items) == 2
    assert cart.subtotal_amount == Decimal('40.00')


@pytest.mark.asyncio()
async def test_handler_rejects_bad_token_before_resolution(session: AsyncSession, catalog) -> None:
    cart = await CartService(session).get_or_create_cart(session_key='sess-1', currency='USD')
    handler = BundleSubmissionHandler(session)

    with pytest.raises(BundleRejection) as exc_info:
        await handler.handle(cart, _form(catalog, token=issue_form_token('sess-other')), session_key='sess-1')

    assert exc_info.value.reason == RejectionReason.SECURITY_CHECK_FAILED
    assert exc_info.value.message == 'Security check failed. Please try again.'
    assert exc_info.value.selections['cap']['product_id'] == catalog.cap.id
    assert await CartService(session).list_items(cart) == []


@pytest.mark.asyncio()
async def test_handler_adds_nothing_when_any_slot_fails(session: AsyncSession, catalog) -> None:
    service = CartService(session)
    cart = await service.get_or_create_cart(session_key='sess-1', currency='USD')
    handler = BundleSubmissionHandler(session)

    with pytest.raises(BundleRejection) as exc_info:
        await handler.handle(
            cart,
            _form(catalog, token=issue_form_token('sess-1'), variation_id=catalog.black_medium.id),
            session_key='sess-1',
        )

    assert exc_info.value.reason == RejectionReason.OUT_OF_STOCK
    assert exc_info.value.selections['top']['variation_id'] == catalog.black_medium.id
    assert await service.list_items(cart) == []


@pytest.mark.asyncio()
async def test_handler_rejects_non_bundle_product(session: AsyncSession, catalog) -> None:
    cart = await CartService(session).get_or_create_cart(session_key='sess-1', currency='USD')
    form = _form(catalog, token=issue_form_token('sess-1'))
    form['add-to-cart'] = str(catalog.cap.id)

    with pytest.raises(BundleRejection) as exc_info:
        await BundleSubmissionHandler(session).handle(cart, form, session_key='sess-1')

    assert exc_info.value.reason == RejectionReason.NOT_CONFIGURED


@pytest.mark.asyncio()
async def test_handler_missing_size_in_second_slot_adds_nothing(
    session: AsyncSession, catalog, three_piece_bundle
) -> None:
    service = CartService(session)
    cart = await service.get_or_create_cart(session_key='sess-1', currency='USD')
    await service.add_product(cart, catalog.cap, quantity=1)
    before = len(await service.list_items(cart))
    form = {
        'add-to-cart': str(three_piece_bundle.id),
        'quantity': '1',
        'item_product[top]': str(catalog.black_tee.id),
        'item_variation[top]': str(catalog.black_small.id),
        'item_product[spare]': str(catalog.white_tee.id),
        'item_variation[spare]': '',
        'item_product[cap]': str(catalog.cap.id),
        'form_token': issue_form_token('sess-1'),
    }

    with pytest.raises(BundleRejection) as exc_info:
        await BundleSubmissionHandler(session).handle(cart, form, session_key='sess-1')

    assert exc_info.value.reason == RejectionReason.MISSING_SIZE
    assert exc_info.value.message == 'Please select a size for all bundle items.'
    assert exc_info.value.slot_key == 'spare'
    assert len(await service.list_items(cart)) == before
    assert cart.subtotal_amount == Decimal('35.00')

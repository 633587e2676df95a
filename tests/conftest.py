from dataclasses import dataclass
from decimal import Decimal

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from bundlecart.core.enums import ProductType
from bundlecart.infrastructure.db.models import Product, ProductVariation
from bundlecart.services.bundle_admin_service import (
    BundleAdminService,
    ProductInput,
    SlotInput,
    VariationInput,
)


@dataclass
class SeededCatalog:
    bundle: Product
    black_tee: Product
    white_tee: Product
    cap: Product
    black_small: ProductVariation
    black_medium: ProductVariation
    white_small: ProductVariation


@pytest_asyncio.fixture()
async def catalog(session: AsyncSession) -> SeededCatalog:
    """Tee (two colours, sized) + cap bundle sold for 40.00 against 60.00 of items."""
    admin = BundleAdminService(session)

    black_tee = await admin.create_product(
        ProductInput(
            name='Tee – Black',
            price=None,
            currency='USD',
            product_type=ProductType.VARIABLE,
            attributes={'color': 'Black'},
        )
    )
    white_tee = await admin.create_product(
        ProductInput(
            name='Tee – White',
            price=None,
            currency='USD',
            product_type=ProductType.VARIABLE,
        )
    )
    cap = await admin.create_product(
        ProductInput(name='Cap', price=Decimal('35.00'), currency='USD')
    )
    black_small = await admin.add_variation(
        black_tee.id,
        VariationInput(
            attributes={'size': 'S'},
            price=Decimal('20.00'),
            regular_price=Decimal('25.00'),
            inventory=5,
        ),
    )
    black_medium = await admin.add_variation(
        black_tee.id,
        VariationInput(
            attributes={'size': 'M'},
            price=Decimal('20.00'),
            regular_price=Decimal('25.00'),
            inventory=0,
        ),
    )
    white_small = await admin.add_variation(
        white_tee.id,
        VariationInput(attributes={'size': 'S'}, price=Decimal('22.00')),
    )

    bundle = await admin.create_product(
        ProductInput(name='Summer Set', price=None, currency='USD')
    )
    await admin.save_bundle(
        bundle.id,
        [
            SlotInput(key='top', label='T-shirt', quantity=1, product_ids=[black_tee.id, white_tee.id]),
            SlotInput(key='cap', label='Cap', quantity=1, product_ids=[cap.id]),
        ],
        price='40.00',
    )
    await session.flush()

    return SeededCatalog(
        bundle=bundle,
        black_tee=black_tee,
        white_tee=white_tee,
        cap=cap,
        black_small=black_small,
        black_medium=black_medium,
        white_small=white_small,
    )


@pytest_asyncio.fixture()
async def three_piece_bundle(session: AsyncSession, catalog: SeededCatalog) -> Product:
    """Black tee + white tee + cap sold together for 60.00."""
    admin = BundleAdminService(session)
    bundle = await admin.create_product(ProductInput(name='Weekend Set', price=None, currency='USD'))
    await admin.save_bundle(
        bundle.id,
        [
            SlotInput(key='top', label='T-shirt', quantity=1, product_ids=[catalog.black_tee.id]),
            SlotInput(key='spare', label='Spare T-shirt', quantity=1, product_ids=[catalog.white_tee.id]),
            SlotInput(key='cap', label='Cap', quantity=1, product_ids=[catalog.cap.id]),
        ],
        price='60.00',
    )
    await session.flush()
    return bundle

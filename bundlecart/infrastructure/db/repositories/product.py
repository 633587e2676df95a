from __future__ import annotations

from typing import Iterable, Sequence

from sqlalchemy import func, or_, select

from bundlecart.core.enums import ProductType
from bundlecart.infrastructure.db.models import Product, ProductVariation

from .base import BaseRepository


class ProductRepository(BaseRepository):
    async def get_by_id(self, product_id: int) -> Product | None:
        result = await self.session.execute(select(Product).where(Product.id == product_id))
        return result.scalar_one_or_none()

    async def get_many(self, product_ids: Iterable[int]) -> dict[int, Product]:
        ids = {int(product_id) for product_id in product_ids}
        if not ids:
            return {}
        result = await self.session.execute(select(Product).where(Product.id.in_(ids)))
        return {product.id: product for product in result.scalars()}

    async def list_by_type(self, product_type: ProductType) -> Sequence[Product]:
        stmt = (
            select(Product)
            .where(Product.product_type == product_type)
            .order_by(Product.position.asc(), Product.id.asc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def search(self, term: str, *, limit: int) -> Sequence[Product]:
        stmt = select(Product)
        if term:
            pattern = f"%{term}%"
            stmt = stmt.where(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
        stmt = stmt.order_by(Product.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def slug_exists(self, slug: str) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(Product).where(Product.slug == slug)
        )
        return bool(result.scalar())

    async def add_product(self, product: Product) -> Product:
        self.session.add(product)
        await self.session.flush()
        return product

    async def get_next_position(self) -> int:
        result = await self.session.execute(select(func.max(Product.position)))
        max_position = result.scalar()
        return (max_position or 0) + 1

    async def list_variations(self, product_id: int) -> list[ProductVariation]:
        stmt = (
            select(ProductVariation)
            .where(ProductVariation.product_id == product_id)
            .order_by(ProductVariation.position.asc(), ProductVariation.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def get_variation(self, variation_id: int, *, parent_id: int | None = None) -> ProductVariation | None:
        stmt = select(ProductVariation).where(ProductVariation.id == variation_id)
        if parent_id is not None:
            stmt = stmt.where(ProductVariation.product_id == parent_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_variations(self, variation_ids: Iterable[int]) -> dict[int, ProductVariation]:
        ids = {int(variation_id) for variation_id in variation_ids}
        if not ids:
            return {}
        result = await self.session.execute(select(ProductVariation).where(ProductVariation.id.in_(ids)))
        return {variation.id: variation for variation in result.scalars()}

    async def add_variation(self, variation: ProductVariation) -> ProductVariation:
        self.session.add(variation)
        await self.session.flush()
        return variation

    async def get_next_variation_position(self, product_id: int) -> int:
        result = await self.session.execute(
            select(func.max(ProductVariation.position)).where(ProductVariation.product_id == product_id)
        )
        max_position = result.scalar()
        return (max_position or 0) + 1

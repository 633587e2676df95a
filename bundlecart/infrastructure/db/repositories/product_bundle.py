from __future__ import annotations

from collections import defaultdict

from sqlalchemy import select

from bundlecart.infrastructure.db.models import BundleSlot, BundleSlotOption

from .base import BaseRepository


class ProductBundleRepository(BaseRepository):
    async def list_slots(self, bundle_product_id: int) -> list[BundleSlot]:
        stmt = (
            select(BundleSlot)
            .where(BundleSlot.bundle_product_id == bundle_product_id)
            .order_by(BundleSlot.position.asc(), BundleSlot.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def list_option_ids(self, bundle_product_id: int) -> dict[int, list[int]]:
        """Map each slot id of the bundle to its ordered option product ids."""
        stmt = (
            select(BundleSlotOption.slot_id, BundleSlotOption.product_id)
            .join(BundleSlot, BundleSlot.id == BundleSlotOption.slot_id)
            .where(BundleSlot.bundle_product_id == bundle_product_id)
            .order_by(BundleSlotOption.position.asc(), BundleSlotOption.id.asc())
        )
        result = await self.session.execute(stmt)
        options: dict[int, list[int]] = defaultdict(list)
        for slot_id, product_id in result.all():
            options[slot_id].append(product_id)
        return dict(options)

    async def add_slot(
        self,
        *,
        bundle_product_id: int,
        slot_key: str,
        label: str,
        quantity: int,
        position: int,
        product_ids: list[int],
    ) -> BundleSlot:
        slot = BundleSlot(
            bundle_product_id=bundle_product_id,
            slot_key=slot_key,
            label=label,
            quantity=quantity,
            position=position,
        )
        self.session.add(slot)
        await self.session.flush()
        for index, product_id in enumerate(product_ids, start=1):
            self.session.add(BundleSlotOption(slot_id=slot.id, product_id=product_id, position=index))
        await self.session.flush()
        return slot

    async def clear_slots(self, bundle_product_id: int) -> None:
        slots = await self.list_slots(bundle_product_id)
        if not slots:
            return
        result = await self.session.execute(
            select(BundleSlotOption).where(BundleSlotOption.slot_id.in_([slot.id for slot in slots]))
        )
        for option in result.scalars().all():
            await self.session.delete(option)
        await self.session.flush()
        for slot in slots:
            await self.session.delete(slot)
        await self.session.flush()

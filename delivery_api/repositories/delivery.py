from __future__ import annotations

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select

from delivery_api.db.models.delivery import DeliveryZone, Order
from .base import BaseRepository

# Orders in these states never receive further notifications.
CLOSED_ORDER_STATUSES = ("cancelled", "failed")


class DeliveryZoneRepository(BaseRepository):
    """
    Repository for delivery zones.

    All queries are automatically tenant-scoped by Postgres RLS.
    """

    async def list_zones(self, *, active_only: bool = False) -> List[DeliveryZone]:
        stmt = select(DeliveryZone)
        if active_only:
            stmt = stmt.where(DeliveryZone.is_active.is_(True))
        stmt = stmt.order_by(DeliveryZone.priority.desc(), DeliveryZone.name)
        res = await self.scalars(stmt)
        return list(res)

    async def get_zone(self, zone_id: UUID) -> Optional[DeliveryZone]:
        return await self.scalar_one_or_none(select(DeliveryZone).where(DeliveryZone.id == zone_id))

    async def get_zone_by_name(self, name: str) -> Optional[DeliveryZone]:
        return await self.scalar_one_or_none(select(DeliveryZone).where(DeliveryZone.name == name))


class OrderRepository(BaseRepository):
    """Repository for delivery orders."""

    async def get_order(self, order_id: UUID, *, for_update: bool = False) -> Optional[Order]:
        stmt = select(Order).where(Order.id == order_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.scalar_one_or_none(stmt)

    async def list_active_ids_for_notifications(self) -> List[UUID]:
        stmt = (
            select(Order.id)
            .where(Order.status.not_in(CLOSED_ORDER_STATUSES))
            .where(Order.delivered_sent.is_(False))
            .order_by(Order.created_at)
        )
        res = await self.scalars(stmt)
        return list(res)

    async def list_orders(
        self, *, statuses: Optional[Sequence[str]] = None, limit: int = 1000, offset: int = 0
    ) -> List[Order]:
        stmt = select(Order)
        if statuses:
            stmt = stmt.where(Order.status.in_(list(statuses)))
        stmt = stmt.order_by(Order.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

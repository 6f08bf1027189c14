from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from delivery_api.db.models.storefront import Store
from .base import BaseRepository


class StoreRepository(BaseRepository):
    """Repository for storefront settings."""

    async def get_by_slug(self, slug: str) -> Optional[Store]:
        return await self.scalar_one_or_none(select(Store).where(Store.slug == slug))

    async def get_default(self) -> Optional[Store]:
        stmt = select(Store).where(Store.is_active.is_(True)).order_by(Store.created_at).limit(1)
        return await self.scalar_one_or_none(stmt)

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select

from delivery_api.db.models.catalog import Product
from .base import BaseRepository


class ProductRepository(BaseRepository):
    """Repository for catalog products."""

    async def list_products(
        self, *, search: Optional[str] = None, active_only: bool = False, limit: int = 100, offset: int = 0
    ) -> List[Product]:
        stmt = select(Product)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(Product.name.ilike(like), Product.brand.ilike(like), Product.sku.ilike(like)))
        if active_only:
            stmt = stmt.where(Product.is_active.is_(True))
        stmt = stmt.order_by(Product.name).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def list_all(self) -> List[Product]:
        res = await self.scalars(select(Product).order_by(Product.created_at))
        return list(res)

    async def get_product(self, product_id: UUID) -> Optional[Product]:
        return await self.scalar_one_or_none(select(Product).where(Product.id == product_id))

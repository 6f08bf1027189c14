from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, text

from delivery_api.db.models.tenancy import Tenant
from .base import BaseRepository


class TenantRepository(BaseRepository):
    """
    Repository for the tenants table.

    The row-level policy on tenants only exposes the current tenant, so
    cross-tenant lookups go through SECURITY DEFINER SQL functions.
    """

    async def get_current(self) -> Optional[Tenant]:
        stmt = select(Tenant).where(
            Tenant.id == text("NULLIF(current_setting('app.tenant_id', true), '')::uuid")
        )
        return await self.scalar_one_or_none(stmt)

    async def get_by_id(self, tenant_id: UUID) -> Optional[Tenant]:
        return await self.scalar_one_or_none(select(Tenant).where(Tenant.id == tenant_id))

    async def tenant_id_for_slug(self, slug: str) -> Optional[UUID]:
        return await self.scalar_one_or_none(text("SELECT tenant_id_for_slug(:slug)"), {"slug": slug})

    async def tenant_id_for_stripe_customer(self, customer_id: str) -> Optional[UUID]:
        return await self.scalar_one_or_none(
            text("SELECT tenant_id_for_stripe_customer(:customer_id)"), {"customer_id": customer_id}
        )

    async def list_tenant_ids(self) -> List[UUID]:
        result = await self.scalars(text("SELECT list_tenant_ids()"))
        return list(result)

    async def create(self, *, tenant_id: UUID, name: str, slug: str) -> Tenant:
        tenant = Tenant(id=tenant_id, name=name, slug=slug)
        await self.add(tenant)
        await self.flush()
        return tenant

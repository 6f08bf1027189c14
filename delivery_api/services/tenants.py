from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.errors import ConflictError, DomainError, NotFoundError
from delivery_api.core.passwords import validate_password
from delivery_api.core.security import create_token_pair, get_password_hash
from delivery_api.core.settings import AppSettings, get_app_settings
from delivery_api.db.models.tenancy import Tenant
from delivery_api.db.session import tenant_context
from delivery_api.repositories.security import SecurityRepository
from delivery_api.repositories.tenants import TenantRepository
from delivery_api.services.base import BaseService
from delivery_api.services.credits import CreditService

logger = logging.getLogger(__name__)

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")
SLUG_ATTEMPTS = 10


# PUBLIC_INTERFACE
def slugify(value: str) -> str:
    """Lowercase, collapse runs of non-alphanumerics into '-', trim dashes."""
    return _SLUG_INVALID.sub("-", value.lower()).strip("-")


@dataclass
class SignupResult:
    tenant: Tenant
    user_id: UUID
    access_token: str
    refresh_token: str


class TenantService(BaseService):
    """Tenant signup and lookup."""

    def __init__(self, session: AsyncSession, *, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session)
        self.settings = settings or get_app_settings()
        self.repo = TenantRepository(session)

    # PUBLIC_INTERFACE
    async def signup_tenant(
        self,
        *,
        business_name: str,
        owner_email: str,
        owner_password: str,
        slug: Optional[str] = None,
        owner_name: Optional[str] = None,
        owner_phone: Optional[str] = None,
    ) -> SignupResult:
        """
        Create a tenant with its owner account and starting credits.

        The tenant row is committed first so the slug is reserved. If any later
        step fails the tenant is deleted again and the original error propagates.
        """
        check = validate_password(owner_password)
        if not check.is_valid:
            raise DomainError("Password does not meet requirements", details={"errors": check.errors})

        tenant_slug = slugify(slug or business_name)
        if not tenant_slug:
            raise DomainError("Business name must contain letters or digits")
        if slug:
            if await self.repo.tenant_id_for_slug(tenant_slug) is not None:
                raise ConflictError(f"Slug '{tenant_slug}' is already taken")
        else:
            tenant_slug = await self._available_slug(tenant_slug)

        tenant_id = uuid4()
        async with tenant_context(self.session, tenant_id):
            tenant = await self.repo.create(tenant_id=tenant_id, name=business_name.strip(), slug=tenant_slug)
            await self.session.commit()
            try:
                user_id = await self._provision(tenant, owner_email, owner_password, owner_name, owner_phone)
            except Exception:
                await self.session.rollback()
                await self._cleanup(tenant_id)
                raise

        access, refresh = create_token_pair(str(user_id), str(tenant_id), ["admin"])
        logger.info("Tenant %s (%s) signed up", tenant_slug, tenant_id)
        return SignupResult(tenant=tenant, user_id=user_id, access_token=access, refresh_token=refresh)

    async def _available_slug(self, base: str) -> str:
        """First free of base, base-<millis> retries, then base-<random hex>."""
        candidate = base
        for _ in range(SLUG_ATTEMPTS):
            if await self.repo.tenant_id_for_slug(candidate) is None:
                return candidate
            candidate = f"{base}-{int(time.time() * 1000)}"
        fallback = f"{base}-{uuid4().hex[:8]}"
        logger.warning("Slug %s still taken after %d attempts, using %s", base, SLUG_ATTEMPTS, fallback)
        return fallback

    async def _provision(
        self,
        tenant: Tenant,
        owner_email: str,
        owner_password: str,
        owner_name: Optional[str],
        owner_phone: Optional[str],
    ) -> UUID:
        security = SecurityRepository(self.session)
        user = await security.create_user(
            email=owner_email,
            full_name=owner_name,
            hashed_password=get_password_hash(owner_password),
            phone=owner_phone,
        )
        role = await security.ensure_role("admin", "Administrator")
        await security.assign_role_to_user(user.id, role.id)

        credits = CreditService(self.session, settings=self.settings)
        await credits.repo.create_ledger(balance=0)
        await credits.grant_free_credits(
            self.settings.FREE_TIER_STARTING_CREDITS, grant_type="signup_bonus", commit=False
        )
        await self.session.commit()
        return user.id

    async def _cleanup(self, tenant_id: UUID) -> None:
        try:
            tenant = await self.repo.get_by_id(tenant_id)
            if tenant is not None:
                await self.repo.delete(tenant)
                await self.session.commit()
        except Exception:
            logger.exception("Failed to clean up tenant %s after signup error", tenant_id)
            await self.session.rollback()

    # PUBLIC_INTERFACE
    async def get_current_tenant(self) -> Tenant:
        tenant = await self.repo.get_current()
        if tenant is None:
            raise NotFoundError("Tenant not found")
        return tenant

    # PUBLIC_INTERFACE
    async def get_tenant_by_slug(self, slug: str) -> Tenant:
        """Resolve a storefront slug to its tenant without a tenant header."""
        tenant_id = await self.repo.tenant_id_for_slug(slugify(slug))
        if tenant_id is None:
            raise NotFoundError(f"No tenant with slug '{slug}'")
        async with tenant_context(self.session, tenant_id):
            tenant = await self.repo.get_by_id(tenant_id)
        if tenant is None:
            raise NotFoundError(f"No tenant with slug '{slug}'")
        return tenant

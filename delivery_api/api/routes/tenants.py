from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.deps import get_current_active_user, get_session_no_tenant, get_tenant_session
from delivery_api.schemas.auth import TokenPair
from delivery_api.schemas.tenants import TenantPublic, TenantRead, TenantSignupRequest, TenantSignupResponse
from delivery_api.services.tenants import TenantService

router = APIRouter(prefix="/tenants", tags=["Tenants"])


# PUBLIC_INTERFACE
@router.post(
    "/signup",
    response_model=TenantSignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Sign up a business",
    description=(
        "Create a tenant, its owner account with the admin role, and a credit ledger holding "
        "the free-tier starting credits. No X-Tenant-ID header is needed."
    ),
)
async def signup_tenant(
    payload: TenantSignupRequest,
    session: AsyncSession = Depends(get_session_no_tenant),
) -> TenantSignupResponse:
    result = await TenantService(session).signup_tenant(
        business_name=payload.business_name,
        slug=payload.slug,
        owner_email=payload.owner_email,
        owner_password=payload.owner_password,
        owner_name=payload.owner_name,
        owner_phone=payload.owner_phone,
    )
    return TenantSignupResponse(
        tenant=TenantRead.model_validate(result.tenant),
        user_id=result.user_id,
        tokens=TokenPair(access_token=result.access_token, refresh_token=result.refresh_token),
    )


# PUBLIC_INTERFACE
@router.get(
    "/current",
    response_model=TenantRead,
    summary="Current tenant",
    description="Tier, subscription status and grace period of the tenant in X-Tenant-ID.",
)
async def read_current_tenant(
    _user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TenantRead:
    tenant = await TenantService(session).get_current_tenant()
    return TenantRead.model_validate(tenant)


# PUBLIC_INTERFACE
@router.get(
    "/by-slug/{slug}",
    response_model=TenantPublic,
    summary="Resolve tenant by slug",
    description="Public lookup used by storefronts to find their tenant. No X-Tenant-ID header is needed.",
)
async def read_tenant_by_slug(
    slug: str,
    session: AsyncSession = Depends(get_session_no_tenant),
) -> TenantPublic:
    tenant = await TenantService(session).get_tenant_by_slug(slug)
    return TenantPublic.model_validate(tenant)

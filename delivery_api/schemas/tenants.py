from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from .auth import TokenPair


class TenantSignupRequest(BaseModel):
    """Self-service signup for a new business."""
    business_name: str = Field(..., min_length=2, max_length=120, description="Business display name")
    slug: Optional[str] = Field(None, description="URL slug; derived from the business name when omitted")
    owner_email: EmailStr = Field(..., description="Owner login email")
    owner_password: str = Field(..., description="Owner password")
    owner_name: Optional[str] = Field(None, description="Owner full name")
    owner_phone: Optional[str] = Field(None, description="Owner mobile number")


class TenantRead(BaseModel):
    """Tenant read model."""
    id: UUID = Field(..., description="Tenant ID")
    name: str = Field(..., description="Business name")
    slug: str = Field(..., description="Unique slug")
    is_free_tier: bool = Field(..., description="Free tier accounts pay per action with credits")
    credits_enabled: bool = Field(...)
    subscription_status: str = Field(..., description="free | trial | active | past_due | cancelled | unpaid")
    grace_period_ends_at: Optional[datetime] = Field(None, description="End of the payment grace period")
    created_at: datetime = Field(..., description="Created timestamp")

    class Config:
        from_attributes = True


class TenantPublic(BaseModel):
    """Public storefront identity resolved from a slug."""
    id: UUID = Field(..., description="Tenant ID")
    name: str = Field(..., description="Business name")
    slug: str = Field(..., description="Unique slug")

    class Config:
        from_attributes = True


class TenantSignupResponse(BaseModel):
    tenant: TenantRead
    user_id: UUID
    tokens: TokenPair

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CreditBalanceRead(BaseModel):
    balance: int
    lifetime_earned: int
    lifetime_spent: int
    credits_used_today: int
    credits_used_this_week: int
    credits_used_this_month: int
    tier_status: str
    is_free_tier: bool

    class Config:
        from_attributes = True


class CreditCostRead(BaseModel):
    action_key: str
    action_name: str
    credits: int
    category: str
    description: str


class CreditPackageRead(BaseModel):
    slug: str
    name: str
    credits: int
    price_cents: int
    description: str


class CreditCheckRequest(BaseModel):
    action_key: str = Field(..., description="Action key from the cost catalog")


class CreditCheckResponse(BaseModel):
    has_credits: bool
    balance: int
    cost: int
    is_free_tier: bool


class CreditConsumeRequest(BaseModel):
    action_key: str = Field(..., description="Action key from the cost catalog")
    reference_id: Optional[str] = Field(None, description="Id of the entity the action touched")
    reference_type: Optional[str] = Field(None, description="Type of the referenced entity")
    description: Optional[str] = None


class CreditConsumeResponse(BaseModel):
    success: bool
    new_balance: Optional[int] = Field(None, description="Null when nothing was deducted")
    credits_cost: int
    warning_level: Optional[int] = Field(None, description="Low-balance level crossed by this deduction")


class CreditTransactionRead(BaseModel):
    id: UUID
    amount: int
    balance_after: int
    transaction_type: str
    action_type: Optional[str] = None
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    description: Optional[str] = None
    details: dict = Field(default_factory=dict)
    created_at: datetime

    class Config:
        from_attributes = True


class CreditCheckoutRequest(BaseModel):
    package_slug: str = Field(..., description="One of the credit package slugs")


class CheckoutSessionResponse(BaseModel):
    checkout_url: str
    session_id: str


class CreditSubscriptionRequest(BaseModel):
    price_id: str = Field(..., description="Stripe recurring price id")
    monthly_credits: int = Field(..., gt=0)


class CreditAdjustRequest(BaseModel):
    """Manual balance correction by platform staff."""
    tenant_id: UUID
    amount: int = Field(..., description="Positive to grant, negative to deduct")
    reason: str = Field(..., min_length=3)
    notes: Optional[str] = None


class CreditAdjustResponse(BaseModel):
    previous_balance: int
    new_balance: int


class CreditTransactionList(BaseModel):
    items: List[CreditTransactionRead] = Field(default_factory=list)
    limit: int
    offset: int

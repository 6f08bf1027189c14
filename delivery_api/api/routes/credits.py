from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.deps import get_current_active_user, get_tenant_id, get_tenant_session, require_roles
from delivery_api.schemas.credits import (
    CheckoutSessionResponse,
    CreditAdjustRequest,
    CreditAdjustResponse,
    CreditBalanceRead,
    CreditCheckoutRequest,
    CreditCheckRequest,
    CreditCheckResponse,
    CreditConsumeRequest,
    CreditConsumeResponse,
    CreditCostRead,
    CreditPackageRead,
    CreditSubscriptionRequest,
    CreditTransactionList,
    CreditTransactionRead,
)
from delivery_api.services.credit_catalog import CREDIT_COSTS, CREDIT_PACKAGES
from delivery_api.services.credits import CreditService

router = APIRouter(prefix="/credits", tags=["Credits"])

_billing = [Depends(require_roles("admin", "billing:manage"))]


# PUBLIC_INTERFACE
@router.get("/balance", response_model=CreditBalanceRead, summary="Credit balance")
async def get_balance(
    _user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> CreditBalanceRead:
    ledger = await CreditService(session).get_balance()
    return CreditBalanceRead.model_validate(ledger)


# PUBLIC_INTERFACE
@router.get(
    "/costs",
    response_model=List[CreditCostRead],
    summary="Credit cost catalog",
    description="Credits charged per action for free-tier tenants. Actions not listed are free.",
)
async def list_costs(category: Optional[str] = Query(None)) -> List[CreditCostRead]:
    costs = [c for c in CREDIT_COSTS.values() if category is None or c.category == category]
    return [CreditCostRead(**vars(c)) for c in costs]


# PUBLIC_INTERFACE
@router.get("/packages", response_model=List[CreditPackageRead], summary="Credit packages")
async def list_packages() -> List[CreditPackageRead]:
    return [CreditPackageRead(**vars(p)) for p in CREDIT_PACKAGES]


# PUBLIC_INTERFACE
@router.post(
    "/check",
    response_model=CreditCheckResponse,
    summary="Check affordability",
    description="Report whether the tenant can afford an action without charging it.",
)
async def check_credits(
    payload: CreditCheckRequest,
    _user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> CreditCheckResponse:
    result = await CreditService(session).check_credits(payload.action_key)
    return CreditCheckResponse.model_validate(result, from_attributes=True)


# PUBLIC_INTERFACE
@router.post(
    "/consume",
    response_model=CreditConsumeResponse,
    summary="Consume credits",
    description="Charge an action against the balance. Responds 402 when the balance is too low.",
)
async def consume_credits(
    payload: CreditConsumeRequest,
    _user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> CreditConsumeResponse:
    result = await CreditService(session).consume_credits(
        payload.action_key,
        reference_id=payload.reference_id,
        reference_type=payload.reference_type,
        description=payload.description,
    )
    return CreditConsumeResponse.model_validate(result, from_attributes=True)


# PUBLIC_INTERFACE
@router.get("/transactions", response_model=CreditTransactionList, summary="Credit transactions")
async def list_transactions(
    transaction_type: Optional[str] = Query(None, description="usage | purchase | free_grant | adjustment | refund"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    _user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> CreditTransactionList:
    items = await CreditService(session).list_transactions(
        transaction_type=transaction_type, limit=limit, offset=offset
    )
    return CreditTransactionList(
        items=[CreditTransactionRead.model_validate(t) for t in items], limit=limit, offset=offset
    )


# PUBLIC_INTERFACE
@router.post(
    "/checkout",
    response_model=CheckoutSessionResponse,
    summary="Buy a credit package",
    description="Create a Stripe Checkout session; credits are added when Stripe confirms the payment.",
    dependencies=_billing,
)
async def create_checkout(
    payload: CreditCheckoutRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_tenant_session),
) -> CheckoutSessionResponse:
    result = await CreditService(session).create_credit_checkout(tenant_id, payload.package_slug)
    return CheckoutSessionResponse(checkout_url=result.checkout_url or "", session_id=result.session_id)


# PUBLIC_INTERFACE
@router.post(
    "/subscriptions",
    response_model=CheckoutSessionResponse,
    summary="Subscribe to monthly credits",
    dependencies=_billing,
)
async def create_subscription(
    payload: CreditSubscriptionRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_tenant_session),
) -> CheckoutSessionResponse:
    result = await CreditService(session).create_credit_subscription(
        tenant_id, payload.price_id, payload.monthly_credits
    )
    return CheckoutSessionResponse(checkout_url=result.checkout_url or "", session_id=result.session_id)


# PUBLIC_INTERFACE
@router.post(
    "/adjust",
    response_model=CreditAdjustResponse,
    summary="Adjust a tenant's credits",
    description="Platform staff only. The resulting balance never goes below zero.",
    dependencies=[Depends(require_roles("super_admin"))],
)
async def adjust_credits(
    payload: CreditAdjustRequest,
    user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> CreditAdjustResponse:
    previous, new = await CreditService(session).admin_adjust_credits(
        payload.tenant_id, payload.amount, payload.reason, notes=payload.notes, admin_user_id=user.id
    )
    return CreditAdjustResponse(previous_balance=previous, new_balance=new)

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.deps import get_session_no_tenant
from delivery_api.schemas.billing import WebhookAck
from delivery_api.services.billing_webhook import BillingWebhookService

router = APIRouter(prefix="/billing", tags=["Billing"])


# PUBLIC_INTERFACE
@router.post(
    "/stripe/webhook",
    response_model=WebhookAck,
    summary="Stripe webhook",
    description=(
        "Receives Stripe events. The signature is verified when STRIPE_WEBHOOK_SECRET is set; "
        "the tenant is resolved from event metadata or the Stripe customer id. "
        "Redelivered events are acknowledged with duplicate=true."
    ),
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    session: AsyncSession = Depends(get_session_no_tenant),
) -> WebhookAck:
    payload = await request.body()
    return await BillingWebhookService(session).handle_payload(payload, stripe_signature)

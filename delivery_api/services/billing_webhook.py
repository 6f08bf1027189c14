"""
Stripe webhook processing.

Each event is applied inside the owning tenant's context and recorded in
subscription_events, whose unique stripe_event_id makes redelivery a no-op.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.errors import DomainError
from delivery_api.core.logging import tenant_id_var
from delivery_api.core.settings import AppSettings, get_app_settings
from delivery_api.db.models.tenancy import Tenant
from delivery_api.db.session import tenant_context
from delivery_api.repositories.billing import SubscriptionEventRepository
from delivery_api.repositories.credits import CreditRepository
from delivery_api.repositories.tenants import TenantRepository
from delivery_api.schemas.billing import WebhookAck
from delivery_api.services.base import BaseService
from delivery_api.services.credits import CreditService
from delivery_api.services.payments import StripeGateway

logger = logging.getLogger(__name__)

DOWNGRADE_STATUSES = frozenset({"cancelled", "unpaid"})


def normalize_subscription_status(status: Optional[str]) -> Optional[str]:
    """Stripe spells it 'canceled'; tenants store 'cancelled'."""
    return "cancelled" if status == "canceled" else status


def _metadata(obj: Dict[str, Any]) -> Dict[str, Any]:
    meta = obj.get("metadata") or {}
    if not meta.get("tenant_id"):
        # Invoices carry the subscription's metadata one level down.
        nested = (obj.get("subscription_details") or {}).get("metadata") or {}
        meta = {**nested, **meta}
    return meta


class BillingWebhookService(BaseService):
    """Applies verified Stripe events to tenants, credit ledgers and subscriptions."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        settings: Optional[AppSettings] = None,
        gateway: Optional[StripeGateway] = None,
    ) -> None:
        super().__init__(session)
        self.settings = settings or get_app_settings()
        self.gateway = gateway or StripeGateway(self.settings)
        self.tenants = TenantRepository(session)
        self.events = SubscriptionEventRepository(session)
        self.credit_repo = CreditRepository(session)
        self.credits = CreditService(session, settings=self.settings, gateway=self.gateway)

    # PUBLIC_INTERFACE
    async def handle_payload(self, payload: bytes, signature: Optional[str]) -> WebhookAck:
        """Verify the raw request body and process the event it carries."""
        event = self.gateway.construct_webhook_event(payload, signature)
        return await self.handle_event(event)

    async def _resolve_tenant(self, obj: Dict[str, Any], event_type: Optional[str] = None) -> Optional[UUID]:
        tenant_id = _metadata(obj).get("tenant_id")
        if tenant_id:
            try:
                return UUID(str(tenant_id))
            except ValueError:
                logger.warning("Ignoring malformed tenant_id in webhook metadata: %s", tenant_id)
        customer = obj.get("customer")
        if event_type == "customer.deleted":
            # The event object is the customer itself.
            customer = obj.get("id")
        if isinstance(customer, str) and customer:
            return await self.tenants.tenant_id_for_stripe_customer(customer)
        return None

    # PUBLIC_INTERFACE
    async def handle_event(self, event: Dict[str, Any]) -> WebhookAck:
        """
        Process one decoded Stripe event.

        Returns an acknowledgement flagged as duplicate when the event id was
        already recorded. Events without a resolvable tenant are acknowledged
        without being recorded.
        """
        event_type = event.get("type")
        event_id = event.get("id")
        obj = (event.get("data") or {}).get("object") or {}

        tenant_id = await self._resolve_tenant(obj, event_type)
        if tenant_id is None:
            logger.warning("Stripe event %s (%s) has no resolvable tenant; skipping", event_id, event_type)
            return WebhookAck(event_type=event_type)

        token = tenant_id_var.set(str(tenant_id))
        try:
            async with tenant_context(self.session, tenant_id):
                if event_id and await self.events.get_by_stripe_event_id(event_id) is not None:
                    logger.info("Duplicate Stripe event %s ignored", event_id)
                    return WebhookAck(duplicate=True, event_type=event_type)

                tenant = await self.tenants.get_current()
                if tenant is None:
                    logger.warning("Stripe event %s references unknown tenant %s", event_id, tenant_id)
                    return WebhookAck(event_type=event_type)

                recorded_type, details = await self._dispatch(event_type, obj, tenant)
                try:
                    await self.events.record(event_type=recorded_type, stripe_event_id=event_id, details=details)
                except IntegrityError:
                    await self.session.rollback()
                    logger.info("Stripe event %s recorded concurrently; treating as duplicate", event_id)
                    return WebhookAck(duplicate=True, event_type=event_type)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        finally:
            tenant_id_var.reset(token)

        logger.info("Processed Stripe event %s (%s)", event_id, event_type)
        return WebhookAck(event_type=event_type)

    async def _dispatch(self, event_type: Optional[str], obj: Dict[str, Any], tenant: Tenant) -> tuple[str, dict]:
        if event_type == "checkout.session.completed":
            return await self._checkout_completed(obj, tenant)
        if event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
            return await self._subscription_changed(obj, tenant, deleted=event_type.endswith("deleted"))
        if event_type == "customer.subscription.trial_will_end":
            return await self._trial_will_end(obj, tenant)
        if event_type == "customer.deleted":
            return await self._customer_deleted(obj, tenant)
        if event_type == "invoice.payment_succeeded":
            return await self._payment_succeeded(obj, tenant)
        if event_type == "invoice.payment_failed":
            return await self._payment_failed(obj, tenant)
        logger.info("Unhandled Stripe event type %s", event_type)
        return event_type or "unknown", {"object_id": obj.get("id")}

    async def _checkout_completed(self, obj: Dict[str, Any], tenant: Tenant) -> tuple[str, dict]:
        meta = _metadata(obj)
        if meta.get("type") == "credit_purchase":
            try:
                credits = int(meta.get("credits") or 0)
            except (TypeError, ValueError):
                credits = 0
            if credits <= 0:
                raise DomainError("Credit purchase is missing tenant or credits metadata")
            payment_id = obj.get("payment_intent") or obj.get("id")
            new_balance = await self.credits.purchase_credits(credits, str(payment_id), commit=False)
            return "credit_purchase", {
                "credits": credits,
                "package_slug": meta.get("package_slug"),
                "payment_id": payment_id,
                "balance_after": new_balance,
            }

        subscription_id = obj.get("subscription")
        status = "active"
        if subscription_id:
            stripe_status = await self.gateway.retrieve_subscription_status(subscription_id)
            if stripe_status == "trialing":
                status = "trial"

        tenant.subscription_status = status
        tenant.is_free_tier = False
        tenant.grace_period_ends_at = None
        if obj.get("customer"):
            tenant.stripe_customer_id = obj["customer"]
        if subscription_id:
            tenant.stripe_subscription_id = subscription_id
        await self._sync_ledger_tier(paid=True)

        sub = await self.credit_repo.get_subscription_by_checkout(obj.get("id") or "")
        if sub is not None:
            sub.status = "active"
            sub.stripe_subscription_id = subscription_id
        return ("trial_started" if status == "trial" else "subscription_created"), {
            "subscription_id": subscription_id,
            "customer_id": obj.get("customer"),
            "status": status,
        }

    async def _subscription_changed(self, obj: Dict[str, Any], tenant: Tenant, *, deleted: bool) -> tuple[str, dict]:
        status = "cancelled" if deleted else normalize_subscription_status(obj.get("status"))
        trial_converted = status == "active" and bool(obj.get("trial_end")) and tenant.subscription_status == "trial"
        reverted = deleted or status in DOWNGRADE_STATUSES

        tenant.subscription_status = status or tenant.subscription_status
        if status == "active":
            tenant.is_free_tier = False
            if trial_converted:
                tenant.trial_converted_at = datetime.now(tz=timezone.utc)
            await self._sync_ledger_tier(paid=True)

        if reverted:
            tenant.is_free_tier = True
            tenant.credits_enabled = True
            await self._sync_ledger_tier(paid=False)
            await self.credits.grant_free_credits(
                self.settings.FREE_CREDITS_ON_DOWNGRADE, grant_type="support", commit=False
            )

        sub = await self.credit_repo.get_subscription_by_stripe_id(obj.get("id") or "")
        if sub is not None:
            sub.status = status or sub.status
            period_end = obj.get("current_period_end")
            if period_end:
                sub.current_period_end = datetime.fromtimestamp(int(period_end), tz=timezone.utc)

        return "subscription_updated", {
            "status": status,
            "subscription_id": obj.get("id"),
            "trial_converted": trial_converted,
            "reverted_to_free_tier": reverted,
        }

    async def _trial_will_end(self, obj: Dict[str, Any], tenant: Tenant) -> tuple[str, dict]:
        logger.info("Trial for tenant %s ends at %s", tenant.id, obj.get("trial_end"))
        return "trial_ending_soon", {"subscription_id": obj.get("id"), "trial_end": obj.get("trial_end")}

    async def _customer_deleted(self, obj: Dict[str, Any], tenant: Tenant) -> tuple[str, dict]:
        tenant.stripe_customer_id = None
        tenant.stripe_subscription_id = None
        tenant.subscription_status = "cancelled"
        tenant.is_free_tier = True
        tenant.credits_enabled = True
        tenant.grace_period_ends_at = None
        await self._sync_ledger_tier(paid=False)
        logger.info("Stripe customer %s deleted; tenant %s reverted to free tier", obj.get("id"), tenant.id)
        return "customer_deleted", {"stripe_customer_id": obj.get("id"), "reverted_to_free_tier": True}

    async def _payment_succeeded(self, obj: Dict[str, Any], tenant: Tenant) -> tuple[str, dict]:
        details: Dict[str, Any] = {"invoice_id": obj.get("id"), "amount": obj.get("amount_paid")}
        sub = None
        if obj.get("subscription"):
            sub = await self.credit_repo.get_subscription_by_stripe_id(obj["subscription"])
        if sub is None:
            sub = await self.credit_repo.get_active_subscription()
        if sub is not None and sub.status == "active" and sub.monthly_credits > 0:
            details["credits_granted"] = sub.monthly_credits
            details["balance_after"] = await self.credits.grant_free_credits(
                sub.monthly_credits, grant_type="subscription", commit=False
            )
        if tenant.subscription_status == "past_due":
            tenant.subscription_status = "active"
            tenant.grace_period_ends_at = None
        return "payment_succeeded", details

    async def _payment_failed(self, obj: Dict[str, Any], tenant: Tenant) -> tuple[str, dict]:
        grace_ends = datetime.now(tz=timezone.utc) + timedelta(days=self.settings.PAYMENT_GRACE_PERIOD_DAYS)
        tenant.subscription_status = "past_due"
        tenant.grace_period_ends_at = grace_ends
        logger.warning("Payment failed for tenant %s; grace period until %s", tenant.id, grace_ends.isoformat())
        return "payment_failed", {
            "invoice_id": obj.get("id"),
            "amount": obj.get("amount_due"),
            "grace_period_ends_at": grace_ends.isoformat(),
        }

    async def _sync_ledger_tier(self, *, paid: bool) -> None:
        ledger = await self.credit_repo.get_ledger(for_update=True)
        if ledger is None:
            return
        ledger.is_free_tier = not paid
        ledger.tier_status = "paid" if paid else "free"

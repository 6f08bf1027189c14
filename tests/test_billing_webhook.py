"""Tests for Stripe webhook processing."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from delivery_api.core.errors import DomainError
from delivery_api.services.billing_webhook import BillingWebhookService, normalize_subscription_status

pytestmark = pytest.mark.anyio

TENANT_ID = uuid4()


def event(event_type, obj, event_id="evt_1"):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


@pytest.fixture
def tenant():
    return SimpleNamespace(
        id=TENANT_ID,
        subscription_status=None,
        is_free_tier=True,
        credits_enabled=True,
        stripe_customer_id=None,
        stripe_subscription_id=None,
        grace_period_ends_at=None,
        trial_converted_at=None,
    )


@pytest.fixture
def gateway():
    gw = MagicMock()
    gw.retrieve_subscription_status = AsyncMock(return_value="active")
    return gw


@pytest.fixture
def service(session, settings, gateway, tenant, make_ledger):
    svc = BillingWebhookService(session, settings=settings, gateway=gateway)
    svc.tenants = AsyncMock()
    svc.tenants.get_current.return_value = tenant
    svc.tenants.tenant_id_for_stripe_customer.return_value = None
    svc.events = AsyncMock()
    svc.events.get_by_stripe_event_id.return_value = None
    svc.credit_repo = AsyncMock()
    svc.credit_repo.get_ledger.return_value = make_ledger()
    svc.credit_repo.get_subscription_by_checkout.return_value = None
    svc.credit_repo.get_subscription_by_stripe_id.return_value = None
    svc.credit_repo.get_active_subscription.return_value = None
    svc.credits = AsyncMock()
    svc.credits.purchase_credits.return_value = 2000
    svc.credits.grant_free_credits.return_value = 500
    return svc


def meta(**values):
    return {"tenant_id": str(TENANT_ID), **values}


def test_status_spelling():
    assert normalize_subscription_status("canceled") == "cancelled"
    assert normalize_subscription_status("active") == "active"
    assert normalize_subscription_status(None) is None


class TestTenantResolution:
    async def test_unresolvable_event_is_acknowledged_but_not_recorded(self, service, session):
        ack = await service.handle_event(event("invoice.payment_failed", {"id": "in_1"}))
        assert not ack.duplicate
        assert ack.event_type == "invoice.payment_failed"
        service.events.record.assert_not_awaited()
        session.commit.assert_not_awaited()

    async def test_customer_id_lookup(self, service, tenant):
        service.tenants.tenant_id_for_stripe_customer.return_value = TENANT_ID
        await service.handle_event(event("invoice.payment_failed", {"id": "in_1", "customer": "cus_1"}))
        service.tenants.tenant_id_for_stripe_customer.assert_awaited_once_with("cus_1")
        assert tenant.subscription_status == "past_due"

    async def test_invoice_uses_subscription_metadata(self, service, tenant):
        obj = {"id": "in_1", "subscription_details": {"metadata": meta()}}
        await service.handle_event(event("invoice.payment_failed", obj))
        assert tenant.subscription_status == "past_due"

    async def test_tenant_context_is_restored(self, service, session):
        session.info["tenant_id"] = None
        await service.handle_event(event("invoice.payment_failed", {"id": "in_1", "metadata": meta()}))
        assert session.info["tenant_id"] is None


class TestIdempotency:
    async def test_recorded_event_is_a_duplicate(self, service, tenant):
        service.events.get_by_stripe_event_id.return_value = SimpleNamespace(id=uuid4())
        ack = await service.handle_event(event("invoice.payment_failed", {"id": "in_1", "metadata": meta()}))
        assert ack.duplicate
        assert tenant.subscription_status is None
        service.events.record.assert_not_awaited()

    async def test_concurrent_insert_is_a_duplicate(self, service, session):
        service.events.record.side_effect = IntegrityError("INSERT", {}, Exception("unique violation"))
        ack = await service.handle_event(event("invoice.payment_failed", {"id": "in_1", "metadata": meta()}))
        assert ack.duplicate
        session.rollback.assert_awaited()


class TestCheckoutCompleted:
    async def test_credit_purchase(self, service, session):
        obj = {
            "id": "cs_1",
            "payment_intent": "pi_1",
            "metadata": meta(type="credit_purchase", credits="1500", package_slug="starter-pack"),
        }

        ack = await service.handle_event(event("checkout.session.completed", obj))

        assert not ack.duplicate
        service.credits.purchase_credits.assert_awaited_once_with(1500, "pi_1", commit=False)
        recorded = service.events.record.await_args.kwargs
        assert recorded["event_type"] == "credit_purchase"
        assert recorded["stripe_event_id"] == "evt_1"
        assert recorded["details"]["balance_after"] == 2000
        session.commit.assert_awaited_once()

    async def test_credit_purchase_without_credits(self, service, session):
        obj = {"id": "cs_1", "metadata": meta(type="credit_purchase")}
        with pytest.raises(DomainError):
            await service.handle_event(event("checkout.session.completed", obj))
        session.rollback.assert_awaited()
        session.commit.assert_not_awaited()

    async def test_subscription_checkout(self, service, tenant, make_ledger):
        ledger = make_ledger()
        service.credit_repo.get_ledger.return_value = ledger
        pending = SimpleNamespace(status="pending", stripe_subscription_id=None)
        service.credit_repo.get_subscription_by_checkout.return_value = pending
        obj = {"id": "cs_2", "customer": "cus_1", "subscription": "sub_1", "metadata": meta()}

        await service.handle_event(event("checkout.session.completed", obj))

        assert tenant.subscription_status == "active"
        assert tenant.is_free_tier is False
        assert tenant.stripe_customer_id == "cus_1"
        assert tenant.stripe_subscription_id == "sub_1"
        assert ledger.tier_status == "paid"
        assert pending.status == "active"
        assert pending.stripe_subscription_id == "sub_1"
        assert service.events.record.await_args.kwargs["event_type"] == "subscription_created"

    async def test_trial_checkout(self, service, tenant, gateway):
        gateway.retrieve_subscription_status.return_value = "trialing"
        obj = {"id": "cs_2", "customer": "cus_1", "subscription": "sub_1", "metadata": meta()}

        await service.handle_event(event("checkout.session.completed", obj))

        assert tenant.subscription_status == "trial"
        assert service.events.record.await_args.kwargs["event_type"] == "trial_started"


class TestSubscriptionChanges:
    async def test_cancellation_reverts_to_free_tier(self, service, tenant, make_ledger, settings):
        tenant.subscription_status = "active"
        tenant.is_free_tier = False
        ledger = make_ledger(tier_status="paid", is_free_tier=False)
        service.credit_repo.get_ledger.return_value = ledger

        await service.handle_event(event("customer.subscription.deleted", {"id": "sub_1", "metadata": meta()}))

        assert tenant.subscription_status == "cancelled"
        assert tenant.is_free_tier is True
        assert ledger.tier_status == "free"
        service.credits.grant_free_credits.assert_awaited_once_with(
            settings.FREE_CREDITS_ON_DOWNGRADE, grant_type="support", commit=False
        )
        details = service.events.record.await_args.kwargs["details"]
        assert details["reverted_to_free_tier"] is True

    async def test_trial_conversion(self, service, tenant):
        tenant.subscription_status = "trial"
        sub = SimpleNamespace(status="active", current_period_end=None)
        service.credit_repo.get_subscription_by_stripe_id.return_value = sub
        obj = {"id": "sub_1", "status": "active", "trial_end": 1735689600, "current_period_end": 1738368000,
               "metadata": meta()}

        await service.handle_event(event("customer.subscription.updated", obj))

        assert tenant.subscription_status == "active"
        assert tenant.trial_converted_at is not None
        assert sub.current_period_end == datetime.fromtimestamp(1738368000, tz=timezone.utc)
        service.credits.grant_free_credits.assert_not_awaited()

    async def test_unpaid_reverts(self, service, tenant):
        tenant.is_free_tier = False
        await service.handle_event(
            event("customer.subscription.updated", {"id": "sub_1", "status": "unpaid", "metadata": meta()})
        )
        assert tenant.subscription_status == "unpaid"
        assert tenant.is_free_tier is True
        service.credits.grant_free_credits.assert_awaited_once()


class TestInvoices:
    async def test_payment_succeeded_grants_monthly_credits(self, service, tenant):
        tenant.subscription_status = "past_due"
        tenant.grace_period_ends_at = datetime.now(tz=timezone.utc)
        service.credit_repo.get_subscription_by_stripe_id.return_value = SimpleNamespace(
            status="active", monthly_credits=2000
        )
        obj = {"id": "in_1", "subscription": "sub_1", "amount_paid": 4900, "metadata": meta()}

        await service.handle_event(event("invoice.payment_succeeded", obj))

        service.credits.grant_free_credits.assert_awaited_once_with(2000, grant_type="subscription", commit=False)
        assert tenant.subscription_status == "active"
        assert tenant.grace_period_ends_at is None

    async def test_payment_succeeded_without_active_subscription(self, service):
        await service.handle_event(event("invoice.payment_succeeded", {"id": "in_1", "metadata": meta()}))
        service.credits.grant_free_credits.assert_not_awaited()
        assert service.events.record.await_args.kwargs["event_type"] == "payment_succeeded"

    async def test_payment_failed_starts_grace_period(self, service, tenant, settings):
        before = datetime.now(tz=timezone.utc)
        await service.handle_event(event("invoice.payment_failed", {"id": "in_1", "metadata": meta()}))
        assert tenant.subscription_status == "past_due"
        expected = before + timedelta(days=settings.PAYMENT_GRACE_PERIOD_DAYS)
        assert abs((tenant.grace_period_ends_at - expected).total_seconds()) < 5


class TestOtherEvents:
    async def test_trial_ending_soon_is_recorded(self, service, tenant):
        tenant.subscription_status = "trial"
        obj = {"id": "sub_1", "trial_end": 1735689600, "metadata": meta()}

        await service.handle_event(event("customer.subscription.trial_will_end", obj))

        recorded = service.events.record.await_args.kwargs
        assert recorded["event_type"] == "trial_ending_soon"
        assert recorded["details"] == {"subscription_id": "sub_1", "trial_end": 1735689600}
        assert tenant.subscription_status == "trial"

    async def test_customer_deleted_reverts_to_free_tier(self, service, tenant, make_ledger):
        tenant.subscription_status = "active"
        tenant.is_free_tier = False
        tenant.stripe_customer_id = "cus_9"
        tenant.stripe_subscription_id = "sub_9"
        ledger = make_ledger(tier_status="paid", is_free_tier=False)
        service.credit_repo.get_ledger.return_value = ledger
        service.tenants.tenant_id_for_stripe_customer.return_value = TENANT_ID

        await service.handle_event(event("customer.deleted", {"id": "cus_9", "object": "customer"}))

        service.tenants.tenant_id_for_stripe_customer.assert_awaited_once_with("cus_9")
        assert tenant.subscription_status == "cancelled"
        assert tenant.is_free_tier is True
        assert tenant.stripe_customer_id is None
        assert tenant.stripe_subscription_id is None
        assert ledger.is_free_tier is True
        assert ledger.tier_status == "free"
        recorded = service.events.record.await_args.kwargs
        assert recorded["event_type"] == "customer_deleted"
        assert recorded["details"]["reverted_to_free_tier"] is True

    async def test_unhandled_type_is_recorded(self, service):
        await service.handle_event(event("customer.updated", {"id": "cus_1", "metadata": meta()}))
        recorded = service.events.record.await_args.kwargs
        assert recorded["event_type"] == "customer.updated"
        assert recorded["details"] == {"object_id": "cus_1"}

    async def test_handle_payload_verifies_first(self, service, gateway):
        gateway.construct_webhook_event.return_value = event("customer.updated", {"id": "cus_1", "metadata": meta()})
        await service.handle_payload(b"{}", "t=1,v1=abc")
        gateway.construct_webhook_event.assert_called_once_with(b"{}", "t=1,v1=abc")
        service.events.record.assert_awaited_once()

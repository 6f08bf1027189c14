"""Tests for the credit ledger service."""

from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from delivery_api.core.errors import DomainError, InsufficientCreditsError, NotFoundError
from delivery_api.services.credits import CreditService
from delivery_api.services.payments import CheckoutSession

pytestmark = pytest.mark.anyio


@pytest.fixture
def gateway():
    gw = AsyncMock()
    gw.create_checkout_session.return_value = CheckoutSession(session_id="cs_test_1", checkout_url="https://pay")
    return gw


@pytest.fixture
def service(session, settings, gateway):
    svc = CreditService(session, settings=settings, gateway=gateway)
    svc.repo = AsyncMock()
    svc.tenants = AsyncMock()
    svc.tenants.get_current.return_value = SimpleNamespace(is_free_tier=True, stripe_customer_id=None)
    return svc


def use_ledger(service, ledger):
    service.repo.get_ledger.return_value = ledger
    return ledger


class TestCheckCredits:
    async def test_free_tier_short_balance(self, service, make_ledger):
        use_ledger(service, make_ledger(balance=5))
        result = await service.check_credits("product_add")
        assert not result.has_credits
        assert (result.balance, result.cost, result.is_free_tier) == (5, 10, True)

    async def test_paid_tenant_always_has_credits(self, service, make_ledger):
        use_ledger(service, make_ledger(balance=0))
        service.tenants.get_current.return_value = SimpleNamespace(is_free_tier=False)
        result = await service.check_credits("menu_create")
        assert result.has_credits
        assert not result.is_free_tier

    async def test_missing_ledger_reports_starting_balance(self, service):
        use_ledger(service, None)
        result = await service.check_credits("send_sms")
        assert result.balance == 500
        assert result.has_credits


class TestConsumeCredits:
    async def test_free_action_touches_nothing(self, service):
        result = await service.consume_credits("dashboard_view")
        assert result.success
        assert result.credits_cost == 0
        assert result.new_balance is None
        service.repo.get_ledger.assert_not_awaited()

    async def test_paid_tenant_is_not_charged(self, service, make_ledger):
        service.tenants.get_current.return_value = SimpleNamespace(is_free_tier=False)
        result = await service.consume_credits("menu_create")
        assert result.credits_cost == 0
        service.repo.add_transaction.assert_not_awaited()

    async def test_paid_ledger_is_not_charged(self, service, make_ledger):
        use_ledger(service, make_ledger(tier_status="paid"))
        result = await service.consume_credits("menu_create")
        assert result.new_balance is None
        service.repo.add_transaction.assert_not_awaited()

    async def test_insufficient_balance(self, service, session, make_ledger):
        ledger = use_ledger(service, make_ledger(balance=5))
        with pytest.raises(InsufficientCreditsError) as exc_info:
            await service.consume_credits("product_add")
        assert exc_info.value.status_code == 402
        assert exc_info.value.details == {"balance": 5, "cost": 10, "action_key": "product_add"}
        assert ledger.balance == 5
        session.commit.assert_not_awaited()

    async def test_deduction_updates_counters_and_writes_usage(self, service, session, make_ledger):
        ledger = use_ledger(service, make_ledger(balance=520))

        result = await service.consume_credits("product_add", reference_id="p-1", reference_type="product")

        assert result.success
        assert result.new_balance == 510
        assert result.credits_cost == 10
        assert result.warning_level is None
        assert ledger.lifetime_spent == 10
        assert ledger.credits_used_today == 10
        assert ledger.credits_used_this_week == 10
        assert ledger.credits_used_this_month == 10
        kwargs = service.repo.add_transaction.await_args.kwargs
        assert kwargs["amount"] == -10
        assert kwargs["balance_after"] == 510
        assert kwargs["transaction_type"] == "usage"
        assert kwargs["action_type"] == "product_add"
        assert kwargs["description"] == "Credit usage: product_add"
        session.commit.assert_awaited_once()

    async def test_warning_level_reported_once(self, service, make_ledger):
        ledger = use_ledger(service, make_ledger(balance=505))

        first = await service.consume_credits("product_add")
        assert first.warning_level == 500
        assert ledger.warning_levels_sent == [500]

        ledger.balance = 505
        second = await service.consume_credits("product_add")
        assert second.warning_level is None

    async def test_unreported_level_surfaces_when_lower_one_was_sent(self, service, make_ledger):
        # 100 was recorded before an admin top-up raised the balance again.
        ledger = use_ledger(service, make_ledger(balance=540, warning_levels_sent=[100]))

        result = await service.consume_credits("storefront_create")

        assert result.new_balance == 40
        assert result.warning_level == 500
        assert ledger.warning_levels_sent == [100, 500]

    async def test_composed_call_only_flushes(self, service, session, make_ledger):
        use_ledger(service, make_ledger(balance=100))
        await service.consume_credits("product_add", commit=False)
        session.flush.assert_awaited()
        session.commit.assert_not_awaited()

    async def test_missing_ledger_is_created_with_starting_credits(self, service, make_ledger):
        use_ledger(service, None)
        service.repo.create_ledger.return_value = make_ledger(balance=500)
        result = await service.consume_credits("send_sms")
        service.repo.create_ledger.assert_awaited_once_with(balance=500)
        assert result.new_balance == 475


class TestGrants:
    async def test_monthly_grant_resets_month_usage(self, service, make_ledger):
        ledger = use_ledger(
            service, make_ledger(balance=40, credits_used_this_month=460, warning_levels_sent=[500, 100])
        )

        balance = await service.grant_free_credits(500, grant_type="monthly")

        assert balance == 540
        assert ledger.lifetime_earned == 1000
        assert ledger.credits_used_this_month == 0
        assert ledger.warning_levels_sent == []
        assert service.repo.add_grant.await_args.kwargs["grant_type"] == "monthly"
        txn = service.repo.add_transaction.await_args.kwargs
        assert txn["transaction_type"] == "free_grant"
        assert txn["description"] == "Monthly free credit grant"

    async def test_other_grants_keep_month_usage(self, service, make_ledger):
        ledger = use_ledger(service, make_ledger(credits_used_this_month=30))
        await service.grant_free_credits(100, grant_type="promo")
        assert ledger.credits_used_this_month == 30

    async def test_grant_must_be_positive(self, service):
        with pytest.raises(DomainError):
            await service.grant_free_credits(0)


class TestPurchase:
    async def test_purchase_adds_credits(self, service, make_ledger):
        use_ledger(service, make_ledger(balance=20))
        service.repo.find_transaction_by_reference.return_value = None

        balance = await service.purchase_credits(1500, "pi_123")

        assert balance == 1520
        txn = service.repo.add_transaction.await_args.kwargs
        assert txn["transaction_type"] == "purchase"
        assert txn["reference_type"] == "stripe_payment"
        assert txn["reference_id"] == "pi_123"

    async def test_repeated_payment_is_ignored(self, service, make_ledger):
        use_ledger(service, make_ledger(balance=1520))
        service.repo.find_transaction_by_reference.return_value = SimpleNamespace(balance_after=1520)

        balance = await service.purchase_credits(1500, "pi_123")

        assert balance == 1520
        service.repo.add_transaction.assert_not_awaited()


class TestAdminAdjust:
    async def test_deduction_floors_at_zero(self, service, session, make_ledger):
        ledger = use_ledger(service, make_ledger(balance=100))
        service.tenants.get_by_id.return_value = SimpleNamespace(id=uuid4())
        target = uuid4()
        admin = uuid4()

        previous, new = await service.admin_adjust_credits(target, -250, "Chargeback", admin_user_id=admin)

        assert (previous, new) == (100, 0)
        assert ledger.balance == 0
        assert ledger.lifetime_spent == 250
        details = service.repo.add_transaction.await_args.kwargs["details"]
        assert details["previous_balance"] == 100
        assert details["admin_user_id"] == str(admin)
        service.repo.add_grant.assert_not_awaited()
        session.commit.assert_awaited()
        # The caller's tenant is restored afterwards.
        assert session.info["tenant_id"] is None

    async def test_credit_records_admin_grant(self, service, make_ledger):
        use_ledger(service, make_ledger(balance=100))
        service.tenants.get_by_id.return_value = SimpleNamespace(id=uuid4())

        previous, new = await service.admin_adjust_credits(uuid4(), 400, "Goodwill", notes="outage")

        assert (previous, new) == (100, 500)
        grant = service.repo.add_grant.await_args.kwargs
        assert grant["grant_type"] == "admin_grant"
        assert grant["notes"] == "Goodwill: outage"

    async def test_unknown_tenant(self, service, session):
        service.tenants.get_by_id.return_value = None
        with pytest.raises(NotFoundError):
            await service.admin_adjust_credits(uuid4(), 10, "Goodwill")
        session.rollback.assert_awaited()

    async def test_zero_amount(self, service):
        with pytest.raises(DomainError):
            await service.admin_adjust_credits(uuid4(), 0, "Nothing")


class TestUsageCounters:
    async def test_reset(self, service, session):
        service.repo.reset_usage_counter.return_value = 3
        assert await service.reset_usage_counters("week") == 3
        session.commit.assert_awaited_once()

    async def test_unknown_period(self, service):
        with pytest.raises(DomainError):
            await service.reset_usage_counters("year")


class TestCheckout:
    async def test_package_checkout(self, service, gateway):
        tenant_id = uuid4()
        result = await service.create_credit_checkout(tenant_id, "starter-pack")

        assert result.session_id == "cs_test_1"
        kwargs = gateway.create_checkout_session.await_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 4999
        assert kwargs["metadata"] == {
            "tenant_id": str(tenant_id),
            "type": "credit_purchase",
            "credits": "1500",
            "package_slug": "starter-pack",
        }

    async def test_unknown_package(self, service, gateway):
        with pytest.raises(NotFoundError):
            await service.create_credit_checkout(uuid4(), "mega-pack")
        gateway.create_checkout_session.assert_not_awaited()

    async def test_subscription_is_pending_until_confirmed(self, service, session, gateway):
        service.repo.add_subscription.return_value = SimpleNamespace(id=uuid4())

        await service.create_credit_subscription(uuid4(), "price_monthly", 2000)

        assert gateway.create_checkout_session.await_args.kwargs["mode"] == "subscription"
        sub = service.repo.add_subscription.await_args.kwargs
        assert sub["status"] == "pending"
        assert sub["checkout_session_id"] == "cs_test_1"
        assert sub["monthly_credits"] == 2000
        session.commit.assert_awaited_once()

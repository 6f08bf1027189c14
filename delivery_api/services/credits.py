"""
Credit ledger for free-tier tenants.

Every mutation locks the tenant's ledger row, updates the balance and writes
an append-only credit_transactions entry carrying balance_after. Paid tenants
are never charged. Methods operate on the tenant set on the session, except
admin_adjust_credits which targets an explicit tenant.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.errors import DomainError, InsufficientCreditsError, NotFoundError
from delivery_api.core.settings import AppSettings, get_app_settings
from delivery_api.db.models.credits import CreditSubscription, CreditTransaction, TenantCredit
from delivery_api.db.session import tenant_context
from delivery_api.repositories.credits import USAGE_COUNTERS, CreditRepository
from delivery_api.repositories.tenants import TenantRepository
from delivery_api.services.base import BaseService
from delivery_api.services.credit_catalog import crossed_warning_level, get_credit_cost, get_package
from delivery_api.services.payments import CheckoutSession, StripeGateway

logger = logging.getLogger(__name__)

GRANT_DESCRIPTIONS = {
    "signup_bonus": "Welcome bonus credits",
    "monthly": "Monthly free credit grant",
    "support": "Free tier credits",
    "promo": "Promotional credits",
    "subscription": "Monthly subscription credits",
}


@dataclass
class ConsumeResult:
    success: bool
    new_balance: Optional[int]
    credits_cost: int
    warning_level: Optional[int] = None


@dataclass
class CreditCheck:
    has_credits: bool
    balance: int
    cost: int
    is_free_tier: bool


class CreditService(BaseService):
    """Balance checks, deductions, grants and Stripe checkout for credits."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        settings: Optional[AppSettings] = None,
        gateway: Optional[StripeGateway] = None,
    ) -> None:
        super().__init__(session)
        self.settings = settings or get_app_settings()
        self.repo = CreditRepository(session)
        self.tenants = TenantRepository(session)
        self.gateway = gateway or StripeGateway(self.settings)

    async def _locked_ledger(self) -> TenantCredit:
        ledger = await self.repo.get_ledger(for_update=True)
        if ledger is None:
            ledger = await self.repo.create_ledger(balance=self.settings.FREE_TIER_STARTING_CREDITS)
        return ledger

    async def _tenant_is_free_tier(self) -> bool:
        tenant = await self.tenants.get_current()
        return True if tenant is None else bool(tenant.is_free_tier)

    # PUBLIC_INTERFACE
    async def get_balance(self) -> TenantCredit:
        """Return the ledger, creating it with the starting credits on first access."""
        ledger = await self.repo.get_ledger()
        if ledger is None:
            ledger = await self.repo.create_ledger(balance=self.settings.FREE_TIER_STARTING_CREDITS)
            await self.session.commit()
        return ledger

    # PUBLIC_INTERFACE
    async def check_credits(self, action_key: str) -> CreditCheck:
        """Report whether the tenant can afford an action, without mutating anything."""
        cost = get_credit_cost(action_key)
        ledger = await self.repo.get_ledger()
        balance = ledger.balance if ledger else self.settings.FREE_TIER_STARTING_CREDITS
        is_free = await self._tenant_is_free_tier()
        if ledger is not None and ledger.tier_status == "paid":
            is_free = False
        return CreditCheck(
            has_credits=(not is_free) or balance >= cost,
            balance=balance,
            cost=cost,
            is_free_tier=is_free,
        )

    # PUBLIC_INTERFACE
    async def consume_credits(
        self,
        action_key: str,
        *,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        description: Optional[str] = None,
        commit: bool = True,
    ) -> ConsumeResult:
        """
        Deduct the cost of an action from a free-tier tenant.

        Free actions and paid tenants succeed without touching the balance.
        Raises InsufficientCreditsError when the balance cannot cover the cost.
        """
        cost = get_credit_cost(action_key)
        if cost <= 0:
            return ConsumeResult(success=True, new_balance=None, credits_cost=0)

        if not await self._tenant_is_free_tier():
            return ConsumeResult(success=True, new_balance=None, credits_cost=0)

        ledger = await self._locked_ledger()
        if ledger.tier_status == "paid":
            return ConsumeResult(success=True, new_balance=None, credits_cost=0)

        if ledger.balance < cost:
            raise InsufficientCreditsError(balance=ledger.balance, cost=cost, action_key=action_key)

        previous = ledger.balance
        ledger.balance = previous - cost
        ledger.lifetime_spent += cost
        ledger.credits_used_today += cost
        ledger.credits_used_this_week += cost
        ledger.credits_used_this_month += cost

        sent = list(ledger.warning_levels_sent or [])
        warning_level = crossed_warning_level(previous, ledger.balance, sent)
        if warning_level is not None:
            # Assign a new list so the JSONB change is detected.
            ledger.warning_levels_sent = sent + [warning_level]

        await self.repo.add_transaction(
            amount=-cost,
            balance_after=ledger.balance,
            transaction_type="usage",
            action_type=action_key,
            reference_id=reference_id,
            reference_type=reference_type,
            description=description or f"Credit usage: {action_key}",
        )
        await self._finish(commit)

        if warning_level is not None:
            logger.info("Credit balance fell below %d (now %d)", warning_level, ledger.balance)
        return ConsumeResult(
            success=True, new_balance=ledger.balance, credits_cost=cost, warning_level=warning_level
        )

    # PUBLIC_INTERFACE
    async def grant_free_credits(
        self,
        amount: int,
        *,
        grant_type: str = "signup_bonus",
        expires_at: Optional[datetime] = None,
        granted_by: Optional[UUID] = None,
        commit: bool = True,
    ) -> int:
        """Credit a grant to the balance and return the new balance."""
        if amount <= 0:
            raise DomainError("Grant amount must be positive")
        ledger = await self._locked_ledger()
        ledger.balance += amount
        ledger.lifetime_earned += amount
        if grant_type == "monthly":
            ledger.credits_used_this_month = 0
        ledger.warning_levels_sent = []

        await self.repo.add_grant(
            amount=amount, grant_type=grant_type, expires_at=expires_at, granted_by=granted_by
        )
        await self.repo.add_transaction(
            amount=amount,
            balance_after=ledger.balance,
            transaction_type="free_grant",
            reference_type="credit_grant",
            description=GRANT_DESCRIPTIONS.get(grant_type, "Free credit grant"),
            details={"grant_type": grant_type},
        )
        await self._finish(commit)
        return ledger.balance

    # PUBLIC_INTERFACE
    async def purchase_credits(self, amount: int, stripe_payment_id: str, *, commit: bool = True) -> int:
        """
        Add purchased credits once per Stripe payment.

        A payment id that was already applied returns the current balance unchanged.
        """
        existing = await self.repo.find_transaction_by_reference("stripe_payment", stripe_payment_id)
        if existing is not None:
            logger.info("Stripe payment %s already applied", stripe_payment_id)
            ledger = await self.repo.get_ledger()
            return ledger.balance if ledger else existing.balance_after

        if amount <= 0:
            raise DomainError("Purchase amount must be positive")
        ledger = await self._locked_ledger()
        ledger.balance += amount
        ledger.lifetime_earned += amount
        ledger.warning_levels_sent = []
        await self.repo.add_transaction(
            amount=amount,
            balance_after=ledger.balance,
            transaction_type="purchase",
            reference_id=stripe_payment_id,
            reference_type="stripe_payment",
            description=f"Purchased {amount} credits",
        )
        await self._finish(commit)
        return ledger.balance

    # PUBLIC_INTERFACE
    async def admin_adjust_credits(
        self,
        tenant_id: UUID,
        amount: int,
        reason: str,
        *,
        notes: Optional[str] = None,
        admin_user_id: Optional[UUID] = None,
    ) -> tuple[int, int]:
        """
        Manually adjust another tenant's balance. Returns (previous, new).

        The balance never goes below zero.
        """
        if amount == 0:
            raise DomainError("Adjustment amount must be non-zero")
        description = f"{reason}: {notes}" if notes else reason

        async with tenant_context(self.session, tenant_id):
            if await self.tenants.get_by_id(tenant_id) is None:
                raise NotFoundError("Tenant not found")
            ledger = await self._locked_ledger()
            previous = ledger.balance
            ledger.balance = max(0, previous + amount)
            if amount > 0:
                ledger.lifetime_earned += amount
                await self.repo.add_grant(
                    amount=amount, grant_type="admin_grant", granted_by=admin_user_id, notes=description
                )
            else:
                ledger.lifetime_spent += abs(amount)

            await self.repo.add_transaction(
                amount=amount,
                balance_after=ledger.balance,
                transaction_type="adjustment",
                description=description,
                details={
                    "admin_user_id": str(admin_user_id) if admin_user_id else None,
                    "reason": reason,
                    "notes": notes,
                    "previous_balance": previous,
                },
            )
            await self.repo.flush()
            new_balance = ledger.balance
        await self.session.commit()

        logger.info("Admin adjusted credits for tenant %s: %d -> %d", tenant_id, previous, new_balance)
        return previous, new_balance

    # PUBLIC_INTERFACE
    async def reset_usage_counters(self, period: str) -> int:
        """Zero the day, week or month usage counter; returns the number of rows reset."""
        if period not in USAGE_COUNTERS:
            raise DomainError(f"Unknown period '{period}'", details={"allowed": sorted(USAGE_COUNTERS)})
        count = await self.repo.reset_usage_counter(period)
        await self.session.commit()
        return count

    # PUBLIC_INTERFACE
    async def list_transactions(
        self, *, transaction_type: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[CreditTransaction]:
        return await self.repo.list_transactions(transaction_type=transaction_type, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def create_credit_checkout(self, tenant_id: UUID, package_slug: str) -> CheckoutSession:
        """Start a one-off Stripe Checkout for a credit package."""
        package = get_package(package_slug)
        if package is None:
            raise NotFoundError(f"Unknown credit package '{package_slug}'")
        tenant = await self.tenants.get_current()
        return await self.gateway.create_checkout_session(
            mode="payment",
            line_items=[
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": "usd",
                        "unit_amount": package.price_cents,
                        "product_data": {
                            "name": f"{package.name} ({package.credits:,} credits)",
                            "description": package.description,
                        },
                    },
                }
            ],
            metadata={
                "tenant_id": str(tenant_id),
                "type": "credit_purchase",
                "credits": str(package.credits),
                "package_slug": package.slug,
            },
            customer=tenant.stripe_customer_id if tenant else None,
        )

    # PUBLIC_INTERFACE
    async def create_credit_subscription(
        self, tenant_id: UUID, price_id: str, monthly_credits: int
    ) -> CheckoutSession:
        """Start a subscription Checkout and record it as pending until Stripe confirms."""
        if monthly_credits <= 0:
            raise DomainError("monthly_credits must be positive")
        tenant = await self.tenants.get_current()
        session = await self.gateway.create_checkout_session(
            mode="subscription",
            line_items=[{"price": price_id, "quantity": 1}],
            metadata={
                "tenant_id": str(tenant_id),
                "type": "credit_subscription",
                "monthly_credits": str(monthly_credits),
            },
            customer=tenant.stripe_customer_id if tenant else None,
        )
        sub: CreditSubscription = await self.repo.add_subscription(
            stripe_price_id=price_id,
            checkout_session_id=session.session_id,
            monthly_credits=monthly_credits,
            status="pending",
        )
        await self.session.commit()
        logger.info("Credit subscription %s pending checkout %s", sub.id, session.session_id)
        return session

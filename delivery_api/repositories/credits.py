from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func, select, update

from delivery_api.db.models.credits import (
    CreditGrant,
    CreditSubscription,
    CreditTransaction,
    TenantCredit,
)
from .base import BaseRepository

# Usage counter column per reset period.
USAGE_COUNTERS = {
    "day": ("credits_used_today", "last_daily_reset"),
    "week": ("credits_used_this_week", "last_weekly_reset"),
    "month": ("credits_used_this_month", "last_monthly_reset"),
}


class CreditRepository(BaseRepository):
    """Repository for the tenant credit ledger."""

    async def get_ledger(self, *, for_update: bool = False) -> Optional[TenantCredit]:
        stmt = select(TenantCredit)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.scalar_one_or_none(stmt)

    async def create_ledger(self, *, balance: int, is_free_tier: bool = True) -> TenantCredit:
        ledger = TenantCredit(
            balance=balance,
            lifetime_earned=balance,
            is_free_tier=is_free_tier,
            tier_status="free" if is_free_tier else "paid",
            warning_levels_sent=[],
        )
        await self.add(ledger)
        await self.flush()
        return ledger

    async def add_transaction(self, **values) -> CreditTransaction:
        txn = CreditTransaction(**values)
        await self.add(txn)
        return txn

    async def add_grant(self, **values) -> CreditGrant:
        grant = CreditGrant(**values)
        await self.add(grant)
        return grant

    async def find_transaction_by_reference(self, reference_type: str, reference_id: str) -> Optional[CreditTransaction]:
        stmt = (
            select(CreditTransaction)
            .where(CreditTransaction.reference_type == reference_type)
            .where(CreditTransaction.reference_id == reference_id)
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

    async def list_transactions(
        self, *, transaction_type: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[CreditTransaction]:
        stmt = select(CreditTransaction)
        if transaction_type:
            stmt = stmt.where(CreditTransaction.transaction_type == transaction_type)
        stmt = stmt.order_by(CreditTransaction.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def reset_usage_counter(self, period: str) -> int:
        counter, stamp = USAGE_COUNTERS[period]
        column = getattr(TenantCredit, counter)
        stmt = (
            update(TenantCredit)
            .where(column > 0)
            .values({counter: 0, stamp: func.now()})
        )
        result = await self.execute(stmt)
        return int(result.rowcount or 0)

    # Subscriptions
    async def add_subscription(self, **values) -> CreditSubscription:
        sub = CreditSubscription(**values)
        await self.add(sub)
        await self.flush()
        return sub

    async def get_subscription_by_stripe_id(self, stripe_subscription_id: str) -> Optional[CreditSubscription]:
        stmt = select(CreditSubscription).where(CreditSubscription.stripe_subscription_id == stripe_subscription_id)
        return await self.scalar_one_or_none(stmt)

    async def get_subscription_by_checkout(self, checkout_session_id: str) -> Optional[CreditSubscription]:
        stmt = select(CreditSubscription).where(CreditSubscription.checkout_session_id == checkout_session_id)
        return await self.scalar_one_or_none(stmt)

    async def get_active_subscription(self) -> Optional[CreditSubscription]:
        stmt = (
            select(CreditSubscription)
            .where(CreditSubscription.status == "active")
            .order_by(CreditSubscription.created_at.desc())
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

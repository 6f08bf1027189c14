from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from delivery_api.db.base import Base, UUIDPkMixin, TimestampMixin, TenantMixin


class TenantCredit(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Credit ledger head: one row per tenant."""
    __tablename__ = "tenant_credits"
    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_tenant_credits_tenant_id"),
    )

    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    lifetime_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    lifetime_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    credits_used_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    credits_used_this_week: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    credits_used_this_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    tier_status: Mapped[str] = mapped_column(Text, nullable=False, default="free", server_default="free")
    is_free_tier: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    warning_levels_sent: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")
    last_daily_reset: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=text("now()"))
    last_weekly_reset: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=text("now()"))
    last_monthly_reset: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=text("now()"))


class CreditTransaction(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Append-only ledger entry; amount is negative for usage."""
    __tablename__ = "credit_transactions"

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[str] = mapped_column(Text, nullable=False)
    action_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict, server_default="{}")


class CreditGrant(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Promotional, support, or admin grant of credits."""
    __tablename__ = "credit_grants"

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    grant_type: Mapped[str] = mapped_column(Text, nullable=False)
    promo_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    granted_by: Mapped[Optional[UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class CreditSubscription(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Recurring Stripe subscription that grants monthly_credits per paid invoice."""
    __tablename__ = "credit_subscriptions"

    stripe_price_id: Mapped[str] = mapped_column(Text, nullable=False)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)
    checkout_session_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    monthly_credits: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending")
    current_period_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

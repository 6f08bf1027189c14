from __future__ import annotations

from typing import Optional

from sqlalchemy import Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from delivery_api.db.base import Base, UUIDPkMixin, TimestampMixin, TenantMixin


class SubscriptionEvent(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Processed Stripe webhook event; stripe_event_id makes processing idempotent."""
    __tablename__ = "subscription_events"

    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    stripe_event_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)
    details: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict, server_default="{}")

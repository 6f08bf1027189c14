from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from delivery_api.db.models.billing import SubscriptionEvent
from .base import BaseRepository


class SubscriptionEventRepository(BaseRepository):
    """Repository for processed Stripe webhook events."""

    async def get_by_stripe_event_id(self, stripe_event_id: str) -> Optional[SubscriptionEvent]:
        stmt = select(SubscriptionEvent).where(SubscriptionEvent.stripe_event_id == stripe_event_id)
        return await self.scalar_one_or_none(stmt)

    async def record(self, *, event_type: str, stripe_event_id: Optional[str], details: dict) -> SubscriptionEvent:
        event = SubscriptionEvent(event_type=event_type, stripe_event_id=stripe_event_id, details=details)
        await self.add(event)
        await self.flush()
        return event

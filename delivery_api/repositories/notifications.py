from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select

from delivery_api.db.models.notifications import Notification
from .base import BaseRepository


class NotificationRepository(BaseRepository):
    """Repository for in-app notifications."""

    async def create(
        self,
        *,
        title: str,
        message: str,
        type: str,
        user_id: Optional[UUID] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
    ) -> Notification:
        note = Notification(
            title=title,
            message=message,
            type=type,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        await self.add(note)
        return note

    async def list_for_user(
        self, user_id: UUID, *, include_broadcast: bool, unread_only: bool, limit: int, offset: int
    ) -> List[Notification]:
        stmt = select(Notification)
        if include_broadcast:
            stmt = stmt.where(or_(Notification.user_id == user_id, Notification.user_id.is_(None)))
        else:
            stmt = stmt.where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.read_at.is_(None))
        stmt = stmt.order_by(Notification.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get(self, notification_id: UUID) -> Optional[Notification]:
        return await self.scalar_one_or_none(select(Notification).where(Notification.id == notification_id))

from __future__ import annotations

from datetime import datetime, timezone
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.deps import get_current_active_user, get_tenant_session
from delivery_api.core.errors import NotFoundError
from delivery_api.repositories.notifications import NotificationRepository
from delivery_api.repositories.security import SecurityRepository
from delivery_api.schemas.delivery import NotificationRead

router = APIRouter(prefix="/notifications", tags=["Notifications"])

_ADMIN_ROLES = {"admin", "super_admin"}


async def _is_admin(session: AsyncSession, user) -> bool:
    roles = {r.name for r in await SecurityRepository(session).list_roles_for_user(user.id)}
    return not roles.isdisjoint(_ADMIN_ROLES)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[NotificationRead],
    summary="List notifications",
    description="Notifications for the current user; admins also see notifications addressed to all admins.",
)
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[NotificationRead]:
    repo = NotificationRepository(session)
    items = await repo.list_for_user(
        user.id,
        include_broadcast=await _is_admin(session, user),
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )
    return [NotificationRead.model_validate(n) for n in items]


# PUBLIC_INTERFACE
@router.post(
    "/{notification_id}/read",
    response_model=NotificationRead,
    summary="Mark notification read",
)
async def mark_notification_read(
    notification_id: UUID,
    user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> NotificationRead:
    repo = NotificationRepository(session)
    note = await repo.get(notification_id)
    visible = note is not None and (
        note.user_id == user.id or (note.user_id is None and await _is_admin(session, user))
    )
    if not visible:
        raise NotFoundError("Notification not found")
    if note.read_at is None:
        note.read_at = datetime.now(tz=timezone.utc)
        await session.commit()
        await session.refresh(note)
    return NotificationRead.model_validate(note)

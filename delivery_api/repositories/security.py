from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func

from delivery_api.db.models.security import User, Role, UserRole
from .base import BaseRepository


class SecurityRepository(BaseRepository):
    """Repository for user/role management within a tenant."""

    # Users
    async def get_user_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.lower())
        return await self.scalar_one_or_none(stmt)

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        return await self.scalar_one_or_none(stmt)

    async def count_users(self) -> int:
        stmt = select(func.count(User.id))
        result = await self.execute(stmt)
        return int(result.scalar_one())

    async def create_user(
        self,
        *,
        email: str,
        full_name: Optional[str],
        hashed_password: str,
        phone: Optional[str] = None,
        is_active: bool = True,
    ) -> User:
        user = User(
            email=email.lower(),
            full_name=full_name,
            phone=phone,
            hashed_password=hashed_password,
            is_active=is_active,
        )
        await self.add(user)
        await self.flush()
        return user

    async def list_roles_for_user(self, user_id: UUID) -> List[Role]:
        stmt = (
            select(Role)
            .join(UserRole, Role.id == UserRole.role_id)
            .where(UserRole.user_id == user_id)
        )
        result = await self.scalars(stmt)
        return list(result)

    async def list_admin_ids(self) -> List[UUID]:
        stmt = (
            select(UserRole.user_id)
            .join(Role, Role.id == UserRole.role_id)
            .where(Role.name.in_(("admin", "super_admin")))
        )
        result = await self.scalars(stmt)
        return list(dict.fromkeys(result))

    # Roles
    async def get_role_by_name(self, name: str) -> Optional[Role]:
        stmt = select(Role).where(Role.name == name)
        return await self.scalar_one_or_none(stmt)

    async def ensure_role(self, name: str, description: Optional[str] = None) -> Role:
        role = await self.get_role_by_name(name)
        if role:
            return role
        role = Role(name=name, description=description)
        await self.add(role)
        await self.flush()
        return role

    # Associations
    async def assign_role_to_user(self, user_id: UUID, role_id: UUID) -> None:
        await self.add(UserRole(user_id=user_id, role_id=role_id))
        await self.flush()

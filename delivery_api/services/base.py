from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession


class BaseService:
    """
    Base class for services. Holds a session shared by the service's repositories.

    Repositories only flush; the service decides when a unit of work is committed.
    Operations that can run inside a larger unit of work take a `commit` flag.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _finish(self, commit: bool) -> None:
        """Commit the unit of work, or just flush it when the caller owns the commit."""
        if commit:
            await self.session.commit()
        else:
            await self.session.flush()

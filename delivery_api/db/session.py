from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Union
from uuid import UUID

from sqlalchemy import event, text
from sqlalchemy.orm import Session
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings


_SETTINGS = get_settings()
_ENGINE: AsyncEngine | None = None
_SESSION_MAKER: async_sessionmaker[AsyncSession] | None = None


def _ensure_engine_initialized() -> None:
    """
    Lazily initialize the AsyncEngine and session maker.
    """
    global _ENGINE, _SESSION_MAKER
    if _ENGINE is None:
        _ENGINE = create_async_engine(
            _SETTINGS.async_database_url,
            echo=_SETTINGS.SQL_ECHO,
            pool_size=_SETTINGS.SQL_POOL_SIZE,
            pool_pre_ping=True,
        )
    if _SESSION_MAKER is None:
        _SESSION_MAKER = async_sessionmaker(
            bind=_ENGINE, expire_on_commit=False, autoflush=False, autocommit=False
        )


# PUBLIC_INTERFACE
def get_engine() -> AsyncEngine:
    """Return the global AsyncEngine instance."""
    _ensure_engine_initialized()
    assert _ENGINE is not None
    return _ENGINE


# PUBLIC_INTERFACE
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession suitable for FastAPI dependency injection.
    Ensures engine/session factory is initialized.
    """
    _ensure_engine_initialized()
    assert _SESSION_MAKER is not None
    async with _SESSION_MAKER() as session:
        yield session


_TENANT_KEY = "tenant_id"
_SET_TENANT_SQL = text("SELECT set_config('app.tenant_id', :tenant_id, true)")


@event.listens_for(Session, "after_begin")
def _apply_tenant_guc(session: Session, transaction, connection) -> None:
    """
    Re-apply the session's tenant at the start of every transaction.

    The GUC is transaction-local, so it cannot leak to the next user of a pooled
    connection and survives commits and rollbacks that start a new transaction.
    """
    tenant_id = session.info.get(_TENANT_KEY)
    connection.execute(_SET_TENANT_SQL, {"tenant_id": tenant_id or ""})


# PUBLIC_INTERFACE
async def set_current_tenant(
    session: AsyncSession, tenant_id: Union[str, UUID, None]
) -> None:
    """
    Set the current tenant for the DB session using the `app.tenant_id` GUC.

    RLS policies compare tenant_id columns against
      NULLIF(current_setting('app.tenant_id', true), '')::uuid
    """
    value = str(tenant_id) if tenant_id else None
    session.info[_TENANT_KEY] = value
    await session.execute(_SET_TENANT_SQL, {"tenant_id": value or ""})


# PUBLIC_INTERFACE
@asynccontextmanager
async def tenant_context(
    session: AsyncSession, tenant_id: Union[str, UUID]
) -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager that sets and resets the tenant context on the session.

    Nested blocks restore the enclosing tenant on exit.

    Usage:
        async with tenant_context(session, tenant_id):
            # all queries inside are filtered by RLS
            ...
    """
    previous = session.info.get(_TENANT_KEY)
    await set_current_tenant(session, tenant_id)
    try:
        yield session
    except Exception:
        # A failed statement aborts the transaction; roll back so the reset below can run.
        await session.rollback()
        raise
    finally:
        await set_current_tenant(session, previous)

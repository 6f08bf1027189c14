"""
Persistence layer for the delivery platform.

Re-exports the async engine and session factory, the per-transaction tenant
GUC helpers that drive row-level security, and the declarative Base whose
metadata covers tenants, storefronts, delivery zones and orders, catalog
products, the credit ledger and Stripe subscription events.
"""

from .base import Base
from .config import Settings, get_settings
from .session import (
    get_async_session,
    get_engine,
    set_current_tenant,
    tenant_context,
)

# Registers every model on Base.metadata for Alembic autogenerate and runtime use.
from . import models as models  # noqa: F401

__all__ = [
    "Base",
    "Settings",
    "get_settings",
    "get_engine",
    "get_async_session",
    "set_current_tenant",
    "tenant_context",
    "models",
]

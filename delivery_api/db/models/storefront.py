from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Numeric, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from delivery_api.db.base import Base, UUIDPkMixin, TimestampMixin, TenantMixin


class Store(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """
    Customer-facing storefront settings.

    `delivery_zones` is the legacy ZIP-only zone list
    ([{zip_code, fee, min_order}]) kept for stores that predate polygon zones.
    """
    __tablename__ = "stores"
    __table_args__ = (
        UniqueConstraint("tenant_id", "slug", name="uq_stores_tenant_slug"),
    )

    slug: Mapped[str] = mapped_column(Text, nullable=False)
    store_name: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    free_delivery_threshold: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    default_delivery_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    delivery_zones: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")
    purchase_limits: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)

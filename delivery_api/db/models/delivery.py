from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, Numeric, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from delivery_api.db.base import Base, UUIDPkMixin, TimestampMixin, TenantMixin


class DeliveryZone(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """
    Delivery area drawn on the admin map.

    polygon holds GeoJSON-ordered [lng, lat] vertices; zip_codes is a plain
    list of 5-digit ZIPs used when the address could not be geocoded.
    """
    __tablename__ = "delivery_zones"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_delivery_zones_tenant_name"),
    )

    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(Text, nullable=False, default="#3b82f6", server_default="#3b82f6")
    polygon: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")
    zip_codes: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")
    # NULL falls back to the storefront default fee; 0 means free delivery
    delivery_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    minimum_order: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    estimated_time_min: Mapped[int] = mapped_column(Integer, nullable=False, default=30, server_default="30")
    estimated_time_max: Mapped[int] = mapped_column(Integer, nullable=False, default=60, server_default="60")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    delivery_hours: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)


class Order(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """
    Customer delivery order.

    The *_sent columns are the per-stage idempotency flags used by the
    delivery notification processor.
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_order_number"),
    )

    order_number: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending")
    customer_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    customer_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_zip: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delivery_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    zone_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("delivery_zones.id", ondelete="SET NULL"), nullable=True
    )
    courier_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    courier_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    courier_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    courier_location_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    order_confirmed_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    courier_assigned_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    order_picked_up_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    en_route_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    ten_minutes_away_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    five_minutes_away_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    arriving_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    delivered_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

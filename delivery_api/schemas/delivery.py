from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from delivery_api.services.zones import validate_polygon


class DayHours(BaseModel):
    """Opening hours for one weekday."""
    open: str = Field("09:00", description="HH:MM local time")
    close: str = Field("21:00", description="HH:MM local time")
    enabled: bool = Field(True)


class DeliveryZoneBase(BaseModel):
    name: str = Field(..., min_length=1, description="Zone name, unique per tenant")
    description: Optional[str] = Field(None)
    color: str = Field("#3b82f6", description="Map color")
    polygon: List[List[float]] = Field(default_factory=list, description="[[lng, lat], ...] vertices")
    zip_codes: List[str] = Field(default_factory=list, description="ZIP codes served when coordinates are unknown")
    delivery_fee: Optional[Decimal] = Field(None, ge=0, description="Omit to use the storefront default fee; 0 is free")
    minimum_order: Decimal = Field(Decimal("0"), ge=0)
    estimated_time_min: int = Field(30, ge=0, description="Minutes")
    estimated_time_max: int = Field(60, ge=0, description="Minutes")
    priority: int = Field(0, description="Higher priority zones are matched first")
    is_active: bool = Field(True)
    delivery_hours: Optional[Dict[str, DayHours]] = Field(
        None, description="Keyed by lowercase weekday name, e.g. 'monday'"
    )


class DeliveryZoneCreate(DeliveryZoneBase):
    """Create payload; a zone needs either a polygon or ZIP codes."""

    @field_validator("polygon")
    @classmethod
    def _check_polygon(cls, v: List[List[float]]) -> List[List[float]]:
        if v:
            errors = validate_polygon(v)
            if errors:
                raise ValueError("; ".join(errors))
        return v


class DeliveryZoneUpdate(BaseModel):
    """Partial update payload."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    color: Optional[str] = None
    polygon: Optional[List[List[float]]] = None
    zip_codes: Optional[List[str]] = None
    delivery_fee: Optional[Decimal] = Field(None, ge=0)
    minimum_order: Optional[Decimal] = Field(None, ge=0)
    estimated_time_min: Optional[int] = Field(None, ge=0)
    estimated_time_max: Optional[int] = Field(None, ge=0)
    priority: Optional[int] = None
    is_active: Optional[bool] = None
    delivery_hours: Optional[Dict[str, DayHours]] = None

    @field_validator("polygon")
    @classmethod
    def _check_polygon(cls, v: Optional[List[List[float]]]) -> Optional[List[List[float]]]:
        if v:
            errors = validate_polygon(v)
            if errors:
                raise ValueError("; ".join(errors))
        return v


class DeliveryZoneRead(DeliveryZoneBase):
    id: UUID = Field(..., description="Zone ID")
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class ZoneValidationRequest(BaseModel):
    """Checkout address check."""
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    zip_code: Optional[str] = Field(None, description="5-digit or ZIP+4")
    subtotal: Decimal = Field(Decimal("0"), ge=0, description="Cart subtotal in dollars")
    store_slug: Optional[str] = Field(None, description="Storefront to read legacy zones and fee settings from")
    at: Optional[datetime] = Field(None, description="Requested delivery time; checks zone hours when given")


class ZoneValidationResponse(BaseModel):
    is_valid: bool
    zone_id: Optional[UUID] = None
    zone_name: Optional[str] = None
    matched_by: Optional[str] = Field(None, description="polygon | zip | legacy_zip | default")
    delivery_fee: Decimal = Decimal("0")
    minimum_order: Decimal = Decimal("0")
    estimated_time_min: Optional[int] = None
    estimated_time_max: Optional[int] = None
    error: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: str = Field(..., description="Target status")
    courier_id: Optional[UUID] = Field(None, description="Assign a courier together with the status change")


class CourierLocationUpdate(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class OrderRead(BaseModel):
    id: UUID
    order_number: str
    status: str
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_lat: Optional[float] = None
    delivery_lng: Optional[float] = None
    zone_id: Optional[UUID] = None
    courier_id: Optional[UUID] = None
    courier_lat: Optional[float] = None
    courier_lng: Optional[float] = None
    courier_location_at: Optional[datetime] = None
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class NotificationRead(BaseModel):
    """In-app notification."""
    id: UUID
    user_id: Optional[UUID] = Field(None, description="Null for notifications addressed to all admins")
    title: str
    message: str
    type: str
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationRunResponse(BaseModel):
    """Result of one notification processing pass."""
    orders_checked: int = 0
    notifications_sent: int = 0
    sms_sent: int = 0
    sms_failed: int = 0
    errors: List[str] = Field(default_factory=list)

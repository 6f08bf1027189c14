from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.deps import get_current_active_user, get_tenant_session, require_roles
from delivery_api.repositories.delivery import OrderRepository
from delivery_api.schemas.common import MessageResponse
from delivery_api.schemas.delivery import (
    CourierLocationUpdate,
    DeliveryZoneCreate,
    DeliveryZoneRead,
    DeliveryZoneUpdate,
    NotificationRunResponse,
    OrderRead,
    OrderStatusUpdate,
    ZoneValidationRequest,
    ZoneValidationResponse,
)
from delivery_api.services.delivery_notifications import DeliveryNotificationService
from delivery_api.services.zones import DeliveryZoneService

router = APIRouter(prefix="/delivery", tags=["Delivery"])

_manage = [Depends(require_roles("admin", "delivery:manage"))]


# PUBLIC_INTERFACE
@router.get(
    "/zones",
    response_model=List[DeliveryZoneRead],
    summary="List delivery zones",
    description="All zones of the tenant, highest priority first.",
)
async def list_zones(
    _user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[DeliveryZoneRead]:
    zones = await DeliveryZoneService(session).list_zones()
    return [DeliveryZoneRead.model_validate(z) for z in zones]


# PUBLIC_INTERFACE
@router.post(
    "/zones",
    response_model=DeliveryZoneRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create delivery zone",
    dependencies=_manage,
)
async def create_zone(
    payload: DeliveryZoneCreate,
    session: AsyncSession = Depends(get_tenant_session),
) -> DeliveryZoneRead:
    zone = await DeliveryZoneService(session).create_zone(payload.model_dump())
    return DeliveryZoneRead.model_validate(zone)


# PUBLIC_INTERFACE
@router.patch(
    "/zones/{zone_id}",
    response_model=DeliveryZoneRead,
    summary="Update delivery zone",
    dependencies=_manage,
)
async def update_zone(
    zone_id: UUID,
    payload: DeliveryZoneUpdate,
    session: AsyncSession = Depends(get_tenant_session),
) -> DeliveryZoneRead:
    zone = await DeliveryZoneService(session).update_zone(zone_id, payload.model_dump(exclude_unset=True))
    return DeliveryZoneRead.model_validate(zone)


# PUBLIC_INTERFACE
@router.post(
    "/zones/{zone_id}/toggle",
    response_model=DeliveryZoneRead,
    summary="Toggle delivery zone",
    description="Flip the zone between active and inactive.",
    dependencies=_manage,
)
async def toggle_zone(
    zone_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
) -> DeliveryZoneRead:
    zone = await DeliveryZoneService(session).toggle_zone(zone_id)
    return DeliveryZoneRead.model_validate(zone)


# PUBLIC_INTERFACE
@router.delete(
    "/zones/{zone_id}",
    response_model=MessageResponse,
    summary="Delete delivery zone",
    dependencies=_manage,
)
async def delete_zone(
    zone_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
) -> MessageResponse:
    await DeliveryZoneService(session).delete_zone(zone_id)
    return MessageResponse(message="Deleted")


# PUBLIC_INTERFACE
@router.post(
    "/zones/validate",
    response_model=ZoneValidationResponse,
    summary="Validate checkout address",
    description=(
        "Match coordinates or a ZIP code against active zones (falling back to the storefront's "
        "legacy ZIP list) and return the fee, minimum order and delivery estimate."
    ),
)
async def validate_address(
    payload: ZoneValidationRequest,
    session: AsyncSession = Depends(get_tenant_session),
) -> ZoneValidationResponse:
    result = await DeliveryZoneService(session).validate_address(
        lat=payload.lat,
        lng=payload.lng,
        zip_code=payload.zip_code,
        subtotal=payload.subtotal,
        store_slug=payload.store_slug,
        at=payload.at,
    )
    return ZoneValidationResponse.model_validate(result, from_attributes=True)


# PUBLIC_INTERFACE
@router.get(
    "/orders",
    response_model=List[OrderRead],
    summary="List orders",
)
async def list_orders(
    status_filter: Optional[List[str]] = Query(None, alias="status", description="Filter by one or more statuses"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    _user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[OrderRead]:
    orders = await OrderRepository(session).list_orders(statuses=status_filter, limit=limit, offset=offset)
    return [OrderRead.model_validate(o) for o in orders]


# PUBLIC_INTERFACE
@router.post(
    "/orders/{order_id}/status",
    response_model=OrderRead,
    summary="Change order status",
    description=(
        "Move the order along pending → confirmed → preparing → ready → picked_up → "
        "out_for_delivery → delivered; cancelled and failed are reachable from any open state. "
        "Assigning a new courier is charged courier_assign_delivery credits."
    ),
    dependencies=[Depends(require_roles("admin", "delivery:manage", "courier"))],
)
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdate,
    session: AsyncSession = Depends(get_tenant_session),
) -> OrderRead:
    order = await DeliveryNotificationService(session).update_order_status(
        order_id, payload.status, courier_id=payload.courier_id
    )
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.post(
    "/orders/{order_id}/location",
    response_model=OrderRead,
    summary="Report courier location",
    dependencies=[Depends(require_roles("admin", "courier"))],
)
async def record_courier_location(
    order_id: UUID,
    payload: CourierLocationUpdate,
    session: AsyncSession = Depends(get_tenant_session),
) -> OrderRead:
    order = await DeliveryNotificationService(session).record_courier_location(order_id, payload.lat, payload.lng)
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.post(
    "/notifications/process",
    response_model=NotificationRunResponse,
    summary="Run delivery notifications",
    description="Evaluate all open orders once and send the notification stages that are due.",
    dependencies=_manage,
)
async def process_delivery_notifications(
    session: AsyncSession = Depends(get_tenant_session),
) -> NotificationRunResponse:
    summary = await DeliveryNotificationService(session).process_delivery_notifications()
    return NotificationRunResponse.model_validate(summary, from_attributes=True)

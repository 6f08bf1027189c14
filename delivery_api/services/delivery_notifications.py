"""
Staged customer notifications for delivery orders.

Each order moves through eight notification stages. A stage fires once: its
`<stage>_sent` flag on the order is set after the in-app notification is
written and the SMS attempt is made. Distance stages compare the courier's
last reported position with the delivery coordinates.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.errors import ConflictError, DomainError, NotFoundError
from delivery_api.core.settings import AppSettings, get_app_settings
from delivery_api.db.models.delivery import Order
from delivery_api.repositories.delivery import OrderRepository
from delivery_api.repositories.notifications import NotificationRepository
from delivery_api.services.base import BaseService
from delivery_api.services.credits import CreditService
from delivery_api.services.sms import SmsClient, get_sms_client

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6_371_000

STAGES = (
    "order_confirmed",
    "courier_assigned",
    "order_picked_up",
    "en_route",
    "ten_minutes_away",
    "five_minutes_away",
    "arriving",
    "delivered",
)
DISTANCE_STAGES = ("en_route", "ten_minutes_away", "five_minutes_away", "arriving")

PICKED_UP_STATUSES = frozenset({"picked_up", "out_for_delivery", "in_transit"})
TERMINAL_STATUSES = frozenset({"delivered", "cancelled", "failed"})

# Forward path of an order; cancelled and failed are reachable from any non-terminal state.
ORDER_TRANSITIONS: Dict[str, frozenset] = {
    "pending": frozenset({"confirmed"}),
    "confirmed": frozenset({"preparing"}),
    "preparing": frozenset({"ready"}),
    "ready": frozenset({"picked_up"}),
    "picked_up": frozenset({"out_for_delivery"}),
    "out_for_delivery": frozenset({"delivered"}),
}
ORDER_STATUSES = frozenset(ORDER_TRANSITIONS) | TERMINAL_STATUSES

STAGE_MESSAGES: Dict[str, tuple[str, str, str]] = {
    "order_confirmed": ("Order confirmed", "Your order #{number} has been confirmed.", "success"),
    "courier_assigned": ("Courier assigned", "A courier has been assigned to order #{number}.", "info"),
    "order_picked_up": ("Order picked up", "Your order #{number} has been picked up and is on its way.", "info"),
    "en_route": ("On the way", "Your courier is en route with order #{number}.", "info"),
    "ten_minutes_away": ("10 minutes away", "Order #{number} is about 10 minutes away.", "info"),
    "five_minutes_away": ("5 minutes away", "Order #{number} is about 5 minutes away.", "info"),
    "arriving": ("Arriving now", "Your courier is arriving with order #{number}.", "warning"),
    "delivered": ("Order delivered", "Order #{number} has been delivered. Enjoy!", "success"),
}


@dataclass
class StagePlan:
    """Stages to message now, and distance stages to mark sent without a message."""
    notify: List[str] = field(default_factory=list)
    skip: List[str] = field(default_factory=list)


@dataclass
class NotificationRunSummary:
    orders_checked: int = 0
    notifications_sent: int = 0
    sms_sent: int = 0
    sms_failed: int = 0
    errors: List[str] = field(default_factory=list)


# PUBLIC_INTERFACE
def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def courier_distance(order) -> Optional[float]:
    """Distance from courier to drop-off, or None when either position is unknown."""
    coords = (order.courier_lat, order.courier_lng, order.delivery_lat, order.delivery_lng)
    if any(c is None for c in coords):
        return None
    return haversine_meters(*coords)


def _thresholds(settings: AppSettings) -> Dict[str, float]:
    return {
        "en_route": settings.EN_ROUTE_METERS,
        "ten_minutes_away": settings.TEN_MINUTES_AWAY_METERS,
        "five_minutes_away": settings.FIVE_MINUTES_AWAY_METERS,
        "arriving": settings.ARRIVING_METERS,
    }


def _condition_holds(order, stage: str, distance: Optional[float], thresholds: Dict[str, float]) -> bool:
    status = order.status
    if stage == "order_confirmed":
        return status not in ("pending", "cancelled", "failed")
    if stage == "courier_assigned":
        return order.courier_id is not None
    if stage == "order_picked_up":
        return status in PICKED_UP_STATUSES
    if stage == "delivered":
        return status == "delivered"
    # distance stages
    return status in PICKED_UP_STATUSES and distance is not None and distance <= thresholds[stage]


# PUBLIC_INTERFACE
def plan_stages(order, distance: Optional[float], settings: Optional[AppSettings] = None) -> StagePlan:
    """
    Work out which unsent stages apply to an order right now.

    A delivered order never gets distance messages; their flags are only marked.
    When the courier first reports a position already inside several distance
    bands, only the closest band is messaged and the outer ones are marked.
    """
    thresholds = _thresholds(settings or get_app_settings())
    plan = StagePlan()
    delivered = order.status == "delivered"

    for stage in STAGES:
        if getattr(order, f"{stage}_sent"):
            continue
        if stage in DISTANCE_STAGES and delivered:
            plan.skip.append(stage)
            continue
        if _condition_holds(order, stage, distance, thresholds):
            plan.notify.append(stage)

    distance_hits = [s for s in plan.notify if s in DISTANCE_STAGES]
    for stage in distance_hits[:-1]:
        plan.notify.remove(stage)
        plan.skip.append(stage)
    return plan


# PUBLIC_INTERFACE
def pending_stages(order, distance: Optional[float], settings: Optional[AppSettings] = None) -> List[str]:
    """Stages that would be messaged for this order, in stage order."""
    return plan_stages(order, distance, settings).notify


class DeliveryNotificationService(BaseService):
    """Runs notification stages for the current tenant's orders and manages order status."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        sms_client: Optional[SmsClient] = None,
        settings: Optional[AppSettings] = None,
    ) -> None:
        super().__init__(session)
        self.settings = settings or get_app_settings()
        self.orders = OrderRepository(session)
        self.notifications = NotificationRepository(session)
        self.sms = sms_client or get_sms_client(self.settings)
        self.credits = CreditService(session, settings=self.settings)

    # PUBLIC_INTERFACE
    async def process_delivery_notifications(self) -> NotificationRunSummary:
        """
        Evaluate every open order once and send whatever stages are due.

        Commits per order. A failure on one order is logged and recorded in the
        summary, and the run moves on to the next order.
        """
        summary = NotificationRunSummary()
        order_ids = await self.orders.list_active_ids_for_notifications()
        for order_id in order_ids:
            summary.orders_checked += 1
            try:
                order = await self.orders.get_order(order_id, for_update=True)
                if order is None:
                    continue
                await self._process_order(order, summary)
                await self.session.commit()
            except Exception as exc:
                logger.exception("Notification processing failed for order %s", order_id)
                await self.session.rollback()
                summary.errors.append(f"{order_id}: {exc}")

        logger.info(
            "Delivery notifications: %d orders, %d sent, %d sms, %d sms failed",
            summary.orders_checked,
            summary.notifications_sent,
            summary.sms_sent,
            summary.sms_failed,
        )
        return summary

    async def _process_order(self, order: Order, summary: NotificationRunSummary) -> None:
        plan = plan_stages(order, courier_distance(order), self.settings)
        for stage in plan.skip:
            setattr(order, f"{stage}_sent", True)

        for stage in plan.notify:
            title, template, kind = STAGE_MESSAGES[stage]
            message = template.format(number=order.order_number)

            if order.customer_id is not None:
                await self.notifications.create(
                    title=title,
                    message=message,
                    type=kind,
                    user_id=order.customer_id,
                    entity_type="order",
                    entity_id=order.id,
                )
                summary.notifications_sent += 1
            if stage == "delivered":
                await self.notifications.create(
                    title=title,
                    message=message,
                    type=kind,
                    user_id=None,
                    entity_type="order",
                    entity_id=order.id,
                )
                summary.notifications_sent += 1

            if self.settings.SMS_ENABLED and order.customer_phone:
                try:
                    result = await self.sms.send(order.customer_phone, message)
                    if result.status != "skipped":
                        summary.sms_sent += 1
                except DomainError as exc:
                    # No retry; the stage is still marked so the customer is not spammed later.
                    logger.warning("SMS for order %s stage %s failed: %s", order.id, stage, exc.message)
                    summary.sms_failed += 1

            setattr(order, f"{stage}_sent", True)

    async def _get_order(self, order_id: UUID, *, for_update: bool = False) -> Order:
        order = await self.orders.get_order(order_id, for_update=for_update)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    # PUBLIC_INTERFACE
    async def record_courier_location(self, order_id: UUID, lat: float, lng: float) -> Order:
        """Store the courier position; the next processing run evaluates distance stages against it."""
        order = await self._get_order(order_id, for_update=True)
        if order.status in TERMINAL_STATUSES:
            raise ConflictError(f"Order is already {order.status}")
        order.courier_lat = lat
        order.courier_lng = lng
        order.courier_location_at = datetime.now(tz=timezone.utc)
        await self.session.commit()
        await self.session.refresh(order)
        return order

    # PUBLIC_INTERFACE
    async def update_order_status(
        self, order_id: UUID, status: str, *, courier_id: Optional[UUID] = None
    ) -> Order:
        """
        Move an order along its lifecycle.

        Handing the order to a different courier is charged
        courier_assign_delivery credits in the same transaction.

        Raises:
            DomainError: unknown status (400)
            ConflictError: transition not allowed from the current status (409)
            InsufficientCreditsError: courier change the tenant cannot afford (402)
        """
        if status not in ORDER_STATUSES:
            raise DomainError(f"Unknown order status '{status}'")

        order = await self._get_order(order_id, for_update=True)
        current = order.status
        allowed = ORDER_TRANSITIONS.get(current, frozenset())
        if current not in TERMINAL_STATUSES:
            allowed = allowed | {"cancelled", "failed"}
        if status not in allowed:
            raise ConflictError(
                f"Cannot change order status from '{current}' to '{status}'",
                details={"from": current, "to": status, "allowed": sorted(allowed)},
            )

        if courier_id is not None and courier_id != order.courier_id:
            await self.credits.consume_credits(
                "courier_assign_delivery", reference_id=str(order.id), reference_type="order", commit=False
            )
            order.courier_id = courier_id
        order.status = status
        if status == "delivered":
            order.delivered_at = datetime.now(tz=timezone.utc)
        if status == "failed":
            await self.notifications.create(
                title="Delivery failed",
                message=f"Order #{order.order_number} could not be delivered.",
                type="error",
                user_id=None,
                entity_type="order",
                entity_id=order.id,
            )

        await self.session.commit()
        await self.session.refresh(order)
        logger.info("Order %s status %s -> %s", order.id, current, status)
        return order

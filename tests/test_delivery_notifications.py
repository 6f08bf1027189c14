"""Tests for staged delivery notifications and order status changes."""

from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from delivery_api.core.errors import ConflictError, DomainError, ExternalServiceError, InsufficientCreditsError
from delivery_api.services.delivery_notifications import (
    STAGES,
    DeliveryNotificationService,
    haversine_meters,
    pending_stages,
    plan_stages,
)
from delivery_api.services.sms import NullSmsClient

DROP_LAT, DROP_LNG = 39.7392, -104.9903
# About one kilometre north of the drop-off.
NEAR_LAT = DROP_LAT + 0.009


def make_order(**overrides):
    values = dict(
        id=uuid4(),
        order_number="1001",
        status="confirmed",
        customer_id=uuid4(),
        customer_phone="(303) 555-0100",
        courier_id=None,
        courier_lat=None,
        courier_lng=None,
        delivery_lat=DROP_LAT,
        delivery_lng=DROP_LNG,
        delivered_at=None,
    )
    values.update({f"{stage}_sent": False for stage in STAGES})
    values.update(overrides)
    return SimpleNamespace(**values)


class TestHaversine:
    def test_zero_distance(self):
        assert haversine_meters(DROP_LAT, DROP_LNG, DROP_LAT, DROP_LNG) == 0

    def test_one_kilometre(self):
        assert haversine_meters(NEAR_LAT, DROP_LNG, DROP_LAT, DROP_LNG) == pytest.approx(1000.75, abs=2)


class TestPlanStages:
    def test_confirmed_order(self, settings):
        assert pending_stages(make_order(), None, settings) == ["order_confirmed"]

    def test_pending_order_has_nothing_due(self, settings):
        assert pending_stages(make_order(status="pending"), None, settings) == []

    def test_closest_distance_band_wins(self, settings):
        order = make_order(status="out_for_delivery", courier_id=uuid4())
        plan = plan_stages(order, 1000.0, settings)
        assert plan.notify == ["order_confirmed", "courier_assigned", "order_picked_up", "five_minutes_away"]
        assert plan.skip == ["en_route", "ten_minutes_away"]

    def test_distance_stages_need_pickup(self, settings):
        order = make_order(status="ready", courier_id=uuid4())
        assert pending_stages(order, 100.0, settings) == ["order_confirmed", "courier_assigned"]

    def test_sent_stages_are_not_repeated(self, settings):
        order = make_order(
            status="out_for_delivery",
            courier_id=uuid4(),
            order_confirmed_sent=True,
            courier_assigned_sent=True,
            order_picked_up_sent=True,
            en_route_sent=True,
        )
        assert pending_stages(order, 5000.0, settings) == []
        assert pending_stages(order, 200.0, settings) == ["arriving"]

    def test_delivered_order_only_marks_distance_stages(self, settings):
        order = make_order(
            status="delivered",
            courier_id=uuid4(),
            order_confirmed_sent=True,
            courier_assigned_sent=True,
            order_picked_up_sent=True,
        )
        plan = plan_stages(order, 50.0, settings)
        assert plan.notify == ["delivered"]
        assert plan.skip == ["en_route", "ten_minutes_away", "five_minutes_away", "arriving"]

    def test_thresholds_come_from_settings(self, settings):
        settings.ARRIVING_METERS = 2000.0
        order = make_order(
            status="out_for_delivery",
            order_confirmed_sent=True,
            order_picked_up_sent=True,
        )
        assert pending_stages(order, 1500.0, settings) == ["arriving"]


class TestProcessDeliveryNotifications:
    @pytest.fixture
    def sms(self):
        client = AsyncMock()
        client.send.return_value = SimpleNamespace(sid="SM1", status="queued")
        return client

    @pytest.fixture
    def service(self, session, settings, sms):
        svc = DeliveryNotificationService(session, sms_client=sms, settings=settings)
        svc.orders = AsyncMock()
        svc.notifications = AsyncMock()
        return svc

    @pytest.mark.anyio
    async def test_sends_due_stage_once(self, service, session, sms):
        order = make_order()
        service.orders.list_active_ids_for_notifications.return_value = [order.id]
        service.orders.get_order.return_value = order

        summary = await service.process_delivery_notifications()

        assert summary.orders_checked == 1
        assert summary.notifications_sent == 1
        assert summary.sms_sent == 1
        assert order.order_confirmed_sent is True
        sms.send.assert_awaited_once_with("(303) 555-0100", "Your order #1001 has been confirmed.")
        session.commit.assert_awaited()

    @pytest.mark.anyio
    async def test_sms_failure_still_marks_stage(self, service, sms):
        order = make_order()
        service.orders.list_active_ids_for_notifications.return_value = [order.id]
        service.orders.get_order.return_value = order
        sms.send.side_effect = ExternalServiceError("SMS provider rejected the message")

        summary = await service.process_delivery_notifications()

        assert summary.sms_failed == 1
        assert summary.sms_sent == 0
        assert order.order_confirmed_sent is True

    @pytest.mark.anyio
    async def test_skipped_sms_is_not_counted_as_sent(self, session, settings):
        service = DeliveryNotificationService(session, sms_client=NullSmsClient(), settings=settings)
        service.orders = AsyncMock()
        service.notifications = AsyncMock()
        order = make_order()
        service.orders.list_active_ids_for_notifications.return_value = [order.id]
        service.orders.get_order.return_value = order

        summary = await service.process_delivery_notifications()

        assert summary.notifications_sent == 1
        assert summary.sms_sent == 0
        assert summary.sms_failed == 0
        assert order.order_confirmed_sent is True

    @pytest.mark.anyio
    async def test_delivered_also_notifies_admins(self, service):
        order = make_order(
            status="delivered",
            courier_id=uuid4(),
            customer_phone=None,
            order_confirmed_sent=True,
            courier_assigned_sent=True,
            order_picked_up_sent=True,
        )
        service.orders.list_active_ids_for_notifications.return_value = [order.id]
        service.orders.get_order.return_value = order

        summary = await service.process_delivery_notifications()

        assert summary.notifications_sent == 2
        admin_call = service.notifications.create.await_args_list[-1]
        assert admin_call.kwargs["user_id"] is None
        assert order.arriving_sent is True
        assert order.delivered_sent is True

    @pytest.mark.anyio
    async def test_one_failing_order_does_not_stop_the_run(self, service, session):
        good = make_order()
        bad_id = uuid4()

        async def get_order(order_id, for_update=False):
            if order_id == bad_id:
                raise RuntimeError("row locked")
            return good

        service.orders.list_active_ids_for_notifications.return_value = [bad_id, good.id]
        service.orders.get_order.side_effect = get_order

        summary = await service.process_delivery_notifications()

        assert summary.orders_checked == 2
        assert len(summary.errors) == 1
        assert summary.errors[0].startswith(str(bad_id))
        assert good.order_confirmed_sent is True
        session.rollback.assert_awaited()


class TestOrderStatus:
    @pytest.fixture
    def service(self, session, settings):
        svc = DeliveryNotificationService(session, sms_client=AsyncMock(), settings=settings)
        svc.orders = AsyncMock()
        svc.notifications = AsyncMock()
        svc.credits = AsyncMock()
        return svc

    @pytest.mark.anyio
    async def test_forward_transition_assigns_courier(self, service):
        order = make_order(status="confirmed")
        service.orders.get_order.return_value = order
        courier = uuid4()

        await service.update_order_status(order.id, "preparing", courier_id=courier)

        assert order.status == "preparing"
        assert order.courier_id == courier
        service.credits.consume_credits.assert_awaited_once_with(
            "courier_assign_delivery", reference_id=str(order.id), reference_type="order", commit=False
        )

    @pytest.mark.anyio
    async def test_same_courier_is_not_charged_again(self, service):
        courier = uuid4()
        order = make_order(status="preparing", courier_id=courier)
        service.orders.get_order.return_value = order

        await service.update_order_status(order.id, "ready", courier_id=courier)

        assert order.status == "ready"
        service.credits.consume_credits.assert_not_awaited()

    @pytest.mark.anyio
    async def test_unaffordable_reassignment_leaves_order_untouched(self, service, session):
        order = make_order(status="confirmed", courier_id=uuid4())
        previous_courier = order.courier_id
        service.orders.get_order.return_value = order
        service.credits.consume_credits.side_effect = InsufficientCreditsError(
            balance=5, cost=10, action_key="courier_assign_delivery"
        )

        with pytest.raises(InsufficientCreditsError):
            await service.update_order_status(order.id, "preparing", courier_id=uuid4())

        assert order.courier_id == previous_courier
        assert order.status == "confirmed"
        session.commit.assert_not_awaited()

    @pytest.mark.anyio
    async def test_skipping_ahead_is_rejected(self, service):
        service.orders.get_order.return_value = make_order(status="pending")
        with pytest.raises(ConflictError):
            await service.update_order_status(uuid4(), "delivered")

    @pytest.mark.anyio
    async def test_unknown_status(self, service):
        with pytest.raises(DomainError):
            await service.update_order_status(uuid4(), "teleported")

    @pytest.mark.anyio
    async def test_terminal_orders_cannot_change(self, service):
        service.orders.get_order.return_value = make_order(status="cancelled")
        with pytest.raises(ConflictError):
            await service.update_order_status(uuid4(), "failed")

    @pytest.mark.anyio
    async def test_failed_delivery_notifies_admins(self, service):
        order = make_order(status="out_for_delivery")
        service.orders.get_order.return_value = order

        await service.update_order_status(order.id, "failed")

        service.notifications.create.assert_awaited_once()
        assert service.notifications.create.await_args.kwargs["type"] == "error"

    @pytest.mark.anyio
    async def test_delivered_sets_timestamp(self, service):
        order = make_order(status="out_for_delivery")
        service.orders.get_order.return_value = order
        await service.update_order_status(order.id, "delivered")
        assert order.delivered_at is not None

    @pytest.mark.anyio
    async def test_location_rejected_for_finished_order(self, service):
        service.orders.get_order.return_value = make_order(status="delivered")
        with pytest.raises(ConflictError):
            await service.record_courier_location(uuid4(), DROP_LAT, DROP_LNG)

    @pytest.mark.anyio
    async def test_location_is_stored(self, service):
        order = make_order(status="out_for_delivery")
        service.orders.get_order.return_value = order
        await service.record_courier_location(order.id, NEAR_LAT, DROP_LNG)
        assert (order.courier_lat, order.courier_lng) == (NEAR_LAT, DROP_LNG)
        assert order.courier_location_at is not None

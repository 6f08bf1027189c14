"""Tests for delivery zone matching and checkout validation."""

from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from delivery_api.core.errors import ConflictError, NotFoundError
from delivery_api.services.zones import (
    CLOSED_MESSAGE,
    NO_ZONE_MESSAGE,
    DeliveryZoneService,
    find_zone,
    is_open,
    normalize_zip,
    point_in_polygon,
    validate_checkout,
    validate_polygon,
)

# Roughly downtown Denver, [lng, lat] vertices.
SQUARE = [[-105.0, 39.0], [-104.0, 39.0], [-104.0, 40.0], [-105.0, 40.0]]

MONDAY_NOON = datetime(2025, 1, 6, 12, 0)


def zone(**overrides):
    values = {
        "id": uuid4(),
        "name": "Downtown",
        "polygon": SQUARE,
        "zip_codes": [],
        "delivery_fee": Decimal("5.00"),
        "minimum_order": Decimal("0"),
        "estimated_time_min": 20,
        "estimated_time_max": 40,
        "priority": 0,
        "is_active": True,
        "delivery_hours": {},
    }
    values.update(overrides)
    return values


class TestPointInPolygon:
    def test_inside(self):
        assert point_in_polygon(39.5, -104.5, SQUARE)

    def test_outside(self):
        assert not point_in_polygon(41.0, -104.5, SQUARE)
        assert not point_in_polygon(39.5, -106.0, SQUARE)

    def test_vertex_counts_as_inside(self):
        assert point_in_polygon(39.0, -105.0, SQUARE)

    def test_degenerate_polygon(self):
        assert not point_in_polygon(39.5, -104.5, [[-105.0, 39.0], [-104.0, 40.0]])
        assert not point_in_polygon(39.5, -104.5, [])


class TestNormalizeZip:
    @pytest.mark.parametrize("raw", ["80202", " 80202-1234 ", "802021234"])
    def test_valid_forms(self, raw):
        assert normalize_zip(raw) == "80202"

    @pytest.mark.parametrize("raw", [None, "", "8020", "abcde", "80202-12"])
    def test_invalid_forms(self, raw):
        assert normalize_zip(raw) is None


class TestValidatePolygon:
    def test_valid(self):
        assert validate_polygon(SQUARE) == []

    def test_too_few_points(self):
        assert validate_polygon([[0, 0], [1, 1]]) == ["Polygon must have at least 3 points"]

    def test_out_of_range(self):
        errors = validate_polygon([[-200, 0], [0, 95], [1, 1]])
        assert any("longitude" in e for e in errors)
        assert any("latitude" in e for e in errors)


class TestFindZone:
    def test_polygon_beats_zip_regardless_of_priority(self):
        by_zip = zone(name="Zip", polygon=[], zip_codes=["80202"], priority=10)
        by_polygon = zone(name="Poly", priority=0)
        match = find_zone([by_zip, by_polygon], 39.5, -104.5, "80202")
        assert match.zone["name"] == "Poly"
        assert match.matched_by == "polygon"

    def test_higher_priority_wins_among_overlapping_polygons(self):
        low = zone(name="Low", priority=1)
        high = zone(name="High", priority=5)
        assert find_zone([low, high], 39.5, -104.5, None).zone["name"] == "High"

    def test_zip_fallback(self):
        z = zone(polygon=[], zip_codes=["80202"])
        match = find_zone([z], None, None, "80202-1234")
        assert match.matched_by == "zip"

    def test_inactive_zones_are_ignored(self):
        assert find_zone([zone(is_active=False)], 39.5, -104.5, None) is None


class TestIsOpen:
    def test_no_schedule_is_always_open(self):
        assert is_open(None, MONDAY_NOON)
        assert is_open({"tuesday": {"open": "09:00", "close": "17:00"}}, MONDAY_NOON)

    def test_disabled_day(self):
        assert not is_open({"monday": {"enabled": False}}, MONDAY_NOON)

    def test_regular_hours(self):
        hours = {"monday": {"open": "09:00", "close": "17:00", "enabled": True}}
        assert is_open(hours, MONDAY_NOON)
        assert not is_open(hours, datetime(2025, 1, 6, 17, 0))

    def test_overnight_hours_wrap(self):
        hours = {"monday": {"open": "22:00", "close": "02:00", "enabled": True}}
        assert is_open(hours, datetime(2025, 1, 6, 23, 0))
        assert is_open(hours, datetime(2025, 1, 6, 1, 30))
        assert not is_open(hours, datetime(2025, 1, 6, 3, 0))


class TestValidateCheckout:
    def test_zone_match_returns_fee_and_eta(self):
        result = validate_checkout([zone()], None, lat=39.5, lng=-104.5, subtotal=50)
        assert result.is_valid
        assert result.delivery_fee == Decimal("5.00")
        assert result.zone_name == "Downtown"
        assert (result.estimated_time_min, result.estimated_time_max) == (20, 40)

    def test_no_zone(self):
        result = validate_checkout([zone()], None, lat=45.0, lng=-100.0, subtotal=50)
        assert not result.is_valid
        assert result.error == NO_ZONE_MESSAGE

    def test_minimum_order(self):
        result = validate_checkout([zone(minimum_order=Decimal("25"))], None, lat=39.5, lng=-104.5, subtotal=10)
        assert not result.is_valid
        assert result.error == "Minimum order of $25 required"

    def test_free_delivery_threshold(self):
        result = validate_checkout(
            [zone()], None, lat=39.5, lng=-104.5, subtotal=150, free_delivery_threshold=100
        )
        assert result.is_valid
        assert result.delivery_fee == Decimal("0")

    def test_zone_without_fee_uses_default(self):
        result = validate_checkout(
            [zone(delivery_fee=None)], None, lat=39.5, lng=-104.5, subtotal=20, default_delivery_fee="7.50"
        )
        assert result.delivery_fee == Decimal("7.50")

    def test_zone_with_zero_fee_delivers_free(self):
        result = validate_checkout(
            [zone(delivery_fee=Decimal("0"))], None, lat=39.5, lng=-104.5, subtotal=20, default_delivery_fee="7.50"
        )
        assert result.is_valid
        assert result.delivery_fee == Decimal("0")

    def test_closed_zone(self):
        hours = {"monday": {"open": "18:00", "close": "22:00", "enabled": True}}
        result = validate_checkout([zone(delivery_hours=hours)], None, lat=39.5, lng=-104.5, at=MONDAY_NOON)
        assert not result.is_valid
        assert result.error == CLOSED_MESSAGE

    def test_legacy_zip_list(self):
        legacy = [{"zip_code": "80202", "fee": 4, "min_order": 0}]
        result = validate_checkout([], legacy, zip_code="80202", subtotal=30)
        assert result.is_valid
        assert result.matched_by == "legacy_zip"
        assert result.delivery_fee == Decimal("4")

    def test_legacy_zip_not_served(self):
        legacy = [{"zip_code": "80202", "fee": 4}]
        result = validate_checkout([], legacy, zip_code="80301", subtotal=30)
        assert not result.is_valid
        assert result.error == "We don't currently deliver to zip code 80301"

    def test_no_zones_anywhere_uses_default_fee(self):
        result = validate_checkout([], None, zip_code="80202", subtotal=30, default_delivery_fee=6)
        assert result.is_valid
        assert result.matched_by == "default"
        assert result.delivery_fee == Decimal("6")



class TestDeliveryZoneService:
    @pytest.fixture
    def service(self, session):
        svc = DeliveryZoneService(session)
        svc.repo = AsyncMock()
        svc.stores = AsyncMock()
        return svc

    @pytest.mark.anyio
    async def test_create_rejects_duplicate_name(self, service):
        service.repo.get_zone_by_name.return_value = object()
        with pytest.raises(ConflictError):
            await service.create_zone({"name": "Downtown", "polygon": SQUARE})

    @pytest.mark.anyio
    async def test_toggle_missing_zone(self, service):
        service.repo.get_zone.return_value = None
        with pytest.raises(NotFoundError):
            await service.toggle_zone(uuid4())

    @pytest.mark.anyio
    async def test_validate_address_uses_store_settings(self, service):
        service.repo.list_zones.return_value = []
        service.stores.get_default.return_value = type(
            "Store",
            (),
            {"delivery_zones": None, "free_delivery_threshold": Decimal("0"), "default_delivery_fee": Decimal("3")},
        )()
        result = await service.validate_address(lat=None, lng=None, zip_code="80202", subtotal=Decimal("10"))
        assert result.is_valid
        assert result.delivery_fee == Decimal("3")
        service.repo.list_zones.assert_awaited_once_with(active_only=True)

"""
Delivery zone matching and checkout validation.

Zones are matched by polygon first (GeoJSON [lng, lat] vertex order) and by
ZIP code second. Stores that predate polygon zones keep a legacy ZIP list on
the storefront row; it is only consulted when the tenant has no zones at all.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.errors import ConflictError, NotFoundError
from delivery_api.db.models.delivery import DeliveryZone
from delivery_api.repositories.delivery import DeliveryZoneRepository
from delivery_api.repositories.stores import StoreRepository
from delivery_api.services.base import BaseService

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

NO_ZONE_MESSAGE = "We don't currently deliver to this address"
NO_LEGACY_ZONE_MESSAGE = "We don't currently deliver to zip code {zip}"
MINIMUM_ORDER_MESSAGE = "Minimum order of ${min} required"
CLOSED_MESSAGE = "Delivery is not available at this time"

_ZIP_RE = re.compile(r"^(\d{5})(?:-?\d{4})?$")


@dataclass
class ZoneMatch:
    zone: Any
    matched_by: str


@dataclass
class ZoneValidationResult:
    """Outcome of a checkout address check."""
    is_valid: bool
    zone_id: Optional[UUID] = None
    zone_name: Optional[str] = None
    matched_by: Optional[str] = None
    delivery_fee: Decimal = Decimal("0")
    minimum_order: Decimal = Decimal("0")
    estimated_time_min: Optional[int] = None
    estimated_time_max: Optional[int] = None
    error: Optional[str] = None


def _money(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def _fee_or_default(value: Any, default_fee: Decimal) -> Decimal:
    return default_fee if value is None or value == "" else Decimal(str(value))


def _format_money(value: Decimal) -> str:
    # $25 rather than $25.00, $12.50 stays as is
    if value == value.to_integral_value():
        return str(int(value))
    return f"{value:.2f}"


# PUBLIC_INTERFACE
def point_in_polygon(lat: float, lng: float, polygon: Sequence[Sequence[float]]) -> bool:
    """
    Ray-casting containment test.

    polygon is a list of [lng, lat] vertices; an open ring is closed
    implicitly. A point on a vertex counts as inside.
    """
    if not polygon or len(polygon) < 3:
        return False

    x, y = lng, lat
    inside = False
    n = len(polygon)
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i][0], polygon[i][1]
        xj, yj = polygon[j][0], polygon[j][1]
        if xi == x and yi == y:
            return True
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


# PUBLIC_INTERFACE
def normalize_zip(value: Optional[str]) -> Optional[str]:
    """Return the 5-digit ZIP for '80202', ' 80202-1234 ' or '802021234', else None."""
    if value is None:
        return None
    match = _ZIP_RE.match(str(value).strip())
    return match.group(1) if match else None


# PUBLIC_INTERFACE
def validate_polygon(polygon: Sequence[Sequence[float]]) -> List[str]:
    """Return a list of problems with a zone polygon; empty when it is usable."""
    errors: List[str] = []
    if not polygon or len(polygon) < 3:
        errors.append("Polygon must have at least 3 points")
        return errors
    for idx, point in enumerate(polygon):
        if len(point) != 2:
            errors.append(f"Point {idx} must be a [lng, lat] pair")
            continue
        lng, lat = point
        if not -180 <= lng <= 180:
            errors.append(f"Point {idx} longitude {lng} is out of range")
        if not -90 <= lat <= 90:
            errors.append(f"Point {idx} latitude {lat} is out of range")
    return errors


def _zone_attr(zone: Any, name: str, default: Any = None) -> Any:
    if isinstance(zone, Mapping):
        return zone.get(name, default)
    return getattr(zone, name, default)


# PUBLIC_INTERFACE
def find_zone(
    zones: Iterable[Any],
    lat: Optional[float],
    lng: Optional[float],
    zip_code: Optional[str],
) -> Optional[ZoneMatch]:
    """
    Pick the zone serving an address.

    Active zones are ranked by priority (desc) then name. A polygon hit wins over
    any ZIP hit regardless of rank.
    """
    active = [z for z in zones if _zone_attr(z, "is_active", True)]
    active.sort(key=lambda z: (-int(_zone_attr(z, "priority", 0) or 0), _zone_attr(z, "name", "") or ""))

    if lat is not None and lng is not None:
        for zone in active:
            if point_in_polygon(lat, lng, _zone_attr(zone, "polygon") or []):
                return ZoneMatch(zone=zone, matched_by="polygon")

    normalized = normalize_zip(zip_code)
    if normalized:
        for zone in active:
            zips = {normalize_zip(z) for z in (_zone_attr(zone, "zip_codes") or [])}
            if normalized in zips:
                return ZoneMatch(zone=zone, matched_by="zip")
    return None


# PUBLIC_INTERFACE
def is_open(delivery_hours: Optional[Mapping[str, Any]], at: datetime) -> bool:
    """
    Check zone hours for a moment in time.

    delivery_hours is keyed by lowercase weekday with {open, close, enabled};
    a missing schedule or missing day means always open. A close time earlier
    than the open time wraps past midnight.
    """
    if not delivery_hours:
        return True
    day = delivery_hours.get(WEEKDAYS[at.weekday()])
    if day is None:
        return True
    if isinstance(day, Mapping):
        enabled, open_at, close_at = day.get("enabled", True), day.get("open"), day.get("close")
    else:
        enabled, open_at, close_at = day.enabled, day.open, day.close
    if not enabled:
        return False
    if not open_at or not close_at:
        return True

    now = at.strftime("%H:%M")
    if open_at <= close_at:
        return open_at <= now < close_at
    return now >= open_at or now < close_at


# PUBLIC_INTERFACE
def validate_checkout(
    zones: Sequence[Any],
    legacy_zones: Optional[Sequence[Mapping[str, Any]]],
    *,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    zip_code: Optional[str] = None,
    subtotal: Any = 0,
    free_delivery_threshold: Any = 0,
    default_delivery_fee: Any = 0,
    at: Optional[datetime] = None,
) -> ZoneValidationResult:
    """
    Decide whether an address can be delivered to and at what fee.

    Order of precedence: tenant zones, then the storefront's legacy ZIP list,
    then the storefront default fee when no zones are configured anywhere.
    """
    subtotal_d = _money(subtotal)
    threshold = _money(free_delivery_threshold)
    default_fee = _money(default_delivery_fee)

    if zones:
        match = find_zone(zones, lat, lng, zip_code)
        if match is None:
            return ZoneValidationResult(is_valid=False, error=NO_ZONE_MESSAGE)
        zone = match.zone
        if at is not None and not is_open(_zone_attr(zone, "delivery_hours"), at):
            return ZoneValidationResult(
                is_valid=False,
                zone_id=_zone_attr(zone, "id"),
                zone_name=_zone_attr(zone, "name"),
                matched_by=match.matched_by,
                error=CLOSED_MESSAGE,
            )
        result = ZoneValidationResult(
            is_valid=True,
            zone_id=_zone_attr(zone, "id"),
            zone_name=_zone_attr(zone, "name"),
            matched_by=match.matched_by,
            delivery_fee=_fee_or_default(_zone_attr(zone, "delivery_fee"), default_fee),
            minimum_order=_money(_zone_attr(zone, "minimum_order")),
            estimated_time_min=_zone_attr(zone, "estimated_time_min"),
            estimated_time_max=_zone_attr(zone, "estimated_time_max"),
        )
    elif legacy_zones:
        normalized = normalize_zip(zip_code)
        legacy = next(
            (z for z in legacy_zones if normalized and normalize_zip(str(z.get("zip_code", ""))) == normalized),
            None,
        )
        if legacy is None:
            return ZoneValidationResult(
                is_valid=False,
                error=NO_LEGACY_ZONE_MESSAGE.format(zip=normalized or (zip_code or "").strip()),
            )
        result = ZoneValidationResult(
            is_valid=True,
            matched_by="legacy_zip",
            delivery_fee=_fee_or_default(legacy.get("fee"), default_fee),
            minimum_order=_money(legacy.get("min_order")),
        )
    else:
        result = ZoneValidationResult(is_valid=True, matched_by="default", delivery_fee=default_fee)

    if result.minimum_order > 0 and subtotal_d < result.minimum_order:
        result.is_valid = False
        result.error = MINIMUM_ORDER_MESSAGE.format(min=_format_money(result.minimum_order))
        return result

    if threshold > 0 and subtotal_d >= threshold:
        result.delivery_fee = Decimal("0")
    return result


class DeliveryZoneService(BaseService):
    """Tenant-scoped zone CRUD plus checkout validation against stored zones."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = DeliveryZoneRepository(session)
        self.stores = StoreRepository(session)

    async def list_zones(self) -> List[DeliveryZone]:
        return await self.repo.list_zones()

    async def _get_or_404(self, zone_id: UUID) -> DeliveryZone:
        zone = await self.repo.get_zone(zone_id)
        if zone is None:
            raise NotFoundError("Delivery zone not found")
        return zone

    # PUBLIC_INTERFACE
    async def create_zone(self, values: dict) -> DeliveryZone:
        """Create a zone; names are unique per tenant."""
        if await self.repo.get_zone_by_name(values["name"]):
            raise ConflictError(f"A delivery zone named '{values['name']}' already exists")
        values = dict(values)
        values["zip_codes"] = [z for z in (normalize_zip(v) for v in values.get("zip_codes") or []) if z]
        zone = DeliveryZone(**values)
        await self.repo.add(zone)
        await self.repo.flush()
        await self.session.commit()
        await self.repo.refresh(zone)
        logger.info("Created delivery zone %s", zone.id)
        return zone

    # PUBLIC_INTERFACE
    async def update_zone(self, zone_id: UUID, values: dict) -> DeliveryZone:
        zone = await self._get_or_404(zone_id)
        if "name" in values and values["name"] != zone.name and await self.repo.get_zone_by_name(values["name"]):
            raise ConflictError(f"A delivery zone named '{values['name']}' already exists")
        if "zip_codes" in values and values["zip_codes"] is not None:
            values["zip_codes"] = [z for z in (normalize_zip(v) for v in values["zip_codes"]) if z]
        for key, value in values.items():
            setattr(zone, key, value)
        await self.session.commit()
        await self.repo.refresh(zone)
        return zone

    async def toggle_zone(self, zone_id: UUID) -> DeliveryZone:
        zone = await self._get_or_404(zone_id)
        zone.is_active = not zone.is_active
        await self.session.commit()
        await self.repo.refresh(zone)
        return zone

    async def delete_zone(self, zone_id: UUID) -> None:
        zone = await self._get_or_404(zone_id)
        await self.repo.delete(zone)
        await self.session.commit()
        logger.info("Deleted delivery zone %s", zone_id)

    # PUBLIC_INTERFACE
    async def validate_address(
        self,
        *,
        lat: Optional[float],
        lng: Optional[float],
        zip_code: Optional[str],
        subtotal: Decimal,
        store_slug: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> ZoneValidationResult:
        """Validate a checkout address against the tenant's zones and storefront settings."""
        zones = await self.repo.list_zones(active_only=True)
        if store_slug:
            store = await self.stores.get_by_slug(store_slug)
        else:
            store = await self.stores.get_default()
        return validate_checkout(
            zones,
            store.delivery_zones if store else None,
            lat=lat,
            lng=lng,
            zip_code=zip_code,
            subtotal=subtotal,
            free_delivery_threshold=store.free_delivery_threshold if store else 0,
            default_delivery_fee=store.default_delivery_fee if store else 0,
            at=at,
        )

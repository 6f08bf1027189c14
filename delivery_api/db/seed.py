"""
Database seeding utilities for a demo tenant.

Seeds:
- Demo tenant (slug from DEFAULT_TENANT_SLUG)
- Roles (admin, courier, catalog:manage, delivery:manage, billing:manage)
- Owner account admin@example.com / ChangeMe123!
- Storefront with a legacy ZIP zone list
- One polygon delivery zone and a few catalog products
- Credit ledger with the free-tier starting balance

Usage:
  python -m delivery_api.db.run_migrations upgrade head
  python -m delivery_api.db.seed
"""

from __future__ import annotations

import asyncio
import json
import logging
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.security import get_password_hash
from delivery_api.core.settings import get_app_settings
from delivery_api.db.session import get_async_session, set_current_tenant, tenant_context

logger = logging.getLogger(__name__)

DEMO_ROLES = [
    ("admin", "Administrator"),
    ("courier", "Delivery courier"),
    ("catalog:manage", "Manage products and imports"),
    ("delivery:manage", "Manage zones and orders"),
    ("billing:manage", "Purchase credits and manage subscriptions"),
]

DEMO_ADMIN_EMAIL = "admin@example.com"
DEMO_ADMIN_PASSWORD = "ChangeMe123!"

# Roughly downtown Denver, [lng, lat]
DEMO_ZONE_POLYGON = [
    [-105.01, 39.72],
    [-104.96, 39.72],
    [-104.96, 39.76],
    [-105.01, 39.76],
]

DEMO_PRODUCTS = [
    ("Blue Dream 3.5g", "BD-35", "Kind Farms", "flower", "hybrid", 21.5, 35.00),
    ("Sour Diesel Pre-Roll", "SD-PR1", "Kind Farms", "pre-roll", "sativa", 19.0, 12.00),
    ("Granddaddy Purple Cart", "GDP-CART", "Cloud Co", "vape", "indica", 82.0, 45.00),
]


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with a demo tenant.

    Every step is idempotent so the seed can run on each startup when AUTO_SEED is set.
    """
    settings = get_app_settings()
    async for session in get_async_session():
        tenant_id = await _ensure_tenant(session, name="Demo Dispensary", slug=settings.DEFAULT_TENANT_SLUG)
        async with tenant_context(session, tenant_id):
            await _seed_security(session)
            await _seed_store(session, slug=settings.DEFAULT_TENANT_SLUG)
            await _seed_zone(session)
            await _seed_products(session)
            await _seed_credits(session, settings.FREE_TIER_STARTING_CREDITS)

        await session.commit()
        logger.info("Seeded tenant %s (%s)", settings.DEFAULT_TENANT_SLUG, tenant_id)


async def _ensure_tenant(session: AsyncSession, name: str, slug: str) -> UUID:
    """
    Ensure a tenant row exists. RLS on tenants requires setting app.tenant_id
    to the same id being inserted (WITH CHECK id = current_setting()).
    """
    res = await session.execute(text("SELECT tenant_id_for_slug(:slug)"), {"slug": slug})
    existing = res.scalar_one_or_none()
    if existing:
        return existing

    tenant_id = uuid4()
    await set_current_tenant(session, tenant_id)
    await session.execute(
        text("INSERT INTO tenants (id, name, slug) VALUES (:id, :name, :slug) ON CONFLICT (slug) DO NOTHING"),
        {"id": str(tenant_id), "name": name, "slug": slug},
    )
    res = await session.execute(text("SELECT tenant_id_for_slug(:slug)"), {"slug": slug})
    row = res.scalar_one_or_none()
    if not row:
        raise RuntimeError("Failed to create or load demo tenant")
    return row


async def _seed_security(session: AsyncSession) -> None:
    """Seed roles and an owner account holding the admin role."""
    for name, desc in DEMO_ROLES:
        await session.execute(
            text(
                """
                INSERT INTO roles (name, description)
                VALUES (:name, :desc)
                ON CONFLICT ON CONSTRAINT uq_roles_tenant_name DO NOTHING
                """
            ),
            {"name": name, "desc": desc},
        )

    res = await session.execute(text("SELECT id FROM users WHERE email = :email"), {"email": DEMO_ADMIN_EMAIL})
    user_id = res.scalar_one_or_none()
    if user_id is None:
        inserted = await session.execute(
            text(
                """
                INSERT INTO users (email, full_name, hashed_password)
                VALUES (:email, 'Demo Owner', :pw)
                RETURNING id
                """
            ),
            {"email": DEMO_ADMIN_EMAIL, "pw": get_password_hash(DEMO_ADMIN_PASSWORD)},
        )
        user_id = inserted.scalar_one()

    await session.execute(
        text(
            """
            INSERT INTO user_roles (user_id, role_id)
            SELECT :uid, id FROM roles WHERE name = 'admin'
            ON CONFLICT ON CONSTRAINT uq_user_roles_tenant_user_role DO NOTHING
            """
        ),
        {"uid": str(user_id)},
    )


async def _seed_store(session: AsyncSession, slug: str) -> None:
    legacy_zones = [
        {"zip_code": "80202", "fee": 5, "min_order": 25},
        {"zip_code": "80205", "fee": 8, "min_order": 40},
    ]
    await session.execute(
        text(
            """
            INSERT INTO stores (slug, store_name, free_delivery_threshold, default_delivery_fee, delivery_zones)
            VALUES (:slug, 'Demo Dispensary', 100, 5, CAST(:zones AS jsonb))
            ON CONFLICT ON CONSTRAINT uq_stores_tenant_slug DO NOTHING
            """
        ),
        {"slug": slug, "zones": json.dumps(legacy_zones)},
    )


async def _seed_zone(session: AsyncSession) -> None:
    await session.execute(
        text(
            """
            INSERT INTO delivery_zones (name, polygon, zip_codes, delivery_fee, minimum_order, priority)
            VALUES ('Downtown', CAST(:polygon AS jsonb), CAST(:zips AS jsonb), 5, 25, 10)
            ON CONFLICT ON CONSTRAINT uq_delivery_zones_tenant_name DO NOTHING
            """
        ),
        {"polygon": json.dumps(DEMO_ZONE_POLYGON), "zips": json.dumps(["80202", "80203"])},
    )


async def _seed_products(session: AsyncSession) -> None:
    for name, sku, brand, category, strain, thc, price in DEMO_PRODUCTS:
        res = await session.execute(text("SELECT id FROM products WHERE sku = :sku"), {"sku": sku})
        if res.first():
            continue
        await session.execute(
            text(
                """
                INSERT INTO products (name, sku, brand, category, strain_type, thc_percent, price)
                VALUES (:name, :sku, :brand, :category, :strain, :thc, :price)
                """
            ),
            {
                "name": name,
                "sku": sku,
                "brand": brand,
                "category": category,
                "strain": strain,
                "thc": thc,
                "price": price,
            },
        )


async def _seed_credits(session: AsyncSession, starting_balance: int) -> None:
    await session.execute(
        text(
            """
            INSERT INTO tenant_credits (balance, lifetime_earned)
            VALUES (:bal, :bal)
            ON CONFLICT ON CONSTRAINT uq_tenant_credits_tenant_id DO NOTHING
            """
        ),
        {"bal": starting_balance},
    )


# PUBLIC_INTERFACE
def main() -> None:
    """Entrypoint to run the asynchronous seeding."""
    asyncio.run(seed_all())


if __name__ == "__main__":
    main()

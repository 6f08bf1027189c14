"""Delivery, catalog, and credit ledger schema.

Adds tenant-scoped tables with UUID PKs, timestamps, indexes, and RLS policies:
- Delivery: delivery_zones, orders (with per-stage notification flags)
- Catalog: products
- Credits: tenant_credits, credit_transactions, credit_grants, credit_subscriptions
- Billing: subscription_events
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "8d41f0c6a9e7"
down_revision: Union[str, None] = "3c5a7e91b2d4"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TENANT_DEFAULT = sa.text("NULLIF(current_setting('app.tenant_id', true), '')::uuid")
UUID_DEFAULT = sa.text("uuid_generate_v4()")
NOW = sa.text("now()")

JSONB_EMPTY = sa.text("'{}'::jsonb")
JSONB_EMPTY_LIST = sa.text("'[]'::jsonb")
FALSE = sa.text("false")

NOTIFICATION_STAGES = [
    "order_confirmed",
    "courier_assigned",
    "order_picked_up",
    "en_route",
    "ten_minutes_away",
    "five_minutes_away",
    "arriving",
    "delivered",
]

TABLES = [
    "delivery_zones",
    "orders",
    "products",
    "tenant_credits",
    "credit_transactions",
    "credit_grants",
    "credit_subscriptions",
    "subscription_events",
]


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("tenant_id", sa.UUID(), nullable=False, server_default=TENANT_DEFAULT),
    ]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
    ]


def _enable_rls_with_policy(table: str) -> None:
    op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;")
    op.execute(
        f"""
        CREATE POLICY {table}_tenant_isolation ON {table}
        USING (tenant_id = NULLIF(current_setting('app.tenant_id', true), '')::uuid)
        WITH CHECK (tenant_id = NULLIF(current_setting('app.tenant_id', true), '')::uuid);
        """
    )


def upgrade() -> None:
    # DELIVERY
    op.create_table(
        "delivery_zones",
        *_base_columns(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("color", sa.Text(), server_default="#3b82f6", nullable=False),
        sa.Column("polygon", JSONB(), server_default=JSONB_EMPTY_LIST, nullable=False),
        sa.Column("zip_codes", JSONB(), server_default=JSONB_EMPTY_LIST, nullable=False),
        sa.Column("delivery_fee", sa.Numeric(12, 2), nullable=True),
        sa.Column("minimum_order", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("estimated_time_min", sa.Integer(), server_default="30", nullable=False),
        sa.Column("estimated_time_max", sa.Integer(), server_default="60", nullable=False),
        sa.Column("priority", sa.Integer(), server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("delivery_hours", JSONB(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("tenant_id", "name", name="uq_delivery_zones_tenant_name"),
        sa.Index("ix_delivery_zones_tenant_active", "tenant_id", "is_active"),
    )

    op.create_table(
        "orders",
        *_base_columns(),
        sa.Column("order_number", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("customer_id", sa.UUID(), nullable=True),
        sa.Column("customer_name", sa.Text(), nullable=True),
        sa.Column("customer_phone", sa.Text(), nullable=True),
        sa.Column("customer_email", sa.Text(), nullable=True),
        sa.Column("delivery_address", sa.Text(), nullable=True),
        sa.Column("delivery_zip", sa.Text(), nullable=True),
        sa.Column("delivery_lat", sa.Float(), nullable=True),
        sa.Column("delivery_lng", sa.Float(), nullable=True),
        sa.Column("zone_id", sa.UUID(), nullable=True),
        sa.Column("courier_id", sa.UUID(), nullable=True),
        sa.Column("courier_lat", sa.Float(), nullable=True),
        sa.Column("courier_lng", sa.Float(), nullable=True),
        sa.Column("courier_location_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("delivery_fee", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("total", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        *[sa.Column(f"{stage}_sent", sa.Boolean(), server_default=FALSE, nullable=False) for stage in NOTIFICATION_STAGES],
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["customer_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["courier_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["zone_id"], ["delivery_zones.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_order_number"),
        sa.Index("ix_orders_tenant_status", "tenant_id", "status"),
        sa.Index("ix_orders_tenant_created_at", "tenant_id", "created_at"),
    )

    # CATALOG
    op.create_table(
        "products",
        *_base_columns(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("sku", sa.Text(), nullable=True),
        sa.Column("brand", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("strain_type", sa.Text(), nullable=True),
        sa.Column("thc_percent", sa.Numeric(6, 2), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", JSONB(), server_default=JSONB_EMPTY_LIST, nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.Index("ix_products_tenant_sku", "tenant_id", "sku"),
        sa.Index("ix_products_tenant_name", "tenant_id", "name"),
    )

    # CREDITS
    op.create_table(
        "tenant_credits",
        *_base_columns(),
        sa.Column("balance", sa.Integer(), server_default="0", nullable=False),
        sa.Column("lifetime_earned", sa.Integer(), server_default="0", nullable=False),
        sa.Column("lifetime_spent", sa.Integer(), server_default="0", nullable=False),
        sa.Column("credits_used_today", sa.Integer(), server_default="0", nullable=False),
        sa.Column("credits_used_this_week", sa.Integer(), server_default="0", nullable=False),
        sa.Column("credits_used_this_month", sa.Integer(), server_default="0", nullable=False),
        sa.Column("tier_status", sa.Text(), server_default="free", nullable=False),
        sa.Column("is_free_tier", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("warning_levels_sent", JSONB(), server_default=JSONB_EMPTY_LIST, nullable=False),
        sa.Column("last_daily_reset", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("last_weekly_reset", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("last_monthly_reset", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("tenant_id", name="uq_tenant_credits_tenant_id"),
        sa.CheckConstraint("balance >= 0", name="ck_tenant_credits_balance_non_negative"),
    )

    op.create_table(
        "credit_transactions",
        *_base_columns(),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.Text(), nullable=False),
        sa.Column("action_type", sa.Text(), nullable=True),
        sa.Column("reference_id", sa.Text(), nullable=True),
        sa.Column("reference_type", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("details", JSONB(), server_default=JSONB_EMPTY, nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.Index("ix_credit_transactions_tenant_created_at", "tenant_id", "created_at"),
        sa.Index("ix_credit_transactions_reference", "tenant_id", "reference_type", "reference_id"),
    )

    op.create_table(
        "credit_grants",
        *_base_columns(),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("grant_type", sa.Text(), nullable=False),
        sa.Column("promo_code", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("granted_by", sa.UUID(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "credit_subscriptions",
        *_base_columns(),
        sa.Column("stripe_price_id", sa.Text(), nullable=False),
        sa.Column("stripe_subscription_id", sa.Text(), nullable=True, unique=True),
        sa.Column("checkout_session_id", sa.Text(), nullable=True),
        sa.Column("monthly_credits", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
    )

    # BILLING
    op.create_table(
        "subscription_events",
        *_base_columns(),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("stripe_event_id", sa.Text(), nullable=True, unique=True),
        sa.Column("details", JSONB(), server_default=JSONB_EMPTY, nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
    )

    for tbl in TABLES:
        _enable_rls_with_policy(tbl)


def downgrade() -> None:
    for tbl in TABLES:
        op.execute(f"DROP POLICY IF EXISTS {tbl}_tenant_isolation ON {tbl};")
        op.execute(f"ALTER TABLE {tbl} DISABLE ROW LEVEL SECURITY;")

    for tbl in reversed(TABLES):
        op.drop_table(tbl)

"""Initial base schema with multi-tenancy and RLS.

- tenants
- users
- roles
- user_roles
- stores
- notifications

Also creates helper functions:
- set_tenant_id(uuid) sets the app.tenant_id GUC
- tenant_id_for_slug(text), tenant_id_for_stripe_customer(text) and
  list_tenant_ids() are SECURITY DEFINER lookups used by signup, the Stripe
  webhook and background jobs, which run before a tenant context exists.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c5a7e91b2d4"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TENANT_DEFAULT = sa.text("NULLIF(current_setting('app.tenant_id', true), '')::uuid")
TENANT_MATCH = "NULLIF(current_setting('app.tenant_id', true), '')::uuid"
UUID_DEFAULT = sa.text("uuid_generate_v4()")
NOW = sa.text("now()")


def upgrade() -> None:
    # Extensions
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp";')

    # Helper function to set tenant in the current session
    op.execute(
        """
        CREATE OR REPLACE FUNCTION set_tenant_id(p_tenant_id uuid)
        RETURNS void AS $$
        BEGIN
            PERFORM set_config('app.tenant_id', p_tenant_id::text, false);
        END;
        $$ LANGUAGE plpgsql;
        """
    )

    # Tenants
    op.create_table(
        "tenants",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("is_free_tier", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("credits_enabled", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("subscription_status", sa.Text(), server_default="free", nullable=False),
        sa.Column("stripe_customer_id", sa.Text(), nullable=True),
        sa.Column("stripe_subscription_id", sa.Text(), nullable=True),
        sa.Column("grace_period_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_converted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("settings", sa.dialects.postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Index("ix_tenants_stripe_customer_id", "stripe_customer_id"),
    )

    # Users
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("tenant_id", sa.UUID(), nullable=False, server_default=TENANT_DEFAULT),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("hashed_password", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )

    # Roles
    op.create_table(
        "roles",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("tenant_id", sa.UUID(), nullable=False, server_default=TENANT_DEFAULT),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("tenant_id", "name", name="uq_roles_tenant_name"),
    )

    # Association: user_roles
    op.create_table(
        "user_roles",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("tenant_id", sa.UUID(), nullable=False, server_default=TENANT_DEFAULT),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("role_id", sa.UUID(), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("tenant_id", "user_id", "role_id", name="uq_user_roles_tenant_user_role"),
    )

    # Storefronts
    op.create_table(
        "stores",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("tenant_id", sa.UUID(), nullable=False, server_default=TENANT_DEFAULT),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("store_name", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("free_delivery_threshold", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("default_delivery_fee", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("delivery_zones", sa.dialects.postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("purchase_limits", sa.dialects.postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("tenant_id", "slug", name="uq_stores_tenant_slug"),
    )

    # Notifications
    op.create_table(
        "notifications",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("tenant_id", sa.UUID(), nullable=False, server_default=TENANT_DEFAULT),
        sa.Column("user_id", sa.UUID(), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), server_default="info", nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=True),
        sa.Column("entity_id", sa.UUID(), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.Index("ix_notifications_tenant_created_at", "tenant_id", "created_at"),
    )

    # Lookups that must see across tenants
    op.execute(
        """
        CREATE OR REPLACE FUNCTION tenant_id_for_slug(p_slug text)
        RETURNS uuid AS $$
            SELECT id FROM tenants WHERE slug = p_slug;
        $$ LANGUAGE sql STABLE SECURITY DEFINER;
        """
    )
    op.execute(
        """
        CREATE OR REPLACE FUNCTION tenant_id_for_stripe_customer(p_customer_id text)
        RETURNS uuid AS $$
            SELECT id FROM tenants WHERE stripe_customer_id = p_customer_id LIMIT 1;
        $$ LANGUAGE sql STABLE SECURITY DEFINER;
        """
    )
    op.execute(
        """
        CREATE OR REPLACE FUNCTION list_tenant_ids()
        RETURNS SETOF uuid AS $$
            SELECT id FROM tenants ORDER BY created_at;
        $$ LANGUAGE sql STABLE SECURITY DEFINER;
        """
    )

    # Enable RLS and add policies
    # Tenants table
    op.execute("ALTER TABLE tenants ENABLE ROW LEVEL SECURITY;")
    op.execute(
        f"""
        CREATE POLICY tenant_row_access ON tenants
        USING (id = {TENANT_MATCH})
        WITH CHECK (id = {TENANT_MATCH});
        """
    )

    # Tenant-scoped tables
    for tbl in ["users", "roles", "user_roles", "stores", "notifications"]:
        op.execute(f"ALTER TABLE {tbl} ENABLE ROW LEVEL SECURITY;")
        op.execute(
            f"""
            CREATE POLICY {tbl}_tenant_isolation ON {tbl}
            USING (tenant_id = {TENANT_MATCH})
            WITH CHECK (tenant_id = {TENANT_MATCH});
            """
        )


def downgrade() -> None:
    # Drop RLS policies
    op.execute("DROP POLICY IF EXISTS tenant_row_access ON tenants;")
    for tbl in ["users", "roles", "user_roles", "stores", "notifications"]:
        op.execute(f"DROP POLICY IF EXISTS {tbl}_tenant_isolation ON {tbl};")
        op.execute(f"ALTER TABLE {tbl} DISABLE ROW LEVEL SECURITY;")

    op.execute("ALTER TABLE tenants DISABLE ROW LEVEL SECURITY;")

    op.execute("DROP FUNCTION IF EXISTS list_tenant_ids();")
    op.execute("DROP FUNCTION IF EXISTS tenant_id_for_stripe_customer(text);")
    op.execute("DROP FUNCTION IF EXISTS tenant_id_for_slug(text);")

    # Drop tables in reverse dependency order
    op.drop_table("notifications")
    op.drop_table("stores")
    op.drop_table("user_roles")
    op.drop_table("roles")
    op.drop_table("users")
    op.drop_table("tenants")

    op.execute("DROP FUNCTION IF EXISTS set_tenant_id(uuid);")

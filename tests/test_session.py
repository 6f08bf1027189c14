"""Tests for tenant context handling on database sessions."""

from uuid import uuid4

import pytest

from delivery_api.db.session import set_current_tenant, tenant_context

pytestmark = pytest.mark.anyio


async def test_set_current_tenant_uses_transaction_local_guc(session):
    tenant_id = uuid4()
    await set_current_tenant(session, tenant_id)

    assert session.info["tenant_id"] == str(tenant_id)
    statement, params = session.execute.await_args.args
    assert "set_config('app.tenant_id', :tenant_id, true)" in str(statement)
    assert params == {"tenant_id": str(tenant_id)}


async def test_clearing_tenant_sends_empty_string(session):
    await set_current_tenant(session, None)
    assert session.info["tenant_id"] is None
    assert session.execute.await_args.args[1] == {"tenant_id": ""}


async def test_nested_contexts_restore_outer_tenant(session):
    outer, inner = uuid4(), uuid4()
    async with tenant_context(session, outer):
        async with tenant_context(session, inner):
            assert session.info["tenant_id"] == str(inner)
        assert session.info["tenant_id"] == str(outer)
    assert session.info["tenant_id"] is None


async def test_error_rolls_back_and_resets(session):
    with pytest.raises(ValueError):
        async with tenant_context(session, uuid4()):
            raise ValueError("boom")
    session.rollback.assert_awaited_once()
    assert session.info["tenant_id"] is None


def test_package_registers_domain_tables():
    from delivery_api import db

    assert db.tenant_context is tenant_context
    tables = set(db.Base.metadata.tables)
    assert {"tenants", "delivery_zones", "orders", "tenant_credits", "subscription_events"} <= tables

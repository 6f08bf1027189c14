"""Tests for tenant signup."""

from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from delivery_api.core.errors import ConflictError, DomainError, NotFoundError
from delivery_api.core.security import decode_token
from delivery_api.services import tenants as tenants_module
from delivery_api.services.tenants import TenantService, slugify

GOOD_PASSWORD = "Str0ng!Passw0rd"


@pytest.mark.parametrize(
    "value,expected",
    [
        ("Mile High Deliveries", "mile-high-deliveries"),
        ("  Joe's   Pizza & Co. ", "joe-s-pizza-co"),
        ("---", ""),
    ],
)
def test_slugify(value, expected):
    assert slugify(value) == expected


@pytest.fixture
def security(monkeypatch):
    repo = AsyncMock()
    repo.create_user.return_value = SimpleNamespace(id=uuid4())
    repo.ensure_role.return_value = SimpleNamespace(id=uuid4())
    monkeypatch.setattr(tenants_module, "SecurityRepository", lambda session: repo)
    monkeypatch.setattr(tenants_module, "get_password_hash", lambda password: "hashed")
    return repo


@pytest.fixture
def credits(monkeypatch):
    svc = AsyncMock()
    svc.repo = AsyncMock()
    monkeypatch.setattr(tenants_module, "CreditService", lambda session, settings=None: svc)
    return svc


@pytest.fixture
def service(session, settings):
    svc = TenantService(session, settings=settings)
    svc.repo = AsyncMock()
    svc.repo.tenant_id_for_slug.return_value = None
    svc.repo.create.side_effect = lambda tenant_id, name, slug: SimpleNamespace(id=tenant_id, name=name, slug=slug)
    return svc


class TestSignup:
    @pytest.mark.anyio
    async def test_creates_tenant_owner_and_credits(self, service, session, security, credits, settings):
        result = await service.signup_tenant(
            business_name="Mile High Deliveries", owner_email="owner@example.com", owner_password=GOOD_PASSWORD
        )

        assert result.tenant.slug == "mile-high-deliveries"
        assert result.user_id == security.create_user.return_value.id
        security.assign_role_to_user.assert_awaited_once()
        credits.repo.create_ledger.assert_awaited_once_with(balance=0)
        credits.grant_free_credits.assert_awaited_once_with(
            settings.FREE_TIER_STARTING_CREDITS, grant_type="signup_bonus", commit=False
        )
        claims = decode_token(result.access_token)
        assert claims["tenant_id"] == str(result.tenant.id)
        assert claims["roles"] == ["admin"]
        assert session.commit.await_count == 2
        assert session.info["tenant_id"] is None

    @pytest.mark.anyio
    async def test_explicit_slug(self, service, security, credits):
        result = await service.signup_tenant(
            business_name="Anything", owner_email="o@example.com", owner_password=GOOD_PASSWORD, slug="My Shop"
        )
        assert result.tenant.slug == "my-shop"

    @pytest.mark.anyio
    async def test_weak_password(self, service):
        with pytest.raises(DomainError) as exc_info:
            await service.signup_tenant(business_name="Shop", owner_email="o@example.com", owner_password="weak")
        assert exc_info.value.details["errors"]
        service.repo.create.assert_not_awaited()

    @pytest.mark.anyio
    async def test_explicit_slug_taken(self, service):
        service.repo.tenant_id_for_slug.return_value = uuid4()
        with pytest.raises(ConflictError):
            await service.signup_tenant(
                business_name="Shop", owner_email="o@example.com", owner_password=GOOD_PASSWORD, slug="shop"
            )
        service.repo.create.assert_not_awaited()

    @pytest.mark.anyio
    async def test_derived_slug_taken_gets_suffix(self, service, security, credits, monkeypatch):
        monkeypatch.setattr(tenants_module.time, "time", lambda: 1700000000.5)
        service.repo.tenant_id_for_slug.side_effect = [uuid4(), None]

        result = await service.signup_tenant(
            business_name="Shop", owner_email="o@example.com", owner_password=GOOD_PASSWORD
        )

        assert result.tenant.slug == "shop-1700000000500"

    @pytest.mark.anyio
    async def test_derived_slug_falls_back_to_random_suffix(self, service, security, credits):
        service.repo.tenant_id_for_slug.return_value = uuid4()

        result = await service.signup_tenant(
            business_name="Shop", owner_email="o@example.com", owner_password=GOOD_PASSWORD
        )

        assert service.repo.tenant_id_for_slug.await_count == tenants_module.SLUG_ATTEMPTS
        prefix, suffix = result.tenant.slug.rsplit("-", 1)
        assert prefix == "shop"
        assert len(suffix) == 8
        int(suffix, 16)

    @pytest.mark.anyio
    async def test_unusable_name(self, service):
        with pytest.raises(DomainError):
            await service.signup_tenant(business_name="!!!", owner_email="o@example.com", owner_password=GOOD_PASSWORD)

    @pytest.mark.anyio
    async def test_failure_removes_tenant(self, service, session, security, credits):
        security.create_user.side_effect = RuntimeError("duplicate email")
        created = SimpleNamespace(id=uuid4())
        service.repo.get_by_id.return_value = created

        with pytest.raises(RuntimeError):
            await service.signup_tenant(business_name="Shop", owner_email="o@example.com", owner_password=GOOD_PASSWORD)

        session.rollback.assert_awaited()
        service.repo.delete.assert_awaited_once_with(created)


class TestLookupBySlug:
    @pytest.mark.anyio
    async def test_resolves_under_the_tenant(self, service, session):
        tenant_id = uuid4()
        service.repo.tenant_id_for_slug.return_value = tenant_id
        service.repo.get_by_id.return_value = SimpleNamespace(id=tenant_id, name="Shop", slug="shop")

        tenant = await service.get_tenant_by_slug("Shop")

        assert tenant.id == tenant_id
        service.repo.tenant_id_for_slug.assert_awaited_once_with("shop")
        service.repo.get_by_id.assert_awaited_once_with(tenant_id)
        assert session.info["tenant_id"] is None

    @pytest.mark.anyio
    async def test_unknown_slug(self, service):
        with pytest.raises(NotFoundError):
            await service.get_tenant_by_slug("nobody")
        service.repo.get_by_id.assert_not_awaited()

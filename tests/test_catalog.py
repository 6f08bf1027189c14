"""Tests for catalog creation and deduplicating import."""

from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from delivery_api.core.errors import InsufficientCreditsError
from delivery_api.db.models.catalog import Product
from delivery_api.services.catalog import PRODUCT_FIELDS, CatalogService

pytestmark = pytest.mark.anyio


def stored_product(**values):
    data = {name: None for name in PRODUCT_FIELDS}
    data["tags"] = []
    data.update(values)
    return SimpleNamespace(id=uuid4(), **data)


@pytest.fixture
def credits():
    return AsyncMock()


@pytest.fixture
def service(session, credits):
    svc = CatalogService(session, credits=credits)
    svc.repo = AsyncMock()
    return svc


async def test_create_product_charges_credits(service, session, credits):
    product = await service.create_product({"name": "Blue Dream", "brand": "Acme", "unknown": "ignored"})

    assert isinstance(product, Product)
    assert product.name == "Blue Dream"
    credits.consume_credits.assert_awaited_once_with("product_add", reference_type="product", commit=False)
    session.commit.assert_awaited_once()


async def test_create_product_without_credits(service, session, credits):
    credits.consume_credits.side_effect = InsufficientCreditsError(balance=0, cost=10, action_key="product_add")
    with pytest.raises(InsufficientCreditsError):
        await service.create_product({"name": "Blue Dream"})
    service.repo.add.assert_not_awaited()
    session.commit.assert_not_awaited()


async def test_dry_run_writes_nothing(service, session, credits):
    service.repo.list_all.return_value = [stored_product(name="Blue Dream", brand="Acme")]

    report = await service.import_products([{"name": "Blue Dream", "brand": "Acme"}, {"name": "Sour Diesel"}], dry_run=True)

    assert len(report.merged) == 1
    assert len(report.created) == 1
    credits.consume_credits.assert_not_awaited()
    session.commit.assert_not_awaited()


async def test_import_merges_and_creates(service, session, credits):
    existing = stored_product(name="Blue Dream", brand="Acme", price=None)
    service.repo.list_all.return_value = [existing]
    service.repo.get_product.return_value = existing

    report = await service.import_products(
        [{"name": "Blue Dream", "brand": "Acme", "price": 30, "tags": ["sativa"]}, {"name": "Sour Diesel"}]
    )

    credits.consume_credits.assert_awaited_once_with(
        "product_bulk_import", reference_type="product_import", commit=False
    )
    assert existing.price == 30
    assert existing.tags == ["sativa"]
    added = service.repo.add.await_args.args[0]
    assert isinstance(added, Product)
    assert added.name == "Sour Diesel"
    assert len(report.created) == 1
    session.commit.assert_awaited_once()


async def test_find_duplicates_scans_catalog_by_default(service):
    service.repo.list_all.return_value = [
        stored_product(name="Blue Dream", brand="Acme"),
        stored_product(name="blue dream", brand="ACME"),
    ]
    matches = await service.find_duplicates()
    assert len(matches) == 1
    assert matches[0].action == "merge"

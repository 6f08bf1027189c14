from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.errors import NotFoundError
from delivery_api.db.models.catalog import Product
from delivery_api.repositories.catalog import ProductRepository
from delivery_api.services.base import BaseService
from delivery_api.services.credits import CreditService
from delivery_api.services.dedup import DEFAULT_THRESHOLD, DedupReport, DuplicateMatch, dedupe_import, find_duplicates

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ("name", "sku", "brand", "category", "strain_type", "thc_percent", "price", "description", "tags")


def product_to_dict(product: Product) -> Dict[str, Any]:
    data = {f: getattr(product, f) for f in PRODUCT_FIELDS}
    data["id"] = product.id
    return data


class CatalogService(BaseService):
    """Product listing, creation and deduplicating bulk import."""

    def __init__(self, session: AsyncSession, *, credits: Optional[CreditService] = None) -> None:
        super().__init__(session)
        self.repo = ProductRepository(session)
        self.credits = credits or CreditService(session)

    # PUBLIC_INTERFACE
    async def list_products(
        self, *, search: Optional[str] = None, active_only: bool = False, limit: int = 100, offset: int = 0
    ) -> List[Product]:
        return await self.repo.list_products(search=search, active_only=active_only, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def create_product(self, values: Dict[str, Any]) -> Product:
        """Create one product, charging the product_add credit cost."""
        await self.credits.consume_credits("product_add", reference_type="product", commit=False)
        product = Product(**{k: v for k, v in values.items() if k in PRODUCT_FIELDS})
        await self.repo.add(product)
        await self.repo.flush()
        await self.session.commit()
        return product

    # PUBLIC_INTERFACE
    async def import_products(
        self, rows: Sequence[Dict[str, Any]], *, threshold: float = DEFAULT_THRESHOLD, dry_run: bool = False
    ) -> DedupReport:
        """
        Import rows against the current catalog.

        High-confidence duplicates are merged into the existing product, rows
        in the review band are returned untouched, everything else is created.
        A dry run plans the import without writing or charging credits.
        """
        existing = [product_to_dict(p) for p in await self.repo.list_all()]
        report = dedupe_import(rows, existing, threshold=threshold)
        if dry_run:
            return report

        await self.credits.consume_credits("product_bulk_import", reference_type="product_import", commit=False)
        by_id = {p["id"]: p for p in existing}
        for merged in report.merged:
            product = await self.repo.get_product(merged["id"])
            if product is None:
                raise NotFoundError(f"Product {merged['id']} disappeared during import")
            for name in PRODUCT_FIELDS:
                if merged.get(name) != by_id[merged["id"]].get(name):
                    setattr(product, name, merged.get(name))
        for created in report.created:
            await self.repo.add(Product(**{k: v for k, v in created.items() if k in PRODUCT_FIELDS}))
        await self.repo.flush()
        await self.session.commit()

        logger.info(
            "Product import: %d created, %d merged, %d for review, %d skipped",
            len(report.created),
            len(report.merged),
            len(report.review),
            report.skipped,
        )
        return report

    # PUBLIC_INTERFACE
    async def find_duplicates(
        self, rows: Optional[Sequence[Dict[str, Any]]] = None, *, threshold: float = DEFAULT_THRESHOLD
    ) -> List[DuplicateMatch]:
        """Scan the given rows, or the whole catalog when none are given."""
        if rows is None:
            rows = [product_to_dict(p) for p in await self.repo.list_all()]
        return find_duplicates(rows, threshold=threshold)

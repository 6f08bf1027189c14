from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.deps import get_current_active_user, get_tenant_session, require_roles
from delivery_api.schemas.catalog import (
    AvailabilityEvaluateRequest,
    AvailabilityEvaluateResponse,
    DuplicateMatchRead,
    DuplicateScanRequest,
    ProductCreate,
    ProductImportRequest,
    ProductImportResponse,
    ProductRead,
)
from delivery_api.services.availability import get_remaining_quantity, get_rule_summary, is_available
from delivery_api.services.catalog import CatalogService

router = APIRouter(prefix="/catalog", tags=["Catalog"])

_manage = [Depends(require_roles("admin", "catalog:manage"))]


def _match_to_read(match) -> DuplicateMatchRead:
    return DuplicateMatchRead(
        left=match.left,
        right=match.right,
        score=round(match.score, 4),
        action=match.action,
        field_scores={k: round(v, 4) for k, v in match.field_scores.items()},
    )


# PUBLIC_INTERFACE
@router.get(
    "/products",
    response_model=List[ProductRead],
    summary="List products",
    description="Search matches name, brand or SKU (case-insensitive substring).",
)
async def list_products(
    search: Optional[str] = Query(None),
    active_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    _user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ProductRead]:
    products = await CatalogService(session).list_products(
        search=search, active_only=active_only, limit=limit, offset=offset
    )
    return [ProductRead.model_validate(p) for p in products]


# PUBLIC_INTERFACE
@router.post(
    "/products",
    response_model=ProductRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create product",
    dependencies=_manage,
)
async def create_product(
    payload: ProductCreate,
    session: AsyncSession = Depends(get_tenant_session),
) -> ProductRead:
    product = await CatalogService(session).create_product(payload.model_dump())
    return ProductRead.model_validate(product)


# PUBLIC_INTERFACE
@router.post(
    "/products/import",
    response_model=ProductImportResponse,
    summary="Import products",
    description=(
        "Bulk import with fuzzy duplicate detection. Rows scoring 0.9 or more against an existing "
        "product are merged into it, rows between the threshold and 0.9 are returned for review, "
        "the rest are created."
    ),
    dependencies=_manage,
)
async def import_products(
    payload: ProductImportRequest,
    session: AsyncSession = Depends(get_tenant_session),
) -> ProductImportResponse:
    rows = [r.model_dump() for r in payload.rows]
    report = await CatalogService(session).import_products(rows, threshold=payload.threshold, dry_run=payload.dry_run)
    return ProductImportResponse(
        created=len(report.created),
        merged=len(report.merged),
        review=[_match_to_read(m) for m in report.review],
        skipped=report.skipped,
    )


# PUBLIC_INTERFACE
@router.post(
    "/products/duplicates",
    response_model=List[DuplicateMatchRead],
    summary="Find duplicate products",
    description="Score every pair of the supplied rows, or of the tenant catalog when rows is omitted.",
)
async def find_duplicates(
    payload: DuplicateScanRequest,
    _user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[DuplicateMatchRead]:
    rows = [r.model_dump() for r in payload.rows] if payload.rows is not None else None
    matches = await CatalogService(session).find_duplicates(rows, threshold=payload.threshold)
    return [_match_to_read(m) for m in matches]


# PUBLIC_INTERFACE
@router.post(
    "/availability/evaluate",
    response_model=AvailabilityEvaluateResponse,
    summary="Evaluate availability rules",
    description="All enabled rules must pass for the product to be available.",
)
async def evaluate_availability(payload: AvailabilityEvaluateRequest) -> AvailabilityEvaluateResponse:
    rules = [r.model_dump() for r in payload.rules]
    return AvailabilityEvaluateResponse(
        is_available=is_available(rules, payload.at, payload.sold),
        remaining_quantity=get_remaining_quantity(rules, payload.sold),
        summaries=[get_rule_summary(r) for r in rules],
    )

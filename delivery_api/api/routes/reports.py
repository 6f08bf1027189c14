from __future__ import annotations

import io
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.deps import get_tenant_session, require_roles
from delivery_api.services.reports import ExportFile, credit_transactions_report, deliveries_report

# PUBLIC_INTERFACE
router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
)


def _stream(export: ExportFile) -> StreamingResponse:
    headers = {"Content-Disposition": f'attachment; filename="{export.filename}"'}
    return StreamingResponse(io.BytesIO(export.content), media_type=export.media_type, headers=headers)


# PUBLIC_INTERFACE
@router.get(
    "/credit-transactions",
    summary="Credit transaction history",
    description="Exports the tenant's credit ledger entries, newest first.",
    response_description="File stream (CSV/XLSX/PDF)",
    dependencies=[Depends(require_roles("admin", "billing:manage"))],
)
async def credit_transactions_export(
    session: AsyncSession = Depends(get_tenant_session),
    transaction_type: Optional[str] = Query(None, description="Filter by transaction type"),
    since: Optional[datetime] = Query(None, description="Only entries created at or after this time"),
    format: str = Query("csv", description="Export format: csv | xlsx | pdf"),
):
    export = await credit_transactions_report(
        session, transaction_type=transaction_type, since=since, export_format=format
    )
    return _stream(export)


# PUBLIC_INTERFACE
@router.get(
    "/deliveries",
    summary="Delivery performance report",
    description="Exports orders with zone, status, notification stages sent and minutes to deliver.",
    response_description="File stream (CSV/XLSX/PDF)",
    dependencies=[Depends(require_roles("admin", "delivery:manage"))],
)
async def deliveries_export(
    session: AsyncSession = Depends(get_tenant_session),
    status: Optional[str] = Query(None, description="Filter orders by status"),
    since: Optional[datetime] = Query(None, description="Only orders created at or after this time"),
    format: str = Query("csv", description="Export format: csv | xlsx | pdf"),
):
    export = await deliveries_report(session, status=status, since=since, export_format=format)
    return _stream(export)

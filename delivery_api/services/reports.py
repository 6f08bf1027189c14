"""
Tabular exports rendered with pandas: CSV, XLSX (openpyxl) or PDF (reportlab).
"""
from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

import pandas as pd
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_api.core.errors import DomainError
from delivery_api.db.models.credits import CreditTransaction
from delivery_api.db.models.delivery import DeliveryZone, Order
from delivery_api.services.delivery_notifications import STAGES

EXPORT_FORMATS = ("csv", "xlsx", "pdf")

CREDIT_TRANSACTION_COLUMNS = [
    "created_at",
    "transaction_type",
    "action_type",
    "amount",
    "balance_after",
    "reference_type",
    "reference_id",
    "description",
]

DELIVERY_COLUMNS = (
    ["order_number", "status", "zone", "customer_name", "delivery_zip", "subtotal", "delivery_fee", "total"]
    + [f"{stage}_sent" for stage in STAGES]
    + ["created_at", "delivered_at", "minutes_to_deliver"]
)


@dataclass
class ExportFile:
    content: bytes
    media_type: str
    filename: str


def _naive_utc(df: pd.DataFrame) -> pd.DataFrame:
    """Excel cannot store tz-aware datetimes; convert them to naive UTC."""
    out = df.copy()
    for col in out.columns:
        if isinstance(out[col].dtype, pd.DatetimeTZDtype):
            out[col] = out[col].dt.tz_convert("UTC").dt.tz_localize(None)
    return out


def _render_pdf(df: pd.DataFrame, filename_base: str) -> bytes:
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import landscape, letter
    from reportlab.lib.styles import getSampleStyleSheet
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Table, TableStyle

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=landscape(letter), leftMargin=18, rightMargin=18, topMargin=18, bottomMargin=18
    )
    styles = getSampleStyleSheet()
    stamp = datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    elements: list = [Paragraph(f"{filename_base.replace('_', ' ').title()} ({stamp})", styles["Title"])]

    data = [list(df.columns)] + df.astype(str).values.tolist()
    table = Table(data, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.black),
                ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 7),
                ("BOTTOMPADDING", (0, 0), (-1, 0), 6),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ]
        )
    )
    elements.append(table)
    doc.build(elements)
    return buffer.getvalue()


# PUBLIC_INTERFACE
def render_dataframe(df: pd.DataFrame, filename_base: str, export_format: str = "csv") -> ExportFile:
    """
    Convert a DataFrame to the requested format.

    Supported formats:
      - csv: text/csv
      - xlsx: application/vnd.openxmlformats-officedocument.spreadsheetml.sheet
      - pdf: application/pdf (simple tabular rendering)
    """
    export_format = (export_format or "csv").lower()
    if export_format == "csv":
        return ExportFile(df.to_csv(index=False).encode("utf-8"), "text/csv", f"{filename_base}.csv")

    if export_format in ("xlsx", "excel"):
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            _naive_utc(df).to_excel(writer, index=False, sheet_name="Report")
        return ExportFile(
            buffer.getvalue(),
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            f"{filename_base}.xlsx",
        )

    if export_format == "pdf":
        return ExportFile(_render_pdf(df, filename_base), "application/pdf", f"{filename_base}.pdf")

    raise DomainError(f"Unsupported export format '{export_format}'", details={"allowed": list(EXPORT_FORMATS)})


def credit_transactions_frame(rows: Sequence[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame(list(rows), columns=CREDIT_TRANSACTION_COLUMNS)


def deliveries_frame(rows: Sequence[Dict[str, Any]]) -> pd.DataFrame:
    """Delivery performance rows; minutes_to_deliver is derived from created/delivered times."""
    data = []
    for row in rows:
        item = dict(row)
        created, delivered = item.get("created_at"), item.get("delivered_at")
        item["minutes_to_deliver"] = (
            round((delivered - created).total_seconds() / 60.0, 1) if created and delivered else None
        )
        for key in ("subtotal", "delivery_fee", "total"):
            if item.get(key) is not None:
                item[key] = float(item[key])
        data.append(item)
    return pd.DataFrame(data, columns=DELIVERY_COLUMNS)


async def _fetch_mappings(session: AsyncSession, stmt: Select) -> list:
    res = await session.execute(stmt)
    return [dict(m) for m in res.mappings().all()]


# PUBLIC_INTERFACE
async def credit_transactions_report(
    session: AsyncSession,
    *,
    transaction_type: Optional[str] = None,
    since: Optional[datetime] = None,
    export_format: str = "csv",
) -> ExportFile:
    """Credit ledger history for the current tenant, newest first."""
    stmt = select(*[getattr(CreditTransaction, c) for c in CREDIT_TRANSACTION_COLUMNS]).order_by(
        CreditTransaction.created_at.desc()
    )
    if transaction_type:
        stmt = stmt.where(CreditTransaction.transaction_type == transaction_type)
    if since:
        stmt = stmt.where(CreditTransaction.created_at >= since)
    rows = await _fetch_mappings(session, stmt)
    return render_dataframe(credit_transactions_frame(rows), "credit_transactions", export_format)


# PUBLIC_INTERFACE
async def deliveries_report(
    session: AsyncSession,
    *,
    status: Optional[str] = None,
    since: Optional[datetime] = None,
    export_format: str = "csv",
) -> ExportFile:
    """Orders with zone, status, notification stage flags and delivery time."""
    columns = [
        Order.order_number,
        Order.status,
        DeliveryZone.name.label("zone"),
        Order.customer_name,
        Order.delivery_zip,
        Order.subtotal,
        Order.delivery_fee,
        Order.total,
    ]
    columns += [getattr(Order, f"{stage}_sent") for stage in STAGES]
    columns += [Order.created_at, Order.delivered_at]
    stmt = (
        select(*columns)
        .outerjoin(DeliveryZone, DeliveryZone.id == Order.zone_id)
        .order_by(Order.created_at.desc())
    )
    if status:
        stmt = stmt.where(Order.status == status)
    if since:
        stmt = stmt.where(Order.created_at >= since)
    rows = await _fetch_mappings(session, stmt)
    return render_dataframe(deliveries_frame(rows), "deliveries", export_format)

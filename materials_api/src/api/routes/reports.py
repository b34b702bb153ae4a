from __future__ import annotations

import io
from datetime import date, datetime, timezone
from typing import Optional, Sequence
from uuid import UUID

import pandas as pd
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy import Select, and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_db_session
from src.db.models.catalog import Material
from src.db.models.enums import LotStatus, RequirementStatus
from src.db.models.inventory import BatchLot
from src.db.models.planning import MaterialRequirement
from src.db.models.valuation import MaterialValuation
from src.services.lot_lifecycle import STOCK_STATUSES

# PUBLIC_INTERFACE
router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
)

EXPORT_FORMATS = "csv | xlsx | pdf"


def _export_dataframe(
    df: pd.DataFrame,
    filename_base: str,
    export_format: str,
) -> StreamingResponse:
    """
    Convert DataFrame to the requested format and return a StreamingResponse.

    Supported formats:
      - csv: text/csv
      - xlsx: application/vnd.openxmlformats-officedocument.spreadsheetml.sheet
      - pdf: application/pdf (simple tabular rendering)
    Anything else falls back to CSV.
    """
    export_format = (export_format or "csv").lower()

    if export_format in ("xlsx", "excel"):
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Report")
        buffer.seek(0)
        headers = {
            "Content-Disposition": f'attachment; filename="{filename_base}.xlsx"'
        }
        return StreamingResponse(
            buffer,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers=headers,
        )

    if export_format == "pdf":
        # Render a very simple table using reportlab
        from reportlab.lib import colors
        from reportlab.lib.pagesizes import letter, landscape
        from reportlab.lib.styles import getSampleStyleSheet
        from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=landscape(letter), leftMargin=18, rightMargin=18, topMargin=18, bottomMargin=18)
        elements: list = []
        styles = getSampleStyleSheet()
        stamp = datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        elements.append(Paragraph(f"{filename_base.replace('_', ' ').title()} ({stamp})", styles["Title"]))

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
        buffer.seek(0)
        headers = {
            "Content-Disposition": f'attachment; filename="{filename_base}.pdf"'
        }
        return StreamingResponse(buffer, media_type="application/pdf", headers=headers)

    buffer = io.StringIO()
    df.to_csv(buffer, index=False)
    buffer.seek(0)
    headers = {
        "Content-Disposition": f'attachment; filename="{filename_base}.csv"'
    }
    return StreamingResponse(buffer, media_type="text/csv", headers=headers)


async def _fetch_all(session: AsyncSession, stmt: Select) -> Sequence:
    """Execute a select and return list of row tuples."""
    res = await session.execute(stmt)
    return list(res.all())


def _num(value) -> Optional[float]:
    return float(value) if value is not None else None


# PUBLIC_INTERFACE
@router.get(
    "/inventory-valuation",
    summary="Inventory valuation report",
    description=(
        "Exports on-hand lots with their actual cost and the value under the material's "
        "active valuation for its default method (standard price when none is recorded)."
    ),
    response_description="File stream (CSV/XLSX/PDF)",
)
async def inventory_valuation_report(
    session: AsyncSession = Depends(get_db_session),
    as_of: Optional[date] = Query(None, description="Expiry reference date; defaults to today"),
    material_id: Optional[UUID] = Query(None, description="Restrict to one material"),
    format: str = Query("csv", description=f"Export format: {EXPORT_FORMATS}"),
):
    """
    Generate an Inventory Valuation report.

    One row per stock-bearing lot. `book_value` uses the active valuation's unit
    value under the material's default method; `actual_value` uses the lot cost.
    """
    as_of = as_of or date.today()
    stmt = (
        select(
            Material.code,
            Material.name,
            Material.default_valuation_method,
            Material.price,
            BatchLot.batch_number,
            BatchLot.uom,
            BatchLot.remaining_quantity,
            BatchLot.reserved_quantity,
            BatchLot.status,
            BatchLot.expiration_date,
            BatchLot.unit_cost,
            MaterialValuation.unit_value,
        )
        .join(Material, Material.id == BatchLot.material_id)
        .outerjoin(
            MaterialValuation,
            and_(
                MaterialValuation.material_id == Material.id,
                MaterialValuation.method == Material.default_valuation_method,
                MaterialValuation.is_active.is_(True),
                MaterialValuation.batch_lot_id.is_(None),
            ),
        )
        .where(BatchLot.status.in_(list(STOCK_STATUSES)))
        .order_by(Material.code, BatchLot.received_date, BatchLot.batch_number)
    )
    if material_id:
        stmt = stmt.where(BatchLot.material_id == material_id)

    rows = await _fetch_all(session, stmt)
    data = []
    for (
        code,
        name,
        method,
        price,
        batch_number,
        uom,
        remaining,
        reserved,
        lot_status,
        expiration_date,
        unit_cost,
        unit_value,
    ) in rows:
        qty = float(remaining or 0)
        book_unit = float(unit_value) if unit_value is not None else float(price or 0)
        expired = expiration_date is not None and expiration_date < as_of
        data.append(
            {
                "material_code": code,
                "material_name": name,
                "batch_number": batch_number,
                "uom": uom,
                "remaining_quantity": qty,
                "reserved_quantity": _num(reserved),
                "status": LotStatus.EXPIRED.value if expired else lot_status.value,
                "expiration_date": expiration_date,
                "unit_cost": _num(unit_cost),
                "actual_value": qty * float(unit_cost or 0),
                "valuation_method": method.value,
                "book_unit_value": book_unit,
                "book_value": qty * book_unit,
            }
        )

    df = pd.DataFrame(data, columns=[
        "material_code",
        "material_name",
        "batch_number",
        "uom",
        "remaining_quantity",
        "reserved_quantity",
        "status",
        "expiration_date",
        "unit_cost",
        "actual_value",
        "valuation_method",
        "book_unit_value",
        "book_value",
    ])
    return _export_dataframe(df, "inventory_valuation", format)


# PUBLIC_INTERFACE
@router.get(
    "/requirements",
    summary="Material requirements report",
    description="Exports current planned orders with release dates, lateness flags and cost estimates.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def requirements_report(
    session: AsyncSession = Depends(get_db_session),
    run_id: Optional[UUID] = Query(None, description="Restrict to one MRP run"),
    status: Optional[RequirementStatus] = Query(None, description="Filter by requirement status"),
    include_zero: bool = Query(False, description="Include buckets fully covered by stock"),
    format: str = Query("csv", description=f"Export format: {EXPORT_FORMATS}"),
):
    """
    Generate a Material Requirements report ordered by planned release date.

    Superseded requirements are left out unless a specific run is requested.
    """
    stmt = (
        select(
            Material.code,
            MaterialRequirement.requirement_date,
            MaterialRequirement.planned_release_date,
            MaterialRequirement.required_quantity,
            MaterialRequirement.available_quantity,
            MaterialRequirement.net_requirement,
            MaterialRequirement.planned_order_quantity,
            MaterialRequirement.uom,
            MaterialRequirement.priority,
            MaterialRequirement.is_late,
            MaterialRequirement.status,
            MaterialRequirement.estimated_cost,
            MaterialRequirement.source_type,
            MaterialRequirement.source_id,
            MaterialRequirement.action_message,
        )
        .join(Material, Material.id == MaterialRequirement.material_id)
        .order_by(MaterialRequirement.planned_release_date, Material.code)
    )
    if run_id:
        stmt = stmt.where(MaterialRequirement.mrp_run_id == run_id)
    else:
        stmt = stmt.where(MaterialRequirement.is_current.is_(True))
    if status:
        stmt = stmt.where(MaterialRequirement.status == status)
    if not include_zero:
        stmt = stmt.where(MaterialRequirement.planned_order_quantity > 0)

    rows = await _fetch_all(session, stmt)
    data = []
    for (
        code,
        requirement_date,
        release_date,
        required,
        available,
        net,
        planned,
        uom,
        priority,
        is_late,
        req_status,
        estimated_cost,
        source_type,
        source_id,
        action_message,
    ) in rows:
        data.append(
            {
                "material_code": code,
                "requirement_date": requirement_date,
                "planned_release_date": release_date,
                "required_quantity": _num(required),
                "available_quantity": _num(available),
                "net_requirement": _num(net),
                "planned_order_quantity": _num(planned),
                "uom": uom,
                "priority": priority,
                "is_late": bool(is_late),
                "status": req_status.value,
                "estimated_cost": _num(estimated_cost),
                "source": f"{source_type}:{source_id}" if source_id else source_type,
                "action_message": action_message,
            }
        )
    df = pd.DataFrame(data, columns=[
        "material_code",
        "requirement_date",
        "planned_release_date",
        "required_quantity",
        "available_quantity",
        "net_requirement",
        "planned_order_quantity",
        "uom",
        "priority",
        "is_late",
        "status",
        "estimated_cost",
        "source",
        "action_message",
    ])
    return _export_dataframe(df, "material_requirements", format)

# routers/v1/operator.py
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from database import get_db
from deps.authz import require_role
from errors import NotFoundError
from excel.export_stage import rows_workbook, XLSX_MEDIA_TYPE
from models import User
from services import reports
from services import status_projector as projector

router = APIRouter(prefix="/operator", tags=["operator"])
operator = require_role("operator")


def _xlsx(buf, filename: str) -> StreamingResponse:
    return StreamingResponse(
        buf,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/pic-report")
def pic_report(
    lot_type: Literal["all", "denim", "hosiery"] = Query("all"),
    department: Literal["all", "cutting", "stitching", "assembly", "washing", "washing_in", "finishing"] = Query("all"),
    status: str = Query("all", description="all | not_assigned | inline | pending | denied | completed"),
    date_filter: Literal["created_at", "assigned_on"] = Query("created_at"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    download: int = Query(0),
    db: Session = Depends(get_db),
    user: User = Depends(operator),
):
    rows = projector.build_pic_report(
        db,
        lot_type=lot_type,
        department=department,
        status=status,
        date_filter=date_filter,
        start_date=start_date,
        end_date=end_date,
    )
    if download == 1:
        return _xlsx(rows_workbook("PIC Report", projector.PIC_COLUMNS, rows), "PIC_Report.xlsx")
    return {"data": rows}


@router.get("/lot-status/{lot_no}")
def lot_status(lot_no: str, db: Session = Depends(get_db), user: User = Depends(operator)):
    row = projector.lot_status(db, lot_no)
    if row is None:
        raise NotFoundError(f"Lot {lot_no} not found")
    return row


@router.get("/pendency")
def pendency(
    dept: str = Query("stitching"),
    search: str = Query(""),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    user: User = Depends(operator),
):
    return {"data": reports.pendency(db, dept, search=search, page=page, size=size)}


@router.get("/pendency/download")
def pendency_download(
    dept: str = Query("stitching"),
    search: str = Query(""),
    db: Session = Depends(get_db),
    user: User = Depends(operator),
):
    rows = reports.pendency(db, dept, search=search, page=1, size=10000)
    return _xlsx(rows_workbook("Pendency", reports.PENDENCY_COLUMNS, rows), f"{dept}_pendency.xlsx")


@router.get("/leftovers")
def leftovers(
    search: str | None = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(operator),
):
    return {"data": reports.leftovers_report(db, search=search)}

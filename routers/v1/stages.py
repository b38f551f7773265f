# routers/v1/stages.py
"""
Router factory shared by every production stage.

    GET  /{stage}                         dashboard page
    GET  /{stage}/list-entries            own entries, paged (search, offset)
    GET  /{stage}/get-lot-sizes/{id}      upstream sizes of an assignment with remainders
    GET  /{stage}/approved                approved assignments without an entry yet
    POST /{stage}/create                  new entry against an approved assignment
    GET  /{stage}/update/{id}/json        sizes of an entry with remainders
    POST /{stage}/update/{id}             add pieces to an entry
    GET  /{stage}/challan/{id}            printable challan
    GET  /{stage}/download-all            xlsx export of own entries
    GET  /{stage}/approve                 pending assignments
    POST /{stage}/approve-lot             approve an assignment
    POST /{stage}/deny-lot                deny an assignment (remark required)
    POST /{stage}/assign                  hand an own entry to the next stage
"""
from fastapi import APIRouter, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, StreamingResponse
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from deps.authz import require_role
from errors import ValidationError
from excel.export_stage import stage_workbook, XLSX_MEDIA_TYPE
from models import User
from routers.v1.common import API_PREFIX, templates, read_payload, parse_body, respond
from schemas import (
    ProductionCreate, ProductionIncrement, ApprovalIn, AssignmentCreate, AssignmentOut, LotSizeRemain,
)
from services import assignments as assignment_svc
from services import production as production_svc
from services.stages import Stage, next_stage
from utils.flash import pop_flashes


def make_stage_router(stage: Stage, *, assignable: bool = True) -> APIRouter:
    router = APIRouter(prefix=f"/{stage.slug}", tags=[stage.slug])
    home = f"{API_PREFIX}/{stage.slug}"
    worker = require_role(stage.role)
    assigner = require_role(stage.role, "operator")

    @router.get("", response_class=HTMLResponse)
    def dashboard(request: Request, db: Session = Depends(get_db), user: User = Depends(worker)):
        return templates.TemplateResponse(request, "stage_dashboard.html", {
            "stage": stage,
            "base": home,
            "user": user,
            "flashes": pop_flashes(request),
            "pending": [assignment_svc.assignment_to_dict(a)
                        for a in assignment_svc.list_pending(db, stage, user.id)],
            "approved": [assignment_svc.assignment_to_dict(a)
                         for a in assignment_svc.list_approved_open(db, stage, user.id)],
        })

    @router.get("/list-entries")
    def list_entries(
        search: str | None = Query(None),
        offset: int = Query(0, ge=0),
        db: Session = Depends(get_db),
        user: User = Depends(worker),
    ):
        return production_svc.list_entries(db, stage, user_id=user.id, search=search,
                                           offset=offset, limit=settings.LIST_PAGE_SIZE)

    @router.get("/get-lot-sizes/{assignment_id}", response_model=list[LotSizeRemain])
    def get_lot_sizes(assignment_id: int, db: Session = Depends(get_db), user: User = Depends(worker)):
        return production_svc.lot_sizes(db, stage, user_id=user.id, assignment_id=assignment_id)

    @router.get("/approved", response_model=list[AssignmentOut])
    def approved_open(db: Session = Depends(get_db), user: User = Depends(worker)):
        return [assignment_svc.assignment_to_dict(a)
                for a in assignment_svc.list_approved_open(db, stage, user.id)]

    @router.post("/create")
    def create_entry(
        request: Request,
        data: dict = Depends(read_payload),
        db: Session = Depends(get_db),
        user: User = Depends(worker),
    ):
        body = parse_body(ProductionCreate, data)
        record = production_svc.create_production(
            db, stage,
            user_id=user.id,
            assignment_id=body.assignment_id,
            sizes=body.sizes,
            remark=body.remark,
            image_url=body.image_url,
        )
        return respond(request, f"{stage.label} entry created for lot {record.lot_no}",
                       {"success": True, "id": record.id, "total_pieces": record.total_pieces}, home)

    @router.get("/update/{record_id}/json")
    def update_json(record_id: int, db: Session = Depends(get_db), user: User = Depends(worker)):
        return production_svc.update_view(db, stage, user_id=user.id, record_id=record_id)

    @router.post("/update/{record_id}")
    def update_entry(
        record_id: int,
        request: Request,
        data: dict = Depends(read_payload),
        db: Session = Depends(get_db),
        user: User = Depends(worker),
    ):
        body = parse_body(ProductionIncrement, data, size_fields=("sizes",))
        record = production_svc.increment_production(db, stage, user_id=user.id, record_id=record_id,
                                                     increments=body.sizes)
        return respond(request, f"{stage.label} entry updated",
                       {"success": True, "id": record.id, "total_pieces": record.total_pieces}, home)

    @router.get("/challan/{record_id}", response_class=HTMLResponse)
    def challan(record_id: int, request: Request, db: Session = Depends(get_db), user: User = Depends(worker)):
        ctx = production_svc.challan(db, stage, user_id=user.id, record_id=record_id)
        return templates.TemplateResponse(request, "challan.html", ctx)

    @router.get("/download-all")
    def download_all(db: Session = Depends(get_db), user: User = Depends(worker)):
        records = production_svc.all_entries(db, stage, user_id=user.id)
        buf = stage_workbook(stage.label, records)
        return StreamingResponse(
            buf,
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{stage.key}_data.xlsx"'},
        )

    @router.get("/approve", response_model=list[AssignmentOut])
    def pending_assignments(db: Session = Depends(get_db), user: User = Depends(worker)):
        return [assignment_svc.assignment_to_dict(a) for a in assignment_svc.list_pending(db, stage, user.id)]

    @router.post("/approve-lot")
    def approve_lot(
        request: Request,
        data: dict = Depends(read_payload),
        db: Session = Depends(get_db),
        user: User = Depends(worker),
    ):
        body = parse_body(ApprovalIn, data)
        a = assignment_svc.approve(db, stage, assignment_id=body.assignment_id, approver_id=user.id,
                                   remark=body.remark)
        return respond(request, "Assignment approved",
                       {"success": True, "assignment": jsonable_encoder(assignment_svc.assignment_to_dict(a))},
                       home)

    @router.post("/deny-lot")
    def deny_lot(
        request: Request,
        data: dict = Depends(read_payload),
        db: Session = Depends(get_db),
        user: User = Depends(worker),
    ):
        body = parse_body(ApprovalIn, data)
        a = assignment_svc.deny(db, stage, assignment_id=body.assignment_id, approver_id=user.id,
                                remark=body.remark)
        return respond(request, "Assignment denied",
                       {"success": True, "assignment": jsonable_encoder(assignment_svc.assignment_to_dict(a))},
                       home)

    if assignable:
        @router.post("/assign")
        def assign_next(
            request: Request,
            data: dict = Depends(read_payload),
            db: Session = Depends(get_db),
            user: User = Depends(assigner),
        ):
            body = parse_body(AssignmentCreate, data)
            source = db.get(stage.record_model, body.source_id)
            if source is None:
                raise ValidationError(f"{stage.label} entry not found")
            target = next_stage(stage, source.lot_no)
            if target is None:
                raise ValidationError(f"Lot {source.lot_no} has no stage after {stage.label}")
            a = assignment_svc.create_assignment(
                db, target,
                assigner=user,
                assignee_id=body.assignee_id,
                source=source,
                sizes=body.sizes,
                remark=body.remark,
            )
            return respond(request, f"Lot {source.lot_no} assigned to {target.label}",
                           {"success": True, "assignment_id": a.id, "stage": target.key}, home)

    return router

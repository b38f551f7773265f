# routers/v1/finishing.py
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from database import get_db
from deps.authz import require_role
from models import User
from routers.v1.common import API_PREFIX, read_payload, parse_body, respond
from routers.v1.stages import make_stage_router
from schemas import DispatchIn, DispatchOut
from services import dispatch as dispatch_svc
from services.stages import FINISHING

# finishing is the last stage: entries leave through dispatch, not assignment
router = make_stage_router(FINISHING, assignable=False)
worker = require_role(FINISHING.role)
HOME = f"{API_PREFIX}/{FINISHING.slug}"


@router.get("/dispatch/{record_id}/json")
def dispatch_json(record_id: int, db: Session = Depends(get_db), user: User = Depends(worker)):
    return dispatch_svc.dispatch_view(db, user_id=user.id, record_id=record_id)


@router.post("/dispatch/{record_id}")
def dispatch(
    record_id: int,
    request: Request,
    data: dict = Depends(read_payload),
    db: Session = Depends(get_db),
    user: User = Depends(worker),
):
    body = parse_body(DispatchIn, data, size_fields=("quantities",))
    rows = dispatch_svc.dispatch(
        db,
        user_id=user.id,
        record_id=record_id,
        destination=body.destination,
        custom_destination=body.custom_destination,
        quantities=body.quantities,
    )
    return respond(request, f"Dispatched under challan {rows[0].challan_no}",
                   {"success": True, "dispatches": [DispatchOut.model_validate(r).model_dump() for r in rows]},
                   HOME)


@router.post("/dispatch-all/{record_id}")
def dispatch_all(
    record_id: int,
    request: Request,
    data: dict = Depends(read_payload),
    db: Session = Depends(get_db),
    user: User = Depends(worker),
):
    body = parse_body(DispatchIn, data, size_fields=())
    rows = dispatch_svc.dispatch_all(
        db,
        user_id=user.id,
        record_id=record_id,
        destination=body.destination,
        custom_destination=body.custom_destination,
    )
    return respond(request, f"All remaining pieces dispatched under challan {rows[0].challan_no}",
                   {"success": True, "dispatches": [DispatchOut.model_validate(r).model_dump() for r in rows]},
                   HOME)

# routers/v1/cutting.py
import json

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from deps.authz import require_role
from errors import ValidationError
from models import User, CuttingLot
from routers.v1.common import API_PREFIX, read_payload, parse_body, respond
from schemas import LotCreate, CuttingLotOut, AssignmentCreate
from services import assignments as assignment_svc
from services import cutting as cutting_svc
from services.stages import STITCHING

router = APIRouter(prefix="/cutting", tags=["cutting"])
manager = require_role("cutting_manager")
HOME = f"{API_PREFIX}/cutting/lots"


@router.post("/create-lot")
def create_lot(
    request: Request,
    data: dict = Depends(read_payload),
    db: Session = Depends(get_db),
    user: User = Depends(manager),
):
    # form posts carry the roll table as a JSON string
    if isinstance(data.get("rolls"), str):
        try:
            data["rolls"] = json.loads(data["rolls"])
        except ValueError:
            raise ValidationError("rolls must be a JSON list") from None
    body = parse_body(LotCreate, data)
    lot = cutting_svc.create_lot(
        db,
        manager=user,
        sku=body.sku,
        fabric_type=body.fabric_type,
        sizes=body.sizes,
        rolls=[r.model_dump() for r in body.rolls],
        remark=body.remark,
        image_url=body.image_url,
    )
    return respond(request, f"Lot {lot.lot_no} created",
                   {"success": True, "lot": CuttingLotOut.model_validate(lot).model_dump()}, HOME)


@router.get("/lots")
def list_lots(
    search: str | None = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    user: User = Depends(manager),
):
    page = cutting_svc.list_lots(db, user=user, search=search, offset=offset, limit=limit)
    return {"data": [CuttingLotOut.model_validate(l) for l in page["data"]], "hasMore": page["hasMore"]}


@router.get("/lots/{lot_id}", response_model=CuttingLotOut)
def get_lot(lot_id: int, db: Session = Depends(get_db), user: User = Depends(manager)):
    return cutting_svc.get_lot(db, lot_id)


@router.post("/assign-stitching")
def assign_stitching(
    request: Request,
    data: dict = Depends(read_payload),
    db: Session = Depends(get_db),
    user: User = Depends(manager),
):
    body = parse_body(AssignmentCreate, data)
    lot = db.get(CuttingLot, body.source_id)
    a = assignment_svc.create_assignment(
        db, STITCHING,
        assigner=user,
        assignee_id=body.assignee_id,
        source=lot,
        sizes=body.sizes,
        remark=body.remark,
    )
    return respond(request, f"Lot {a.lot_no} assigned to stitching",
                   {"success": True, "assignment_id": a.id}, HOME)

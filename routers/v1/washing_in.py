# routers/v1/washing_in.py
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from database import get_db
from deps.authz import require_role
from models import User
from routers.v1.common import API_PREFIX, read_payload, parse_body, respond
from routers.v1.stages import make_stage_router
from schemas import RewashCreate
from services import rewash as rewash_svc
from services.stages import WASHING_IN

router = make_stage_router(WASHING_IN)
worker = require_role(WASHING_IN.role)
REWASH_HOME = f"{API_PREFIX}/{WASHING_IN.slug}"


# ============================================================
# Rewash: send washed pieces back before taking them in
# ============================================================
@router.get("/rewash/eligible")
def rewash_eligible(db: Session = Depends(get_db), user: User = Depends(worker)):
    return [
        {"washing_data_id": wd.id, "lot_no": wd.lot_no, "sku": wd.sku, "total_pieces": wd.total_pieces}
        for wd in rewash_svc.eligible_for_rewash(db, user.id)
    ]


@router.get("/rewash/data/{washing_data_id}")
def rewash_data(washing_data_id: int, db: Session = Depends(get_db), user: User = Depends(worker)):
    return rewash_svc.rewash_sizes(db, washing_data_id)


@router.post("/rewash")
def create_rewash(
    request: Request,
    data: dict = Depends(read_payload),
    db: Session = Depends(get_db),
    user: User = Depends(worker),
):
    body = parse_body(RewashCreate, data)
    rr = rewash_svc.create_rewash(db, user_id=user.id, washing_data_id=body.washing_data_id, sizes=body.sizes)
    return respond(request, "Rewash request created successfully!",
                   {"success": True, "id": rr.id, "total_requested": rr.total_requested}, REWASH_HOME)


@router.get("/rewash/pending")
def rewash_pending(db: Session = Depends(get_db), user: User = Depends(worker)):
    return {"data": [rewash_svc.rewash_to_dict(rr) for rr in rewash_svc.list_pending(db, user.id)]}


@router.post("/rewash/{rewash_id}/complete")
def complete_rewash(
    rewash_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(worker),
):
    rr = rewash_svc.complete_rewash(db, user_id=user.id, rewash_id=rewash_id)
    return respond(request, "Rewash completed and pieces returned to pool.",
                   {"success": True, "id": rr.id, "status": rr.status}, REWASH_HOME)

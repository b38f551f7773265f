# services/rewash.py
"""
Rewash: pieces leave the washing pool the moment a rewash is requested and
come back when the requester marks it completed.

    pending -> completed

At most one pending request exists per washing_data row.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from database import transaction
from errors import ValidationError, NotFoundError, DuplicateError, AuthorizationError, InsufficientRemainderError
from models import (
    RewashRequest, RewashRequestSize, WashingData, WashingDataSize, WashingDataUpdate,
    WashingInAssignment, WashingInData,
)
from services.leftovers import lock_lot, remain
from services.stages import WASHING, WASHING_IN
from utils.pieces import parse_pieces

logger = logging.getLogger(__name__)


def has_pending_rewash(db: Session, washing_data_id: int) -> bool:
    return db.query(
        db.query(RewashRequest.id)
          .filter(RewashRequest.washing_data_id == washing_data_id,
                  RewashRequest.status == "pending")
          .exists()
    ).scalar()


def _approved_for(db: Session, user_id: int, washing_data_id: int) -> bool:
    return db.query(
        db.query(WashingInAssignment.id)
          .filter(WashingInAssignment.washing_data_id == washing_data_id,
                  WashingInAssignment.user_id == user_id,
                  WashingInAssignment.is_approved.is_(True))
          .exists()
    ).scalar()


def eligible_for_rewash(db: Session, user_id: int) -> list[WashingData]:
    """Washing records this washing-in user may still send back for rewash."""
    started = {
        lot for (lot,) in db.query(WashingInData.lot_no).filter(WashingInData.user_id == user_id).all()
    }
    rows = (
        db.query(WashingData)
          .join(WashingInAssignment, WashingInAssignment.washing_data_id == WashingData.id)
          .filter(WashingInAssignment.user_id == user_id, WashingInAssignment.is_approved.is_(True))
          .order_by(WashingData.id.desc())
          .distinct()
          .all()
    )
    return [wd for wd in rows if wd.lot_no not in started and not has_pending_rewash(db, wd.id)]


def rewash_sizes(db: Session, washing_data_id: int) -> list[dict]:
    wd = db.get(WashingData, washing_data_id)
    if not wd:
        raise NotFoundError("Washing record not found")
    return [{"id": s.id, "size_label": s.size_label, "available": s.pieces} for s in wd.sizes]


def create_rewash(db: Session, *, user_id: int, washing_data_id: int, sizes: dict) -> RewashRequest:
    wd = db.get(WashingData, washing_data_id)
    if not wd:
        raise NotFoundError("Washing record not found")
    if not _approved_for(db, user_id, wd.id):
        raise AuthorizationError("No approved washing-in assignment for this lot")

    requested = {}
    for label, raw in (sizes or {}).items():
        n = parse_pieces(raw, strict=True)
        if n > 0:
            requested[str(label)] = n
    if not requested:
        raise ValidationError("No pieces requested for rewash")

    by_label = {s.size_label: s for s in wd.sizes}

    with transaction(db):
        lock_lot(db, wd.lot_no)
        if has_pending_rewash(db, wd.id):
            raise DuplicateError(f"Lot {wd.lot_no} already has a pending rewash request")

        rr = RewashRequest(washing_data_id=wd.id, user_id=user_id, lot_no=wd.lot_no, sku=wd.sku,
                           status="pending")
        for label, n in requested.items():
            row = by_label.get(label)
            if row is None:
                raise ValidationError(f"Size [{label}] not found in washing record")
            if n > row.pieces:
                raise InsufficientRemainderError(label, row.pieces)
            # pieces already taken in by washing-in cannot be pulled back
            pool = remain(db, WASHING.ledger, WASHING_IN.ledger, wd.lot_no, label)
            if n > pool:
                raise InsufficientRemainderError(label, pool)

            row.pieces -= n
            wd.updates.append(WashingDataUpdate(size_label=label, pieces=-n))
            rr.sizes.append(RewashRequestSize(size_label=label, pieces_requested=n))

        rr.total_requested = sum(requested.values())
        wd.recompute_total()
        db.add(rr)
        db.flush()

    db.refresh(rr)
    logger.info("Rewash %s created for lot %s (%s pcs)", rr.id, rr.lot_no, rr.total_requested)
    return rr


def complete_rewash(db: Session, *, user_id: int, rewash_id: int) -> RewashRequest:
    rr = (
        db.query(RewashRequest)
          .filter(RewashRequest.id == rewash_id,
                  RewashRequest.user_id == user_id,
                  RewashRequest.status == "pending")
          .first()
    )
    if not rr:
        raise NotFoundError("Pending rewash request not found")

    wd = rr.washing_data
    with transaction(db):
        lock_lot(db, rr.lot_no)
        by_label = {s.size_label: s for s in wd.sizes}
        for rs in rr.sizes:
            row = by_label.get(rs.size_label)
            if row is None:
                row = WashingDataSize(size_label=rs.size_label, pieces=0)
                wd.sizes.append(row)
            row.pieces += rs.pieces_requested
            wd.updates.append(WashingDataUpdate(size_label=rs.size_label, pieces=rs.pieces_requested))
        wd.recompute_total()
        rr.status = "completed"
        rr.completed_at = datetime.now(timezone.utc)

    logger.info("Rewash %s completed, %s pcs returned to lot %s", rr.id, rr.total_requested, rr.lot_no)
    return rr


def list_pending(db: Session, user_id: int) -> list[RewashRequest]:
    return (
        db.query(RewashRequest)
          .filter(RewashRequest.user_id == user_id, RewashRequest.status == "pending")
          .order_by(RewashRequest.created_at.desc(), RewashRequest.id.desc())
          .all()
    )


def rewash_to_dict(rr: RewashRequest) -> dict:
    return {
        "id": rr.id,
        "washing_data_id": rr.washing_data_id,
        "lot_no": rr.lot_no,
        "sku": rr.sku,
        "total_requested": rr.total_requested,
        "status": rr.status,
        "created_at": rr.created_at,
        "completed_at": rr.completed_at,
        "sizes": [{"size_label": s.size_label, "pieces": s.pieces_requested} for s in rr.sizes],
    }

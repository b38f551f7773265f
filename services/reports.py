# services/reports.py
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from errors import ValidationError
from models import CuttingLot, FinishingData
from services import leftovers
from services.stages import STAGES, chain_for, join_source_lots, upstream_ledger


def _assigned_pieces(db: Session, stage, assignment) -> int:
    if assignment.sizes_json:
        return sum(int(v or 0) for v in assignment.sizes_json.values())
    lot_no = assignment.lot_no
    return leftovers.ledger_total(db, upstream_ledger(stage, lot_no), lot_no)


def pendency(db: Session, stage_key: str, *, search: str = "", page: int = 1, size: int = 50) -> list[dict]:
    """Assigned vs completed pieces per assignment of one department."""
    stage = STAGES.get(stage_key)
    if stage is None:
        raise ValidationError(f"Unknown department: {stage_key}")
    M, D = stage.assignment_model, stage.record_model

    q, lot_cols = join_source_lots(db.query(M), stage)
    q = q.options(selectinload(M.user))
    needle = (search or "").strip()
    if needle:
        q = q.filter(or_(*[c.ilike(f"%{needle}%") for c in lot_cols]))
    rows = (
        q.order_by(M.assigned_on.desc(), M.id.desc())
         .offset((max(page, 1) - 1) * size)
         .limit(size)
         .all()
    )

    out = []
    for a in rows:
        completed = (
            db.query(func.coalesce(func.sum(D.total_pieces), 0))
              .filter(D.lot_no == a.lot_no, D.user_id == a.user_id)
              .scalar()
        )
        assigned = _assigned_pieces(db, stage, a)
        out.append({
            "assignment_id": a.id,
            "lot_no": a.lot_no,
            "username": a.user.username if a.user else None,
            "state": a.state,
            "assigned": assigned,
            "completed": int(completed or 0),
            "pending": assigned - int(completed or 0),
        })
    return out


PENDENCY_COLUMNS = [
    ("Lot No", "lot_no"), ("Operator", "username"), ("State", "state"),
    ("Assigned", "assigned"), ("Completed", "completed"), ("Pending", "pending"),
]


def lot_leftovers(db: Session, lot_no: str) -> dict:
    """Per department of the lot's chain, the clamped per-size remainder not yet taken by it."""
    out = {"lot_no": lot_no, "stages": {}}
    for stage in chain_for(lot_no):
        upstream = upstream_ledger(stage, lot_no)
        out["stages"][stage.key] = {
            "from": upstream.key,
            "sizes": leftovers.size_breakdown(db, upstream, stage.ledger, lot_no),
        }

    records = (
        db.query(FinishingData)
          .options(selectinload(FinishingData.sizes))
          .filter(FinishingData.lot_no == lot_no)
          .all()
    )
    undispatched = {}
    for r in records:
        for label, n in leftovers.dispatch_available(db, r).items():
            undispatched[label] = undispatched.get(label, 0) + leftovers.clamp(n)
    out["dispatch"] = undispatched
    return out


def leftovers_report(db: Session, *, search: str | None = None, limit: int = 100) -> list[dict]:
    q = db.query(CuttingLot.lot_no)
    if search:
        q = q.filter(CuttingLot.lot_no.ilike(f"%{search.strip()}%"))
    lot_nos = [lot for (lot,) in q.order_by(CuttingLot.id.desc()).limit(limit).all()]
    return [lot_leftovers(db, lot_no) for lot_no in lot_nos]

# services/production.py
"""
Stage production records.

A worker records what they actually produced against an approved assignment
(``create_production``), then adds to it later (``increment_production``).
Every write re-checks the lot's remainder against the upstream ledger.
"""
import logging

from sqlalchemy.orm import Session, selectinload

from database import transaction
from errors import ValidationError, AuthorizationError, NotFoundError, DuplicateError
from services import leftovers
from services.rewash import has_pending_rewash
from services.stages import Stage, WASHING_IN, upstream_ledger, downstream_stages
from utils.pieces import parse_pieces

logger = logging.getLogger(__name__)

INCREMENT_MESSAGE = "Cannot add {requested} to size [{size}]. Max remain is {remain}."


def _source_sku(source) -> str | None:
    return getattr(source, "sku", None)


def create_production(
    db: Session,
    stage: Stage,
    *,
    user_id: int,
    assignment_id: int,
    sizes: dict,
    remark: str | None = None,
    image_url: str | None = None,
):
    M, D = stage.assignment_model, stage.record_model

    assignment = db.get(M, assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment not found")
    if assignment.user_id != user_id or assignment.is_approved is not True:
        raise AuthorizationError("Assignment is not approved for you")

    source = assignment.source
    if source is None:
        raise NotFoundError("Assigned lot not found")
    lot_no = source.lot_no
    upstream = upstream_ledger(stage, lot_no)

    if stage is WASHING_IN and has_pending_rewash(db, source.id):
        raise ValidationError(f"Lot {lot_no} has a pending rewash request")

    requested = {}
    for label, raw in (sizes or {}).items():
        n = parse_pieces(raw, strict=True)
        if n > 0:
            requested[str(label).strip()] = n

    with transaction(db):
        leftovers.lock_lot(db, lot_no)

        exists = db.query(D.id).filter(D.lot_no == lot_no, D.user_id == user_id).first()
        if exists:
            raise DuplicateError(f"{stage.label} entry for lot {lot_no} already exists")

        for label, n in requested.items():
            leftovers.check_remain(db, upstream, stage.ledger, lot_no, label, n)

        grand_total = sum(requested.values())
        if grand_total <= 0:
            raise ValidationError("Total pieces must be greater than zero")

        record = D(
            user_id=user_id,
            assignment_id=assignment.id,
            lot_no=lot_no,
            sku=_source_sku(source),
            remark=(remark or "").strip() or None,
            image_url=image_url,
        )
        record.sizes = [stage.size_model(size_label=label, pieces=n) for label, n in requested.items()]
        record.recompute_total()
        db.add(record)
        db.flush()

    db.refresh(record)
    logger.info("%s entry %s created for lot %s by user %s (%s pcs)",
                stage.label, record.id, lot_no, user_id, record.total_pieces)
    return record


def get_own_record(db: Session, stage: Stage, *, user_id: int, record_id: int):
    D = stage.record_model
    record = db.query(D).filter(D.id == record_id, D.user_id == user_id).first()
    if not record:
        raise NotFoundError(f"{stage.label} entry not found")
    return record


def increment_production(db: Session, stage: Stage, *, user_id: int, record_id: int, increments: dict):
    """Add pieces to an existing record. Unusable or zero increments are skipped."""
    record = get_own_record(db, stage, user_id=user_id, record_id=record_id)
    upstream = upstream_ledger(stage, record.lot_no)

    deltas = {}
    for label, raw in (increments or {}).items():
        n = parse_pieces(raw, strict=False)
        if n > 0:
            deltas[str(label).strip()] = n

    with transaction(db):
        leftovers.lock_lot(db, record.lot_no)
        by_label = {s.size_label: s for s in record.sizes}
        for label, n in deltas.items():
            leftovers.check_remain(db, upstream, stage.ledger, record.lot_no, label, n,
                                   message=INCREMENT_MESSAGE)
            row = by_label.get(label)
            if row is None:
                row = stage.size_model(size_label=label, pieces=0)
                record.sizes.append(row)
                by_label[label] = row
            row.pieces += n
            record.updates.append(stage.update_model(size_label=label, pieces=n))
        record.recompute_total()

    if deltas:
        logger.info("%s entry %s incremented by %s", stage.label, record.id, deltas)
    return record


# ---------- Read views ----------
def lot_sizes(db: Session, stage: Stage, *, user_id: int, assignment_id: int) -> list[dict]:
    """Upstream sizes of an assignment's lot with what this stage already used."""
    M = stage.assignment_model
    assignment = db.query(M).filter(M.id == assignment_id, M.user_id == user_id).first()
    if not assignment or assignment.source is None:
        raise NotFoundError("Assignment not found")
    lot_no = assignment.source.lot_no
    rows = leftovers.size_breakdown(db, upstream_ledger(stage, lot_no), stage.ledger, lot_no)
    if assignment.sizes_json:
        for r in rows:
            r["assigned"] = int(assignment.sizes_json.get(r["size_label"], 0))
    return rows


def update_view(db: Session, stage: Stage, *, user_id: int, record_id: int) -> dict:
    record = get_own_record(db, stage, user_id=user_id, record_id=record_id)
    upstream = upstream_ledger(stage, record.lot_no)
    sizes = []
    for s in record.sizes:
        r = leftovers.remain(db, upstream, stage.ledger, record.lot_no, s.size_label)
        sizes.append({"id": s.id, "size_label": s.size_label, "pieces": s.pieces,
                      "remain": leftovers.clamp(r)})
    return {"id": record.id, "lot_no": record.lot_no, "sku": record.sku,
            "total_pieces": record.total_pieces, "sizes": sizes}


def record_to_dict(record, with_sizes: bool = True) -> dict:
    out = {
        "id": record.id,
        "lot_no": record.lot_no,
        "sku": record.sku,
        "total_pieces": record.total_pieces,
        "remark": record.remark,
        "image_url": record.image_url,
        "created_at": record.created_at,
        "assignment_id": record.assignment_id,
    }
    if with_sizes:
        out["sizes"] = [{"size_label": s.size_label, "pieces": s.pieces} for s in record.sizes]
    return out


def list_entries(db: Session, stage: Stage, *, user_id: int, search: str | None = None,
                 offset: int = 0, limit: int = 5) -> dict:
    D = stage.record_model
    q = db.query(D).options(selectinload(D.sizes)).filter(D.user_id == user_id)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(D.lot_no.ilike(like) | D.sku.ilike(like))
    rows = q.order_by(D.created_at.desc(), D.id.desc()).offset(max(offset, 0)).limit(limit + 1).all()
    return {"data": [record_to_dict(r) for r in rows[:limit]], "hasMore": len(rows) > limit}


def all_entries(db: Session, stage: Stage, *, user_id: int) -> list:
    D = stage.record_model
    return (
        db.query(D)
          .options(selectinload(D.sizes))
          .filter(D.user_id == user_id)
          .order_by(D.created_at.desc(), D.id.desc())
          .all()
    )


def challan(db: Session, stage: Stage, *, user_id: int, record_id: int) -> dict:
    """Record with sizes, update log and the next-stage assignments made from it."""
    record = get_own_record(db, stage, user_id=user_id, record_id=record_id)
    onward = []
    for next_s, fk in downstream_stages(stage):
        M = next_s.assignment_model
        for a in db.query(M).filter(getattr(M, fk) == record.id).order_by(M.assigned_on, M.id).all():
            onward.append({
                "stage": next_s.label,
                "assignee": a.user.username if a.user else None,
                "sizes": a.sizes_json,
                "assigned_on": a.assigned_on,
                "state": a.state,
            })
    return {
        "stage": stage.label,
        "record": record,
        "user": record.user,
        "sizes": list(record.sizes),
        "updates": list(record.updates),
        "assignments": onward,
    }

# services/assignments.py
"""
Assignment / approval state machine.

    pending (is_approved NULL) -> approved (True) | denied (False)

Both outcomes are terminal for an assignment row. A denied lot moves again only
when the manager creates a fresh assignment.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from database import transaction
from errors import ValidationError, AuthorizationError, NotFoundError, DuplicateError
from models import User, CuttingLot
from utils.pieces import parse_pieces
from services.rewash import has_pending_rewash
from services.stages import Stage, WASHING_IN, chain_for, upstream_ledger

logger = logging.getLogger(__name__)

MANAGER_ROLES = ("operator", "admin")


def _source_labels(source) -> list[str]:
    return [s.size_label for s in source.sizes]


def _parse_assigned_sizes(sizes: dict | None, source) -> dict | None:
    if sizes is None:
        return None
    known = set(_source_labels(source))
    out = {}
    for label, raw in sizes.items():
        label = str(label).strip()
        if label not in known:
            raise ValidationError(f"Size [{label}] is not part of lot {source.lot_no}")
        n = parse_pieces(raw, strict=True)
        if n > 0:
            out[label] = n
    if not out:
        raise ValidationError("No pieces selected for assignment")
    return out


def create_assignment(
    db: Session,
    stage: Stage,
    *,
    assigner: User,
    assignee_id: int,
    source,
    sizes: dict | None = None,
    remark: str | None = None,
):
    """Delegate a source record (cutting lot or upstream production) to a stage worker."""
    if source is None:
        raise ValidationError("Source record not found")
    fk = stage.source_fk(source)
    if fk is None:
        raise ValidationError(f"{stage.label} cannot be assigned from {type(source).__name__}")

    lot_no = source.lot_no
    if stage not in chain_for(lot_no):
        raise ValidationError(f"{stage.label} does not apply to lot {lot_no}")
    if not isinstance(source, CuttingLot) and upstream_ledger(stage, lot_no).record_model is not type(source):
        raise ValidationError(f"{stage.label} for lot {lot_no} must be assigned from the previous stage")

    if assigner.role_name not in MANAGER_ROLES and source.user_id != assigner.id:
        raise AuthorizationError(f"Lot {lot_no} does not belong to you")

    assignee = db.get(User, assignee_id) if assignee_id else None
    if assignee is None or not assignee.is_active or assignee.role_name != stage.role:
        raise ValidationError(f"Assignee must be an active {stage.role} user")

    if stage is WASHING_IN and has_pending_rewash(db, source.id):
        raise ValidationError(f"Lot {lot_no} has a pending rewash request")

    sizes_json = _parse_assigned_sizes(sizes, source)

    M = stage.assignment_model
    pending = (
        db.query(M.id)
          .filter(getattr(M, fk) == source.id, M.user_id == assignee.id, M.is_approved.is_(None))
          .first()
    )
    if pending:
        raise DuplicateError(f"Lot {lot_no} already has a pending {stage.label} assignment for {assignee.username}")

    with transaction(db):
        a = M(assigner_id=assigner.id, user_id=assignee.id, sizes_json=sizes_json,
              assignment_remark=remark or None)
        setattr(a, fk, source.id)
        db.add(a)
        db.flush()

    db.refresh(a)
    logger.info("%s assignment %s: lot %s %s -> %s", stage.label, a.id, lot_no,
                assigner.username, assignee.username)
    return a


def _get_pending_own(db: Session, stage: Stage, assignment_id: int, user_id: int):
    M = stage.assignment_model
    a = db.query(M).filter(M.id == assignment_id, M.user_id == user_id).first()
    if not a:
        raise NotFoundError("Assignment not found")
    if a.is_approved is not None:
        raise ValidationError(f"Assignment already {a.state}")
    return a


def approve(db: Session, stage: Stage, *, assignment_id: int, approver_id: int, remark: str | None = None):
    a = _get_pending_own(db, stage, assignment_id, approver_id)
    with transaction(db):
        a.is_approved = True
        a.approved_on = datetime.now(timezone.utc)
        a.assignment_remark = (remark or "").strip() or None
    logger.info("%s assignment %s approved by user %s", stage.label, a.id, approver_id)
    return a


def deny(db: Session, stage: Stage, *, assignment_id: int, approver_id: int, remark: str | None):
    remark = (remark or "").strip()
    if not remark:
        raise ValidationError("Denial remark is required")
    a = _get_pending_own(db, stage, assignment_id, approver_id)
    with transaction(db):
        a.is_approved = False
        a.approved_on = datetime.now(timezone.utc)
        a.assignment_remark = remark
    logger.info("%s assignment %s denied by user %s: %s", stage.label, a.id, approver_id, remark)
    return a


def list_pending(db: Session, stage: Stage, user_id: int) -> list:
    M = stage.assignment_model
    return (
        db.query(M)
          .filter(M.user_id == user_id, M.is_approved.is_(None))
          .order_by(M.assigned_on.desc(), M.id.desc())
          .all()
    )


def list_approved_open(db: Session, stage: Stage, user_id: int) -> list:
    """Approved assignments whose lot has no production by this user yet."""
    M, D = stage.assignment_model, stage.record_model
    rows = (
        db.query(M)
          .filter(M.user_id == user_id, M.is_approved.is_(True))
          .order_by(M.assigned_on.desc(), M.id.desc())
          .all()
    )
    done = {
        lot for (lot,) in db.query(D.lot_no).filter(D.user_id == user_id).distinct().all()
    }
    return [a for a in rows if a.lot_no not in done]


def assignment_to_dict(a) -> dict:
    return {
        "id": a.id,
        "lot_no": a.lot_no,
        "sku": getattr(a.source, "sku", None),
        "assigner": a.assigner.username if a.assigner else None,
        "assignee": a.user.username if a.user else None,
        "sizes": a.sizes_json,
        "assigned_on": a.assigned_on,
        "is_approved": a.is_approved,
        "state": a.state,
        "approved_on": a.approved_on,
        "remark": a.assignment_remark,
    }

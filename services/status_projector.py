# services/status_projector.py
"""
Pipeline status per lot ("PIC report").

``project`` is pure: it takes a ``LotPipeline`` snapshot and derives one
status string per department. ``load_pipelines`` builds the snapshots from
the database; ``build_pic_report`` applies the dashboard filters.

Status priority for each department in the lot's chain:

1. no assignment          -> "In <previous>"; later departments inherit it
2. assignment pending     -> "Pending Approval by <op>"; later: "In <this>"
3. assignment denied      -> "Denied by <op>"; later: "In <this>"
4. approved, nothing made -> "In-Line"
5. made >= upstream > 0   -> "Completed"
6. otherwise              -> "<upstream - made> Pending"

Departments outside the lot's chain report "N/A".
"""
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from models import CuttingLot
from services.stages import STAGES, chain_for, is_denim_lot, join_source_lots, lot_type as lot_type_of

NA = "N/A"

# report column prefix -> stage key
DEPARTMENTS = {
    "stitching": "stitching",
    "assembly": "jeans_assembly",
    "washing": "washing",
    "washing_in": "washing_in",
    "finishing": "finishing",
}
STAGE_TO_DEPARTMENT = {v: k for k, v in DEPARTMENTS.items()}


@dataclass
class StageState:
    has_assignment: bool = False
    is_approved: bool | None = None
    op: str | None = None
    assigned_on: datetime | None = None
    approved_on: datetime | None = None
    produced: int = 0


@dataclass
class LotPipeline:
    lot_no: str
    sku: str | None = None
    total_pieces: int = 0
    created_at: datetime | None = None
    created_by: str | None = None
    remark: str | None = None
    stages: dict = field(default_factory=dict)   # stage key -> StageState


def project(lot: LotPipeline) -> dict:
    row = {
        "lot_no": lot.lot_no,
        "sku": lot.sku,
        "lot_type": lot_type_of(lot.lot_no),
        "total_cut": lot.total_pieces,
        "created_at": lot.created_at,
        "created_by": lot.created_by,
        "remark": lot.remark,
        "cutting_status": "Completed",
    }
    for dept in DEPARTMENTS:
        row[f"{dept}_status"] = NA
        row[f"{dept}_op"] = None
        row[f"{dept}_assigned_on"] = None
        row[f"{dept}_approved_on"] = None
        row[f"{dept}_qty"] = 0

    prev_label, upstream = "Cutting", int(lot.total_pieces or 0)
    blocked = None
    for stage in chain_for(lot.lot_no):
        dept = STAGE_TO_DEPARTMENT[stage.key]
        st = lot.stages.get(stage.key) or StageState()
        row[f"{dept}_op"] = st.op
        row[f"{dept}_assigned_on"] = st.assigned_on
        row[f"{dept}_approved_on"] = st.approved_on
        row[f"{dept}_qty"] = st.produced

        if blocked:
            row[f"{dept}_status"] = blocked
            continue

        if not st.has_assignment:
            status = f"In {prev_label}"
            blocked = status
        elif st.is_approved is None:
            status = f"Pending Approval by {st.op}"
            blocked = f"In {stage.label}"
        elif st.is_approved is False:
            status = f"Denied by {st.op}"
            blocked = f"In {stage.label}"
        elif st.produced == 0:
            status = "In-Line"
        elif upstream > 0 and st.produced >= upstream:
            status = "Completed"
        else:
            status = f"{upstream - st.produced} Pending"

        row[f"{dept}_status"] = status
        prev_label, upstream = stage.label, st.produced
    return row


def department_status(row: dict, department: str) -> tuple[bool, str]:
    """(show_row, status) of one department; "all" means the last applicable one."""
    denim = is_denim_lot(row["lot_no"])
    if department == "all":
        for dept in reversed(list(DEPARTMENTS)):
            status = row[f"{dept}_status"]
            if not status.startswith(NA):
                return True, status
        return True, row["stitching_status"]
    if department == "cutting":
        return True, "Completed"
    if department in ("assembly", "washing", "washing_in") and not denim:
        return False, NA
    if department in DEPARTMENTS:
        return True, row[f"{department}_status"]
    return True, NA


def status_matches(actual: str, wanted: str) -> bool:
    if not wanted or wanted == "all":
        return True
    actual = actual.lower()
    if wanted == "not_assigned":
        return actual.startswith("in ")
    if wanted == "inline":
        return "in-line" in actual
    return wanted.lower() in actual


# ---------- Loading ----------
def _latest_assignments(db: Session, stage, lot_nos: set[str]) -> dict:
    M = stage.assignment_model
    rels = [getattr(M, fk[:-3]) for fk in stage.sources.values()]
    q, lot_cols = join_source_lots(db.query(M), stage)
    q = (
        q.options(selectinload(M.user), *[selectinload(r) for r in rels])
         .filter(or_(*[c.in_(sorted(lot_nos)) for c in lot_cols]))
    )
    latest = {}
    for a in q.order_by(M.assigned_on, M.id).all():
        latest[a.lot_no] = a   # later rows overwrite earlier ones
    return latest


def _produced(db: Session, stage, lot_nos: set[str]) -> dict:
    D = stage.record_model
    rows = (
        db.query(D.lot_no, func.coalesce(func.sum(D.total_pieces), 0))
          .filter(D.lot_no.in_(sorted(lot_nos)))
          .group_by(D.lot_no)
          .all()
    )
    return {lot_no: int(total or 0) for lot_no, total in rows}


def load_pipelines(db: Session, *, lot_type: str = "all", lot_nos: list[str] | None = None) -> list[LotPipeline]:
    q = db.query(CuttingLot).options(selectinload(CuttingLot.user))
    if lot_nos is not None:
        q = q.filter(CuttingLot.lot_no.in_(lot_nos))
    lots = q.order_by(CuttingLot.created_at.desc(), CuttingLot.id.desc()).all()
    if lot_type in ("denim", "hosiery"):
        lots = [lot for lot in lots if lot_type_of(lot.lot_no) == lot_type]
    if not lots:
        return []

    wanted = {lot.lot_no for lot in lots}
    per_stage = {
        key: (_latest_assignments(db, stage, wanted), _produced(db, stage, wanted))
        for key, stage in STAGES.items()
    }

    out = []
    for lot in lots:
        p = LotPipeline(
            lot_no=lot.lot_no,
            sku=lot.sku,
            total_pieces=lot.total_pieces,
            created_at=lot.created_at,
            created_by=lot.user.username if lot.user else None,
            remark=lot.remark,
        )
        for key, (assignments, produced) in per_stage.items():
            a = assignments.get(lot.lot_no)
            p.stages[key] = StageState(
                has_assignment=a is not None,
                is_approved=a.is_approved if a else None,
                op=a.user.username if a and a.user else None,
                assigned_on=a.assigned_on if a else None,
                approved_on=a.approved_on if a else None,
                produced=produced.get(lot.lot_no, 0),
            )
        out.append(p)
    return out


def lot_status(db: Session, lot_no: str) -> dict | None:
    rows = load_pipelines(db, lot_nos=[lot_no])
    return project(rows[0]) if rows else None


def _as_date(value) -> date | None:
    if value is None:
        return None
    return value.date() if isinstance(value, datetime) else value


def _in_range(value, start: date | None, end: date | None) -> bool:
    d = _as_date(value)
    if d is None:
        return False
    return (start is None or d >= start) and (end is None or d <= end)


def build_pic_report(
    db: Session,
    *,
    lot_type: str = "all",
    department: str = "all",
    status: str = "all",
    date_filter: str = "created_at",
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    rows = []
    for pipeline in load_pipelines(db, lot_type=lot_type):
        row = project(pipeline)

        if start_date or end_date:
            if date_filter == "assigned_on":
                if department in DEPARTMENTS:
                    when = row[f"{department}_assigned_on"]
                else:
                    when = next(
                        (row[f"{d}_assigned_on"] for d in reversed(list(DEPARTMENTS)) if row[f"{d}_assigned_on"]),
                        None,
                    )
            else:
                when = row["created_at"]
            if not _in_range(when, start_date, end_date):
                continue

        show, actual = department_status(row, department)
        if not show or not status_matches(actual, status):
            continue
        row["status"] = actual
        rows.append(row)
    return rows


PIC_COLUMNS = [
    ("Lot No", "lot_no"), ("SKU", "sku"), ("Lot Type", "lot_type"), ("Total Cut", "total_cut"),
    ("Created At", "created_at"), ("Created By", "created_by"), ("Remark", "remark"),
    ("Stitching Op", "stitching_op"), ("Stitching Status", "stitching_status"),
    ("Assembly Op", "assembly_op"), ("Assembly Status", "assembly_status"),
    ("Washing Op", "washing_op"), ("Washing Status", "washing_status"),
    ("Washing In Op", "washing_in_op"), ("Washing In Status", "washing_in_status"),
    ("Finishing Op", "finishing_op"), ("Finishing Status", "finishing_status"),
    ("Status", "status"),
]

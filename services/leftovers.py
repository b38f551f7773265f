# services/leftovers.py
"""
Leftover / remainder calculator.

remain(lot, size) = produced upstream - consumed downstream, recomputed from
live aggregates on every call. Checks use the unclamped value; only display
values are clamped at zero.

Pieces out on a pending rewash still belong to washing: they count as taken
from assembly until the rewash comes back.
"""
from sqlalchemy import func
from sqlalchemy.orm import Session

from errors import InsufficientRemainderError
from models import CuttingLot, FinishingDispatch, RewashRequest, RewashRequestSize
from services.stages import Ledger, WASHING


def remainder(produced: int, consumed: int) -> int:
    return int(produced or 0) - int(consumed or 0)


def clamp(value: int) -> int:
    return value if value > 0 else 0


def ledger_total(db: Session, ledger: Ledger, lot_no: str, size_label: str | None = None) -> int:
    q = (
        db.query(func.coalesce(func.sum(ledger.pieces), 0))
          .select_from(ledger.size_model)
          .join(ledger.parent)
          .filter(ledger.record_model.lot_no == lot_no)
    )
    if size_label is not None:
        q = q.filter(ledger.size_model.size_label == size_label)
    return int(q.scalar() or 0)


def ledger_totals_by_size(db: Session, ledger: Ledger, lot_no: str) -> dict[str, int]:
    rows = (
        db.query(ledger.size_model.size_label, func.coalesce(func.sum(ledger.pieces), 0))
          .select_from(ledger.size_model)
          .join(ledger.parent)
          .filter(ledger.record_model.lot_no == lot_no)
          .group_by(ledger.size_model.size_label)
          .order_by(func.min(ledger.size_model.id))
          .all()
    )
    return {label: int(total or 0) for label, total in rows}


def pending_rewash_by_size(db: Session, lot_no: str) -> dict[str, int]:
    rows = (
        db.query(RewashRequestSize.size_label, func.coalesce(func.sum(RewashRequestSize.pieces_requested), 0))
          .join(RewashRequest, RewashRequestSize.rewash_request_id == RewashRequest.id)
          .filter(RewashRequest.lot_no == lot_no, RewashRequest.status == "pending")
          .group_by(RewashRequestSize.size_label)
          .all()
    )
    return {label: int(n or 0) for label, n in rows}


def consumed_total(db: Session, ledger: Ledger, lot_no: str, size_label: str) -> int:
    """Pieces a downstream ledger has taken from its upstream for one size."""
    total = ledger_total(db, ledger, lot_no, size_label)
    if ledger is WASHING.ledger:
        total += pending_rewash_by_size(db, lot_no).get(size_label, 0)
    return total


def consumed_by_size(db: Session, ledger: Ledger, lot_no: str) -> dict[str, int]:
    used = ledger_totals_by_size(db, ledger, lot_no)
    if ledger is WASHING.ledger:
        for label, n in pending_rewash_by_size(db, lot_no).items():
            used[label] = used.get(label, 0) + n
    return used


def remain(db: Session, upstream: Ledger, downstream: Ledger, lot_no: str, size_label: str) -> int:
    return remainder(
        ledger_total(db, upstream, lot_no, size_label),
        consumed_total(db, downstream, lot_no, size_label),
    )


def check_remain(
    db: Session,
    upstream: Ledger,
    downstream: Ledger,
    lot_no: str,
    size_label: str,
    requested: int,
    message: str | None = None,
) -> int:
    available = remain(db, upstream, downstream, lot_no, size_label)
    if requested > available:
        raise InsufficientRemainderError(
            size_label,
            available,
            message.format(requested=requested, size=size_label, remain=clamp(available)) if message else None,
        )
    return available


def size_breakdown(db: Session, upstream: Ledger, downstream: Ledger, lot_no: str) -> list[dict]:
    """Per upstream size: total, already used downstream, clamped remainder."""
    produced = ledger_totals_by_size(db, upstream, lot_no)
    used = consumed_by_size(db, downstream, lot_no)
    return [
        {
            "size_label": label,
            "total_pieces": total,
            "used": used.get(label, 0),
            "remain": clamp(remainder(total, used.get(label, 0))),
        }
        for label, total in produced.items()
    ]


def lock_lot(db: Session, lot_no: str) -> CuttingLot | None:
    """Row-lock the lot so concurrent consumers of the same lot run one at a time."""
    return (
        db.query(CuttingLot)
          .filter(CuttingLot.lot_no == lot_no)
          .with_for_update()
          .first()
    )


# ---------- Finishing -> dispatch ----------
def dispatched_by_size(db: Session, finishing_data_id: int) -> dict[str, int]:
    rows = (
        db.query(FinishingDispatch.size_label, func.coalesce(func.sum(FinishingDispatch.quantity), 0))
          .filter(FinishingDispatch.finishing_data_id == finishing_data_id)
          .group_by(FinishingDispatch.size_label)
          .all()
    )
    return {label: int(qty or 0) for label, qty in rows}


def dispatch_available(db: Session, record) -> dict[str, int]:
    """Undispatched pieces per size of one finishing record (unclamped)."""
    sent = dispatched_by_size(db, record.id)
    return {s.size_label: remainder(s.pieces, sent.get(s.size_label, 0)) for s in record.sizes}

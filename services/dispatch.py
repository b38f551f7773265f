# services/dispatch.py
import logging

from sqlalchemy.orm import Session

from database import transaction
from errors import ValidationError, InsufficientRemainderError
from models import FinishingDispatch
from services import leftovers
from services.production import get_own_record
from services.stages import FINISHING
from utils.pieces import parse_pieces
from utils.sequencer import next_challan_no

logger = logging.getLogger(__name__)


def _resolve_destination(destination: str | None, custom_destination: str | None) -> str:
    dest = (destination or "").strip()
    if not dest:
        raise ValidationError("Destination is required")
    if dest.lower() == "other":
        custom = (custom_destination or "").strip()
        if not custom:
            raise ValidationError("Custom destination is required when destination is 'other'")
        return custom
    return dest


def dispatch_view(db: Session, *, user_id: int, record_id: int) -> dict:
    record = get_own_record(db, FINISHING, user_id=user_id, record_id=record_id)
    sent = leftovers.dispatched_by_size(db, record.id)
    sizes = [
        {
            "size_label": s.size_label,
            "produced": s.pieces,
            "dispatched": sent.get(s.size_label, 0),
            "available": leftovers.clamp(leftovers.remainder(s.pieces, sent.get(s.size_label, 0))),
        }
        for s in record.sizes
    ]
    return {
        "id": record.id,
        "lot_no": record.lot_no,
        "sku": record.sku,
        "sizes": sizes,
        "fully_dispatched": is_fully_dispatched(db, record),
    }


def dispatch(
    db: Session,
    *,
    user_id: int,
    record_id: int,
    destination: str | None,
    custom_destination: str | None = None,
    quantities: dict,
) -> list[FinishingDispatch]:
    """Send finished pieces out. All rows of one call share a challan number."""
    record = get_own_record(db, FINISHING, user_id=user_id, record_id=record_id)
    dest = _resolve_destination(destination, custom_destination)

    wanted = {}
    for label, raw in (quantities or {}).items():
        n = parse_pieces(raw, strict=True)
        if n > 0:
            wanted[str(label).strip()] = n
    if not wanted:
        raise ValidationError("No quantity to dispatch")

    rows = []
    with transaction(db):
        leftovers.lock_lot(db, record.lot_no)
        available = leftovers.dispatch_available(db, record)
        for label, n in wanted.items():
            if label not in available:
                raise ValidationError(f"Size [{label}] not found in finishing entry")
            if n > available[label]:
                raise InsufficientRemainderError(label, available[label])

        challan_no = next_challan_no(db)
        for label, n in wanted.items():
            row = FinishingDispatch(
                finishing_data_id=record.id,
                lot_no=record.lot_no,
                challan_no=challan_no,
                destination=dest,
                size_label=label,
                quantity=n,
                user_id=user_id,
            )
            db.add(row)
            rows.append(row)
        db.flush()

    logger.info("Dispatched %s pcs of lot %s to %s (%s)", sum(wanted.values()), record.lot_no, dest, challan_no)
    return rows


def dispatch_all(db: Session, *, user_id: int, record_id: int, destination: str | None,
                 custom_destination: str | None = None) -> list[FinishingDispatch]:
    record = get_own_record(db, FINISHING, user_id=user_id, record_id=record_id)
    remaining = {label: n for label, n in leftovers.dispatch_available(db, record).items() if n > 0}
    if not remaining:
        raise ValidationError(f"Lot {record.lot_no} is already fully dispatched")
    return dispatch(db, user_id=user_id, record_id=record_id, destination=destination,
                    custom_destination=custom_destination, quantities=remaining)


def is_fully_dispatched(db: Session, record) -> bool:
    return all(n <= 0 for n in leftovers.dispatch_available(db, record).values())

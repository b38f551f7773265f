# services/cutting.py
import logging

from sqlalchemy.orm import Session, selectinload

from database import transaction
from errors import ValidationError, NotFoundError
from models import CuttingLot, CuttingLotSize, CuttingLotRoll, User
from utils.pieces import parse_pieces
from utils.sequencer import next_lot_no

logger = logging.getLogger(__name__)


def create_lot(
    db: Session,
    *,
    manager: User,
    sku: str,
    fabric_type: str | None = None,
    sizes: dict,                 # {size_label: pattern_count}
    rolls: list[dict],           # [{roll_no, weight_used, layers}]
    remark: str | None = None,
    image_url: str | None = None,
) -> CuttingLot:
    sku = (sku or "").strip()
    if not sku:
        raise ValidationError("SKU is required")

    patterns: dict[str, int] = {}
    for label, raw in (sizes or {}).items():
        label = str(label).strip()
        count = parse_pieces(raw, strict=True)
        if not label or count <= 0:
            raise ValidationError(f"Invalid pattern count for size [{label}]")
        patterns[label] = count
    if not patterns:
        raise ValidationError("At least one size is required")

    roll_rows = []
    for r in rolls or []:
        layers = parse_pieces(r.get("layers"), strict=True)
        roll_no = str(r.get("roll_no") or "").strip()
        if not roll_no:
            raise ValidationError("Roll number is required")
        roll_rows.append(CuttingLotRoll(roll_no=roll_no, weight_used=r.get("weight_used"), layers=layers))
    total_layers = sum(r.layers for r in roll_rows)
    if total_layers <= 0:
        raise ValidationError("Total layers must be greater than zero")

    with transaction(db):
        lot = CuttingLot(
            lot_no=next_lot_no(db, manager),
            sku=sku,
            fabric_type=fabric_type,
            remark=remark,
            image_url=image_url,
            user_id=manager.id,
        )
        lot.rolls = roll_rows
        lot.sizes = [
            CuttingLotSize(size_label=label, pattern_count=count, total_pieces=count * total_layers)
            for label, count in patterns.items()
        ]
        lot.total_pieces = sum(s.total_pieces for s in lot.sizes)
        db.add(lot)
        db.flush()

    db.refresh(lot)
    logger.info("Cutting lot %s created by %s (%s pcs)", lot.lot_no, manager.username, lot.total_pieces)
    return lot


def list_lots(db: Session, *, user: User | None = None, search: str | None = None,
              offset: int = 0, limit: int = 50) -> dict:
    q = db.query(CuttingLot).options(selectinload(CuttingLot.sizes))
    if user is not None:
        q = q.filter(CuttingLot.user_id == user.id)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(CuttingLot.lot_no.ilike(like) | CuttingLot.sku.ilike(like))
    rows = q.order_by(CuttingLot.id.desc()).offset(offset).limit(limit + 1).all()
    return {"data": rows[:limit], "hasMore": len(rows) > limit}


def get_lot(db: Session, lot_id: int) -> CuttingLot:
    lot = db.get(CuttingLot, lot_id)
    if not lot:
        raise NotFoundError("Cutting lot not found")
    return lot

# utils/sequencer.py
import re
from datetime import date

from sqlalchemy import text, select
from sqlalchemy.orm import Session

from config import settings
from models import DocCounter, CuttingLot, User


def _max_suffix(db: Session, col, prefix: str, *filters) -> int:
    """Largest trailing number among existing codes (seeds a fresh counter)."""
    pat = re.compile(rf"^{re.escape(prefix)}(\d+)$", re.IGNORECASE)
    max_n = 0
    for (code,) in db.query(col).filter(col.ilike(f"{prefix}%"), *filters).all():
        m = pat.match(code or "")
        if m:
            max_n = max(max_n, int(m.group(1)))
    return max_n


def next_sequence(db: Session, doc_type: str, scope: str, seed: int = 0) -> int:
    """
    Atomic read-increment-write on doc_counters[(doc_type, scope)].
    Runs inside the caller's transaction; the row stays locked until it commits.
    """
    dialect = db.bind.dialect.name

    if dialect == "postgresql":
        return db.execute(
            text("""
            INSERT INTO doc_counters (doc_type, scope, seq)
            VALUES (:t, :s, :seed + 1)
            ON CONFLICT (doc_type, scope)
            DO UPDATE SET seq = doc_counters.seq + 1
            RETURNING seq
            """),
            {"t": doc_type, "s": scope, "seed": seed},
        ).scalar_one()

    # generic path: lock the counter row (SQLite ignores FOR UPDATE)
    q = (
        select(DocCounter)
        .where(DocCounter.doc_type == doc_type, DocCounter.scope == scope)
        .with_for_update()
    )
    row = db.execute(q).scalar_one_or_none()
    if row is None:
        row = DocCounter(doc_type=doc_type, scope=scope, seq=seed + 1)
        db.add(row)
    else:
        row.seq += 1
    db.flush()
    return row.seq


def lot_prefix(username: str) -> str:
    return re.sub(r"\s+", "", username or "").lower()[:2]


def next_lot_no(db: Session, user: User) -> str:
    """<2-letter username prefix><n>, numbered per creating user."""
    prefix = lot_prefix(user.username)
    seed = _max_suffix(db, CuttingLot.lot_no, prefix, CuttingLot.user_id == user.id)
    seq = next_sequence(db, "LOT", str(user.id), seed=seed)
    return f"{prefix}{seq}"


def fiscal_year(on: date | None = None) -> str:
    """April-March fiscal year rendered as YY-YY, e.g. 25-26."""
    on = on or date.today()
    start = on.year if on.month >= settings.FISCAL_YEAR_START_MONTH else on.year - 1
    return f"{start % 100:02d}-{(start + 1) % 100:02d}"


def next_challan_no(db: Session, prefix: str = "DC", on: date | None = None) -> str:
    fy = fiscal_year(on)
    seq = next_sequence(db, prefix, fy)
    return f"{prefix}/{fy}/{seq}"

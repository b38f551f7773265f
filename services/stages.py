# services/stages.py
"""
Stage registry.

A *ledger* is a (record table, size table) pair holding per-size piece counts
for one step of the chain. A *stage* adds the assignment table that feeds it,
the role of its workers and the upstream records it may be sourced from.
"""
from dataclasses import dataclass, field

from config import settings
from errors import ValidationError
from models import (
    CuttingLot, CuttingLotSize,
    StitchingAssignment, StitchingData, StitchingDataSize, StitchingDataUpdate,
    JeansAssemblyAssignment, JeansAssemblyData, JeansAssemblyDataSize, JeansAssemblyDataUpdate,
    WashingAssignment, WashingData, WashingDataSize, WashingDataUpdate,
    WashingInAssignment, WashingInData, WashingInDataSize, WashingInDataUpdate,
    FinishingAssignment, FinishingData, FinishingDataSize, FinishingDataUpdate,
)


@dataclass(frozen=True)
class Ledger:
    key: str
    record_model: type
    size_model: type
    pieces_attr: str = "pieces"
    parent_attr: str = "record"

    @property
    def pieces(self):
        return getattr(self.size_model, self.pieces_attr)

    @property
    def parent(self):
        return getattr(self.size_model, self.parent_attr)


@dataclass(frozen=True, eq=False)
class Stage:
    key: str                 # jeans_assembly
    label: str               # Assembly (status text)
    slug: str                # jeans-assembly (url prefix)
    role: str                # role of the worker who approves and produces
    assignment_model: type
    ledger: Ledger
    update_model: type
    # upstream record model -> assignment FK column
    sources: dict = field(default_factory=dict)
    denim_only: bool = False

    @property
    def record_model(self):
        return self.ledger.record_model

    @property
    def size_model(self):
        return self.ledger.size_model

    def source_fk(self, source) -> str | None:
        return self.sources.get(type(source))


CUTTING = Ledger("cutting", CuttingLot, CuttingLotSize, pieces_attr="total_pieces", parent_attr="lot")

STITCHING = Stage(
    key="stitching", label="Stitching", slug="stitching", role="stitching_master",
    assignment_model=StitchingAssignment,
    ledger=Ledger("stitching", StitchingData, StitchingDataSize),
    update_model=StitchingDataUpdate,
    sources={CuttingLot: "cutting_lot_id"},
)
JEANS_ASSEMBLY = Stage(
    key="jeans_assembly", label="Assembly", slug="jeans-assembly", role="jeans_assembly",
    assignment_model=JeansAssemblyAssignment,
    ledger=Ledger("jeans_assembly", JeansAssemblyData, JeansAssemblyDataSize),
    update_model=JeansAssemblyDataUpdate,
    sources={StitchingData: "stitching_data_id"},
    denim_only=True,
)
WASHING = Stage(
    key="washing", label="Washing", slug="washing", role="washing",
    assignment_model=WashingAssignment,
    ledger=Ledger("washing", WashingData, WashingDataSize),
    update_model=WashingDataUpdate,
    sources={JeansAssemblyData: "jeans_assembly_data_id"},
    denim_only=True,
)
WASHING_IN = Stage(
    key="washing_in", label="WashingIn", slug="washing-in", role="washing_in",
    assignment_model=WashingInAssignment,
    ledger=Ledger("washing_in", WashingInData, WashingInDataSize),
    update_model=WashingInDataUpdate,
    sources={WashingData: "washing_data_id"},
    denim_only=True,
)
FINISHING = Stage(
    key="finishing", label="Finishing", slug="finishing", role="finishing",
    assignment_model=FinishingAssignment,
    ledger=Ledger("finishing", FinishingData, FinishingDataSize),
    update_model=FinishingDataUpdate,
    sources={StitchingData: "stitching_data_id", WashingInData: "washing_in_data_id"},
)

STAGES = {s.key: s for s in (STITCHING, JEANS_ASSEMBLY, WASHING, WASHING_IN, FINISHING)}

DENIM_CHAIN = (STITCHING, JEANS_ASSEMBLY, WASHING, WASHING_IN, FINISHING)
NON_DENIM_CHAIN = (STITCHING, FINISHING)


def is_denim_lot(lot_no: str | None) -> bool:
    code = (lot_no or "").strip().upper()
    return any(code.startswith(p.upper()) for p in settings.DENIM_LOT_PREFIXES)


def lot_type(lot_no: str | None) -> str:
    return "denim" if is_denim_lot(lot_no) else "hosiery"


def chain_for(lot_no: str) -> tuple:
    return DENIM_CHAIN if is_denim_lot(lot_no) else NON_DENIM_CHAIN


def upstream_ledger(stage: Stage, lot_no: str) -> Ledger:
    """Ledger whose pieces the given stage consumes for this lot."""
    chain = chain_for(lot_no)
    if stage not in chain:
        raise ValidationError(f"{stage.label} does not apply to lot {lot_no}")
    idx = chain.index(stage)
    return CUTTING if idx == 0 else chain[idx - 1].ledger


def next_stage(stage: Stage, lot_no: str) -> Stage | None:
    chain = chain_for(lot_no)
    if stage not in chain:
        return None
    idx = chain.index(stage)
    return chain[idx + 1] if idx + 1 < len(chain) else None


def downstream_stages(stage: Stage) -> list[tuple[Stage, str]]:
    """(stage, FK column) pairs whose assignments can be sourced from this stage's records."""
    out = []
    for s in STAGES.values():
        fk = s.sources.get(stage.record_model)
        if fk:
            out.append((s, fk))
    return out


def join_source_lots(query, stage: Stage):
    """Outer-join the stage's source tables onto an assignment query; returns (query, lot_no columns)."""
    M = stage.assignment_model
    cols = []
    for src, fk in stage.sources.items():
        query = query.outerjoin(src, getattr(M, fk) == src.id)
        cols.append(src.lot_no)
    return query, cols

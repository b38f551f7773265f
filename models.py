# models.py
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, ForeignKey, JSON,
    UniqueConstraint, Index, func,
)
from sqlalchemy.orm import relationship, declared_attr

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =========================================
# ================= Users =================
# =========================================
class Role(Base):
    __tablename__ = "roles"
    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, index=True, nullable=False)   # e.g. stitching_master, operator

    users = relationship("User", back_populates="role")

    def __repr__(self):
        return f"<Role(name={self.name})>"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False, default="")
    is_active = Column(Boolean, default=True, nullable=False)

    role_id = Column(Integer, ForeignKey("roles.id", ondelete="SET NULL"), nullable=True, index=True)
    role = relationship("Role", back_populates="users")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (Index("ix_users_active", "is_active"),)

    @property
    def role_name(self) -> str | None:
        return self.role.name if self.role else None

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username})>"


class DocCounter(Base):
    __tablename__ = "doc_counters"
    doc_type = Column(String, primary_key=True)   # "LOT", "DC"
    scope = Column(String, primary_key=True)      # user id for lots, fiscal year for challans
    seq = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("doc_type", "scope", name="uq_doc_counters_type_scope"),
    )


# =========================================
# ================ Cutting ================
# =========================================
class CuttingLot(Base):
    __tablename__ = "cutting_lots"
    id = Column(Integer, primary_key=True)
    lot_no = Column(String, unique=True, index=True, nullable=False)
    sku = Column(String, index=True, nullable=False)
    fabric_type = Column(String, nullable=True)
    remark = Column(Text, nullable=True)
    image_url = Column(String, nullable=True)
    total_pieces = Column(Integer, nullable=False, default=0)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)   # cutting manager
    user = relationship("User")

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    sizes = relationship("CuttingLotSize", back_populates="lot",
                         cascade="all, delete-orphan", order_by="CuttingLotSize.id")
    rolls = relationship("CuttingLotRoll", back_populates="lot",
                         cascade="all, delete-orphan", order_by="CuttingLotRoll.id")

    def __repr__(self):
        return f"<CuttingLot(lot_no={self.lot_no}, total={self.total_pieces})>"


class CuttingLotSize(Base):
    __tablename__ = "cutting_lot_sizes"
    id = Column(Integer, primary_key=True)
    cutting_lot_id = Column(Integer, ForeignKey("cutting_lots.id", ondelete="CASCADE"), nullable=False, index=True)
    size_label = Column(String, nullable=False)
    pattern_count = Column(Integer, nullable=False, default=0)
    total_pieces = Column(Integer, nullable=False, default=0)   # pattern_count x total layers

    lot = relationship("CuttingLot", back_populates="sizes")

    __table_args__ = (
        UniqueConstraint("cutting_lot_id", "size_label", name="uq_cutting_lot_sizes_label"),
    )


class CuttingLotRoll(Base):
    __tablename__ = "cutting_lot_rolls"
    id = Column(Integer, primary_key=True)
    cutting_lot_id = Column(Integer, ForeignKey("cutting_lots.id", ondelete="CASCADE"), nullable=False, index=True)
    roll_no = Column(String, nullable=False)
    weight_used = Column(Integer, nullable=True)
    layers = Column(Integer, nullable=False, default=0)

    lot = relationship("CuttingLot", back_populates="rolls")


# =========================================
# ========= Shared stage columns ==========
# =========================================
class AssignmentMixin:
    """Manager -> worker delegation. is_approved: None pending, False denied, True approved."""
    id = Column(Integer, primary_key=True)
    sizes_json = Column(JSON, nullable=True)   # {size_label: pieces}; None = whole source
    assigned_on = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    is_approved = Column(Boolean, nullable=True)
    approved_on = Column(DateTime(timezone=True), nullable=True)
    assignment_remark = Column(Text, nullable=True)

    @declared_attr
    def assigner_id(cls):
        return Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    @declared_attr
    def user_id(cls):
        return Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    @declared_attr
    def assigner(cls):
        return relationship("User", foreign_keys=f"{cls.__name__}.assigner_id")

    @declared_attr
    def user(cls):
        return relationship("User", foreign_keys=f"{cls.__name__}.user_id")

    @property
    def lot_no(self) -> str | None:
        src = self.source
        return src.lot_no if src is not None else None

    @property
    def state(self) -> str:
        if self.is_approved is None:
            return "pending"
        return "approved" if self.is_approved else "denied"

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, user_id={self.user_id}, state={self.state})>"


class ProductionMixin:
    """Pieces a worker actually produced for a lot at one stage."""
    id = Column(Integer, primary_key=True)
    lot_no = Column(String, index=True, nullable=False)
    sku = Column(String, nullable=True)
    total_pieces = Column(Integer, nullable=False, default=0)
    remark = Column(Text, nullable=True)
    image_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    @declared_attr
    def user_id(cls):
        return Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    @declared_attr
    def user(cls):
        return relationship("User")

    def recompute_total(self) -> int:
        self.total_pieces = sum(int(s.pieces or 0) for s in self.sizes)
        return self.total_pieces

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, lot_no={self.lot_no}, total={self.total_pieces})>"


class SizeMixin:
    id = Column(Integer, primary_key=True)
    size_label = Column(String, nullable=False)
    pieces = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class UpdateLogMixin:
    """Append-only log of increments (negative rows come from rewash debits)."""
    id = Column(Integer, primary_key=True)
    size_label = Column(String, nullable=False)
    pieces = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


# =========================================
# =============== Stitching ===============
# =========================================
class StitchingAssignment(AssignmentMixin, Base):
    __tablename__ = "stitching_assignments"
    cutting_lot_id = Column(Integer, ForeignKey("cutting_lots.id"), nullable=False, index=True)
    cutting_lot = relationship("CuttingLot")

    @property
    def source(self):
        return self.cutting_lot


class StitchingData(ProductionMixin, Base):
    __tablename__ = "stitching_data"
    assignment_id = Column(Integer, ForeignKey("stitching_assignments.id"), nullable=True, index=True)
    assignment = relationship("StitchingAssignment")

    sizes = relationship("StitchingDataSize", back_populates="record",
                         cascade="all, delete-orphan", order_by="StitchingDataSize.id")
    updates = relationship("StitchingDataUpdate", back_populates="record",
                           cascade="all, delete-orphan", order_by="StitchingDataUpdate.id")

    __table_args__ = (Index("ix_stitching_data_lot_user", "lot_no", "user_id"),)


class StitchingDataSize(SizeMixin, Base):
    __tablename__ = "stitching_data_sizes"
    stitching_data_id = Column(Integer, ForeignKey("stitching_data.id", ondelete="CASCADE"), nullable=False, index=True)
    record = relationship("StitchingData", back_populates="sizes")

    __table_args__ = (UniqueConstraint("stitching_data_id", "size_label", name="uq_stitching_data_sizes_label"),)


class StitchingDataUpdate(UpdateLogMixin, Base):
    __tablename__ = "stitching_data_updates"
    stitching_data_id = Column(Integer, ForeignKey("stitching_data.id", ondelete="CASCADE"), nullable=False, index=True)
    record = relationship("StitchingData", back_populates="updates")


# =========================================
# ============ Jeans assembly =============
# =========================================
class JeansAssemblyAssignment(AssignmentMixin, Base):
    __tablename__ = "jeans_assembly_assignments"
    stitching_data_id = Column(Integer, ForeignKey("stitching_data.id"), nullable=False, index=True)
    stitching_data = relationship("StitchingData")

    @property
    def source(self):
        return self.stitching_data


class JeansAssemblyData(ProductionMixin, Base):
    __tablename__ = "jeans_assembly_data"
    assignment_id = Column(Integer, ForeignKey("jeans_assembly_assignments.id"), nullable=True, index=True)
    assignment = relationship("JeansAssemblyAssignment")

    sizes = relationship("JeansAssemblyDataSize", back_populates="record",
                         cascade="all, delete-orphan", order_by="JeansAssemblyDataSize.id")
    updates = relationship("JeansAssemblyDataUpdate", back_populates="record",
                           cascade="all, delete-orphan", order_by="JeansAssemblyDataUpdate.id")

    __table_args__ = (Index("ix_jeans_assembly_data_lot_user", "lot_no", "user_id"),)


class JeansAssemblyDataSize(SizeMixin, Base):
    __tablename__ = "jeans_assembly_data_sizes"
    jeans_assembly_data_id = Column(Integer, ForeignKey("jeans_assembly_data.id", ondelete="CASCADE"), nullable=False, index=True)
    record = relationship("JeansAssemblyData", back_populates="sizes")

    __table_args__ = (UniqueConstraint("jeans_assembly_data_id", "size_label", name="uq_jeans_assembly_data_sizes_label"),)


class JeansAssemblyDataUpdate(UpdateLogMixin, Base):
    __tablename__ = "jeans_assembly_data_updates"
    jeans_assembly_data_id = Column(Integer, ForeignKey("jeans_assembly_data.id", ondelete="CASCADE"), nullable=False, index=True)
    record = relationship("JeansAssemblyData", back_populates="updates")


# =========================================
# ================ Washing ================
# =========================================
class WashingAssignment(AssignmentMixin, Base):
    __tablename__ = "washing_assignments"
    jeans_assembly_data_id = Column(Integer, ForeignKey("jeans_assembly_data.id"), nullable=False, index=True)
    jeans_assembly_data = relationship("JeansAssemblyData")

    @property
    def source(self):
        return self.jeans_assembly_data


class WashingData(ProductionMixin, Base):
    __tablename__ = "washing_data"
    assignment_id = Column(Integer, ForeignKey("washing_assignments.id"), nullable=True, index=True)
    assignment = relationship("WashingAssignment")

    sizes = relationship("WashingDataSize", back_populates="record",
                         cascade="all, delete-orphan", order_by="WashingDataSize.id")
    updates = relationship("WashingDataUpdate", back_populates="record",
                           cascade="all, delete-orphan", order_by="WashingDataUpdate.id")
    rewash_requests = relationship("RewashRequest", back_populates="washing_data")

    __table_args__ = (Index("ix_washing_data_lot_user", "lot_no", "user_id"),)


class WashingDataSize(SizeMixin, Base):
    __tablename__ = "washing_data_sizes"
    washing_data_id = Column(Integer, ForeignKey("washing_data.id", ondelete="CASCADE"), nullable=False, index=True)
    record = relationship("WashingData", back_populates="sizes")

    __table_args__ = (UniqueConstraint("washing_data_id", "size_label", name="uq_washing_data_sizes_label"),)


class WashingDataUpdate(UpdateLogMixin, Base):
    __tablename__ = "washing_data_updates"
    washing_data_id = Column(Integer, ForeignKey("washing_data.id", ondelete="CASCADE"), nullable=False, index=True)
    record = relationship("WashingData", back_populates="updates")


# =========================================
# =============== Washing in ==============
# =========================================
class WashingInAssignment(AssignmentMixin, Base):
    __tablename__ = "washing_in_assignments"
    washing_data_id = Column(Integer, ForeignKey("washing_data.id"), nullable=False, index=True)
    washing_data = relationship("WashingData")

    @property
    def source(self):
        return self.washing_data


class WashingInData(ProductionMixin, Base):
    __tablename__ = "washing_in_data"
    assignment_id = Column(Integer, ForeignKey("washing_in_assignments.id"), nullable=True, index=True)
    assignment = relationship("WashingInAssignment")

    sizes = relationship("WashingInDataSize", back_populates="record",
                         cascade="all, delete-orphan", order_by="WashingInDataSize.id")
    updates = relationship("WashingInDataUpdate", back_populates="record",
                           cascade="all, delete-orphan", order_by="WashingInDataUpdate.id")

    __table_args__ = (Index("ix_washing_in_data_lot_user", "lot_no", "user_id"),)


class WashingInDataSize(SizeMixin, Base):
    __tablename__ = "washing_in_data_sizes"
    washing_in_data_id = Column(Integer, ForeignKey("washing_in_data.id", ondelete="CASCADE"), nullable=False, index=True)
    record = relationship("WashingInData", back_populates="sizes")

    __table_args__ = (UniqueConstraint("washing_in_data_id", "size_label", name="uq_washing_in_data_sizes_label"),)


class WashingInDataUpdate(UpdateLogMixin, Base):
    __tablename__ = "washing_in_data_updates"
    washing_in_data_id = Column(Integer, ForeignKey("washing_in_data.id", ondelete="CASCADE"), nullable=False, index=True)
    record = relationship("WashingInData", back_populates="updates")


# =========================================
# =============== Finishing ===============
# =========================================
class FinishingAssignment(AssignmentMixin, Base):
    """Sourced from stitching (non-denim chain) or washing-in (denim chain)."""
    __tablename__ = "finishing_assignments"
    stitching_data_id = Column(Integer, ForeignKey("stitching_data.id"), nullable=True, index=True)
    washing_in_data_id = Column(Integer, ForeignKey("washing_in_data.id"), nullable=True, index=True)
    stitching_data = relationship("StitchingData")
    washing_in_data = relationship("WashingInData")

    @property
    def source(self):
        return self.washing_in_data if self.washing_in_data_id else self.stitching_data


class FinishingData(ProductionMixin, Base):
    __tablename__ = "finishing_data"
    assignment_id = Column(Integer, ForeignKey("finishing_assignments.id"), nullable=True, index=True)
    assignment = relationship("FinishingAssignment")

    sizes = relationship("FinishingDataSize", back_populates="record",
                         cascade="all, delete-orphan", order_by="FinishingDataSize.id")
    updates = relationship("FinishingDataUpdate", back_populates="record",
                           cascade="all, delete-orphan", order_by="FinishingDataUpdate.id")
    dispatches = relationship("FinishingDispatch", back_populates="record",
                              cascade="all, delete-orphan", order_by="FinishingDispatch.id")

    __table_args__ = (Index("ix_finishing_data_lot_user", "lot_no", "user_id"),)


class FinishingDataSize(SizeMixin, Base):
    __tablename__ = "finishing_data_sizes"
    finishing_data_id = Column(Integer, ForeignKey("finishing_data.id", ondelete="CASCADE"), nullable=False, index=True)
    record = relationship("FinishingData", back_populates="sizes")

    __table_args__ = (UniqueConstraint("finishing_data_id", "size_label", name="uq_finishing_data_sizes_label"),)


class FinishingDataUpdate(UpdateLogMixin, Base):
    __tablename__ = "finishing_data_updates"
    finishing_data_id = Column(Integer, ForeignKey("finishing_data.id", ondelete="CASCADE"), nullable=False, index=True)
    record = relationship("FinishingData", back_populates="updates")


class FinishingDispatch(Base):
    __tablename__ = "finishing_dispatches"
    id = Column(Integer, primary_key=True)
    finishing_data_id = Column(Integer, ForeignKey("finishing_data.id", ondelete="CASCADE"), nullable=False, index=True)
    lot_no = Column(String, index=True, nullable=False)
    challan_no = Column(String, index=True, nullable=False)
    destination = Column(String, nullable=False)
    size_label = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    sent_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    record = relationship("FinishingData", back_populates="dispatches")

    def __repr__(self):
        return f"<FinishingDispatch(lot_no={self.lot_no}, size={self.size_label}, qty={self.quantity})>"


# =========================================
# ================ Rewash =================
# =========================================
class RewashRequest(Base):
    __tablename__ = "rewash_requests"
    id = Column(Integer, primary_key=True)
    washing_data_id = Column(Integer, ForeignKey("washing_data.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    lot_no = Column(String, index=True, nullable=False)
    sku = Column(String, nullable=True)
    total_requested = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="pending")   # pending | completed
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    washing_data = relationship("WashingData", back_populates="rewash_requests")
    user = relationship("User")
    sizes = relationship("RewashRequestSize", back_populates="request",
                         cascade="all, delete-orphan", order_by="RewashRequestSize.id")

    __table_args__ = (Index("ix_rewash_requests_wd_status", "washing_data_id", "status"),)

    def __repr__(self):
        return f"<RewashRequest(id={self.id}, lot_no={self.lot_no}, status={self.status})>"


class RewashRequestSize(Base):
    __tablename__ = "rewash_request_sizes"
    id = Column(Integer, primary_key=True)
    rewash_request_id = Column(Integer, ForeignKey("rewash_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    size_label = Column(String, nullable=False)
    pieces_requested = Column(Integer, nullable=False)

    request = relationship("RewashRequest", back_populates="sizes")

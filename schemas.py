# schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class APIBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------- Cutting ----------
class RollIn(APIBase):
    roll_no: str
    weight_used: Optional[int] = None
    layers: Any = 0


class LotCreate(APIBase):
    sku: str
    fabric_type: Optional[str] = None
    remark: Optional[str] = None
    image_url: Optional[str] = None
    sizes: Dict[str, Any] = Field(default_factory=dict)     # size_label -> pattern count
    rolls: List[RollIn] = Field(default_factory=list)


class LotSizeOut(APIBase):
    size_label: str
    pattern_count: int
    total_pieces: int


class RollOut(APIBase):
    roll_no: str
    weight_used: Optional[int] = None
    layers: int


class CuttingLotOut(APIBase):
    id: int
    lot_no: str
    sku: str
    fabric_type: Optional[str] = None
    remark: Optional[str] = None
    image_url: Optional[str] = None
    total_pieces: int
    created_at: datetime
    sizes: List[LotSizeOut] = []
    rolls: List[RollOut] = []


# ---------- Assignments ----------
class AssignmentCreate(APIBase):
    source_id: int
    assignee_id: int
    sizes: Optional[Dict[str, Any]] = None     # None = whole source
    remark: Optional[str] = None


class ApprovalIn(APIBase):
    assignment_id: int
    remark: Optional[str] = None


class AssignmentOut(APIBase):
    id: int
    lot_no: Optional[str] = None
    sku: Optional[str] = None
    assigner: Optional[str] = None
    assignee: Optional[str] = None
    sizes: Optional[Dict[str, int]] = None
    assigned_on: datetime
    is_approved: Optional[bool] = None
    state: str
    approved_on: Optional[datetime] = None
    remark: Optional[str] = None


# ---------- Production ----------
class ProductionCreate(APIBase):
    assignment_id: int
    sizes: Dict[str, Any] = Field(default_factory=dict)
    remark: Optional[str] = None
    image_url: Optional[str] = None


class ProductionIncrement(APIBase):
    sizes: Dict[str, Any] = Field(default_factory=dict)


class LotSizeRemain(APIBase):
    size_label: str
    total_pieces: int
    used: int
    remain: int
    assigned: Optional[int] = None


# ---------- Dispatch / rewash ----------
class DispatchIn(APIBase):
    destination: Optional[str] = None
    custom_destination: Optional[str] = None
    quantities: Dict[str, Any] = Field(default_factory=dict)


class DispatchOut(APIBase):
    id: int
    challan_no: str
    lot_no: str
    destination: str
    size_label: str
    quantity: int
    sent_at: datetime


class RewashCreate(APIBase):
    washing_data_id: int
    sizes: Dict[str, Any] = Field(default_factory=dict)

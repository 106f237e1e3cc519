"""
Procurement routing schemas.
"""
from pydantic import BaseModel, Field, computed_field
from datetime import datetime
from typing import Optional, Dict, Any, List
from app.models.catalog import ProductCategory
from app.models.routing import ProcurementTaskStatus, RoutingStrategy


class RoutingWeights(BaseModel):
    cost: Optional[float] = Field(None, ge=0)
    lead: Optional[float] = Field(None, ge=0)
    availability: Optional[float] = Field(None, ge=0)
    match: Optional[float] = Field(None, ge=0)


class RoutingConfigUpdate(BaseModel):
    enabled: Optional[bool] = None
    strategy: Optional[RoutingStrategy] = None
    weights: Optional[RoutingWeights] = None


class RoutingConfigResponse(BaseModel):
    id: str
    enabled: bool
    strategy: RoutingStrategy
    weights: Optional[Dict[str, float]] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RoutingDecisionResponse(BaseModel):
    id: str
    order_id: str
    order_item_id: Optional[str] = None
    variant_id: str
    chosen_supplier_id: Optional[str] = None
    chosen_offer_id: Optional[str] = None
    strategy: RoutingStrategy
    score_json: Optional[Dict[str, Any]] = None
    reason_text: Optional[str] = None
    created_at: Optional[datetime] = None

    @computed_field
    @property
    def needs_manual_assignment(self) -> bool:
        return self.chosen_supplier_id is None

    class Config:
        from_attributes = True


class SupplierGroupSummary(BaseModel):
    supplier_id: str
    total_packs: int
    estimated_cost_jpy: int
    lead_time_days_estimate: Optional[int] = None
    line_count: int


class RouteOrderResponse(BaseModel):
    order_id: str
    strategy: RoutingStrategy
    decisions: int
    suppliers: List[SupplierGroupSummary]
    needs_assignment: int


class ProcurementTaskLineResponse(BaseModel):
    id: str
    variant_id: str
    offer_id: Optional[str] = None
    qty_packs: int
    pack_qty: int
    expected_cost_jpy: Optional[int] = None

    class Config:
        from_attributes = True


class ProcurementTaskResponse(BaseModel):
    id: str
    order_id: str
    supplier_id: Optional[str] = None
    status: ProcurementTaskStatus
    estimated_cost_jpy: Optional[int] = None
    lead_time_days_estimate: Optional[int] = None
    requested_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    lines: List[ProcurementTaskLineResponse] = []

    class Config:
        from_attributes = True


class AssignSupplierRequest(BaseModel):
    supplier_id: Optional[str] = None  # omitted: use the assignment-rule suggestion


class TaskStatusUpdate(BaseModel):
    status: ProcurementTaskStatus


class SupplierAssignmentCreate(BaseModel):
    category: ProductCategory
    size: Optional[str] = None
    priority: int = Field(0, ge=-1000, le=1000)


class SupplierAssignmentResponse(BaseModel):
    id: str
    supplier_id: str
    category: ProductCategory
    size: str
    priority: int

    class Config:
        from_attributes = True

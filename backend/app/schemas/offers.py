"""
Supplier offer schemas.
"""
from pydantic import BaseModel
from datetime import datetime
from typing import Optional, Dict, Any, List
from app.models.catalog import ProductCategory
from app.models.supplier import Availability


class SupplierOfferResponse(BaseModel):
    id: str
    supplier_id: str
    variant_id: Optional[str] = None
    category: Optional[ProductCategory] = None
    size: Optional[str] = None
    length_mm: Optional[int] = None
    strength_class: Optional[str] = None
    finish: Optional[str] = None
    pack_qty: Optional[int] = None
    unit_cost_jpy: int
    min_order_packs: int
    lead_time_days: Optional[int] = None
    availability: Availability
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OfferImportResponse(BaseModel):
    created: int
    updated: int
    failed: int
    cost_basis_written: int
    errors: List[Dict[str, Any]]

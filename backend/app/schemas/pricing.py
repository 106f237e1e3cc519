"""
Pricing schemas.
"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Dict, Any, List, Literal
from app.models.catalog import ProductCategory
from app.models.pricing import PricingScope, RoundingStrategy


class FxRateCreate(BaseModel):
    jpy_per_usd: float = Field(..., gt=0)
    source: Literal["manual", "provider"] = "manual"


class FxRateResponse(BaseModel):
    id: str
    pair: str
    rate: float
    source: str
    captured_at: datetime

    class Config:
        from_attributes = True


class PricingRuleCreate(BaseModel):
    scope: PricingScope
    category: Optional[ProductCategory] = None
    size: Optional[str] = None
    variant_id: Optional[str] = None
    target_gross_margin: float = Field(..., ge=0, le=0.95)
    min_price_usd: float = Field(..., gt=0)
    max_price_usd: float = Field(..., gt=0)
    rounding: RoundingStrategy
    max_weekly_change_pct: float = Field(..., ge=0, le=1)


class PricingRuleResponse(BaseModel):
    id: str
    scope: PricingScope
    category: Optional[ProductCategory] = None
    size: Optional[str] = None
    variant_id: Optional[str] = None
    target_gross_margin: float
    min_price_usd_cents: int
    max_price_usd_cents: int
    rounding: RoundingStrategy
    max_weekly_change_pct: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RepriceRequest(BaseModel):
    category: Optional[ProductCategory] = None
    size: Optional[str] = None
    limit: Optional[int] = Field(None, gt=0, le=500)
    allow_override: bool = False


class ApplyRepriceRequest(RepriceRequest):
    admin_user_id: str = "admin"


class RepriceRowResponse(BaseModel):
    variant_id: str
    slug: str
    category: str
    size: str
    pack_type: str
    current_price_usd_cents: int
    recommended_price_usd_cents: int
    pct_change: float
    breakdown: Dict[str, Any]

    class Config:
        from_attributes = True


class RepricePreviewResponse(BaseModel):
    count: int
    changed: int
    max_abs_pct_change: float
    rows: List[RepriceRowResponse]


class ApplyRepriceResponse(BaseModel):
    ok: bool = True
    updated: int

"""
Shipping schemas.
"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any
from app.models.shipping import CarrierPolicyType, ShippingCarrier, ShippingRuleBand


class ShippingPreviewRequest(BaseModel):
    country_code: str = Field(..., min_length=2, max_length=2)
    bands: List[ShippingRuleBand] = Field(..., min_length=1)
    subtotal_usd: float = Field(0, ge=0)
    weight_kg: float = Field(0, ge=0)


class CartItem(BaseModel):
    variant_id: str  # variant slug
    quantity: int = Field(..., gt=0)


class ShippingQuoteRequest(BaseModel):
    country_code: str = Field(..., min_length=2, max_length=2)
    items: List[CartItem] = Field(..., min_length=1)


class ZoneRef(BaseModel):
    id: str
    name: str


class BandBreakdownResponse(BaseModel):
    distinct_bands: List[ShippingRuleBand]
    base_band: ShippingRuleBand
    base_price_usd_cents: int
    surcharge_usd_cents: int
    total_usd_cents: int


class ShippingQuoteResponse(BaseModel):
    zone: ZoneRef
    subtotal_usd_cents: int
    weight_kg: float
    carrier: str
    shipping_price_usd_cents: int
    eta_min_days: int
    eta_max_days: int
    tracking_included: bool
    band_breakdown: BandBreakdownResponse
    applied_policy: str
    forced_dhl: bool
    forced_reason: Optional[str] = None
    warning_note: Optional[str] = None


class ZoneCountryResponse(BaseModel):
    code: str

    class Config:
        from_attributes = True


class CarrierPolicyResponse(BaseModel):
    id: str
    zone_id: str
    policy: CarrierPolicyType
    default_carrier: Optional[ShippingCarrier] = None
    force_dhl_over_weight_kg: Optional[float] = None
    force_dhl_over_subtotal_usd_cents: Optional[int] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ShippingZoneCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    is_active: bool = True
    countries: List[str] = []


class ShippingZoneUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    is_active: bool
    countries: List[str] = []


class ShippingZoneResponse(BaseModel):
    id: str
    name: str
    is_active: bool
    countries: List[ZoneCountryResponse] = []
    policy: Optional[CarrierPolicyResponse] = None

    class Config:
        from_attributes = True


class ShippingRuleUpsert(BaseModel):
    zone_id: str = Field(..., min_length=1)
    band: ShippingRuleBand
    carrier: ShippingCarrier
    price_usd: float = Field(..., gt=0)
    eta_min_days: int = Field(..., gt=0)
    eta_max_days: int = Field(..., gt=0)
    tracking_included: bool = True
    notes: Optional[str] = Field(None, max_length=500)


class ShippingRuleResponse(BaseModel):
    id: str
    zone_id: str
    band: ShippingRuleBand
    carrier: ShippingCarrier
    price_usd_cents: int
    eta_min_days: int
    eta_max_days: int
    tracking_included: bool
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CarrierPolicyUpsert(BaseModel):
    zone_id: str = Field(..., min_length=1)
    policy: Optional[CarrierPolicyType] = None
    default_carrier: Optional[ShippingCarrier] = None
    force_dhl_over_weight_kg: Optional[float] = Field(None, gt=0)
    force_dhl_over_subtotal_usd: Optional[float] = Field(None, gt=0)


class RuleImportResponse(BaseModel):
    upserted: int
    failed: int
    errors: List[Dict[str, Any]]

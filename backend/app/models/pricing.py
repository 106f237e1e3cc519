"""
Pricing models - FX rates, cost history, pricing rules and the price change audit log.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Float, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import enum
from app.db.database import Base
from app.models.catalog import ProductCategory
from app.models.supplier import Availability


class PricingScope(str, enum.Enum):
    GLOBAL = "global"
    CATEGORY = "category"
    SIZE = "size"
    VARIANT = "variant"


class RoundingStrategy(str, enum.Enum):
    USD_0_00 = "USD_0_00"
    USD_0_49 = "USD_0_49"
    USD_0_99 = "USD_0_99"


class CostSource(str, enum.Enum):
    SUPPLIER_OFFER = "supplier_offer"
    MANUAL = "manual"
    PURCHASE = "purchase"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class FxRate(Base):
    __tablename__ = "fx_rates"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    pair = Column(String, nullable=False, default="JPYUSD")
    rate = Column(Float, nullable=False)  # JPY per 1 USD
    source = Column(String, nullable=False, default="manual")
    captured_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class CostBasis(Base):
    __tablename__ = "cost_basis"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    variant_id = Column(String, ForeignKey("variants.id"), nullable=False)
    supplier_id = Column(String, ForeignKey("suppliers.id"), nullable=True)
    cost_jpy_per_pack = Column(Integer, nullable=False)
    lead_time_days = Column(Integer, nullable=True)
    availability = Column(
        SQLEnum(Availability, native_enum=False, values_callable=_values, validate_strings=True),
        nullable=True,
    )
    source = Column(String, nullable=False, default=CostSource.SUPPLIER_OFFER.value)
    captured_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    variant = relationship("Variant", back_populates="cost_basis")


class PricingRule(Base):
    __tablename__ = "pricing_rules"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    scope = Column(
        SQLEnum(PricingScope, native_enum=False, values_callable=_values, validate_strings=True),
        nullable=False,
    )
    category = Column(
        SQLEnum(ProductCategory, native_enum=False, values_callable=_values, validate_strings=True),
        nullable=True,
    )
    size = Column(String, nullable=True)
    variant_id = Column(String, ForeignKey("variants.id"), nullable=True)

    target_gross_margin = Column(Float, nullable=False)  # 0..0.95
    min_price_usd_cents = Column(Integer, nullable=False)
    max_price_usd_cents = Column(Integer, nullable=False)
    rounding = Column(SQLEnum(RoundingStrategy, native_enum=False), nullable=False)
    max_weekly_change_pct = Column(Float, nullable=False)  # fraction, 0.15 = 15%

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PriceChangeLog(Base):
    __tablename__ = "price_change_logs"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    variant_id = Column(String, ForeignKey("variants.id"), nullable=False)
    old_price_usd_cents = Column(Integer, nullable=False)
    new_price_usd_cents = Column(Integer, nullable=False)
    reason_json = Column(JSON, nullable=True)  # full reprice breakdown
    applied_by_admin_id = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

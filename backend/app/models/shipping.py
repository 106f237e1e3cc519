"""
Shipping models - destination zones, per-band carrier rules and carrier policies.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Float, Boolean, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import enum
from app.db.database import Base


class ShippingRuleBand(str, enum.Enum):
    BAND_A_10PCS = "BAND_A_10PCS"
    BAND_B_20PCS = "BAND_B_20PCS"
    BAND_C_BULK = "BAND_C_BULK"


class ShippingCarrier(str, enum.Enum):
    JP_POST = "JP_POST"
    DHL = "DHL"


class CarrierPolicyType(str, enum.Enum):
    DEFAULT = "DEFAULT"
    CHEAPEST = "CHEAPEST"
    FASTEST = "FASTEST"


class ShippingZone(Base):
    __tablename__ = "shipping_zones"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    name = Column(String, nullable=False, unique=True)  # "ASEAN", "Oceania", "Other"
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    countries = relationship("ShippingZoneCountry", back_populates="zone", cascade="all, delete-orphan")
    rules = relationship("ShippingRule", back_populates="zone", cascade="all, delete-orphan")
    policy = relationship("CarrierPolicy", back_populates="zone", uselist=False, cascade="all, delete-orphan")


class ShippingZoneCountry(Base):
    __tablename__ = "shipping_zone_countries"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    zone_id = Column(String, ForeignKey("shipping_zones.id"), nullable=False)
    code = Column(String(2), nullable=False, unique=True)  # ISO 3166-1 alpha-2

    # Relationships
    zone = relationship("ShippingZone", back_populates="countries")


class ShippingRule(Base):
    __tablename__ = "shipping_rules"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    zone_id = Column(String, ForeignKey("shipping_zones.id"), nullable=False)
    band = Column(SQLEnum(ShippingRuleBand, native_enum=False), nullable=False)
    carrier = Column(SQLEnum(ShippingCarrier, native_enum=False), nullable=False)
    price_usd_cents = Column(Integer, nullable=False)
    eta_min_days = Column(Integer, nullable=False)
    eta_max_days = Column(Integer, nullable=False)
    tracking_included = Column(Boolean, default=True, nullable=False)
    notes = Column(String, nullable=True)  # shown to the customer as a warning
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    zone = relationship("ShippingZone", back_populates="rules")


class CarrierPolicy(Base):
    __tablename__ = "carrier_policies"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    zone_id = Column(String, ForeignKey("shipping_zones.id"), nullable=False, unique=True)
    policy = Column(SQLEnum(CarrierPolicyType, native_enum=False), default=CarrierPolicyType.DEFAULT, nullable=False)
    default_carrier = Column(SQLEnum(ShippingCarrier, native_enum=False), nullable=True)
    force_dhl_over_weight_kg = Column(Float, nullable=True)
    force_dhl_over_subtotal_usd_cents = Column(Integer, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    zone = relationship("ShippingZone", back_populates="policy")

"""
Supplier and supplier offer models.

Offers either reference one exact variant or describe a spec where every
NULL column acts as a wildcard.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Boolean, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import enum
from app.db.database import Base
from app.models.catalog import ProductCategory


class Availability(str, enum.Enum):
    IN_STOCK = "in_stock"
    LIMITED = "limited"
    BACKORDER = "backorder"
    UNKNOWN = "unknown"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    offers = relationship("SupplierOffer", back_populates="supplier", cascade="all, delete-orphan")
    assignments = relationship("SupplierAssignment", back_populates="supplier", cascade="all, delete-orphan")


class SupplierOffer(Base):
    __tablename__ = "supplier_offers"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    supplier_id = Column(String, ForeignKey("suppliers.id"), nullable=False)
    variant_id = Column(String, ForeignKey("variants.id"), nullable=True)  # exact scope when set

    # Spec columns; NULL matches anything
    category = Column(
        SQLEnum(ProductCategory, native_enum=False, values_callable=_values, validate_strings=True),
        nullable=True,
    )
    size = Column(String, nullable=True)
    length_mm = Column(Integer, nullable=True)
    strength_class = Column(String, nullable=True)
    finish = Column(String, nullable=True)
    pack_qty = Column(Integer, nullable=True)

    unit_cost_jpy = Column(Integer, nullable=False)
    min_order_packs = Column(Integer, nullable=False, default=1)
    lead_time_days = Column(Integer, nullable=True)
    availability = Column(
        SQLEnum(Availability, native_enum=False, values_callable=_values, validate_strings=True),
        nullable=False,
        default=Availability.UNKNOWN.value,
    )
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    supplier = relationship("Supplier", back_populates="offers")
    variant = relationship("Variant")


class SupplierAssignment(Base):
    """Coverage rule used to suggest a supplier for unrouted procurement tasks.

    An empty size covers the whole category.
    """
    __tablename__ = "supplier_assignments"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    supplier_id = Column(String, ForeignKey("suppliers.id"), nullable=False)
    category = Column(
        SQLEnum(ProductCategory, native_enum=False, values_callable=_values, validate_strings=True),
        nullable=False,
    )
    size = Column(String, nullable=False, default="")
    priority = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    supplier = relationship("Supplier", back_populates="assignments")

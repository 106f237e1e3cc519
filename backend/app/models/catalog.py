"""
Catalog models - JIS fastener products and their sellable pack variants.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Boolean, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import enum
from app.db.database import Base


class ProductCategory(str, enum.Enum):
    BOLT = "bolt"
    NUT = "nut"
    WASHER = "washer"


class PackType(str, enum.Enum):
    PACK_10 = "PACK_10"
    PACK_20 = "PACK_20"
    PACK_50 = "PACK_50"
    PACK_100 = "PACK_100"


class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    slug = Column(String, nullable=False, unique=True)
    category = Column(
        SQLEnum(
            ProductCategory,
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            validate_strings=True,
        ),
        nullable=False,
    )
    size = Column(String, nullable=False)  # "M3".."M24"
    length = Column(Integer, nullable=True)  # mm, bolts only
    strength_class = Column(String, nullable=True)  # "8.8", "10.9", bolts only
    finish = Column(String, nullable=False)  # "zinc", "plain", "stainless"
    subtype = Column(String, nullable=True)  # "hex", "flange", "flat", "spring"
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    variants = relationship("Variant", back_populates="product", cascade="all, delete-orphan")


class Variant(Base):
    __tablename__ = "variants"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    product_id = Column(String, ForeignKey("products.id"), nullable=False)
    slug = Column(String, nullable=False, unique=True)
    pack_type = Column(SQLEnum(PackType, native_enum=False), nullable=False)
    price_usd_cents = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    product = relationship("Product", back_populates="variants")
    cost_basis = relationship("CostBasis", back_populates="variant", cascade="all, delete-orphan")

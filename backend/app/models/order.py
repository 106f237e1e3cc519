"""
Order models - paid storefront orders and their line items.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import enum
from app.db.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    email = Column(String, nullable=True)
    status = Column(
        SQLEnum(
            OrderStatus,
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            validate_strings=True,
        ),
        default=OrderStatus.PENDING.value,
        nullable=False,
    )
    fulfillment_status = Column(String, nullable=True)  # e.g. "pending_procurement"
    country_code = Column(String, nullable=True)
    subtotal_usd_cents = Column(Integer, nullable=False, default=0)
    shipping_usd_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False)
    variant_id = Column(String, ForeignKey("variants.id"), nullable=False)
    quantity = Column(Integer, nullable=False)  # packs
    unit_price_usd_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    order = relationship("Order", back_populates="items")
    variant = relationship("Variant")

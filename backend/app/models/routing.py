"""
Procurement routing models - routing configuration, per-line decisions and supplier tasks.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Boolean, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import enum
from app.db.database import Base


class RoutingStrategy(str, enum.Enum):
    CHEAPEST = "CHEAPEST"
    FASTEST = "FASTEST"
    BALANCED = "BALANCED"
    AVAILABILITY_FIRST = "AVAILABILITY_FIRST"


class ProcurementTaskStatus(str, enum.Enum):
    NEW = "new"
    NEEDS_ASSIGNMENT = "needs_assignment"
    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    RECEIVED = "received"
    SHIPPED = "shipped"
    CLOSED = "closed"
    CANCELED = "canceled"


class RoutingConfig(Base):
    __tablename__ = "routing_configs"

    id = Column(String, primary_key=True, default="default")
    enabled = Column(Boolean, default=False, nullable=False)
    strategy = Column(SQLEnum(RoutingStrategy, native_enum=False), default=RoutingStrategy.BALANCED, nullable=False)
    weights = Column(JSON, nullable=True)  # {"cost": .5, "lead": .3, "availability": .2, "match": .1}
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class RoutingDecision(Base):
    __tablename__ = "routing_decisions"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False)
    order_item_id = Column(String, ForeignKey("order_items.id"), nullable=True)
    variant_id = Column(String, ForeignKey("variants.id"), nullable=False)
    chosen_supplier_id = Column(String, ForeignKey("suppliers.id"), nullable=True)
    chosen_offer_id = Column(String, nullable=True)
    strategy = Column(SQLEnum(RoutingStrategy, native_enum=False), nullable=False)
    score_json = Column(JSON, nullable=True)  # per-candidate breakdown
    reason_text = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ProcurementTask(Base):
    __tablename__ = "procurement_tasks"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False)
    supplier_id = Column(String, ForeignKey("suppliers.id"), nullable=True)
    status = Column(
        SQLEnum(
            ProcurementTaskStatus,
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            validate_strings=True,
        ),
        default=ProcurementTaskStatus.NEW.value,
        nullable=False,
    )
    estimated_cost_jpy = Column(Integer, nullable=True)
    lead_time_days_estimate = Column(Integer, nullable=True)
    requested_at = Column(DateTime, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    received_at = Column(DateTime, nullable=True)
    shipped_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    lines = relationship("ProcurementTaskLine", back_populates="task", cascade="all, delete-orphan")


class ProcurementTaskLine(Base):
    __tablename__ = "procurement_task_lines"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    task_id = Column(String, ForeignKey("procurement_tasks.id"), nullable=False)
    variant_id = Column(String, ForeignKey("variants.id"), nullable=False)
    offer_id = Column(String, nullable=True)
    qty_packs = Column(Integer, nullable=False)
    pack_qty = Column(Integer, nullable=False)
    expected_cost_jpy = Column(Integer, nullable=True)

    # Relationships
    task = relationship("ProcurementTask", back_populates="lines")
    variant = relationship("Variant")

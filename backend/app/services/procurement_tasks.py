"""
Procurement task service - supplier assignment and status tracking for the
tasks created by order routing.

Business rules:
1. A suggested supplier must cover every line of the task through its
   assignment rules; a size-specific rule beats a category-wide one
2. Each covered line scores 10 + rule priority, plus 2 for a size-specific rule
3. No supplier is suggested when the two best covering suppliers tie
4. Assigning a supplier to a "needs_assignment" task moves it to "new"
5. Status changes stamp the matching timestamp and move the order's
   fulfillment status along: new/requested/confirmed -> in_procurement,
   received -> ready_to_ship, shipped -> shipped, closed -> completed,
   canceled -> canceled
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session, joinedload

from app.models import (
    Order,
    ProcurementTask,
    ProcurementTaskLine,
    Supplier,
    SupplierAssignment,
    Variant,
)
from app.models.catalog import ProductCategory
from app.models.routing import ProcurementTaskStatus

logger = logging.getLogger(__name__)

LINE_BASE_SCORE = 10
SIZE_SPECIFIC_BONUS = 2
SIZE_PATTERN = re.compile(r"^M\d+$")

SETTABLE_STATUSES = (
    ProcurementTaskStatus.NEW,
    ProcurementTaskStatus.REQUESTED,
    ProcurementTaskStatus.CONFIRMED,
    ProcurementTaskStatus.RECEIVED,
    ProcurementTaskStatus.SHIPPED,
    ProcurementTaskStatus.CLOSED,
    ProcurementTaskStatus.CANCELED,
)

# Statuses that only make sense once a supplier is on the task
SUPPLIER_REQUIRED = {
    ProcurementTaskStatus.REQUESTED,
    ProcurementTaskStatus.CONFIRMED,
    ProcurementTaskStatus.RECEIVED,
    ProcurementTaskStatus.SHIPPED,
    ProcurementTaskStatus.CLOSED,
}

STATUS_TIMESTAMPS = {
    ProcurementTaskStatus.REQUESTED: "requested_at",
    ProcurementTaskStatus.CONFIRMED: "confirmed_at",
    ProcurementTaskStatus.RECEIVED: "received_at",
    ProcurementTaskStatus.SHIPPED: "shipped_at",
    ProcurementTaskStatus.CLOSED: "closed_at",
}

FULFILLMENT_BY_STATUS = {
    ProcurementTaskStatus.NEW: "in_procurement",
    ProcurementTaskStatus.REQUESTED: "in_procurement",
    ProcurementTaskStatus.CONFIRMED: "in_procurement",
    ProcurementTaskStatus.RECEIVED: "ready_to_ship",
    ProcurementTaskStatus.SHIPPED: "shipped",
    ProcurementTaskStatus.CLOSED: "completed",
    ProcurementTaskStatus.CANCELED: "canceled",
}


class TaskNotFoundError(ValueError):
    """Raised when a procurement task or the supplier named for it does not exist."""


class TaskAssignmentError(ValueError):
    """Raised when a task cannot be assigned or moved to the requested status."""


@dataclass(frozen=True)
class LineKey:
    category: ProductCategory
    size: str


@dataclass(frozen=True)
class AssignmentRule:
    supplier_id: str
    category: ProductCategory
    size: str  # "" covers the whole category
    priority: int = 0


def _best_rule(rules: Sequence[AssignmentRule]) -> Optional[AssignmentRule]:
    best = None
    for rule in rules:
        if best is None or rule.priority > best.priority:
            best = rule
    return best


def suggest_supplier_for_lines(lines: Sequence[LineKey], rules: Sequence[AssignmentRule]) -> Optional[str]:
    """Return the single best-covering supplier id, or None when absent or ambiguous."""
    if not lines or not rules:
        return None

    supplier_ids = list(dict.fromkeys(rule.supplier_id for rule in rules))
    covering = []
    for supplier_id in supplier_ids:
        own = [r for r in rules if r.supplier_id == supplier_id]
        score = 0
        covers_all = True
        for line in lines:
            size = line.size.upper()
            size_rule = _best_rule(
                [r for r in own if r.category == line.category and r.size and r.size.upper() == size]
            )
            category_rule = _best_rule([r for r in own if r.category == line.category and r.size == ""])
            picked = size_rule or category_rule
            if picked is None:
                covers_all = False
                break
            score += LINE_BASE_SCORE + picked.priority
            if picked.size:
                score += SIZE_SPECIFIC_BONUS
        if covers_all:
            covering.append((score, supplier_id))

    if not covering:
        return None
    covering.sort(key=lambda item: item[0], reverse=True)
    if len(covering) >= 2 and covering[0][0] == covering[1][0]:
        return None
    return covering[0][1]


def _load_rules(db: Session) -> List[AssignmentRule]:
    return [
        AssignmentRule(
            supplier_id=row.supplier_id,
            category=ProductCategory(row.category),
            size=row.size or "",
            priority=row.priority or 0,
        )
        for row in db.query(SupplierAssignment).all()
    ]


def upsert_supplier_assignment(
    db: Session,
    supplier_id: str,
    category: ProductCategory,
    size: Optional[str] = None,
    priority: int = 0,
) -> SupplierAssignment:
    """Create or re-prioritize a supplier's coverage rule for a category or size."""
    if db.get(Supplier, supplier_id) is None:
        raise TaskNotFoundError(f"Supplier {supplier_id} not found")
    size = (size or "").strip().upper()
    if size and not SIZE_PATTERN.match(size):
        raise TaskAssignmentError(f"Invalid size: {size}")
    category = ProductCategory(category)

    row = (
        db.query(SupplierAssignment)
        .filter(
            SupplierAssignment.supplier_id == supplier_id,
            SupplierAssignment.category == category,
            SupplierAssignment.size == size,
        )
        .first()
    )
    if row is None:
        row = SupplierAssignment(supplier_id=supplier_id, category=category, size=size, priority=priority)
        db.add(row)
    else:
        row.priority = priority
    db.commit()
    db.refresh(row)
    return row


def _load_task(db: Session, task_id: str) -> ProcurementTask:
    task = (
        db.query(ProcurementTask)
        .options(
            joinedload(ProcurementTask.lines)
            .joinedload(ProcurementTaskLine.variant)
            .joinedload(Variant.product)
        )
        .filter(ProcurementTask.id == task_id)
        .first()
    )
    if task is None:
        raise TaskNotFoundError(f"Procurement task {task_id} not found")
    return task


def suggest_supplier_for_task(db: Session, task: ProcurementTask) -> Optional[str]:
    lines = [
        LineKey(category=ProductCategory(line.variant.product.category), size=line.variant.product.size)
        for line in task.lines
    ]
    return suggest_supplier_for_lines(lines, _load_rules(db))


def assign_supplier(db: Session, task_id: str, supplier_id: Optional[str] = None) -> ProcurementTask:
    """Put a supplier on a task, falling back to the rule-based suggestion."""
    task = _load_task(db, task_id)
    if supplier_id is None:
        supplier_id = suggest_supplier_for_task(db, task)
        if supplier_id is None:
            raise TaskAssignmentError(f"No unambiguous supplier covers every line of task {task_id}")
    elif db.get(Supplier, supplier_id) is None:
        raise TaskNotFoundError(f"Supplier {supplier_id} not found")

    task.supplier_id = supplier_id
    if ProcurementTaskStatus(task.status) is ProcurementTaskStatus.NEEDS_ASSIGNMENT:
        task.status = ProcurementTaskStatus.NEW.value
    db.commit()
    db.refresh(task)
    logger.info("Procurement task %s assigned to supplier %s", task.id, supplier_id)
    return task


def update_task_status(db: Session, task_id: str, new_status: ProcurementTaskStatus) -> ProcurementTask:
    """Move a task to a new status and carry the order's fulfillment status along."""
    try:
        new_status = ProcurementTaskStatus(new_status)
    except ValueError:
        raise ValueError(f"Invalid status: {new_status}")
    if new_status not in SETTABLE_STATUSES:
        raise ValueError(f"Invalid status: {new_status.value}")

    task = _load_task(db, task_id)
    if new_status in SUPPLIER_REQUIRED and not task.supplier_id:
        raise TaskAssignmentError(f"Task {task_id} has no supplier; assign one before marking it {new_status.value}")

    task.status = new_status.value
    stamp = STATUS_TIMESTAMPS.get(new_status)
    if stamp:
        setattr(task, stamp, datetime.utcnow())

    order = db.get(Order, task.order_id)
    if order is not None:
        order.fulfillment_status = FULFILLMENT_BY_STATUS[new_status]
    db.commit()
    db.refresh(task)
    logger.info("Procurement task %s moved to %s", task.id, new_status.value)
    return task


def list_tasks(db: Session, order_id: str) -> List[ProcurementTask]:
    return (
        db.query(ProcurementTask)
        .filter(ProcurementTask.order_id == order_id)
        .order_by(ProcurementTask.created_at, ProcurementTask.id)
        .all()
    )


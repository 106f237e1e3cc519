"""
Order routing service - routes a paid order's items to suppliers and persists
the decisions and procurement tasks.

Business rules:
1. Only paid orders are routed, and only while routing is enabled
2. Re-routing overwrites previous decisions and tasks for the order
3. One task per chosen supplier (status "new"), plus one "needs_assignment"
   task collecting every line without a candidate
4. The order moves to fulfillment status "pending_procurement"
"""
from __future__ import annotations

import logging
import time
from dataclasses import asdict
from typing import Dict, Optional

from sqlalchemy.orm import Session, joinedload

from app.config.defaults_loader import get_routing_defaults
from app.models import (
    Order,
    OrderItem,
    ProcurementTask,
    ProcurementTaskLine,
    RoutingConfig,
    RoutingDecision,
    SupplierOffer,
    Variant,
)
from app.models.order import OrderStatus
from app.models.routing import ProcurementTaskStatus, RoutingStrategy
from app.services.offer_matcher import line_spec_from_variant, match_supplier_offers, offer_snapshot
from app.services.procurement_router import (
    BalancedWeights,
    RoutingLineInput,
    RoutingResult,
    route_procurement,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_ID = "default"
PENDING_PROCUREMENT = "pending_procurement"


class OrderNotFoundError(ValueError):
    """Raised when the order to route does not exist."""


class RoutingUnavailableError(ValueError):
    """Raised when an order exists but cannot be routed right now."""


def _weights(data: Optional[Dict[str, float]]) -> BalancedWeights:
    return BalancedWeights.from_dict(data, defaults=get_routing_defaults()["default_weights"])


def get_or_create_routing_config(db: Session) -> RoutingConfig:
    config = db.query(RoutingConfig).filter(RoutingConfig.id == DEFAULT_CONFIG_ID).first()
    if config is None:
        config = RoutingConfig(id=DEFAULT_CONFIG_ID, enabled=False, strategy=RoutingStrategy.BALANCED)
        db.add(config)
        db.commit()
        db.refresh(config)
    return config


def update_routing_config(
    db: Session,
    enabled: Optional[bool] = None,
    strategy: Optional[RoutingStrategy] = None,
    weights: Optional[Dict[str, float]] = None,
) -> RoutingConfig:
    config = get_or_create_routing_config(db)
    if enabled is not None:
        config.enabled = enabled
    if strategy is not None:
        config.strategy = RoutingStrategy(strategy)
    if weights is not None:
        config.weights = asdict(_weights(weights))
    db.commit()
    db.refresh(config)
    logger.info("Routing config updated: enabled=%s strategy=%s", config.enabled, config.strategy)
    return config


def _load_order(db: Session, order_id: str) -> Order:
    order = (
        db.query(Order)
        .options(joinedload(Order.items).joinedload(OrderItem.variant).joinedload(Variant.product))
        .filter(Order.id == order_id)
        .first()
    )
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


def route_order(db: Session, order_id: str) -> RoutingResult:
    """Route every item of a paid order and persist the outcome in one commit."""
    started = time.perf_counter()
    order = _load_order(db, order_id)
    if OrderStatus(order.status) is not OrderStatus.PAID:
        raise RoutingUnavailableError(f"Order {order_id} is not paid")

    config = get_or_create_routing_config(db)
    if not config.enabled:
        raise RoutingUnavailableError("Routing is disabled")
    strategy = RoutingStrategy(config.strategy)
    weights = _weights(config.weights)

    offers = [offer_snapshot(row) for row in db.query(SupplierOffer).all()]

    lines = []
    pack_qty_by_line = {}
    for item in order.items:
        spec = line_spec_from_variant(item.variant)
        pack_qty_by_line[item.id] = spec.pack_qty
        lines.append(
            RoutingLineInput(
                line_id=item.id,
                spec=spec,
                qty_packs=item.quantity,
                candidates=match_supplier_offers(spec, offers),
            )
        )

    result = route_procurement(lines, strategy, weights)

    try:
        db.query(RoutingDecision).filter(RoutingDecision.order_id == order.id).delete(synchronize_session=False)
        for task in db.query(ProcurementTask).filter(ProcurementTask.order_id == order.id).all():
            db.delete(task)
        db.flush()

        for decision in result.decisions:
            db.add(
                RoutingDecision(
                    order_id=order.id,
                    order_item_id=decision.line_id,
                    variant_id=decision.variant_id,
                    chosen_supplier_id=decision.chosen_supplier_id,
                    chosen_offer_id=decision.chosen_offer_id,
                    strategy=strategy,
                    score_json=decision.score_json(),
                    reason_text=decision.reason_text,
                )
            )

        for group in result.by_supplier:
            task = ProcurementTask(
                order_id=order.id,
                supplier_id=group.supplier_id,
                status=ProcurementTaskStatus.NEW.value,
                estimated_cost_jpy=group.estimated_cost_jpy,
                lead_time_days_estimate=group.lead_time_days_estimate,
            )
            for line in group.lines:
                task.lines.append(
                    ProcurementTaskLine(
                        variant_id=line.variant_id,
                        offer_id=line.offer_id,
                        qty_packs=line.qty_packs,
                        pack_qty=pack_qty_by_line[line.line_id],
                        expected_cost_jpy=line.estimated_cost_jpy,
                    )
                )
            db.add(task)

        if result.needs_assignment:
            task = ProcurementTask(
                order_id=order.id,
                supplier_id=None,
                status=ProcurementTaskStatus.NEEDS_ASSIGNMENT.value,
            )
            for line in result.needs_assignment:
                task.lines.append(
                    ProcurementTaskLine(
                        variant_id=line.variant_id,
                        qty_packs=line.qty_packs,
                        pack_qty=pack_qty_by_line[line.line_id],
                    )
                )
            db.add(task)

        order.fulfillment_status = PENDING_PROCUREMENT
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Routed order %s (%s): %d lines, %d supplier task(s), %d manual line(s) in %.3fs",
        order.id,
        strategy.value,
        len(result.decisions),
        len(result.by_supplier),
        len(result.needs_assignment),
        time.perf_counter() - started,
    )
    return result

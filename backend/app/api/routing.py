"""
Procurement routing API endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import List
import logging
from app.db.database import get_db
from app.models import Order, RoutingDecision
from app.schemas.routing import (
    RoutingConfigUpdate,
    RoutingConfigResponse,
    RoutingDecisionResponse,
    RouteOrderResponse,
    ProcurementTaskResponse,
    AssignSupplierRequest,
    TaskStatusUpdate,
    SupplierAssignmentCreate,
    SupplierAssignmentResponse,
)
from app.services.order_routing import (
    OrderNotFoundError,
    RoutingUnavailableError,
    get_or_create_routing_config,
    route_order,
    update_routing_config,
)
from app.services.export import routing_decisions_csv
from app.services.procurement_tasks import (
    TaskNotFoundError,
    TaskAssignmentError,
    assign_supplier,
    list_tasks,
    update_task_status,
    upsert_supplier_assignment,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/config", response_model=RoutingConfigResponse)
async def get_config(
    db: Session = Depends(get_db)
):
    """Get the routing configuration (created disabled on first access)."""
    return get_or_create_routing_config(db)


@router.put("/config", response_model=RoutingConfigResponse)
async def put_config(
    config_data: RoutingConfigUpdate,
    db: Session = Depends(get_db)
):
    """Update routing enablement, strategy and balanced weights."""
    weights = config_data.weights.model_dump(exclude_none=True) if config_data.weights else None
    return update_routing_config(
        db,
        enabled=config_data.enabled,
        strategy=config_data.strategy,
        weights=weights,
    )


@router.post("/orders/{order_id}/route", response_model=RouteOrderResponse)
async def route(
    order_id: str,
    db: Session = Depends(get_db)
):
    """Route a paid order's items to suppliers, replacing any previous routing."""
    try:
        result = route_order(db, order_id)
    except OrderNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except RoutingUnavailableError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except ValueError as e:
        # Order lines the router refuses (non-positive packs, bad pack data)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Routing failed for order {order_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Routing failed: {str(e)}"
        )

    strategy = result.decisions[0].strategy if result.decisions else get_or_create_routing_config(db).strategy
    return {
        "order_id": order_id,
        "strategy": strategy,
        "decisions": len(result.decisions),
        "suppliers": [
            {
                "supplier_id": g.supplier_id,
                "total_packs": g.total_packs,
                "estimated_cost_jpy": g.estimated_cost_jpy,
                "lead_time_days_estimate": g.lead_time_days_estimate,
                "line_count": len(g.lines),
            }
            for g in result.by_supplier
        ],
        "needs_assignment": len(result.needs_assignment),
    }


def _require_order(db: Session, order_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Order {order_id} not found"
        )
    return order


@router.get("/orders/{order_id}/decisions", response_model=List[RoutingDecisionResponse])
async def list_decisions(
    order_id: str,
    db: Session = Depends(get_db)
):
    """List the persisted routing decisions for an order."""
    _require_order(db, order_id)
    return (
        db.query(RoutingDecision)
        .filter(RoutingDecision.order_id == order_id)
        .order_by(RoutingDecision.created_at, RoutingDecision.id)
        .all()
    )


@router.get("/orders/{order_id}/decisions.csv")
async def decisions_csv(
    order_id: str,
    db: Session = Depends(get_db)
):
    """Download an order's routing decisions as CSV."""
    _require_order(db, order_id)
    return Response(
        content=routing_decisions_csv(db, order_id),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="routing-{order_id}.csv"'},
    )


@router.get("/orders/{order_id}/tasks", response_model=List[ProcurementTaskResponse])
async def list_order_tasks(
    order_id: str,
    db: Session = Depends(get_db)
):
    """List the procurement tasks created for an order."""
    _require_order(db, order_id)
    return list_tasks(db, order_id)


def _task_error(e: ValueError) -> HTTPException:
    if isinstance(e, TaskNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    if isinstance(e, TaskAssignmentError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=str(e)
    )


@router.post("/tasks/{task_id}/assign-supplier", response_model=ProcurementTaskResponse)
async def assign_task_supplier(
    task_id: str,
    request: AssignSupplierRequest,
    db: Session = Depends(get_db)
):
    """Assign a supplier to a task, or let the assignment rules suggest one."""
    try:
        return assign_supplier(db, task_id, request.supplier_id)
    except ValueError as e:
        db.rollback()
        raise _task_error(e)


@router.post("/tasks/{task_id}/status", response_model=ProcurementTaskResponse)
async def set_task_status(
    task_id: str,
    request: TaskStatusUpdate,
    db: Session = Depends(get_db)
):
    """Move a task through new, requested, confirmed, received, shipped, closed or canceled."""
    try:
        return update_task_status(db, task_id, request.status)
    except ValueError as e:
        db.rollback()
        raise _task_error(e)


@router.put(
    "/suppliers/{supplier_id}/assignments",
    response_model=SupplierAssignmentResponse,
)
async def put_supplier_assignment(
    supplier_id: str,
    request: SupplierAssignmentCreate,
    db: Session = Depends(get_db)
):
    """Create or re-prioritize a supplier's category or size coverage rule."""
    try:
        return upsert_supplier_assignment(
            db,
            supplier_id,
            request.category,
            size=request.size,
            priority=request.priority,
        )
    except ValueError as e:
        db.rollback()
        raise _task_error(e)

import pytest

from app.models import Order, ProcurementTask
from app.models.catalog import ProductCategory
from app.models.routing import ProcurementTaskStatus, RoutingStrategy
from app.services.order_routing import route_order, update_routing_config
from app.services.procurement_tasks import (
    AssignmentRule,
    LineKey,
    TaskAssignmentError,
    TaskNotFoundError,
    assign_supplier,
    suggest_supplier_for_lines,
    update_task_status,
    upsert_supplier_assignment,
)

BOLT = ProductCategory.BOLT
NUT = ProductCategory.NUT


def test_suggestion_requires_full_coverage():
    lines = [LineKey(BOLT, "M6"), LineKey(NUT, "M6")]
    rules = [
        AssignmentRule("bolts-only", BOLT, ""),
        AssignmentRule("both", BOLT, ""),
        AssignmentRule("both", NUT, ""),
    ]
    assert suggest_supplier_for_lines(lines, rules) == "both"


def test_size_specific_rule_earns_bonus():
    lines = [LineKey(BOLT, "m6")]
    rules = [
        AssignmentRule("general", BOLT, ""),
        AssignmentRule("specialist", BOLT, "M6"),
    ]
    # 10 + 0 + 2 beats 10 + 0
    assert suggest_supplier_for_lines(lines, rules) == "specialist"


def test_priority_outweighs_size_bonus():
    lines = [LineKey(BOLT, "M6")]
    rules = [
        AssignmentRule("general", BOLT, "", priority=5),
        AssignmentRule("specialist", BOLT, "M6"),
    ]
    assert suggest_supplier_for_lines(lines, rules) == "general"


def test_tied_suppliers_are_not_suggested():
    lines = [LineKey(NUT, "M8")]
    rules = [AssignmentRule("a", NUT, ""), AssignmentRule("b", NUT, "")]
    assert suggest_supplier_for_lines(lines, rules) is None


@pytest.mark.parametrize(
    "lines,rules",
    [
        ([], [AssignmentRule("a", NUT, "")]),
        ([LineKey(NUT, "M8")], []),
        ([LineKey(NUT, "M8")], [AssignmentRule("a", BOLT, "")]),
        ([LineKey(NUT, "M8")], [AssignmentRule("a", NUT, "M10")]),
    ],
)
def test_no_suggestion_without_coverage(lines, rules):
    assert suggest_supplier_for_lines(lines, rules) is None


@pytest.fixture
def manual_task(db, make_variant, make_paid_order):
    nut = make_variant(category=ProductCategory.NUT, size="M8")
    order = make_paid_order([(nut, 2)])
    update_routing_config(db, enabled=True, strategy=RoutingStrategy.CHEAPEST)
    route_order(db, order.id)
    return db.query(ProcurementTask).filter_by(order_id=order.id).one()


def test_routed_line_without_offers_lands_in_manual_task(manual_task):
    assert ProcurementTaskStatus(manual_task.status) is ProcurementTaskStatus.NEEDS_ASSIGNMENT
    assert manual_task.supplier_id is None


def test_assign_uses_rule_suggestion(db, manual_task, make_supplier):
    supplier = make_supplier("Kobe Nut Works")
    upsert_supplier_assignment(db, supplier.id, ProductCategory.NUT, size="m8", priority=1)

    task = assign_supplier(db, manual_task.id)

    assert task.supplier_id == supplier.id
    assert ProcurementTaskStatus(task.status) is ProcurementTaskStatus.NEW


def test_assign_without_suggestion_is_refused(db, manual_task, make_supplier):
    for name in ("A", "B"):
        upsert_supplier_assignment(db, make_supplier(name).id, ProductCategory.NUT)

    with pytest.raises(TaskAssignmentError):
        assign_supplier(db, manual_task.id)
    db.refresh(manual_task)
    assert manual_task.supplier_id is None


def test_assign_explicit_supplier(db, manual_task, make_supplier):
    supplier = make_supplier("Sendai Washer")
    task = assign_supplier(db, manual_task.id, supplier.id)
    assert task.supplier_id == supplier.id

    with pytest.raises(TaskNotFoundError):
        assign_supplier(db, manual_task.id, "missing")
    with pytest.raises(TaskNotFoundError):
        assign_supplier(db, "missing", supplier.id)


def test_upsert_assignment_reprioritizes_and_validates_size(db, make_supplier):
    supplier = make_supplier("Osaka Screw")
    first = upsert_supplier_assignment(db, supplier.id, ProductCategory.BOLT, size="M6", priority=1)
    second = upsert_supplier_assignment(db, supplier.id, ProductCategory.BOLT, size="m6", priority=7)

    assert first.id == second.id
    assert second.priority == 7
    with pytest.raises(TaskAssignmentError, match="Invalid size"):
        upsert_supplier_assignment(db, supplier.id, ProductCategory.BOLT, size="6mm")


@pytest.mark.parametrize(
    "new_status,stamp,fulfillment",
    [
        (ProcurementTaskStatus.NEW, None, "in_procurement"),
        (ProcurementTaskStatus.REQUESTED, "requested_at", "in_procurement"),
        (ProcurementTaskStatus.CONFIRMED, "confirmed_at", "in_procurement"),
        (ProcurementTaskStatus.RECEIVED, "received_at", "ready_to_ship"),
        (ProcurementTaskStatus.SHIPPED, "shipped_at", "shipped"),
        (ProcurementTaskStatus.CLOSED, "closed_at", "completed"),
        (ProcurementTaskStatus.CANCELED, None, "canceled"),
    ],
)
def test_status_change_stamps_and_moves_order(db, manual_task, make_supplier, new_status, stamp, fulfillment):
    assign_supplier(db, manual_task.id, make_supplier("Kobe Nut Works").id)

    task = update_task_status(db, manual_task.id, new_status)

    assert ProcurementTaskStatus(task.status) is new_status
    if stamp:
        assert getattr(task, stamp) is not None
    db.expire_all()
    assert db.get(Order, task.order_id).fulfillment_status == fulfillment


def test_unassigned_task_cannot_be_requested(db, manual_task):
    with pytest.raises(TaskAssignmentError, match="no supplier"):
        update_task_status(db, manual_task.id, ProcurementTaskStatus.REQUESTED)


def test_needs_assignment_is_not_a_settable_status(db, manual_task):
    with pytest.raises(ValueError, match="Invalid status"):
        update_task_status(db, manual_task.id, ProcurementTaskStatus.NEEDS_ASSIGNMENT)
    with pytest.raises(ValueError, match="Invalid status"):
        update_task_status(db, manual_task.id, "po_sent")

import pytest

from fulfillment.domain.errors import GuardViolation
from fulfillment.domain.state_machine import (
    Actor,
    UnitState,
    check_order_transition,
    check_payment_confirmation,
    check_payment_transition,
    check_shipment_transition,
    is_dispatch,
)
from fulfillment.domain.statuses import (
    ORDER_APPROVE,
    ORDER_CONTROLLED_APPROVE,
    ORDER_MANAGE,
    FulfillmentMode,
    OrderStatus as OS,
    PaymentStatus as PS,
    Role,
    ShipmentStatus as SS,
)

VFC = FulfillmentMode.VENDOR_FULFILLMENT_CENTER

ADMIN = Actor("admin-1", Role.ADMIN, frozenset({ORDER_MANAGE, ORDER_APPROVE}))
CONTROLLER = Actor("admin-3", Role.ADMIN, frozenset({ORDER_MANAGE, ORDER_CONTROLLED_APPROVE}))
VIEWER = Actor("admin-2", Role.ADMIN)
ROOT = Actor("root-1", Role.SUPER_ADMIN)
VENDOR = Actor("vendor-user-1", Role.VENDOR, vendor_id="vendor-1")
OTHER_VENDOR = Actor("vendor-user-2", Role.VENDOR, vendor_id="vendor-2")


def unit(order=OS.ORDER_RECEIVED, payment=PS.PAID, shipment=SS.PENDING, vendor_id="vendor-1"):
    return UnitState(order, payment, shipment, vendor_id)


def test_admin_with_approve_capability_approves_paid_order():
    check_order_transition(ADMIN, unit(), OS.APPROVED, invoice_comment_supplied=True)


def test_approval_requires_payment():
    with pytest.raises(GuardViolation, match="paid"):
        check_order_transition(ADMIN, unit(payment=PS.PENDING), OS.APPROVED, invoice_comment_supplied=True)


def test_vendor_cannot_approve_unpaid_order():
    with pytest.raises(GuardViolation):
        check_order_transition(VENDOR, unit(payment=PS.PENDING), OS.APPROVED, invoice_comment_supplied=True)


def test_approval_requires_invoice_comment():
    with pytest.raises(GuardViolation) as excinfo:
        check_order_transition(ADMIN, unit(), OS.APPROVED)
    assert excinfo.value.details == {"requires": "invoice_comment"}


def test_each_approval_needs_its_own_capability():
    with pytest.raises(GuardViolation) as excinfo:
        check_order_transition(ADMIN, unit(), OS.APPROVED_CONTROLLED, invoice_comment_supplied=True)
    assert excinfo.value.details["required_capability"] == ORDER_CONTROLLED_APPROVE

    check_order_transition(CONTROLLER, unit(), OS.APPROVED_CONTROLLED, invoice_comment_supplied=True)
    with pytest.raises(GuardViolation):
        check_order_transition(CONTROLLER, unit(), OS.APPROVED, invoice_comment_supplied=True)


def test_super_admin_holds_every_capability():
    check_order_transition(ROOT, unit(), OS.APPROVED_CONTROLLED, invoice_comment_supplied=True)
    check_order_transition(ROOT, unit(), OS.CANCELLED)


def test_rejection_needs_manage_but_not_payment():
    check_order_transition(ADMIN, unit(payment=PS.PENDING), OS.ADMIN_REJECTED)
    with pytest.raises(GuardViolation):
        check_order_transition(VIEWER, unit(), OS.ADMIN_REJECTED)


def test_closed_orders_do_not_reopen():
    for closed in (OS.APPROVED, OS.REJECTED, OS.CANCELLED):
        with pytest.raises(GuardViolation):
            check_order_transition(ROOT, unit(order=closed), OS.ORDER_RECEIVED)


def test_same_status_is_rejected():
    with pytest.raises(GuardViolation, match="already"):
        check_order_transition(ADMIN, unit(), OS.ORDER_RECEIVED)


def test_vendor_may_only_touch_own_sub_order():
    check_order_transition(VENDOR, unit(), OS.APPROVED, invoice_comment_supplied=True)
    with pytest.raises(GuardViolation, match="own"):
        check_order_transition(OTHER_VENDOR, unit(), OS.APPROVED, invoice_comment_supplied=True)


def test_vendor_cannot_grant_controlled_approval():
    with pytest.raises(GuardViolation):
        check_order_transition(VENDOR, unit(), OS.APPROVED_CONTROLLED, invoice_comment_supplied=True)


def test_vendor_fulfillment_center_order_lifecycle():
    check_order_transition(VENDOR, unit(), OS.VENDOR_APPROVED, mode=VFC)
    check_order_transition(ADMIN, unit(order=OS.VENDOR_APPROVED), OS.APPROVED, mode=VFC,
                           invoice_comment_supplied=True)
    with pytest.raises(GuardViolation):
        check_order_transition(VENDOR, unit(), OS.APPROVED, mode=VFC, invoice_comment_supplied=True)
    with pytest.raises(GuardViolation):
        check_order_transition(ADMIN, unit(), OS.VENDOR_APPROVED)


def test_payment_status_changes():
    check_payment_transition(ADMIN, unit(), PS.REFUNDED)
    check_payment_transition(ADMIN, unit(payment=PS.PENDING), PS.FAILED)
    with pytest.raises(GuardViolation) as excinfo:
        check_payment_transition(ADMIN, unit(payment=PS.PENDING), PS.PAID)
    assert excinfo.value.details == {"requires": "payment_confirmation"}
    with pytest.raises(GuardViolation):
        check_payment_transition(ADMIN, unit(payment=PS.FAILED), PS.FAILED)
    with pytest.raises(GuardViolation):
        check_payment_transition(ADMIN, unit(), PS.PENDING)


def test_payment_changes_need_manage_rights():
    with pytest.raises(GuardViolation):
        check_payment_transition(VIEWER, unit(), PS.REFUNDED)
    with pytest.raises(GuardViolation):
        check_payment_transition(VENDOR, unit(), PS.REFUNDED)
    with pytest.raises(GuardViolation):
        check_payment_confirmation(VENDOR)
    with pytest.raises(GuardViolation):
        check_payment_confirmation(VIEWER)
    check_payment_confirmation(ADMIN)
    check_payment_confirmation(ROOT)


def test_direct_shipment_lifecycle():
    approved = dict(order=OS.APPROVED)
    check_shipment_transition(ADMIN, unit(**approved), SS.PROCESSING)
    check_shipment_transition(ADMIN, unit(shipment=SS.PROCESSING, **approved), SS.SHIPPED)
    check_shipment_transition(ADMIN, unit(**approved), SS.SHIPPED)
    check_shipment_transition(ADMIN, unit(shipment=SS.SHIPPED, **approved), SS.DELIVERED)
    with pytest.raises(GuardViolation):
        check_shipment_transition(ADMIN, unit(**approved), SS.DELIVERED)


def test_vendor_fulfillment_center_shipment_lifecycle():
    approved = dict(order=OS.APPROVED)
    path = [SS.PENDING, SS.PROCESSING, SS.VENDOR_SHIPPED, SS.ADMIN_RECEIVED, SS.SHIPPED, SS.DELIVERED]
    for current, target in zip(path, path[1:]):
        check_shipment_transition(ADMIN, unit(shipment=current, **approved), target, mode=VFC)
    with pytest.raises(GuardViolation):
        check_shipment_transition(ADMIN, unit(**approved), SS.SHIPPED, mode=VFC)


def test_terminal_shipments_do_not_move():
    for terminal in (SS.DELIVERED, SS.RETURNED, SS.CANCELLED):
        with pytest.raises(GuardViolation):
            check_shipment_transition(ROOT, unit(order=OS.APPROVED, shipment=terminal), SS.PROCESSING)


def test_vendor_shipment_needs_paid_and_approved_order():
    with pytest.raises(GuardViolation):
        check_shipment_transition(VENDOR, unit(order=OS.ORDER_RECEIVED), SS.PROCESSING)
    with pytest.raises(GuardViolation):
        check_shipment_transition(VENDOR, unit(order=OS.APPROVED, payment=PS.PENDING), SS.PROCESSING)
    check_shipment_transition(VENDOR, unit(order=OS.APPROVED), SS.PROCESSING)
    with pytest.raises(GuardViolation):
        check_shipment_transition(OTHER_VENDOR, unit(order=OS.APPROVED), SS.PROCESSING)


def test_vendor_cannot_cancel_or_receive_shipments():
    with pytest.raises(GuardViolation):
        check_shipment_transition(VENDOR, unit(order=OS.APPROVED), SS.CANCELLED)
    with pytest.raises(GuardViolation):
        check_shipment_transition(VENDOR, unit(order=OS.APPROVED, shipment=SS.VENDOR_SHIPPED),
                                  SS.ADMIN_RECEIVED, mode=VFC)


def test_rejected_orders_can_only_be_cancelled_or_returned():
    with pytest.raises(GuardViolation):
        check_shipment_transition(ADMIN, unit(order=OS.ADMIN_REJECTED), SS.PROCESSING)
    check_shipment_transition(ADMIN, unit(order=OS.CANCELLED), SS.CANCELLED)


def test_dispatch_status_depends_on_mode():
    assert is_dispatch(SS.SHIPPED)
    assert not is_dispatch(SS.PROCESSING)
    assert is_dispatch(SS.PROCESSING, VFC)
    assert not is_dispatch(SS.SHIPPED, VFC)

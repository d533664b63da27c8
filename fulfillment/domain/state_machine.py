"""Transition rules for order, payment and shipment status.

Both status vocabularies share one set of enums; ``FulfillmentMode`` picks
which transitions are legal. The checks here are pure: they look at a
snapshot of the unit and the acting caller and either return or raise
GuardViolation / ValidationError. Persistence happens elsewhere.
"""
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Set

from .errors import GuardViolation
from .statuses import (
    APPROVED_STATUSES,
    ORDER_APPROVE,
    ORDER_CLOSED_STATUSES,
    ORDER_CONTROLLED_APPROVE,
    ORDER_MANAGE,
    SHIPMENT_TERMINAL_STATUSES,
    FulfillmentMode,
    OrderStatus,
    PaymentStatus,
    Role,
    ShipmentStatus,
)

OS = OrderStatus
SS = ShipmentStatus

_CLOSING_ORDER_TARGETS = {OS.REJECTED, OS.ADMIN_REJECTED, OS.CANCELLED}
_SHIPMENT_EXITS = {SS.CANCELLED, SS.RETURNED}

ORDER_TRANSITIONS: Dict[FulfillmentMode, Dict[OrderStatus, Set[OrderStatus]]] = {
    FulfillmentMode.DIRECT: {
        OS.ORDER_RECEIVED: APPROVED_STATUSES | _CLOSING_ORDER_TARGETS,
    },
    FulfillmentMode.VENDOR_FULFILLMENT_CENTER: {
        OS.ORDER_RECEIVED: {OS.VENDOR_APPROVED, OS.VENDOR_REJECTED} | APPROVED_STATUSES | _CLOSING_ORDER_TARGETS,
        OS.VENDOR_APPROVED: APPROVED_STATUSES | {OS.ADMIN_REJECTED, OS.CANCELLED},
    },
}

SHIPMENT_TRANSITIONS: Dict[FulfillmentMode, Dict[ShipmentStatus, Set[ShipmentStatus]]] = {
    FulfillmentMode.DIRECT: {
        # Manual routes skip processing: there is no pickup to schedule.
        SS.PENDING: {SS.PROCESSING, SS.SHIPPED} | _SHIPMENT_EXITS,
        SS.PROCESSING: {SS.SHIPPED} | _SHIPMENT_EXITS,
        SS.SHIPPED: {SS.DELIVERED} | _SHIPMENT_EXITS,
    },
    FulfillmentMode.VENDOR_FULFILLMENT_CENTER: {
        SS.PENDING: {SS.PROCESSING} | _SHIPMENT_EXITS,
        SS.PROCESSING: {SS.VENDOR_SHIPPED} | _SHIPMENT_EXITS,
        SS.VENDOR_SHIPPED: {SS.ADMIN_RECEIVED} | _SHIPMENT_EXITS,
        SS.ADMIN_RECEIVED: {SS.SHIPPED} | _SHIPMENT_EXITS,
        SS.SHIPPED: {SS.DELIVERED} | _SHIPMENT_EXITS,
    },
}

# The status whose entry needs tracking data or a scheduled carrier pickup.
DISPATCH_STATUS = {
    FulfillmentMode.DIRECT: SS.SHIPPED,
    FulfillmentMode.VENDOR_FULFILLMENT_CENTER: SS.PROCESSING,
}

VENDOR_ORDER_TARGETS = {
    FulfillmentMode.DIRECT: {OS.APPROVED} | _CLOSING_ORDER_TARGETS,
    FulfillmentMode.VENDOR_FULFILLMENT_CENTER: {OS.VENDOR_APPROVED, OS.VENDOR_REJECTED, OS.CANCELLED},
}

VENDOR_SHIPMENT_TARGETS = {
    FulfillmentMode.DIRECT: {SS.PROCESSING, SS.SHIPPED, SS.DELIVERED},
    FulfillmentMode.VENDOR_FULFILLMENT_CENTER: {SS.PROCESSING, SS.VENDOR_SHIPPED},
}

APPROVAL_CAPABILITY = {
    OS.APPROVED: ORDER_APPROVE,
    OS.APPROVED_CONTROLLED: ORDER_CONTROLLED_APPROVE,
    OS.VENDOR_APPROVED: ORDER_MANAGE,
}

DIRECT_PAYMENT_TARGETS = {PaymentStatus.FAILED, PaymentStatus.REFUNDED}


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: Role
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    vendor_id: Optional[str] = None

    @property
    def is_vendor(self) -> bool:
        return self.role == Role.VENDOR

    def can(self, capability: str) -> bool:
        if self.role == Role.SUPER_ADMIN:
            return True
        return capability in self.capabilities

    def owns(self, unit: "UnitState") -> bool:
        return self.is_vendor and self.vendor_id is not None and unit.vendor_id == self.vendor_id


@dataclass(frozen=True)
class UnitState:
    """Snapshot of one fulfillment unit; payment status comes from the aggregate order."""
    order_status: OrderStatus
    payment_status: PaymentStatus
    shipment_status: ShipmentStatus
    vendor_id: Optional[str] = None


def _require_manager(actor: Actor, action: str) -> None:
    if not actor.can(ORDER_MANAGE):
        raise GuardViolation(f"You do not have permission to {action}",
                             {"required_capability": ORDER_MANAGE})


def check_order_transition(
    actor: Actor,
    unit: UnitState,
    target: OrderStatus,
    mode: FulfillmentMode = FulfillmentMode.DIRECT,
    invoice_comment_supplied: bool = False,
) -> None:
    current = unit.order_status
    if target == current:
        raise GuardViolation(f"Order is already {current.value}")

    if actor.is_vendor:
        if not actor.owns(unit):
            raise GuardViolation("Vendors may only update their own sub-orders")
        if current != OS.ORDER_RECEIVED:
            raise GuardViolation("Vendors may only update orders that are still order_received")
        if target not in VENDOR_ORDER_TARGETS[mode]:
            raise GuardViolation(f"Vendors may not set order status to {target.value}")
    elif target in APPROVAL_CAPABILITY:
        if not actor.can(APPROVAL_CAPABILITY[target]):
            raise GuardViolation(f"You do not have permission to set order status to {target.value}",
                                 {"required_capability": APPROVAL_CAPABILITY[target]})
    else:
        _require_manager(actor, "manage orders")

    allowed = ORDER_TRANSITIONS[mode].get(current, set())
    if target not in allowed:
        raise GuardViolation(f"Cannot change order status from {current.value} to {target.value}")

    if target in APPROVAL_CAPABILITY and unit.payment_status != PaymentStatus.PAID:
        raise GuardViolation("Order must be paid before it can be approved")

    if target in APPROVED_STATUSES and not invoice_comment_supplied:
        raise GuardViolation("An invoice comment must be confirmed before approving the order",
                             {"requires": "invoice_comment"})


def check_payment_transition(actor: Actor, unit: UnitState, target: PaymentStatus) -> None:
    if actor.is_vendor:
        raise GuardViolation("Vendors may not change payment status")
    _require_manager(actor, "change payment status")
    if target == PaymentStatus.PAID:
        raise GuardViolation("Payments are marked paid through payment confirmation",
                             {"requires": "payment_confirmation"})
    if target not in DIRECT_PAYMENT_TARGETS:
        raise GuardViolation(f"Payment status cannot be set to {target.value}")
    if unit.payment_status == target:
        raise GuardViolation(f"Payment is already {target.value}")


def check_payment_confirmation(actor: Actor) -> None:
    if actor.is_vendor:
        raise GuardViolation("Vendors may not confirm payments")
    _require_manager(actor, "confirm payments")


def check_shipment_transition(
    actor: Actor,
    unit: UnitState,
    target: ShipmentStatus,
    mode: FulfillmentMode = FulfillmentMode.DIRECT,
) -> None:
    current = unit.shipment_status
    if current in SHIPMENT_TERMINAL_STATUSES:
        raise GuardViolation(f"Shipment is already {current.value}")
    if target == current:
        raise GuardViolation(f"Shipment is already {current.value}")

    if actor.is_vendor:
        if not actor.owns(unit):
            raise GuardViolation("Vendors may only update their own sub-orders")
        if unit.payment_status != PaymentStatus.PAID or unit.order_status not in APPROVED_STATUSES:
            raise GuardViolation("Shipment can only progress once the order is paid and approved")
        if target not in VENDOR_SHIPMENT_TARGETS[mode]:
            raise GuardViolation(f"Vendors may not set shipment status to {target.value}")
    else:
        _require_manager(actor, "manage shipments")

    allowed = SHIPMENT_TRANSITIONS[mode].get(current, set())
    if target not in allowed:
        raise GuardViolation(f"Cannot change shipment status from {current.value} to {target.value}")

    if target not in _SHIPMENT_EXITS and unit.order_status in ORDER_CLOSED_STATUSES:
        raise GuardViolation(f"Cannot ship an order that is {unit.order_status.value}")


def is_dispatch(target: ShipmentStatus, mode: FulfillmentMode = FulfillmentMode.DIRECT) -> bool:
    return DISPATCH_STATUS[mode] == target

from contextlib import contextmanager
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
import re

from sqlalchemy import select, or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from shared.core import get_logger
from fulfillment.core_settings import Settings, get_settings
from fulfillment.domain import ledger
from fulfillment.domain.blobs import ShipmentDetails, load_shipment_details, merge_shipment_details
from fulfillment.domain.errors import (
    DomainError, ExternalServiceFailure, GuardViolation, NotFound, StaleStateError, ValidationError,
)
from fulfillment.domain.models import Order, OrderItem, StatusHistory
from fulfillment.domain.money import format_money, quantize, total_quantity, total_weight
from fulfillment.domain.reconciliation import reconcile
from fulfillment.domain.routing import ShippingRoute, classify
from fulfillment.domain.state_machine import (
    Actor, UnitState, check_order_transition, check_payment_confirmation,
    check_payment_transition, check_shipment_transition, is_dispatch,
)
from fulfillment.domain.statuses import (
    APPROVED_STATUSES, FulfillmentMode, OrderStatus, OrderType, PaymentMode, PaymentStatus,
    Role, ShipmentStatus,
)
from fulfillment.infrastructure.carrier import PickupRequest
from .schemas import (
    OrderRead, OrderStatusUpdate, PaymentConfirmRequest, PaymentConfirmationRead, PaymentLedgerRead,
    PaymentStatusResult, ReconciliationRead, ShipmentStatusUpdate, StatusHistoryRead, SubOrderOutcome,
    SubOrderRead,
)

logger = get_logger(__name__)

MIN_TRACKING_NUMBER_LENGTH = 5
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

REQUEST_ORDER_CONSTRAINTS = [
    "Request orders need manual approval before normal processing",
    "Payment for request orders is collected outside the platform",
]


def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise GuardViolation(f"Unrecognised {label} '{value}'")


class OrderFulfillmentService:
    """Order lifecycle, payment ledger and shipment routing for one request.

    Every transition runs in its own transaction: the row is locked, the
    guards run, and status, ledger and history are committed together or
    not at all.
    """

    def __init__(self, db: Session, carrier=None, settings: Optional[Settings] = None):
        self.db = db
        self.carrier = carrier
        self.settings = settings or get_settings()
        self.mode = FulfillmentMode(self.settings.FULFILLMENT_MODE)

    # Lookup

    def _find(self, order_ref: str) -> Optional[Order]:
        order = self.db.get(Order, order_ref)
        if order is not None:
            return order.root
        for column in (Order.order_id, Order.order_group_id):
            order = self.db.execute(
                select(Order).where(column == order_ref, Order.parent_id.is_(None))
            ).scalars().first()
            if order is not None:
                return order
        return None

    def _visible_to(self, order: Order, actor: Actor) -> bool:
        if not actor.is_vendor:
            return True
        return any(unit.vendor_id == actor.vendor_id for unit in [order, *order.grouped_orders])

    def get(self, order_ref: str, actor: Actor) -> Order:
        order = self._find(order_ref)
        if order is None or not self._visible_to(order, actor):
            raise NotFound("Order not found", {"order_ref": order_ref})
        return order

    def _currency(self, root: Order) -> str:
        return root.currency or self.settings.DEFAULT_CURRENCY

    def list(self, actor: Actor) -> List[Order]:
        query = select(Order).where(Order.parent_id.is_(None)).order_by(Order.created_at.desc())
        if actor.is_vendor:
            vendor_parents = select(Order.parent_id).where(
                Order.vendor_id == actor.vendor_id, Order.parent_id.is_not(None))
            query = query.where(or_(Order.vendor_id == actor.vendor_id, Order.id.in_(vendor_parents)))
        return list(self.db.execute(query).scalars().all())

    def _resolve_unit(self, root: Order, sub_order_ref: Optional[str], actor: Actor) -> Order:
        if sub_order_ref is None:
            return root
        for sub in root.grouped_orders:
            if sub_order_ref in (sub.id, sub.order_id):
                if actor.is_vendor and sub.vendor_id != actor.vendor_id:
                    break
                return sub
        raise NotFound("Sub-order not found", {"sub_order_ref": sub_order_ref})

    def _transition_unit(self, root: Order, sub_order_ref: Optional[str], actor: Actor) -> Order:
        """Unit a status change applies to; grouped orders only move per sub-order."""
        if sub_order_ref is None and root.is_grouped:
            raise GuardViolation("Grouped orders are updated per sub-order",
                                 {"order_id": root.id, "sub_orders": [sub.id for sub in root.grouped_orders]})
        return self._resolve_unit(root, sub_order_ref, actor)

    def _history_units(self, root: Order, sub_order_ref: Optional[str], actor: Actor) -> List[Order]:
        if sub_order_ref is None and actor.is_vendor:
            units = root.grouped_orders if root.is_grouped else [root]
            return [unit for unit in units if unit.vendor_id == actor.vendor_id]
        return [self._resolve_unit(root, sub_order_ref, actor)]

    def _merged_history(self, units: List[Order]) -> List[StatusHistory]:
        entries = [entry for unit in units for entry in unit.status_history]
        return sorted(entries, key=lambda h: (h.timestamp, h.id), reverse=True)

    # Transactions

    @contextmanager
    def _atomic(self, unit: Order, action: str):
        try:
            yield
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.info(f"Concurrent update rejected for {unit.order_id}",
                        extra={'extra_fields': {'order_id': unit.id, 'action': action}})
            raise StaleStateError("Order was changed by another request; reload and retry") from e
        except DomainError as e:
            self.db.rollback()
            logger.info(f"{action} rejected for {unit.order_id}: {e.message}",
                        extra={'extra_fields': {'order_id': unit.id, 'code': e.code}})
            raise
        except Exception:
            self.db.rollback()
            raise

    def _lock(self, unit: Order, expected_version: Optional[int] = None) -> Order:
        # Without an explicit version the caller's last read is the expectation.
        if expected_version is None:
            expected_version = unit.version
        locked = self.db.execute(
            select(Order).where(Order.id == unit.id).with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        if locked.version != expected_version:
            raise StaleStateError("Order was changed by another request; reload and retry",
                                  {"expected_version": expected_version, "current_version": locked.version})
        return locked

    def _state(self, unit: Order) -> UnitState:
        return UnitState(
            order_status=_coerce(OrderStatus, unit.order_status, "order status"),
            payment_status=_coerce(PaymentStatus, unit.root.payment_status, "payment status"),
            shipment_status=_coerce(ShipmentStatus, unit.shipment_status, "shipment status"),
            vendor_id=unit.vendor_id,
        )

    def _record(self, unit: Order, actor: Actor, note: str) -> None:
        unit.status_history.append(StatusHistory(
            timestamp=datetime.utcnow(),
            note=note,
            updated_by=actor.user_id,
            status=unit.order_status,
            payment_status=unit.payment_status,
            shipment_status=unit.shipment_status,
        ))

    # Order status

    def change_order_status(self, order_ref: str, actor: Actor, data: OrderStatusUpdate,
                            sub_order_ref: Optional[str] = None) -> Order:
        root = self.get(order_ref, actor)
        unit = self._transition_unit(root, sub_order_ref, actor)
        target = data.order_status
        with self._atomic(unit, "Order status change"):
            unit = self._lock(unit, data.expected_version)
            check_order_transition(actor, self._state(unit), target, self.mode,
                                   invoice_comment_supplied=data.invoice_comment_supplied)
            unit.order_status = target.value
            if target in APPROVED_STATUSES:
                unit.invoice_comments = data.invoice_comment
            self._record(unit, actor, f"Order status changed to {target.value}")
        logger.info(f"Order {unit.order_id} moved to {target.value}",
                    extra={'extra_fields': {'order_id': unit.id, 'actor': actor.user_id}})
        return root

    # Payments

    def confirm_payment(self, order_ref: str, actor: Actor, data: PaymentConfirmRequest) -> PaymentConfirmationRead:
        root = self.get(order_ref, actor)
        mode = PaymentMode(data.payment_mode)
        with self._atomic(root, "Payment confirmation"):
            root = self._lock(root, data.expected_version)
            check_payment_confirmation(actor)
            amount = root.group_total_amount if root.is_grouped and root.group_total_amount is not None \
                else root.total_amount
            entry = ledger.build_offline_entry(
                mode, data.model_dump(mode="json"), amount_total=quantize(amount), currency=self._currency(root))
            # Ledger append and paid status commit together.
            root.transaction_details = ledger.append(root.transaction_details, entry)
            root.payment_status = PaymentStatus.PAID.value
            self._record(root, actor, f"Payment confirmed via {mode.value}")
        logger.info(f"Payment of {format_money(entry.amount_total, entry.currency)} confirmed for {root.order_id}",
                    extra={'extra_fields': {'order_id': root.id, 'payment_mode': mode.value}})

        outcomes = self._fan_out_payment(root, actor, PaymentStatus.PAID, f"Payment confirmed via {mode.value}")
        return PaymentConfirmationRead(
            order=self.project(root, actor),
            entry=entry,
            sub_orders=outcomes,
            refetch_after_seconds=self.settings.INVOICE_REFETCH_DELAY_SECONDS,
        )

    def set_payment_status(self, order_ref: str, actor: Actor, target: PaymentStatus,
                           expected_version: Optional[int] = None) -> PaymentStatusResult:
        root = self.get(order_ref, actor)
        with self._atomic(root, "Payment status change"):
            root = self._lock(root, expected_version)
            check_payment_transition(actor, self._state(root), target)
            root.payment_status = target.value
            self._record(root, actor, f"Payment status changed to {target.value}")

        outcomes = self._fan_out_payment(root, actor, target, f"Payment status changed to {target.value}")
        return PaymentStatusResult(order=self.project(root, actor), sub_orders=outcomes)

    def _fan_out_payment(self, root: Order, actor: Actor, target: PaymentStatus, note: str) -> List[SubOrderOutcome]:
        """Apply the aggregate payment status to each sub-order in its own transaction."""
        outcomes = []
        for sub in list(root.grouped_orders):
            outcome = SubOrderOutcome(sub_order_id=sub.id, order_id=sub.order_id, ok=True)
            try:
                with self._atomic(sub, "Payment status fan-out"):
                    sub = self._lock(sub)
                    if sub.payment_status != target.value:
                        sub.payment_status = target.value
                        self._record(sub, actor, note)
                        outcome.changed = True
            except DomainError as e:
                outcome.ok = False
                outcome.error = e.message
                outcome.code = e.code
                logger.warning(f"Payment status not applied to sub-order {sub.order_id}",
                               extra={'extra_fields': {'sub_order_id': sub.id, 'code': e.code}})
            outcome.payment_status = sub.payment_status
            outcomes.append(outcome)
        return outcomes

    def payments(self, order_ref: str, actor: Actor) -> PaymentLedgerRead:
        root = self.get(order_ref, actor)
        return PaymentLedgerRead(
            order_id=root.id,
            payment_status=root.payment_status,
            has_successful_payment=ledger.has_successful_payment(root.transaction_details),
            entries=ledger.view(root.transaction_details, actor.role),
        )

    # Shipments

    def change_shipment_status(self, order_ref: str, actor: Actor, data: ShipmentStatusUpdate,
                               sub_order_ref: Optional[str] = None) -> Order:
        root = self.get(order_ref, actor)
        unit = self._transition_unit(root, sub_order_ref, actor)
        target = data.shipment_status
        with self._atomic(unit, "Shipment status change"):
            unit = self._lock(unit, data.expected_version)
            check_shipment_transition(actor, self._state(unit), target, self.mode)
            note = f"Shipment status changed to {target.value}"
            if is_dispatch(target, self.mode):
                if classify(unit, self.settings.CARRIER_ACCOUNT_COUNTRY) == ShippingRoute.MANUAL:
                    logger.info(f"Sub-order {unit.order_id} routed for manual shipping",
                                extra={'extra_fields': {'order_id': unit.id}})
                    updates = self._manual_tracking(data)
                    note = f"{note} (manual tracking {updates['tracking_number']})"
                else:
                    updates = self._schedule_pickup(root, unit, data)
                    note = f"{note} (pickup scheduled, tracking {updates['tracking_number']})"
                unit.shipment_details = merge_shipment_details(unit.shipment_details, **updates)
            unit.shipment_status = target.value
            self._record(unit, actor, note)
        logger.info(f"Shipment for {unit.order_id} moved to {target.value}",
                    extra={'extra_fields': {'order_id': unit.id, 'actor': actor.user_id}})
        return root

    def _manual_tracking(self, data: ShipmentStatusUpdate) -> dict:
        tracking_number = (data.tracking_number or "").strip()
        provider = (data.provider or "").strip()
        errors = {}
        if len(tracking_number) < MIN_TRACKING_NUMBER_LENGTH:
            errors["tracking_number"] = f"Tracking number must be at least {MIN_TRACKING_NUMBER_LENGTH} characters"
        if not provider:
            errors["provider"] = "Shipping provider is required"
        if errors:
            raise ValidationError("Manual shipments need a tracking number and provider", errors)
        return {"tracking_number": tracking_number, "provider": provider}

    def _schedule_pickup(self, root: Order, unit: Order, data: ShipmentStatusUpdate) -> dict:
        errors = {}
        try:
            date.fromisoformat(data.pickup_date or "")
        except ValueError:
            errors["pickup_date"] = "Pickup date must be given as YYYY-MM-DD"
        for field in ("ready_time", "close_time"):
            if not _TIME_RE.match(getattr(data, field) or ""):
                errors[field] = "Pickup time must be given as HH:MM"
        if not errors and data.close_time <= data.ready_time:
            errors["close_time"] = "Close time must be after ready time"
        weight, package_count = pickup_load(root, unit)
        if weight <= 0:
            errors["weight"] = "Weight must be greater than 0"
        if errors:
            raise ValidationError("Pickup scheduling needs a valid pickup window", errors)

        if self.carrier is None:
            raise ExternalServiceFailure("Carrier integration is not configured")
        result = self.carrier.schedule_pickup(PickupRequest(
            order_id=unit.id,
            weight=weight,
            package_count=package_count,
            target_status=data.shipment_status.value,
            pickup_date=data.pickup_date,
            ready_time=data.ready_time,
            close_time=data.close_time,
        ))
        return {
            "tracking_number": result.tracking_number,
            "label_url": result.label_url,
            "pickup_confirmation": result.pickup_confirmation,
            "pickup_date": data.pickup_date,
            "provider": self.settings.CARRIER_NAME,
        }

    # Read side

    def reconcile(self, order_ref: str, actor: Actor, sub_order_ref: Optional[str] = None) -> ReconciliationRead:
        root = self.get(order_ref, actor)
        unit = self._resolve_unit(root, sub_order_ref, actor)
        if actor.is_vendor and unit.vendor_id != actor.vendor_id:
            raise NotFound("Sub-order not found", {"sub_order_ref": sub_order_ref or order_ref})
        return ReconciliationRead.model_validate(reconcile(unit, actor.role, self._currency(root)))

    def history(self, order_ref: str, actor: Actor, sub_order_ref: Optional[str] = None) -> List[StatusHistory]:
        root = self.get(order_ref, actor)
        return self._merged_history(self._history_units(root, sub_order_ref, actor))

    def project(self, root: Order, actor: Actor) -> OrderRead:
        """Role-aware view of an order: vendors see only their own sub-orders and no buyer data."""
        is_vendor = actor.role == Role.VENDOR
        units = root.grouped_orders if root.is_grouped else [root]
        if is_vendor:
            units = [unit for unit in units if unit.vendor_id == actor.vendor_id]

        total_amount = quantize(root.total_amount)
        if is_vendor and root.is_grouped:
            total_amount = quantize(sum((quantize(unit.total_amount) for unit in units), Decimal("0")))

        is_request = root.type == OrderType.REQUEST.value
        return OrderRead(
            id=root.id,
            order_id=root.order_id,
            order_group_id=root.order_group_id,
            type=root.type,
            currency=self._currency(root),
            total_amount=total_amount,
            group_total_amount=None if is_vendor or root.group_total_amount is None
            else quantize(root.group_total_amount),
            user=None if is_vendor else root.user,
            order_status=root.order_status,
            payment_status=root.payment_status,
            shipment_status=root.shipment_status,
            has_successful_payment=ledger.has_successful_payment(root.transaction_details),
            requires_offline_payment=is_request,
            constraints=REQUEST_ORDER_CONSTRAINTS if is_request else [],
            is_grouped=root.is_grouped,
            grouped_orders=[self._project_unit(unit, root, actor) for unit in units],
            status_history=[StatusHistoryRead.model_validate(h)
                            for h in self._merged_history(units if is_vendor else [root])],
            version=root.version,
        )

    def _project_unit(self, unit: Order, root: Order, actor: Actor) -> SubOrderRead:
        return SubOrderRead(
            id=unit.id,
            order_id=unit.order_id,
            vendor_id=unit.vendor_id,
            vendor=unit.vendor,
            order_status=unit.order_status,
            payment_status=unit.payment_status,
            shipment_status=unit.shipment_status,
            shipment_details=ShipmentDetails.model_validate(load_shipment_details(unit.shipment_details)),
            shipping_route=classify(unit, self.settings.CARRIER_ACCOUNT_COUNTRY).value,
            invoice_comments=unit.invoice_comments,
            financials=ReconciliationRead.model_validate(reconcile(unit, actor.role, self._currency(root))),
            version=unit.version,
        )


def all_items(root: Order) -> List[OrderItem]:
    items = list(root.items)
    for sub in root.grouped_orders:
        items.extend(sub.items)
    return items


def pickup_load(root: Order, unit: Order):
    """Weight and package count for a pickup of ``unit``.

    Falls back from the sub-order's own items to the order's items for the
    same vendor, then to every item of the order, then to a single unit.
    """
    items = []
    if unit is not root:
        items = list(unit.items)
        if not items and unit.vendor_id:
            items = [item for item in root.items if item.vendor_id == unit.vendor_id]
    if not items:
        items = all_items(root)
    if not items:
        return Decimal("1"), 1
    return total_weight(items), total_quantity(items) or 1

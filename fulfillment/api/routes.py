from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from fulfillment.api.dependencies import get_actor, get_notifier, get_service
from fulfillment.application.service import OrderFulfillmentService
from fulfillment.application.schemas import (
    OrderRead, OrderStatusUpdate, PaymentConfirmRequest, PaymentConfirmationRead, PaymentLedgerRead,
    PaymentStatusResult, PaymentStatusUpdate, ReconciliationRead, ShipmentStatusUpdate, StatusHistoryRead,
)
from fulfillment.domain.errors import DomainError
from fulfillment.domain.state_machine import Actor
from fulfillment.infrastructure.notifications import NotificationClient, mark_order_notifications_read

router = APIRouter(prefix="/orders", tags=["orders"])

async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@router.get("/", response_model=list[OrderRead])
def list_orders(actor: Actor = Depends(get_actor), service: OrderFulfillmentService = Depends(get_service)):
    """List orders visible to the caller."""
    return [service.project(order, actor) for order in service.list(actor)]

@router.get("/{order_ref}", response_model=OrderRead)
def get_order(order_ref: str, background_tasks: BackgroundTasks,
              actor: Actor = Depends(get_actor),
              service: OrderFulfillmentService = Depends(get_service),
              notifier: NotificationClient = Depends(get_notifier)):
    """Get an order by id, short order code or group code; marks its notifications read."""
    order = service.get(order_ref, actor)
    background_tasks.add_task(mark_order_notifications_read, notifier, order.id, order.order_group_id)
    return service.project(order, actor)

@router.get("/{order_ref}/history", response_model=list[StatusHistoryRead])
def get_history(order_ref: str, actor: Actor = Depends(get_actor),
                service: OrderFulfillmentService = Depends(get_service)):
    return service.history(order_ref, actor)

@router.get("/{order_ref}/payments", response_model=PaymentLedgerRead)
def get_payments(order_ref: str, actor: Actor = Depends(get_actor),
                 service: OrderFulfillmentService = Depends(get_service)):
    return service.payments(order_ref, actor)

@router.post("/{order_ref}/payments", response_model=PaymentConfirmationRead, status_code=201)
def confirm_payment(order_ref: str, payload: PaymentConfirmRequest, actor: Actor = Depends(get_actor),
                    service: OrderFulfillmentService = Depends(get_service)):
    """Record an offline payment and mark the order paid."""
    return service.confirm_payment(order_ref, actor, payload)

@router.put("/{order_ref}/payment-status", response_model=PaymentStatusResult)
def update_payment_status(order_ref: str, payload: PaymentStatusUpdate, actor: Actor = Depends(get_actor),
                          service: OrderFulfillmentService = Depends(get_service)):
    return service.set_payment_status(order_ref, actor, payload.payment_status, payload.expected_version)

@router.put("/{order_ref}/status", response_model=OrderRead)
def update_order_status(order_ref: str, payload: OrderStatusUpdate, actor: Actor = Depends(get_actor),
                        service: OrderFulfillmentService = Depends(get_service)):
    order = service.change_order_status(order_ref, actor, payload)
    return service.project(order, actor)

@router.put("/{order_ref}/shipment-status", response_model=OrderRead)
def update_shipment_status(order_ref: str, payload: ShipmentStatusUpdate, actor: Actor = Depends(get_actor),
                           service: OrderFulfillmentService = Depends(get_service)):
    order = service.change_shipment_status(order_ref, actor, payload)
    return service.project(order, actor)

@router.get("/{order_ref}/financials", response_model=ReconciliationRead)
def get_financials(order_ref: str, actor: Actor = Depends(get_actor),
                   service: OrderFulfillmentService = Depends(get_service)):
    return service.reconcile(order_ref, actor)

@router.put("/{order_ref}/sub-orders/{sub_order_id}/status", response_model=OrderRead)
def update_sub_order_status(order_ref: str, sub_order_id: str, payload: OrderStatusUpdate,
                            actor: Actor = Depends(get_actor),
                            service: OrderFulfillmentService = Depends(get_service)):
    order = service.change_order_status(order_ref, actor, payload, sub_order_ref=sub_order_id)
    return service.project(order, actor)

@router.put("/{order_ref}/sub-orders/{sub_order_id}/shipment-status", response_model=OrderRead)
def update_sub_order_shipment_status(order_ref: str, sub_order_id: str, payload: ShipmentStatusUpdate,
                                     actor: Actor = Depends(get_actor),
                                     service: OrderFulfillmentService = Depends(get_service)):
    order = service.change_shipment_status(order_ref, actor, payload, sub_order_ref=sub_order_id)
    return service.project(order, actor)

@router.get("/{order_ref}/sub-orders/{sub_order_id}/financials", response_model=ReconciliationRead)
def get_sub_order_financials(order_ref: str, sub_order_id: str, actor: Actor = Depends(get_actor),
                             service: OrderFulfillmentService = Depends(get_service)):
    return service.reconcile(order_ref, actor, sub_order_ref=sub_order_id)

@router.get("/{order_ref}/sub-orders/{sub_order_id}/history", response_model=list[StatusHistoryRead])
def get_sub_order_history(order_ref: str, sub_order_id: str, actor: Actor = Depends(get_actor),
                          service: OrderFulfillmentService = Depends(get_service)):
    return service.history(order_ref, actor, sub_order_ref=sub_order_id)

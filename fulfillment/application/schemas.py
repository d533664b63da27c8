from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import Optional, Any
from fulfillment.domain.blobs import ShipmentDetails
from fulfillment.domain.ledger import PaymentEntry
from fulfillment.domain.statuses import OrderStatus, PaymentMode, PaymentStatus, ShipmentStatus

# Requests

class PaymentConfirmRequest(BaseModel):
    payment_mode: PaymentMode = PaymentMode.BANK_TRANSFER
    transaction_id: Optional[str] = None
    sender_bank: Optional[str] = None
    sender_name: Optional[str] = None
    receipt_no: Optional[str] = None
    collected_by: Optional[str] = None
    cheque_no: Optional[str] = None
    issuing_bank: Optional[str] = None
    notes: Optional[str] = None
    expected_version: Optional[int] = None

class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus
    expected_version: Optional[int] = None

class OrderStatusUpdate(BaseModel):
    order_status: OrderStatus
    # Must be sent explicitly (null allowed) when approving
    invoice_comment: Optional[str] = None
    expected_version: Optional[int] = None

    @property
    def invoice_comment_supplied(self) -> bool:
        return "invoice_comment" in self.model_fields_set

class ShipmentStatusUpdate(BaseModel):
    shipment_status: ShipmentStatus
    # Manual route
    tracking_number: Optional[str] = None
    provider: Optional[str] = None
    # Carrier route
    pickup_date: Optional[str] = None
    ready_time: Optional[str] = None
    close_time: Optional[str] = None
    expected_version: Optional[int] = None

# Responses

class LineItemRead(BaseModel):
    item_id: Optional[Any] = None
    product_name: Optional[str] = None
    quantity: int
    base_price: Decimal
    unit_price: Optional[Decimal] = None
    platform_fee: Optional[Decimal] = None
    line_total: Decimal
    class Config:
        from_attributes = True

class ReconciliationRead(BaseModel):
    currency: str
    subtotal_base: Decimal
    shipping: Decimal
    packing: Decimal
    vat: Decimal
    vat_rate: Optional[Decimal] = None
    vat_label: str
    nominal_vat_rate: Decimal
    grand_total: Decimal
    items_subtotal: Decimal
    is_consistent: bool
    admin_commission: Optional[Decimal] = None
    vendor_receivable: Optional[Decimal] = None
    line_items: list[LineItemRead] = []
    class Config:
        from_attributes = True

class StatusHistoryRead(BaseModel):
    id: int
    timestamp: datetime
    note: Optional[str] = None
    updated_by: Optional[str] = None
    status: str
    payment_status: str
    shipment_status: str
    class Config:
        from_attributes = True

class SubOrderRead(BaseModel):
    id: str
    order_id: str
    vendor_id: Optional[str] = None
    vendor: Optional[dict] = None
    order_status: str
    payment_status: str
    shipment_status: str
    shipment_details: ShipmentDetails
    shipping_route: str
    invoice_comments: Optional[str] = None
    financials: ReconciliationRead
    version: int

class OrderRead(BaseModel):
    id: str
    order_id: str
    order_group_id: Optional[str] = None
    type: str
    currency: str
    total_amount: Decimal
    # Hidden from vendors
    group_total_amount: Optional[Decimal] = None
    user: Optional[dict] = None
    order_status: str
    payment_status: str
    shipment_status: str
    has_successful_payment: bool
    requires_offline_payment: bool
    constraints: list[str] = []
    is_grouped: bool
    # The order itself when it has no sub-orders
    grouped_orders: list[SubOrderRead] = []
    status_history: list[StatusHistoryRead] = []
    version: int

class PaymentLedgerRead(BaseModel):
    order_id: str
    payment_status: str
    has_successful_payment: bool
    entries: list[PaymentEntry]

class SubOrderOutcome(BaseModel):
    sub_order_id: str
    order_id: str
    ok: bool
    changed: bool = False
    payment_status: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None

class PaymentStatusResult(BaseModel):
    order: OrderRead
    sub_orders: list[SubOrderOutcome] = []

class PaymentConfirmationRead(BaseModel):
    order: OrderRead
    entry: PaymentEntry
    sub_orders: list[SubOrderOutcome] = []
    # Invoices are generated asynchronously; re-fetch the order after this delay
    refetch_after_seconds: float

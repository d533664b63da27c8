from enum import Enum


class OrderStatus(str, Enum):
    ORDER_RECEIVED = "order_received"
    VENDOR_APPROVED = "vendor_approved"
    VENDOR_REJECTED = "vendor_rejected"
    APPROVED = "approved"
    APPROVED_CONTROLLED = "approved_controlled"
    REJECTED = "rejected"
    ADMIN_REJECTED = "admin_rejected"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class ShipmentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    VENDOR_SHIPPED = "vendor_shipped"
    ADMIN_RECEIVED = "admin_received"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    RETURNED = "returned"
    CANCELLED = "cancelled"


class OrderType(str, Enum):
    NORMAL = "normal"
    REQUEST = "request"


class Role(str, Enum):
    VENDOR = "vendor"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class FulfillmentMode(str, Enum):
    # Vendors ship straight to the buyer
    DIRECT = "direct"
    # Vendors ship to the platform's fulfillment center, which ships on
    VENDOR_FULFILLMENT_CENTER = "vendor_fulfillment_center"


class PaymentMode(str, Enum):
    BANK_TRANSFER = "Bank Transfer"
    CASH = "Cash"
    CHEQUE = "Cheque"


APPROVED_STATUSES = {OrderStatus.APPROVED, OrderStatus.APPROVED_CONTROLLED}

ORDER_CLOSED_STATUSES = {
    OrderStatus.REJECTED,
    OrderStatus.ADMIN_REJECTED,
    OrderStatus.VENDOR_REJECTED,
    OrderStatus.CANCELLED,
}

SHIPMENT_TERMINAL_STATUSES = {
    ShipmentStatus.DELIVERED,
    ShipmentStatus.RETURNED,
    ShipmentStatus.CANCELLED,
}

ORDER_MANAGE = "order.manage"
ORDER_APPROVE = "order.approve"
ORDER_CONTROLLED_APPROVE = "order.controlled.approve"

PLATFORM_VENDOR_IDS = {None, "", "admin"}

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import String, ForeignKey, Numeric, DateTime, Integer, Text, JSON
from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid

class Base(DeclarativeBase):
    pass

def _uuid() -> str:
    return str(uuid.uuid4())

class Order(Base):
    """An aggregate order or, when parent_id is set, one vendor's sub-order."""
    __tablename__ = "orders"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    # Human-readable short code shown to staff
    order_id: Mapped[str] = mapped_column(String(20), index=True)
    # 8-char grouping code shared by an order and its sub-orders
    order_group_id: Mapped[Optional[str]] = mapped_column(String(8), nullable=True, index=True)
    parent_id: Mapped[Optional[str]] = mapped_column(ForeignKey("orders.id"), nullable=True, index=True)
    type: Mapped[str] = mapped_column(String(20), default="normal")
    currency: Mapped[str] = mapped_column(String(3), default="AED")

    # "admin" or NULL means the platform fulfils the order itself
    vendor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    vendor: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    # Buyer snapshot (name, username, email, phone, country_code, user_type)
    user: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    order_status: Mapped[str] = mapped_column(String(30), default="order_received")
    payment_status: Mapped[str] = mapped_column(String(30), default="pending")
    shipment_status: Mapped[str] = mapped_column(String(30), default="pending")

    # JSON-encoded text; see domain.ledger and domain.blobs
    transaction_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipment_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    invoice_comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    group_total_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_shipping: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_packing: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    admin_commission: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    calculated_admin_commission: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    parent: Mapped[Optional["Order"]] = relationship(
        "Order", remote_side="Order.id", back_populates="grouped_orders")
    grouped_orders: Mapped[list["Order"]] = relationship(
        "Order", back_populates="parent", order_by="Order.order_id")
    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan")
    status_history: Mapped[list["StatusHistory"]] = relationship(
        "StatusHistory", back_populates="order", cascade="all, delete-orphan",
        order_by="StatusHistory.id")

    # Concurrent writers on the same row: the second flush raises StaleDataError
    __mapper_args__ = {"version_id_col": version}

    @property
    def is_grouped(self) -> bool:
        return bool(self.grouped_orders)

    @property
    def root(self) -> "Order":
        return self.parent if self.parent is not None else self

class OrderItem(Base):
    __tablename__ = "order_items"
    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), index=True)
    product_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    vendor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    # Unit price charged to the buyer
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    # Vendor's price before platform markup
    base_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    weight_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3), nullable=True)
    # Product snapshot captured at order creation time
    product_snapshot: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    order: Mapped[Order] = relationship("Order", back_populates="items")

class StatusHistory(Base):
    """Full status snapshot written on every accepted transition. Never updated."""
    __tablename__ = "order_status_history"
    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    status: Mapped[str] = mapped_column(String(30))
    payment_status: Mapped[str] = mapped_column(String(30))
    shipment_status: Mapped[str] = mapped_column(String(30))
    order: Mapped[Order] = relationship("Order", back_populates="status_history")

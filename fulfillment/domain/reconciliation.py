"""Read-side financial projection of a sub-order.

Nothing here writes to the order. The base subtotal is derived from the
stored grand total so the two can never drift; a disagreement with the sum
of the line items is reported, not corrected.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional

from .money import ZERO, quantize, to_decimal
from .statuses import PLATFORM_VENDOR_IDS, Role

NOMINAL_VAT_RATE = Decimal("5.00")


@dataclass
class LineItemView:
    item_id: Any
    product_name: Optional[str]
    quantity: int
    base_price: Decimal
    unit_price: Optional[Decimal]
    platform_fee: Optional[Decimal]
    line_total: Decimal


@dataclass
class Reconciliation:
    currency: str
    subtotal_base: Decimal
    shipping: Decimal
    packing: Decimal
    vat: Decimal
    vat_rate: Optional[Decimal]
    grand_total: Decimal
    items_subtotal: Decimal
    is_consistent: bool
    nominal_vat_rate: Decimal = NOMINAL_VAT_RATE
    admin_commission: Optional[Decimal] = None
    vendor_receivable: Optional[Decimal] = None
    line_items: List[LineItemView] = field(default_factory=list)

    @property
    def vat_label(self) -> str:
        rate = self.vat_rate if self.vat_rate is not None else self.nominal_vat_rate
        return f"VAT ({rate.normalize():f}%)"


def item_base_price(item: Any) -> Decimal:
    unit_price = to_decimal(getattr(item, "price", None))
    base = to_decimal(getattr(item, "base_price", None))
    if base > 0:
        return base
    snapshot = getattr(item, "product_snapshot", None) or {}
    base = to_decimal(snapshot.get("base_price") if isinstance(snapshot, dict) else None)
    return base if base > 0 else unit_price


def line_item_view(item: Any, role: Role) -> LineItemView:
    quantity = int(getattr(item, "quantity", 0) or 0)
    unit_price = to_decimal(getattr(item, "price", None))
    base_price = item_base_price(item)
    is_vendor = role == Role.VENDOR

    fee = unit_price - base_price
    platform_fee = quantize(fee) if not is_vendor and fee > 0 else None
    # Vendors never see the platform markup, not even inside the line total.
    charged = base_price if is_vendor else unit_price
    return LineItemView(
        item_id=getattr(item, "id", None),
        product_name=getattr(item, "product_name", None),
        quantity=quantity,
        base_price=quantize(base_price),
        unit_price=None if is_vendor else quantize(unit_price),
        platform_fee=platform_fee,
        line_total=quantize(charged * quantity),
    )


def admin_commission(sub_order: Any) -> Decimal:
    calculated = getattr(sub_order, "calculated_admin_commission", None)
    if calculated is not None:
        return to_decimal(calculated)
    return to_decimal(getattr(sub_order, "admin_commission", None))


def is_platform_fulfilled(sub_order: Any) -> bool:
    return getattr(sub_order, "vendor_id", None) in PLATFORM_VENDOR_IDS


def reconcile(sub_order: Any, role: Role = Role.ADMIN, currency: Optional[str] = None) -> Reconciliation:
    grand_total = quantize(getattr(sub_order, "total_amount", None))
    vat = quantize(getattr(sub_order, "vat_amount", None))
    shipping = quantize(getattr(sub_order, "total_shipping", None))
    packing = quantize(getattr(sub_order, "total_packing", None))
    subtotal_base = grand_total - vat - shipping - packing

    vat_rate = None
    if subtotal_base > 0:
        vat_rate = quantize(vat / subtotal_base * 100)

    items = list(getattr(sub_order, "items", None) or [])
    # Base pricing when any line carries a vendor price below the charged price.
    uses_base_pricing = any(item_base_price(item) != to_decimal(getattr(item, "price", None)) for item in items)
    items_subtotal = quantize(sum(
        ((item_base_price(item) if uses_base_pricing else to_decimal(getattr(item, "price", None)))
         * int(getattr(item, "quantity", 0) or 0) for item in items),
        ZERO,
    ))

    result = Reconciliation(
        currency=currency or getattr(sub_order, "currency", None) or "AED",
        subtotal_base=subtotal_base,
        shipping=shipping,
        packing=packing,
        vat=vat,
        vat_rate=vat_rate,
        grand_total=grand_total,
        items_subtotal=items_subtotal,
        is_consistent=not items or items_subtotal == subtotal_base,
        line_items=[line_item_view(item, role) for item in items],
    )

    commission = quantize(admin_commission(sub_order))
    if role != Role.VENDOR and commission > 0:
        result.admin_commission = commission
    if not is_platform_fulfilled(sub_order):
        result.vendor_receivable = grand_total - commission
    return result

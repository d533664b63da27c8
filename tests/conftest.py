import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import json
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fulfillment.application.service import OrderFulfillmentService
from fulfillment.core_settings import Settings
from fulfillment.domain.errors import ExternalServiceFailure
from fulfillment.domain.models import Base, Order, OrderItem
from fulfillment.domain.state_machine import Actor
from fulfillment.domain.statuses import ORDER_APPROVE, ORDER_CONTROLLED_APPROVE, ORDER_MANAGE, Role
from fulfillment.infrastructure.carrier import PickupResult


class FakeCarrier:
    def __init__(self):
        self.requests = []
        self.fail_with = None

    @property
    def configured(self):
        return True

    def schedule_pickup(self, request):
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        return PickupResult(
            tracking_number="794612345678",
            label_url="https://labels.example.com/794612345678.pdf",
            pickup_confirmation="CNF-001",
        )


class FakeNotifier:
    def __init__(self):
        self.marked = []

    def mark_read_by_entity(self, entity_type, entity_id):
        self.marked.append((entity_type, entity_id))
        return True


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(DATABASE_URL="sqlite://", FULFILLMENT_MODE="direct", CARRIER_ACCOUNT_COUNTRY="AE")


@pytest.fixture
def carrier():
    return FakeCarrier()


@pytest.fixture
def failing_carrier(carrier):
    carrier.fail_with = ExternalServiceFailure("Carrier service is unavailable, please retry")
    return carrier


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def service(db, carrier, settings):
    return OrderFulfillmentService(db, carrier=carrier, settings=settings)


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", role=Role.ADMIN,
                 capabilities=frozenset({ORDER_MANAGE, ORDER_APPROVE}))


@pytest.fixture
def viewer_admin():
    return Actor(user_id="admin-2", role=Role.ADMIN)


@pytest.fixture
def super_admin():
    return Actor(user_id="root-1", role=Role.SUPER_ADMIN)


@pytest.fixture
def controller():
    return Actor(user_id="admin-3", role=Role.ADMIN,
                 capabilities=frozenset({ORDER_MANAGE, ORDER_CONTROLLED_APPROVE}))


@pytest.fixture
def vendor():
    return Actor(user_id="vendor-user-1", role=Role.VENDOR, vendor_id="vendor-1")


@pytest.fixture
def other_vendor():
    return Actor(user_id="vendor-user-2", role=Role.VENDOR, vendor_id="vendor-2")


def _item(price, quantity=1, base_price=None, weight=None, vendor_id=None, name="Armour plate"):
    return OrderItem(
        product_name=name,
        sku=f"SKU-{name[:4].upper()}",
        quantity=quantity,
        price=Decimal(str(price)),
        base_price=Decimal(str(base_price)) if base_price is not None else None,
        weight_value=Decimal(str(weight)) if weight is not None else None,
        vendor_id=vendor_id,
    )


@pytest.fixture
def order_factory(db):
    counter = {"n": 1000}

    def make(vendor_id="vendor-1", vendor_country="AE", buyer_country="AE", total_amount="105.00",
             vat_amount="5.00", total_shipping="0", total_packing="0", payment_status="pending",
             order_status="order_received", shipment_status="pending", items=None, parent=None,
             commit=True, **extra):
        counter["n"] += 1
        order = Order(
            order_id=f"ORD-{counter['n']}",
            vendor_id=vendor_id,
            vendor={"name": f"{vendor_id} store", "profile": {"country": vendor_country}} if vendor_id else None,
            user={"name": "Buyer One", "email": "buyer@example.com", "country_code": "+971"},
            currency="AED",
            total_amount=Decimal(total_amount),
            vat_amount=Decimal(vat_amount),
            total_shipping=Decimal(total_shipping),
            total_packing=Decimal(total_packing),
            payment_status=payment_status,
            order_status=order_status,
            shipment_status=shipment_status,
            shipment_details=json.dumps({"country": buyer_country, "city": "Somewhere"}),
            **extra,
        )
        order.items = items if items is not None else [
            _item("100.00", quantity=1, base_price="90.00", weight="2.5", vendor_id=vendor_id)]
        if parent is not None:
            order.parent = parent
        db.add(order)
        if commit:
            db.commit()
        return order

    return make


@pytest.fixture
def grouped_order(db, order_factory):
    """An order split between an AE vendor and a US vendor shipping to India."""
    root = order_factory(vendor_id=None, total_amount="315.00", vat_amount="15.00",
                         order_group_id="G7K2M9QA", group_total_amount=Decimal("315.00"),
                         items=[], commit=False)
    order_factory(vendor_id="vendor-1", vendor_country="AE", buyer_country="IN", parent=root,
                  commit=False, calculated_admin_commission=Decimal("10.00"))
    order_factory(vendor_id="vendor-2", vendor_country="United States", buyer_country="India",
                  total_amount="210.00", vat_amount="10.00", parent=root, commit=False,
                  items=[_item("100.00", quantity=2, base_price="100.00", weight=None, vendor_id="vendor-2")])
    db.commit()
    return root


@pytest.fixture
def make_item():
    return _item

import json
import logging
from decimal import Decimal

import httpx
import pytest

from fulfillment.domain.errors import ExternalServiceFailure
from fulfillment.domain.statuses import ORDER_MANAGE, Role
from fulfillment.infrastructure.carrier import CarrierPickupClient, PickupRequest
from fulfillment.infrastructure.identity import actor_from_claims, create_access_token, decode_access_token
from fulfillment.infrastructure.notifications import NotificationClient, mark_order_notifications_read
from shared.core.logging_config import RedactionFilter

PICKUP = PickupRequest(order_id="sub-1", weight=Decimal("2.5"), package_count=1, target_status="shipped",
                       pickup_date="2026-11-02", ready_time="09:00", close_time="17:00")


def carrier_with(handler, api_key="key-123"):
    return CarrierPickupClient("https://carrier.test/", api_key, transport=httpx.MockTransport(handler))


def test_pickup_request_and_response_envelope():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": True, "data": {
            "shipment": {"trackingNumber": "794612345678", "labelUrl": "https://l/1.pdf", "shipmentId": "S1"},
            "pickup": {"confirmationCode": "CNF-9"},
        }})

    result = carrier_with(handler).schedule_pickup(PICKUP)
    assert seen["url"] == "https://carrier.test/shipment/schedule-pickup"
    assert seen["auth"] == "Bearer key-123"
    assert seen["body"]["weight"] == {"units": "KG", "value": 2.5}
    assert seen["body"]["pickupDate"] == "2026-11-02"
    assert result.tracking_number == "794612345678"
    assert result.pickup_confirmation == "CNF-9"
    assert result.shipment_id == "S1"


def test_carrier_error_message_is_passed_through():
    client = carrier_with(lambda request: httpx.Response(400, json={"message": "Pickup date is in the past"}))
    with pytest.raises(ExternalServiceFailure) as excinfo:
        client.schedule_pickup(PICKUP)
    assert excinfo.value.message == "Pickup date is in the past"
    assert excinfo.value.details == {"upstream_status": 400}


def test_carrier_transport_failure_is_retryable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExternalServiceFailure) as excinfo:
        carrier_with(handler).schedule_pickup(PICKUP)
    assert excinfo.value.retryable


def test_carrier_response_without_tracking_number_fails():
    client = carrier_with(lambda request: httpx.Response(200, json={"status": True, "data": {"shipment": {}}}))
    with pytest.raises(ExternalServiceFailure, match="tracking number"):
        client.schedule_pickup(PICKUP)

    client = carrier_with(lambda request: httpx.Response(200, json={"status": False, "message": "Account locked"}))
    with pytest.raises(ExternalServiceFailure, match="Account locked"):
        client.schedule_pickup(PICKUP)


def test_unconfigured_carrier():
    client = CarrierPickupClient(None)
    assert not client.configured
    with pytest.raises(ExternalServiceFailure):
        client.schedule_pickup(PICKUP)


def test_notifications_marked_for_order_and_group():
    posted = []

    def handler(request):
        posted.append(json.loads(request.content))
        return httpx.Response(200, json={"updated": 1})

    client = NotificationClient("https://notify.test", transport=httpx.MockTransport(handler))
    mark_order_notifications_read(client, "order-uuid", "G7K2M9QA")
    assert posted == [{"entity_type": "order", "entity_id": "order-uuid"},
                      {"entity_type": "order", "entity_id": "G7K2M9QA"}]


def test_notification_failures_are_not_raised():
    client = NotificationClient("https://notify.test",
                                transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    assert client.mark_read_by_entity("order", "order-uuid") is False
    assert NotificationClient(None).mark_read_by_entity("order", "order-uuid") is False


def test_token_round_trip():
    token = create_access_token("admin-1", "admin", permissions=[ORDER_MANAGE])
    actor = actor_from_claims(decode_access_token(token))
    assert actor.role == Role.ADMIN
    assert actor.can(ORDER_MANAGE)
    assert actor.vendor_id is None


def test_vendor_id_defaults_to_subject():
    actor = actor_from_claims({"sub": "vendor-7", "user_type": "vendor"})
    assert actor.vendor_id == "vendor-7"
    assert actor_from_claims({"sub": "x", "user_type": "customer"}) is None
    assert decode_access_token("not-a-token") is None


def test_redaction_filter_masks_tokens():
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "Authorization: Bearer abc.def.ghi api_key=s3cr3t",
                               None, None)
    RedactionFilter().filter(record)
    assert "abc.def.ghi" not in record.msg
    assert "s3cr3t" not in record.msg

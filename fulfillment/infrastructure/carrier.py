"""HTTP client for the carrier pickup service.

The carrier integration is a black box: given an order, a weight and a
pickup window it books a pickup and returns a tracking number and label.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

from shared.core import get_logger
from fulfillment.domain.errors import ExternalServiceFailure

logger = get_logger(__name__)


@dataclass
class PickupRequest:
    order_id: str
    weight: Decimal
    package_count: int
    target_status: str
    pickup_date: str
    ready_time: str
    close_time: str
    weight_units: str = "KG"


@dataclass
class PickupResult:
    tracking_number: str
    label_url: Optional[str] = None
    pickup_confirmation: Optional[str] = None
    shipment_id: Optional[str] = None


class CarrierPickupClient:
    def __init__(self, base_url: Optional[str], api_key: Optional[str] = None, timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def schedule_pickup(self, request: PickupRequest) -> PickupResult:
        if not self.configured:
            raise ExternalServiceFailure("Carrier integration is not configured")

        payload = {
            "orderId": request.order_id,
            "pickupDate": request.pickup_date,
            "readyTime": request.ready_time,
            "closeTime": request.close_time,
            "packageCount": request.package_count,
            "weight": {"units": request.weight_units, "value": float(request.weight)},
            "targetStatus": request.target_status,
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(f"{self.base_url}/shipment/schedule-pickup",
                                       json=payload, headers=self._headers())
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response) or "Failed to schedule pickup"
            logger.error("Carrier rejected pickup request",
                         extra={'extra_fields': {'order_id': request.order_id,
                                                 'status_code': e.response.status_code}})
            raise ExternalServiceFailure(message, {"upstream_status": e.response.status_code}) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Carrier pickup call failed: {e}",
                         extra={'extra_fields': {'order_id': request.order_id}})
            raise ExternalServiceFailure("Carrier service is unavailable, please retry") from e

        return _parse_pickup(body)


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        return response.json().get("message")
    except (ValueError, AttributeError):
        return None


def _parse_pickup(body) -> PickupResult:
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict) or body.get("status") is False:
        message = body.get("message") if isinstance(body, dict) else None
        raise ExternalServiceFailure(message or "Carrier returned an unexpected response")

    shipment = data.get("shipment") or {}
    pickup = data.get("pickup") or {}
    tracking_number = shipment.get("trackingNumber")
    if not tracking_number:
        raise ExternalServiceFailure("Carrier response did not include a tracking number")
    return PickupResult(
        tracking_number=tracking_number,
        label_url=shipment.get("labelUrl"),
        pickup_confirmation=pickup.get("confirmationCode"),
        shipment_id=shipment.get("shipmentId"),
    )

from typing import Iterable, Optional

import httpx

from shared.core import get_logger

logger = get_logger(__name__)


class NotificationClient:
    """Marks notifications read by entity. Failures are logged, never raised."""

    def __init__(self, base_url: Optional[str], timeout: float = 5.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.transport = transport

    def mark_read_by_entity(self, entity_type: str, entity_id: str) -> bool:
        if not self.base_url:
            return False
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    f"{self.base_url}/notifications/mark-read-by-entity",
                    json={"entity_type": entity_type, "entity_id": entity_id},
                )
                response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Failed to mark notifications read: {e}",
                           extra={'extra_fields': {'entity_type': entity_type, 'entity_id': entity_id}})
            return False


def order_notification_ids(order_id: str, order_group_id: Optional[str]) -> Iterable[str]:
    # Checkout files notifications under the group code, status changes under the id.
    ids = [order_id]
    if order_group_id and order_group_id != order_id:
        ids.append(order_group_id)
    return ids


def mark_order_notifications_read(client: NotificationClient, order_id: str,
                                  order_group_id: Optional[str] = None) -> None:
    for entity_id in order_notification_ids(order_id, order_group_id):
        client.mark_read_by_entity("order", entity_id)

from functools import lru_cache

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from shared.core import set_request_context
from fulfillment.application.service import OrderFulfillmentService
from fulfillment.core_settings import get_settings
from fulfillment.domain.state_machine import Actor
from fulfillment.infrastructure.carrier import CarrierPickupClient
from fulfillment.infrastructure.db import get_db
from fulfillment.infrastructure.identity import actor_from_claims, decode_access_token
from fulfillment.infrastructure.notifications import NotificationClient

BEARER_PREFIX = "Bearer "


# Must stay async: context set from a threadpool dependency never reaches the endpoint.
async def get_actor(request: Request) -> Actor:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        raise HTTPException(status_code=401, detail="Missing token")
    claims = decode_access_token(auth_header.split(" ", 1)[1])
    if not claims:
        raise HTTPException(status_code=401, detail="Invalid token")
    actor = actor_from_claims(claims)
    if actor is None:
        raise HTTPException(status_code=401, detail="Token does not identify a known user type")
    set_request_context(user_id=actor.user_id, role=actor.role.value)
    return actor


@lru_cache
def get_carrier() -> CarrierPickupClient:
    settings = get_settings()
    return CarrierPickupClient(settings.CARRIER_BASE_URL, settings.CARRIER_API_KEY,
                               timeout=settings.CARRIER_TIMEOUT_SECONDS)


@lru_cache
def get_notifier() -> NotificationClient:
    return NotificationClient(get_settings().NOTIFICATIONS_BASE_URL)


def get_service(db: Session = Depends(get_db),
                carrier: CarrierPickupClient = Depends(get_carrier)) -> OrderFulfillmentService:
    return OrderFulfillmentService(db, carrier=carrier)

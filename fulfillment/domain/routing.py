"""Manual vs carrier-integrated shipment routing.

The integrated carrier runs a single shipper account in one country, so a
shipment that neither starts nor ends there has to be tracked by hand.
This is the only place that decision is made; when the carrier supports
more accounts, replace ``classify`` and nothing else.
"""
from enum import Enum
from typing import Any, Mapping

from .blobs import load_shipment_details
from .countries import normalize

HOME_COUNTRY = "AE"


class ShippingRoute(str, Enum):
    MANUAL = "manual"
    CARRIER_INTEGRATED = "carrier_integrated"


def _get(source: Any, key: str) -> Any:
    if source is None:
        return None
    if isinstance(source, Mapping):
        return source.get(key)
    return getattr(source, key, None)


def vendor_country(sub_order: Any, default: str = HOME_COUNTRY) -> str:
    vendor = _get(sub_order, "vendor")
    country = _get(_get(vendor, "profile"), "country") or _get(vendor, "country")
    return normalize(country or default)


def buyer_country(sub_order: Any, default: str = HOME_COUNTRY) -> str:
    # Delivery-address snapshot from checkout, never the buyer's profile.
    details = load_shipment_details(_get(sub_order, "shipment_details"))
    return normalize(details.get("country") or default)


def classify(sub_order: Any, account_country: str = HOME_COUNTRY) -> ShippingRoute:
    account_country = normalize(account_country)
    origin = vendor_country(sub_order, account_country)
    destination = buyer_country(sub_order, account_country)
    if origin != account_country and destination != account_country:
        return ShippingRoute.MANUAL
    return ShippingRoute.CARRIER_INTEGRATED

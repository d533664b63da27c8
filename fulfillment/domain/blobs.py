"""JSON-in-text columns (``transaction_details``, ``shipment_details``).

Reads accept either an already-decoded object or a JSON string and never
raise; writes always produce a JSON string.
"""
import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class BlobDecodeError(ValueError):
    pass


def decode_blob(raw: Any) -> Any:
    """Decode a stored blob. Raises BlobDecodeError on unparsable text."""
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise BlobDecodeError(str(exc)) from exc
    return raw


def dump_blob(value: Any) -> str:
    return json.dumps(value, default=str)


class ShipmentDetails(BaseModel):
    """Delivery snapshot plus whatever tracking data the shipment gained."""
    model_config = ConfigDict(extra="allow")

    tracking_number: Optional[str] = None
    provider: Optional[str] = None
    pickup_confirmation: Optional[str] = None
    pickup_date: Optional[str] = None
    label_url: Optional[str] = None
    country: Optional[str] = None


def load_shipment_details(raw: Any) -> Dict[str, Any]:
    try:
        decoded = decode_blob(raw)
    except BlobDecodeError:
        return {}
    return decoded if isinstance(decoded, dict) else {}


def merge_shipment_details(raw: Any, **updates: Any) -> str:
    details = load_shipment_details(raw)
    details.update({key: value for key, value in updates.items() if value is not None})
    return dump_blob(details)

"""Append-only payment ledger stored in ``orders.transaction_details``.

The stored value is a JSON list of payment attempts. Older rows may hold a
single object instead of a list, or text that no longer parses; both are
read leniently so a bad legacy value never blocks a new confirmation.
Existing elements are carried over verbatim on append, including failed
attempts and anything this module does not understand.
"""
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as SchemaError

from shared.core import get_logger

from .blobs import BlobDecodeError, decode_blob, dump_blob
from .errors import MalformedLedgerData, ValidationError
from .statuses import PaymentMode, PaymentStatus, Role

logger = get_logger(__name__)


class CardDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    brand: Optional[str] = None
    last4: Optional[str] = None


class BankTransferDetails(BaseModel):
    sender_bank: str
    sender_name: Optional[str] = None


class CashDetails(BaseModel):
    collected_by: str
    receipt_no: Optional[str] = None


class ChequeDetails(BaseModel):
    cheque_no: str
    issuing_bank: str


OFFLINE_DETAILS = {
    PaymentMode.BANK_TRANSFER: BankTransferDetails,
    PaymentMode.CASH: CashDetails,
    PaymentMode.CHEQUE: ChequeDetails,
}

REQUIRED_FIELDS = {
    PaymentMode.BANK_TRANSFER: {
        "transaction_id": "Reference number is required for bank transfers",
        "sender_bank": "Sender bank is required for bank transfers",
    },
    PaymentMode.CASH: {
        "collected_by": "Collector name is required for cash payments",
    },
    PaymentMode.CHEQUE: {
        "cheque_no": "Cheque number is required for cheque payments",
        "issuing_bank": "Issuing bank is required for cheque payments",
    },
}


class PaymentEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    payment_mode: Optional[str] = None
    transaction_id: Optional[str] = None
    session_id: Optional[str] = None
    manual_entry: bool = False
    timestamp: Optional[str] = None
    payment_status: Optional[str] = None
    offline_details: Dict[str, Any] = {}
    amount_total: Optional[Decimal] = None
    currency: Optional[str] = None
    receipt_url: Optional[str] = None
    payment_details: Optional[CardDetails] = None
    notes: Optional[str] = None

    @property
    def is_placeholder(self) -> bool:
        return not (self.payment_mode or self.transaction_id or self.session_id)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID.value

    @property
    def recorded_at(self) -> Optional[datetime]:
        return parse_timestamp(self.timestamp)

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _decode(raw: Any) -> List[Any]:
    try:
        decoded = decode_blob(raw)
    except BlobDecodeError as exc:
        raise MalformedLedgerData("transaction_details is not valid JSON", {"reason": str(exc)}) from exc
    if decoded is None:
        return []
    if isinstance(decoded, list):
        return list(decoded)
    if isinstance(decoded, dict):
        return [decoded]
    raise MalformedLedgerData("transaction_details has an unexpected shape",
                              {"type": type(decoded).__name__})


def load_entries(raw: Any) -> List[Any]:
    """Raw stored elements, or an empty list when the blob is unusable."""
    try:
        return _decode(raw)
    except MalformedLedgerData as exc:
        logger.warning(
            "Malformed ledger data treated as empty",
            extra={'extra_fields': {'reason': exc.message, **exc.details}}
        )
        return []


def append(raw: Any, entry: PaymentEntry) -> str:
    return dump_blob(load_entries(raw) + [entry.to_storage()])


def entries(raw: Any) -> List[PaymentEntry]:
    """Every parseable, non-placeholder entry in stored order."""
    parsed = []
    for item in load_entries(raw):
        if not isinstance(item, dict):
            continue
        try:
            entry = PaymentEntry.model_validate(item)
        except SchemaError:
            logger.warning("Skipping unreadable ledger entry",
                           extra={'extra_fields': {'keys': sorted(item)}})
            continue
        if not entry.is_placeholder:
            parsed.append(entry)
    return parsed


def _newest_first(items: List[PaymentEntry]) -> List[PaymentEntry]:
    # Entries without a usable timestamp go last.
    return sorted(
        items,
        key=lambda e: (e.recorded_at is not None, e.recorded_at or datetime.min.replace(tzinfo=timezone.utc)),
        reverse=True,
    )


def view(raw: Any, role: Role) -> List[PaymentEntry]:
    visible = entries(raw)
    if role != Role.SUPER_ADMIN:
        visible = [entry for entry in visible if entry.is_paid]
    return _newest_first(visible)


def has_successful_payment(raw: Any) -> bool:
    return any(entry.is_paid for entry in entries(raw))


def build_offline_entry(
    mode: PaymentMode,
    form: Mapping[str, Any],
    amount_total: Optional[Decimal] = None,
    currency: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PaymentEntry:
    """Validate an offline payment form and turn it into a ledger entry.

    Raises ValidationError naming every missing field; nothing is written
    by this function.
    """
    missing = {
        field: message
        for field, message in REQUIRED_FIELDS[mode].items()
        if not str(form.get(field) or "").strip()
    }
    if missing:
        raise ValidationError(f"Missing required fields for {mode.value} payment", missing)

    details_model = OFFLINE_DETAILS[mode]
    details = details_model.model_validate(
        {name: form.get(name) for name in details_model.model_fields}
    )
    now = now or datetime.now(timezone.utc)
    entry = PaymentEntry(
        payment_mode=mode.value,
        transaction_id=str(form.get("transaction_id") or "").strip() or f"MANUAL-{int(time.time() * 1000)}",
        manual_entry=True,
        timestamp=now.isoformat().replace("+00:00", "Z"),
        payment_status=PaymentStatus.PAID.value,
        offline_details=details.model_dump(exclude_none=True),
        amount_total=amount_total,
        currency=currency,
    )
    if form.get("notes"):
        entry.notes = form["notes"]
    return entry
